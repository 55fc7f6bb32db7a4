"""Dissonance curve builder: evaluates the dissonance model at every probe pitch."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from ..analysis_types import ComponentSet, DissonanceCurve, ProbeTable
from ..core.errors import ConfigurationError
from ..logger import get_logger
from .dissonance import DissonanceModel, check_dissonance

logger = get_logger(__name__)

Probes = Union[ProbeTable, Sequence[float], np.ndarray]

# Two probes are an octave apart when their ratio is 2 within one cent
OCTAVE_TOLERANCE = 1.0 / 1200.0


class DissonanceCurveBuilder:
    """Builds one dissonance curve per frame.

    ``build`` is a function of its arguments: the optional smoothing state
    is the previous frame's curve, passed in by the caller and replaced by
    the returned curve. Probes are independent, so they may be evaluated on
    a fixed pool of worker threads; each worker writes its own slice of a
    pre-sized output array.
    """

    def __init__(
        self,
        model: Optional[DissonanceModel] = None,
        half_life: Optional[float] = None,
        octave_weight: float = 0.0,
        workers: int = 0,
        frame_period: Optional[float] = None,
    ) -> None:
        """Initialize the curve builder.

        Args:
            model: Dissonance model (default: Plomp-Levelt, pure-tone probes)
            half_life: Temporal smoothing constant in seconds, None disables smoothing
            octave_weight: Share of each value taken from probes an octave away (0 disables)
            workers: Worker threads for probe evaluation, 0 or 1 evaluates inline
            frame_period: Seconds between frames, used as the smoothing interval
                when `build` is called without timestamps

        Raises:
            ConfigurationError: If a parameter is out of range
        """
        if half_life is not None and half_life <= 0:
            raise ConfigurationError("half_life", "must be positive or unset", half_life)
        if not 0.0 <= octave_weight <= 1.0:
            raise ConfigurationError("octave_weight", "must be within [0, 1]", octave_weight)
        if workers < 0:
            raise ConfigurationError("workers", "must be non-negative", workers)
        if frame_period is not None and frame_period <= 0:
            raise ConfigurationError("frame_period", "must be positive or unset", frame_period)

        self._model = model or DissonanceModel()
        self._half_life = half_life
        self._octave_weight = float(octave_weight)
        self._workers = int(workers)
        self._frame_period = frame_period
        self._executor: Optional[ThreadPoolExecutor] = (
            ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="probe")
            if self._workers > 1
            else None
        )

        # Octave neighbours depend only on the (static) probe frequencies
        self._octave_cache_key: Optional[bytes] = None
        self._octave_neighbours: List[np.ndarray] = []

    @property
    def model(self) -> DissonanceModel:
        return self._model

    @property
    def half_life(self) -> Optional[float]:
        return self._half_life

    @property
    def frame_period(self) -> Optional[float]:
        return self._frame_period

    @property
    def smoothing(self) -> bool:
        return self._half_life is not None

    def build(
        self,
        components: ComponentSet,
        probes: Probes,
        previous: Optional[DissonanceCurve] = None,
        timestamp: Optional[float] = None,
    ) -> DissonanceCurve:
        """Compute the dissonance curve of one frame.

        Args:
            components: The frame's component set (may be empty)
            probes: Probe table, or bare probe frequencies in Hz
            previous: The curve returned for the previous frame, used only
                when temporal smoothing is configured
            timestamp: Capture time of the frame in seconds. When omitted the
                frame is taken to follow `previous` by one frame period

        Returns:
            A curve with one value per probe, in probe order

        Raises:
            DissonanceContractError: If the model yields NaN or negative values
            ValueError: If smoothing needs a time step and neither a timestamp
                nor a frame period is known
        """
        frequencies, references = self._unpack_probes(probes)
        values = self._evaluate(components, frequencies, references)

        if self._octave_weight > 0.0:
            values = self._blend_octaves(values, frequencies)

        chord = 0.0
        if self._model.include_chord:
            chord = self._model.chord_dissonance(components)
            values = values + chord

        if timestamp is None:
            timestamp = self._next_timestamp(previous)

        if self._half_life is not None and previous is not None:
            values = self._smooth(values, previous, timestamp)

        check_dissonance(values, "curve value")
        return DissonanceCurve(
            probe_frequencies=frequencies,
            values=values,
            timestamp=timestamp,
            chord_dissonance=chord,
        )

    def close(self) -> None:
        """Shut down the worker pool, if any."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _evaluate(
        self, components: ComponentSet, frequencies: np.ndarray, references: np.ndarray
    ) -> np.ndarray:
        if components.is_empty:
            return np.zeros(frequencies.shape)

        if self._executor is None or frequencies.size < self._workers:
            return self._model.probe_dissonance_many(components, frequencies, references)

        out = np.empty(frequencies.shape)
        chunks = np.array_split(np.arange(frequencies.size), self._workers)

        def evaluate_chunk(indices: np.ndarray) -> None:
            out[indices] = self._model.probe_dissonance_many(
                components, frequencies[indices], references[indices]
            )

        # result() re-raises any worker exception here
        for future in [self._executor.submit(evaluate_chunk, c) for c in chunks]:
            future.result()
        return out

    def _blend_octaves(self, values: np.ndarray, frequencies: np.ndarray) -> np.ndarray:
        neighbours = self._octave_neighbours_for(frequencies)
        blended = values.copy()
        for i, idx in enumerate(neighbours):
            if idx.size:
                octave_mean = float(values[idx].mean())
                blended[i] = (1.0 - self._octave_weight) * values[i] + self._octave_weight * octave_mean
        return blended

    def _octave_neighbours_for(self, frequencies: np.ndarray) -> List[np.ndarray]:
        key = frequencies.tobytes()
        if key != self._octave_cache_key:
            log_f = np.log2(frequencies)
            distance = np.abs(np.abs(log_f[:, None] - log_f[None, :]) - 1.0)
            self._octave_neighbours = [np.flatnonzero(row < OCTAVE_TOLERANCE) for row in distance]
            self._octave_cache_key = key
        return self._octave_neighbours

    def _next_timestamp(self, previous: Optional[DissonanceCurve]) -> float:
        if previous is None:
            return 0.0
        if self._frame_period is None:
            if self._half_life is not None:
                raise ValueError("Smoothing without timestamps requires a frame_period")
            return previous.timestamp
        return previous.timestamp + self._frame_period

    def _smooth(
        self, values: np.ndarray, previous: DissonanceCurve, timestamp: float
    ) -> np.ndarray:
        if previous.values.shape != values.shape:
            logger.warning(
                f"Previous curve has {len(previous)} values for {values.size} probes, not smoothing"
            )
            return values
        dt = max(0.0, timestamp - previous.timestamp)
        weight = float(np.exp(-dt / self._half_life))
        return weight * previous.values + (1.0 - weight) * values

    def _unpack_probes(self, probes: Probes) -> Tuple[np.ndarray, np.ndarray]:
        if isinstance(probes, ProbeTable):
            return probes.frequencies, probes.reference_amplitudes
        frequencies = np.asarray(probes, dtype=np.float64)
        if frequencies.ndim != 1 or np.any(frequencies <= 0):
            raise ConfigurationError("probes", "must be a flat array of positive frequencies")
        return frequencies, np.full(frequencies.shape, self._model.reference_amplitude)
