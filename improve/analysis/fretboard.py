"""Instrument geometry tables and the fretboard mapper.

The static tables are built once at startup: probe pitches live in a flat
ordered ``ProbeTable`` and every fretboard position is an integer index into
it, so two positions sounding the same pitch share one probe.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..analysis_types import (
    ComponentSet,
    DisplayGrid,
    DissonanceCurve,
    FretPosition,
    ProbePitch,
    ProbeTable,
)
from ..core.errors import ConfigurationError
from ..logger import get_logger
from ..note_utils import (
    A4_FREQUENCY,
    A4_MIDI,
    Notation,
    get_note_name,
    note_name_to_frequency,
    pitch_class_label,
)

logger = get_logger(__name__)

TuningEntry = Union[str, float]

# Open strings further than this from a fret pitch are reported when snapped
SNAP_TOLERANCE_CENTS = 5.0

MAX_FRETS = 48


@dataclass(frozen=True)
class InstrumentPreset:
    """Tuning and fret count of a known instrument, lowest string first."""

    name: str
    tuning: Tuple[str, ...]
    fret_count: int


INSTRUMENT_PRESETS: Dict[str, InstrumentPreset] = {
    "guitar": InstrumentPreset("guitar", ("E2", "A2", "D3", "G3", "B3", "E4"), 24),
    "bass": InstrumentPreset("bass", ("E1", "A1", "D2", "G2"), 20),
    "ukulele": InstrumentPreset("ukulele", ("G4", "C4", "E4", "A4"), 15),
    # Abstract lattice: one row per octave, C1 to B8
    "lattice": InstrumentPreset("lattice", tuple(f"C{octave}" for octave in range(1, 9)), 11),
}


class Fretboard:
    """Static probe and position tables for one instrument.

    Attributes:
        name: Instrument name
        probes: Ordered probe pitches, ascending
        index: Integer array (strings, frets + 1); ``index[s, f]`` is the
            probe index sounding at string ``s``, fret ``f``
    """

    def __init__(
        self,
        name: str,
        probes: ProbeTable,
        index: np.ndarray,
        divisions_per_octave: int = 12,
    ):
        self.name = name
        self.probes = probes
        self.index = index
        self.index.setflags(write=False)
        self.divisions_per_octave = divisions_per_octave

    @classmethod
    def from_tuning(
        cls,
        tuning: Sequence[TuningEntry],
        fret_count: int,
        divisions_per_octave: int = 12,
        reference_frequency: float = A4_FREQUENCY,
        name: str = "custom",
    ) -> Fretboard:
        """Build the tables for a fretted instrument.

        Args:
            tuning: Open-string pitches, lowest string first, as SPN note
                names ('E2') or frequencies in Hz
            fret_count: Highest fret number
            divisions_per_octave: Frets per octave (equal temperament)
            reference_frequency: Frequency of A4 in Hz
            name: Instrument name

        Returns:
            The instrument's fretboard tables

        Raises:
            ConfigurationError: If the geometry is malformed
        """
        if not isinstance(divisions_per_octave, (int, np.integer)) or divisions_per_octave < 1:
            raise ConfigurationError(
                "divisions_per_octave", "must be a positive integer", divisions_per_octave
            )
        if not reference_frequency or reference_frequency <= 0:
            raise ConfigurationError(
                "reference_frequency", "must be positive", reference_frequency
            )
        if not isinstance(fret_count, (int, np.integer)) or not 0 <= fret_count <= MAX_FRETS:
            raise ConfigurationError(
                "fret_count", f"must be an integer within [0, {MAX_FRETS}]", fret_count
            )
        if not tuning:
            raise ConfigurationError("tuning", "needs at least one string", tuning)

        open_steps = [
            cls._lattice_step(
                cls._open_frequency(entry, reference_frequency),
                divisions_per_octave,
                reference_frequency,
            )
            for entry in tuning
        ]
        steps = np.array(open_steps, dtype=np.int64)[:, None] + np.arange(fret_count + 1)[None, :]

        unique_steps, inverse = np.unique(steps, return_inverse=True)
        probes = ProbeTable(
            cls._make_probe(int(step), divisions_per_octave, reference_frequency)
            for step in unique_steps
        )
        index = inverse.reshape(steps.shape).astype(np.int64)

        fretboard = cls(name, probes, index, divisions_per_octave)
        logger.info(
            f"Built {name} fretboard: {len(tuning)} strings x {fret_count + 1} positions, "
            f"{len(probes)} distinct probes"
        )
        return fretboard

    @classmethod
    def from_preset(
        cls,
        preset: str,
        fret_count: Optional[int] = None,
        tuning: Optional[Sequence[TuningEntry]] = None,
        divisions_per_octave: int = 12,
        reference_frequency: float = A4_FREQUENCY,
    ) -> Fretboard:
        """Build a known instrument, optionally overriding its tuning or fret count."""
        if preset not in INSTRUMENT_PRESETS:
            raise ConfigurationError(
                "preset", f"unknown instrument, expected one of {sorted(INSTRUMENT_PRESETS)}", preset
            )
        known = INSTRUMENT_PRESETS[preset]
        return cls.from_tuning(
            tuning or known.tuning,
            known.fret_count if fret_count is None else fret_count,
            divisions_per_octave=divisions_per_octave,
            reference_frequency=reference_frequency,
            name=preset,
        )

    @property
    def string_count(self) -> int:
        return int(self.index.shape[0])

    @property
    def fret_count(self) -> int:
        return int(self.index.shape[1]) - 1

    def probe_for(self, position: FretPosition) -> ProbePitch:
        return self.probes[int(self.index[position.string, position.fret])]

    def positions(self) -> Iterator[FretPosition]:
        for string in range(self.string_count):
            for fret in range(self.fret_count + 1):
                yield FretPosition(string, fret)

    def positions_for_probe(self, probe_index: int) -> List[FretPosition]:
        """Every position sounding the given probe (aliases on other strings)."""
        strings, frets = np.nonzero(self.index == probe_index)
        return [FretPosition(int(s), int(f)) for s, f in zip(strings, frets)]

    def label_grid(self, notation: Notation = Notation.ENGLISH, use_flats: bool = False) -> List[List[str]]:
        """Pitch-class label for every position."""
        if self.divisions_per_octave == 12:
            names = [pitch_class_label(p.step, use_flats, notation) for p in self.probes]
        else:
            names = [get_note_name(p.frequency, use_flats).rstrip("0123456789-") for p in self.probes]
        return [[names[i] for i in row] for row in self.index]

    @staticmethod
    def _open_frequency(entry: TuningEntry, reference: float) -> float:
        if isinstance(entry, str):
            try:
                return note_name_to_frequency(entry, reference=reference)
            except ValueError as e:
                raise ConfigurationError("tuning", str(e), entry) from e
        try:
            frequency = float(entry)
        except (TypeError, ValueError) as e:
            raise ConfigurationError("tuning", "entries must be note names or Hz", entry) from e
        if not np.isfinite(frequency) or frequency <= 0:
            raise ConfigurationError("tuning", "open-string frequencies must be positive", entry)
        return frequency

    @staticmethod
    def _lattice_step(frequency: float, divisions: int, reference: float) -> int:
        exact = divisions * np.log2(frequency / reference)
        step = int(round(exact))
        cents = (exact - step) * 1200.0 / divisions
        if abs(cents) > SNAP_TOLERANCE_CENTS:
            logger.info(f"Open string at {frequency:.2f} Hz snapped {-cents:+.1f} cents to the nearest fret pitch")
        return step + A4_MIDI

    @staticmethod
    def _make_probe(step: int, divisions: int, reference: float) -> ProbePitch:
        frequency = float(reference * 2.0 ** ((step - A4_MIDI) / divisions))
        return ProbePitch(frequency=frequency, step=step, label=get_note_name(frequency))

    def __repr__(self):
        return (
            f"Fretboard({self.name!r}, strings={self.string_count}, "
            f"frets={self.fret_count}, probes={len(self.probes)})"
        )


class FretboardMapper:
    """Projects a dissonance curve onto a fretboard, normalized to [0, 1]."""

    SCALES: ClassVar[List[str]] = ["linear", "sqrt", "log"]
    LOG_BASE: ClassVar[float] = 10.0

    def __init__(
        self,
        scale: str = "linear",
        invert: bool = False,
        value_range: Optional[Tuple[float, float]] = None,
        notation: Notation = Notation.ENGLISH,
        use_flats: bool = False,
    ) -> None:
        """Initialize the mapper.

        Args:
            scale: 'linear', 'sqrt' or 'log' interval map
            invert: Report consonance (1 - normalized dissonance) instead
            value_range: Fixed (min, max) raw range; default is the curve's own range
            notation: Note naming used for position labels
            use_flats: Use flats instead of sharps in labels
        """
        if scale not in self.SCALES:
            raise ConfigurationError("scale", f"must be one of {self.SCALES}", scale)
        if value_range is not None and not value_range[0] <= value_range[1]:
            raise ConfigurationError("value_range", "min must not exceed max", value_range)
        self._scale = scale
        self._invert = bool(invert)
        self._value_range = value_range
        self._notation = notation
        self._use_flats = use_flats
        self._label_cache: Dict[int, List[List[str]]] = {}

    def normalize(self, values: np.ndarray) -> Tuple[np.ndarray, float, float]:
        """Map raw values into [0, 1].

        Returns:
            The normalized values and the (min, max) raw range used. A
            constant input maps to all zeros.
        """
        values = np.asarray(values, dtype=np.float64)
        if self._value_range is not None:
            lo, hi = (float(v) for v in self._value_range)
        elif values.size:
            lo, hi = float(values.min()), float(values.max())
        else:
            lo = hi = 0.0

        span = hi - lo
        if not span > 0.0:
            normalized = np.zeros_like(values)
        else:
            normalized = np.clip((values - lo) / span, 0.0, 1.0)
            if self._scale == "sqrt":
                normalized = np.sqrt(normalized)
            elif self._scale == "log":
                normalized = np.log1p(normalized * (self.LOG_BASE - 1.0)) / np.log(self.LOG_BASE)
                normalized = np.clip(normalized, 0.0, 1.0)

        if self._invert:
            normalized = 1.0 - normalized
        return normalized, lo, hi

    def map(
        self,
        curve: DissonanceCurve,
        fretboard: Fretboard,
        components: Optional[ComponentSet] = None,
    ) -> DisplayGrid:
        """Project ``curve`` onto ``fretboard``.

        Raises:
            ValueError: If the curve was not built from the fretboard's probes
        """
        if len(curve) != len(fretboard.probes):
            raise ValueError(
                f"Curve has {len(curve)} values but {fretboard.name} has "
                f"{len(fretboard.probes)} probes"
            )

        normalized, lo, hi = self.normalize(curve.values)
        return DisplayGrid(
            values=normalized[fretboard.index],
            raw_min=lo,
            raw_max=hi,
            labels=self._labels_for(fretboard),
            components=components,
            timestamp=curve.timestamp,
            inverted=self._invert,
        )

    def _labels_for(self, fretboard: Fretboard) -> List[List[str]]:
        key = id(fretboard)
        if key not in self._label_cache:
            self._label_cache[key] = fretboard.label_grid(self._notation, self._use_flats)
        return self._label_cache[key]
