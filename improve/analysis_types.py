"""Type definitions for the ImproVe analysis pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Tuple

import numpy as np


def _as_float_array(values: Iterable[float]) -> np.ndarray:
    if not isinstance(values, np.ndarray):
        values = list(values)
    return np.array(values, dtype=np.float64)


@dataclass(frozen=True)
class FrequencyComponent:
    """One resolved spectral peak surviving the discard threshold."""

    frequency: float  # Frequency in Hz, positive and finite
    amplitude: float  # Normalized amplitude, non-negative

    def __str__(self):
        return f"{self.frequency:.1f}Hz@{self.amplitude:.3f}"


class ComponentSet:
    """The ordered frequency components of a single audio frame.

    Components are stored as two parallel numpy arrays sorted by
    frequency, so the dissonance model can work on them without
    building Python objects per frame. The set may be empty (silence).

    Raises:
        ValueError: If a frequency is not positive and finite, an amplitude
            is negative, or two components share a frequency
    """

    __slots__ = ("_frequencies", "_amplitudes")

    def __init__(self, frequencies: Iterable[float], amplitudes: Iterable[float]):
        freqs = _as_float_array(frequencies)
        amps = _as_float_array(amplitudes)

        if freqs.shape != amps.shape or freqs.ndim != 1:
            raise ValueError(
                f"Frequencies and amplitudes must be 1-D and the same length, "
                f"got {freqs.shape} and {amps.shape}"
            )
        if freqs.size:
            if not np.all(np.isfinite(freqs)) or np.any(freqs <= 0):
                raise ValueError("Component frequencies must be positive and finite")
            if not np.all(np.isfinite(amps)) or np.any(amps < 0):
                raise ValueError("Component amplitudes must be non-negative and finite")

            order = np.argsort(freqs, kind="stable")
            freqs = freqs[order]
            amps = amps[order]
            if np.any(np.diff(freqs) == 0):
                raise ValueError("Two components share the same frequency")

        freqs.setflags(write=False)
        amps.setflags(write=False)
        self._frequencies = freqs
        self._amplitudes = amps

    @classmethod
    def empty(cls) -> ComponentSet:
        """Return the component set of a silent frame."""
        return cls(np.empty(0), np.empty(0))

    @property
    def frequencies(self) -> np.ndarray:
        return self._frequencies

    @property
    def amplitudes(self) -> np.ndarray:
        return self._amplitudes

    @property
    def is_empty(self) -> bool:
        return self._frequencies.size == 0

    def strongest(self, count: int) -> ComponentSet:
        """Keep only the ``count`` loudest components."""
        if count >= len(self):
            return self
        keep = np.argsort(self._amplitudes, kind="stable")[::-1][:count]
        return ComponentSet(self._frequencies[keep], self._amplitudes[keep])

    def __len__(self) -> int:
        return int(self._frequencies.size)

    def __iter__(self) -> Iterator[FrequencyComponent]:
        for freq, amp in zip(self._frequencies, self._amplitudes):
            yield FrequencyComponent(float(freq), float(amp))

    def __eq__(self, other) -> bool:
        if not isinstance(other, ComponentSet):
            return NotImplemented
        return np.array_equal(self._frequencies, other._frequencies) and np.array_equal(
            self._amplitudes, other._amplitudes
        )

    def __repr__(self):
        shown = ", ".join(str(c) for c in list(self)[:5])
        more = f", ... ({len(self)} total)" if len(self) > 5 else ""
        return f"ComponentSet([{shown}{more}])"


@dataclass(frozen=True)
class ProbePitch:
    """A candidate note, evaluated against what is currently sounding."""

    frequency: float  # Fundamental frequency in Hz
    step: int  # Pitch step index on the instrument's lattice (MIDI number for 12-TET)
    label: str  # Display name, e.g. 'A4'
    reference_amplitude: float = 1.0  # Amplitude of the hypothetical note


class ProbeTable:
    """Flat, ordered, immutable array of probe pitches.

    Built once from the instrument geometry; positions refer to probes by
    their index in this table.
    """

    def __init__(self, probes: Iterable[ProbePitch]):
        self._probes: Tuple[ProbePitch, ...] = tuple(probes)
        self._frequencies = np.array([p.frequency for p in self._probes], dtype=np.float64)
        self._amplitudes = np.array(
            [p.reference_amplitude for p in self._probes], dtype=np.float64
        )
        self._frequencies.setflags(write=False)
        self._amplitudes.setflags(write=False)

    @property
    def frequencies(self) -> np.ndarray:
        return self._frequencies

    @property
    def reference_amplitudes(self) -> np.ndarray:
        return self._amplitudes

    @property
    def labels(self) -> List[str]:
        return [p.label for p in self._probes]

    def __len__(self) -> int:
        return len(self._probes)

    def __iter__(self) -> Iterator[ProbePitch]:
        return iter(self._probes)

    def __getitem__(self, index: int) -> ProbePitch:
        return self._probes[index]

    def __repr__(self):
        if not self._probes:
            return "ProbeTable([])"
        return (
            f"ProbeTable({len(self)} probes, {self._probes[0].label}"
            f"..{self._probes[-1].label})"
        )


@dataclass(frozen=True)
class FretPosition:
    """Represents a position on the fretboard."""

    string: int  # String index, 0 is the lowest-pitched string
    fret: int  # Fret number (0 for open string)

    def __str__(self):
        return f"S{self.string}F{self.fret}"


@dataclass
class DissonanceCurve:
    """Dissonance value per probe pitch for one frame.

    ``values[i]`` belongs to ``probe_frequencies[i]``; the ordering is the
    probe table's ordering and never changes.
    """

    probe_frequencies: np.ndarray
    values: np.ndarray
    timestamp: float = 0.0
    chord_dissonance: float = 0.0  # Constant offset already included in values

    def __post_init__(self):
        if self.probe_frequencies.shape != self.values.shape:
            raise ValueError(
                f"Curve has {self.values.size} values for "
                f"{self.probe_frequencies.size} probes"
            )

    def __len__(self) -> int:
        return int(self.values.size)

    @classmethod
    def zeros(cls, probe_frequencies: np.ndarray, timestamp: float = 0.0) -> DissonanceCurve:
        return cls(probe_frequencies, np.zeros_like(probe_frequencies, dtype=np.float64), timestamp)

    def value_at(self, frequency: float) -> float:
        """Return the value of the probe nearest to ``frequency``."""
        idx = int(np.argmin(np.abs(self.probe_frequencies - frequency)))
        return float(self.values[idx])

    def argmax_frequency(self) -> float:
        return float(self.probe_frequencies[int(np.argmax(self.values))])


@dataclass
class DisplayGrid:
    """Normalized dissonance per fretboard position, for one frame.

    Attributes:
        values: Array of shape (strings, frets + 1), every value in [0, 1]
        raw_min: Smallest raw dissonance used for normalization (legend)
        raw_max: Largest raw dissonance used for normalization (legend)
        labels: Note label per position, same shape as ``values``
        components: The component set the grid was computed from
        inverted: True when ``values`` report consonance (1 - dissonance)
    """

    values: np.ndarray
    raw_min: float
    raw_max: float
    labels: List[List[str]] = field(default_factory=list)
    components: Optional[ComponentSet] = None
    timestamp: float = 0.0
    inverted: bool = False

    @property
    def shape(self) -> Tuple[int, int]:
        return self.values.shape

    def dissonance_levels(self) -> np.ndarray:
        """Normalized dissonance per position, whichever way ``values`` point."""
        return 1.0 - self.values if self.inverted else self.values

    def value(self, position: FretPosition) -> float:
        return float(self.values[position.string, position.fret])
