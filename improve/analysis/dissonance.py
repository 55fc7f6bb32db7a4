"""Psychoacoustic roughness models and the per-frame dissonance reducer.

Two partials close in frequency beat against each other; the perceived
roughness rises quickly away from unison, peaks at a fraction of a critical
bandwidth and decays to nothing beyond roughly one critical bandwidth
(Plomp & Levelt, 1965). Following Sethares, the curve is modelled as

    d(x) = exp(-a * x) - exp(-b * x),   x = s * |f2 - f1|
    s = d_star / (s1 * min(f1, f2) + s2)

where ``s1 * f + s2`` approximates the critical bandwidth at ``f``,
``d_star`` places the peak, ``a`` sets the decay rate and ``b`` the
steepness of the rise.
"""

from __future__ import annotations

from typing import ClassVar, Dict, Optional, Tuple, Type, Union

import numpy as np

from ..analysis_types import ComponentSet, ProbePitch
from ..core.errors import ConfigurationError, DissonanceContractError
from ..core.interfaces import ArrayLike, IRoughnessModel
from ..logger import get_logger

logger = get_logger(__name__)


class PlompLeveltModel(IRoughnessModel):
    """Sethares' parametrisation of the Plomp-Levelt curve.

    The amplitude term is ``min(a1, a2)``, so a quiet partial never
    dominates the roughness it causes against a loud one.
    """

    name: ClassVar[str] = "plomp_levelt"

    def __init__(
        self,
        a: float = 3.5,
        b: float = 5.75,
        d_star: float = 0.24,
        s1: float = 0.021,
        s2: float = 19.0,
    ) -> None:
        """Initialize the model.

        Args:
            a: Decay rate beyond the peak
            b: Steepness of the rise from unison, must exceed ``a``
            d_star: Peak location as a fraction of the critical bandwidth
            s1: Critical bandwidth slope per Hz
            s2: Critical bandwidth offset in Hz

        Raises:
            ConfigurationError: If a coefficient is out of range
        """
        if a <= 0:
            raise ConfigurationError("a", "must be positive", a)
        if b <= a:
            raise ConfigurationError("b", "must be greater than a", b)
        if d_star <= 0:
            raise ConfigurationError("d_star", "must be positive", d_star)
        if s1 < 0:
            raise ConfigurationError("s1", "must be non-negative", s1)
        if s2 <= 0:
            raise ConfigurationError("s2", "must be positive", s2)

        self.a = float(a)
        self.b = float(b)
        self.d_star = float(d_star)
        self.s1 = float(s1)
        self.s2 = float(s2)

    def roughness(
        self, f1: ArrayLike, a1: ArrayLike, f2: ArrayLike, a2: ArrayLike
    ) -> ArrayLike:
        return self._amplitude_term(a1, a2) * self._frequency_term(f1, f2)

    def peak_distance(self, frequency: float) -> float:
        """Frequency difference in Hz at which roughness peaks above ``frequency``."""
        x_peak = np.log(self.b / self.a) / (self.b - self.a)
        return float(x_peak * (self.s1 * frequency + self.s2) / self.d_star)

    def describe(self) -> dict:
        return {"a": self.a, "b": self.b, "d_star": self.d_star, "s1": self.s1, "s2": self.s2}

    def _frequency_term(self, f1: ArrayLike, f2: ArrayLike) -> ArrayLike:
        s = self.d_star / (self.s1 * np.minimum(f1, f2) + self.s2)
        x = s * np.abs(np.subtract(f2, f1))
        return np.exp(-self.a * x) - np.exp(-self.b * x)

    def _amplitude_term(self, a1: ArrayLike, a2: ArrayLike) -> ArrayLike:
        return np.minimum(a1, a2)

    def __repr__(self):
        params = ", ".join(f"{k}={v}" for k, v in self.describe().items())
        return f"{type(self).__name__}({params})"


class VassilakisModel(PlompLeveltModel):
    """Vassilakis' refinement: amplitude fluctuation degree weighting.

    Same frequency term, but the amplitude term rewards equal amplitudes:
    ``(a1 * a2) ** 0.1 * 0.5 * (2 * min(a1, a2) / (a1 + a2)) ** 3.11``.
    """

    name: ClassVar[str] = "vassilakis"

    def __init__(
        self,
        a: float = 3.5,
        b: float = 5.75,
        d_star: float = 0.24,
        s1: float = 0.0207,
        s2: float = 18.96,
    ) -> None:
        super().__init__(a=a, b=b, d_star=d_star, s1=s1, s2=s2)

    def _amplitude_term(self, a1: ArrayLike, a2: ArrayLike) -> ArrayLike:
        a1 = np.asarray(a1, dtype=np.float64)
        a2 = np.asarray(a2, dtype=np.float64)
        total = a1 + a2
        ratio = np.divide(
            2.0 * np.minimum(a1, a2),
            total,
            out=np.zeros(np.broadcast(a1, a2).shape),
            where=total > 0,
        )
        return (a1 * a2) ** 0.1 * 0.5 * ratio**3.11


ROUGHNESS_MODELS: Dict[str, Type[PlompLeveltModel]] = {
    PlompLeveltModel.name: PlompLeveltModel,
    VassilakisModel.name: VassilakisModel,
}


def check_dissonance(values: np.ndarray, what: str = "dissonance") -> np.ndarray:
    """Raise if a model produced NaN, infinite or negative values.

    Raises:
        DissonanceContractError: On any invalid value
    """
    values = np.asarray(values)
    if not np.all(np.isfinite(values)):
        raise DissonanceContractError(f"Roughness model produced a non-finite {what}")
    if np.any(values < 0):
        raise DissonanceContractError(
            f"Roughness model produced a negative {what}: {float(values.min()):.6g}"
        )
    return values


class DissonanceModel:
    """Reduces a component set and a probe pitch to a single dissonance value.

    The value splits into two separable parts:

    * probe dissonance: the hypothetical note against every sounding
      component, O(n) per probe;
    * chord dissonance: the sounding components against each other,
      O(n^2) but computed once per frame, a constant offset for every probe.
    """

    def __init__(
        self,
        roughness_model: Optional[IRoughnessModel] = None,
        reference_amplitude: float = 1.0,
        probe_harmonics: int = 1,
        include_chord: bool = False,
    ) -> None:
        """Initialize the dissonance model.

        Args:
            roughness_model: Pairwise roughness formula (default: Plomp-Levelt)
            reference_amplitude: Amplitude of the hypothetical note, used for
                bare frequencies without their own reference amplitude
            probe_harmonics: Partials per probe note; partial ``k`` has
                amplitude ``reference / k``. 1 is a pure tone.
            include_chord: Add the components' own roughness to every probe
        """
        if reference_amplitude < 0:
            raise ConfigurationError(
                "reference_amplitude", "must be non-negative", reference_amplitude
            )
        if int(probe_harmonics) < 1:
            raise ConfigurationError("probe_harmonics", "must be at least 1", probe_harmonics)

        self._model = roughness_model or PlompLeveltModel()
        self._reference_amplitude = float(reference_amplitude)
        self._harmonic_numbers = np.arange(1, int(probe_harmonics) + 1, dtype=np.float64)
        self._include_chord = bool(include_chord)

    @property
    def roughness_model(self) -> IRoughnessModel:
        return self._model

    @property
    def reference_amplitude(self) -> float:
        return self._reference_amplitude

    @property
    def include_chord(self) -> bool:
        return self._include_chord

    @property
    def probe_harmonics(self) -> int:
        return int(self._harmonic_numbers.size)

    def roughness(self, f1: ArrayLike, a1: ArrayLike, f2: ArrayLike, a2: ArrayLike) -> ArrayLike:
        """Pairwise roughness of two components (delegates to the formula)."""
        return self._model.roughness(f1, a1, f2, a2)

    def probe_partials(
        self, frequency: float, reference_amplitude: Optional[float] = None
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Frequencies and amplitudes of the partials of one probe note."""
        ref = self._reference_amplitude if reference_amplitude is None else reference_amplitude
        return frequency * self._harmonic_numbers, ref / self._harmonic_numbers

    def probe_dissonance(
        self, components: ComponentSet, probe: Union[ProbePitch, float]
    ) -> float:
        """Roughness of one probe note against every sounding component."""
        frequency, ref = self._unpack_probe(probe)
        values = self.probe_dissonance_many(components, np.array([frequency]), np.array([ref]))
        return float(values[0])

    def probe_dissonance_many(
        self,
        components: ComponentSet,
        probe_frequencies: np.ndarray,
        reference_amplitudes: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """Vectorised probe dissonance for an array of probe frequencies.

        Args:
            components: The frame's component set
            probe_frequencies: Probe fundamentals in Hz, shape (p,)
            reference_amplitudes: Per-probe reference amplitude, shape (p,)

        Returns:
            Dissonance per probe, shape (p,)

        Raises:
            DissonanceContractError: If the formula yields an invalid value
        """
        probe_frequencies = np.asarray(probe_frequencies, dtype=np.float64)
        if components.is_empty or probe_frequencies.size == 0:
            return np.zeros(probe_frequencies.shape)

        if reference_amplitudes is None:
            reference_amplitudes = np.full(probe_frequencies.shape, self._reference_amplitude)

        # (p, h, 1) partials against (n,) components
        partial_freqs = probe_frequencies[:, None, None] * self._harmonic_numbers[None, :, None]
        partial_amps = (
            np.asarray(reference_amplitudes, dtype=np.float64)[:, None, None]
            / self._harmonic_numbers[None, :, None]
        )
        pairwise = self._model.roughness(
            partial_freqs, partial_amps, components.frequencies, components.amplitudes
        )
        values = np.sum(pairwise, axis=(1, 2))
        return check_dissonance(values, "probe dissonance")

    def chord_dissonance(self, components: ComponentSet) -> float:
        """Roughness of the sounding components among themselves.

        Each unordered pair is counted once.
        """
        n = len(components)
        if n < 2:
            return 0.0
        i, j = np.triu_indices(n, k=1)
        freqs = components.frequencies
        amps = components.amplitudes
        pairwise = self._model.roughness(freqs[i], amps[i], freqs[j], amps[j])
        return float(check_dissonance(np.sum(pairwise), "chord dissonance"))

    def aggregate(
        self,
        components: ComponentSet,
        probe: Union[ProbePitch, float],
        include_chord: Optional[bool] = None,
    ) -> float:
        """Total dissonance of playing ``probe`` over ``components``.

        Args:
            components: The frame's component set
            probe: Probe pitch, or a bare frequency in Hz
            include_chord: Override the model's chord-dissonance setting

        Returns:
            Non-negative dissonance, 0.0 for an empty component set
        """
        include_chord = self._include_chord if include_chord is None else include_chord
        total = self.probe_dissonance(components, probe)
        if include_chord:
            total += self.chord_dissonance(components)
        return total

    def _unpack_probe(self, probe: Union[ProbePitch, float]) -> Tuple[float, float]:
        if isinstance(probe, ProbePitch):
            return probe.frequency, probe.reference_amplitude
        return float(probe), self._reference_amplitude
