"""Frequency extraction: PCM frame -> weighted frequency components."""

from __future__ import annotations

from bisect import bisect_left, insort
from typing import ClassVar, List, Optional

import numpy as np

from ..analysis_types import ComponentSet
from ..core.errors import ConfigurationError, FrameError
from ..core.interfaces import ISpectralTransform
from ..logger import get_logger

logger = get_logger(__name__)


def a_weighting_gain(frequencies: np.ndarray) -> np.ndarray:
    """Linear A-weighting gain for each frequency (1.0 at 1 kHz).

    Args:
        frequencies: Frequencies in Hz

    Returns:
        Gain per frequency, same shape as the input
    """
    c1 = 12194.217**2
    c2 = 20.598997**2
    c3 = 107.65265**2
    c4 = 737.86223**2
    f2 = np.asarray(frequencies, dtype=np.float64) ** 2
    num = c1 * f2**2
    den = (f2 + c2) * np.sqrt((f2 + c3) * (f2 + c4)) * (f2 + c1)
    return 1.2589 * num / den


class NumpySpectralTransform(ISpectralTransform):
    """Hann-windowed real FFT, optionally zero padded.

    Magnitudes are scaled so that a full-scale sine centred on a bin reads
    its own amplitude.
    """

    def __init__(self, frame_size: int, sample_rate: int, zero_padding: int = 1):
        self._frame_size = int(frame_size)
        self._sample_rate = int(sample_rate)
        self._n_fft = self._frame_size * int(zero_padding)
        self._window = np.hanning(self._frame_size)
        self._scale = 2.0 / self._window.sum()

    def transform(self, frame: np.ndarray) -> np.ndarray:
        spectrum = np.fft.rfft(frame * self._window, n=self._n_fft)
        # Drop the Nyquist bin: n_fft / 2 usable bins
        return np.abs(spectrum[: self.bin_count]) * self._scale

    @property
    def bin_count(self) -> int:
        return self._n_fft // 2

    @property
    def bin_width(self) -> float:
        return self._sample_rate / self._n_fft


class FrequencyExtractor:
    """Turns fixed-size PCM frames into component sets.

    The extractor is configured once per session; the frame size and
    sample rate never change afterwards. A frame of the wrong size is a
    transient ``FrameError``, everything else about the configuration is
    checked in the constructor.
    """

    NORMALIZATIONS: ClassVar[List[str]] = ["peak", "sum", "none"]
    MIN_FRAME_SIZE: ClassVar[int] = 16

    def __init__(
        self,
        sample_rate: int,
        frame_size: int,
        discard_ratio: float = 0.1,
        zero_padding: int = 1,
        a_weighting: bool = False,
        min_frequency: float = 20.0,
        max_frequency: Optional[float] = None,
        max_components: Optional[int] = None,
        min_signal: float = 0.0,
        noise_profile_frames: int = 0,
        peaks_only: bool = True,
        normalization: str = "peak",
        transform: Optional[ISpectralTransform] = None,
    ) -> None:
        """Initialize the extractor.

        Args:
            sample_rate: Capture sample rate in Hz
            frame_size: Samples per frame, fixed for the session
            discard_ratio: Bins quieter than this fraction of the loudest bin are dropped
            zero_padding: FFT length multiplier, refines the bin grid
            a_weighting: Apply the A-weighting curve to bin amplitudes
            min_frequency: Lowest frequency kept, in Hz
            max_frequency: Highest frequency kept, in Hz (default: Nyquist)
            max_components: Keep at most this many of the loudest components
            min_signal: Frames with an RMS level below this are silence
            noise_profile_frames: Number of initial frames averaged into a noise floor
            peaks_only: Keep only local maxima of the spectrum
            normalization: 'peak' (loudest component is 1.0), 'sum' (amplitudes sum to 1.0) or 'none'
            transform: Spectral transform, defaults to a Hann-windowed numpy FFT

        Raises:
            ConfigurationError: If any parameter is invalid
        """
        if not isinstance(sample_rate, (int, np.integer)) or sample_rate <= 0:
            raise ConfigurationError("sample_rate", "must be a positive integer", sample_rate)
        if (
            not isinstance(frame_size, (int, np.integer))
            or frame_size < self.MIN_FRAME_SIZE
            or frame_size % 2
        ):
            raise ConfigurationError(
                "frame_size",
                f"must be an even integer of at least {self.MIN_FRAME_SIZE}",
                frame_size,
            )
        if not 0.0 <= discard_ratio <= 1.0:
            raise ConfigurationError("discard_ratio", "must be within [0, 1]", discard_ratio)
        if int(zero_padding) < 1:
            raise ConfigurationError("zero_padding", "must be at least 1", zero_padding)
        nyquist = sample_rate / 2.0
        max_frequency = nyquist if max_frequency is None else float(max_frequency)
        if not 0.0 <= min_frequency < max_frequency <= nyquist:
            raise ConfigurationError(
                "min_frequency",
                f"band [{min_frequency}, {max_frequency}] Hz must lie within [0, {nyquist}] Hz",
                min_frequency,
            )
        if max_components is not None and max_components < 1:
            raise ConfigurationError("max_components", "must be at least 1", max_components)
        if min_signal < 0:
            raise ConfigurationError("min_signal", "must be non-negative", min_signal)
        if noise_profile_frames < 0:
            raise ConfigurationError(
                "noise_profile_frames", "must be non-negative", noise_profile_frames
            )
        if normalization not in self.NORMALIZATIONS:
            raise ConfigurationError(
                "normalization", f"must be one of {self.NORMALIZATIONS}", normalization
            )

        self._sample_rate = int(sample_rate)
        self._frame_size = int(frame_size)
        self._discard_ratio = float(discard_ratio)
        self._min_frequency = float(min_frequency)
        self._max_frequency = max_frequency
        self._max_components = max_components
        self._min_signal = float(min_signal)
        self._peaks_only = bool(peaks_only)
        self._normalization = normalization
        self._transform = transform or NumpySpectralTransform(
            self._frame_size, self._sample_rate, int(zero_padding)
        )

        # Bin frequencies and per-bin gain are fixed for the session
        self._bin_freqs = np.arange(self._transform.bin_count) * self._transform.bin_width
        self._band = (
            (self._bin_freqs > 0)
            & (self._bin_freqs >= self._min_frequency)
            & (self._bin_freqs <= self._max_frequency)
        )
        gain = a_weighting_gain(self._bin_freqs) if a_weighting else np.ones_like(self._bin_freqs)
        gain[~self._band] = 0.0
        self._gain = gain

        # Resolution of the unpadded transform, the minimum component spacing
        self._resolution = self._sample_rate / self._frame_size

        self._noise_profile_frames = int(noise_profile_frames)
        self._noise_sum = np.zeros_like(self._bin_freqs)
        self._noise_seen = 0
        self._noise_floor: Optional[np.ndarray] = None

        logger.info(
            f"Initialized FrequencyExtractor: {self._sample_rate}Hz, frame={self._frame_size}, "
            f"resolution={self._resolution:.2f}Hz, discard_ratio={self._discard_ratio}"
        )

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def frame_size(self) -> int:
        return self._frame_size

    @property
    def resolution(self) -> float:
        """Minimum spacing between returned components, in Hz."""
        return self._resolution

    @property
    def discard_ratio(self) -> float:
        return self._discard_ratio

    @property
    def calibrating(self) -> bool:
        """True while initial frames are still being averaged into the noise floor."""
        return self._noise_seen < self._noise_profile_frames

    def extract(self, frame: np.ndarray) -> ComponentSet:
        """Extract the weighted frequency components of one frame.

        Args:
            frame: Mono PCM samples, exactly ``frame_size`` of them

        Returns:
            The frame's component set, empty for silence

        Raises:
            FrameError: If the frame has the wrong size or non-finite samples
        """
        samples = np.asarray(frame, dtype=np.float64)
        if samples.ndim != 1 or samples.size != self._frame_size:
            raise FrameError(
                f"Expected {self._frame_size} samples, got shape {samples.shape}",
                frame_size=int(samples.size),
            )
        if not np.all(np.isfinite(samples)):
            raise FrameError("Frame contains non-finite samples", self._frame_size)

        rms = float(np.sqrt(np.mean(samples**2)))
        if rms < self._min_signal or rms == 0.0:
            logger.debug(f"Silent frame, RMS {rms:.5f}")
            return ComponentSet.empty()

        magnitudes = self._transform.transform(samples) * self._gain

        if self.calibrating:
            self._add_noise_frame(magnitudes)
            return ComponentSet.empty()
        if self._noise_floor is not None:
            magnitudes = np.clip(magnitudes - self._noise_floor, 0.0, None)

        return self.components_from_spectrum(magnitudes)

    def components_from_spectrum(self, magnitudes: np.ndarray) -> ComponentSet:
        """Threshold, peak-pick and merge one gain-adjusted magnitude spectrum."""
        peak = float(magnitudes.max()) if magnitudes.size else 0.0
        if peak <= 0.0:
            return ComponentSet.empty()

        keep = magnitudes >= self._discard_ratio * peak
        keep &= magnitudes > 0.0
        if self._peaks_only:
            keep &= self._local_maxima(magnitudes)

        candidates = np.flatnonzero(keep)
        indices = self._merge_close_bins(candidates, magnitudes)
        if indices.size == 0:
            return ComponentSet.empty()

        amplitudes = magnitudes[indices]
        if self._normalization == "peak":
            amplitudes = amplitudes / amplitudes.max()
        elif self._normalization == "sum":
            amplitudes = amplitudes / amplitudes.sum()

        components = ComponentSet(self._bin_freqs[indices], amplitudes)
        if self._max_components is not None:
            components = components.strongest(self._max_components)

        logger.debug(f"Extracted {len(components)} components from {candidates.size} candidates")
        return components

    def reset_noise_profile(self) -> None:
        """Discard the noise floor and start collecting a new one."""
        self._noise_sum = np.zeros_like(self._bin_freqs)
        self._noise_seen = 0
        self._noise_floor = None

    def _add_noise_frame(self, magnitudes: np.ndarray) -> None:
        self._noise_sum += magnitudes
        self._noise_seen += 1
        if not self.calibrating:
            self._noise_floor = self._noise_sum / self._noise_seen
            logger.info(f"Noise profile captured from {self._noise_seen} frames")

    @staticmethod
    def _local_maxima(magnitudes: np.ndarray) -> np.ndarray:
        padded = np.concatenate(([-np.inf], magnitudes, [-np.inf]))
        # Strictly above the left neighbour so a plateau yields one peak
        return (padded[1:-1] > padded[:-2]) & (padded[1:-1] >= padded[2:])

    def _merge_close_bins(self, candidates: np.ndarray, magnitudes: np.ndarray) -> np.ndarray:
        """Keep the louder of any two candidates closer than one resolution step."""
        if candidates.size < 2:
            return candidates

        min_spacing = self._resolution * (1.0 - 1e-9)
        order = candidates[np.argsort(magnitudes[candidates], kind="stable")[::-1]]
        accepted: List[float] = []
        kept: List[int] = []
        for idx in order:
            freq = float(self._bin_freqs[idx])
            pos = bisect_left(accepted, freq)
            if pos > 0 and freq - accepted[pos - 1] < min_spacing:
                continue
            if pos < len(accepted) and accepted[pos] - freq < min_spacing:
                continue
            insort(accepted, freq)
            kept.append(int(idx))
        return np.array(sorted(kept), dtype=np.int64)
