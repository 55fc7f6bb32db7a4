import unittest

import numpy as np
import pytest

from improve.analysis.spectrum import FrequencyExtractor, NumpySpectralTransform, a_weighting_gain
from improve.core.errors import ConfigurationError, FrameError

SAMPLE_RATE = 48000
FRAME_SIZE = 4096
BIN_WIDTH = SAMPLE_RATE / FRAME_SIZE  # 11.71875 Hz


def sine(frequency, amplitude=1.0, frame_size=FRAME_SIZE, sample_rate=SAMPLE_RATE):
    t = np.arange(frame_size) / sample_rate
    return amplitude * np.sin(2 * np.pi * frequency * t)


class TestFrequencyExtractor(unittest.TestCase):
    def setUp(self):
        self.extractor = FrequencyExtractor(SAMPLE_RATE, FRAME_SIZE, discard_ratio=0.5)

    def test_single_sine_gives_single_component(self):
        components = self.extractor.extract(sine(40 * BIN_WIDTH))

        self.assertEqual(len(components), 1)
        self.assertAlmostEqual(components.frequencies[0], 40 * BIN_WIDTH)
        self.assertAlmostEqual(components.amplitudes[0], 1.0)

    def test_sub_threshold_peaks_are_discarded(self):
        frame = sine(40 * BIN_WIDTH)
        for k in range(60, 160, 10):
            frame = frame + sine(k * BIN_WIDTH, amplitude=0.01)

        components = self.extractor.extract(frame)
        self.assertEqual(len(components), 1)
        self.assertAlmostEqual(components.frequencies[0], 40 * BIN_WIDTH)

    def test_discard_ratio_drops_quiet_peaks(self):
        frame = sine(40 * BIN_WIDTH) + sine(100 * BIN_WIDTH, amplitude=0.3)

        self.assertEqual(len(self.extractor.extract(frame)), 1)

        permissive = FrequencyExtractor(SAMPLE_RATE, FRAME_SIZE, discard_ratio=0.1)
        components = permissive.extract(frame)
        np.testing.assert_allclose(components.frequencies, [40 * BIN_WIDTH, 100 * BIN_WIDTH])
        self.assertAlmostEqual(components.amplitudes[0], 1.0)
        self.assertAlmostEqual(components.amplitudes[1], 0.3, delta=0.02)

    def test_silence_is_empty(self):
        self.assertTrue(self.extractor.extract(np.zeros(FRAME_SIZE)).is_empty)

    def test_min_signal_gate(self):
        gated = FrequencyExtractor(SAMPLE_RATE, FRAME_SIZE, min_signal=0.01)
        self.assertTrue(gated.extract(sine(440.0, amplitude=0.001)).is_empty)
        self.assertFalse(gated.extract(sine(440.0, amplitude=0.5)).is_empty)

    def test_wrong_frame_size(self):
        with self.assertRaises(FrameError):
            self.extractor.extract(np.zeros(FRAME_SIZE - 1))
        with self.assertRaises(FrameError):
            self.extractor.extract(np.zeros((2, FRAME_SIZE)))

    def test_non_finite_samples(self):
        frame = sine(440.0)
        frame[10] = np.nan
        with self.assertRaises(FrameError):
            self.extractor.extract(frame)

    def test_output_invariants(self):
        rng = np.random.default_rng(7)
        extractor = FrequencyExtractor(SAMPLE_RATE, FRAME_SIZE, discard_ratio=0.05, zero_padding=4)
        components = extractor.extract(rng.normal(size=FRAME_SIZE))

        self.assertFalse(components.is_empty)
        freqs = components.frequencies
        self.assertTrue(np.all(freqs > 0))
        self.assertTrue(np.all(components.amplitudes > 0))
        self.assertTrue(np.all(np.diff(freqs) > 0))
        # Zero padding refines the grid but not the spacing between components
        self.assertTrue(np.all(np.diff(freqs) >= extractor.resolution * (1 - 1e-9)))

    def test_max_components(self):
        rng = np.random.default_rng(3)
        extractor = FrequencyExtractor(SAMPLE_RATE, FRAME_SIZE, discard_ratio=0.0, max_components=5)
        components = extractor.extract(rng.normal(size=FRAME_SIZE))
        self.assertEqual(len(components), 5)

    def test_band_limits(self):
        extractor = FrequencyExtractor(
            SAMPLE_RATE, FRAME_SIZE, discard_ratio=0.01, min_frequency=200.0, max_frequency=1000.0
        )
        frame = sine(10 * BIN_WIDTH) + sine(50 * BIN_WIDTH) + sine(200 * BIN_WIDTH)
        components = extractor.extract(frame)
        np.testing.assert_allclose(components.frequencies, [50 * BIN_WIDTH])

    def test_noise_profile(self):
        extractor = FrequencyExtractor(SAMPLE_RATE, FRAME_SIZE, noise_profile_frames=2)
        hum = sine(5 * BIN_WIDTH, amplitude=0.2)

        self.assertTrue(extractor.calibrating)
        self.assertTrue(extractor.extract(hum).is_empty)
        self.assertTrue(extractor.extract(hum).is_empty)
        self.assertFalse(extractor.calibrating)

        # The hum alone is now below the floor
        self.assertTrue(extractor.extract(hum).is_empty)
        components = extractor.extract(hum + sine(40 * BIN_WIDTH))
        self.assertAlmostEqual(components.frequencies[0], 40 * BIN_WIDTH)

        extractor.reset_noise_profile()
        self.assertTrue(extractor.calibrating)

    def test_a_weighting_attenuates_low_frequencies(self):
        weighted = FrequencyExtractor(SAMPLE_RATE, FRAME_SIZE, discard_ratio=0.5, a_weighting=True)
        frame = sine(4 * BIN_WIDTH) + sine(85 * BIN_WIDTH, amplitude=0.8)
        components = weighted.extract(frame)
        # ~47 Hz is attenuated by over 20 dB, ~1 kHz is not
        np.testing.assert_allclose(components.frequencies, [85 * BIN_WIDTH])


@pytest.mark.parametrize(
    "kwargs, field",
    [
        ({"frame_size": 4095}, "frame_size"),
        ({"frame_size": 8}, "frame_size"),
        ({"sample_rate": 0}, "sample_rate"),
        ({"discard_ratio": 1.5}, "discard_ratio"),
        ({"zero_padding": 0}, "zero_padding"),
        ({"min_frequency": 30000.0}, "min_frequency"),
        ({"max_components": 0}, "max_components"),
        ({"normalization": "loudest"}, "normalization"),
    ],
)
def test_invalid_configuration(kwargs, field):
    params = {"sample_rate": SAMPLE_RATE, "frame_size": FRAME_SIZE}
    params.update(kwargs)
    with pytest.raises(ConfigurationError) as excinfo:
        FrequencyExtractor(**params)
    assert excinfo.value.field == field


def test_transform_scaling():
    transform = NumpySpectralTransform(FRAME_SIZE, SAMPLE_RATE, zero_padding=2)
    assert transform.bin_count == FRAME_SIZE
    assert transform.bin_width == pytest.approx(BIN_WIDTH / 2)

    magnitudes = transform.transform(sine(40 * BIN_WIDTH, amplitude=0.5))
    assert magnitudes.argmax() == 80
    assert magnitudes.max() == pytest.approx(0.5, rel=1e-3)


def test_a_weighting_reference_point():
    gains = a_weighting_gain(np.array([50.0, 1000.0, 10000.0]))
    assert gains[1] == pytest.approx(1.0, abs=0.01)
    assert gains[0] < 0.05
    assert gains[2] < 1.0


if __name__ == "__main__":
    unittest.main()
