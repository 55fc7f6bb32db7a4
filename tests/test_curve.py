import unittest

import numpy as np
import pytest

from improve.analysis.curve import DissonanceCurveBuilder
from improve.analysis.dissonance import DissonanceModel
from improve.analysis.fretboard import Fretboard
from improve.analysis_types import ComponentSet, DissonanceCurve
from improve.core.errors import ConfigurationError, DissonanceContractError

from .fakes import ConstantRoughness

SEMITONE_SWEEP = 220.0 * 2.0 ** (np.arange(25) / 12.0)  # A3 to A5


class TestDissonanceCurveBuilder(unittest.TestCase):
    def setUp(self):
        self.builder = DissonanceCurveBuilder()
        self.components = ComponentSet([440.0, 440.5], [1.0, 1.0])

    def test_empty_components_give_zero_curve(self):
        curve = self.builder.build(ComponentSet.empty(), SEMITONE_SWEEP)
        self.assertEqual(len(curve), SEMITONE_SWEEP.size)
        np.testing.assert_array_equal(curve.values, np.zeros(SEMITONE_SWEEP.size))

    def test_deterministic(self):
        first = self.builder.build(self.components, SEMITONE_SWEEP)
        second = self.builder.build(self.components, SEMITONE_SWEEP)
        np.testing.assert_array_equal(first.values, second.values)

    def test_near_unison_pair(self):
        curve = self.builder.build(self.components, SEMITONE_SWEEP)

        # Roughness peaks a fraction of a critical band away from A4
        self.assertTrue(400.0 <= curve.argmax_frequency() <= 480.0)
        peak = curve.values.max()
        far = (SEMITONE_SWEEP <= 330.0) | (SEMITONE_SWEEP >= 560.0)
        self.assertTrue(np.all(curve.values[far] < 0.2 * peak))
        # The probe sitting on A4 is nearly consonant with it
        self.assertLess(curve.value_at(440.0), 0.2 * peak)

    def test_values_follow_probe_order(self):
        probes = SEMITONE_SWEEP[::-1].copy()
        reversed_curve = self.builder.build(self.components, probes)
        curve = self.builder.build(self.components, SEMITONE_SWEEP)
        np.testing.assert_allclose(reversed_curve.values, curve.values[::-1])

    def test_fretboard_probe_table(self):
        fretboard = Fretboard.from_preset("guitar")
        curve = self.builder.build(self.components, fretboard.probes, timestamp=2.5)
        self.assertEqual(len(curve), len(fretboard.probes))
        self.assertEqual(curve.timestamp, 2.5)
        self.assertTrue(np.all(curve.values >= 0.0))

    def test_chord_offset(self):
        chord_builder = DissonanceCurveBuilder(DissonanceModel(include_chord=True))
        components = ComponentSet([440.0, 466.16], [1.0, 1.0])
        plain = self.builder.build(components, SEMITONE_SWEEP)
        with_chord = chord_builder.build(components, SEMITONE_SWEEP)

        self.assertGreater(with_chord.chord_dissonance, 0.0)
        np.testing.assert_allclose(with_chord.values - plain.values, with_chord.chord_dissonance)

    def test_contract_error_propagates(self):
        builder = DissonanceCurveBuilder(DissonanceModel(roughness_model=ConstantRoughness(-0.5)))
        with self.assertRaises(DissonanceContractError):
            builder.build(self.components, SEMITONE_SWEEP)

    def test_invalid_probes(self):
        with self.assertRaises(ConfigurationError):
            self.builder.build(self.components, np.array([440.0, -1.0]))


class TestTemporalSmoothing(unittest.TestCase):
    def setUp(self):
        self.raw = DissonanceCurveBuilder()
        self.smoothed = DissonanceCurveBuilder(half_life=1.0)
        self.first = ComponentSet([440.0], [1.0])
        self.second = ComponentSet([523.25], [1.0])

    def test_first_frame_is_raw(self):
        np.testing.assert_array_equal(
            self.smoothed.build(self.first, SEMITONE_SWEEP).values,
            self.raw.build(self.first, SEMITONE_SWEEP).values,
        )

    def test_exponential_decay(self):
        previous = self.smoothed.build(self.first, SEMITONE_SWEEP, timestamp=0.0)
        current = self.smoothed.build(self.second, SEMITONE_SWEEP, previous=previous, timestamp=1.0)

        weight = np.exp(-1.0)
        expected = weight * previous.values + (1 - weight) * self.raw.build(self.second, SEMITONE_SWEEP).values
        np.testing.assert_allclose(current.values, expected)

    def test_previous_ignored_without_half_life(self):
        previous = self.raw.build(self.first, SEMITONE_SWEEP, timestamp=0.0)
        current = self.raw.build(self.second, SEMITONE_SWEEP, previous=previous, timestamp=0.1)
        np.testing.assert_array_equal(current.values, self.raw.build(self.second, SEMITONE_SWEEP).values)

    def test_untimed_frames_advance_by_frame_period(self):
        builder = DissonanceCurveBuilder(half_life=0.5, frame_period=0.1)
        first = builder.build(self.first, SEMITONE_SWEEP)
        raw_second = self.raw.build(self.second, SEMITONE_SWEEP).values

        curve = first
        for _ in range(50):
            curve = builder.build(self.second, SEMITONE_SWEEP, previous=curve)

        self.assertAlmostEqual(curve.timestamp, 5.0)
        self.assertGreater(np.abs(curve.values - first.values).max(), 0.0)
        np.testing.assert_allclose(curve.values, raw_second, atol=1e-4)

    def test_untimed_smoothing_without_frame_period(self):
        previous = self.smoothed.build(self.first, SEMITONE_SWEEP)
        with self.assertRaises(ValueError):
            self.smoothed.build(self.second, SEMITONE_SWEEP, previous=previous)

    def test_mismatched_previous_is_ignored(self):
        previous = DissonanceCurve.zeros(np.array([100.0, 200.0]))
        current = self.smoothed.build(self.second, SEMITONE_SWEEP, previous=previous, timestamp=1.0)
        np.testing.assert_array_equal(current.values, self.raw.build(self.second, SEMITONE_SWEEP).values)


def test_octave_blending():
    probes = np.array([220.0, 440.0, 880.0])
    components = ComponentSet([450.0], [1.0])
    raw = DissonanceCurveBuilder().build(components, probes).values
    blended = DissonanceCurveBuilder(octave_weight=0.5).build(components, probes).values

    assert blended[0] == pytest.approx(0.5 * raw[0] + 0.5 * raw[1])
    assert blended[1] == pytest.approx(0.5 * raw[1] + 0.5 * (raw[0] + raw[2]) / 2)
    assert blended[2] == pytest.approx(0.5 * raw[2] + 0.5 * raw[1])


def test_worker_pool_matches_inline():
    rng = np.random.default_rng(5)
    components = ComponentSet(np.sort(rng.uniform(80, 2000, 10)), rng.uniform(0.1, 1.0, 10))
    probes = Fretboard.from_preset("guitar").probes

    inline = DissonanceCurveBuilder().build(components, probes)
    pooled_builder = DissonanceCurveBuilder(workers=4)
    try:
        pooled = pooled_builder.build(components, probes)
    finally:
        pooled_builder.close()
    np.testing.assert_allclose(pooled.values, inline.values)


@pytest.mark.parametrize(
    "kwargs",
    [{"half_life": 0.0}, {"half_life": -1.0}, {"octave_weight": 1.5}, {"workers": -1}, {"frame_period": 0.0}],
)
def test_invalid_configuration(kwargs):
    with pytest.raises(ConfigurationError):
        DissonanceCurveBuilder(**kwargs)
