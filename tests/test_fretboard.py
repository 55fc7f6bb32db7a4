import unittest

import numpy as np
import pytest

from improve.analysis.fretboard import INSTRUMENT_PRESETS, Fretboard, FretboardMapper
from improve.analysis_types import DissonanceCurve, FretPosition
from improve.core.errors import ConfigurationError
from improve.note_utils import Notation


class TestFretboard(unittest.TestCase):
    def setUp(self):
        self.guitar = Fretboard.from_preset("guitar")

    def test_guitar_geometry(self):
        self.assertEqual(self.guitar.string_count, 6)
        self.assertEqual(self.guitar.fret_count, 24)
        self.assertEqual(self.guitar.index.shape, (6, 25))
        # E2 to E4 + 24 frets, one probe per distinct pitch
        self.assertEqual(len(self.guitar.probes), 49)

    def test_probes_sorted_and_unique(self):
        freqs = self.guitar.probes.frequencies
        self.assertTrue(np.all(np.diff(freqs) > 0))
        self.assertAlmostEqual(freqs[0], 82.4069, places=3)

    def test_aliased_positions_share_a_probe(self):
        # Fifth fret of the low E is the open A string
        self.assertEqual(self.guitar.index[0, 5], self.guitar.index[1, 0])
        self.assertEqual(
            self.guitar.probe_for(FretPosition(0, 5)), self.guitar.probe_for(FretPosition(1, 0))
        )
        # Fourth fret of the G string is the open B string
        self.assertEqual(self.guitar.index[3, 4], self.guitar.index[4, 0])

        positions = self.guitar.positions_for_probe(int(self.guitar.index[1, 0]))
        self.assertIn(FretPosition(0, 5), positions)
        self.assertIn(FretPosition(1, 0), positions)

    def test_open_string_pitches(self):
        labels = [self.guitar.probe_for(FretPosition(s, 0)).label for s in range(6)]
        self.assertEqual(labels, ["E2", "A2", "D3", "G3", "B3", "E4"])

    def test_positions_cover_the_board(self):
        self.assertEqual(len(list(self.guitar.positions())), 6 * 25)

    def test_index_is_read_only(self):
        with self.assertRaises(ValueError):
            self.guitar.index[0, 0] = 3

    def test_labels(self):
        english = self.guitar.label_grid()
        self.assertEqual(english[0][0], "E")
        self.assertEqual(english[0][1], "F")
        romance = self.guitar.label_grid(Notation.ROMANCE)
        self.assertEqual(romance[1][0], "La")
        flats = self.guitar.label_grid(use_flats=True)
        self.assertEqual(flats[1][1], "Bb")

    def test_custom_tuning(self):
        drop_d = Fretboard.from_tuning(["D2", "A2", "D3", "G3", "B3", "E4"], fret_count=12)
        self.assertEqual(drop_d.probe_for(FretPosition(0, 0)).label, "D2")
        # Frequencies snap to the lattice
        detuned = Fretboard.from_tuning([83.0, 110.0], fret_count=0)
        self.assertEqual(detuned.probes[0].label, "E2")


@pytest.mark.parametrize("name", sorted(INSTRUMENT_PRESETS))
def test_presets(name):
    preset = INSTRUMENT_PRESETS[name]
    fretboard = Fretboard.from_preset(name)
    assert fretboard.string_count == len(preset.tuning)
    assert fretboard.fret_count == preset.fret_count
    assert fretboard.index.max() == len(fretboard.probes) - 1


def test_lattice_has_no_aliases():
    lattice = Fretboard.from_preset("lattice")
    assert len(lattice.probes) == 8 * 12
    assert lattice.probes[0].label == "C1"
    assert lattice.probes[-1].label == "B8"


@pytest.mark.parametrize(
    "kwargs, field",
    [
        ({"tuning": ["E2", "X9"], "fret_count": 12}, "tuning"),
        ({"tuning": [], "fret_count": 12}, "tuning"),
        ({"tuning": ["E2", -5.0], "fret_count": 12}, "tuning"),
        ({"tuning": ["E2"], "fret_count": 100}, "fret_count"),
        ({"tuning": ["E2"], "fret_count": -1}, "fret_count"),
        ({"tuning": ["E2"], "fret_count": 12, "divisions_per_octave": 0}, "divisions_per_octave"),
    ],
)
def test_invalid_geometry(kwargs, field):
    with pytest.raises(ConfigurationError) as excinfo:
        Fretboard.from_tuning(**kwargs)
    assert excinfo.value.field == field


def test_unknown_preset():
    with pytest.raises(ConfigurationError):
        Fretboard.from_preset("banjo")


class TestFretboardMapper(unittest.TestCase):
    def setUp(self):
        self.fretboard = Fretboard.from_preset("ukulele")
        n = len(self.fretboard.probes)
        self.curve = DissonanceCurve(
            self.fretboard.probes.frequencies.copy(), np.linspace(0.2, 1.4, n)
        )

    def test_range_is_unit_interval(self):
        grid = FretboardMapper().map(self.curve, self.fretboard)
        self.assertEqual(grid.shape, self.fretboard.index.shape)
        self.assertAlmostEqual(grid.values.min(), 0.0)
        self.assertAlmostEqual(grid.values.max(), 1.0)
        self.assertAlmostEqual(grid.raw_min, 0.2)
        self.assertAlmostEqual(grid.raw_max, 1.4)

    def test_aliases_get_the_same_value(self):
        grid = FretboardMapper().map(self.curve, self.fretboard)
        for probe_index in range(len(self.fretboard.probes)):
            positions = self.fretboard.positions_for_probe(probe_index)
            values = {grid.value(p) for p in positions}
            self.assertEqual(len(values), 1)

    def test_constant_curve_maps_to_zero(self):
        flat = DissonanceCurve(self.curve.probe_frequencies, np.full(len(self.curve), 0.7))
        grid = FretboardMapper().map(flat, self.fretboard)
        np.testing.assert_array_equal(grid.values, np.zeros(grid.shape))

    def test_inverted_grid_reports_consonance(self):
        plain = FretboardMapper().map(self.curve, self.fretboard)
        inverted = FretboardMapper(invert=True).map(self.curve, self.fretboard)
        self.assertFalse(plain.inverted)
        self.assertTrue(inverted.inverted)
        np.testing.assert_allclose(inverted.values, 1.0 - plain.values)
        np.testing.assert_allclose(inverted.dissonance_levels(), plain.values)

    def test_length_mismatch(self):
        short = DissonanceCurve(np.array([440.0]), np.array([1.0]))
        with self.assertRaises(ValueError):
            FretboardMapper().map(short, self.fretboard)

    def test_labels_attached(self):
        grid = FretboardMapper(notation=Notation.ROMANCE).map(self.curve, self.fretboard)
        self.assertEqual(grid.labels[0][0], "Sol")


@pytest.mark.parametrize(
    "scale, expected",
    [("linear", [0.0, 0.25, 1.0]), ("sqrt", [0.0, 0.5, 1.0]), ("log", [0.0, np.log10(3.25), 1.0])],
)
def test_scales(scale, expected):
    normalized, lo, hi = FretboardMapper(scale=scale).normalize(np.array([1.0, 2.0, 5.0]))
    np.testing.assert_allclose(normalized, expected)
    assert (lo, hi) == (1.0, 5.0)


def test_invert_and_fixed_range():
    mapper = FretboardMapper(invert=True, value_range=(0.0, 2.0))
    normalized, _, _ = mapper.normalize(np.array([0.0, 1.0, 4.0]))
    np.testing.assert_allclose(normalized, [1.0, 0.5, 0.0])


def test_invalid_mapper():
    with pytest.raises(ConfigurationError):
        FretboardMapper(scale="cubic")
    with pytest.raises(ConfigurationError):
        FretboardMapper(value_range=(2.0, 1.0))
