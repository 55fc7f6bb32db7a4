import numpy as np
import pytest

from improve.analysis.dissonance import PlompLeveltModel, VassilakisModel
from improve.analysis_types import DissonanceCurve
from improve.core.config import AnalysisSettings
from improve.core.errors import ConfigurationError
from improve.core.factory import ComponentFactory
from improve.ui.terminal import TerminalFretboard

from .fakes import RecordingDisplay, sine


@pytest.fixture
def factory():
    return ComponentFactory(AnalysisSettings(frame_size=1024, sample_rate=8000, a_weighting=False))


def test_roughness_models(factory):
    assert isinstance(factory.create_roughness_model(), PlompLeveltModel)
    model = factory.create_roughness_model("vassilakis", s1=0.02)
    assert isinstance(model, VassilakisModel)
    assert model.s1 == 0.02


def test_model_parameters_from_settings():
    factory = ComponentFactory(AnalysisSettings(model="plomp_levelt", model_params={"d_star": 0.3}))
    assert factory.create_roughness_model().d_star == 0.3


@pytest.mark.parametrize(
    "kwargs", [{"implementation": "helmholtz"}, {"implementation": "plomp_levelt", "gamma": 1.0}]
)
def test_invalid_roughness_model(factory, kwargs):
    with pytest.raises(ConfigurationError):
        factory.create_roughness_model(**kwargs)


def test_dissonance_model_follows_settings():
    factory = ComponentFactory(AnalysisSettings(include_chord_dissonance=True, probe_harmonics=3))
    model = factory.create_dissonance_model()
    assert model.include_chord
    assert model.probe_harmonics == 3


def test_extractor_uses_capture_rate(factory):
    extractor = factory.create_extractor(sample_rate=16000)
    assert extractor.sample_rate == 16000
    assert extractor.frame_size == 1024


def test_curve_builder_frame_period_follows_hop():
    factory = ComponentFactory(AnalysisSettings(frame_size=1024, hop_size=256, sample_rate=8000, half_life=0.5))
    assert factory.create_curve_builder().frame_period == pytest.approx(256 / 8000)
    assert factory.create_curve_builder(sample_rate=16000).frame_period == pytest.approx(256 / 16000)


def test_fretboard_and_mapper():
    factory = ComponentFactory(AnalysisSettings(preset="bass", fret_count=12, notation="romance"))
    fretboard = factory.create_fretboard()
    assert (fretboard.string_count, fretboard.fret_count) == (4, 12)
    mapper = factory.create_mapper()
    curve_values = np.linspace(0, 1, len(fretboard.probes))
    grid = mapper.map(DissonanceCurve(fretboard.probes.frequencies.copy(), curve_values), fretboard)
    assert grid.labels[0][0] == "Mi"


def test_displays(factory):
    assert isinstance(factory.create_display("terminal"), TerminalFretboard)
    with pytest.raises(ConfigurationError):
        factory.create_display("hologram")


def test_unknown_audio_provider(factory):
    with pytest.raises(ConfigurationError):
        factory.create_audio_provider("microwave")


def test_driver_end_to_end(factory):
    display = RecordingDisplay()
    driver = factory.create_driver(display=display)
    driver.submit(sine(440.0, 1024, 8000), timestamp=0.0)
    grid = driver.run_once(timeout=0)
    driver.stop()

    assert display.grids[0] is grid
    assert grid.shape == (6, 25)

    # Unison with the sounding A4 (high E string, fret 5) is smoother than the semitone above it
    assert grid.values[5, 5] < grid.values[5, 6]
