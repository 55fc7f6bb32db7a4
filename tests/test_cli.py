import time

import pytest
from click.testing import CliRunner

from improve.cli import main as cli_main
from improve.cli.main import cli
from improve.core.config import AnalysisSettings
from improve.core.factory import ComponentFactory

from .fakes import FakeAudioProvider, RecordingDisplay, sine


@pytest.fixture
def run(tmp_path, monkeypatch):
    # Keep log records out of the captured command output
    monkeypatch.setattr(cli_main, "setup_logging", lambda level=None: None)
    runner = CliRunner()

    def invoke(*args):
        return runner.invoke(cli, ["--config-dir", str(tmp_path), *args])

    return invoke


def test_curve_table(run):
    result = run("curve", "440", "440.5", "--instrument", "ukulele")
    assert result.exit_code == 0, result.output
    assert "A4" in result.output
    assert " Hz " in result.output


def test_curve_fretboard(run):
    result = run("curve", "220", "330", "--fretboard", "--notation", "romance")
    assert result.exit_code == 0, result.output
    assert "\x1b[30;48;2;" in result.output
    assert "Mi" in result.output


def test_curve_with_chord(run):
    result = run("curve", "440", "466.16", "--chord")
    assert result.exit_code == 0, result.output
    assert "chord dissonance" in result.output


def test_curve_amplitude_mismatch(run):
    result = run("curve", "440", "660", "--amplitudes", "1.0")
    assert result.exit_code == 2


def test_curve_rejects_duplicate_frequencies(run):
    result = run("curve", "440", "440")
    assert result.exit_code == 2


def test_configuration_error_is_reported(run):
    result = run("curve", "440", "--tuning", "E2,Q7")
    assert result.exit_code == 1
    assert "tuning" in result.output


def test_file_command_requires_existing_file(run, tmp_path):
    result = run("file", str(tmp_path / "missing.wav"))
    assert result.exit_code == 2


def test_session_ends_when_display_closes(monkeypatch):
    display = RecordingDisplay()
    display.close()
    factory = ComponentFactory(AnalysisSettings(frame_size=1024, sample_rate=8000))
    monkeypatch.setattr(factory, "create_display", lambda: display)
    provider = FakeAudioProvider([sine(440.0, 1024, 8000)])

    started = time.monotonic()
    cli_main._run_session(factory, provider, duration=5.0)

    assert time.monotonic() - started < 2.0
    assert provider.stopped
