"""Main entry point for the ImproVe CLI."""

import functools
import sys
import threading
import time
from typing import Optional

import click
import numpy as np

from ..analysis_types import ComponentSet
from ..core.config import AnalysisSettings, ConfigManager
from ..core.errors import ImproveError
from ..core.factory import ComponentFactory
from ..logger import get_logger
from ..logging_config import setup_logging
from ..services.analysis_service import DissonanceAnalysisService
from ..services.audio_providers import list_input_devices
from ..services.interfaces import IAudioProvider
from ..ui.pygame_display import PygameFretboardUI
from ..ui.terminal import TerminalFretboard

logger = get_logger(__name__)


def analysis_options(func):
    """Options shared by every command that builds a pipeline."""
    options = [
        click.option("--instrument", "preset", type=click.Choice(["guitar", "bass", "ukulele", "lattice"]),
                     help="Instrument preset"),
        click.option("--tuning", help="Comma-separated open strings, lowest first (e.g. D2,A2,D3,G3,B3,E4)"),
        click.option("--frets", "fret_count", type=int, help="Number of frets"),
        click.option("--model", type=click.Choice(["plomp_levelt", "vassilakis"]), help="Roughness model"),
        click.option("--chord/--no-chord", "include_chord_dissonance", default=None,
                     help="Add the sounding chord's own roughness"),
        click.option("--harmonics", "probe_harmonics", type=int, help="Partials per hypothetical note"),
        click.option("--half-life", type=float, help="Temporal smoothing half-life in seconds"),
        click.option("--notation", type=click.Choice(["english", "romance"]), help="Note names"),
        click.option("--scale", type=click.Choice(["linear", "sqrt", "log"]), help="Colour scale"),
        click.option("--invert/--no-invert", default=None, help="Report consonance values (colours still show dissonance)"),
        click.option("--display", "backend", type=click.Choice(["terminal", "pygame"]), help="Display backend"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _settings(ctx: click.Context, **overrides) -> AnalysisSettings:
    tuning = overrides.pop("tuning", None)
    if tuning:
        overrides["tuning"] = tuple(note.strip() for note in tuning.split(",") if note.strip())
    manager = ConfigManager(ctx.obj.get("config_dir"), persist=ctx.obj.get("config_dir") is not None)
    return AnalysisSettings.from_config(manager, **overrides)


def _handle_errors(func):
    """Report configuration and runtime errors as a clean CLI failure."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ImproveError as e:
            logger.debug("Command failed", exc_info=True)
            raise click.ClickException(str(e)) from e

    return wrapper


def _run_session(
    factory: ComponentFactory,
    provider: IAudioProvider,
    duration: Optional[float],
    finished: Optional[threading.Event] = None,
) -> None:
    """Run capture, analysis and display until interrupted, timed out or finished."""
    display = factory.create_display()
    driver = factory.create_driver(sample_rate=provider.sample_rate, display=display)
    service = DissonanceAnalysisService(
        provider, driver, factory.settings.frame_size, hop_size=factory.settings.hop_size
    )

    def should_continue() -> bool:
        if driver.error is not None or not display.is_open:
            return False
        if finished is not None and finished.is_set():
            return False
        return duration is None or time.monotonic() < deadline

    deadline = time.monotonic() + duration if duration is not None else None
    service.start()
    try:
        if isinstance(display, PygameFretboardUI):
            # pygame must own the main thread
            display.run(should_continue)
        else:
            while should_continue():
                time.sleep(0.05)
    except KeyboardInterrupt:
        click.echo("\nStopping...")
    finally:
        service.stop()
        display.close()

    stats = driver.stats
    logger.info(
        f"Processed {stats.frames_processed} of {stats.frames_received} frames "
        f"({stats.frames_dropped} dropped, {stats.frames_invalid} invalid)"
    )
    if driver.error is not None:
        raise click.ClickException(f"Analysis stopped: {driver.error}")


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--config-dir", type=click.Path(file_okay=False), help="Read and write configuration here")
@click.version_option(package_name="improve")
@click.pass_context
def cli(ctx, debug, config_dir):
    """ImproVe - see which notes would sound consonant with what is playing."""
    setup_logging("DEBUG" if debug else None)
    ctx.ensure_object(dict)
    ctx.obj["config_dir"] = config_dir


@cli.command()
@click.option("--device", help="Input device index or part of its name")
@click.option("--sample-rate", type=int, help="Capture sample rate in Hz")
@click.option("--frame-size", type=int, help="Samples per analysis frame")
@click.option("--duration", type=float, help="Stop after this many seconds")
@analysis_options
@click.pass_context
@_handle_errors
def live(ctx, device, sample_rate, frame_size, duration, **options):
    """Analyse the live input of an audio device."""
    settings = _settings(ctx, device=device, sample_rate=sample_rate, frame_size=frame_size, **options)
    factory = ComponentFactory(settings)
    provider = factory.create_audio_provider("live")
    _run_session(factory, provider, duration)


@cli.command(name="file")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--loop", is_flag=True, help="Restart at the end of the file")
@click.option("--gain", type=float, default=1.0, show_default=True, help="Linear input gain")
@click.option("--frame-size", type=int, help="Samples per analysis frame")
@click.option("--duration", type=float, help="Stop after this many seconds")
@analysis_options
@click.pass_context
@_handle_errors
def file_command(ctx, path, loop, gain, frame_size, duration, **options):
    """Analyse a sound file as if it were played live."""
    settings = _settings(ctx, frame_size=frame_size, **options)
    factory = ComponentFactory(settings)
    provider = factory.create_audio_provider("file", file_path=path, loop=loop, gain=gain)
    _run_session(factory, provider, duration, finished=None if loop else provider.finished)


@cli.command()
def devices():
    """List audio input devices."""
    try:
        found = list_input_devices()
    except OSError as e:
        raise click.ClickException(f"Cannot query audio devices: {e}") from e

    if not found:
        click.echo("No input devices found")
        return
    click.echo("Available input devices:")
    for device_id, device in found:
        click.echo(
            f"{device_id}: {device['name']} "
            f"(inputs: {device['max_input_channels']}, "
            f"sample rate: {device['default_samplerate']:.0f}Hz)"
        )


@cli.command()
@click.argument("frequencies", nargs=-1, type=float, required=True)
@click.option("--amplitudes", help="Comma-separated amplitudes, one per frequency (default: all 1.0)")
@click.option("--fretboard/--table", "as_fretboard", default=False, help="Draw the fretboard instead of a table")
@analysis_options
@click.pass_context
@_handle_errors
def curve(ctx, frequencies, amplitudes, as_fretboard, **options):
    """Print the dissonance of every probe against the given FREQUENCIES (Hz)."""
    if amplitudes:
        amps = [float(a) for a in amplitudes.split(",")]
        if len(amps) != len(frequencies):
            raise click.BadParameter("need one amplitude per frequency", param_hint="--amplitudes")
    else:
        amps = [1.0] * len(frequencies)

    factory = ComponentFactory(_settings(ctx, **options))
    try:
        components = ComponentSet(frequencies, amps)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="FREQUENCIES") from e
    builder = factory.create_curve_builder()
    fretboard = factory.create_fretboard()
    try:
        result = builder.build(components, fretboard.probes)
    finally:
        builder.close()

    if as_fretboard:
        grid = factory.create_mapper().map(result, fretboard, components)
        TerminalFretboard(stream=sys.stdout, clear=False).show(grid)
        return

    best = set(np.argsort(result.values)[:5].tolist())
    for i, (probe, value) in enumerate(zip(fretboard.probes, result.values)):
        marker = " *" if i in best else ""
        click.echo(f"{probe.label:>5} {probe.frequency:9.2f} Hz  {value:.6f}{marker}")
    if result.chord_dissonance:
        click.echo(f"chord dissonance: {result.chord_dissonance:.6f}")


def main(args=None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Command line arguments, or None to use sys.argv

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    try:
        cli.main(args=args, prog_name="improve", standalone_mode=False)
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except click.Abort:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
