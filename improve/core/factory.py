"""Factory for creating ImproVe components from validated settings."""

from typing import Callable, Dict, Optional, Type

from ..analysis.curve import DissonanceCurveBuilder
from ..analysis.dissonance import ROUGHNESS_MODELS, DissonanceModel
from ..analysis.fretboard import Fretboard, FretboardMapper
from ..analysis.pipeline import PipelineDriver
from ..analysis.spectrum import FrequencyExtractor
from ..logger import get_logger
from ..note_utils import Notation
from ..services.audio_providers import (
    LiveAudioProvider,
    WavFileAudioProvider,
    resolve_input_device,
)
from ..services.interfaces import IAudioProvider, IDisplay
from ..ui.pygame_display import PygameFretboardUI
from ..ui.terminal import TerminalFretboard
from .config import AnalysisSettings, ConfigManager
from .errors import ConfigurationError
from .events import PipelineEvents
from .interfaces import IRoughnessModel

logger = get_logger(__name__)


class ComponentFactory:
    """Factory for creating ImproVe components."""

    def __init__(
        self,
        settings: Optional[AnalysisSettings] = None,
        config_manager: Optional[ConfigManager] = None,
    ):
        """Initialize the component factory.

        Args:
            settings: Validated settings, or None to read them from ``config_manager``
            config_manager: Configuration manager, or None to create a default one
        """
        if settings is None:
            settings = AnalysisSettings.from_config(config_manager or ConfigManager())
        self.settings = settings

        # Register default component implementations
        self.roughness_model_classes: Dict[str, Type[IRoughnessModel]] = dict(ROUGHNESS_MODELS)

        self.display_classes: Dict[str, Callable[..., IDisplay]] = {
            "terminal": TerminalFretboard,
            "pygame": PygameFretboardUI,
        }

        self.audio_provider_classes: Dict[str, Callable[..., IAudioProvider]] = {
            "live": LiveAudioProvider,
            "file": WavFileAudioProvider,
        }

    def create_roughness_model(self, implementation: Optional[str] = None, **kwargs) -> IRoughnessModel:
        """Create a pairwise roughness model.

        Args:
            implementation: Registered model name, default from the settings
            **kwargs: Coefficients overriding the settings' model parameters

        Raises:
            ConfigurationError: If the model is unknown or a coefficient is invalid
        """
        implementation = implementation or self.settings.model
        if implementation not in self.roughness_model_classes:
            raise ConfigurationError(
                "model",
                f"unknown roughness model, expected one of {sorted(self.roughness_model_classes)}",
                implementation,
            )

        params = dict(self.settings.model_params) if implementation == self.settings.model else {}
        params.update(kwargs)

        cls = self.roughness_model_classes[implementation]
        try:
            instance = cls(**params)
        except TypeError as e:
            raise ConfigurationError("model", f"invalid coefficients {params}: {e}", implementation) from e

        logger.info(f"Created roughness model: {instance!r}")
        return instance

    def create_dissonance_model(self, **kwargs) -> DissonanceModel:
        config = {
            "roughness_model": self.create_roughness_model(),
            "reference_amplitude": self.settings.reference_amplitude,
            "probe_harmonics": self.settings.probe_harmonics,
            "include_chord": self.settings.include_chord_dissonance,
        }
        config.update(kwargs)
        return DissonanceModel(**config)

    def create_extractor(self, sample_rate: Optional[int] = None, **kwargs) -> FrequencyExtractor:
        """Create a frequency extractor.

        Args:
            sample_rate: Actual capture rate, overriding the configured one
            **kwargs: Additional parameters to pass to the constructor
        """
        s = self.settings
        config = {
            "sample_rate": sample_rate or s.sample_rate,
            "frame_size": s.frame_size,
            "discard_ratio": s.discard_ratio,
            "zero_padding": s.zero_padding,
            "a_weighting": s.a_weighting,
            "min_frequency": s.min_frequency,
            "max_frequency": s.max_frequency,
            "max_components": s.max_components,
            "min_signal": s.min_signal,
            "noise_profile_frames": s.noise_profile_frames,
        }
        if sample_rate and s.max_frequency is not None:
            config["max_frequency"] = min(s.max_frequency, sample_rate / 2.0)
        config.update(kwargs)
        return FrequencyExtractor(**config)

    def create_curve_builder(self, sample_rate: Optional[int] = None, **kwargs) -> DissonanceCurveBuilder:
        s = self.settings
        hop = s.hop_size or s.frame_size
        config = {
            "frame_period": hop / float(sample_rate or s.sample_rate),
            "model": self.create_dissonance_model(),
            "half_life": s.half_life,
            "octave_weight": s.octave_weight,
            "workers": s.workers,
        }
        config.update(kwargs)
        return DissonanceCurveBuilder(**config)

    def create_fretboard(self) -> Fretboard:
        s = self.settings
        fretboard = Fretboard.from_preset(
            s.preset,
            fret_count=s.fret_count,
            tuning=s.tuning,
            divisions_per_octave=s.divisions_per_octave,
            reference_frequency=s.reference_frequency,
        )
        logger.info(f"Created fretboard: {fretboard!r}")
        return fretboard

    def create_mapper(self) -> FretboardMapper:
        s = self.settings
        return FretboardMapper(
            scale=s.scale,
            invert=s.invert,
            notation=Notation(s.notation),
            use_flats=s.use_flats,
        )

    def create_display(self, implementation: Optional[str] = None, **kwargs) -> IDisplay:
        """Create a fretboard display.

        Raises:
            ConfigurationError: If the backend is not registered
        """
        implementation = implementation or self.settings.backend
        if implementation not in self.display_classes:
            raise ConfigurationError(
                "backend", f"unknown display, expected one of {sorted(self.display_classes)}", implementation
            )
        if implementation == "terminal":
            kwargs.setdefault("clear", self.settings.clear)

        instance = self.display_classes[implementation](**kwargs)
        logger.info(f"Created display: {implementation}")
        return instance

    def create_audio_provider(self, implementation: str = "live", **kwargs) -> IAudioProvider:
        """Create a capture provider.

        Args:
            implementation: 'live' or 'file'
            **kwargs: Additional parameters to pass to the constructor ('file_path' for files)

        Raises:
            ConfigurationError: If the provider is not registered or the device is unknown
        """
        if implementation not in self.audio_provider_classes:
            raise ConfigurationError(
                "provider",
                f"unknown audio provider, expected one of {sorted(self.audio_provider_classes)}",
                implementation,
            )

        s = self.settings
        if implementation == "live":
            config = {
                "device_id": resolve_input_device(s.device),
                "sample_rate": s.sample_rate,
                "channels": s.channels,
                "chunk_size": s.chunk_size,
            }
        else:
            config = {"chunk_size": s.chunk_size}
        config.update(kwargs)

        instance = self.audio_provider_classes[implementation](**config)
        logger.info(f"Created audio provider: {implementation}")
        return instance

    def create_driver(
        self,
        sample_rate: Optional[int] = None,
        display: Optional[IDisplay] = None,
        events: Optional[PipelineEvents] = None,
    ) -> PipelineDriver:
        """Wire extractor, curve builder, fretboard and mapper into a driver."""
        return PipelineDriver(
            extractor=self.create_extractor(sample_rate),
            builder=self.create_curve_builder(sample_rate),
            fretboard=self.create_fretboard(),
            mapper=self.create_mapper(),
            display=display.show if display is not None else None,
            skip_frames=self.settings.skip_frames,
            queue_capacity=self.settings.queue_capacity,
            events=events,
        )
