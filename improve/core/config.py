"""Configuration management for ImproVe components."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple
import json
import os
from pathlib import Path

from ..logger import get_logger
from .errors import ConfigurationError

logger = get_logger(__name__)

DEFAULT_CONFIGS: Dict[str, Dict[str, Any]] = {
    "audio_input": {
        "sample_rate": 44100,
        "frame_size": 8192,
        "hop_size": None,
        "chunk_size": 1024,
        "channels": 1,
        "device": None,
    },
    "analysis": {
        "discard_ratio": 0.1,
        "zero_padding": 1,
        "a_weighting": True,
        "noise_profile_frames": 0,
        "min_frequency": 20.0,
        "max_frequency": None,
        "max_components": 64,
        "min_signal": 0.0,
        "skip_frames": True,
        "queue_capacity": 2,
        "include_chord_dissonance": False,
        "half_life": None,
        "octave_weight": 0.0,
        "workers": 0,
    },
    "dissonance": {
        "model": "plomp_levelt",
        "probe_harmonics": 1,
        "reference_amplitude": 1.0,
    },
    "instrument": {
        "preset": "guitar",
        "tuning": None,
        "fret_count": None,
        "divisions_per_octave": 12,
        "reference_frequency": 440.0,
    },
    "display": {
        "backend": "terminal",
        "notation": "english",
        "use_flats": False,
        "scale": "sqrt",
        "invert": False,
        "clear": True,
    },
}


class ConfigManager:
    """Configuration manager for ImproVe components."""

    def __init__(self, config_dir: Optional[str] = None, persist: bool = True):
        """Initialize the configuration manager.

        Args:
            config_dir: Directory to store configuration files, or None to use default
            persist: Write missing configuration files to disk
        """
        if config_dir is None:
            # Use ~/.config/improve by default
            home = os.path.expanduser("~")
            config_dir = os.path.join(home, ".config", "improve")

        self.config_dir = Path(config_dir)
        self.persist = persist
        if self.persist:
            self.config_dir.mkdir(parents=True, exist_ok=True)

        self.default_configs = {name: dict(values) for name, values in DEFAULT_CONFIGS.items()}

        # Load existing configurations or create default ones
        self.configs = {}
        for config_name, default_config in self.default_configs.items():
            self.configs[config_name] = self.load_config(config_name, default_config)

    def load_config(self, name: str, default_config: Dict[str, Any]) -> Dict[str, Any]:
        """Load configuration from file or create default.

        Args:
            name: Configuration name
            default_config: Default configuration to use if file doesn't exist

        Returns:
            Configuration dictionary

        Raises:
            ConfigurationError: If the file exists but is not valid JSON
        """
        config_file = self.config_dir / f"{name}.json"

        if config_file.exists():
            try:
                with open(config_file, "r") as f:
                    config = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Error loading configuration from {config_file}: {e}")
                raise ConfigurationError(name, f"cannot read {config_file}: {e}") from e
            if not isinstance(config, dict):
                raise ConfigurationError(name, f"{config_file} must hold a JSON object", config)
            logger.info(f"Loaded configuration from {config_file}")

            # Ensure all default keys are present
            for key, value in default_config.items():
                if key not in config:
                    config[key] = value

            return config

        # Create default configuration
        config = default_config.copy()
        if self.persist:
            self.save_config(name, config)
        return config

    def save_config(self, name: str, config: Dict[str, Any]) -> bool:
        """Save configuration to file.

        Args:
            name: Configuration name
            config: Configuration dictionary

        Returns:
            True if saved successfully, False otherwise
        """
        config_file = self.config_dir / f"{name}.json"

        try:
            with open(config_file, "w") as f:
                json.dump(config, f, indent=2)
            logger.info(f"Saved configuration to {config_file}")
            return True
        except OSError as e:
            logger.error(f"Error saving configuration to {config_file}: {e}")
            return False

    def get_config(self, name: str) -> Dict[str, Any]:
        """Get configuration by name.

        Args:
            name: Configuration name

        Returns:
            Configuration dictionary
        """
        return self.configs.get(name, {}).copy()

    def update_config(self, name: str, updates: Dict[str, Any]) -> bool:
        """Update configuration and save to file.

        Args:
            name: Configuration name
            updates: Dictionary of updates to apply

        Returns:
            True if updated and saved successfully, False otherwise
        """
        if name not in self.configs:
            logger.error(f"Unknown configuration: {name}")
            return False

        self.configs[name].update(updates)

        if not self.persist:
            return True
        return self.save_config(name, self.configs[name])

    def reset_config(self, name: str) -> bool:
        """Reset configuration to default.

        Args:
            name: Configuration name

        Returns:
            True if reset successfully, False otherwise
        """
        if name not in self.default_configs:
            logger.error(f"Unknown configuration: {name}")
            return False

        self.configs[name] = self.default_configs[name].copy()

        if not self.persist:
            return True
        return self.save_config(name, self.configs[name])


def _require(condition: bool, field_name: str, message: str, value: Any) -> None:
    if not condition:
        raise ConfigurationError(field_name, message, value)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class AnalysisSettings:
    """Validated settings for one analysis session.

    Built once at startup; every invalid field raises ``ConfigurationError``
    naming the field.
    """

    sample_rate: int = 44100
    frame_size: int = 8192
    hop_size: Optional[int] = None
    chunk_size: int = 1024
    channels: int = 1
    device: Optional[Any] = None

    discard_ratio: float = 0.1
    zero_padding: int = 1
    a_weighting: bool = True
    noise_profile_frames: int = 0
    min_frequency: float = 20.0
    max_frequency: Optional[float] = None
    max_components: Optional[int] = 64
    min_signal: float = 0.0
    skip_frames: bool = True
    queue_capacity: int = 2
    include_chord_dissonance: bool = False
    half_life: Optional[float] = None
    octave_weight: float = 0.0
    workers: int = 0

    model: str = "plomp_levelt"
    model_params: Dict[str, float] = field(default_factory=dict)
    probe_harmonics: int = 1
    reference_amplitude: float = 1.0

    preset: str = "guitar"
    tuning: Optional[Tuple[str, ...]] = None
    fret_count: Optional[int] = None
    divisions_per_octave: int = 12
    reference_frequency: float = 440.0

    backend: str = "terminal"
    notation: str = "english"
    use_flats: bool = False
    scale: str = "sqrt"
    invert: bool = False
    clear: bool = True

    def __post_init__(self):
        self.validate()

    @classmethod
    def from_config(cls, manager: ConfigManager, **overrides) -> "AnalysisSettings":
        """Collect every configuration section into one settings object.

        Args:
            manager: Source of the configuration sections
            **overrides: Values taking precedence over the configuration (CLI options);
                None means "not given"
        """
        values: Dict[str, Any] = {}
        known = set(cls.__dataclass_fields__)
        for section in ("audio_input", "analysis", "instrument", "display"):
            for key, value in manager.get_config(section).items():
                if key in known:
                    values[key] = value

        dissonance = manager.get_config("dissonance")
        values["model"] = dissonance.pop("model", "plomp_levelt")
        values["probe_harmonics"] = dissonance.pop("probe_harmonics", 1)
        values["reference_amplitude"] = dissonance.pop("reference_amplitude", 1.0)
        values["model_params"] = dissonance

        values.update({key: value for key, value in overrides.items() if value is not None})
        if values.get("tuning") is not None:
            values["tuning"] = tuple(values["tuning"])
        return cls(**values)

    def with_overrides(self, **overrides) -> "AnalysisSettings":
        """Copy with the given (non-None) fields replaced, validated again."""
        return replace(self, **{key: value for key, value in overrides.items() if value is not None})

    def validate(self) -> None:
        """Check every field.

        Raises:
            ConfigurationError: Naming the first invalid field
        """
        _require(_is_int(self.sample_rate) and self.sample_rate > 0,
                 "sample_rate", "must be a positive integer", self.sample_rate)
        _require(_is_int(self.frame_size) and self.frame_size >= 16 and self.frame_size % 2 == 0,
                 "frame_size", "must be an even integer of at least 16", self.frame_size)
        _require(self.hop_size is None or (_is_int(self.hop_size) and 1 <= self.hop_size <= self.frame_size),
                 "hop_size", "must be within [1, frame_size]", self.hop_size)
        _require(_is_int(self.chunk_size) and self.chunk_size > 0,
                 "chunk_size", "must be a positive integer", self.chunk_size)
        _require(_is_int(self.channels) and self.channels > 0,
                 "channels", "must be a positive integer", self.channels)

        _require(_is_number(self.discard_ratio) and 0.0 <= self.discard_ratio <= 1.0,
                 "discard_ratio", "must be within [0, 1]", self.discard_ratio)
        _require(_is_int(self.zero_padding) and self.zero_padding >= 1,
                 "zero_padding", "must be an integer of at least 1", self.zero_padding)
        _require(_is_int(self.noise_profile_frames) and self.noise_profile_frames >= 0,
                 "noise_profile_frames", "must be a non-negative integer", self.noise_profile_frames)
        nyquist = self.sample_rate / 2.0
        _require(_is_number(self.min_frequency) and 0.0 <= self.min_frequency < nyquist,
                 "min_frequency", f"must be within [0, {nyquist})", self.min_frequency)
        _require(self.max_frequency is None
                 or (_is_number(self.max_frequency) and self.min_frequency < self.max_frequency <= nyquist),
                 "max_frequency", f"must be within (min_frequency, {nyquist}]", self.max_frequency)
        _require(self.max_components is None or (_is_int(self.max_components) and self.max_components >= 1),
                 "max_components", "must be a positive integer or unset", self.max_components)
        _require(_is_number(self.min_signal) and self.min_signal >= 0,
                 "min_signal", "must be non-negative", self.min_signal)
        _require(_is_int(self.queue_capacity) and self.queue_capacity >= 1,
                 "queue_capacity", "must be a positive integer", self.queue_capacity)
        _require(self.half_life is None or (_is_number(self.half_life) and self.half_life > 0),
                 "half_life", "must be positive or unset", self.half_life)
        _require(_is_number(self.octave_weight) and 0.0 <= self.octave_weight <= 1.0,
                 "octave_weight", "must be within [0, 1]", self.octave_weight)
        _require(_is_int(self.workers) and self.workers >= 0,
                 "workers", "must be a non-negative integer", self.workers)

        _require(_is_int(self.probe_harmonics) and self.probe_harmonics >= 1,
                 "probe_harmonics", "must be an integer of at least 1", self.probe_harmonics)
        _require(_is_number(self.reference_amplitude) and self.reference_amplitude >= 0,
                 "reference_amplitude", "must be non-negative", self.reference_amplitude)
        for key, value in self.model_params.items():
            _require(_is_number(value), key, "model coefficient must be a number", value)

        _require(self.fret_count is None or (_is_int(self.fret_count) and self.fret_count >= 0),
                 "fret_count", "must be a non-negative integer or unset", self.fret_count)
        _require(self.tuning is None or len(self.tuning) > 0,
                 "tuning", "needs at least one string", self.tuning)
        _require(_is_int(self.divisions_per_octave) and self.divisions_per_octave >= 1,
                 "divisions_per_octave", "must be a positive integer", self.divisions_per_octave)
        _require(_is_number(self.reference_frequency) and self.reference_frequency > 0,
                 "reference_frequency", "must be positive", self.reference_frequency)

        _require(self.notation in ("english", "romance"),
                 "notation", "must be 'english' or 'romance'", self.notation)
        _require(self.scale in ("linear", "sqrt", "log"),
                 "scale", "must be 'linear', 'sqrt' or 'log'", self.scale)
