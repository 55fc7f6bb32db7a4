"""Core components for the ImproVe application."""

# Import interfaces for easier access
from .interfaces import (
    IRoughnessModel,
    ISpectralTransform,
)
from .errors import (
    ImproveError,
    ConfigurationError,
    FrameError,
    DissonanceContractError,
)

__all__ = [
    "IRoughnessModel",
    "ISpectralTransform",
    "ImproveError",
    "ConfigurationError",
    "FrameError",
    "DissonanceContractError",
]
