"""Error taxonomy for the dissonance analysis core."""

from typing import Any, Optional


class ImproveError(Exception):
    """Base class for every error raised by ImproVe."""


class ConfigurationError(ImproveError, ValueError):
    """An invalid configuration value, detected at startup.

    Attributes:
        field: Name of the offending configuration field
        value: The rejected value
    """

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.value = value
        super().__init__(f"Invalid configuration '{field}': {message}")


class FrameError(ImproveError):
    """A transient problem with a single audio frame.

    The pipeline skips the frame (treats it as silence) and carries on.
    """

    def __init__(self, message: str, frame_size: Optional[int] = None):
        self.frame_size = frame_size
        super().__init__(message)


class DissonanceContractError(ImproveError, ArithmeticError):
    """A roughness model produced a NaN, infinite or negative value.

    This points at a bad model parameter or formula, never at bad audio,
    so it is not swallowed by the pipeline.
    """
