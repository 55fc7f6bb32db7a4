from abc import ABC, abstractmethod
from typing import Callable

import numpy as np

from ..analysis_types import DisplayGrid

# Called with a mono float32 chunk and the capture timestamp
AudioCallback = Callable[[np.ndarray, float], None]


class IAudioProvider(ABC):
    """An abstract interface for audio providers."""

    @abstractmethod
    def start(self, on_data_callback: AudioCallback) -> None:
        """Starts the audio stream, calling the callback with chunks of audio data."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stops the audio stream."""
        pass

    @property
    @abstractmethod
    def sample_rate(self) -> int:
        """The sample rate of the audio stream."""
        pass

    @property
    @abstractmethod
    def channels(self) -> int:
        """The number of channels in the audio stream."""
        pass


class IDisplay(ABC):
    """An abstract interface for fretboard displays."""

    @abstractmethod
    def show(self, grid: DisplayGrid) -> None:
        """Render one frame's display grid."""
        pass

    def close(self) -> None:
        """Release display resources."""
        pass

    @property
    def is_open(self) -> bool:
        """False once the user closed the display."""
        return True
