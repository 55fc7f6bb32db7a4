"""Assembly of fixed-size analysis frames from capture chunks."""

from __future__ import annotations

from typing import List, Optional, Tuple

import numpy as np

from ..core.errors import ConfigurationError
from ..logger import get_logger

logger = get_logger(__name__)


class FrameAssembler:
    """Accumulates capture chunks of any size into fixed-size frames.

    With ``hop_size`` smaller than ``frame_size`` consecutive frames
    overlap, giving more updates per second than the window length alone.
    """

    def __init__(self, frame_size: int, hop_size: Optional[int] = None, sample_rate: int = 44100):
        hop_size = frame_size if hop_size is None else hop_size
        if frame_size < 1:
            raise ConfigurationError("frame_size", "must be positive", frame_size)
        if not 1 <= hop_size <= frame_size:
            raise ConfigurationError("hop_size", "must be within [1, frame_size]", hop_size)

        self._frame_size = int(frame_size)
        self._hop_size = int(hop_size)
        self._sample_rate = int(sample_rate)
        self._buffer = np.zeros(0, dtype=np.float32)
        self._buffer_start: Optional[float] = None  # Timestamp of self._buffer[0]

    @property
    def pending(self) -> int:
        """Samples waiting for the next frame."""
        return int(self._buffer.size)

    def push(self, chunk: np.ndarray, timestamp: float) -> List[Tuple[np.ndarray, float]]:
        """Add a capture chunk and return every frame it completes.

        Args:
            chunk: Mono samples; multi-channel input is averaged to mono
            timestamp: Capture time of the chunk's first sample

        Returns:
            (frame, timestamp of the frame's first sample) pairs, oldest first
        """
        chunk = np.asarray(chunk, dtype=np.float32)
        if chunk.ndim > 1:
            chunk = chunk.mean(axis=1)

        if self._buffer.size == 0:
            self._buffer_start = timestamp
        self._buffer = np.concatenate((self._buffer, chunk))

        frames = []
        while self._buffer.size >= self._frame_size:
            frames.append((self._buffer[: self._frame_size].copy(), self._buffer_start))
            self._buffer = self._buffer[self._hop_size:]
            self._buffer_start += self._hop_size / self._sample_rate
        return frames

    def reset(self) -> None:
        self._buffer = np.zeros(0, dtype=np.float32)
        self._buffer_start = None
