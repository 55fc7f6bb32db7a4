from typing import Optional

import numpy as np

from ..analysis.pipeline import PipelineDriver
from ..audio.frames import FrameAssembler
from ..logger import get_logger
from .interfaces import IAudioProvider

logger = get_logger(__name__)


class DissonanceAnalysisService:
    """Connects a capture provider to the analysis pipeline.

    Capture chunks are assembled into fixed-size frames on the provider's
    thread and handed to the driver, whose analysis loop runs on its own
    thread.
    """

    def __init__(
        self,
        audio_provider: IAudioProvider,
        driver: PipelineDriver,
        frame_size: int,
        hop_size: Optional[int] = None,
    ) -> None:
        self._audio_provider = audio_provider
        self._driver = driver
        self._assembler = FrameAssembler(
            frame_size, hop_size=hop_size, sample_rate=audio_provider.sample_rate
        )
        self._running = False

    @property
    def driver(self) -> PipelineDriver:
        return self._driver

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Starts the analysis loop, then capture."""
        if self._running:
            return
        self._assembler.reset()
        self._running = True
        self._driver.start()
        self._audio_provider.start(self._audio_callback)
        logger.info("Analysis service started")

    def stop(self) -> None:
        """Stops capture, then the analysis loop."""
        if not self._running:
            return
        self._running = False
        self._audio_provider.stop()
        self._driver.stop()
        logger.info("Analysis service stopped")

    def _audio_callback(self, chunk: np.ndarray, timestamp: float) -> None:
        """Receives audio data from the provider and submits complete frames."""
        if not self._running:
            return
        for frame, frame_time in self._assembler.push(chunk, timestamp):
            if not self._driver.submit(frame, frame_time):
                logger.debug("Pipeline closed, discarding captured frame")
                return
