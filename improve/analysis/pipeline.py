"""Pipeline driver: one analysis iteration per audio frame.

Capture and analysis are two stages joined by a small bounded queue. With
skip mode off every frame is analysed in arrival order and a full queue
blocks the producer; with skip mode on the analysis stage only ever takes
the newest frame and silently drops the older ones.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Generic, List, Optional, Tuple, TypeVar

import numpy as np

from ..analysis_types import ComponentSet, DisplayGrid, DissonanceCurve
from ..core.errors import ConfigurationError, DissonanceContractError, FrameError
from ..core.events import PipelineEvents
from ..logger import get_logger
from .curve import DissonanceCurveBuilder
from .fretboard import Fretboard, FretboardMapper
from .spectrum import FrequencyExtractor

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Frame:
    """One fixed-size block of PCM samples."""

    samples: np.ndarray
    timestamp: float
    sequence: int


@dataclass
class PipelineStats:
    """Counters kept by the driver."""

    frames_received: int = 0
    frames_processed: int = 0
    frames_dropped: int = 0
    frames_invalid: int = 0
    last_sequence: Optional[int] = None


class HandoffQueue(Generic[T]):
    """Bounded queue between two pipeline stages.

    Args:
        capacity: Maximum number of items held
        skip: Drop stale items instead of blocking the producer
    """

    def __init__(self, capacity: int = 2, skip: bool = False):
        if capacity < 1:
            raise ConfigurationError("queue_capacity", "must be at least 1", capacity)
        self._capacity = capacity
        self._skip = skip
        self._items: Deque[T] = deque()
        self._cond = threading.Condition()
        self._closed = False
        self._dropped = 0

    @property
    def skip(self) -> bool:
        return self._skip

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, item: T, timeout: Optional[float] = None) -> bool:
        """Add an item.

        In skip mode this never blocks: the oldest item is discarded when
        the queue is full. Otherwise it waits for room.

        Returns:
            False if the queue is closed or the timeout expired
        """
        with self._cond:
            if self._closed:
                return False
            if self._skip:
                if len(self._items) >= self._capacity:
                    self._items.popleft()
                    self._dropped += 1
            else:
                deadline = None if timeout is None else time.monotonic() + timeout
                while len(self._items) >= self._capacity and not self._closed:
                    remaining = None if deadline is None else deadline - time.monotonic()
                    if remaining is not None and remaining <= 0:
                        return False
                    self._cond.wait(remaining)
                if self._closed:
                    return False
            self._items.append(item)
            self._cond.notify_all()
            return True

    def take(self, timeout: Optional[float] = None) -> Tuple[Optional[T], int]:
        """Remove the next item to process.

        In skip mode this is the newest item and everything older is
        dropped; otherwise it is the oldest item.

        Returns:
            (item, number of items dropped since the last take); item is
            None when the timeout expired or the queue is closed and empty
        """
        with self._cond:
            deadline = None if timeout is None else time.monotonic() + timeout
            while not self._items and not self._closed:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    break
                self._cond.wait(remaining)

            item = None
            if self._items:
                if self._skip:
                    item = self._items.pop()
                    self._dropped += len(self._items)
                    self._items.clear()
                else:
                    item = self._items.popleft()
                self._cond.notify_all()

            dropped, self._dropped = self._dropped, 0
            return item, dropped

    def close(self) -> None:
        """Wake every waiter; pending items can still be taken."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)


class PipelineDriver:
    """Drives extraction, curve building and mapping for each frame.

    The only state carried between frames is the previous curve, threaded
    back into the curve builder when temporal smoothing is configured.
    """

    def __init__(
        self,
        extractor: FrequencyExtractor,
        builder: DissonanceCurveBuilder,
        fretboard: Fretboard,
        mapper: Optional[FretboardMapper] = None,
        display: Optional[Callable[[DisplayGrid], None]] = None,
        skip_frames: bool = False,
        queue_capacity: int = 2,
        events: Optional[PipelineEvents] = None,
    ) -> None:
        """Initialize the driver.

        Args:
            extractor: Frequency extractor, configured for the session's frame size
            builder: Dissonance curve builder
            fretboard: Static instrument tables
            mapper: Fretboard mapper (default: linear)
            display: Display collaborator, called with every grid
            skip_frames: Process only the newest frame when falling behind
            queue_capacity: Frames buffered between capture and analysis
            events: Event hub for grids, drops and errors
        """
        self._extractor = extractor
        self._builder = builder
        self._fretboard = fretboard
        self._mapper = mapper or FretboardMapper()
        self._queue: HandoffQueue[Frame] = HandoffQueue(queue_capacity, skip=skip_frames)
        self.events = events or PipelineEvents()
        if display is not None:
            self.events.on_grid_ready(display)

        self._stats = PipelineStats()
        self._stats_lock = threading.Lock()
        self._sequence = 0
        self._previous: Optional[DissonanceCurve] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._error: Optional[BaseException] = None

        logger.info(
            f"Pipeline ready: {len(fretboard.probes)} probes on {fretboard.name}, "
            f"skip_frames={skip_frames}, queue_capacity={queue_capacity}"
        )

    @property
    def stats(self) -> PipelineStats:
        with self._stats_lock:
            return PipelineStats(**vars(self._stats))

    @property
    def error(self) -> Optional[BaseException]:
        """The exception that stopped the analysis thread, if any."""
        return self._error

    @property
    def skip_frames(self) -> bool:
        return self._queue.skip

    def submit(self, samples: np.ndarray, timestamp: Optional[float] = None) -> bool:
        """Hand a captured frame to the analysis stage.

        Called from the capture side. Blocks while the queue is full unless
        skip mode is on.

        Returns:
            False if the pipeline has been stopped
        """
        with self._stats_lock:
            self._sequence += 1
            sequence = self._sequence
            self._stats.frames_received += 1
        frame = Frame(
            samples=samples,
            timestamp=time.time() if timestamp is None else timestamp,
            sequence=sequence,
        )
        return self._queue.put(frame)

    def process_frame(self, frame: Frame) -> DisplayGrid:
        """Run one frame through extraction, curve building and mapping.

        A malformed frame is treated as silence.

        Raises:
            DissonanceContractError: If the model produced invalid values
        """
        try:
            components = self._extractor.extract(frame.samples)
        except FrameError as e:
            logger.warning(f"Skipping frame {frame.sequence}: {e}")
            with self._stats_lock:
                self._stats.frames_invalid += 1
            self.events.emit_frame_invalid(e)
            components = ComponentSet.empty()

        curve = self._builder.build(
            components,
            self._fretboard.probes,
            previous=self._previous,
            timestamp=frame.timestamp,
        )
        if self._builder.smoothing:
            self._previous = curve

        grid = self._mapper.map(curve, self._fretboard, components)
        with self._stats_lock:
            self._stats.frames_processed += 1
            self._stats.last_sequence = frame.sequence

        logger.debug(
            f"Frame {frame.sequence}: {len(components)} components, "
            f"dissonance {grid.raw_min:.4f}..{grid.raw_max:.4f}"
        )
        self.events.emit_grid_ready(grid)
        return grid

    def run_once(self, timeout: Optional[float] = None) -> Optional[DisplayGrid]:
        """Wait for the next frame and process it.

        Returns:
            The frame's grid, or None on timeout or when the queue is closed
        """
        frame, dropped = self._queue.take(timeout)
        if dropped:
            with self._stats_lock:
                self._stats.frames_dropped += dropped
            logger.debug(f"Dropped {dropped} stale frames")
            self.events.emit_frames_dropped(dropped)
        if frame is None:
            return None
        return self.process_frame(frame)

    def run(self) -> None:
        """Process frames until the queue is closed and drained."""
        self._running = True
        try:
            while self._running:
                grid = self.run_once(timeout=0.5)
                if grid is None and self._queue.closed and len(self._queue) == 0:
                    break
        except DissonanceContractError as e:
            logger.error(f"Dissonance model contract violated: {e}", exc_info=True)
            self._error = e
            self.events.emit_error(e)
            raise
        except Exception as e:
            logger.error(f"Error in analysis loop: {e}", exc_info=True)
            self._error = e
            self.events.emit_error(e)
            raise
        finally:
            self._running = False
            self._queue.close()

    def start(self) -> None:
        """Run the analysis loop on a background thread."""
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Pipeline already running")
            return
        self._thread = threading.Thread(target=self._run_thread, name="analysis", daemon=True)
        self._thread.start()
        logger.info("Analysis loop started")

    def stop(self, timeout: Optional[float] = 2.0) -> None:
        """Stop accepting frames and wait for the analysis loop to finish."""
        self._queue.close()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Analysis thread still busy, leaving the curve builder open")
                return
            self._thread = None
        self._builder.close()
        logger.info(f"Analysis loop stopped: {self.stats}")

    def finish(self) -> None:
        """Close the input side; queued frames are still processed."""
        self._queue.close()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def is_running(self) -> bool:
        return self._running

    def _run_thread(self) -> None:
        try:
            self.run()
        except Exception:
            # Already logged and recorded in self._error
            pass


def drain(driver: PipelineDriver) -> List[DisplayGrid]:
    """Process every queued frame without blocking; returns the grids."""
    grids = []
    while True:
        grid = driver.run_once(timeout=0)
        if grid is None:
            return grids
        grids.append(grid)
