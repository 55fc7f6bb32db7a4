"""Event system for ImproVe components."""

from typing import Dict, List, Callable, Any
from enum import Enum, auto

from ..logger import get_logger

logger = get_logger(__name__)


class PipelineEventType(Enum):
    """Event types emitted by the analysis pipeline."""

    GRID_READY = auto()
    FRAMES_DROPPED = auto()
    FRAME_INVALID = auto()
    ERROR = auto()


class EventEmitter:
    """Event emitter for ImproVe components."""

    def __init__(self):
        """Initialize the event emitter."""
        self._listeners: Dict[Any, List[Callable]] = {}

    def on(self, event_type: Any, callback: Callable) -> None:
        """Register a callback for an event type.

        Args:
            event_type: Event type to listen for
            callback: Function to call when the event occurs
        """
        if event_type not in self._listeners:
            self._listeners[event_type] = []

        if callback not in self._listeners[event_type]:
            self._listeners[event_type].append(callback)
            logger.debug(f"Added listener for event {event_type}")

    def off(self, event_type: Any, callback: Callable) -> None:
        """Remove a previously registered callback."""
        if callback in self._listeners.get(event_type, []):
            self._listeners[event_type].remove(callback)

    def emit(self, event_type: Any, *args, **kwargs) -> None:
        """Emit an event.

        Args:
            event_type: Event type to emit
            *args: Positional arguments to pass to listeners
            **kwargs: Keyword arguments to pass to listeners
        """
        if event_type not in self._listeners:
            return

        for callback in list(self._listeners[event_type]):
            try:
                callback(*args, **kwargs)
            except Exception as e:
                logger.error(f"Error in event listener for {event_type}: {e}", exc_info=True)

    def clear(self) -> None:
        """Remove all event listeners."""
        self._listeners = {}
        logger.debug("Cleared all event listeners")


class PipelineEvents:
    """Event emitter specifically for analysis pipeline events."""

    def __init__(self):
        """Initialize the pipeline events."""
        self._emitter = EventEmitter()

    def on_grid_ready(self, callback: Callable) -> None:
        """Register a callback receiving each frame's DisplayGrid.

        Args:
            callback: Function called with the grid
        """
        self._emitter.on(PipelineEventType.GRID_READY, callback)

    def emit_grid_ready(self, grid) -> None:
        self._emitter.emit(PipelineEventType.GRID_READY, grid)

    def on_frames_dropped(self, callback: Callable) -> None:
        """Register a callback receiving the number of frames skipped under load."""
        self._emitter.on(PipelineEventType.FRAMES_DROPPED, callback)

    def emit_frames_dropped(self, count: int) -> None:
        self._emitter.emit(PipelineEventType.FRAMES_DROPPED, count)

    def on_frame_invalid(self, callback: Callable) -> None:
        """Register a callback receiving the FrameError of a skipped frame."""
        self._emitter.on(PipelineEventType.FRAME_INVALID, callback)

    def emit_frame_invalid(self, error: Exception) -> None:
        self._emitter.emit(PipelineEventType.FRAME_INVALID, error)

    def on_error(self, callback: Callable) -> None:
        """Register a callback receiving a fatal pipeline error."""
        self._emitter.on(PipelineEventType.ERROR, callback)

    def emit_error(self, error: Exception) -> None:
        self._emitter.emit(PipelineEventType.ERROR, error)

    def clear(self) -> None:
        """Remove all event listeners."""
        self._emitter.clear()
