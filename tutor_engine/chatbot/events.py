"""
Engine events

The dialogue engine publishes typed EngineEvents; presentation layers
subscribe with a callable or any object exposing on_event(event).
"""

from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Union, runtime_checkable

from loguru import logger
from pydantic import BaseModel, Field

from ..schema.core_schema import ChatMessage, utcnow


class EngineState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    GENERATING = "generating"
    QUIZ_PENDING = "quiz_pending"
    ENDED = "ended"


class EventKind(str, Enum):
    STATE_CHANGED = "state_changed"
    MESSAGE_APPENDED = "message_appended"
    QUIZ_OPENED = "quiz_opened"
    QUIZ_RESOLVED = "quiz_resolved"
    ERROR = "error"
    SESSION_SUMMARY = "session_summary"


class EngineEvent(BaseModel):
    kind: EventKind
    session_id: Optional[str] = None
    state: Optional[EngineState] = None
    message: Optional[ChatMessage] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


@runtime_checkable
class EngineObserver(Protocol):
    def on_event(self, event: EngineEvent) -> None: ...


Observer = Union[EngineObserver, Callable[[EngineEvent], None]]


class EventChannel:
    """Fan-out of engine events to subscribed observers."""

    def __init__(self):
        self._observers: List[Observer] = []

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer. Returns a function that unsubscribes it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def emit(self, event: EngineEvent) -> None:
        for observer in list(self._observers):
            try:
                if isinstance(observer, EngineObserver):
                    observer.on_event(event)
                else:
                    observer(event)
            except Exception as e:
                logger.exception(f"Observer failed on {event.kind.value}: {e}")

    def __len__(self) -> int:
        return len(self._observers)
