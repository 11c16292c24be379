"""
Event-driven communication between the session components.
"""
import logging
from abc import ABC
from typing import Dict, Any, List, Callable, Optional
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger("events")


class EventType(str, Enum):
    """Types of session events."""
    SESSION_STARTED = "session_started"
    PHASE_CHANGED = "phase_changed"
    MESSAGE_APPENDED = "message_appended"
    VOICE_ACTIVITY = "voice_activity"
    RECORDING_FINISHED = "recording_finished"
    INTERVIEW_COMPLETED = "interview_completed"
    ERROR_OCCURRED = "error_occurred"
    TOAST_RAISED = "toast_raised"


@dataclass
class SessionEvent(ABC):
    """Base class for all session events."""
    event_type: EventType
    session_id: str
    timestamp: float
    data: Dict[str, Any]


@dataclass
class SessionStartedEvent(SessionEvent):
    """Event fired when a session has been created on the server."""
    def __init__(self, session_id: str, timestamp: float, flow: str, mode: str):
        super().__init__(
            event_type=EventType.SESSION_STARTED,
            session_id=session_id,
            timestamp=timestamp,
            data={"flow": flow, "mode": mode}
        )


@dataclass
class PhaseChangedEvent(SessionEvent):
    """Event fired on every orchestrator transition."""
    def __init__(self, session_id: str, timestamp: float, previous: str, current: str):
        super().__init__(
            event_type=EventType.PHASE_CHANGED,
            session_id=session_id,
            timestamp=timestamp,
            data={"previous": previous, "current": current}
        )


@dataclass
class MessageAppendedEvent(SessionEvent):
    """Event fired when a transcript lands in the conversation history."""
    def __init__(self, session_id: str, timestamp: float, role: str, content: str, index: int):
        super().__init__(
            event_type=EventType.MESSAGE_APPENDED,
            session_id=session_id,
            timestamp=timestamp,
            data={"role": role, "content": content, "index": index}
        )


@dataclass
class VoiceActivityEvent(SessionEvent):
    """Event fired when the candidate or the AI starts or stops talking."""
    def __init__(self, session_id: str, timestamp: float, speaker: str, active: bool):
        super().__init__(
            event_type=EventType.VOICE_ACTIVITY,
            session_id=session_id,
            timestamp=timestamp,
            data={"speaker": speaker, "active": active}
        )


@dataclass
class RecordingFinishedEvent(SessionEvent):
    """Event fired once the recorder has been finalized."""
    def __init__(self, session_id: str, timestamp: float, success: bool,
                 playlist_url: Optional[str], error: Optional[str]):
        super().__init__(
            event_type=EventType.RECORDING_FINISHED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "success": success,
                "playlist_url": playlist_url,
                "error": error
            }
        )


@dataclass
class InterviewCompletedEvent(SessionEvent):
    """Event fired when the interview is known to be over."""
    def __init__(self, session_id: str, timestamp: float, source: str, message_count: int):
        super().__init__(
            event_type=EventType.INTERVIEW_COMPLETED,
            session_id=session_id,
            timestamp=timestamp,
            data={"source": source, "message_count": message_count}
        )


@dataclass
class ErrorOccurredEvent(SessionEvent):
    """Event fired when an error occurs."""
    def __init__(self, session_id: str, timestamp: float, error_type: str,
                 error_message: str, component: str):
        super().__init__(
            event_type=EventType.ERROR_OCCURRED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "error_type": error_type,
                "error_message": error_message,
                "component": component
            }
        )


@dataclass
class ToastRaisedEvent(SessionEvent):
    """Event fired for every user-facing notification."""
    def __init__(self, session_id: str, timestamp: float, title: str,
                 description: str, variant: str):
        super().__init__(
            event_type=EventType.TOAST_RAISED,
            session_id=session_id,
            timestamp=timestamp,
            data={"title": title, "description": description, "variant": variant}
        )


EventHandler = Callable[[SessionEvent], None]


class SessionEventBus:
    """Event bus for session communication."""

    def __init__(self):
        self._handlers: Dict[EventType, List[EventHandler]] = {}
        self._global_handlers: List[EventHandler] = []

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Subscribe to specific event type.

        Args:
            event_type: Type of event to listen for
            handler: Function to call when event occurs
        """
        if event_type not in self._handlers:
            self._handlers[event_type] = []
        self._handlers[event_type].append(handler)
        logger.debug(f"Subscribed handler to {event_type}")

    def subscribe_all(self, handler: EventHandler) -> None:
        """
        Subscribe to all events.

        Args:
            handler: Function to call for any event
        """
        self._global_handlers.append(handler)
        logger.debug("Subscribed global handler")

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Unsubscribe from specific event type.

        Args:
            event_type: Type of event to stop listening for
            handler: Handler function to remove
        """
        if event_type in self._handlers:
            try:
                self._handlers[event_type].remove(handler)
                logger.debug(f"Unsubscribed handler from {event_type}")
            except ValueError:
                logger.warning(f"Handler not found for {event_type}")

    def emit(self, event: SessionEvent) -> None:
        """
        Emit an event to all subscribers.

        Args:
            event: Event to emit
        """
        logger.debug(f"Emitting event: {event.event_type} for session {event.session_id}")

        # Call specific handlers
        for handler in list(self._handlers.get(event.event_type, [])):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in event handler for {event.event_type}: {e}")

        # Call global handlers
        for handler in list(self._global_handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in global event handler: {e}")


class EventLogger:
    """Logs all events for debugging and analysis."""

    def __init__(self, log_level: int = logging.INFO):
        self.logger = logging.getLogger("event_logger")
        self.logger.setLevel(log_level)

    def handle_event(self, event: SessionEvent) -> None:
        """Log event details."""
        self.logger.info(f"Event: {event.event_type} | Session: {event.session_id} | Data: {event.data}")


class SessionMetrics:
    """Collects metrics from session events."""

    def __init__(self):
        self.reset()

    def handle_event(self, event: SessionEvent) -> None:
        """Update metrics based on event."""
        if event.event_type == EventType.SESSION_STARTED:
            self.sessions_started += 1
        elif event.event_type == EventType.INTERVIEW_COMPLETED:
            self.interviews_completed += 1
        elif event.event_type == EventType.MESSAGE_APPENDED:
            self.messages_appended += 1
        elif event.event_type == EventType.RECORDING_FINISHED:
            if event.data.get("success"):
                self.recordings_finalized += 1
            else:
                self.recordings_failed += 1
        elif event.event_type == EventType.TOAST_RAISED:
            self.toasts_raised += 1
        elif event.event_type == EventType.ERROR_OCCURRED:
            self.errors_occurred += 1

    def get_metrics(self) -> Dict[str, int]:
        """Get current metrics snapshot."""
        return {
            "sessions_started": self.sessions_started,
            "interviews_completed": self.interviews_completed,
            "messages_appended": self.messages_appended,
            "recordings_finalized": self.recordings_finalized,
            "recordings_failed": self.recordings_failed,
            "toasts_raised": self.toasts_raised,
            "errors_occurred": self.errors_occurred
        }

    def reset(self) -> None:
        """Reset all metrics to zero."""
        self.sessions_started = 0
        self.interviews_completed = 0
        self.messages_appended = 0
        self.recordings_finalized = 0
        self.recordings_failed = 0
        self.toasts_raised = 0
        self.errors_occurred = 0
