"""Interview session components.

Realtime signaling, the event channel, recording, the avatar vendor and the
orchestrators that tie them together. The orchestrators live in
``careerprep.interview.orchestrator``.
"""

# Data models
from .models import ConversationMessage, SessionState, RecordingResult, USER, ASSISTANT
from .conversation import ConversationLog

# Event system
from .events import (
    SessionEventBus, EventLogger, SessionMetrics,
    EventType, SessionEvent, SessionStartedEvent, PhaseChangedEvent,
    MessageAppendedEvent, VoiceActivityEvent, RecordingFinishedEvent,
    InterviewCompletedEvent, ErrorOccurredEvent, ToastRaisedEvent
)

__all__ = [
    # Data models
    "ConversationMessage", "SessionState", "RecordingResult", "USER", "ASSISTANT",
    "ConversationLog",

    # Events
    "SessionEventBus", "EventLogger", "SessionMetrics",
    "EventType", "SessionEvent", "SessionStartedEvent", "PhaseChangedEvent",
    "MessageAppendedEvent", "VoiceActivityEvent", "RecordingFinishedEvent",
    "InterviewCompletedEvent", "ErrorOccurredEvent", "ToastRaisedEvent",
]
