"""
Handling of realtime backend events arriving over the data channel.
"""
import json
import time
import logging
import threading
from typing import Any, Callable, Dict, Optional, Union

from .conversation import ConversationLog
from .events import (
    SessionEventBus, MessageAppendedEvent, VoiceActivityEvent,
    InterviewCompletedEvent
)
from .models import USER, ASSISTANT
from ..config import RESPONSE_TRIGGER_DELAY

logger = logging.getLogger("event_channel")

SPEECH_STARTED = "input_audio_buffer.speech_started"
SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
AUDIO_DELTA = "response.audio.delta"
AUDIO_DONE = "response.audio.done"
OUTPUT_STOPPED = "output_audio_buffer.stopped"
ASSISTANT_TRANSCRIPT_DONE = "response.audio_transcript.done"
USER_TRANSCRIPT_DONE = "conversation.item.input_audio_transcription.completed"
RESPONSE_DONE = "response.done"
INTERVIEW_COMPLETED = "interview.completed"

RESPONSE_CREATE = {"type": "response.create", "response": {"modalities": ["text", "audio"]}}

# Explicit closing phrases, unlikely to appear in a welcome message
STRONG_COMPLETION_PHRASES = (
    "interview is now complete", "you may submit your responses", "this concludes our interview",
    "no more questions", "we are all done", "that's all the questions", "no further questions",
    "interview is over", "thank you for your time", "this concludes",
    "انتهت المقابلة الآن", "يمكنك الآن تقديم إجاباتك", "هذا يختتم مقابلتنا",
    "لا توجد أسئلة أخرى", "شكراً لوقتك", "المقابلة منتهية",
)

# Phrases that also show up mid-interview
WEAK_COMPLETION_PHRASES = (
    "interview complete", "that concludes", "this concludes", "conclude", "final",
    "wrap up", "end of interview", "finished", "done with", "all done",
    "انتهت المقابلة", "نهاية المقابلة", "هذا يختتم", "انتهينا من",
)

GENERIC_PHRASES = (
    "thank you for", "thank you", "شكراً لك", "good luck", "best wishes",
    "بالتوفيق", "أتمنى لك النجاح", "أتمنى لك",
)


def _contains_any(text: str, phrases) -> bool:
    lowered = text.lower()
    return any(phrase.lower() in lowered for phrase in phrases)


def detect_completion_keywords(text: str) -> bool:
    """
    Guess from an AI transcript whether the interviewer has closed the interview.

    A strong phrase always counts. A weak phrase counts unless the text is
    only a generic thank-you.
    """
    if not text:
        return False
    strong = _contains_any(text, STRONG_COMPLETION_PHRASES)
    weak = _contains_any(text, WEAK_COMPLETION_PHRASES)
    generic_only = _contains_any(text, GENERIC_PHRASES) and not strong and not weak
    return strong or (weak and not generic_only)


def is_structured_completion(event: Dict[str, Any]) -> bool:
    """True for an explicit completion signal from the backend."""
    event_type = event.get("type")
    if event_type == INTERVIEW_COMPLETED:
        return True
    if event_type == RESPONSE_DONE:
        metadata = (event.get("response") or {}).get("metadata") or {}
        return bool(metadata.get("interview_complete"))
    return False


class EventChannel:
    """Folds realtime events into conversation history and activity state."""

    def __init__(self,
                 conversation: ConversationLog,
                 send: Callable[[Dict[str, Any]], None],
                 event_bus: Optional[SessionEventBus] = None,
                 session_id: str = "-",
                 keyword_fallback: bool = True,
                 trigger_delay: float = RESPONSE_TRIGGER_DELAY,
                 on_complete: Optional[Callable[[str], None]] = None,
                 on_message: Optional[Callable[[Dict[str, Any]], None]] = None):
        self.conversation = conversation
        self.send = send
        self.event_bus = event_bus
        self.session_id = session_id
        self.keyword_fallback = keyword_fallback
        self.trigger_delay = trigger_delay
        self.on_complete = on_complete
        self.on_message = on_message

        self.is_listening = False
        self.is_speaking = False
        self.is_complete = False
        self._trigger_timer: Optional[threading.Timer] = None

    def handle(self, raw: Union[str, bytes, Dict[str, Any]]) -> None:
        """Handle one vendor event."""
        try:
            event = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        except ValueError as e:
            logger.warning(f"Ignoring unparseable event: {e}")
            return
        if not isinstance(event, dict):
            logger.warning(f"Ignoring non-object event: {event!r}")
            return

        event_type = event.get("type")
        logger.debug(f"Realtime event: {event_type}")

        if event_type == SPEECH_STARTED:
            self._set_listening(True)
        elif event_type == SPEECH_STOPPED:
            self._set_listening(False)
            self._schedule_response_trigger()
        elif event_type == AUDIO_DELTA:
            self._set_speaking(True)
        elif event_type in (AUDIO_DONE, OUTPUT_STOPPED, RESPONSE_DONE):
            self._set_speaking(False)
            self._set_listening(True)
        elif event_type == ASSISTANT_TRANSCRIPT_DONE:
            self._set_speaking(False)
            self._set_listening(True)
            self._append(ASSISTANT, event.get("transcript"))
        elif event_type == USER_TRANSCRIPT_DONE:
            self._append(USER, event.get("transcript"))

        if is_structured_completion(event):
            self._mark_complete("structured")
        elif (self.keyword_fallback and event_type == ASSISTANT_TRANSCRIPT_DONE
              and detect_completion_keywords(event.get("transcript") or "")):
            logger.info(f"Completion phrase detected in: {event.get('transcript')!r}")
            self._mark_complete("keywords")

        if self.on_message is not None:
            self.on_message(event)

    def close(self) -> None:
        timer, self._trigger_timer = self._trigger_timer, None
        if timer is not None:
            timer.cancel()

    def _append(self, role: str, transcript: Optional[str]) -> None:
        if not transcript:
            return
        message = self.conversation.append(role, transcript)
        if message is not None and self.event_bus is not None:
            self.event_bus.emit(MessageAppendedEvent(
                self.session_id, message.timestamp, role, transcript, len(self.conversation) - 1
            ))

    def _mark_complete(self, source: str) -> None:
        if self.is_complete:
            return
        self.is_complete = True
        logger.info(f"Interview completion detected ({source})")
        if self.event_bus is not None:
            self.event_bus.emit(InterviewCompletedEvent(
                self.session_id, time.time(), source, len(self.conversation)
            ))
        if self.on_complete is not None:
            self.on_complete(source)

    def _schedule_response_trigger(self) -> None:
        self.close()
        timer = threading.Timer(self.trigger_delay, self._trigger_response)
        timer.daemon = True
        self._trigger_timer = timer
        timer.start()

    def _trigger_response(self) -> None:
        self._trigger_timer = None
        logger.debug("Sending response trigger")
        self.send(RESPONSE_CREATE)

    def _set_listening(self, value: bool) -> None:
        if self.is_listening != value:
            self.is_listening = value
            self._emit_activity("user", value)

    def _set_speaking(self, value: bool) -> None:
        if self.is_speaking != value:
            self.is_speaking = value
            self._emit_activity("assistant", value)

    def _emit_activity(self, speaker: str, active: bool) -> None:
        if self.event_bus is not None:
            self.event_bus.emit(VoiceActivityEvent(self.session_id, time.time(), speaker, active))
