"""
Conversation history accumulation.

The realtime backend may deliver the same transcript more than once, so every
append is checked against the existing history by exact (role, content).
"""
import logging
import threading
from typing import Dict, List, Optional, Tuple

from .models import ConversationMessage, USER, ASSISTANT

logger = logging.getLogger("conversation")

History = Tuple[ConversationMessage, ...]


def reduce(history: History, message: ConversationMessage) -> History:
    """Return ``history`` with ``message`` appended, or unchanged if already present."""
    if not message.content:
        return history
    if any(existing.key == message.key for existing in history):
        return history
    return history + (message,)


def pair_responses(history: History) -> List[Dict[str, str]]:
    """
    Group the conversation into question/answer pairs for submission.

    Walks the history two messages at a time expecting assistant then user.
    When that yields nothing (the AI spoke twice in a row, for instance),
    falls back to zipping assistant messages with user messages.
    """
    responses = []
    for i in range(0, len(history), 2):
        question = history[i]
        answer = history[i + 1] if i + 1 < len(history) else None
        if question.role == ASSISTANT and answer is not None and answer.role == USER:
            responses.append({"question": question.content, "answer": answer.content})

    if responses:
        return responses

    questions = [m for m in history if m.role == ASSISTANT]
    answers = [m for m in history if m.role == USER]
    for i in range(min(len(questions), len(answers))):
        responses.append({
            "question": questions[i].content or f"Question {i + 1}",
            "answer": answers[i].content or "",
        })
    return responses


def to_payload(history: History) -> List[Dict[str, str]]:
    return [m.to_payload() for m in history]


class ConversationLog:
    """Holds the current history; appends arrive on the transport thread."""

    def __init__(self):
        self._history: History = ()
        self._lock = threading.Lock()

    def append(self, role: str, content: str, timestamp: Optional[float] = None) -> Optional[ConversationMessage]:
        """
        Append a transcript unless it duplicates an earlier one.

        Returns:
            The appended message, or None if it was a duplicate or empty
        """
        if timestamp is None:
            message = ConversationMessage(role=role, content=content)
        else:
            message = ConversationMessage(role=role, content=content, timestamp=timestamp)

        with self._lock:
            updated = reduce(self._history, message)
            if updated is self._history:
                logger.debug(f"Dropped duplicate {role} transcript")
                return None
            self._history = updated
        return message

    @property
    def history(self) -> History:
        return self._history

    def __len__(self) -> int:
        return len(self._history)

    def clear(self) -> None:
        with self._lock:
            self._history = ()

    def pair_responses(self) -> List[Dict[str, str]]:
        return pair_responses(self._history)

    def to_payload(self) -> List[Dict[str, str]]:
        return to_payload(self._history)
