"""
Data models for interview sessions.
"""
import time
from dataclasses import dataclass, field
from typing import Optional, Dict, List, Any

USER = "user"
ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationMessage:
    """A single transcribed utterance."""
    role: str  # "user" | "assistant"
    content: str
    timestamp: float = field(default_factory=time.time)

    @property
    def key(self):
        return (self.role, self.content)

    def to_payload(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class SessionState:
    """Client-side cache of a server-owned interview session."""
    session_id: int
    questions: List[str] = field(default_factory=list)
    responses: List[Dict[str, str]] = field(default_factory=list)
    current_question_index: int = 0
    is_complete: bool = False
    mode: str = "text"
    interview_type: Optional[str] = None
    generated_profile: Optional[Dict[str, Any]] = None

    @property
    def current_question(self) -> Optional[str]:
        if 0 <= self.current_question_index < len(self.questions):
            return self.questions[self.current_question_index]
        return None

    @property
    def is_last_question(self) -> bool:
        return self.current_question_index >= len(self.questions) - 1

    def record_answer(self, question: str, answer: str) -> None:
        """Append a text answer locally; the server copy wins on completion."""
        self.responses.append({"question": question, "answer": answer})

    @classmethod
    def from_server(cls, data: Dict[str, Any]) -> "SessionState":
        """Build from a ``/api/interview/session`` payload."""
        session_data = data.get("sessionData") or {}
        questions = []
        for q in session_data.get("questions") or []:
            if isinstance(q, dict):
                questions.append(q.get("question") or q.get("text") or "")
            else:
                questions.append(str(q))
        return cls(
            session_id=data["id"],
            questions=questions,
            responses=list(session_data.get("responses") or []),
            current_question_index=session_data.get("currentQuestionIndex", 0),
            is_complete=bool(data.get("isCompleted") or session_data.get("isComplete")),
            mode=session_data.get("mode") or "text",
            interview_type=data.get("interviewType"),
            generated_profile=data.get("generatedProfile"),
        )


@dataclass(frozen=True)
class RecordingResult:
    """Terminal outcome of a recording."""
    success: bool
    playlist_url: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "RecordingResult":
        return cls(success=False, error=error)
