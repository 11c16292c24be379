"""
Structured models for the platform API payloads.

The server speaks camelCase JSON; every model accepts either the camelCase
alias or the snake_case field name and ignores fields it does not know.
"""
import json
from typing import Optional, Dict, Any, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .errors import RealtimeConnectionError

SeniorityLevel = Literal["internship", "entry-level", "junior", "mid-level", "senior", "lead"]
InterviewLanguage = Literal["english", "arabic"]


class ApiModel(BaseModel):
    """Base class for server payloads."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_payload(self) -> Dict[str, Any]:
        """Dump as camelCase JSON-ready dict, dropping unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True)


def _question_text(value: Any) -> Any:
    if isinstance(value, dict):
        return value.get("question") or value.get("text") or json.dumps(value, ensure_ascii=False)
    return value


# ---------------------------------------------------------------------------
# Career insights
# ---------------------------------------------------------------------------

class UploadedDocument(ApiModel):
    """Response of the document upload endpoint."""
    file_path: str
    file_name: str
    file_size: int
    mime_type: str


class SuggestionParagraphs(ApiModel):
    paragraphs: List[str] = Field(default_factory=list)


class CareerSuggestions(ApiModel):
    """AI-generated career insights, from a profile or a document."""
    success: bool = True
    suggestions: SuggestionParagraphs = Field(default_factory=SuggestionParagraphs)
    generated_at: Optional[str] = None
    analysis_id: Optional[int] = None

    @property
    def paragraphs(self) -> List[str]:
        return self.suggestions.paragraphs


class AnalysisSummary(ApiModel):
    """One saved analysis in the career-insights history."""
    id: int
    source_type: str = "document"
    file_name: Optional[str] = None
    created_at: Optional[str] = None
    suggestions: Optional[SuggestionParagraphs] = None


class AnalysisHistory(ApiModel):
    success: bool = True
    analyses: List[AnalysisSummary] = Field(default_factory=list)
    total_count: int = 0


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

class ProfileCompletion(ApiModel):
    """Completion summary of the comprehensive profile."""
    completion_percentage: float = 0
    name: Optional[str] = None

    @field_validator("completion_percentage", mode="before")
    @classmethod
    def _none_is_zero(cls, value: Any) -> Any:
        return 0 if value is None else value


# ---------------------------------------------------------------------------
# Interviews
# ---------------------------------------------------------------------------

class InterviewQuestion(ApiModel):
    question: str
    type: Optional[str] = None
    context: Optional[str] = None

    @classmethod
    def coerce(cls, value: Union[str, Dict[str, Any], "InterviewQuestion"]) -> "InterviewQuestion":
        if isinstance(value, InterviewQuestion):
            return value
        if isinstance(value, str):
            return cls(question=value)
        data = dict(value)
        if not data.get("question"):
            data["question"] = data.get("text") or ""
        return cls.model_validate(data)


class InterviewSet(ApiModel):
    type: str = ""
    title: str = ""
    description: str = ""
    questions: List[InterviewQuestion] = Field(default_factory=list)


class InterviewTypeInfo(ApiModel):
    """One profile interview and whether the job seeker has finished it."""
    type: str
    title: str = ""
    description: str = ""
    completed: bool = False
    questions: int = 0


class InterviewStart(ApiModel):
    """Response of the profile-interview start endpoint."""
    session_id: int
    questions: List[InterviewQuestion] = Field(default_factory=list)
    first_question: Optional[str] = None
    welcome_message: Optional[str] = None

    @field_validator("questions", mode="before")
    @classmethod
    def _coerce_questions(cls, value: Any) -> Any:
        return [InterviewQuestion.coerce(q) for q in (value or [])]

    @field_validator("first_question", mode="before")
    @classmethod
    def _coerce_first_question(cls, value: Any) -> Any:
        return _question_text(value)


class RespondResult(ApiModel):
    """Response of the text-interview answer endpoint."""
    is_complete: bool = False
    next_question: Optional[str] = None
    profile: Optional[Dict[str, Any]] = None
    all_interviews_completed: bool = False
    next_interview_type: Optional[str] = None

    @field_validator("next_question", mode="before")
    @classmethod
    def _coerce_next_question(cls, value: Any) -> Any:
        return _question_text(value)


class VoiceCompletion(ApiModel):
    """Response of the voice-interview completion endpoint."""
    success: bool = True
    profile: Optional[Dict[str, Any]] = None
    all_interviews_completed: bool = False
    next_interview_type: Optional[str] = None


class PracticeSetup(ApiModel):
    job_title: str
    seniority_level: SeniorityLevel = "mid-level"
    language: InterviewLanguage = "english"


class PracticeStart(ApiModel):
    session_id: int
    interview_type: str = "standalone-practice"
    interview_set: Optional[InterviewSet] = None
    questions: List[InterviewQuestion] = Field(default_factory=list)
    first_question: Optional[str] = None
    welcome_message: Optional[str] = None

    @field_validator("questions", mode="before")
    @classmethod
    def _coerce_questions(cls, value: Any) -> Any:
        return [InterviewQuestion.coerce(q) for q in (value or [])]

    @field_validator("first_question", mode="before")
    @classmethod
    def _coerce_first_question(cls, value: Any) -> Any:
        return _question_text(value)


class QuestionFeedback(ApiModel):
    question_index: int = 0
    question: str = ""
    user_answer: str = ""
    score: float = 0
    feedback: str = ""
    suggestion: str = ""


class PracticeFeedback(ApiModel):
    success: bool = True
    overall_score: float = 0
    summary: str = ""
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    question_feedback: List[QuestionFeedback] = Field(default_factory=list)


class PracticeCompletion(ApiModel):
    success: bool = True
    session_id: Optional[int] = None
    feedback: PracticeFeedback = Field(default_factory=PracticeFeedback)


# ---------------------------------------------------------------------------
# Avatar vendor
# ---------------------------------------------------------------------------

class AvatarSession(ApiModel):
    session_id: str
    access_token: Optional[str] = None
    url: Optional[str] = None
    realtime_endpoint: Optional[str] = None


# ---------------------------------------------------------------------------
# Realtime credential
# ---------------------------------------------------------------------------

def parse_ephemeral_key(data: Dict[str, Any]) -> str:
    """
    Extract the ephemeral key from a credential response.

    The server returns either ``{"client_secret": {"value": ...}}`` or a bare
    ``{"client_secret": "..."}``.

    Raises:
        RealtimeConnectionError: If no key can be found
    """
    secret = data.get("client_secret") if isinstance(data, dict) else None
    if isinstance(secret, dict):
        secret = secret.get("value")
    if not isinstance(secret, str) or not secret:
        raise RealtimeConnectionError("Invalid ephemeral token response")
    return secret
