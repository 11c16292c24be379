"""
Service classes wrapping the platform's interview endpoints.
"""
import logging
from typing import Any, Dict, List, Optional, Union

from ..infrastructure.api import ApiClient
from ..schemas import (
    InterviewStart, InterviewTypeInfo, RespondResult, VoiceCompletion,
    PracticeSetup, PracticeStart, PracticeCompletion
)
from .conversation import ConversationLog
from .models import SessionState, ConversationMessage

logger = logging.getLogger("services")

SessionId = Union[int, str]


class InterviewApi:
    """Profile-building interviews (personal, professional, technical)."""

    def __init__(self, api: ApiClient):
        self.api = api

    def interview_types(self) -> List[InterviewTypeInfo]:
        data = self.api.get("/api/interview/types") or {}
        return [InterviewTypeInfo.model_validate(t) for t in data.get("interviewTypes", [])]

    def get_session(self) -> Optional[SessionState]:
        """The caller's current session, or None when there is none."""
        data = self.api.get("/api/interview/session")
        if not data or not isinstance(data, dict) or "id" not in data:
            return None
        return SessionState.from_server(data)

    def save_session(self, state: SessionState) -> Dict[str, Any]:
        """Push the locally cached session data back to the server."""
        return self.api.post("/api/interview/session", {
            "sessionId": state.session_id,
            "sessionData": {
                "questions": state.questions,
                "responses": state.responses,
                "currentQuestionIndex": state.current_question_index,
                "isComplete": state.is_complete,
                "mode": state.mode,
            },
        }) or {}

    def start(self, interview_type: Optional[str] = None, language: str = "english") -> InterviewStart:
        """
        Start a text interview.

        Raises:
            ApiError: ``requires_resume`` is set when the server wants a resume first
        """
        path = f"/api/interview/start/{interview_type}" if interview_type else "/api/interview/start"
        logger.info(f"Starting interview via {path} (language: {language})")
        return InterviewStart.model_validate(self.api.post(path, {"language": language}))

    def start_voice(self, interview_type: str, language: str = "english") -> InterviewStart:
        return InterviewStart.model_validate(self.api.post(
            "/api/interview/start-voice", {"interviewType": interview_type, "language": language}
        ))

    def respond(self, session_id: SessionId, answer: str, question_index: int) -> RespondResult:
        data = self.api.post("/api/interview/respond", {
            "sessionId": session_id,
            "answer": answer,
            "questionIndex": question_index,
        })
        return RespondResult.model_validate(data or {})

    def complete_voice(self, conversation: ConversationLog,
                       interview_type: Optional[str]) -> VoiceCompletion:
        responses = conversation.pair_responses()
        logger.info(f"Submitting voice interview: {len(responses)} answered questions")
        data = self.api.post("/api/interview/complete-voice", {
            "conversationHistory": responses,
            "interviewType": interview_type,
        })
        return VoiceCompletion.model_validate(data or {})

    def parse_transcription(self, transcription: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Ask the server to split a transcript into question/answer pairs."""
        data = self.api.post("/api/interview/parse-transcription", {"transcription": transcription}) or {}
        return list(data.get("parsedQA") or [])


def simple_parse_transcription(transcription: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Pair each assistant turn with the user turn that directly follows it."""
    pairs = []
    for current, following in zip(transcription, transcription[1:]):
        if current.get("role") == "assistant" and following.get("role") == "user":
            pairs.append({"question": current.get("content", ""), "answer": following.get("content", "")})
    return pairs


class PracticeInterviewApi:
    """Standalone practice interviews with scored feedback."""

    def __init__(self, api: ApiClient):
        self.api = api

    def start(self, setup: PracticeSetup) -> PracticeStart:
        logger.info(f"Starting practice interview for {setup.job_title} ({setup.seniority_level})")
        return PracticeStart.model_validate(self.api.post("/api/practice-interview/start", setup.to_payload()))

    def complete(self, session_id: SessionId, history: List[ConversationMessage],
                 setup: PracticeSetup) -> PracticeCompletion:
        data = self.api.post("/api/practice-interview/complete", {
            "sessionId": session_id,
            "conversationHistory": [m.to_payload() for m in history],
            "jobTitle": setup.job_title,
            "seniorityLevel": setup.seniority_level,
            "language": setup.language,
        })
        return PracticeCompletion.model_validate(data or {"sessionId": session_id})


class JobInterviewApi:
    """Interviews tied to a specific job posting."""

    def __init__(self, api: ApiClient):
        self.api = api

    def generate_questions(self, job: Dict[str, Any]) -> List[str]:
        data = self.api.post("/api/job-interview/generate-questions", _job_fields(job)) or {}
        return [q.get("question", "") if isinstance(q, dict) else str(q) for q in data.get("questions", [])]

    def analyze(self, job: Dict[str, Any], transcript: str) -> str:
        body = _job_fields(job)
        body["interviewTranscript"] = transcript
        data = self.api.post("/api/job-interview/analyze", body) or {}
        return data.get("analysis") or ""

    def submit(self, job: Dict[str, Any], transcript: str, analysis: str) -> Dict[str, Any]:
        return self.api.post("/api/job-interview/submit", {
            "jobRecordId": job.get("recordId") or job.get("id"),
            "jobTitle": job.get("title") or job.get("jobTitle"),
            "companyName": job.get("companyName"),
            "jobDescription": job.get("description") or job.get("jobDescription") or "",
            "interviewTranscript": transcript,
            "interviewAnalysis": analysis,
        }) or {}


def _job_fields(job: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "jobTitle": job.get("title") or job.get("jobTitle") or "",
        "jobDescription": job.get("description") or job.get("jobDescription") or "",
        "jobRequirements": job.get("requirements") or job.get("jobRequirements") or "",
    }


def format_transcript(history: List[ConversationMessage]) -> str:
    labels = {"assistant": "Interviewer", "user": "Candidate"}
    return "\n".join(f"{labels.get(m.role, m.role)}: {m.content}" for m in history)
