"""
Phases of the interview session state machines.

Each phase is an immutable record carrying only the data valid in that
phase. Orchestrators replace the current phase object on every transition.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from ..schemas import (
    PracticeSetup, PracticeStart, PracticeFeedback, RespondResult, VoiceCompletion
)
from .models import SessionState, RecordingResult


@dataclass(frozen=True)
class Phase:

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class Closing(Phase):
    previous: Phase


@dataclass(frozen=True)
class Closed(Phase):
    pass


# Practice interview

@dataclass(frozen=True)
class Setup(Phase):
    pass


@dataclass(frozen=True)
class Interview(Phase):
    setup: PracticeSetup
    session: PracticeStart
    voice: bool = True
    connected: bool = False  # realtime connection still open


@dataclass(frozen=True)
class Analysis(Phase):
    setup: PracticeSetup
    session: PracticeStart
    voice: bool = True


@dataclass(frozen=True)
class Results(Phase):
    setup: PracticeSetup
    feedback: PracticeFeedback
    recording: Optional[RecordingResult] = None


PracticePhase = Union[Setup, Interview, Analysis, Results, Closing, Closed]


# Profile interview

@dataclass(frozen=True)
class Select(Phase):
    pass


@dataclass(frozen=True)
class ResumeRequired(Phase):
    interview_type: Optional[str] = None


@dataclass(frozen=True)
class Question(Phase):
    state: SessionState
    question: str


@dataclass(frozen=True)
class Transcription(Phase):
    """Text interview finished; the answers are shown back for review."""
    state: SessionState
    result: Optional[RespondResult] = None


@dataclass(frozen=True)
class VoiceInterview(Phase):
    state: SessionState
    language: str = "english"
    connected: bool = True


@dataclass(frozen=True)
class Processing(Phase):
    state: SessionState


@dataclass(frozen=True)
class Completed(Phase):
    state: SessionState
    completion: Any = None  # VoiceCompletion or RespondResult
    recording: Optional[RecordingResult] = None

    @property
    def all_interviews_completed(self) -> bool:
        return bool(getattr(self.completion, "all_interviews_completed", False))

    @property
    def next_interview_type(self) -> Optional[str]:
        return getattr(self.completion, "next_interview_type", None)


ProfileInterviewPhase = Union[
    Select, ResumeRequired, Question, Transcription, VoiceInterview, Processing, Completed,
    Closing, Closed
]


# Job interview

@dataclass(frozen=True)
class JobInterview(Phase):
    job: Dict[str, Any]
    questions: List[str]
    language: str = "english"
    connected: bool = True


@dataclass(frozen=True)
class JobAnalysis(Phase):
    job: Dict[str, Any]
    transcript: str


@dataclass(frozen=True)
class JobResults(Phase):
    job: Dict[str, Any]
    analysis: str
    submission: Dict[str, Any]
    recording: Optional[RecordingResult] = None


JobInterviewPhase = Union[Setup, JobInterview, JobAnalysis, JobResults, Closing, Closed]

__all__ = [
    "Phase", "Closing", "Closed",
    "Setup", "Interview", "Analysis", "Results", "PracticePhase",
    "Select", "ResumeRequired", "Question", "Transcription", "VoiceInterview",
    "Processing", "Completed", "ProfileInterviewPhase", "VoiceCompletion",
    "JobInterview", "JobAnalysis", "JobResults", "JobInterviewPhase",
]
