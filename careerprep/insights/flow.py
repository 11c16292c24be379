"""
Career insights flow: SourceSelection -> Uploading -> Analyzing -> Results,
with History reachable from the selection and results views.
"""
import time
import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from ..errors import CareerPrepError, InvalidTransitionError, UploadRejectedError
from ..infrastructure.api import ApiClient
from ..interview.events import SessionEventBus, PhaseChangedEvent
from ..notifications import Notifier
from ..profile.services import ProfileApi, has_profile
from ..schemas import AnalysisHistory, CareerSuggestions, ProfileCompletion
from .services import CareerInsightsApi

logger = logging.getLogger("insights_flow")

PROFILE = "profile"
DOCUMENT = "document"


@dataclass(frozen=True)
class InsightsPhase:

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class SourceSelection(InsightsPhase):
    has_profile: bool = False
    history_count: int = 0


@dataclass(frozen=True)
class Uploading(InsightsPhase):
    error: Optional[str] = None


@dataclass(frozen=True)
class Analyzing(InsightsPhase):
    source: str


@dataclass(frozen=True)
class InsightsResults(InsightsPhase):
    source: str
    suggestions: CareerSuggestions


@dataclass(frozen=True)
class History(InsightsPhase):
    history: AnalysisHistory


class CareerInsightsFlow:
    """Drives one career-insights view."""

    def __init__(self, api: ApiClient, notifier: Optional[Notifier] = None,
                 event_bus: Optional[SessionEventBus] = None, language: str = "english"):
        self.insights = CareerInsightsApi(api)
        self.profiles = ProfileApi(api)
        self.event_bus = event_bus or SessionEventBus()
        self.notifier = notifier or Notifier(self.event_bus)
        self.language = language
        self.completion: Optional[ProfileCompletion] = None
        self._phase: InsightsPhase = SourceSelection()

    @property
    def phase(self) -> InsightsPhase:
        return self._phase

    @property
    def suggestions(self) -> Optional[CareerSuggestions]:
        return getattr(self._phase, "suggestions", None)

    def load(self) -> SourceSelection:
        """Fetch profile completion and history count for the selection view."""
        try:
            self.completion = self.profiles.completion()
            count = self.insights.history(limit=1).total_count
        except (CareerPrepError, ValidationError) as e:
            logger.error(f"Failed to load career insights overview: {e}")
            self.completion, count = None, 0
        phase = SourceSelection(has_profile=has_profile(self.completion), history_count=count)
        self._transition(phase)
        return phase

    def select_profile(self) -> bool:
        """Analyze the saved profile. Only allowed once a profile exists."""
        selection = self._require(SourceSelection, action="select_profile")
        if not has_profile(self.completion):
            raise InvalidTransitionError(self._phase.name, "select_profile (no profile)")
        self._transition(Analyzing(source=PROFILE))
        try:
            suggestions = self.insights.profile_suggestions()
        except (CareerPrepError, ValidationError) as e:
            self._fail("Failed to generate career suggestions", e)
            self._transition(SourceSelection(has_profile=True, history_count=selection.history_count))
            return False
        self._transition(InsightsResults(source=PROFILE, suggestions=suggestions))
        return True

    def select_upload(self) -> None:
        self._require(SourceSelection, action="select_upload")
        self._transition(Uploading())

    def upload(self, path: str, mime_type: Optional[str] = None) -> bool:
        """
        Upload and analyze a document.

        A rejected file stays in ``Uploading`` with the reason; an analysis
        failure raises a toast and returns to ``Uploading``.
        """
        self._require(Uploading, action="upload")
        try:
            document = self.insights.upload(path, mime_type)
        except UploadRejectedError as e:
            logger.info(f"Upload rejected: {e.reason}")
            self._transition(Uploading(error=e.reason))
            return False
        except (CareerPrepError, OSError, ValidationError) as e:
            logger.error(f"Upload failed: {e}")
            self._transition(Uploading(error=str(e) or "Failed to upload file. Please try again."))
            return False

        self.notifier.toast("File uploaded successfully", "Analyzing your document...")
        self._transition(Analyzing(source=DOCUMENT))
        try:
            suggestions = self.insights.analyze_document(document, self.language)
        except (CareerPrepError, ValidationError) as e:
            self._fail("Analysis failed", e)
            self._transition(Uploading())
            return False

        self._transition(InsightsResults(source=DOCUMENT, suggestions=suggestions))
        return True

    def refresh(self) -> bool:
        """Regenerate profile-based suggestions."""
        phase = self._require(InsightsResults, action="refresh")
        if phase.source != PROFILE:
            return False
        try:
            suggestions = self.insights.profile_suggestions()
        except (CareerPrepError, ValidationError) as e:
            self._fail("Failed to refresh", e, "Please try again later")
            return False
        self.notifier.toast("Career suggestions refreshed", "Your career insights have been updated")
        self._transition(InsightsResults(source=PROFILE, suggestions=suggestions))
        return True

    def view_history(self) -> bool:
        self._require(SourceSelection, InsightsResults, History, action="view_history")
        try:
            history = self.insights.history()
        except (CareerPrepError, ValidationError) as e:
            self._fail("Failed to load history", e)
            return False
        self._transition(History(history=history))
        return True

    def open_analysis(self, analysis_id: int) -> bool:
        self._require(History, SourceSelection, action="open_analysis")
        try:
            suggestions = self.insights.get_analysis(analysis_id)
        except (CareerPrepError, ValidationError) as e:
            self._fail("Failed to load analysis", e)
            return False
        source = DOCUMENT
        if isinstance(self._phase, History):
            for entry in self._phase.history.analyses:
                if entry.id == analysis_id and entry.source_type == PROFILE:
                    source = PROFILE
        self._transition(InsightsResults(source=source, suggestions=suggestions))
        return True

    def delete_analysis(self, analysis_id: int) -> bool:
        phase = self._require(History, action="delete_analysis")
        try:
            self.insights.delete_analysis(analysis_id)
        except CareerPrepError as e:
            self._fail("Failed to delete analysis", e)
            return False
        remaining = [a for a in phase.history.analyses if a.id != analysis_id]
        history = AnalysisHistory(analyses=remaining, total_count=max(phase.history.total_count - 1, 0))
        self._transition(History(history=history))
        return True

    def new_analysis(self) -> SourceSelection:
        return self.load()

    def _require(self, *phase_types, action: str):
        if not isinstance(self._phase, phase_types):
            raise InvalidTransitionError(self._phase.name, action)
        return self._phase

    def _transition(self, new: InsightsPhase) -> None:
        old, self._phase = self._phase, new
        logger.info(f"Phase {old.name} -> {new.name}")
        self.event_bus.emit(PhaseChangedEvent("insights", time.time(), old.name, new.name))

    def _fail(self, title: str, error: Exception, description: Optional[str] = None) -> None:
        logger.error(f"{title}: {error}")
        self.notifier.error(title, description or str(error) or "Please try again")
