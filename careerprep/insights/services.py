"""
Career insights endpoints.
"""
import os
import logging
from typing import Optional

from ..infrastructure.api import ApiClient
from ..schemas import (
    UploadedDocument, CareerSuggestions, SuggestionParagraphs, AnalysisHistory, AnalysisSummary
)
from .uploads import validate_path

logger = logging.getLogger("insights")


class CareerInsightsApi:
    """Document upload, analysis and the saved-analysis history."""

    def __init__(self, api: ApiClient):
        self.api = api

    def upload(self, path: str, mime_type: Optional[str] = None) -> UploadedDocument:
        """
        Validate and upload a document.

        Raises:
            UploadRejectedError: Before any request, when the file is not acceptable
        """
        mime_type = validate_path(path, mime_type)
        file_name = os.path.basename(path)
        with open(path, "rb") as f:
            data = self.api.post("/api/career-insights/upload",
                                 files={"file": (file_name, f, mime_type)})
        document = UploadedDocument.model_validate(data)
        logger.info(f"Uploaded {document.file_name} ({document.file_size} bytes)")
        return document

    def analyze_document(self, document: UploadedDocument, language: str = "english",
                         save_to_history: bool = True) -> CareerSuggestions:
        body = document.to_payload()
        body.update({"language": language, "saveToHistory": save_to_history})
        return CareerSuggestions.model_validate(
            self.api.post("/api/career-insights/analyze-document", body)
        )

    def profile_suggestions(self) -> CareerSuggestions:
        return CareerSuggestions.model_validate(self.api.get("/api/career-suggestions"))

    def history(self, limit: Optional[int] = None) -> AnalysisHistory:
        params = {"limit": limit} if limit is not None else None
        return AnalysisHistory.model_validate(
            self.api.get("/api/career-insights/history", params=params) or {}
        )

    def get_analysis(self, analysis_id: int) -> CareerSuggestions:
        """A saved analysis, shaped like a fresh result."""
        data = self.api.get(f"/api/career-insights/history/{analysis_id}") or {}
        analysis = AnalysisSummary.model_validate(data.get("analysis") or {})
        return CareerSuggestions(
            success=True,
            suggestions=analysis.suggestions or SuggestionParagraphs(),
            generated_at=analysis.created_at,
            analysis_id=analysis.id,
        )

    def delete_analysis(self, analysis_id: int) -> None:
        self.api.delete(f"/api/career-insights/history/{analysis_id}")
        logger.info(f"Deleted analysis {analysis_id}")
