"""
Career insights: document upload, analysis and saved history.
"""
from .uploads import validate_upload, validate_path, guess_mime_type
from .services import CareerInsightsApi
from .flow import CareerInsightsFlow

__all__ = [
    "validate_upload", "validate_path", "guess_mime_type",
    "CareerInsightsApi", "CareerInsightsFlow",
]
