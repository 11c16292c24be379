"""
Interview language normalization.
"""
from typing import Any, Dict, Optional

ENGLISH = "english"
ARABIC = "arabic"

_ARABIC_ALIASES = ("arabic", "ar", "العربية")
_ENGLISH_ALIASES = ("english", "en", "eng")
_ARABIC_VARIANTS = ("arabic", "egyptian_arabic", "egyptian-arabic", "ar", "ar-eg")


def get_interview_language(job: Optional[Dict[str, Any]], fallback: str = ENGLISH) -> str:
    """Normalize a job's ``interviewLanguage`` to ``english`` or ``arabic``."""
    value = (job or {}).get("interviewLanguage")
    if value:
        value = str(value).lower().strip()
        if value in _ARABIC_ALIASES:
            return ARABIC
        if value in _ENGLISH_ALIASES:
            return ENGLISH
    return fallback


def is_arabic(language: Optional[str]) -> bool:
    return (language or "").lower().strip() in _ARABIC_VARIANTS


def transcription_language(language: Optional[str]) -> str:
    """ISO code handed to the speech-to-text model."""
    return "ar" if is_arabic(language) else "en"
