"""
Comprehensive profile endpoints.
"""
import logging
from typing import Any, Dict, Optional

from ..config import PROFILE_THRESHOLD_PERCENT
from ..infrastructure.api import ApiClient
from ..schemas import ProfileCompletion

logger = logging.getLogger("profile")


def has_profile(completion: Optional[ProfileCompletion]) -> bool:
    """A profile exists once it has a name or is more than 10% complete."""
    if completion is None:
        return False
    return bool(completion.name) or completion.completion_percentage > PROFILE_THRESHOLD_PERCENT


class ProfileApi:

    def __init__(self, api: ApiClient):
        self.api = api

    def completion(self) -> ProfileCompletion:
        return ProfileCompletion.model_validate(self.api.get("/api/profile/completion") or {})

    def get(self) -> Dict[str, Any]:
        return self.api.get("/api/comprehensive-profile") or {}

    def save(self, profile: Dict[str, Any]) -> Dict[str, Any]:
        data = self.api.post("/api/comprehensive-profile", profile) or {}
        logger.info(f"Profile saved ({data.get('completionPercentage', '?')}% complete)")
        return data

    def autosave(self, profile: Dict[str, Any]) -> Dict[str, Any]:
        return self.api.post("/api/comprehensive-profile/autosave", profile) or {}
