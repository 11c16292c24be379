"""
Job seeker profile access and autosave.
"""
from .services import ProfileApi, has_profile
from .autosave import ProfileAutosaver

__all__ = ["ProfileApi", "has_profile", "ProfileAutosaver"]
