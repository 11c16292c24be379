"""
HTTP access to the recruiting platform.
"""
from .client import ApiClient

__all__ = ["ApiClient"]
