"""
Exception hierarchy for the CareerPrep client.

Permission errors are recovered locally, network errors surface as toasts,
vendor session errors are retried before becoming fatal, and recording
finalization errors never interrupt an interview.
"""
from typing import Optional


class CareerPrepError(Exception):
    """Base class for all client errors."""


class ApiError(CareerPrepError):
    """The platform API answered with a non-2xx status."""

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"{status}: {message}")

    @property
    def is_unauthorized(self) -> bool:
        return self.status == 401

    @property
    def requires_resume(self) -> bool:
        return "Resume required" in self.message or "requiresResume" in self.message


class NetworkError(CareerPrepError):
    """The request never produced an HTTP response."""


class UploadRejectedError(CareerPrepError):
    """A document failed client-side validation before any upload."""

    def __init__(self, reason: str, file_name: Optional[str] = None):
        self.reason = reason
        self.file_name = file_name
        super().__init__(reason)


class MediaPermissionError(CareerPrepError):
    """Camera or microphone access was denied."""


class MediaUnavailableError(CareerPrepError):
    """Neither camera nor microphone could be opened."""


class RealtimeConnectionError(CareerPrepError, ConnectionError):
    """Signaling with the realtime voice backend failed."""


class VendorSessionError(CareerPrepError):
    """A vendor session (avatar socket, peer connection) failed for good."""


class InvalidTransitionError(CareerPrepError):
    """An orchestrator was asked to move from a phase that does not allow it."""

    def __init__(self, phase: str, action: str):
        self.phase = phase
        self.action = action
        super().__init__(f"Cannot {action} while in phase '{phase}'")
