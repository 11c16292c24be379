"""
CareerPrep: job-seeker client for the recruiting platform.

Career insights from a profile or an uploaded document, profile-building
interviews (text or realtime voice), job interviews and standalone practice
interviews.
"""

__version__ = "1.0.0"

# Main entry points
from .infrastructure.api import ApiClient
from .interview.orchestrator import (
    PracticeInterviewOrchestrator, InterviewSessionOrchestrator, JobInterviewOrchestrator
)
from .insights.flow import CareerInsightsFlow

__all__ = [
    "ApiClient",
    "PracticeInterviewOrchestrator", "InterviewSessionOrchestrator", "JobInterviewOrchestrator",
    "CareerInsightsFlow",
]
