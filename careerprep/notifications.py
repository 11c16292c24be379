"""
User-facing notifications ("toasts").
"""
import time
import logging
from dataclasses import dataclass
from typing import List, Optional

from .interview.events import SessionEventBus, ToastRaisedEvent

logger = logging.getLogger("notifications")

DEFAULT = "default"
DESTRUCTIVE = "destructive"


@dataclass(frozen=True)
class Toast:
    """A single notification shown to the job seeker."""
    title: str
    description: str = ""
    variant: str = DEFAULT

    @property
    def is_destructive(self) -> bool:
        return self.variant == DESTRUCTIVE


class Notifier:
    """Collects toasts, logs them and publishes them on the event bus."""

    def __init__(self, event_bus: Optional[SessionEventBus] = None, session_id: str = "-"):
        self.event_bus = event_bus
        self.session_id = session_id
        self.toasts: List[Toast] = []

    def toast(self, title: str, description: str = "", variant: str = DEFAULT) -> Toast:
        toast = Toast(title=title, description=description, variant=variant)
        self.toasts.append(toast)

        if toast.is_destructive:
            logger.warning(f"{title}: {description}")
        else:
            logger.info(f"{title}: {description}")

        if self.event_bus is not None:
            self.event_bus.emit(ToastRaisedEvent(
                self.session_id, time.time(), title, description, variant
            ))
        return toast

    def error(self, title: str, description: str = "") -> Toast:
        return self.toast(title, description, DESTRUCTIVE)

    @property
    def last(self) -> Optional[Toast]:
        return self.toasts[-1] if self.toasts else None

    def clear(self) -> None:
        self.toasts.clear()
