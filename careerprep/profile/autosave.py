"""
Background saving of a profile being edited.

Each edit restarts a debounce timer; independently, a fixed interval saves
whatever is still unsaved. Failed saves leave the draft dirty so the next
tick retries.
"""
import time
import logging
import threading
from typing import Any, Dict, Optional

from ..config import AUTOSAVE_DEBOUNCE, AUTOSAVE_INTERVAL
from ..errors import ApiError, CareerPrepError
from .services import ProfileApi

logger = logging.getLogger("autosave")


class ProfileAutosaver:

    def __init__(self, profile_api: ProfileApi,
                 debounce: float = AUTOSAVE_DEBOUNCE,
                 interval: float = AUTOSAVE_INTERVAL):
        self.profile_api = profile_api
        self.debounce = debounce
        self.interval = interval

        self.dirty = False
        self.is_saving = False
        self.last_saved: Optional[float] = None
        self._draft: Optional[Dict[str, Any]] = None
        self._lock = threading.Lock()
        self._debounce_timer: Optional[threading.Timer] = None
        self._stopped = threading.Event()
        self._ticker: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._ticker is not None:
            return
        self._stopped.clear()
        self._ticker = threading.Thread(target=self._tick, name="profile-autosave", daemon=True)
        self._ticker.start()

    def update(self, profile: Dict[str, Any]) -> None:
        """Record an edit and restart the debounce timer."""
        with self._lock:
            self._draft = dict(profile)
            self.dirty = True
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
            timer = threading.Timer(self.debounce, self.flush)
            timer.daemon = True
            self._debounce_timer = timer
        timer.start()

    def flush(self) -> bool:
        """Save now if there is an unsaved draft; returns True when a save succeeded."""
        with self._lock:
            if not self.dirty or self._draft is None or self.is_saving:
                return False
            draft = self._draft
            self.is_saving = True

        try:
            self.profile_api.autosave(draft)
        except CareerPrepError as e:
            if not (isinstance(e, ApiError) and e.is_unauthorized):
                logger.error(f"Auto-save failed: {e}")
            return False
        finally:
            with self._lock:
                self.is_saving = False

        with self._lock:
            # A newer edit may have arrived while saving
            if self._draft is draft:
                self.dirty = False
            self.last_saved = time.time()
        logger.debug("Profile draft auto-saved")
        return True

    def stop(self) -> None:
        with self._lock:
            timer, self._debounce_timer = self._debounce_timer, None
        if timer is not None:
            timer.cancel()
        self._stopped.set()
        ticker, self._ticker = self._ticker, None
        if ticker is not None:
            ticker.join(timeout=self.interval + 1)

    def _tick(self) -> None:
        while not self._stopped.wait(self.interval):
            if self.dirty:
                self.flush()
