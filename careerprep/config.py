"""
CareerPrep Configuration System
===============================

This file contains ALL configuration for the CareerPrep client.
- User settings at the top (things users might want to change)
- Internal constants at the bottom (technical defaults)
"""
import os
from dataclasses import dataclass
from typing import Optional


# =============================================================================
# USER SETTINGS - Edit these to customize the client
# =============================================================================

# Platform API
API_BASE_URL = "http://localhost:5000"
API_TOKEN = None  # Optional: bearer token
SESSION_COOKIE = None  # Optional: value of the connect.sid session cookie

# Interview settings
INTERVIEW_LANGUAGE = "english"  # english | arabic
UI_LANGUAGE = "en"  # en | ar
REQUIRE_CAMERA = True
KEYWORD_COMPLETION_FALLBACK = True
WORKDIR = "./_careerprep"

# Logging
LOG_FILE = "./_careerprep/careerprep.log"
LOG_LEVEL = "INFO"


# =============================================================================
# INTERNAL CONSTANTS - Don't change these unless you know what you're doing
# =============================================================================

# HTTP
HTTP_TIMEOUT = 30
SDP_TIMEOUT = 15
SESSION_COOKIE_NAME = "connect.sid"

# Realtime voice backend
REALTIME_MODEL = "gpt-realtime"
REALTIME_VOICE = "marin"
REALTIME_DATA_CHANNEL = "oai-events"
REALTIME_TRANSCRIPTION_MODEL = "whisper-1"
REALTIME_VAD_THRESHOLD = 0.6
REALTIME_VAD_PREFIX_PADDING_MS = 500
REALTIME_VAD_SILENCE_MS = 1800
REALTIME_TEMPERATURE = 0.8
REALTIME_MAX_OUTPUT_TOKENS = 4096
RESPONSE_TRIGGER_DELAY = 0.8
REMOTE_TRACK_TIMEOUT = 10.0

# Media acquisition
CAMERA_DEVICE = "/dev/video0"
CAMERA_FORMAT = "v4l2"
CAMERA_OPTIONS = {"video_size": "1280x720", "framerate": "30"}
MICROPHONE_DEVICE = "default"
MICROPHONE_FORMAT = "pulse"

# Recording
RECORDING_TIMESLICE = 5.0
RECORDING_MIME_TYPES = (
    "video/webm;codecs=vp8,opus",
    "video/webm;codecs=vp8",
    "video/webm",
)
RECORDING_CHUNK_SUFFIX = ".webm"

# Document uploads
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
ALLOWED_UPLOAD_TYPES = {
    "application/pdf": ".pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "application/msword": ".doc",
    "text/plain": ".txt",
}

# Profile
PROFILE_THRESHOLD_PERCENT = 10
AUTOSAVE_DEBOUNCE = 10.0
AUTOSAVE_INTERVAL = 10.0

# Avatar vendor
AVATAR_WS_MAX_ATTEMPTS = 3
AVATAR_WS_BACKOFF = 2.0
AVATAR_READY_DELAY = 1.0
AVATAR_READY_TIMEOUT = 15.0
AVATAR_CHUNK_DELAY = 0.05
AVATAR_SAMPLE_RATE = 24000


# =============================================================================
# MAIN CONFIG OBJECT
# =============================================================================

@dataclass
class Config:
    """Main configuration object."""
    api_base_url: str = API_BASE_URL
    api_token: Optional[str] = API_TOKEN
    session_cookie: Optional[str] = SESSION_COOKIE
    interview_language: str = INTERVIEW_LANGUAGE
    ui_language: str = UI_LANGUAGE
    require_camera: bool = REQUIRE_CAMERA
    keyword_completion_fallback: bool = KEYWORD_COMPLETION_FALLBACK
    workdir: str = WORKDIR
    http_timeout: int = HTTP_TIMEOUT
    log_file: str = LOG_FILE
    log_level: str = LOG_LEVEL


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def get_config() -> Config:
    """Load configuration, letting environment variables override the settings above."""
    base_url = os.getenv("CAREERPREP_API_BASE_URL") or API_BASE_URL

    if not base_url.startswith(("http://", "https://")):
        raise ValueError(f"CAREERPREP_API_BASE_URL must be an http(s) URL, got {base_url!r}")

    return Config(
        api_base_url=base_url.rstrip("/"),
        api_token=os.getenv("CAREERPREP_API_TOKEN") or API_TOKEN,
        session_cookie=os.getenv("CAREERPREP_SESSION_COOKIE") or SESSION_COOKIE,
        interview_language=os.getenv("CAREERPREP_INTERVIEW_LANGUAGE") or INTERVIEW_LANGUAGE,
        ui_language=os.getenv("CAREERPREP_UI_LANGUAGE") or UI_LANGUAGE,
        require_camera=_env_flag("CAREERPREP_REQUIRE_CAMERA", REQUIRE_CAMERA),
        keyword_completion_fallback=_env_flag(
            "CAREERPREP_KEYWORD_COMPLETION_FALLBACK", KEYWORD_COMPLETION_FALLBACK
        ),
        workdir=os.getenv("CAREERPREP_WORKDIR") or WORKDIR,
        log_file=os.getenv("CAREERPREP_LOG_FILE") or LOG_FILE,
        log_level=os.getenv("CAREERPREP_LOG_LEVEL") or LOG_LEVEL,
    )
