"""
Signaling with the realtime voice backend.

Obtains an ephemeral credential from the platform, negotiates a peer
connection through the platform's SDP relay, and opens the event data
channel. The local media stream belongs to the caller and is not stopped
here.
"""
import json
import logging
import threading
from typing import Any, Callable, Dict, Optional

from ..config import (
    REALTIME_MODEL, REALTIME_VOICE, REALTIME_DATA_CHANNEL, REALTIME_TRANSCRIPTION_MODEL,
    REALTIME_VAD_THRESHOLD, REALTIME_VAD_PREFIX_PADDING_MS, REALTIME_VAD_SILENCE_MS,
    REALTIME_TEMPERATURE, REALTIME_MAX_OUTPUT_TOKENS, REMOTE_TRACK_TIMEOUT
)
from ..errors import ApiError, NetworkError, RealtimeConnectionError
from ..infrastructure.api import ApiClient
from ..infrastructure.media.devices import MediaStream
from ..infrastructure.media.interfaces import PeerConnectionFactory
from ..schemas import parse_ephemeral_key
from .channel import RESPONSE_CREATE
from .language import transcription_language

logger = logging.getLogger("signaling")

REALTIME_CREDENTIAL_PATH = "/api/realtime/session"
JOB_INTERVIEW_CREDENTIAL_PATH = "/api/job-interview/session"

IDLE = "idle"
CONNECTING = "connecting"
CONNECTED = "connected"


def build_session_update(instructions: str, language: str = "english",
                         voice: str = REALTIME_VOICE) -> Dict[str, Any]:
    """The ``session.update`` event sent once the data channel opens."""
    return {
        "type": "session.update",
        "session": {
            "modalities": ["text", "audio"],
            "instructions": instructions,
            "voice": voice,
            "input_audio_format": "pcm16",
            "output_audio_format": "pcm16",
            "input_audio_transcription": {
                "model": REALTIME_TRANSCRIPTION_MODEL,
                "language": transcription_language(language),
            },
            "turn_detection": {
                "type": "server_vad",
                "threshold": REALTIME_VAD_THRESHOLD,
                "prefix_padding_ms": REALTIME_VAD_PREFIX_PADDING_MS,
                "silence_duration_ms": REALTIME_VAD_SILENCE_MS,
            },
            "tools": [],
            "tool_choice": "none",
            "temperature": REALTIME_TEMPERATURE,
            "max_response_output_tokens": REALTIME_MAX_OUTPUT_TOKENS,
        },
    }


class SignalingClient:
    """Owns at most one peer connection to the realtime voice backend."""

    def __init__(self,
                 api: ApiClient,
                 peer_factory: PeerConnectionFactory,
                 credential_path: str = REALTIME_CREDENTIAL_PATH,
                 playback=None,
                 remote_track_timeout: float = REMOTE_TRACK_TIMEOUT,
                 model: str = REALTIME_MODEL,
                 voice: str = REALTIME_VOICE):
        self.api = api
        self.peer_factory = peer_factory
        self.credential_path = credential_path
        self.playback = playback
        self.remote_track_timeout = remote_track_timeout
        self.model = model
        self.voice = voice

        self.state = IDLE
        self.remote_stream: Optional[MediaStream] = None
        self._pc = None
        self._channel = None
        self._remote_ready = threading.Event()
        self._session_update: Optional[Dict[str, Any]] = None

    @property
    def is_connected(self) -> bool:
        return self.state == CONNECTED

    def connect(self,
                local_stream: MediaStream,
                instructions: str,
                language: str = "english",
                on_event: Optional[Callable[[str], None]] = None,
                credential_params: Optional[Dict[str, Any]] = None) -> None:
        """
        Establish the voice connection.

        Args:
            local_stream: Stream whose first audio track is sent to the backend
            instructions: Interviewer instructions for ``session.update``
            language: Interview language, selects the transcription language
            on_event: Called with each raw data-channel message
            credential_params: Extra fields for the credential request

        Raises:
            RealtimeConnectionError: If the credential request fails, the relay
                rejects the offer, or no remote audio track arrives
        """
        if self.state != IDLE:
            logger.info(f"connect() ignored while {self.state}")
            return

        self.state = CONNECTING
        self._remote_ready.clear()
        self._session_update = build_session_update(instructions, language, self.voice)

        try:
            ephemeral_key = self._request_credential(credential_params)

            self._pc = self.peer_factory()
            self._pc.on_track(self._on_remote_stream)

            audio_tracks = local_stream.get_audio_tracks()
            if audio_tracks:
                self._pc.add_track(audio_tracks[0])
            else:
                logger.warning("Local stream has no audio track; connecting receive-only")

            self._channel = self._pc.create_data_channel(REALTIME_DATA_CHANNEL)
            if on_event is not None:
                self._channel.on_message(on_event)
            self._channel.on_open(self._on_channel_open)

            offer_sdp = self._pc.create_offer()
            try:
                answer_sdp = self.api.post_sdp(
                    f"{REALTIME_CREDENTIAL_PATH}/{ephemeral_key}", offer_sdp, ephemeral_key
                )
            except (ApiError, NetworkError) as e:
                raise RealtimeConnectionError("Failed to establish WebRTC connection") from e
            self._pc.set_remote_answer(answer_sdp)

            if not self._remote_ready.wait(self.remote_track_timeout):
                raise RealtimeConnectionError("No remote audio track received")

            if self.playback is not None:
                self.playback.attach(self.remote_stream)

        except RealtimeConnectionError as e:
            logger.error(f"Realtime connection failed: {e}")
            self._teardown()
            raise
        except Exception as e:
            logger.error(f"Realtime connection failed: {e}")
            self._teardown()
            raise RealtimeConnectionError(str(e)) from e

        self.state = CONNECTED
        logger.info("Voice interview connection established")

    def disconnect(self) -> None:
        """Close the connection. Closing an already-closed connection is a no-op."""
        if self.state == IDLE and self._pc is None:
            return
        logger.info("Disconnecting realtime session")
        self._teardown()

    def send(self, event: Dict[str, Any]) -> bool:
        """Send an event if the data channel is open."""
        channel = self._channel
        if channel is None or channel.ready_state != "open":
            logger.debug(f"Dropping {event.get('type')}: data channel not open")
            return False
        channel.send(json.dumps(event))
        return True

    @staticmethod
    def toggle_mute(local_stream: MediaStream) -> bool:
        """Flip the local microphone; returns True when the mic is live."""
        tracks = local_stream.get_audio_tracks()
        if not tracks:
            return False
        track = tracks[0]
        track.enabled = not getattr(track, "enabled", True)
        return track.enabled

    def _request_credential(self, params: Optional[Dict[str, Any]]) -> str:
        body = {"model": self.model, "voice": self.voice}
        body.update(params or {})
        try:
            data = self.api.post(self.credential_path, body)
        except (ApiError, NetworkError) as e:
            raise RealtimeConnectionError("Failed to get ephemeral token") from e
        return parse_ephemeral_key(data)

    def _on_remote_stream(self, stream: MediaStream) -> None:
        self.remote_stream = stream
        self._remote_ready.set()

    def _on_channel_open(self) -> None:
        logger.info("Data channel open, configuring session")
        if self._session_update is not None:
            self.send(self._session_update)
        self.send(RESPONSE_CREATE)

    def _teardown(self) -> None:
        channel, self._channel = self._channel, None
        pc, self._pc = self._pc, None
        playback = self.playback

        if playback is not None:
            try:
                playback.detach()
            except Exception as e:
                logger.warning(f"Error detaching playback: {e}")
        if channel is not None:
            try:
                channel.close()
            except Exception as e:
                logger.warning(f"Error closing data channel: {e}")
        if pc is not None:
            try:
                pc.close()
            except Exception as e:
                logger.warning(f"Error closing peer connection: {e}")

        self.remote_stream = None
        self.state = IDLE
