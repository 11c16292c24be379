"""
Streaming avatar client.

The avatar vendor session is brokered by the platform (create, start, stop).
Once started, the avatar is driven over a websocket: the interviewer's audio
is forwarded as base64 PCM16 at 24kHz and the avatar lip-syncs to it.
"""
import json
import itertools
import time
import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple, Union

import numpy as np
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import connect as ws_connect

from ..config import (
    AVATAR_WS_MAX_ATTEMPTS, AVATAR_WS_BACKOFF, AVATAR_READY_DELAY,
    AVATAR_READY_TIMEOUT, AVATAR_CHUNK_DELAY, AVATAR_SAMPLE_RATE
)
from ..errors import CareerPrepError, VendorSessionError
from ..infrastructure.api import ApiClient
from ..infrastructure.media.audio import prepare_avatar_audio, pcm_to_base64
from ..schemas import AvatarSession
from .prompts import InterviewPrompts

logger = logging.getLogger("avatar")

AudioChunk = Union[bytes, np.ndarray]


class AvatarApi:
    """Platform endpoints that broker the avatar vendor session."""

    def __init__(self, api: ApiClient):
        self.api = api

    def status(self) -> bool:
        try:
            data = self.api.get("/api/heygen/status") or {}
        except CareerPrepError as e:
            logger.error(f"Error checking avatar availability: {e}")
            return False
        return bool(data.get("available"))

    def create_session(self) -> AvatarSession:
        data = self.api.post("/api/heygen/create-session",
                             {"quality": "medium", "videoEncoding": "VP8"}) or {}
        if not data.get("success") or not data.get("session"):
            raise VendorSessionError("Invalid session response")
        session = AvatarSession.model_validate(data["session"])
        logger.info(f"Avatar session created: {session.session_id}")
        return session

    def start_session(self, session_id: str) -> None:
        data = self.api.post("/api/heygen/start-session", {"sessionId": session_id}) or {}
        if not data.get("success"):
            raise VendorSessionError("Failed to start avatar session")
        logger.info(f"Avatar session started: {data.get('status')}")

    def send_task(self, session_id: str, text: str) -> Dict[str, Any]:
        data = self.api.post("/api/heygen/send-task", {"sessionId": session_id, "text": text}) or {}
        if not data.get("success"):
            raise VendorSessionError("Failed to send message to avatar")
        logger.debug(f"Avatar task {data.get('taskId')} ({data.get('durationMs')} ms)")
        return data

    def stop_session(self, session_id: str) -> None:
        """Stop the vendor session. Failures are logged, never raised."""
        try:
            data = self.api.post("/api/heygen/stop-session", {"sessionId": session_id}) or {}
            logger.info(f"Avatar session stopped: {data.get('status')}")
        except CareerPrepError as e:
            logger.warning(f"Error stopping avatar session: {e}")


class AvatarAudioSocket:
    """
    Websocket that feeds interviewer audio to the avatar.

    Audio queued before the session is ready is held and sent once the
    readiness delay has elapsed.
    """

    def __init__(self,
                 connect_fn: Callable[[str], Any] = ws_connect,
                 sleep: Callable[[float], None] = time.sleep,
                 max_attempts: int = AVATAR_WS_MAX_ATTEMPTS,
                 backoff: float = AVATAR_WS_BACKOFF,
                 ready_delay: float = AVATAR_READY_DELAY,
                 chunk_delay: float = AVATAR_CHUNK_DELAY,
                 on_speaking: Optional[Callable[[bool], None]] = None,
                 on_error: Optional[Callable[[Exception], None]] = None,
                 on_message: Optional[Callable[[Dict[str, Any]], None]] = None):
        self.connect_fn = connect_fn
        self.sleep = sleep
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.ready_delay = ready_delay
        self.chunk_delay = chunk_delay
        self.on_speaking = on_speaking
        self.on_error = on_error
        self.on_message = on_message

        self.is_speaking = False
        self.is_listening = False
        self._ws = None
        self._ready = threading.Event()
        self._ready_timer: Optional[threading.Timer] = None
        self._receiver: Optional[threading.Thread] = None
        self._sender: Optional[threading.Thread] = None
        self._queue: Deque[Tuple[AudioChunk, int, bool]] = deque()
        self._wakeup = threading.Condition()
        self._event_ids = itertools.count(1)

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    def connect(self, session: AvatarSession) -> None:
        """
        Open the websocket, retrying with a growing delay.

        Raises:
            VendorSessionError: If the session has no endpoint or every attempt fails
        """
        if not session.realtime_endpoint:
            raise VendorSessionError("Missing realtime endpoint for WebSocket connection")

        for attempt in range(self.max_attempts):
            logger.info(f"Connecting avatar websocket (attempt {attempt + 1}/{self.max_attempts})")
            try:
                self._ws = self.connect_fn(session.realtime_endpoint)
                break
            except (OSError, WebSocketException) as e:
                logger.error(f"Avatar websocket error: {e}")
                if attempt + 1 < self.max_attempts:
                    self.sleep(self.backoff * (attempt + 1))
        else:
            raise VendorSessionError(
                f"WebSocket connection failed after {self.max_attempts} attempts"
            )

        logger.info("Avatar websocket connected")
        self._receiver = threading.Thread(target=self._receive_loop, args=(self._ws,),
                                          name="avatar-ws", daemon=True)
        self._receiver.start()
        self._sender = threading.Thread(target=self._send_loop, args=(self._ws,),
                                        name="avatar-audio", daemon=True)
        self._sender.start()

        self._ready_timer = threading.Timer(self.ready_delay, self._mark_ready)
        self._ready_timer.daemon = True
        self._ready_timer.start()

    def wait_ready(self, timeout: float = AVATAR_READY_TIMEOUT) -> bool:
        return self._ready.wait(timeout)

    def stream_audio(self, audio: AudioChunk, is_final: bool = False,
                     sample_rate: int = AVATAR_SAMPLE_RATE) -> None:
        """
        Queue interviewer audio; ``is_final`` closes the current utterance.

        Only enqueues. Conversion and sending happen on the socket's sender
        thread, so this is safe to call from an event loop.
        """
        with self._wakeup:
            self._queue.append((audio, sample_rate, is_final))
            self._wakeup.notify_all()
        if not self.is_ready:
            logger.debug("Audio queued, avatar session not ready yet")

    def start_listening(self) -> None:
        if self._send_control("agent.start_listening"):
            self.is_listening = True

    def stop_listening(self) -> None:
        if self._send_control("agent.stop_listening"):
            self.is_listening = False

    def interrupt(self) -> None:
        with self._wakeup:
            self._queue.clear()
        self._send_control("agent.interrupt")

    def handle_message(self, raw: Union[str, bytes]) -> Optional[Dict[str, Any]]:
        try:
            message = json.loads(raw)
        except ValueError as e:
            logger.warning(f"Error parsing avatar message: {e}")
            return None

        message_type = message.get("type")
        task_id = (message.get("task") or {}).get("id")
        if message_type == "agent.speak_started":
            logger.debug(f"Avatar started speaking for task {task_id}")
            self._set_speaking(True)
        elif message_type in ("agent.speak_ended", "agent.speak_interrupted"):
            logger.debug(f"Avatar stopped speaking for task {task_id} ({message_type})")
            self._set_speaking(False)
        elif message_type == "session.state_updated":
            logger.debug(f"Avatar session state: {message.get('state')}")
        elif message_type == "error":
            error = message.get("error") or {}
            logger.error(f"Avatar websocket error event: {error}")
            if self.on_error is not None:
                self.on_error(VendorSessionError(error.get("message") or "Avatar error"))
        else:
            logger.debug(f"Avatar event: {message_type}")

        if self.on_message is not None:
            self.on_message(message)
        return message

    def disconnect(self) -> None:
        """Close the websocket and drop queued audio. Safe to call repeatedly."""
        timer, self._ready_timer = self._ready_timer, None
        if timer is not None:
            timer.cancel()
        ws, self._ws = self._ws, None
        self._reset()
        if ws is not None:
            try:
                ws.close()
            except (OSError, WebSocketException) as e:
                logger.warning(f"Error closing avatar websocket: {e}")
            logger.info("Avatar websocket disconnected")

    def _next_event_id(self) -> str:
        return f"event_{next(self._event_ids)}_{int(time.time() * 1000)}"

    def _mark_ready(self) -> None:
        self._ready_timer = None
        if self._ws is None:
            logger.error("Avatar websocket closed before the audio session was ready")
            return
        with self._wakeup:
            self._ready.set()
            self._wakeup.notify_all()
        logger.info("Avatar audio session ready")

    def _send_loop(self, ws) -> None:
        """Send queued audio in order, pacing chunks, until ``ws`` is replaced or closed."""
        while True:
            with self._wakeup:
                while self._ws is ws and not (self._ready.is_set() and self._queue):
                    self._wakeup.wait()
                if self._ws is not ws:
                    return
                audio, sample_rate, is_final = self._queue.popleft()

            data = prepare_avatar_audio(audio, sample_rate) if len(audio) else b""
            if not data and not is_final:
                continue
            message = {
                "type": "agent.speak_end" if is_final else "agent.speak",
                "event_id": self._next_event_id(),
                "audio": pcm_to_base64(data) if data else "",
            }
            # Late audio is useless to the avatar, so a failed chunk is dropped
            if self._send(message) and data and not is_final:
                self.sleep(self.chunk_delay)

    def _send(self, message: Dict[str, Any]) -> bool:
        ws = self._ws
        if ws is None:
            logger.warning(f"Avatar websocket not connected, cannot send {message['type']}")
            return False
        try:
            ws.send(json.dumps(message))
        except (OSError, WebSocketException) as e:
            logger.error(f"Error sending {message['type']} to avatar: {e}")
            return False
        return True

    def _send_control(self, message_type: str) -> bool:
        if self._ws is None:
            logger.warning(f"Cannot send {message_type}, avatar websocket not ready")
            return False
        return self._send({"type": message_type, "event_id": self._next_event_id()})

    def _receive_loop(self, ws) -> None:
        try:
            for raw in ws:
                self.handle_message(raw)
        except ConnectionClosed:
            pass
        except (OSError, WebSocketException) as e:
            logger.error(f"Avatar websocket receive failed: {e}")
        if self._ws is ws:
            logger.info("Avatar websocket closed by server")
            self._ws = None
            self._reset()

    def _reset(self) -> None:
        with self._wakeup:
            self._ready.clear()
            self._queue.clear()
            self._wakeup.notify_all()
        self.is_listening = False
        self._set_speaking(False)

    def _set_speaking(self, value: bool) -> None:
        if self.is_speaking != value:
            self.is_speaking = value
            if self.on_speaking is not None:
                self.on_speaking(value)


class AvatarInterview:
    """Brings an avatar up for an interview and tears it down again."""

    def __init__(self, api: AvatarApi, socket: Optional[AvatarAudioSocket] = None,
                 notifier=None, ready_timeout: float = AVATAR_READY_TIMEOUT):
        self.api = api
        self.socket = socket or AvatarAudioSocket()
        self.notifier = notifier
        self.ready_timeout = ready_timeout
        self.session: Optional[AvatarSession] = None

    @property
    def is_active(self) -> bool:
        return self.session is not None

    def start(self) -> AvatarSession:
        """
        Create and start a session and open its audio socket.

        On failure everything already opened is disconnected before the
        error propagates.
        """
        try:
            session = self._open()
            self.socket.connect(session)
            if not self.socket.wait_ready(self.ready_timeout):
                raise VendorSessionError("Avatar audio session ready timeout")
        except (CareerPrepError, ValidationError) as e:
            self._fail(e)
            raise

        self._notify_connected()
        return session

    def start_text(self, interview_type: str, questions: List[Any],
                   first_name: Optional[str] = None) -> AvatarSession:
        """Start a session driven by text tasks and speak the greeting."""
        try:
            session = self._open()
            self.api.send_task(session.session_id,
                               InterviewPrompts.greeting(interview_type, len(questions), first_name))
        except (CareerPrepError, ValidationError) as e:
            self._fail(e)
            raise

        self._notify_connected()
        return session

    def speak(self, text: str) -> Dict[str, Any]:
        if self.session is None:
            raise VendorSessionError("No active avatar session")
        return self.api.send_task(self.session.session_id, text)

    def disconnect(self) -> None:
        self.socket.disconnect()
        session, self.session = self.session, None
        if session is not None:
            self.api.stop_session(session.session_id)

    def _open(self) -> AvatarSession:
        if not self.api.status():
            raise VendorSessionError("Avatar service is not available")
        self.session = self.api.create_session()
        self.api.start_session(self.session.session_id)
        return self.session

    def _fail(self, error: Exception) -> None:
        logger.error(f"Error starting avatar interview: {error}")
        if self.notifier is not None:
            self.notifier.error("Connection Failed", f"Could not connect to avatar: {error}")
        self.disconnect()

    def _notify_connected(self) -> None:
        if self.notifier is not None:
            self.notifier.toast("Avatar Connected",
                                "Your AI interviewer is ready. The interview will begin shortly.")
