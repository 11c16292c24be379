"""
Testing infrastructure with fake transports for the session components.

Every fake implements the same narrow shape as the real dependency
(``requests.Session``, the media interfaces, the websocket client), so the
real session code runs unchanged against scripted responses.
"""
import json
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from ..errors import MediaPermissionError
from ..infrastructure.api import ApiClient
from ..infrastructure.media.devices import MediaStream

TEST_BASE_URL = "http://careerprep.test"


class FakeResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(self, status_code: int = 200, body: Any = None, text: Optional[str] = None,
                 reason: str = ""):
        self.status_code = status_code
        if text is None:
            text = json.dumps(body) if body is not None else ""
        self.text = text
        self.content = text.encode("utf-8")
        self.reason = reason
        self.url = ""

    def json(self) -> Any:
        return json.loads(self.text)


@dataclass
class RecordedCall:
    method: str
    path: str
    json: Any = None
    params: Optional[Dict[str, Any]] = None
    files: Optional[Dict[str, Any]] = None
    data: Any = None
    headers: Optional[Dict[str, str]] = None


class FakeCookies(dict):

    def set(self, name: str, value: str) -> None:
        self[name] = value


class FakeHttpSession:
    """
    Scripted ``requests.Session``.

    Responses are queued per (method, path). Each entry may be a JSON-able
    value (200 response), a ``FakeResponse``, an exception to raise, or a
    callable taking the ``RecordedCall``. The last queued entry is repeated.
    Unrouted requests get a 404.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], List[Any]] = {}
        self.calls: List[RecordedCall] = []
        self.headers: Dict[str, str] = {}
        self.cookies = FakeCookies()

    def route(self, method: str, path: str, *responses: Any) -> "FakeHttpSession":
        self.routes.setdefault((method.upper(), path), []).extend(responses)
        return self

    def request(self, method: str, url: str, json: Any = None, params=None, files=None,
                data=None, headers=None, timeout=None) -> FakeResponse:
        path = urlsplit(url).path
        call = RecordedCall(method.upper(), path, json, params, files, data, headers)
        if files:
            # Read file objects now; callers close them once the request returns
            call.files = {
                name: (part[0], part[1].read() if hasattr(part[1], "read") else part[1]) + tuple(part[2:])
                for name, part in files.items()
            }
        self.calls.append(call)

        queued = self.routes.get((call.method, path))
        if not queued:
            response = FakeResponse(404, {"message": f"No route for {call.method} {path}"})
        else:
            entry = queued.pop(0) if len(queued) > 1 else queued[0]
            if isinstance(entry, Exception):
                raise entry
            if callable(entry):
                entry = entry(call)
            response = entry if isinstance(entry, FakeResponse) else FakeResponse(200, entry)
        response.url = url
        return response

    def post(self, url: str, data=None, headers=None, timeout=None, **kwargs) -> FakeResponse:
        return self.request("POST", url, data=data, headers=headers, timeout=timeout, **kwargs)

    def calls_to(self, method: str, path: str) -> List[RecordedCall]:
        return [c for c in self.calls if c.method == method.upper() and c.path == path]


def make_api(session: Optional[FakeHttpSession] = None) -> Tuple[ApiClient, FakeHttpSession]:
    session = session or FakeHttpSession()
    return ApiClient(TEST_BASE_URL, session=session), session


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------

class FakeTrack:

    def __init__(self, kind: str):
        self.kind = kind
        self.enabled = True
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class FakeMediaDevices:
    """Hands out fake tracks; either device can be denied."""

    def __init__(self, deny_camera: bool = False, deny_microphone: bool = False):
        self.deny_camera = deny_camera
        self.deny_microphone = deny_microphone
        self.requests: List[Tuple[bool, bool]] = []
        self.streams: List[MediaStream] = []

    def get_user_media(self, audio: bool = True, video: bool = False) -> MediaStream:
        self.requests.append((audio, video))
        if video and self.deny_camera:
            raise MediaPermissionError("Permission denied: camera")
        if audio and self.deny_microphone:
            raise MediaPermissionError("Permission denied: microphone")
        tracks = []
        if video:
            tracks.append(FakeTrack("video"))
        if audio:
            tracks.append(FakeTrack("audio"))
        stream = MediaStream(tracks)
        self.streams.append(stream)
        return stream


class FakeDataChannel:

    def __init__(self, label: str):
        self.label = label
        self.ready_state = "connecting"
        self.sent: List[Dict[str, Any]] = []
        self._on_open: Optional[Callable[[], None]] = None
        self._on_message: Optional[Callable[[str], None]] = None

    def send(self, text: str) -> None:
        self.sent.append(json.loads(text))

    def on_open(self, callback: Callable[[], None]) -> None:
        self._on_open = callback

    def on_message(self, callback: Callable[[str], None]) -> None:
        self._on_message = callback

    def open(self) -> None:
        self.ready_state = "open"
        if self._on_open is not None:
            self._on_open()

    def receive(self, event: Dict[str, Any]) -> None:
        if self._on_message is not None:
            self._on_message(json.dumps(event))

    def close(self) -> None:
        self.ready_state = "closed"

    def sent_types(self) -> List[str]:
        return [e.get("type") for e in self.sent]


class FakePeerConnection:
    """Answers with a remote audio track and opens its channel on ``set_remote_answer``."""

    def __init__(self, remote_audio: bool = True, open_channel: bool = True):
        self.remote_audio = remote_audio
        self.open_channel = open_channel
        self.tracks: List[Any] = []
        self.channel: Optional[FakeDataChannel] = None
        self.remote_answer: Optional[str] = None
        self.closed = False
        self._on_track: Optional[Callable[[MediaStream], None]] = None

    def add_track(self, track) -> None:
        self.tracks.append(track)

    def create_data_channel(self, label: str) -> FakeDataChannel:
        self.channel = FakeDataChannel(label)
        return self.channel

    def on_track(self, callback: Callable[[MediaStream], None]) -> None:
        self._on_track = callback

    def create_offer(self) -> str:
        return "v=0\r\no=- offer\r\n"

    def set_remote_answer(self, sdp: str) -> None:
        self.remote_answer = sdp
        if self.remote_audio and self._on_track is not None:
            self._on_track(MediaStream([FakeTrack("audio")]))
        if self.open_channel and self.channel is not None:
            self.channel.open()

    def close(self) -> None:
        self.closed = True
        if self.channel is not None:
            self.channel.close()


class FakePeerFactory:
    """Creates ``FakePeerConnection`` objects and keeps them for inspection."""

    def __init__(self, **options):
        self.options = options
        self.created: List[FakePeerConnection] = []

    def __call__(self) -> FakePeerConnection:
        pc = FakePeerConnection(**self.options)
        self.created.append(pc)
        return pc

    @property
    def last(self) -> Optional[FakePeerConnection]:
        return self.created[-1] if self.created else None


class FakePlayback:

    def __init__(self):
        self.attached: List[MediaStream] = []
        self.detached = 0

    def attach(self, stream: MediaStream) -> None:
        self.attached.append(stream)

    def detach(self) -> None:
        self.detached += 1


class FakeEncoder:
    """Encoder whose chunks are pushed by the test through ``emit``."""

    mime_type = "video/webm"

    def __init__(self, final_chunk: bytes = b"", fail_on_stop: bool = False):
        self.final_chunk = final_chunk
        self.fail_on_stop = fail_on_stop
        self.started = False
        self.stopped = False
        self.stream = None
        self.mix_stream = None
        self.timeslice = None
        self._on_chunk: Optional[Callable[[bytes], None]] = None

    def start(self, stream, mix_stream, timeslice: float, on_chunk: Callable[[bytes], None]) -> None:
        self.started = True
        self.stream, self.mix_stream, self.timeslice = stream, mix_stream, timeslice
        self._on_chunk = on_chunk

    def emit(self, data: bytes) -> None:
        self._on_chunk(data)

    def stop(self) -> None:
        self.stopped = True
        if self.fail_on_stop:
            raise RuntimeError("encoder crashed")
        if self.final_chunk:
            self._on_chunk(self.final_chunk)


# ---------------------------------------------------------------------------
# Websocket
# ---------------------------------------------------------------------------

class FakeWebSocket:
    """Sync websocket; messages pushed with ``push`` are yielded to the reader."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.send_threads: List[str] = []
        self.closed = False
        self._incoming: "queue.Queue[Optional[str]]" = queue.Queue()

    def send(self, message: str) -> None:
        self.send_threads.append(threading.current_thread().name)
        self.sent.append(json.loads(message))

    def push(self, message: Dict[str, Any]) -> None:
        self._incoming.put(json.dumps(message))

    def __iter__(self):
        while True:
            message = self._incoming.get()
            if message is None:
                return
            yield message

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._incoming.put(None)

    def sent_types(self) -> List[str]:
        return [m.get("type") for m in self.sent]


class FakeWebSocketConnector:
    """``connect`` replacement failing the first ``failures`` attempts."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.urls: List[str] = []
        self.sockets: List[FakeWebSocket] = []

    def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if len(self.urls) <= self.failures:
            raise ConnectionRefusedError(f"connection refused: {url}")
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws


def create_test_conversation_data() -> List[Tuple[str, str]]:
    """A short assistant/user exchange for conversation tests."""
    return [
        ("assistant", "Welcome! Tell me about your most recent role."),
        ("user", "I led a team of four backend engineers."),
        ("assistant", "What was the hardest project you shipped?"),
        ("user", "Migrating our billing system without downtime."),
    ]
