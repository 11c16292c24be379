"""
aiortc-backed implementations of the media interfaces.

aiortc is asyncio based; the rest of the client is not. All aiortc objects
live on one background event loop and are driven from the calling thread
through ``RtcLoop.run``. Callbacks registered by the session components
fire on that loop thread.
"""
import os
import asyncio
import logging
import tempfile
import threading
from typing import Callable, List, Optional

import numpy as np
from aiortc import MediaStreamTrack, RTCPeerConnection, RTCSessionDescription
from aiortc.mediastreams import MediaStreamError
from aiortc.contrib.media import MediaPlayer, MediaRecorder, MediaRelay

from .devices import MediaStream
from ...config import (
    CAMERA_DEVICE, CAMERA_FORMAT, CAMERA_OPTIONS,
    MICROPHONE_DEVICE, MICROPHONE_FORMAT, RECORDING_CHUNK_SUFFIX
)
from ...errors import MediaPermissionError

logger = logging.getLogger("rtc")


class RtcLoop:
    """A private asyncio loop running in a daemon thread."""

    def __init__(self):
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name="rtc-loop", daemon=True)
        self._thread.start()

    def _run(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def run(self, coro, timeout: Optional[float] = None):
        """Run a coroutine on the loop and wait for its result."""
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout)

    def call(self, fn: Callable, *args):
        """Run a plain callable on the loop thread and wait for its result."""
        async def _invoke():
            return fn(*args)
        return self.run(_invoke())

    def call_soon(self, fn: Callable, *args) -> None:
        self.loop.call_soon_threadsafe(fn, *args)


_rtc_loop: Optional[RtcLoop] = None
_relay: Optional[MediaRelay] = None
_lock = threading.Lock()


def get_rtc_loop() -> RtcLoop:
    global _rtc_loop
    with _lock:
        if _rtc_loop is None:
            _rtc_loop = RtcLoop()
        return _rtc_loop


def get_relay() -> MediaRelay:
    """Shared relay; one source track may feed the peer connection, playback and the encoder."""
    global _relay
    with _lock:
        if _relay is None:
            _relay = MediaRelay()
        return _relay


class GatedAudioTrack(MediaStreamTrack):
    """Microphone track that sends silence while ``enabled`` is False."""

    kind = "audio"

    def __init__(self, source: MediaStreamTrack):
        super().__init__()
        self.source = source
        self.enabled = True

    async def recv(self):
        frame = await self.source.recv()
        if not self.enabled:
            for plane in frame.planes:
                plane.update(bytes(plane.buffer_size))
        return frame

    def stop(self):
        super().stop()
        self.source.stop()


class AiortcMediaDevices:
    """Opens camera and microphone through FFmpeg device demuxers."""

    def __init__(self,
                 camera: str = CAMERA_DEVICE,
                 camera_format: str = CAMERA_FORMAT,
                 camera_options: Optional[dict] = None,
                 microphone: str = MICROPHONE_DEVICE,
                 microphone_format: str = MICROPHONE_FORMAT):
        self.camera = camera
        self.camera_format = camera_format
        self.camera_options = camera_options if camera_options is not None else dict(CAMERA_OPTIONS)
        self.microphone = microphone
        self.microphone_format = microphone_format

    def get_user_media(self, audio: bool = True, video: bool = False) -> MediaStream:
        tracks: List[MediaStreamTrack] = []
        try:
            if video:
                camera = MediaPlayer(self.camera, format=self.camera_format, options=self.camera_options)
                if camera.video is None:
                    raise MediaPermissionError(f"No video track on {self.camera}")
                tracks.append(camera.video)
            if audio:
                microphone = MediaPlayer(self.microphone, format=self.microphone_format)
                if microphone.audio is None:
                    raise MediaPermissionError(f"No audio track on {self.microphone}")
                tracks.append(GatedAudioTrack(microphone.audio))
        except MediaPermissionError:
            MediaStream(tracks).stop()
            raise
        except Exception as e:
            # FFmpeg reports denied or busy devices as generic OS/AV errors
            MediaStream(tracks).stop()
            raise MediaPermissionError(str(e)) from e

        logger.info(f"Opened local media: {[t.kind for t in tracks]}")
        return MediaStream(tracks)


class AiortcDataChannel:
    """Thread-safe facade over an RTCDataChannel."""

    def __init__(self, channel, rtc_loop: RtcLoop):
        self._channel = channel
        self._rtc = rtc_loop
        self.label = channel.label

    @property
    def ready_state(self) -> str:
        return self._channel.readyState

    def send(self, text: str) -> None:
        self._rtc.call_soon(self._channel.send, text)

    def on_open(self, callback: Callable[[], None]) -> None:
        self._channel.on("open", callback)

    def on_message(self, callback: Callable[[str], None]) -> None:
        self._channel.on("message", callback)

    def close(self) -> None:
        self._rtc.call_soon(self._channel.close)


class AiortcPeerConnection:
    """Thread-safe facade over an RTCPeerConnection."""

    def __init__(self, rtc_loop: Optional[RtcLoop] = None):
        self._rtc = rtc_loop or get_rtc_loop()
        self._pc = self._rtc.run(self._create())
        self._closed = False

    @staticmethod
    async def _create():
        return RTCPeerConnection()

    def add_track(self, track) -> None:
        self._rtc.call(self._pc.addTrack, get_relay().subscribe(track))

    def create_data_channel(self, label: str) -> AiortcDataChannel:
        channel = self._rtc.call(self._pc.createDataChannel, label)
        return AiortcDataChannel(channel, self._rtc)

    def on_track(self, callback: Callable[[MediaStream], None]) -> None:
        def _on_track(track):
            logger.info(f"Remote {track.kind} track received")
            if track.kind == "audio":
                callback(MediaStream([track]))
        self._pc.on("track", _on_track)

    def create_offer(self) -> str:
        async def _offer():
            offer = await self._pc.createOffer()
            await self._pc.setLocalDescription(offer)
            return self._pc.localDescription.sdp
        return self._rtc.run(_offer())

    def set_remote_answer(self, sdp: str) -> None:
        answer = RTCSessionDescription(sdp=sdp, type="answer")
        self._rtc.run(self._pc.setRemoteDescription(answer))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._rtc.run(self._pc.close())


class SpeakerPlayback:
    """Plays a remote audio stream on a local output device."""

    def __init__(self, device: str = MICROPHONE_DEVICE, device_format: str = MICROPHONE_FORMAT,
                 rtc_loop: Optional[RtcLoop] = None):
        self.device = device
        self.device_format = device_format
        self._rtc = rtc_loop or get_rtc_loop()
        self._sink: Optional[MediaRecorder] = None

    def attach(self, stream: MediaStream) -> None:
        self.detach()
        sink = MediaRecorder(self.device, format=self.device_format)
        for track in stream.get_audio_tracks():
            sink.addTrack(get_relay().subscribe(track))
        self._rtc.run(sink.start())
        self._sink = sink

    def detach(self) -> None:
        sink, self._sink = self._sink, None
        if sink is not None:
            self._rtc.run(sink.stop())


class AudioTap:
    """Pulls decoded frames from a remote audio stream and hands them to a callback."""

    def __init__(self, stream: MediaStream, on_audio: Callable[[np.ndarray, int], None],
                 rtc_loop: Optional[RtcLoop] = None):
        self._rtc = rtc_loop or get_rtc_loop()
        self._tracks = [get_relay().subscribe(t) for t in stream.get_audio_tracks()]
        self.on_audio = on_audio
        self._tasks: List[asyncio.Task] = []

    def start(self) -> None:
        def _start():
            self._tasks = [asyncio.ensure_future(self._pump(t)) for t in self._tracks]
        self._rtc.call(_start)

    def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            self._rtc.call_soon(task.cancel)

    async def _pump(self, track):
        while True:
            try:
                frame = await track.recv()
            except MediaStreamError:
                return
            channels = len(frame.layout.channels)
            samples = frame.to_ndarray().reshape(-1, channels)
            try:
                self.on_audio(samples, frame.sample_rate)
            except Exception as e:
                logger.error(f"Audio tap handler failed: {e}")


class SegmentedMediaEncoder:
    """
    Encodes local (and optionally remote AI) tracks into WebM segments.

    Every ``timeslice`` seconds the current segment file is closed and handed
    to ``on_chunk`` as bytes, and a new segment is opened.
    """

    mime_type = "video/webm"

    def __init__(self, rtc_loop: Optional[RtcLoop] = None, workdir: Optional[str] = None):
        self._rtc = rtc_loop or get_rtc_loop()
        self.workdir = workdir
        self._sources: List[MediaStreamTrack] = []
        self._on_chunk: Optional[Callable[[bytes], None]] = None
        self._recorder: Optional[MediaRecorder] = None
        self._path: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._timeslice = 0.0

    def start(self, stream, mix_stream, timeslice: float, on_chunk: Callable[[bytes], None]) -> None:
        self._sources = stream.get_tracks()
        if mix_stream is not None:
            self._sources += mix_stream.get_audio_tracks()
        self._on_chunk = on_chunk
        self._timeslice = timeslice

        async def _start():
            await self._open_segment()
            self._task = asyncio.ensure_future(self._rotate())
        self._rtc.run(_start())

    def stop(self) -> None:
        async def _stop():
            task, self._task = self._task, None
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            await self._close_segment()
        self._rtc.run(_stop())

    async def _rotate(self):
        while True:
            await asyncio.sleep(self._timeslice)
            await self._close_segment()
            await self._open_segment()

    async def _open_segment(self):
        fd, path = tempfile.mkstemp(suffix=RECORDING_CHUNK_SUFFIX, dir=self.workdir)
        os.close(fd)
        recorder = MediaRecorder(path, format="webm")
        relay = get_relay()
        for track in self._sources:
            recorder.addTrack(relay.subscribe(track))
        await recorder.start()
        self._recorder, self._path = recorder, path

    async def _close_segment(self):
        recorder, path = self._recorder, self._path
        self._recorder, self._path = None, None
        if recorder is None:
            return
        await recorder.stop()
        try:
            with open(path, "rb") as f:
                data = f.read()
        finally:
            os.remove(path)
        if self._on_chunk is not None:
            self._on_chunk(data)
