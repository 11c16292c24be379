"""
Narrow interfaces in front of the realtime vendor SDKs.

The session logic only ever talks to these shapes, so any WebRTC stack,
media source or encoder can be plugged in.
"""
from typing import Callable, Optional, Protocol, List, runtime_checkable


@runtime_checkable
class MediaTrack(Protocol):
    kind: str  # "audio" | "video"

    def stop(self) -> None: ...


class MediaDevices(Protocol):
    def get_user_media(self, audio: bool = True, video: bool = False) -> "MediaStreamLike":
        """Open the requested devices. Raises MediaPermissionError when denied."""
        ...


class MediaStreamLike(Protocol):
    def get_tracks(self) -> List[MediaTrack]: ...

    def get_audio_tracks(self) -> List[MediaTrack]: ...

    def get_video_tracks(self) -> List[MediaTrack]: ...

    def stop(self) -> None: ...


class DataChannel(Protocol):
    label: str

    @property
    def ready_state(self) -> str: ...  # connecting | open | closing | closed

    def send(self, text: str) -> None: ...

    def on_open(self, callback: Callable[[], None]) -> None: ...

    def on_message(self, callback: Callable[[str], None]) -> None: ...

    def close(self) -> None: ...


class PeerConnection(Protocol):
    def add_track(self, track: MediaTrack) -> None: ...

    def create_data_channel(self, label: str) -> DataChannel: ...

    def on_track(self, callback: Callable[["MediaStreamLike"], None]) -> None: ...

    def create_offer(self) -> str:
        """Create an offer, apply it locally and return its SDP."""
        ...

    def set_remote_answer(self, sdp: str) -> None: ...

    def close(self) -> None: ...


PeerConnectionFactory = Callable[[], PeerConnection]
ChunkCallback = Callable[[bytes], None]


class ChunkEncoder(Protocol):
    mime_type: str

    def start(self, stream: "MediaStreamLike", mix_stream: Optional["MediaStreamLike"],
              timeslice: float, on_chunk: ChunkCallback) -> None:
        """Begin encoding; ``on_chunk`` receives one encoded chunk per timeslice."""
        ...

    def stop(self) -> None:
        """Stop encoding, delivering any final partial chunk before returning."""
        ...
