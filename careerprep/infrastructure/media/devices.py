"""
Local media streams and camera/microphone acquisition.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from .interfaces import MediaDevices, MediaTrack
from ...errors import MediaPermissionError, MediaUnavailableError

logger = logging.getLogger("media")


class MediaStream:
    """A group of local or remote tracks, stopped together."""

    def __init__(self, tracks: Optional[List[MediaTrack]] = None):
        self._tracks: List[MediaTrack] = list(tracks or [])
        self._stopped = False

    def add_track(self, track: MediaTrack) -> None:
        self._tracks.append(track)

    def get_tracks(self) -> List[MediaTrack]:
        return list(self._tracks)

    def get_audio_tracks(self) -> List[MediaTrack]:
        return [t for t in self._tracks if t.kind == "audio"]

    def get_video_tracks(self) -> List[MediaTrack]:
        return [t for t in self._tracks if t.kind == "video"]

    @property
    def has_video(self) -> bool:
        return bool(self.get_video_tracks())

    @property
    def stopped(self) -> bool:
        return self._stopped

    def stop(self) -> None:
        """Stop every track. Safe to call from several cleanup paths."""
        if self._stopped:
            return
        self._stopped = True
        for track in self._tracks:
            try:
                track.stop()
            except Exception as e:
                logger.warning(f"Error stopping {track.kind} track: {e}")

    def __repr__(self) -> str:
        kinds = ",".join(t.kind for t in self._tracks)
        return f"MediaStream([{kinds}], stopped={self._stopped})"


@dataclass
class MediaAcquisition:
    """Result of asking the environment for camera and microphone."""
    stream: MediaStream
    camera_error: Optional[str] = None

    @property
    def audio_only(self) -> bool:
        return not self.stream.has_video


def acquire_media(devices: MediaDevices, require_camera: bool = True, notifier=None) -> MediaAcquisition:
    """
    Open camera and microphone, falling back to audio only.

    Args:
        devices: Media device provider
        require_camera: Ask for video as well as audio
        notifier: Optional Notifier for the audio-only warning

    Returns:
        MediaAcquisition with the stream and any camera error

    Raises:
        MediaUnavailableError: If the microphone cannot be opened either
        MediaPermissionError: If audio-only access was requested and denied
    """
    if not require_camera:
        stream = devices.get_user_media(audio=True, video=False)
        return MediaAcquisition(stream=stream)

    try:
        stream = devices.get_user_media(audio=True, video=True)
        logger.info("Camera and microphone acquired")
        return MediaAcquisition(stream=stream)
    except MediaPermissionError as e:
        camera_error = str(e) or "Failed to access camera"
        logger.warning(f"Camera access failed, retrying audio only: {camera_error}")

    try:
        stream = devices.get_user_media(audio=True, video=False)
    except MediaPermissionError as e:
        logger.error(f"Microphone access failed: {e}")
        raise MediaUnavailableError("Failed to access both camera and microphone") from e

    if notifier is not None:
        notifier.error("Camera Access Failed", "Could not access camera. Continuing with audio only.")

    return MediaAcquisition(stream=stream, camera_error=camera_error)
