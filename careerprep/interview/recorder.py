"""
Interview recording with incremental chunk upload.

The encoder hands over one chunk per timeslice. Chunks are uploaded strictly
in the order they were produced; a failed upload is logged and recording
carries on. Stopping waits for every queued upload before asking the server
to finalize the recording into a playlist.
"""
import time
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..config import RECORDING_TIMESLICE, RECORDING_CHUNK_SUFFIX
from ..errors import ApiError, NetworkError
from ..infrastructure.api import ApiClient
from ..infrastructure.media.interfaces import ChunkEncoder, MediaStreamLike
from .events import SessionEventBus, RecordingFinishedEvent
from .models import RecordingResult

logger = logging.getLogger("recorder")

UPLOAD_CHUNK_PATH = "/api/interview/upload-chunk"
FINALIZE_PATH = "/api/interview/finalize-recording"
UPLOAD_RECORDING_PATH = "/api/interview/upload-recording"
RECORDING_PATH = "/api/interview/recording"


@dataclass
class ChunkUploadProgress:
    chunk_index: int
    uploaded: int
    total: int


class Recorder:
    """Records one session at a time and streams it to the platform."""

    def __init__(self,
                 api: ApiClient,
                 encoder: ChunkEncoder,
                 timeslice: float = RECORDING_TIMESLICE,
                 event_bus: Optional[SessionEventBus] = None):
        self.api = api
        self.encoder = encoder
        self.timeslice = timeslice
        self.event_bus = event_bus

        self.is_recording = False
        self.upload_progress: Optional[ChunkUploadProgress] = None
        self.session_id: Optional[str] = None
        self.chunk_count = 0
        self.failed_chunks = []

        self._lock = threading.Lock()
        self._uploads: Optional[ThreadPoolExecutor] = None

    def start_recording(self, stream: MediaStreamLike, session_id: str,
                        mix_audio_stream: Optional[MediaStreamLike] = None) -> None:
        """
        Start encoding ``stream``, mixing in the AI audio when given.

        Starting while a recording is active is ignored.
        """
        with self._lock:
            if self.is_recording:
                logger.warning("Recording is already active")
                return
            self.session_id = session_id
            self.chunk_count = 0
            self.failed_chunks = []
            self._uploads = ThreadPoolExecutor(max_workers=1, thread_name_prefix="chunk-upload")

        try:
            self.encoder.start(stream, mix_audio_stream, self.timeslice, self._on_chunk)
        except Exception as e:
            logger.error(f"Failed to start recording: {e}")
            self._shutdown_uploads(wait=False)
            return

        self.is_recording = True
        logger.info(f"Recording started for session {session_id} "
                    f"({self.encoder.mime_type}, chunk every {self.timeslice}s)")

    def stop_recording(self) -> RecordingResult:
        """
        Stop, flush pending uploads and finalize.

        Never raises; failures are reported through the result.
        """
        with self._lock:
            if not self.is_recording:
                logger.warning("No active recorder to stop")
                return RecordingResult.failed("No active recorder")
            self.is_recording = False
            session_id = self.session_id

        try:
            self.encoder.stop()
            logger.info("Recording stop requested, waiting for pending uploads")
            self._shutdown_uploads(wait=True)
            logger.info(f"All chunks processed, total chunks: {self.chunk_count}")

            if not session_id:
                result = RecordingResult.failed("No session ID available")
            else:
                data = self.api.post(FINALIZE_PATH, {"sessionId": session_id}) or {}
                result = RecordingResult(success=True, playlist_url=data.get("playlistUrl"))
                logger.info(f"Recording finalized: {result.playlist_url}")
        except (ApiError, NetworkError) as e:
            logger.error(f"Error finalizing recording: {e}")
            result = RecordingResult.failed(str(e) or "Failed to finalize recording")
        except Exception as e:
            logger.error(f"Error stopping recorder: {e}")
            self._shutdown_uploads(wait=False)
            result = RecordingResult.failed(str(e) or "Failed to stop recording")

        self.upload_progress = None
        self._emit_finished(session_id, result)
        return result

    def cleanup(self) -> None:
        """Abandon any active recording without finalizing it."""
        if self.is_recording:
            self.is_recording = False
            try:
                self.encoder.stop()
            except Exception as e:
                logger.error(f"Error stopping recorder during cleanup: {e}")
        self._shutdown_uploads(wait=False)
        self.session_id = None
        self.chunk_count = 0
        self.upload_progress = None
        logger.debug("Recorder cleanup completed")

    def _on_chunk(self, data: bytes) -> None:
        if not data:
            logger.debug("Received empty chunk")
            return
        with self._lock:
            uploads = self._uploads
            index = self.chunk_count
            self.chunk_count += 1
            session_id = self.session_id
        if uploads is None or session_id is None:
            logger.warning(f"Dropping chunk {index}: recorder is not active")
            return
        logger.debug(f"Received chunk {index}: {len(data)} bytes")
        uploads.submit(self._upload_chunk, session_id, index, data)

    def _upload_chunk(self, session_id: str, index: int, data: bytes) -> None:
        self.upload_progress = ChunkUploadProgress(index, 0, len(data))
        files = {"chunk": (f"chunk-{index}{RECORDING_CHUNK_SUFFIX}", data, self.encoder.mime_type)}
        form = {"sessionId": str(session_id), "chunkIndex": str(index)}
        try:
            self.api.post(UPLOAD_CHUNK_PATH, files=files, data=form)
        except (ApiError, NetworkError) as e:
            logger.error(f"Failed to upload chunk {index}, continuing: {e}")
            self.failed_chunks.append(index)
            return
        self.upload_progress = ChunkUploadProgress(index, len(data), len(data))
        logger.debug(f"Chunk {index} uploaded")

    def _shutdown_uploads(self, wait: bool) -> None:
        with self._lock:
            uploads, self._uploads = self._uploads, None
        if uploads is not None:
            uploads.shutdown(wait=wait, cancel_futures=not wait)

    def _emit_finished(self, session_id: Optional[str], result: RecordingResult) -> None:
        if self.event_bus is not None:
            self.event_bus.emit(RecordingFinishedEvent(
                session_id or "-", time.time(), result.success, result.playlist_url, result.error
            ))


def upload_recording(api: ApiClient, session_id: str, data: bytes,
                     mime_type: str = "video/webm") -> RecordingResult:
    """Upload a complete recording in one request, for sessions not recorded in chunks."""
    extension = mime_type.split("/")[-1].split(";")[0] or "webm"
    files = {"recording": (f"interview-{session_id}.{extension}", data, mime_type)}
    try:
        result = api.post(UPLOAD_RECORDING_PATH, files=files, data={"sessionId": str(session_id)}) or {}
    except (ApiError, NetworkError) as e:
        logger.error(f"Recording upload failed: {e}")
        return RecordingResult.failed(str(e))
    logger.info(f"Recording uploaded for session {session_id}")
    return RecordingResult(success=True, playlist_url=result.get("playlistUrl"))


def fetch_recording(api: ApiClient, session_id: str) -> Optional[Dict[str, Any]]:
    """Recording metadata for a session, or None when there is none."""
    try:
        return api.get(f"{RECORDING_PATH}/{session_id}")
    except (ApiError, NetworkError) as e:
        logger.info(f"No recording found for session {session_id}: {e}")
        return None
