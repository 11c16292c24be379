"""Infrastructure components for the CareerPrep client.

Low-level transports: the platform REST client and the media layer
(devices, WebRTC, audio conversion). The aiortc-backed media classes live
in ``infrastructure.media.rtc`` and are only imported on demand.
"""

from .api import ApiClient
from .media import MediaStream, MediaAcquisition, acquire_media

__all__ = ["ApiClient", "MediaStream", "MediaAcquisition", "acquire_media"]
