"""
Media capture, realtime transport and audio conversion.
"""
from .devices import MediaStream, MediaAcquisition, acquire_media

__all__ = ["MediaStream", "MediaAcquisition", "acquire_media"]
