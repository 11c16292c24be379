"""
PCM helpers for streaming audio to the avatar vendor.

The avatar socket expects base64-encoded 16-bit little-endian mono PCM at 24kHz.
"""
import base64
from math import gcd
from typing import Union

import numpy as np
from scipy.signal import resample_poly

from ...config import AVATAR_SAMPLE_RATE

AudioInput = Union[bytes, bytearray, np.ndarray]


def to_mono(samples: np.ndarray) -> np.ndarray:
    """Average channels of a (frames, channels) array down to mono."""
    if samples.ndim == 1:
        return samples
    return samples.mean(axis=1)


def resample(samples: np.ndarray, from_rate: int, to_rate: int) -> np.ndarray:
    """Polyphase resample between arbitrary integer rates."""
    if from_rate == to_rate or samples.size == 0:
        return samples
    divisor = gcd(from_rate, to_rate)
    return resample_poly(samples, to_rate // divisor, from_rate // divisor)


def float_to_pcm16(samples: np.ndarray) -> bytes:
    """Convert float samples in [-1, 1] to int16 little-endian bytes."""
    clipped = np.clip(samples, -1.0, 1.0)
    return (clipped * 32767.0).astype("<i2").tobytes()


def pcm16_to_float(data: bytes) -> np.ndarray:
    return np.frombuffer(data, dtype="<i2").astype(np.float32) / 32768.0


def prepare_avatar_audio(audio: AudioInput, sample_rate: int = AVATAR_SAMPLE_RATE) -> bytes:
    """
    Normalize audio into the avatar's wire format.

    Args:
        audio: PCM16 bytes or a float/int numpy array (mono or frames x channels)
        sample_rate: Rate of ``audio``

    Returns:
        PCM16 mono bytes at the avatar sample rate
    """
    if isinstance(audio, (bytes, bytearray)):
        if sample_rate == AVATAR_SAMPLE_RATE:
            return bytes(audio)
        samples = pcm16_to_float(bytes(audio))
    else:
        samples = np.asarray(audio)
        if np.issubdtype(samples.dtype, np.integer):
            samples = samples.astype(np.float32) / 32768.0
        samples = to_mono(samples.astype(np.float32))

    return float_to_pcm16(resample(samples, sample_rate, AVATAR_SAMPLE_RATE))


def pcm_to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")
