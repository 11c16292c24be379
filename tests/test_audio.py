"""PCM conversion for the avatar audio socket."""
import base64

import numpy as np

from careerprep.infrastructure.media.audio import (
    to_mono, resample, float_to_pcm16, pcm16_to_float, prepare_avatar_audio, pcm_to_base64
)


class TestAudioHelpers:
    def test_to_mono_averages_channels(self) -> None:
        stereo = np.array([[1.0, 0.0], [0.5, 0.5]])
        assert np.allclose(to_mono(stereo), [0.5, 0.5])

    def test_resample_changes_length(self) -> None:
        samples = np.zeros(480, dtype=np.float32)
        assert len(resample(samples, 48000, 24000)) == 240

    def test_resample_same_rate_is_identity(self) -> None:
        samples = np.ones(10)
        assert resample(samples, 24000, 24000) is samples

    def test_pcm16_clips(self) -> None:
        data = float_to_pcm16(np.array([2.0, -2.0]))
        assert np.frombuffer(data, dtype="<i2").tolist() == [32767, -32767]

    def test_pcm16_to_float_range(self) -> None:
        values = pcm16_to_float(np.array([16384, -16384], dtype="<i2").tobytes())
        assert np.allclose(values, [0.5, -0.5])


class TestPrepareAvatarAudio:
    def test_bytes_at_target_rate_pass_through(self) -> None:
        data = b"\x01\x00\x02\x00"
        assert prepare_avatar_audio(data, 24000) == data

    def test_int16_stereo_frames_are_downmixed_and_resampled(self) -> None:
        frames = np.zeros((960, 2), dtype=np.int16)
        data = prepare_avatar_audio(frames, 48000)
        # 960 frames at 48kHz -> 480 mono samples at 24kHz, two bytes each
        assert len(data) == 960

    def test_base64(self) -> None:
        assert base64.b64decode(pcm_to_base64(b"abc")) == b"abc"
