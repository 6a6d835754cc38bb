import base64

import numpy as np
import pytest

from accessai.audio.codec import (
    AudioFramer,
    decode_frame,
    encode_frame,
    float_to_pcm16,
    frame_duration,
    pcm16_to_float,
)
from accessai.errors import MalformedEventError


def test_pcm16_is_little_endian_int16():
    data = float_to_pcm16([0.0, 1.0, -1.0])
    assert len(data) == 6
    assert np.frombuffer(data, dtype="<i2").tolist() == [0, 32767, -32768]


def test_out_of_range_samples_are_clamped():
    data = float_to_pcm16([2.5, -7.0])
    assert np.frombuffer(data, dtype="<i2").tolist() == [32767, -32768]


def test_decoded_samples_stay_close_to_the_originals():
    samples = np.linspace(-1.0, 1.0, 257, dtype=np.float32)
    restored = decode_frame(encode_frame(samples))
    assert restored.dtype == np.float32
    assert restored.shape == samples.shape
    np.testing.assert_allclose(restored, samples, atol=2.0 / 32768)


def test_encode_frame_is_base64_text():
    payload = encode_frame(np.zeros(4, dtype=np.float32))
    assert base64.b64decode(payload) == b"\x00" * 8


def test_odd_byte_count_drops_trailing_byte():
    assert pcm16_to_float(b"\x00\x40\x01").tolist() == [0.5]


@pytest.mark.parametrize("payload", ["abc", None, 12])
def test_undecodable_audio_payload(payload):
    with pytest.raises(MalformedEventError):
        decode_frame(payload)


def test_frame_duration_at_24khz():
    assert frame_duration(2400) == pytest.approx(0.1)


class TestAudioFramer:
    def test_rechunks_into_fixed_frames(self):
        framer = AudioFramer(frame_samples=2048)
        frames = framer.push(np.ones(3000, dtype=np.float32))
        assert len(frames) == 1
        assert frames[0].shape == (2048,)
        assert framer.pending == 952

        frames = framer.push(np.ones(1200, dtype=np.float32))
        assert len(frames) == 1
        assert framer.pending == 104

    def test_flush_pads_with_silence(self):
        framer = AudioFramer(frame_samples=8)
        framer.push([0.5, 0.5, 0.5])
        (frame,) = framer.flush()
        assert frame.tolist() == [0.5, 0.5, 0.5, 0, 0, 0, 0, 0]
        assert framer.pending == 0
        assert framer.flush() == []

    def test_rejects_non_positive_frame_size(self):
        with pytest.raises(ValueError):
            AudioFramer(frame_samples=0)
