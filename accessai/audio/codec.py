"""
PCM16 transport codec.

Float samples in [-1.0, 1.0] travel to the realtime service as base64-encoded
little-endian int16 PCM at 24 kHz, and come back the same way.
"""

import base64
import binascii
from typing import List

import numpy as np

from ..config import FRAME_SAMPLES, SAMPLE_RATE
from ..errors import MalformedEventError

INT16_NEGATIVE_SCALE = 32768.0
INT16_POSITIVE_SCALE = 32767.0


def float_to_pcm16(samples) -> bytes:
    """Clamp float samples and pack them as little-endian int16 bytes."""
    data = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    scaled = np.where(data < 0, data * INT16_NEGATIVE_SCALE, data * INT16_POSITIVE_SCALE)
    return np.round(scaled).astype("<i2").tobytes()


def pcm16_to_float(pcm_bytes: bytes) -> np.ndarray:
    """Unpack little-endian int16 bytes into float32 samples."""
    if len(pcm_bytes) % 2:
        pcm_bytes = pcm_bytes[:-1]
    return np.frombuffer(pcm_bytes, dtype="<i2").astype(np.float32) / INT16_NEGATIVE_SCALE


def encode_frame(samples) -> str:
    """Encode one frame of float samples for ``input_audio_buffer.append``."""
    return base64.b64encode(float_to_pcm16(samples)).decode("ascii")


def decode_frame(payload: str) -> np.ndarray:
    """Decode a base64 ``response.audio.delta`` payload into float samples."""
    try:
        raw = base64.b64decode(payload)
    except (binascii.Error, TypeError, ValueError) as exc:
        raise MalformedEventError(f"Invalid audio payload: {exc}", raw=str(payload)[:80]) from exc
    return pcm16_to_float(raw)


def frame_duration(sample_count: int, sample_rate: int = SAMPLE_RATE) -> float:
    """Seconds of audio represented by ``sample_count`` mono samples."""
    return sample_count / float(sample_rate)


class AudioFramer:
    """Re-chunks arbitrarily sized capture buffers into fixed-size frames."""

    def __init__(self, frame_samples: int = FRAME_SAMPLES):
        if frame_samples <= 0:
            raise ValueError("frame_samples must be positive")
        self.frame_samples = frame_samples
        self._pending = np.zeros(0, dtype=np.float32)

    def push(self, samples) -> List[np.ndarray]:
        """Add samples and return every complete frame now available."""
        data = np.asarray(samples, dtype=np.float32).reshape(-1)
        if data.size:
            self._pending = np.concatenate([self._pending, data])
        frames = []
        while self._pending.size >= self.frame_samples:
            frames.append(self._pending[: self.frame_samples].copy())
            self._pending = self._pending[self.frame_samples :]
        return frames

    def flush(self) -> List[np.ndarray]:
        """Return the trailing partial frame, zero-padded to full size."""
        if not self._pending.size:
            return []
        frame = np.zeros(self.frame_samples, dtype=np.float32)
        frame[: self._pending.size] = self._pending
        self._pending = np.zeros(0, dtype=np.float32)
        return [frame]

    @property
    def pending(self) -> int:
        return int(self._pending.size)
