"""PyAudio-backed microphone capture and speaker output."""

import asyncio
import logging
from typing import AsyncIterator, Optional

import numpy as np

try:
    import pyaudio
except ImportError as exc:
    raise ImportError(
        "pyaudio not found. Install with `pip install accessai[audio]` (requires PortAudio)."
    ) from exc

from ..config import CHANNELS, FRAME_SAMPLES, SAMPLE_RATE
from .codec import AudioFramer, float_to_pcm16, pcm16_to_float
from .playback import PlaybackScheduler

FORMAT = pyaudio.paInt16


class MicrophoneSource:
    """
    Captures mono PCM16 from the default input device.

    PortAudio invokes the callback on its own thread; captured buffers are
    handed to the event loop through an asyncio queue and re-chunked into
    fixed-size float frames in capture order.
    """

    def __init__(
        self,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        frame_samples: int = FRAME_SAMPLES,
        logger=None,
    ):
        self.loop = loop
        self.frame_samples = frame_samples
        self.logger = logger or logging.getLogger("AccessAI.MicrophoneSource")
        self.queue: "asyncio.Queue[Optional[bytes]]" = asyncio.Queue()
        self.audio_interface = None
        self.stream = None
        self._closed = False

    def _callback(self, in_data, frame_count, time_info, status):
        if not self._closed and self.loop is not None:
            self.loop.call_soon_threadsafe(self.queue.put_nowait, bytes(in_data))
        return (None, pyaudio.paContinue)

    def open(self) -> None:
        """Open the input stream."""
        if self.stream is not None:
            return
        self.loop = self.loop or asyncio.get_running_loop()
        self.logger.info("Opening microphone...")
        try:
            self.audio_interface = pyaudio.PyAudio()
            self.stream = self.audio_interface.open(
                format=FORMAT,
                channels=CHANNELS,
                rate=SAMPLE_RATE,
                input=True,
                frames_per_buffer=1024,
                stream_callback=self._callback,
            )
            self.stream.start_stream()
        except Exception as e:
            self.logger.error(f"Failed to open microphone: {e}")
            raise

    async def frames(self) -> AsyncIterator[np.ndarray]:
        """Yield fixed-size float frames until the source is closed."""
        self.open()
        framer = AudioFramer(self.frame_samples)
        while True:
            chunk = await self.queue.get()
            if chunk is None:
                break
            for frame in framer.push(pcm16_to_float(chunk)):
                yield frame

    def close(self) -> None:
        """Stop capture and release the device."""
        if self._closed:
            return
        self._closed = True
        if self.stream:
            self.stream.stop_stream()
            self.stream.close()
            self.stream = None
        if self.audio_interface:
            self.audio_interface.terminate()
            self.audio_interface = None
        if self.loop is not None:
            self.loop.call_soon_threadsafe(self.queue.put_nowait, None)
        self.logger.info("Microphone closed")


class SpeakerOutput:
    """Plays whatever the scheduler has on its timeline."""

    def __init__(self, scheduler: PlaybackScheduler, logger=None):
        self.scheduler = scheduler
        self.logger = logger or logging.getLogger("AccessAI.SpeakerOutput")
        self.audio_interface = None
        self.stream = None

    def _callback(self, in_data, frame_count, time_info, status):
        return (float_to_pcm16(self.scheduler.render(frame_count)), pyaudio.paContinue)

    def open(self) -> None:
        """Open the output stream."""
        if self.stream is not None:
            return
        try:
            self.audio_interface = pyaudio.PyAudio()
            self.stream = self.audio_interface.open(
                format=FORMAT,
                channels=CHANNELS,
                rate=self.scheduler.sample_rate,
                output=True,
                frames_per_buffer=1024,
                stream_callback=self._callback,
            )
            self.stream.start_stream()
            self.logger.info("Speaker output ready")
        except Exception as e:
            self.logger.error(f"Failed to open speaker output: {e}")
            raise

    def close(self) -> None:
        """Stop playback and release the device."""
        self.scheduler.clear()
        if self.stream:
            self.stream.stop_stream()
            self.stream.close()
            self.stream = None
        if self.audio_interface:
            self.audio_interface.terminate()
            self.audio_interface = None
