"""Spoken output through the TTS endpoint and the playback scheduler."""

import asyncio
import logging
import re
from typing import Optional

import numpy as np
from openai import AsyncOpenAI, OpenAIError

from .audio.codec import pcm16_to_float
from .audio.playback import PlaybackScheduler
from .config import FRAME_SAMPLES, OPENAI_API_KEY, TTS_MODEL, TTS_SPEED, TTS_VOICE

MIN_RATE = 0.25
MAX_RATE = 4.0


def strip_markdown(text: str) -> str:
    """Flatten markdown into plain speakable text."""
    text = re.sub(r"```[\s\S]*?```", "", text or "")
    text = re.sub(r"`([^`]+)`", r"\1", text)
    text = re.sub(r"\*\*(.+?)\*\*", r"\1", text)
    text = re.sub(r"\*(.+?)\*", r"\1", text)
    text = re.sub(r"^#{1,3} ", "", text, flags=re.MULTILINE)
    text = re.sub(r"^[-•] ", "", text, flags=re.MULTILINE)
    text = re.sub(r"<[^>]*>", "", text)
    text = text.replace("\n", " ")
    return re.sub(r" {2,}", " ", text).strip()


class SpeechOutput:
    """
    Fire-and-forget speech.

    Each ``speak`` call cancels the utterance in progress. The TTS endpoint
    has no pitch control, so ``pitch`` is accepted and ignored; ``rate`` maps
    to the endpoint's speed and ``volume`` scales the samples.
    """

    def __init__(
        self,
        playback: PlaybackScheduler,
        client: Optional[AsyncOpenAI] = None,
        model: str = TTS_MODEL,
        voice: str = TTS_VOICE,
        logger=None,
    ):
        self.playback = playback
        self.client = client or AsyncOpenAI(api_key=OPENAI_API_KEY)
        self.model = model
        self.voice = voice
        self.logger = logger or logging.getLogger("AccessAI.SpeechOutput")
        self._task: Optional[asyncio.Task] = None

    @property
    def speaking(self) -> bool:
        busy = self._task is not None and not self._task.done()
        return busy or self.playback.is_playing()

    def speak(self, text: str, rate: float = TTS_SPEED, pitch: float = 1.0, volume: float = 1.0) -> Optional[asyncio.Task]:
        clean = strip_markdown(text)
        if not clean:
            return None
        self.stop()
        self._task = asyncio.ensure_future(self._speak(clean, rate, volume))
        return self._task

    def stop(self) -> None:
        """Cancel synthesis and cut anything still queued for playback."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self.playback.barge_in()

    async def _speak(self, text: str, rate: float, volume: float) -> None:
        speed = min(MAX_RATE, max(MIN_RATE, rate))
        try:
            response = await self.client.audio.speech.create(
                model=self.model,
                voice=self.voice,
                input=text,
                speed=speed,
                response_format="pcm",
            )
        except OpenAIError as exc:
            self.logger.error(f"TTS request failed: {exc}")
            return
        samples = pcm16_to_float(response.content) * float(np.clip(volume, 0.0, 1.0))
        for start in range(0, len(samples), FRAME_SAMPLES):
            self.playback.schedule(samples[start : start + FRAME_SAMPLES])
        self.logger.debug(f"Spoke {len(text)} chars ({len(samples)} samples)")
