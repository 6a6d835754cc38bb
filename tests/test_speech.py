import asyncio

import numpy as np
import pytest

from accessai.audio.codec import float_to_pcm16
from accessai.audio.playback import PlaybackScheduler
from accessai.speech import SpeechOutput, strip_markdown

from .conftest import FakeClock


def test_strip_markdown():
    text = "# Result\n**Bold** and *soft* with `code`\n- item one\n<b>tag</b>\n```\nblock\n```"
    assert strip_markdown(text) == "Result Bold and soft with code item one tag"


class FakeSpeechAPI:
    def __init__(self, pcm: bytes):
        self.pcm = pcm
        self.calls = []
        self.gate = None

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.gate is not None:
            await self.gate.wait()

        class Response:
            content = self.pcm

        return Response()


class FakeClient:
    def __init__(self, pcm: bytes):
        self.audio = type("Audio", (), {})()
        self.audio.speech = FakeSpeechAPI(pcm)


@pytest.fixture
def playback():
    return PlaybackScheduler(clock=FakeClock())


async def test_speech_is_scheduled_in_frames(playback):
    client = FakeClient(float_to_pcm16(np.full(5000, 0.5, dtype=np.float32)))
    speech = SpeechOutput(playback, client=client)

    await speech.speak("**Hello** there", rate=9.0, volume=0.5)

    (call,) = client.audio.speech.calls
    assert call["input"] == "Hello there"
    assert call["speed"] == 4.0
    assert call["response_format"] == "pcm"
    frames = playback.pending_frames()
    assert [len(f.samples) for f in frames] == [2048, 2048, 904]
    assert np.allclose(frames[0].samples, 0.25, atol=1e-3)
    assert speech.speaking


async def test_new_utterance_cancels_the_previous_one(playback):
    client = FakeClient(float_to_pcm16(np.zeros(100, dtype=np.float32)))
    client.audio.speech.gate = asyncio.Event()
    speech = SpeechOutput(playback, client=client)

    first = speech.speak("first")
    await asyncio.sleep(0)
    second = speech.speak("second")
    client.audio.speech.gate.set()
    await second

    assert first.cancelled()
    assert len(playback.pending_frames()) == 1


async def test_blank_text_is_not_spoken(playback):
    speech = SpeechOutput(playback, client=FakeClient(b""))
    assert speech.speak("   ") is None
