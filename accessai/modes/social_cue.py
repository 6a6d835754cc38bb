"""Social Cue: quiet coaching lines during a conversation."""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Optional

from ..realtime.session import RealtimeSession
from ..speech import SpeechOutput
from .base import ModeController

CATEGORY_PREFIXES = (("insight:", "emotion"), ("action:", "action"), ("vibe:", "vibe"))
FEED_SIZE = 30
WHISPER = {"rate": 0.85, "pitch": 0.7, "volume": 0.3}


@dataclass
class SocialInsight:
    category: str
    text: str
    timestamp: float = field(default_factory=time.time)


def categorize(text: str) -> str:
    lowered = (text or "").strip().lower()
    for prefix, category in CATEGORY_PREFIXES:
        if lowered.startswith(prefix):
            return category
    return "insight"


class SocialCueController(ModeController):
    name = "social-cue"

    def __init__(self, session: Optional[RealtimeSession] = None, speech: Optional[SpeechOutput] = None, logger=None):
        super().__init__(session=session, speech=speech, logger=logger)
        self.feed: Deque[SocialInsight] = deque(maxlen=FEED_SIZE)

    def _attach(self) -> None:
        super()._attach()
        self._listen("response_text", self.handle_response)

    def handle_response(self, text: str) -> Optional[SocialInsight]:
        text = (text or "").strip()
        if not text:
            return None
        insight = SocialInsight(categorize(text), text)
        self.feed.append(insight)
        self._panel(text, title=insight.category.title(), style="magenta")
        if self.speech is not None:
            self.speech.speak(text, **WHISPER)
        return insight
