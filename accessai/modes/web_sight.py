"""Web-Sight: spoken commands drive the browser."""

import re
from dataclasses import dataclass, field
from typing import List, Optional

from ..agent.loop import BUSY_MESSAGE, STATUS_BUSY, AgenticToolLoop
from ..agent.safety import GateAction, SafetyGate
from ..realtime.events import TranscriptEvent
from ..realtime.session import RealtimeSession
from ..speech import SpeechOutput
from .base import ModeController

FILLERS = re.compile(
    r"^(bye|goodbye|hello|hi|hey|okay|ok|yes|no|sure|thanks|thank you|ready|testing|test|hmm|uh|um|ah|mhm|yeah)\.?$",
    re.IGNORECASE,
)

STATUS_IGNORED = "ignored"
STATUS_CONFIRMATION = "confirmation_required"
STATUS_CANCELLED = "cancelled"


def is_filler(text: str) -> bool:
    return bool(FILLERS.match((text or "").strip()))


@dataclass
class CommandOutcome:
    status: str
    response: str = ""
    actions: List[str] = field(default_factory=list)
    pending_confirmation: bool = False


class WebSightController(ModeController):
    """Transcript -> safety gate -> agent loop -> spoken reply."""

    name = "web-sight"

    def __init__(
        self,
        loop: AgenticToolLoop,
        gate: Optional[SafetyGate] = None,
        session: Optional[RealtimeSession] = None,
        speech: Optional[SpeechOutput] = None,
        logger=None,
    ):
        super().__init__(session=session, speech=speech, logger=logger)
        self.loop = loop
        self.gate = gate or SafetyGate()
        if self.loop.on_action is None:
            self.loop.on_action = self._on_action

    def _attach(self) -> None:
        super()._attach()
        self._listen("transcript", self._on_transcript)
        self._listen("speech_started", self._on_speech_started)

    async def _on_transcript(self, event: TranscriptEvent) -> None:
        self._panel(event.text, title="You", style="green")
        await self.handle_command(event.text)

    def _on_speech_started(self) -> None:
        if self.speech is not None:
            self.speech.stop()

    def _on_action(self, label: str) -> None:
        self._panel(label, title="Action", style="blue")

    def _say(self, text: str) -> None:
        self._panel(text, title="AccessAI", style="cyan")
        if self.speech is not None and text:
            self.speech.speak(text)

    async def handle_command(self, text: str) -> CommandOutcome:
        """Run one user command through the gate and the agent loop."""
        command = (text or "").strip()
        if not command or (not self.gate.has_pending and is_filler(command)):
            return CommandOutcome(STATUS_IGNORED)

        # A pending confirmation survives until the running command finishes.
        if self.loop.running:
            self._say(BUSY_MESSAGE)
            return CommandOutcome(STATUS_BUSY, BUSY_MESSAGE, pending_confirmation=self.gate.has_pending)

        decision = self.gate.review(command)
        if decision.action is GateAction.HOLD:
            self._say(decision.message)
            return CommandOutcome(STATUS_CONFIRMATION, decision.message, pending_confirmation=True)
        if decision.action is GateAction.CANCELLED:
            self._say(decision.message)
            return CommandOutcome(STATUS_CANCELLED, decision.message)

        result = await self.loop.run(decision.command, confirmed=decision.confirmed)
        if result.status != STATUS_BUSY:
            self._say(result.text)
        return CommandOutcome(result.status, result.text, result.actions, self.gate.has_pending)

    async def deactivate(self) -> None:
        self.loop.cancel()
        self.gate.clear()
        await super().deactivate()
