"""Shared lifecycle for assistant modes."""

import logging
from typing import Callable, List, Optional

from ..logging_setup import log_panel
from ..realtime.session import RealtimeSession
from ..speech import SpeechOutput


class ModeController:
    """Owns at most one realtime session and the listeners attached to it."""

    name = "mode"

    def __init__(self, session: Optional[RealtimeSession] = None, speech: Optional[SpeechOutput] = None, logger=None):
        self.session = session
        self.speech = speech
        self.logger = logger or logging.getLogger(f"AccessAI.{self.__class__.__name__}")
        self.active = False
        self._disposers: List[Callable[[], None]] = []

    def _listen(self, event: str, callback) -> None:
        if self.session is not None:
            self._disposers.append(self.session.on(event, callback))

    def _attach(self) -> None:
        """Register session listeners; subclasses extend."""
        self._listen("error", self._on_session_error)
        self._listen("fatal", self._on_session_fatal)

    def _on_session_error(self, message: str) -> None:
        self._panel(message, title="Session Error", style="red", level="error")

    def _on_session_fatal(self, exc: Exception) -> None:
        self._panel(f"Session closed: {exc}", title="Session Closed", style="red", level="error")

    def _panel(self, message: str, *, title: str, style: str = "cyan", level: str = "info") -> None:
        log_panel(message, logger=self.logger, title=title, style=style, level=level)

    async def activate(self) -> None:
        """Attach listeners and start the session (if any)."""
        if self.active:
            return
        self.active = True
        self._attach()
        if self.session is not None:
            await self.session.start()
        self.logger.info(f"{self.name} activated")

    async def deactivate(self) -> None:
        """Stop the session and release everything this mode holds."""
        if not self.active:
            return
        self.active = False
        if self.speech is not None:
            self.speech.stop()
        while self._disposers:
            self._disposers.pop()()
        if self.session is not None:
            await self.session.aclose()
        self.logger.info(f"{self.name} deactivated")
