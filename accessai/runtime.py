"""Wiring of sessions, browser, speech and controllers for each mode."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

from .agent.history import ConversationHistory
from .agent.loop import AgenticToolLoop
from .agent.safety import SafetyGate
from .agent.tools import BrowserToolbox
from .audio.playback import PlaybackScheduler
from .completions import ChatCompletionService
from .config import BROWSER_START_URL, HISTORY_PATH
from .credentials import EnvCredentialSupplier
from .modes import ClearContextController, SocialCueController, WebSightController
from .modes.base import ModeController
from .page.browser import PageDriver, PlaywrightPageDriver
from .realtime.profiles import PROFILES
from .realtime.session import RealtimeSession
from .speech import SpeechOutput

MODES = tuple(PROFILES)


@dataclass
class Runtime:
    """A built controller plus the resources that must be closed after it."""

    controller: ModeController
    driver: Optional[PageDriver] = None
    resources: List[Any] = field(default_factory=list)

    async def close(self) -> None:
        await self.controller.deactivate()
        for resource in reversed(self.resources):
            resource.close()
        if self.driver is not None:
            await self.driver.close()


def build_web_sight_controller(
    driver: PageDriver,
    *,
    completions=None,
    history_path: Optional[Path] = HISTORY_PATH,
    session: Optional[RealtimeSession] = None,
    speech: Optional[SpeechOutput] = None,
    logger=None,
) -> WebSightController:
    history = ConversationHistory(history_path, logger=logger)
    history.load()
    loop = AgenticToolLoop(
        completions or ChatCompletionService(logger=logger),
        BrowserToolbox(driver, logger=logger),
        history,
        logger=logger,
    )
    return WebSightController(loop, SafetyGate(logger=logger), session=session, speech=speech, logger=logger)


async def build_runtime(
    mode: str,
    *,
    input_mode: str = "text",
    output_mode: str = "text",
    headless: bool = False,
    url: Optional[str] = BROWSER_START_URL,
    history_path: Optional[Path] = HISTORY_PATH,
    logger=None,
) -> Runtime:
    """Build the controller for ``mode`` with real devices and services."""
    logger = logger or logging.getLogger("AccessAI")
    if mode not in PROFILES:
        raise ValueError(f"Unknown mode '{mode}'")

    resources: List[Any] = []
    playback = PlaybackScheduler(logger=logger)
    speech = None
    if output_mode == "audio" or input_mode == "audio":
        from .audio.devices import SpeakerOutput

        speaker = SpeakerOutput(playback, logger=logger)
        speaker.open()
        resources.append(speaker)
    if output_mode == "audio":
        speech = SpeechOutput(playback, logger=logger)

    session = None
    if input_mode == "audio":
        from .audio.devices import MicrophoneSource

        microphone = MicrophoneSource(logger=logger)
        session = RealtimeSession(
            PROFILES[mode](),
            EnvCredentialSupplier(logger=logger),
            audio_source=microphone,
            playback=playback,
            mute_fn=(lambda: speech.speaking) if speech is not None else None,
            logger=logger,
        )

    if mode == "web-sight":
        driver = PlaywrightPageDriver(headless=headless, start_url=url, logger=logger)
        await driver.setup()
        controller = build_web_sight_controller(
            driver,
            history_path=history_path,
            session=session,
            speech=speech,
            logger=logger,
        )
        return Runtime(controller, driver, resources)
    if mode == "clear-context":
        controller = ClearContextController(
            session=session,
            completions=ChatCompletionService(logger=logger),
            speech=speech,
            logger=logger,
        )
        return Runtime(controller, None, resources)
    return Runtime(SocialCueController(session=session, speech=speech, logger=logger), None, resources)
