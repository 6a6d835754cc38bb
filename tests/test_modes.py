import asyncio
import json

import pytest

from accessai.agent.loop import BUSY_MESSAGE, STATUS_BUSY, AgenticToolLoop
from accessai.agent.history import ConversationHistory
from accessai.agent.safety import SafetyGate
from accessai.agent.tools import BrowserToolbox
from accessai.modes.clear_context import (
    QUESTION_PREFIX,
    ClearContextController,
    ConceptMap,
    Term,
    extract_terms,
    parent_color,
)
from accessai.modes.social_cue import FEED_SIZE, SocialCueController, categorize
from accessai.modes.web_sight import (
    STATUS_CANCELLED,
    STATUS_CONFIRMATION,
    STATUS_IGNORED,
    WebSightController,
    is_filler,
)
from accessai.realtime import events as ev
from accessai.realtime.profiles import clear_context_profile, social_cue_profile, web_sight_profile
from accessai.realtime.session import RealtimeSession

from .conftest import (
    FakeConnector,
    FakeTransport,
    RecordingSleep,
    ScriptedCompletions,
    StaticCredentials,
    completion,
    eventually,
    tool_call,
)


class FakeSpeech:
    def __init__(self):
        self.spoken = []
        self.stopped = 0

    def speak(self, text, rate=1.1, pitch=1.0, volume=1.0):
        self.spoken.append((text, rate, pitch, volume))

    def stop(self):
        self.stopped += 1


def web_sight(driver, completions, **kwargs):
    loop = AgenticToolLoop(completions, BrowserToolbox(driver), ConversationHistory(), sleep=RecordingSleep())
    return WebSightController(loop, SafetyGate(), **kwargs)


# ------------------------------------------------------------------ #
# Web-Sight
# ------------------------------------------------------------------ #


@pytest.mark.parametrize("text", ["okay", "Thanks.", "um", "hello", "Thank you"])
def test_fillers(text):
    assert is_filler(text)


def test_real_commands_are_not_fillers():
    assert not is_filler("okay open the courses page")


async def test_filler_utterances_never_reach_the_loop(driver):
    completions = ScriptedCompletions([completion("Done.")])
    controller = web_sight(driver, completions)
    outcome = await controller.handle_command("thanks")
    assert outcome.status == STATUS_IGNORED
    assert completions.requests == []


async def test_purchase_requires_confirmation(driver):
    completions = ScriptedCompletions([completion("Added to basket.")])
    speech = FakeSpeech()
    controller = web_sight(driver, completions, speech=speech)

    held = await controller.handle_command("buy the blue shoes")
    assert held.status == STATUS_CONFIRMATION
    assert held.pending_confirmation
    assert completions.requests == []
    assert "confirm" in speech.spoken[-1][0]

    outcome = await controller.handle_command("yes")
    assert outcome.status == "completed"
    assert outcome.response == "Added to basket."
    first_user = completions.requests[0][-1]["content"]
    assert first_user.startswith("Command: buy the blue shoes (the user has confirmed this action)")
    assert speech.spoken[-1][0] == "Added to basket."


async def test_other_command_cancels_pending_purchase(driver):
    completions = ScriptedCompletions([completion("Sunny.")])
    controller = web_sight(driver, completions)
    await controller.handle_command("buy the blue shoes")

    outcome = await controller.handle_command("what's the weather")

    assert outcome.status == STATUS_CANCELLED
    assert completions.requests == []
    assert not controller.gate.has_pending


async def test_confirmation_while_busy_keeps_the_pending_command(driver):
    release = asyncio.Event()

    class SlowCompletions(ScriptedCompletions):
        async def request(self, messages, **kwargs):
            if not release.is_set():
                await release.wait()
            return await super().request(messages, **kwargs)

    completions = SlowCompletions([completion("Done.")])
    speech = FakeSpeech()
    controller = web_sight(driver, completions, speech=speech)
    await controller.handle_command("buy the blue shoes")

    running = asyncio.ensure_future(controller.loop.run("read the page"))
    assert await eventually(lambda: controller.loop.running)

    busy = await controller.handle_command("confirm")
    assert busy.status == STATUS_BUSY
    assert busy.pending_confirmation
    assert controller.gate.has_pending
    assert speech.spoken[-1][0] == BUSY_MESSAGE

    release.set()
    await running

    outcome = await controller.handle_command("confirm")
    assert outcome.status == "completed"
    assert completions.requests[-1][-1]["content"].startswith(
        "Command: buy the blue shoes (the user has confirmed this action)"
    )


async def test_actions_are_reported(driver):
    completions = ScriptedCompletions(
        [completion(tool_calls=[tool_call("click_element", {"index": 1})]), completion("Opened Courses.")]
    )
    controller = web_sight(driver, completions)
    outcome = await controller.handle_command("click the 2nd link")
    assert outcome.actions == ['Clicking "Courses"']


async def test_transcripts_drive_commands_and_speech_interrupts(driver):
    transport = FakeTransport()
    session = RealtimeSession(
        web_sight_profile(),
        StaticCredentials(),
        connect=FakeConnector([transport]),
        url="wss://realtime.test",
        sleep=RecordingSleep(),
    )
    completions = ScriptedCompletions([completion("Opened Courses.")])
    speech = FakeSpeech()
    controller = web_sight(driver, completions, session=session, speech=speech)
    await controller.activate()

    transport.push({"type": ev.TRANSCRIPTION_COMPLETED, "transcript": "open courses"})
    assert await eventually(lambda: speech.spoken)
    assert speech.spoken[-1][0] == "Opened Courses."

    transport.push({"type": ev.SPEECH_STARTED})
    assert await eventually(lambda: speech.stopped == 1)

    await controller.deactivate()
    assert session.listeners.count("transcript") == 0
    assert not session.should_connect


# ------------------------------------------------------------------ #
# ClearContext
# ------------------------------------------------------------------ #


def test_extract_terms():
    block = json.dumps({"term": "Entropy", "definition": "Disorder", "parent": "Thermodynamics", "visual": "ice melting"})
    text = f"Heat flows from hot to cold.\nTERM:{block}\nTERM:{{broken\nMore text."
    display, terms = extract_terms(text)

    assert terms == [Term("Entropy", "Disorder", "Thermodynamics", "ice melting")]
    assert "Entropy" not in display
    assert display.startswith("Heat flows from hot to cold.")


def test_concept_map_dedupes_terms():
    concept_map = ConceptMap()
    assert concept_map.add(Term("Entropy", parent="Thermodynamics"))
    assert not concept_map.add(Term("entropy", parent="Physics"))
    concept_map.add(Term("Enthalpy", parent="Thermodynamics"))
    assert concept_map.by_parent() == {"Thermodynamics": ["Entropy", "Enthalpy"]}


def test_parent_color_is_stable():
    assert parent_color("Thermodynamics") == parent_color("thermodynamics")
    assert parent_color("") == parent_color("General")


async def test_question_without_live_session_uses_chat_fallback():
    block = json.dumps({"term": "Photon", "definition": "Light particle", "parent": "Optics"})
    completions = ScriptedCompletions([completion(f"A photon is a packet of light.\nTERM:{block}")])
    speech = FakeSpeech()
    controller = ClearContextController(completions=completions, speech=speech)
    controller.transcript.append("Today we discuss light.")

    answer = await controller.ask("what is a photon?")

    assert answer == "A photon is a packet of light."
    assert [c.term for c in controller.cards] == ["Photon"]
    prompt = completions.requests[0][-1]["content"]
    assert "Today we discuss light." in prompt
    assert f"{QUESTION_PREFIX}what is a photon?" in prompt
    assert speech.spoken == [("A photon is a packet of light.", 0.9, 1.0, 0.7)]


async def test_question_with_live_session_goes_to_the_session():
    transport = FakeTransport()
    session = RealtimeSession(
        clear_context_profile(),
        StaticCredentials(),
        connect=FakeConnector([transport]),
        url="wss://realtime.test",
        sleep=RecordingSleep(),
    )
    controller = ClearContextController(session=session)
    await controller.activate()

    assert await controller.ask("what is a photon?") is None

    create, respond = transport.sent[-2:]
    assert create["type"] == "conversation.item.create"
    assert create["item"]["content"][0]["text"] == QUESTION_PREFIX + "what is a photon?"
    assert respond == {"type": "response.create"}
    await controller.deactivate()


# ------------------------------------------------------------------ #
# Social Cue
# ------------------------------------------------------------------ #


@pytest.mark.parametrize(
    "text, category",
    [
        ("Insight: they look bored", "emotion"),
        ("ACTION: ask about their weekend", "action"),
        ("Vibe: relaxed", "vibe"),
        ("They seem happy", "insight"),
    ],
)
def test_categorize(text, category):
    assert categorize(text) == category


def test_social_cues_are_whispered_and_feed_is_bounded():
    speech = FakeSpeech()
    controller = SocialCueController(speech=speech)
    for i in range(FEED_SIZE + 5):
        controller.handle_response(f"Vibe: calm {i}")

    assert len(controller.feed) == FEED_SIZE
    assert controller.feed[0].text == "Vibe: calm 5"
    assert speech.spoken[-1] == (f"Vibe: calm {FEED_SIZE + 4}", 0.85, 0.7, 0.3)
    assert controller.handle_response("   ") is None


def test_social_cue_profile_is_text_only():
    update = social_cue_profile().session_update()["session"]
    assert update["modalities"] == ["text"]
    assert update["max_response_output_tokens"] == 60
    assert update["turn_detection"]["silence_duration_ms"] == 500
