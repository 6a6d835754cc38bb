"""Session configurations for the three assistant modes."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..config import REALTIME_MODEL, TRANSCRIPTION_MODEL, TTS_VOICE

WEB_SIGHT_INSTRUCTIONS = "Transcribe the user's speech. Do not respond."

CLEAR_CONTEXT_INSTRUCTIONS = """You help a student follow a live lecture. Listen to the speaker and, after each meaningful point, explain it in one or two plain sentences.
When a technical term comes up, add one line per term in the form:
TERM:{"term": "...", "definition": "...", "parent": "...", "visual": "..."}
where "parent" is the broader concept it belongs to and "visual" is a short picture of the idea.
Ignore filler words (um, like, basically). Messages starting with [STUDENT QUESTION]: are questions from the student; answer them directly."""

SOCIAL_CUE_INSTRUCTIONS = """You quietly coach the user during a conversation. From the other person's tone, give at most one short line, starting with one of:
Insight: what they seem to feel.
Action: what the user could say or do.
Vibe: the overall mood.
Stay silent when nothing notable happens."""


@dataclass
class TurnDetection:
    threshold: float = 0.5
    prefix_padding_ms: int = 300
    silence_duration_ms: int = 500
    create_response: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "server_vad",
            "threshold": self.threshold,
            "prefix_padding_ms": self.prefix_padding_ms,
            "silence_duration_ms": self.silence_duration_ms,
            "create_response": self.create_response,
        }


@dataclass
class SessionProfile:
    """Everything the ``session.update`` message declares."""

    name: str
    modalities: List[str]
    instructions: str
    turn_detection: TurnDetection = field(default_factory=TurnDetection)
    voice: Optional[str] = None
    temperature: float = 0.6
    max_response_output_tokens: Any = "inf"
    transcription_model: str = TRANSCRIPTION_MODEL
    model: str = REALTIME_MODEL

    @property
    def audio_output(self) -> bool:
        return "audio" in self.modalities

    def session_update(self) -> Dict[str, Any]:
        session: Dict[str, Any] = {
            "modalities": list(self.modalities),
            "instructions": self.instructions,
            "input_audio_format": "pcm16",
            "input_audio_transcription": {"model": self.transcription_model},
            "turn_detection": self.turn_detection.to_dict(),
            "temperature": self.temperature,
            "max_response_output_tokens": self.max_response_output_tokens,
        }
        if self.audio_output:
            session["output_audio_format"] = "pcm16"
            session["voice"] = self.voice or TTS_VOICE
        return {"type": "session.update", "session": session}


def web_sight_profile() -> SessionProfile:
    """Transcription only: no model responses are generated."""
    return SessionProfile(
        name="web-sight",
        modalities=["text"],
        instructions=WEB_SIGHT_INSTRUCTIONS,
        turn_detection=TurnDetection(0.5, 500, 1200, create_response=False),
        max_response_output_tokens=1,
    )


def clear_context_profile() -> SessionProfile:
    return SessionProfile(
        name="clear-context",
        modalities=["text", "audio"],
        instructions=CLEAR_CONTEXT_INSTRUCTIONS,
        turn_detection=TurnDetection(0.5, 300, 800),
        voice="nova",
        temperature=0.4,
        max_response_output_tokens=400,
    )


def social_cue_profile() -> SessionProfile:
    return SessionProfile(
        name="social-cue",
        modalities=["text"],
        instructions=SOCIAL_CUE_INSTRUCTIONS,
        turn_detection=TurnDetection(0.5, 300, 500),
        temperature=0.3,
        max_response_output_tokens=60,
    )


PROFILES = {
    "web-sight": web_sight_profile,
    "clear-context": clear_context_profile,
    "social-cue": social_cue_profile,
}
