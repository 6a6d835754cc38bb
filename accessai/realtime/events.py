"""Realtime event parsing and per-turn text accumulation."""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

from ..errors import MalformedEventError

SESSION_CREATED = "session.created"
SESSION_UPDATED = "session.updated"
SPEECH_STARTED = "input_audio_buffer.speech_started"
SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
TRANSCRIPTION_COMPLETED = "conversation.item.input_audio_transcription.completed"
TEXT_DELTA = "response.text.delta"
TEXT_DONE = "response.text.done"
AUDIO_TRANSCRIPT_DELTA = "response.audio_transcript.delta"
AUDIO_TRANSCRIPT_DONE = "response.audio_transcript.done"
AUDIO_DELTA = "response.audio.delta"
RESPONSE_DONE = "response.done"
ERROR = "error"

SESSION_EXPIRED_CODE = "session_expired"

logger = logging.getLogger("AccessAI.RealtimeEvents")


@dataclass(frozen=True)
class TranscriptEvent:
    """A finalized user utterance."""

    text: str
    source: str = "user_speech"
    timestamp: float = field(default_factory=time.time)


def parse_event(line: Union[str, bytes]) -> Dict[str, Any]:
    """Parse one JSON event object."""
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    try:
        event = json.loads(line)
    except json.JSONDecodeError as exc:
        raise MalformedEventError(f"Invalid JSON event: {exc}", raw=line[:200]) from exc
    if not isinstance(event, dict) or not isinstance(event.get("type"), str):
        raise MalformedEventError("Event has no type", raw=line[:200])
    return event


def text_field(event: Dict[str, Any], key: str) -> str:
    """Read a string payload field; a missing field reads as empty."""
    value = event.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise MalformedEventError(f"{event['type']}.{key} is not a string", raw=repr(value)[:200])
    return value


def parse_frame(frame: Union[str, bytes]) -> List[Dict[str, Any]]:
    """Parse every newline-delimited event in a frame, dropping malformed ones."""
    if isinstance(frame, bytes):
        frame = frame.decode("utf-8", errors="replace")
    events = []
    for line in frame.splitlines():
        if not line.strip():
            continue
        try:
            events.append(parse_event(line))
        except MalformedEventError as exc:
            logger.warning(f"Dropping malformed event: {exc} ({exc.raw!r})")
    return events


def error_details(event: Dict[str, Any]) -> Dict[str, str]:
    error = event.get("error") or {}
    if not isinstance(error, dict):
        error = {"message": str(error)}
    return {
        "code": str(error.get("code") or ""),
        "type": str(error.get("type") or ""),
        "message": str(error.get("message") or "Unknown error"),
    }


class TurnBuffer:
    """Response text for the turn in progress."""

    def __init__(self):
        self.text = ""

    def append(self, delta: str) -> str:
        self.text += delta or ""
        return self.text

    def replace(self, full_text: str) -> str:
        self.text = full_text or ""
        return self.text

    def take(self) -> str:
        """Return the accumulated text and clear the buffer."""
        text, self.text = self.text, ""
        return text

    def clear(self) -> None:
        self.text = ""
