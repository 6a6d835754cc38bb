"""Realtime streaming session and its configuration profiles."""

from .events import TranscriptEvent
from .profiles import PROFILES, SessionProfile
from .session import ReconnectPolicy, RealtimeSession, SessionState

__all__ = [
    "PROFILES",
    "ReconnectPolicy",
    "RealtimeSession",
    "SessionProfile",
    "SessionState",
    "TranscriptEvent",
]
