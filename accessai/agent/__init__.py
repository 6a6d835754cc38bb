"""Agentic browser control: tools, loop, history and the safety gate."""

from .history import ConversationHistory
from .loop import AgenticToolLoop, LoopResult
from .safety import GateAction, SafetyGate
from .tools import BrowserToolbox

__all__ = [
    "AgenticToolLoop",
    "BrowserToolbox",
    "ConversationHistory",
    "GateAction",
    "LoopResult",
    "SafetyGate",
]
