"""
Confirmation checkpoint for purchase, checkout and payment commands.

A sensitive command is held until the user says a confirmation word. Only one
command is ever held: a newer sensitive command replaces it, and any other
utterance cancels it.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

SENSITIVE_PATTERNS = [
    r"\bbuy\b",
    r"\bpurchas(e|ing)\b",
    r"\bcheck\s*out\b",
    r"\bcheckout\b",
    r"\bpay(ing|ment|ments)?\b",
    r"\bplace\s+(the\s+|my\s+|an\s+)?order\b",
    r"\border\s+now\b",
    r"\bsubmit\s+(the\s+|my\s+)?order\b",
    r"\bcredit\s+card\b",
    r"\bcomplete\s+(the\s+|my\s+)?(purchase|transaction)\b",
]
CONFIRM_WORDS = {
    "confirm",
    "confirmed",
    "yes confirm",
    "i confirm",
    "yes",
    "yes please",
    "go ahead",
    "proceed",
    "do it",
}

CONFIRMATION_PROMPT = (
    "This looks like a purchase or payment: \"{command}\". "
    "Say \"confirm\" to continue, or anything else to cancel."
)

_SENSITIVE = re.compile("|".join(SENSITIVE_PATTERNS), re.IGNORECASE)


class GateAction(str, Enum):
    RUN = "run"
    HOLD = "hold"
    CANCELLED = "cancelled"


@dataclass
class PendingConfirmation:
    command: str


@dataclass
class GateDecision:
    action: GateAction
    command: str = ""
    confirmed: bool = False
    message: str = ""


def is_sensitive(command: str) -> bool:
    return bool(_SENSITIVE.search(command or ""))


def is_confirmation(text: str) -> bool:
    cleaned = re.sub(r"[^a-z\s]", "", (text or "").lower())
    cleaned = " ".join(cleaned.split())
    return cleaned in CONFIRM_WORDS


class SafetyGate:
    """Holds at most one sensitive command until it is confirmed."""

    def __init__(self, logger=None):
        self.logger = logger or logging.getLogger("AccessAI.SafetyGate")
        self.pending: Optional[PendingConfirmation] = None

    @property
    def has_pending(self) -> bool:
        return self.pending is not None

    def review(self, command: str) -> GateDecision:
        """Decide what happens to an incoming command."""
        if self.pending is not None and is_confirmation(command):
            held = self.pending.command
            self.pending = None
            self.logger.info(f"Sensitive command confirmed: {held}")
            return GateDecision(GateAction.RUN, command=held, confirmed=True)

        if is_sensitive(command):
            if self.pending is not None:
                self.logger.info(f"Replacing pending confirmation: {self.pending.command}")
            self.pending = PendingConfirmation(command)
            return GateDecision(
                GateAction.HOLD,
                command=command,
                message=CONFIRMATION_PROMPT.format(command=command),
            )

        if self.pending is not None:
            self.logger.info(f"Pending confirmation cancelled by: {command}")
            self.pending = None
            return GateDecision(GateAction.CANCELLED, command=command, message="Okay, cancelled.")

        return GateDecision(GateAction.RUN, command=command)

    def clear(self) -> None:
        self.pending = None
