"""Bounded command/reply history with JSON persistence."""

import json
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import HISTORY_MAX_TURNS


@dataclass
class HistoryEntry:
    role: str
    type: str
    text: str
    timestamp: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            role=str(data.get("role", "user")),
            type=str(data.get("type", "cmd")),
            text=str(data.get("text", "")),
            timestamp=float(data.get("timestamp") or 0.0),
        )


class ConversationHistory:
    """Most recent commands and replies, optionally backed by a JSON file."""

    def __init__(self, path: Optional[Path] = None, max_entries: int = HISTORY_MAX_TURNS, logger=None):
        self.path = Path(path) if path else None
        self.max_entries = max_entries
        self.logger = logger or logging.getLogger("AccessAI.ConversationHistory")
        self.entries: List[HistoryEntry] = []

    def add(self, role: str, entry_type: str, text: str, timestamp: Optional[float] = None) -> HistoryEntry:
        entry = HistoryEntry(role, entry_type, text, time.time() if timestamp is None else timestamp)
        self.entries.append(entry)
        if len(self.entries) > self.max_entries:
            self.entries = self.entries[-self.max_entries :]
        return entry

    def add_exchange(self, command: str, reply: str) -> None:
        self.add("user", "cmd", command)
        self.add("assistant", "reply", reply)

    def recent_messages(self, limit: int) -> List[Dict[str, str]]:
        """Last ``limit`` command/reply entries as chat messages."""
        relevant = [e for e in self.entries if e.type in ("cmd", "reply") and e.text]
        return [{"role": e.role, "content": e.text} for e in relevant[-limit:]] if limit > 0 else []

    def clear(self) -> None:
        self.entries = []
        self.save()

    def to_list(self) -> List[Dict[str, Any]]:
        return [asdict(e) for e in self.entries]

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #

    def load(self) -> None:
        """Load history from disk."""
        if not self.path or not self.path.exists():
            return
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
            self.entries = [HistoryEntry.from_dict(item) for item in data if isinstance(item, dict)]
            self.entries = self.entries[-self.max_entries :]
        except (OSError, TypeError, ValueError) as exc:
            self.logger.error(f"Failed to load history: {exc}")
            self.entries = []

    def save(self) -> None:
        """Save history to disk."""
        if not self.path:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("w", encoding="utf-8") as fh:
                json.dump(self.to_list(), fh, indent=2)
        except OSError as exc:
            self.logger.error(f"Failed to save history: {exc}")
