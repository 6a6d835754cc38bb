"""ClearContext: live lecture explanations with term cards and a concept map."""

import json
import re
import zlib
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..realtime.events import TranscriptEvent
from ..realtime.session import RealtimeSession, SessionState
from ..realtime.profiles import CLEAR_CONTEXT_INSTRUCTIONS
from ..speech import SpeechOutput
from .base import ModeController

TERM_BLOCK = re.compile(r"TERM:(\{[\s\S]*?\})")
QUESTION_PREFIX = "[STUDENT QUESTION]: "
PARENT_COLORS = ["#4f8cff", "#22c55e", "#f59e0b", "#ef4444", "#a855f7", "#14b8a6", "#ec4899", "#84cc16"]
TRANSCRIPT_CONTEXT_LINES = 12


@dataclass
class Term:
    term: str
    definition: str = ""
    parent: str = ""
    visual: str = ""


@dataclass
class ConceptNode:
    term: str
    parent: str
    color: str


def extract_terms(text: str) -> Tuple[str, List[Term]]:
    """Split response text into display text and parsed TERM blocks."""
    terms = []
    for match in TERM_BLOCK.finditer(text or ""):
        try:
            data = json.loads(match.group(1))
        except json.JSONDecodeError:
            continue
        if not isinstance(data, dict) or not str(data.get("term", "")).strip():
            continue
        terms.append(
            Term(
                term=str(data["term"]).strip(),
                definition=str(data.get("definition", "")).strip(),
                parent=str(data.get("parent", "")).strip(),
                visual=str(data.get("visual", "")).strip(),
            )
        )
    display = TERM_BLOCK.sub("", text or "").strip()
    return display, terms


def parent_color(parent: str) -> str:
    """Same parent, same colour, across runs."""
    key = (parent or "general").lower().encode("utf-8")
    return PARENT_COLORS[zlib.crc32(key) % len(PARENT_COLORS)]


class ConceptMap:
    """Terms grouped under their parent concepts, one node per term."""

    def __init__(self):
        self.nodes: Dict[str, ConceptNode] = {}

    def add(self, term: Term) -> bool:
        key = term.term.lower()
        if key in self.nodes:
            return False
        self.nodes[key] = ConceptNode(term.term, term.parent, parent_color(term.parent))
        return True

    def by_parent(self) -> Dict[str, List[str]]:
        groups: Dict[str, List[str]] = {}
        for node in self.nodes.values():
            groups.setdefault(node.parent or "General", []).append(node.term)
        return groups


class ClearContextController(ModeController):
    """Explains what the lecturer says; answers the student's questions."""

    name = "clear-context"

    def __init__(
        self,
        session: Optional[RealtimeSession] = None,
        completions=None,
        speech: Optional[SpeechOutput] = None,
        logger=None,
    ):
        super().__init__(session=session, speech=speech, logger=logger)
        self.completions = completions
        self.cards: List[Term] = []
        self.concept_map = ConceptMap()
        self.transcript: List[str] = []
        self.explanations: List[str] = []

    def _attach(self) -> None:
        super()._attach()
        self._listen("transcript", self._on_transcript)
        self._listen("response_text", self.handle_response)

    def _on_transcript(self, event: TranscriptEvent) -> None:
        self.transcript.append(event.text)
        self._panel(event.text, title="Lecture", style="white")

    def handle_response(self, text: str) -> str:
        """Record a finished explanation and its terms; returns display text."""
        display, terms = extract_terms(text)
        for term in terms:
            if self.concept_map.add(term):
                self.cards.append(term)
                self._panel(f"{term.definition}\n({term.parent or 'General'})", title=term.term, style=parent_color(term.parent))
        if display:
            self.explanations.append(display)
            self._panel(display, title="Explanation", style="cyan")
        return display

    async def ask(self, question: str) -> Optional[str]:
        """Ask about the lecture; uses the live session when it is up."""
        question = (question or "").strip()
        if not question:
            return None
        if self.session is not None and self.session.state is SessionState.ACTIVE:
            await self.session.send_event(
                {
                    "type": "conversation.item.create",
                    "item": {
                        "type": "message",
                        "role": "user",
                        "content": [{"type": "input_text", "text": QUESTION_PREFIX + question}],
                    },
                }
            )
            await self.session.send_event({"type": "response.create"})
            return None
        return await self._ask_fallback(question)

    async def _ask_fallback(self, question: str) -> Optional[str]:
        if self.completions is None:
            return None
        context = "\n".join(self.transcript[-TRANSCRIPT_CONTEXT_LINES:]) or "(no lecture transcript yet)"
        messages = [
            {"role": "system", "content": CLEAR_CONTEXT_INSTRUCTIONS},
            {"role": "user", "content": f"Lecture so far:\n{context}\n\n{QUESTION_PREFIX}{question}"},
        ]
        result = await self.completions.request(messages, max_tokens=300, temperature=0.4)
        if not result.success:
            self._panel(f"Could not answer: {result.error}", title="Error", style="red", level="error")
            return None
        message = result.message() or {}
        display = self.handle_response(message.get("content") or "")
        if self.speech is not None and display:
            self.speech.speak(display, rate=0.9, volume=0.7)
        return display
