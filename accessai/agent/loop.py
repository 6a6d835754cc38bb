"""
Agentic browser-control loop.

One command runs as a bounded series of chat-completion requests. Every
response either asks for browser tools (executed one after another, with a
fresh page snapshot appended afterwards) or ends the loop with its text.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..config import (
    AGENT_HISTORY_TURNS,
    AGENT_MAX_MESSAGES,
    AGENT_MAX_STEPS,
    AGENT_MAX_TOKENS,
    AGENT_SETTLE_DELAY,
    AGENT_TEMPERATURE,
)
from ..page.resolver import navigation_matches
from ..page.snapshot import PageSnapshot
from .history import ConversationHistory
from .tools import BrowserToolbox

SYSTEM_PROMPT = """You are AccessAI, a voice assistant that operates web pages for people who cannot easily see or use them.

You receive the user's command, the page metadata and an indexed list of interactive elements. Use the tools to carry out the command on the page, then reply with one or two short spoken sentences describing what happened or what you found.

Rules:
- Act immediately; do not ask for permission for ordinary navigation.
- Target elements by their index from the latest snapshot or by their selector.
- Indexes change after every action; always use the newest snapshot.
- Prefer the site's own navigation labels over the user's literal words. If a navigation label matches the request, click it instead of typing into a search box.
- Use find_elements when no listed element obviously matches.
- Use read_page to answer questions about page content.
- If an action fails, try another way before giving up.
- Never invent page content. Keep replies brief and plain; no markdown."""

STATUS_COMPLETED = "completed"
STATUS_EXHAUSTED = "exhausted"
STATUS_ERROR = "error"
STATUS_BUSY = "busy"
STATUS_CANCELLED = "cancelled"

BUSY_MESSAGE = "I'm still working on the previous request."


@dataclass
class LoopResult:
    status: str
    text: str
    actions: List[str] = field(default_factory=list)
    steps: int = 0

    @property
    def ok(self) -> bool:
        return self.status in (STATUS_COMPLETED, STATUS_EXHAUSTED)


def split_exchanges(messages: List[Dict[str, Any]]) -> List[List[Dict[str, Any]]]:
    """Group messages: each user or assistant message opens an exchange; tool results join it."""
    exchanges: List[List[Dict[str, Any]]] = []
    for message in messages:
        if message.get("role") == "tool" and exchanges:
            exchanges[-1].append(message)
        else:
            exchanges.append([message])
    return exchanges


def prune_messages(messages: List[Dict[str, Any]], max_messages: int) -> List[Dict[str, Any]]:
    """Drop the oldest exchanges until under ``max_messages``, keeping the system prompt and the newest exchange."""
    if len(messages) <= max_messages:
        return messages
    head: List[Dict[str, Any]] = []
    body = messages
    if messages and messages[0].get("role") == "system":
        head, body = messages[:1], messages[1:]
    exchanges = split_exchanges(body)
    total = len(messages)
    while total > max_messages and len(exchanges) > 1:
        total -= len(exchanges.pop(0))
    return head + [m for exchange in exchanges for m in exchange]


class AgenticToolLoop:
    """Runs commands against the page with a step ceiling."""

    def __init__(
        self,
        completions,
        toolbox: BrowserToolbox,
        history: Optional[ConversationHistory] = None,
        *,
        max_steps: int = AGENT_MAX_STEPS,
        settle_delay: float = AGENT_SETTLE_DELAY,
        history_turns: int = AGENT_HISTORY_TURNS,
        max_messages: int = AGENT_MAX_MESSAGES,
        max_tokens: int = AGENT_MAX_TOKENS,
        temperature: float = AGENT_TEMPERATURE,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_action: Optional[Callable[[str], None]] = None,
        logger=None,
    ):
        self.completions = completions
        self.toolbox = toolbox
        self.history = history or ConversationHistory()
        self.max_steps = max_steps
        self.settle_delay = settle_delay
        self.history_turns = history_turns
        self.max_messages = max_messages
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.sleep = sleep
        self.on_action = on_action
        self.logger = logger or logging.getLogger("AccessAI.AgenticToolLoop")
        self._running = False
        self._cancelled = False

    @property
    def running(self) -> bool:
        return self._running

    def cancel(self) -> None:
        """Stop the running command at the next step boundary."""
        if self._running:
            self._cancelled = True

    # ------------------------------------------------------------------ #
    # Message construction
    # ------------------------------------------------------------------ #

    def _page_message(self, command: str, snapshot: PageSnapshot, *, confirmed: bool = False, refreshed: bool = False) -> str:
        context = self.toolbox.page_context()
        lines = []
        if refreshed:
            lines.append(f"Updated page after the last actions. Task: {command}")
        else:
            suffix = " (the user has confirmed this action)" if confirmed else ""
            lines.append(f"Command: {command}{suffix}")
        lines.append(f"Domain: {context.get('domain', '')}")
        if context.get("search_query"):
            lines.append(f"Active search query: {context['search_query']}")
        forms = context.get("forms") or []
        if forms:
            rendered = "; ".join(f"{f['label']} ({f['type']})" + (f" = {f['value']}" if f["value"] else "") for f in forms[:15])
            lines.append(f"Form fields: {rendered}")
        if snapshot.nav_vocabulary:
            lines.append("Site navigation labels: " + " | ".join(snapshot.nav_vocabulary))
            matches = navigation_matches(command, snapshot.nav_vocabulary)
            if matches:
                lines.append(
                    "Navigation labels matching the request: "
                    + " | ".join(matches)
                    + ". Prefer clicking these over typing into a search box."
                )
        lines.append(snapshot.render())
        return "\n".join(lines)

    def _build_messages(self, command: str, snapshot: PageSnapshot, confirmed: bool) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = [{"role": "system", "content": SYSTEM_PROMPT}]
        messages.extend(self.history.recent_messages(self.history_turns))
        messages.append({"role": "user", "content": self._page_message(command, snapshot, confirmed=confirmed)})
        return messages

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    async def run(self, command: str, confirmed: bool = False) -> LoopResult:
        """Carry out ``command``; never raises."""
        if self._running:
            self.logger.warning(f"Rejected command while busy: {command}")
            return LoopResult(STATUS_BUSY, BUSY_MESSAGE)

        self._running = True
        self._cancelled = False
        try:
            result = await self._run(command, confirmed)
        except Exception as e:
            self.logger.error(f"Error processing command: {e}", exc_info=True)
            result = LoopResult(STATUS_ERROR, f"Sorry, something went wrong: {e}")
        finally:
            self._running = False

        if result.ok:
            self.history.add_exchange(command, result.text)
            self.history.save()
        self.logger.info(f"Command finished ({result.status}, {result.steps} steps): {result.text}")
        return result

    async def _run(self, command: str, confirmed: bool) -> LoopResult:
        snapshot = await self.toolbox.refresh()
        messages = self._build_messages(command, snapshot, confirmed)
        actions: List[str] = []
        last_text = ""

        for step in range(1, self.max_steps + 1):
            if self._cancelled:
                return LoopResult(STATUS_CANCELLED, "Stopped.", actions, step - 1)

            result = await self.completions.request(
                messages,
                tools=self.toolbox.tool_specs,
                tool_choice="auto",
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
            if not result.success:
                return LoopResult(STATUS_ERROR, f"Sorry, something went wrong: {result.error}", actions, step)

            message = result.message()
            if not message:
                return LoopResult(STATUS_ERROR, "No response received.", actions, step)

            content = (message.get("content") or "").strip()
            tool_calls = message.get("tool_calls") or []
            if not tool_calls:
                return LoopResult(STATUS_COMPLETED, content or "Done.", actions, step)

            if content:
                last_text = content
            assistant: Dict[str, Any] = {"role": "assistant", "tool_calls": tool_calls}
            if content:
                assistant["content"] = content
            messages.append(assistant)

            for call in tool_calls:
                function = call.get("function") or {}
                name = function.get("name")
                self.logger.info(f"Tool call: {name} with args: {function.get('arguments')}")
                payload, label = await self.toolbox.execute(name, function.get("arguments") or "")
                actions.append(label)
                if self.on_action:
                    self.on_action(label)
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.get("id", ""),
                        "content": json.dumps(payload),
                    }
                )
                if self._cancelled:
                    break

            await self.sleep(self.settle_delay)
            try:
                snapshot = await self.toolbox.refresh()
                refreshed = self._page_message(command, snapshot, refreshed=True)
            except Exception as exc:
                self.logger.error(f"Snapshot after step {step} failed: {exc}")
                refreshed = f"Page snapshot unavailable ({exc}). Task: {command}"
            messages.append({"role": "user", "content": refreshed})
            messages = prune_messages(messages, self.max_messages)

        text = f"I did not fully complete this within the maximum steps ({self.max_steps})."
        if last_text:
            text += f" Last update: {last_text}"
        return LoopResult(STATUS_EXHAUSTED, text, actions, self.max_steps)
