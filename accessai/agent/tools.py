"""
Browser tool catalog and executor.

Each tool works on a fresh capture of the page. Targets are given either as a
resolver expression / free-text description (``selector``) or as an index
into the snapshot the model was last shown (``index``); index targets are
re-resolved against the live page and reported as stale when they no longer
match anything.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from bs4 import Tag

from ..errors import ElementNotFound, NoInputField, ToolExecutionError, UnknownTool
from ..page.browser import PageDriver
from ..page.dom import PageDocument
from ..page.resolver import find_by_description, match_selector, resolve
from ..page.snapshot import PageSnapshot, describe, role_of, take_snapshot

SCROLL_DIRECTIONS = ("up", "down", "top", "bottom")
TEXT_ROLES = ("textbox", "searchbox")

_TARGET_PROPERTIES = {
    "selector": {
        "type": "string",
        "description": "Selector from the snapshot, or a short description of the element",
    },
    "index": {
        "type": "integer",
        "description": "Index of the element in the latest page snapshot",
    },
}


def _function(name: str, description: str, properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


def build_tool_specs() -> List[Dict[str, Any]]:
    """Build chat-completion function specs for the browser tools."""
    return [
        _function(
            "get_page_context",
            "Get the page URL, title, search query, form fields, navigation labels and an indexed list of interactive elements",
            {},
            [],
        ),
        _function(
            "find_elements",
            "Search all interactive elements for ones matching a description; returns the best matches with selectors",
            {"description": {"type": "string", "description": "What the element looks like or says"}},
            ["description"],
        ),
        _function(
            "click_element",
            "Click a link, button or other control",
            dict(_TARGET_PROPERTIES),
            [],
        ),
        _function(
            "type_text",
            "Type text into an input field. Without a target, the first visible text field is used",
            {
                **_TARGET_PROPERTIES,
                "text": {"type": "string", "description": "Text to type"},
                "submit": {"type": "boolean", "description": "Press Enter after typing"},
            },
            ["text"],
        ),
        _function(
            "press_key",
            "Press a keyboard key such as Enter, Escape, Tab or ArrowDown",
            {**_TARGET_PROPERTIES, "key": {"type": "string", "description": "Key name"}},
            ["key"],
        ),
        _function(
            "scroll_page",
            "Scroll the page",
            {"direction": {"type": "string", "enum": list(SCROLL_DIRECTIONS)}},
            ["direction"],
        ),
        _function(
            "navigate_to",
            "Open a URL in the current tab",
            {"url": {"type": "string", "description": "Address to open"}},
            ["url"],
        ),
        _function(
            "read_page",
            "Read the visible text content of the page",
            {},
            [],
        ),
        _function(
            "select_option",
            "Choose an option in a dropdown",
            {**_TARGET_PROPERTIES, "option": {"type": "string", "description": "Option label or value"}},
            ["option"],
        ),
    ]


class BrowserToolbox:
    """Executes browser tool calls against a :class:`PageDriver`."""

    def __init__(self, driver: PageDriver, logger=None):
        self.driver = driver
        self.logger = logger or logging.getLogger("AccessAI.BrowserToolbox")
        self.snapshot: Optional[PageSnapshot] = None
        self.document: Optional[PageDocument] = None
        self.tool_specs = build_tool_specs()

    # ------------------------------------------------------------------ #
    # Snapshots
    # ------------------------------------------------------------------ #

    async def refresh(self) -> PageSnapshot:
        """Capture the page and make the result the current snapshot."""
        self.document = await self.driver.capture()
        self.snapshot = take_snapshot(self.document)
        return self.snapshot

    def page_context(self) -> Dict[str, Any]:
        doc, snapshot = self.document, self.snapshot
        if doc is None or snapshot is None:
            return {}
        return {
            "url": doc.url,
            "title": doc.title,
            "domain": doc.hostname,
            "search_query": doc.search_query(),
            "forms": doc.form_fields(),
            "navigation": snapshot.nav_vocabulary,
            "snapshot": snapshot.render(),
        }

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #

    async def execute(self, tool_name: Optional[str], arguments_str: str) -> Tuple[Dict[str, Any], str]:
        """Run one tool call; returns the result payload and an action label."""
        parsed_args: Dict[str, Any] = {}
        if arguments_str:
            try:
                parsed_args = json.loads(arguments_str)
            except json.JSONDecodeError as exc:
                self.logger.error(f"Failed to parse tool arguments: {exc}")
                return {"ok": False, "error": f"Could not parse arguments: {exc}"}, "Reading instructions"
        if not isinstance(parsed_args, dict):
            return {"ok": False, "error": "Arguments must be a JSON object"}, "Reading instructions"

        handler_map = {
            "get_page_context": self._tool_get_page_context,
            "find_elements": self._tool_find_elements,
            "click_element": self._tool_click_element,
            "type_text": self._tool_type_text,
            "press_key": self._tool_press_key,
            "scroll_page": self._tool_scroll_page,
            "navigate_to": self._tool_navigate_to,
            "read_page": self._tool_read_page,
            "select_option": self._tool_select_option,
        }

        handler = handler_map.get(tool_name or "")
        try:
            if not handler:
                raise UnknownTool(f"Tool '{tool_name}' is not available.")
            return await handler(**parsed_args)
        except ToolExecutionError as exc:
            self.logger.warning(f"Tool '{tool_name}' failed: {exc}")
            return {"ok": False, "error": str(exc), "kind": exc.kind}, f"Could not run {tool_name}"
        except Exception as exc:
            self.logger.exception(f"Tool '{tool_name}' failed")
            return {"ok": False, "error": f"Tool failed: {exc}"}, f"Could not run {tool_name}"

    # ------------------------------------------------------------------ #
    # Targets
    # ------------------------------------------------------------------ #

    async def _target(self, selector: Optional[str], index: Optional[int]) -> Tuple[Tag, PageDocument]:
        if index is not None:
            if self.snapshot is None:
                raise ElementNotFound(f"[{index}]", "No snapshot has been taken yet")
            descriptor = self.snapshot.get(int(index))
            if descriptor is None:
                raise ElementNotFound(f"[{index}]", f"Index {index} is not in the current snapshot")
            doc = await self.driver.capture()
            tag = match_selector(doc, descriptor.selector)
            if tag is None:
                raise ElementNotFound(
                    f"[{index}]",
                    f"Element [{index}] ({descriptor.description}) is no longer on the page; get a new snapshot",
                )
            return tag, doc
        if selector:
            doc = await self.driver.capture()
            return resolve(doc, selector).element, doc
        raise ToolExecutionError("Provide a selector or an index")

    @staticmethod
    def _label(doc: PageDocument, tag: Tag) -> str:
        return describe(doc, tag) or tag.name

    # ------------------------------------------------------------------ #
    # Tools
    # ------------------------------------------------------------------ #

    async def _tool_get_page_context(self) -> Tuple[Dict[str, Any], str]:
        await self.refresh()
        return {"ok": True, **self.page_context()}, "Looking at the page"

    async def _tool_find_elements(self, description: str) -> Tuple[Dict[str, Any], str]:
        doc = await self.driver.capture()
        matches = find_by_description(doc, description)
        results = [{**m.descriptor.to_dict(), "score": m.score} for m in matches]
        return {"ok": True, "matches": results}, f'Searching for "{description}"'

    async def _tool_click_element(self, selector: Optional[str] = None, index: Optional[int] = None):
        tag, doc = await self._target(selector, index)
        label = self._label(doc, tag)
        await self.driver.click(doc.node_id(tag))
        return {"ok": True, "clicked": label}, f'Clicking "{label}"'

    async def _tool_type_text(
        self,
        text: str,
        selector: Optional[str] = None,
        index: Optional[int] = None,
        submit: bool = False,
    ):
        if selector or index is not None:
            tag, doc = await self._target(selector, index)
        else:
            doc = await self.driver.capture()
            fields = [item for item in take_snapshot(doc).elements if item.role in TEXT_ROLES]
            if not fields:
                raise NoInputField("No input field found on this page")
            tag = doc.node(fields[0].node_id)
        if role_of(tag) not in TEXT_ROLES and tag.get("contenteditable") is None:
            raise NoInputField(f"'{self._label(doc, tag)}' is not a text field")
        label = self._label(doc, tag)
        await self.driver.fill(doc.node_id(tag), text)
        if submit:
            await self.driver.press("Enter", doc.node_id(tag))
        return {"ok": True, "typed": text, "field": label, "submitted": bool(submit)}, f'Typing "{text}"'

    async def _tool_press_key(self, key: str, selector: Optional[str] = None, index: Optional[int] = None):
        node_id = None
        if selector or index is not None:
            tag, doc = await self._target(selector, index)
            node_id = doc.node_id(tag)
        await self.driver.press(key, node_id)
        return {"ok": True, "key": key}, f"Pressing {key}"

    async def _tool_scroll_page(self, direction: str = "down"):
        direction = (direction or "down").lower()
        if direction not in SCROLL_DIRECTIONS:
            raise ToolExecutionError(f"Unknown scroll direction '{direction}'")
        await self.driver.scroll(direction)
        return {"ok": True, "direction": direction}, f"Scrolling {direction}"

    async def _tool_navigate_to(self, url: str):
        await self.driver.goto(url)
        return {"ok": True, "url": url}, f"Opening {url}"

    async def _tool_read_page(self):
        text = await self.driver.read_text()
        return {"ok": True, "text": text}, "Reading the page"

    async def _tool_select_option(self, option: str, selector: Optional[str] = None, index: Optional[int] = None):
        tag, doc = await self._target(selector, index)
        if tag.name != "select":
            raise ToolExecutionError(f"'{self._label(doc, tag)}' is not a dropdown")
        await self.driver.select_option(doc.node_id(tag), option)
        return {"ok": True, "selected": option}, f'Choosing "{option}"'
