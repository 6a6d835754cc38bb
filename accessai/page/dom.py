"""
Parsed page document.

Every capture of the live page is turned into a :class:`PageDocument`: the
browser annotates each element with a stable node ordinal, a computed
visibility flag and the current form value, then the serialized HTML is
parsed with BeautifulSoup. Introspection (snapshot, resolution, search) runs
entirely against this parsed tree; actions go back to the live page through
the node ordinal.
"""

import re
from typing import Dict, Iterator, List, Optional
from urllib.parse import parse_qs, urlparse

import soupsieve as sv
from bs4 import BeautifulSoup, NavigableString, Tag

from ..config import EXTENSION_ROOT_SELECTOR

NODE_ATTR = "data-aai-node"
HIDDEN_ATTR = "data-aai-hidden"
VALUE_ATTR = "data-aai-value"

# Runs in the page: tags every element with its document-order ordinal and
# records computed visibility and live form values as attributes.
ANNOTATE_SCRIPT = """() => {
    const all = document.querySelectorAll('*');
    let idx = 0;
    for (const el of all) {
      el.setAttribute('data-aai-node', String(idx++));
      const style = window.getComputedStyle(el);
      const hidden = style.display === 'none'
        || style.visibility === 'hidden'
        || parseFloat(style.opacity) === 0;
      if (hidden) {
        el.setAttribute('data-aai-hidden', '1');
      } else {
        el.removeAttribute('data-aai-hidden');
      }
      if ('value' in el && typeof el.value === 'string'
          && ['INPUT', 'TEXTAREA', 'SELECT'].includes(el.tagName)) {
        el.setAttribute('data-aai-value', el.value);
      }
    }
    return { url: window.location.href, title: document.title || '' };
}"""

SKIPPED_TEXT_PARENTS = {"script", "style", "noscript", "template", "head", "title"}
SEARCH_PARAMS = ("q", "query", "search", "search_query", "k", "keywords", "term", "s")

_WHITESPACE = re.compile(r"\s+")
_OPACITY = re.compile(r"opacity\s*:\s*([0-9.]+)")


def normalize_text(text: str) -> str:
    """Collapse runs of whitespace and trim."""
    return _WHITESPACE.sub(" ", text or "").strip()


def css_string(value: str) -> str:
    """Quote a value for use inside a CSS attribute selector."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _inline_style(tag: Tag) -> str:
    return (tag.get("style") or "").replace(" ", "").lower()


class PageDocument:
    """A parsed capture of the page plus the metadata that came with it."""

    def __init__(self, html: str, url: str = "", title: str = "", extension_root: str = EXTENSION_ROOT_SELECTOR):
        self.soup = BeautifulSoup(html or "", "html.parser")
        self.url = url or ""
        self.title = normalize_text(title) or self._title_from_markup()
        self.extension_root = extension_root
        self._nodes: Dict[str, Tag] = {}
        self._number_nodes()
        self._extension_roots = self._find_extension_roots()

    @classmethod
    def from_html(cls, html: str, url: str = "", title: str = "") -> "PageDocument":
        return cls(html, url=url, title=title)

    # ------------------------------------------------------------------ #
    # Construction helpers
    # ------------------------------------------------------------------ #

    def _title_from_markup(self) -> str:
        title = self.soup.find("title")
        return normalize_text(title.get_text()) if title else ""

    def _number_nodes(self) -> None:
        # Static markup has no browser annotations; number it the same way.
        next_id = 0
        for tag in self.soup.find_all(True):
            node_id = tag.get(NODE_ATTR)
            if node_id is None:
                node_id = f"s{next_id}"
                tag[NODE_ATTR] = node_id
            next_id += 1
            self._nodes[str(node_id)] = tag

    def _find_extension_roots(self) -> List[Tag]:
        if not self.extension_root:
            return []
        try:
            return self.soup.select(self.extension_root)
        except sv.SelectorSyntaxError:
            return []

    # ------------------------------------------------------------------ #
    # Lookup
    # ------------------------------------------------------------------ #

    @property
    def hostname(self) -> str:
        return urlparse(self.url).hostname or ""

    def elements(self) -> Iterator[Tag]:
        """All elements in document order."""
        return iter(self.soup.find_all(True))

    def node(self, node_id: str) -> Optional[Tag]:
        return self._nodes.get(str(node_id))

    @staticmethod
    def node_id(tag: Tag) -> str:
        return str(tag.get(NODE_ATTR, ""))

    def select(self, selector: str, limit: int = 0) -> List[Tag]:
        """CSS select; invalid selectors raise ``soupsieve.SelectorSyntaxError``."""
        return self.soup.select(selector, limit=limit)

    def count(self, selector: str) -> int:
        try:
            return len(self.soup.select(selector, limit=2))
        except sv.SelectorSyntaxError:
            return 0

    def document_index(self, tag: Tag) -> int:
        """Position of ``tag`` in document order."""
        for idx, candidate in enumerate(self.soup.find_all(True)):
            if candidate is tag:
                return idx
        return -1

    # ------------------------------------------------------------------ #
    # Visibility
    # ------------------------------------------------------------------ #

    @staticmethod
    def _hides_itself(tag: Tag) -> bool:
        if tag.name in SKIPPED_TEXT_PARENTS:
            return True
        if tag.has_attr("hidden") or tag.get(HIDDEN_ATTR) == "1":
            return True
        if tag.name == "input" and (tag.get("type") or "").lower() == "hidden":
            return True
        style = _inline_style(tag)
        if "display:none" in style or "visibility:hidden" in style:
            return True
        match = _OPACITY.search(style)
        if match:
            try:
                if float(match.group(1)) == 0:
                    return True
            except ValueError:
                pass
        return False

    def is_hidden(self, tag: Tag) -> bool:
        """True when the element or any ancestor is not rendered."""
        node = tag
        while isinstance(node, Tag) and node.name != "[document]":
            if self._hides_itself(node):
                return True
            node = node.parent
        return False

    def in_extension_root(self, tag: Tag) -> bool:
        """True for elements inside the assistant's own UI."""
        if not self._extension_roots:
            return False
        node = tag
        while isinstance(node, Tag):
            if any(node is root for root in self._extension_roots):
                return True
            node = node.parent
        return False

    def is_usable(self, tag: Tag) -> bool:
        return not self.is_hidden(tag) and not self.in_extension_root(tag)

    # ------------------------------------------------------------------ #
    # Text
    # ------------------------------------------------------------------ #

    def text_of(self, tag: Tag) -> str:
        """Visible text inside ``tag``, whitespace-normalized."""
        parts = []
        for piece in tag.descendants:
            if not isinstance(piece, NavigableString) or piece.__class__ is not NavigableString:
                continue
            parent = piece.parent
            if parent is not None and (parent.name in SKIPPED_TEXT_PARENTS or self._ancestor_hidden(parent, tag)):
                continue
            parts.append(str(piece))
        return normalize_text(" ".join(parts))

    def _ancestor_hidden(self, node: Tag, stop: Tag) -> bool:
        while isinstance(node, Tag) and node is not stop:
            if self._hides_itself(node):
                return True
            node = node.parent
        return False

    def value_of(self, tag: Tag) -> str:
        value = tag.get(VALUE_ATTR)
        if value is None:
            value = tag.get("value", "")
        return normalize_text(value)

    def label_for(self, tag: Tag) -> str:
        """Text of the ``<label>`` that names a form control."""
        element_id = tag.get("id")
        if element_id:
            for label in self.soup.find_all("label"):
                if label.get("for") == element_id:
                    return self.text_of(label)
        parent = tag.find_parent("label")
        if parent is not None:
            return self.text_of(parent)
        return ""

    def labelledby_text(self, tag: Tag) -> str:
        ids = (tag.get("aria-labelledby") or "").split()
        texts = []
        for ref in ids:
            target = self.soup.find(id=ref)
            if target is not None:
                texts.append(self.text_of(target))
        return normalize_text(" ".join(texts))

    def read_text(self) -> str:
        """Visible text of the whole page body."""
        root = self.soup.body or self.soup
        return self.text_of(root)

    # ------------------------------------------------------------------ #
    # Page metadata
    # ------------------------------------------------------------------ #

    def search_query(self) -> str:
        """Active search query, from the URL or a filled search box."""
        params = parse_qs(urlparse(self.url).query)
        for key in SEARCH_PARAMS:
            values = params.get(key)
            if values and values[0].strip():
                return values[0].strip()
        for tag in self.soup.find_all("input"):
            input_type = (tag.get("type") or "").lower()
            name = (tag.get("name") or "").lower()
            if (input_type == "search" or name in SEARCH_PARAMS or tag.get("role") == "searchbox") and self.is_usable(tag):
                value = self.value_of(tag)
                if value:
                    return value
        return ""

    def form_fields(self) -> List[Dict[str, str]]:
        """Visible form controls with their labels and current values."""
        fields = []
        for tag in self.soup.find_all(["input", "textarea", "select"]):
            if not self.is_usable(tag):
                continue
            input_type = (tag.get("type") or tag.name).lower()
            if input_type in ("submit", "button", "reset", "image"):
                continue
            label = (
                tag.get("aria-label")
                or self.label_for(tag)
                or tag.get("placeholder")
                or tag.get("name")
                or input_type
            )
            fields.append(
                {
                    "type": input_type,
                    "label": normalize_text(label),
                    "value": self.value_of(tag),
                }
            )
        return fields
