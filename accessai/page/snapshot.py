"""
Indexed snapshot of a page's interactive elements.

The filter below decides which elements the agent can see. It is fixed:
ordinal references ("the 2nd link") count positions in exactly this list,
so any change to it changes what those references point at.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import soupsieve as sv
from bs4 import Tag

from ..config import NAV_VOCABULARY_MAX, SNAPSHOT_MAX_ELEMENTS
from .dom import PageDocument, css_string, normalize_text

INTERACTIVE_TAGS = {"a", "button", "input", "select", "textarea", "summary"}
INTERACTIVE_ROLES = {
    "button",
    "link",
    "checkbox",
    "radio",
    "tab",
    "menuitem",
    "menuitemcheckbox",
    "menuitemradio",
    "option",
    "switch",
    "textbox",
    "searchbox",
    "combobox",
    "slider",
    "treeitem",
}
TEST_ID_ATTRS = ("data-testid", "data-test", "data-qa", "data-cy")
NAVIGATION_REGIONS = "nav, [role=navigation], [role=menubar]"
DESCRIPTION_MAX_CHARS = 80
TEXT_PATH_MAX_CHARS = 60

_CLASS_NAME = re.compile(r"^[A-Za-z_-][A-Za-z0-9_-]*$")


@dataclass
class ElementDescriptor:
    """One interactive element as presented to the agent."""

    index: int
    role: str
    description: str
    selector: str
    node_id: str
    tag: str

    def render(self) -> str:
        return f'[{self.index}] {self.role} "{self.description}" -> {self.selector}'

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "role": self.role,
            "description": self.description,
            "selector": self.selector,
        }


@dataclass
class PageSnapshot:
    """Indexed interactive elements of one capture, plus page metadata."""

    url: str
    title: str
    elements: List[ElementDescriptor] = field(default_factory=list)
    nav_vocabulary: List[str] = field(default_factory=list)
    truncated: bool = False

    def get(self, index: int) -> Optional[ElementDescriptor]:
        if 0 <= index < len(self.elements):
            return self.elements[index]
        return None

    def render(self) -> str:
        lines = [f"URL: {self.url}", f"Title: {self.title}"]
        if self.elements:
            lines.append(f"Interactive elements ({len(self.elements)}):")
            lines.extend(item.render() for item in self.elements)
            if self.truncated:
                lines.append("(more elements exist further down the page)")
        else:
            lines.append("No interactive elements visible.")
        return "\n".join(lines)


# ------------------------------------------------------------------ #
# Filter predicate
# ------------------------------------------------------------------ #


def is_interactive(tag: Tag) -> bool:
    """Tag or ARIA role says the element can be operated."""
    role = (tag.get("role") or "").strip().lower()
    if role in INTERACTIVE_ROLES:
        return True
    if tag.name not in INTERACTIVE_TAGS:
        return False
    if tag.name == "a":
        return tag.has_attr("href")
    if tag.name == "input":
        return (tag.get("type") or "text").lower() != "hidden"
    return True


def role_of(tag: Tag) -> str:
    explicit = (tag.get("role") or "").strip().lower()
    if explicit in INTERACTIVE_ROLES:
        return explicit
    if tag.name == "a":
        return "link"
    if tag.name in ("button", "summary"):
        return "button"
    if tag.name == "textarea":
        return "textbox"
    if tag.name == "select":
        return "combobox"
    if tag.name == "input":
        input_type = (tag.get("type") or "text").lower()
        if input_type in ("checkbox", "radio"):
            return input_type
        if input_type in ("submit", "button", "reset", "image"):
            return "button"
        if input_type == "search":
            return "searchbox"
        if input_type == "range":
            return "slider"
        return "textbox"
    return "generic"


def describe(doc: PageDocument, tag: Tag) -> str:
    """Human-readable name of an element, or '' when none can be derived."""
    is_field = tag.name in ("input", "select", "textarea")
    input_type = (tag.get("type") or "").lower()
    candidates = [
        tag.get("aria-label") or "",
        doc.labelledby_text(tag),
        "" if is_field else doc.text_of(tag),
        doc.label_for(tag) if is_field else "",
        tag.get("placeholder") or "",
        tag.get("title") or "",
    ]
    image = tag.find("img")
    if image is not None:
        candidates.append(image.get("alt") or "")
    if tag.name == "input" and input_type in ("submit", "button", "reset"):
        candidates.append(tag.get("value") or "")
    if tag.name == "input" and input_type == "image":
        candidates.append(tag.get("alt") or "")
    if is_field:
        candidates.append(tag.get("name") or "")
    for candidate in candidates:
        text = normalize_text(candidate)
        if text:
            return text[:DESCRIPTION_MAX_CHARS]
    return ""


def interactive_elements(doc: PageDocument) -> List[Tag]:
    """Every element passing the snapshot filter, in document order."""
    found = []
    for tag in doc.elements():
        if not is_interactive(tag):
            continue
        if doc.in_extension_root(tag) or doc.is_hidden(tag):
            continue
        if not describe(doc, tag):
            continue
        found.append(tag)
    return found


# ------------------------------------------------------------------ #
# Resolver expressions
# ------------------------------------------------------------------ #


def _unique(doc: PageDocument, selector: str) -> bool:
    return doc.count(selector) == 1


def _attr_selector(tag: Tag, attr: str, value: str) -> Optional[str]:
    if not value or "\n" in value:
        return None
    return f"{tag.name}[{attr}={css_string(value)}]"


def _usable_href(href: str) -> str:
    href = (href or "").strip()
    if not href or href == "#" or href.lower().startswith("javascript:"):
        return ""
    return href


def _text_path(doc: PageDocument, tag: Tag) -> Optional[str]:
    if tag.find(True) is not None:
        return None
    text = normalize_text(tag.get_text())
    if not text or len(text) > TEXT_PATH_MAX_CHARS:
        return None
    same = [el for el in doc.soup.find_all(tag.name) if normalize_text(el.get_text()) == text]
    if len(same) != 1:
        return None
    return f"{tag.name} >> text={css_string(text)}"


def _segment(tag: Tag) -> str:
    segment = tag.name
    classes = [c for c in tag.get("class", []) if _CLASS_NAME.match(c)][:2]
    segment += "".join(f".{c}" for c in classes)
    parent = tag.parent
    if parent is not None:
        same_type = parent.find_all(tag.name, recursive=False)
        if len(same_type) > 1:
            position = next(i for i, el in enumerate(same_type, 1) if el is tag)
            segment += f":nth-of-type({position})"
    return segment


def _structural_path(doc: PageDocument, tag: Tag) -> str:
    segments = []
    node = tag
    while isinstance(node, Tag) and node.name not in ("body", "html", "[document]"):
        element_id = node.get("id")
        if node is not tag and element_id:
            anchor = f"#{sv.escape(element_id)}"
            if _unique(doc, anchor):
                segments.append(anchor)
                break
        segments.append(_segment(node))
        node = node.parent
    else:
        segments.append("body")
    return " > ".join(reversed(segments))


def resolver_expression(doc: PageDocument, tag: Tag) -> str:
    """Most stable selector that identifies ``tag`` uniquely."""
    element_id = tag.get("id")
    if element_id:
        selector = f"#{sv.escape(element_id)}"
        if _unique(doc, selector):
            return selector

    attempts = []
    for attr in TEST_ID_ATTRS:
        if tag.get(attr):
            attempts.append(f"[{attr}={css_string(tag[attr])}]")
    attempts.append(_attr_selector(tag, "aria-label", tag.get("aria-label") or ""))
    if tag.name in ("input", "select", "textarea", "button"):
        attempts.append(_attr_selector(tag, "name", tag.get("name") or ""))
    attempts.append(_attr_selector(tag, "placeholder", tag.get("placeholder") or ""))
    if tag.name == "a":
        attempts.append(_attr_selector(tag, "href", _usable_href(tag.get("href"))))
    for selector in attempts:
        if selector and _unique(doc, selector):
            return selector

    text_path = _text_path(doc, tag)
    if text_path:
        return text_path
    return _structural_path(doc, tag)


# ------------------------------------------------------------------ #
# Snapshot
# ------------------------------------------------------------------ #


def descriptor_for(doc: PageDocument, tag: Tag, index: int) -> ElementDescriptor:
    return ElementDescriptor(
        index=index,
        role=role_of(tag),
        description=describe(doc, tag),
        selector=resolver_expression(doc, tag),
        node_id=doc.node_id(tag),
        tag=tag.name,
    )


def navigation_vocabulary(doc: PageDocument, limit: int = NAV_VOCABULARY_MAX) -> List[str]:
    """Labels the site itself uses in its navigation regions."""
    labels: List[str] = []
    seen = set()
    for region in doc.select(NAVIGATION_REGIONS):
        if not doc.is_usable(region):
            continue
        for tag in region.find_all(True):
            if not is_interactive(tag) or doc.is_hidden(tag):
                continue
            label = describe(doc, tag)
            key = label.lower()
            if label and key not in seen:
                seen.add(key)
                labels.append(label)
                if len(labels) >= limit:
                    return labels
    return labels


def take_snapshot(doc: PageDocument, max_elements: int = SNAPSHOT_MAX_ELEMENTS) -> PageSnapshot:
    """Index the interactive elements of ``doc`` in document order."""
    tags = interactive_elements(doc)
    elements = [descriptor_for(doc, tag, idx) for idx, tag in enumerate(tags[:max_elements])]
    return PageSnapshot(
        url=doc.url,
        title=doc.title,
        elements=elements,
        nav_vocabulary=navigation_vocabulary(doc),
        truncated=len(tags) > max_elements,
    )
