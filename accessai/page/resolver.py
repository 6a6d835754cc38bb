"""
Element resolution and description search.

``resolve`` turns whatever the agent passes as a target (a resolver
expression from the snapshot, an ordinal phrase, or plain words) into one
concrete element. ``find_by_description`` is the broader ranked search the
agent uses when it is unsure which element is meant.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

import soupsieve as sv
from bs4 import Tag

from ..config import FIND_MAX_RESULTS
from ..errors import ElementNotFound
from .dom import PageDocument, normalize_text
from .snapshot import (
    ElementDescriptor,
    PageSnapshot,
    descriptor_for,
    describe,
    interactive_elements,
    take_snapshot,
)

ORDINAL_WORDS = {
    "first": 0,
    "second": 1,
    "third": 2,
    "fourth": 3,
    "fifth": 4,
    "sixth": 5,
    "seventh": 6,
    "eighth": 7,
    "ninth": 8,
    "tenth": 9,
    "last": -1,
}
ROLE_NOUNS = {
    "link": {"link"},
    "button": {"button"},
    "field": {"textbox", "searchbox", "combobox"},
    "input": {"textbox", "searchbox"},
    "box": {"textbox", "searchbox", "checkbox"},
    "textbox": {"textbox", "searchbox"},
    "checkbox": {"checkbox"},
    "radio": {"radio"},
    "dropdown": {"combobox"},
    "select": {"combobox"},
    "tab": {"tab"},
    "option": {"option"},
}
ORDINAL_FILLER = {"click", "press", "tap", "open", "choose", "on", "the", "a", "an", "item", "element", "one"}
CLICKABLE_SELECTOR = (
    "a, button, summary, input[type=submit], input[type=button], input[type=reset], "
    "input[type=image], [role=button], [role=link], [role=tab], [role=menuitem], "
    "[role=option], [onclick]"
)
SEARCH_STOP_WORDS = {"the", "a", "an", "to", "of", "on", "in", "for", "and", "or", "with", "my", "me", "please"}

SCORE_EXACT = 100
SCORE_CONTAINS = 80
SCORE_CONTAINED = 60
SCORE_PER_WORD = 15
MIN_SCORE = 15

_TEXT_PATH = re.compile(r'^(?P<css>.*?)\s*>>\s*text=(?P<text>".*"|.+)$', re.DOTALL)
_ORDINAL_NUMBER = re.compile(r"^(\d+)(?:st|nd|rd|th)$")
_SELECTOR_CHARS = set("[]#.>:=*()")


@dataclass
class Resolution:
    """The element a target resolved to, and how."""

    element: Tag
    strategy: str
    score: int = 0


@dataclass
class DescriptionMatch:
    descriptor: ElementDescriptor
    score: int


def tokenize(text: str) -> List[str]:
    return re.findall(r"[a-z0-9]+", (text or "").lower())


# ------------------------------------------------------------------ #
# Ordinals
# ------------------------------------------------------------------ #


def parse_ordinal_reference(text: str) -> Optional[Tuple[int, Optional[str]]]:
    """
    Parse phrases like "click the 2nd link" or "third button".

    Returns ``(index, role_noun)`` with a zero-based index (``-1`` for
    "last"), or None when the phrase is anything other than an ordinal
    followed by an optional role noun.
    """
    tokens = [tok for tok in tokenize(text) if tok not in ORDINAL_FILLER]
    if not tokens or len(tokens) > 2:
        return None
    first = tokens[0]
    if first in ORDINAL_WORDS:
        index = ORDINAL_WORDS[first]
    else:
        match = _ORDINAL_NUMBER.match(first)
        if not match or int(match.group(1)) < 1:
            return None
        index = int(match.group(1)) - 1
    noun = None
    if len(tokens) == 2:
        noun = tokens[1][:-1] if tokens[1].endswith("s") and tokens[1][:-1] in ROLE_NOUNS else tokens[1]
        if noun not in ROLE_NOUNS:
            return None
    return index, noun


def resolve_ordinal(snapshot: PageSnapshot, index: int, noun: Optional[str] = None) -> Optional[ElementDescriptor]:
    """Pick the N-th snapshot element, counting only the named role if given."""
    candidates = snapshot.elements
    if noun:
        roles = ROLE_NOUNS[noun]
        candidates = [item for item in candidates if item.role in roles]
    if not candidates:
        return None
    if index < 0:
        return candidates[-1]
    if index >= len(candidates):
        return None
    return candidates[index]


# ------------------------------------------------------------------ #
# Resolution strategies
# ------------------------------------------------------------------ #


def looks_like_selector(text: str) -> bool:
    return ">>" in text or any(ch in _SELECTOR_CHARS for ch in text)


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        value = value[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return value


def _pick(doc: PageDocument, matches: List[Tag]) -> Optional[Tag]:
    usable = [tag for tag in matches if not doc.in_extension_root(tag)]
    for tag in usable:
        if not doc.is_hidden(tag):
            return tag
    return usable[0] if usable else None


def _structural(doc: PageDocument, target: str) -> Optional[Tag]:
    text_path = _TEXT_PATH.match(target)
    if text_path:
        css = text_path.group("css").strip() or "*"
        wanted = normalize_text(_unquote(text_path.group("text")))
        try:
            pool = doc.select(css)
        except sv.SelectorSyntaxError:
            return None
        exact = [tag for tag in pool if normalize_text(tag.get_text()) == wanted]
        if not exact:
            exact = [tag for tag in pool if normalize_text(tag.get_text()).lower() == wanted.lower()]
        return _pick(doc, exact)
    try:
        return _pick(doc, doc.select(target))
    except sv.SelectorSyntaxError:
        return None


def match_selector(doc: PageDocument, selector: str) -> Optional[Tag]:
    """Match a resolver expression structurally only, with no text fallback."""
    selector = (selector or "").strip()
    if not selector:
        return None
    return _structural(doc, selector)


def _by_aria_label(doc: PageDocument, target: str) -> Tuple[Optional[Tag], str]:
    wanted = normalize_text(target).lower()
    labelled = [
        tag for tag in doc.soup.find_all(attrs={"aria-label": True}) if doc.is_usable(tag)
    ]
    for tag in labelled:
        if normalize_text(tag["aria-label"]).lower() == wanted:
            return tag, "aria-label"
    for tag in labelled:
        if wanted in normalize_text(tag["aria-label"]).lower():
            return tag, "aria-label-partial"
    return None, ""


def score_text(query: str, text: str) -> int:
    """Score how well an element's text matches a free-text query."""
    query = normalize_text(query).lower()
    text = normalize_text(text).lower()
    if not query or not text:
        return 0
    if text == query:
        return SCORE_EXACT
    if query in text:
        return SCORE_CONTAINS
    if len(text) > 3 and text in query:
        return SCORE_CONTAINED
    words = set(tokenize(text))
    return SCORE_PER_WORD * sum(1 for word in set(tokenize(query)) if word in words)


def _by_text(doc: PageDocument, target: str) -> Tuple[Optional[Tag], int]:
    best: Optional[Tag] = None
    best_score = 0
    for tag in doc.select(CLICKABLE_SELECTOR):
        if not doc.is_usable(tag):
            continue
        text = doc.text_of(tag) or describe(doc, tag)
        score = score_text(target, text)
        if score > best_score:
            best, best_score = tag, score
    if best_score < MIN_SCORE:
        return None, 0
    return best, best_score


def resolve(doc: PageDocument, target: str, snapshot: Optional[PageSnapshot] = None) -> Resolution:
    """
    Resolve ``target`` to one element.

    Order: ordinal phrase, structural expression, aria-label (exact, then
    partial), scored text search. Raises :class:`ElementNotFound` when
    nothing qualifies.
    """
    target = (target or "").strip()
    if not target:
        raise ElementNotFound(target, "No target given")

    ordinal = parse_ordinal_reference(target)
    if ordinal is not None:
        snapshot = snapshot or take_snapshot(doc)
        descriptor = resolve_ordinal(snapshot, *ordinal)
        if descriptor is None:
            raise ElementNotFound(target, f"There is no element matching '{target}' on this page")
        tag = doc.node(descriptor.node_id)
        if tag is not None:
            return Resolution(tag, "ordinal")

    if looks_like_selector(target):
        tag = _structural(doc, target)
        if tag is not None:
            return Resolution(tag, "selector")

    tag, strategy = _by_aria_label(doc, target)
    if tag is not None:
        return Resolution(tag, strategy)

    tag, score = _by_text(doc, target)
    if tag is not None:
        return Resolution(tag, "text", score)

    raise ElementNotFound(target)


# ------------------------------------------------------------------ #
# Description search
# ------------------------------------------------------------------ #


def _searchable_text(doc: PageDocument, tag: Tag) -> str:
    parts = [
        describe(doc, tag),
        doc.text_of(tag),
        tag.get("aria-label") or "",
        tag.get("placeholder") or "",
        tag.get("name") or "",
        tag.get("type") or "",
        tag.get("value") or "",
        tag.get("title") or "",
    ]
    image = tag.find("img")
    if image is not None:
        parts.append(image.get("alt") or "")
    return " ".join(parts).lower()


def find_by_description(doc: PageDocument, description: str, limit: int = FIND_MAX_RESULTS) -> List[DescriptionMatch]:
    """Rank interactive elements by how many description words they contain."""
    words = [w for w in dict.fromkeys(tokenize(description)) if w not in SEARCH_STOP_WORDS]
    if not words:
        return []
    scored = []
    for position, tag in enumerate(interactive_elements(doc)):
        haystack = _searchable_text(doc, tag)
        hits = sum(1 for word in words if word in haystack)
        if hits:
            scored.append((hits, position, tag))
    scored.sort(key=lambda item: (-item[0], item[1]))

    matches: List[DescriptionMatch] = []
    seen = set()
    for hits, position, tag in scored:
        descriptor = descriptor_for(doc, tag, position)
        if descriptor.selector in seen:
            continue
        seen.add(descriptor.selector)
        matches.append(DescriptionMatch(descriptor, hits))
        if len(matches) >= limit:
            break
    return matches


def navigation_matches(command: str, vocabulary: List[str]) -> List[str]:
    """Navigation labels sharing at least one meaningful word with ``command``."""
    words = {w for w in tokenize(command) if w not in SEARCH_STOP_WORDS and len(w) > 2}
    return [label for label in vocabulary if words & set(tokenize(label))]
