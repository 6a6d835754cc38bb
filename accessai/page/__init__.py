"""Page capture, introspection and element resolution."""

from .dom import PageDocument
from .resolver import Resolution, find_by_description, resolve
from .snapshot import ElementDescriptor, PageSnapshot, take_snapshot

__all__ = [
    "ElementDescriptor",
    "PageDocument",
    "PageSnapshot",
    "Resolution",
    "find_by_description",
    "resolve",
    "take_snapshot",
]
