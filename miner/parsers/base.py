"""Records and handler interfaces shared by the document parsers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from ..types import ContentKind


@dataclass(frozen=True, slots=True)
class ParseMetadata:
    """Hints handed to a parser about the bytes it is about to read."""

    resource_name: str
    content_type: str = ""
    content_encoding: str | None = None
    content_language: str | None = None
    content_location: str | None = None


@dataclass(frozen=True, slots=True)
class Anchor:
    """One anchor-like element, attributes defaulting to empty strings."""

    href: str = ""
    name: str = ""
    rel: str = ""
    text: str = ""


@dataclass(frozen=True, slots=True)
class ParsedDocument:
    """Summary of a parse; content and anchors go to the handlers."""

    content_kind: ContentKind
    parser: str
    title: str | None = None
    language: str | None = None


class ContentHandler(Protocol):
    def add_content(self, text: str) -> None: ...


class LinkHandler(Protocol):
    def add_anchor(self, anchor: Anchor) -> None: ...


__all__ = [
    "Anchor",
    "ContentHandler",
    "LinkHandler",
    "ParseMetadata",
    "ParsedDocument",
]
