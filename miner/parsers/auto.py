"""Content-type detection and dispatch to the concrete parsers."""

from __future__ import annotations

import logging

from ..types import ContentKind, infer_content_kind
from .base import ContentHandler, LinkHandler, ParseMetadata, ParsedDocument
from .html_parser import HTMLParser
from .pdf_parser import PDFParser


LOGGER = logging.getLogger(__name__)

_HTML_PREFIXES = (b"<!doctype html", b"<html", b"<head", b"<body")


def sniff_content_kind(content: bytes, metadata: ParseMetadata) -> ContentKind:
    """Pick a content kind from declared type, resource name and magic bytes."""

    declared = infer_content_kind(metadata.content_type, metadata.resource_name)
    if declared in {ContentKind.HTML, ContentKind.PDF, ContentKind.TEXT}:
        return declared

    head = content[:512].lstrip().lower()
    if head.startswith(b"%pdf-"):
        return ContentKind.PDF
    if head.startswith(_HTML_PREFIXES):
        return ContentKind.HTML
    return declared


class AutoDetectParser:
    """Route bytes to the HTML, PDF or text parser.

    Formats nobody handles produce an empty parse (no content, no links)
    instead of an error.
    """

    def __init__(
        self,
        *,
        html_parser: HTMLParser | None = None,
        pdf_parser: PDFParser | None = None,
    ) -> None:
        self.html_parser = html_parser or HTMLParser()
        self.pdf_parser = pdf_parser or PDFParser()

    def parse(
        self,
        content: bytes,
        metadata: ParseMetadata,
        *,
        content_handler: ContentHandler,
        link_handler: LinkHandler,
    ) -> ParsedDocument:
        kind = sniff_content_kind(content, metadata)

        if kind == ContentKind.HTML:
            return self.html_parser.parse(
                content,
                metadata,
                content_handler=content_handler,
                link_handler=link_handler,
            )

        if kind == ContentKind.PDF:
            return self.pdf_parser.parse(
                content,
                metadata,
                content_handler=content_handler,
                link_handler=link_handler,
            )

        if kind == ContentKind.TEXT:
            text = content.decode(metadata.content_encoding or "utf-8", errors="replace").strip()
            if text:
                content_handler.add_content(text)
            return ParsedDocument(
                content_kind=ContentKind.TEXT,
                parser="text_parser",
                language=metadata.content_language,
            )

        LOGGER.debug("No parser for %s (%s)", metadata.resource_name, metadata.content_type)
        return ParsedDocument(
            content_kind=kind,
            parser="empty_parser",
            language=metadata.content_language,
        )


__all__ = [
    "AutoDetectParser",
    "sniff_content_kind",
]
