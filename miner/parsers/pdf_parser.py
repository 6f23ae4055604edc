"""PDF parser: page text via pypdf, no links."""

from __future__ import annotations

import io
import re
from dataclasses import dataclass

from pypdf import PdfReader

from ..types import ContentKind
from .base import ContentHandler, LinkHandler, ParseMetadata, ParsedDocument


@dataclass(slots=True)
class PDFParserConfig:
    """Config for PDF text extraction."""

    parser_name: str = "pdf_parser_pypdf"
    max_pages: int | None = None


class PDFParser:
    """Extract page text from a PDF payload."""

    def __init__(self, config: PDFParserConfig | None = None) -> None:
        self.config = config or PDFParserConfig()

    def parse(
        self,
        content: bytes,
        metadata: ParseMetadata,
        *,
        content_handler: ContentHandler,
        link_handler: LinkHandler,
    ) -> ParsedDocument:
        reader = PdfReader(io.BytesIO(content))
        if reader.is_encrypted:
            reader.decrypt("")

        limit = self.config.max_pages or len(reader.pages)
        for idx, page in enumerate(reader.pages):
            if idx >= limit:
                break
            text = re.sub(r"\s+", " ", page.extract_text() or "").strip()
            if text:
                content_handler.add_content(text)

        title = None
        if reader.metadata is not None and reader.metadata.title:
            title = str(reader.metadata.title).strip() or None

        return ParsedDocument(
            content_kind=ContentKind.PDF,
            parser=self.config.parser_name,
            title=title,
            language=metadata.content_language,
        )


__all__ = [
    "PDFParser",
    "PDFParserConfig",
]
