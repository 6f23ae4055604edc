"""Parser package exports."""

from .auto import AutoDetectParser, sniff_content_kind
from .base import Anchor, ContentHandler, LinkHandler, ParseMetadata, ParsedDocument
from .html_parser import ANCHOR_TAGS, HTMLParser, HTMLParserConfig
from .pdf_parser import PDFParser, PDFParserConfig

__all__ = [
    "ANCHOR_TAGS",
    "Anchor",
    "AutoDetectParser",
    "ContentHandler",
    "HTMLParser",
    "HTMLParserConfig",
    "LinkHandler",
    "PDFParser",
    "PDFParserConfig",
    "ParseMetadata",
    "ParsedDocument",
    "sniff_content_kind",
]
