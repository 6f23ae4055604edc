"""HTML parser: BeautifulSoup/lxml body text and anchor discovery."""

from __future__ import annotations

from dataclasses import dataclass

from bs4 import BeautifulSoup

from ..types import ContentKind
from .base import Anchor, ContentHandler, LinkHandler, ParseMetadata, ParsedDocument


ANCHOR_TAGS = ["a"]
NON_CONTENT_TAGS = ["script", "style"]


@dataclass(slots=True)
class HTMLParserConfig:
    """Config for HTML parsing."""

    parser_name: str = "html_parser_bs4_lxml"
    features: str = "lxml"


class HTMLParser:
    """Parse HTML bytes, streaming body text and anchors to handlers."""

    def __init__(self, config: HTMLParserConfig | None = None) -> None:
        self.config = config or HTMLParserConfig()

    def parse(
        self,
        content: bytes,
        metadata: ParseMetadata,
        *,
        content_handler: ContentHandler,
        link_handler: LinkHandler,
    ) -> ParsedDocument:
        soup = BeautifulSoup(
            content,
            self.config.features,
            from_encoding=metadata.content_encoding,
        )

        for element in soup.find_all(ANCHOR_TAGS):
            link_handler.add_anchor(
                Anchor(
                    href=self._attribute(element, "href"),
                    name=self._attribute(element, "name"),
                    rel=self._attribute(element, "rel"),
                    text=element.get_text(" ", strip=True),
                )
            )

        # anchors are collected first; decomposing only affects body text
        for element in soup.find_all(NON_CONTENT_TAGS):
            element.decompose()

        body = soup.body or soup
        text = body.get_text(" ", strip=True)
        if text:
            content_handler.add_content(text)

        return ParsedDocument(
            content_kind=ContentKind.HTML,
            parser=self.config.parser_name,
            title=self._extract_title(soup),
            language=metadata.content_language or self._document_language(soup),
        )

    @staticmethod
    def _attribute(element, name: str) -> str:
        value = element.get(name)
        if value is None:
            return ""
        # bs4 returns multi-valued attributes such as rel as lists
        if isinstance(value, (list, tuple)):
            return " ".join(str(item) for item in value)
        return str(value)

    @staticmethod
    def _extract_title(soup: BeautifulSoup) -> str | None:
        if soup.title and soup.title.get_text(strip=True):
            return soup.title.get_text(" ", strip=True)
        return None

    @staticmethod
    def _document_language(soup: BeautifulSoup) -> str | None:
        html = soup.find("html")
        if html is None:
            return None
        lang = str(html.get("lang") or "").strip()
        return lang or None


__all__ = [
    "ANCHOR_TAGS",
    "HTMLParser",
    "HTMLParserConfig",
]
