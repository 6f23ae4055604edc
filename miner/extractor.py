"""Deadline-bounded, fault-isolated extraction of one fetched document.

`BoundedExtractor.extract` never raises for per-document problems. It returns
an `ExtractOutcome` that is either a full `ExtractionResult`, "not applicable"
(the mine filter rejected the URL), or an `ExtractFault`.

The parse runs on a separate daemon thread so the caller can stop waiting once
the deadline passes. Cancellation is soft: an abandoned parse keeps running in
the background until it finishes on its own. It writes only into the scratch
state it was started with, and `reset()` gives the next document a new one, so
a late finish is never observed.
"""

from __future__ import annotations

import codecs
import itertools
import logging
import re
import threading
from concurrent.futures import FIRST_COMPLETED, Future, wait
from dataclasses import dataclass, field
from typing import Callable, Protocol, TypeVar
from urllib.parse import urljoin, urlsplit

from .constants import DEFAULT_PARSE_DEADLINE_SECONDS
from .parsers import Anchor, AutoDetectParser, ParseMetadata, ParsedDocument
from .scoring import ConstantScorer, PageScorer
from .types import (
    ExtractFault,
    ExtractOutcome,
    ExtractionResult,
    FaultKind,
    FetchedDocument,
    Outlink,
    PageResult,
)


LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

CHARSET_RE = re.compile(r"charset\s*=\s*[\"']?([^\s;\"']+)", re.IGNORECASE)

_thread_ids = itertools.count(1)


class DocumentParser(Protocol):
    def parse(
        self,
        content: bytes,
        metadata: ParseMetadata,
        *,
        content_handler,
        link_handler,
    ) -> ParsedDocument: ...


class _ContentBuffer:
    def __init__(self) -> None:
        self._parts: list[str] = []

    def add_content(self, text: str) -> None:
        self._parts.append(text)

    @property
    def text(self) -> str:
        return " ".join(self._parts)


class _LinkCollector:
    def __init__(self) -> None:
        self.anchors: list[Anchor] = []

    def add_anchor(self, anchor: Anchor) -> None:
        self.anchors.append(anchor)


@dataclass(slots=True)
class _ExtractionScratch:
    """Everything one extraction attempt is allowed to write to."""

    content: _ContentBuffer = field(default_factory=_ContentBuffer)
    links: _LinkCollector = field(default_factory=_LinkCollector)
    result: ExtractionResult = field(default_factory=ExtractionResult)


def clean_charset(name: str | None) -> str | None:
    """Return Python's canonical name for a text encoding, or None."""

    if not name:
        return None
    candidate = name.strip().strip("\"'").lower()
    if not candidate:
        return None
    try:
        info = codecs.lookup(candidate)
    except LookupError:
        return None
    # codecs also knows binary transforms such as base64/zlib
    if not getattr(info, "_is_text_encoding", True):
        return None
    return info.name


def charset_from_content_type(content_type: str | None) -> str | None:
    if not content_type:
        return None
    match = CHARSET_RE.search(content_type)
    return match.group(1) if match else None


def detect_charset(doc: FetchedDocument) -> str | None:
    """Explicit charset header first, then the content-type charset, else None."""

    return clean_charset(doc.header("Content-Encoding")) or clean_charset(
        charset_from_content_type(doc.content_type)
    )


def content_location(doc: FetchedDocument) -> str:
    """Base URL for resolving relative links in `doc`.

    A Content-Location header is resolved against the fetched URL and wins.
    """

    parsed = urlsplit(doc.fetched_url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Malformed fetched URL: {doc.fetched_url!r}")

    location = doc.header("Content-Location")
    if location:
        return urljoin(doc.fetched_url, location)
    return doc.fetched_url


def _spawn(fn: Callable[[], T], *, name: str) -> Future:
    """Run `fn` on a new daemon thread and expose its outcome as a Future."""

    future: Future = Future()

    def runner() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            value = fn()
        except Exception as exc:
            future.set_exception(exc)
        else:
            future.set_result(value)

    threading.Thread(target=runner, name=name, daemon=True).start()
    return future


class BoundedExtractor:
    """Per-worker extractor: mine-filter gate, bounded parse, link extraction.

    One instance belongs to one worker thread and is reused sequentially for
    many documents. It must not be shared between concurrently running workers.
    """

    def __init__(
        self,
        mine_filter: Callable[[str], bool] | None,
        *,
        parser: DocumentParser | None = None,
        scorer: PageScorer | None = None,
        deadline_seconds: float = DEFAULT_PARSE_DEADLINE_SECONDS,
    ) -> None:
        if deadline_seconds <= 0:
            raise ValueError("deadline_seconds must be > 0")

        self.mine_filter = mine_filter
        self.parser = parser or AutoDetectParser()
        self.scorer = scorer or ConstantScorer()
        self.deadline_seconds = float(deadline_seconds)

        self._scratch = _ExtractionScratch()
        self._abandoned = 0

    @property
    def abandoned_attempts(self) -> int:
        """Number of parses left running after their deadline expired."""

        return self._abandoned

    def reset(self) -> None:
        """Start the next document from empty scratch state.

        The previous scratch object is replaced, not cleared, because an
        abandoned parse may still hold it.
        """

        self._scratch = _ExtractionScratch()

    def admits(self, url: str) -> bool:
        return self.mine_filter is None or bool(self.mine_filter(url))

    def extract(self, doc: FetchedDocument) -> ExtractOutcome:
        if not self.admits(doc.fetched_url):
            LOGGER.debug("Mine filter rejected %s", doc.fetched_url)
            return ExtractOutcome.not_applicable()

        self.reset()
        scratch = self._scratch

        try:
            base_url = content_location(doc)
            metadata = ParseMetadata(
                resource_name=doc.base_url,
                content_type=doc.content_type,
                content_encoding=detect_charset(doc),
                content_language=doc.header("Content-Language"),
                content_location=base_url,
            )

            future = _spawn(
                lambda: self._extract_into(scratch, doc, base_url, metadata),
                name=f"miner-parse-{next(_thread_ids)}",
            )
            done, _ = wait([future], timeout=self.deadline_seconds, return_when=FIRST_COMPLETED)
            if not done:
                self._abandoned += 1
                LOGGER.warning(
                    "Parse of %s exceeded %.1fs deadline; abandoning it",
                    doc.base_url,
                    self.deadline_seconds,
                )
                return ExtractOutcome.failed(
                    ExtractFault(
                        kind=FaultKind.TIMEOUT,
                        url=doc.base_url,
                        message=f"Parse exceeded {self.deadline_seconds:.1f}s deadline",
                        error_type="TimeoutError",
                    )
                )

            result = future.result()
        except Exception as exc:
            LOGGER.warning("Exception parsing/processing %s: %s", doc.base_url, exc)
            return ExtractOutcome.failed(
                ExtractFault(
                    kind=FaultKind.PARSE_ERROR,
                    url=doc.base_url,
                    message=str(exc),
                    error_type=exc.__class__.__name__,
                )
            )

        return ExtractOutcome.success(result)

    def _extract_into(
        self,
        scratch: _ExtractionScratch,
        doc: FetchedDocument,
        base_url: str,
        metadata: ParseMetadata,
    ) -> ExtractionResult:
        parsed = self.parser.parse(
            doc.content,
            metadata,
            content_handler=scratch.content,
            link_handler=scratch.links,
        )

        anchors = list(scratch.links.anchors)
        outlinks = [Outlink(target_url=a.href, name=a.name, rel=a.rel) for a in anchors]
        page_results = [
            PageResult(source_url=doc.base_url, target_url=a.href, link_text=a.text)
            for a in anchors
        ]

        return scratch.result.overwrite(
            url=doc.base_url,
            page_score=self.scorer.score(scratch.content.text),
            outlinks=outlinks,
            page_results=page_results,
            metadata=dict(doc.headers),
            base_url=base_url,
            title=parsed.title,
            language=parsed.language,
        )


__all__ = [
    "BoundedExtractor",
    "DocumentParser",
    "charset_from_content_type",
    "clean_charset",
    "content_location",
    "detect_charset",
]
