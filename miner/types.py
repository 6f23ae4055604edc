"""Core type definitions for the miner.

This module is intentionally dependency-light so other miner modules can import
shared records without introducing cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from requests.structures import CaseInsensitiveDict


class ContentKind(str, Enum):
    """Normalized content categories used by the document parser."""

    HTML = "html"
    PDF = "pdf"
    TEXT = "text"
    BINARY = "binary"
    UNKNOWN = "unknown"


class CrawlStage(str, Enum):
    """Loop stage names for error reporting."""

    FETCH = "fetch"
    EXTRACT = "extract"


class UrlStatus(str, Enum):
    """Crawl status of one URL in the crawl db."""

    UNFETCHED = "unfetched"
    FETCHED = "fetched"
    FETCH_ERROR = "fetch_error"
    SKIPPED = "skipped"


class FaultKind(str, Enum):
    """Kinds of contained per-document extraction faults."""

    TIMEOUT = "timeout"
    PARSE_ERROR = "parse_error"


class OutcomeStatus(str, Enum):
    OK = "ok"
    NOT_APPLICABLE = "not_applicable"
    FAULT = "fault"


JSONPrimitive = str | int | float | bool | None
JSONValue = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]
JSONDict = dict[str, JSONValue]


def utc_now_iso() -> str:
    """Return an RFC3339-like UTC timestamp string for crawl db rows/JSONL."""

    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def infer_content_kind(content_type: str | None, url: str) -> ContentKind:
    """Infer coarse content kind from HTTP content type and URL."""

    normalized = mime_type_of(content_type)
    lower_url = url.lower()

    if normalized in {"text/html", "application/xhtml+xml", "application/vnd.wap.xhtml+xml"}:
        return ContentKind.HTML
    if "application/pdf" in normalized or lower_url.endswith(".pdf"):
        return ContentKind.PDF
    if normalized.startswith("text/"):
        return ContentKind.TEXT
    if normalized:
        return ContentKind.BINARY
    if lower_url.endswith((".html", ".htm")):
        return ContentKind.HTML
    return ContentKind.UNKNOWN


def mime_type_of(content_type: str | None) -> str:
    """Return the bare lowercased MIME type of a Content-Type value."""

    return (content_type or "").split(";", maxsplit=1)[0].strip().lower()


@dataclass(slots=True)
class FetchResult:
    """Result of attempting to download one URL."""

    requested_url: str
    final_url: str | None
    status_code: int | None
    content_type: str | None
    body: bytes | None
    headers: dict[str, str] = field(default_factory=dict)
    fetched_at: str = field(default_factory=utc_now_iso)
    elapsed_ms: int | None = None
    truncated: bool = False
    deferred: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return (
            self.error is None
            and not self.deferred
            and self.status_code is not None
            and 200 <= self.status_code < 300
            and self.body is not None
        )

    @property
    def content_length(self) -> int | None:
        return None if self.body is None else len(self.body)

    def to_document(self) -> "FetchedDocument":
        return FetchedDocument(
            base_url=self.requested_url,
            fetched_url=self.final_url or self.requested_url,
            content=self.body or b"",
            content_type=self.content_type or "",
            headers=self.headers,
        )


@dataclass(slots=True)
class FetchedDocument:
    """One fetched document, consumed read-only by the extractor.

    Header lookup is case-insensitive and yields the first value per name.
    """

    base_url: str
    fetched_url: str
    content: bytes
    content_type: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.headers = CaseInsensitiveDict(dict(self.headers))

    def header(self, name: str) -> str | None:
        value = self.headers.get(name)
        if value is None:
            return None
        return str(value).strip() or None


@dataclass(frozen=True, slots=True)
class Outlink:
    """A raw hyperlink reference found in a document."""

    target_url: str
    name: str = ""
    rel: str = ""

    def to_json(self) -> JSONDict:
        return {"target_url": self.target_url, "name": self.name, "rel": self.rel}


@dataclass(frozen=True, slots=True)
class PageResult:
    """A source -> target relationship with its link text."""

    source_url: str
    target_url: str
    link_text: str = ""

    def to_json(self) -> JSONDict:
        return {
            "source_url": self.source_url,
            "target_url": self.target_url,
            "link_text": self.link_text,
        }


@dataclass(slots=True)
class ExtractionResult:
    """Structured output for one mined document.

    Instances are scratch objects: `overwrite` replaces every field at once so
    nothing from a previously held document survives.
    """

    url: str = ""
    page_score: float = 0.0
    outlinks: list[Outlink] = field(default_factory=list)
    page_results: list[PageResult] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)
    base_url: str = ""
    title: str | None = None
    language: str | None = None

    def overwrite(
        self,
        *,
        url: str,
        page_score: float,
        outlinks: list[Outlink],
        page_results: list[PageResult],
        metadata: Mapping[str, str],
        base_url: str,
        title: str | None = None,
        language: str | None = None,
    ) -> "ExtractionResult":
        self.url = url
        self.page_score = float(page_score)
        self.outlinks = list(outlinks)
        self.page_results = list(page_results)
        self.metadata = {str(k): str(v) for k, v in metadata.items()}
        self.base_url = base_url
        self.title = title
        self.language = language
        return self

    def to_json(self) -> JSONDict:
        return {
            "url": self.url,
            "page_score": self.page_score,
            "base_url": self.base_url,
            "title": self.title,
            "language": self.language,
            "outlinks": [link.to_json() for link in self.outlinks],
            "page_results": [result.to_json() for result in self.page_results],
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True, slots=True)
class ExtractFault:
    """A contained extraction failure for one document."""

    kind: FaultKind
    url: str
    message: str
    error_type: str | None = None


@dataclass(frozen=True, slots=True)
class ExtractOutcome:
    """Result-or-fault returned by `BoundedExtractor.extract`."""

    status: OutcomeStatus
    result: ExtractionResult | None = None
    fault: ExtractFault | None = None

    @classmethod
    def success(cls, result: ExtractionResult) -> "ExtractOutcome":
        return cls(OutcomeStatus.OK, result=result)

    @classmethod
    def not_applicable(cls) -> "ExtractOutcome":
        return cls(OutcomeStatus.NOT_APPLICABLE)

    @classmethod
    def failed(cls, fault: ExtractFault) -> "ExtractOutcome":
        return cls(OutcomeStatus.FAULT, fault=fault)

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.OK

    @property
    def applicable(self) -> bool:
        return self.status != OutcomeStatus.NOT_APPLICABLE


@dataclass(slots=True)
class CrawlDbEntry:
    """One row of a crawl db snapshot."""

    url: str
    status: UrlStatus = UrlStatus.UNFETCHED
    score: float | None = None
    fetched_at: str | None = None
    updated_at: str = field(default_factory=utc_now_iso)
    content_type: str | None = None
    status_code: int | None = None
    source: str | None = None

    def to_json(self) -> JSONDict:
        return {
            "url": self.url,
            "status": self.status.value,
            "score": self.score,
            "fetched_at": self.fetched_at,
            "updated_at": self.updated_at,
            "content_type": self.content_type,
            "status_code": self.status_code,
            "source": self.source,
        }

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "CrawlDbEntry":
        url = payload.get("url")
        if not isinstance(url, str) or not url:
            raise ValueError(f"Crawl db row missing 'url': {payload!r}")

        score = payload.get("score")
        status_code = payload.get("status_code")
        return cls(
            url=url,
            status=UrlStatus(str(payload.get("status", UrlStatus.UNFETCHED.value))),
            score=None if score is None else float(score),
            fetched_at=payload.get("fetched_at"),
            updated_at=str(payload.get("updated_at") or utc_now_iso()),
            content_type=payload.get("content_type"),
            status_code=None if status_code is None else int(status_code),
            source=payload.get("source"),
        )


@dataclass(frozen=True, slots=True)
class Iteration:
    """One loop dispatch: its index, input crawl db and output directory."""

    index: int
    input_state: Path
    output_dir: Path


@dataclass(frozen=True, slots=True)
class ErrorRecord:
    """One error row written to a loop's errors.jsonl."""

    stage: CrawlStage
    url: str
    message: str
    error_type: str | None = None
    status_code: int | None = None
    created_at: str = field(default_factory=utc_now_iso)
    metadata: dict[str, JSONValue] = field(default_factory=dict)

    @classmethod
    def from_fault(cls, fault: ExtractFault) -> "ErrorRecord":
        return cls(
            stage=CrawlStage.EXTRACT,
            url=fault.url,
            message=fault.message,
            error_type=fault.error_type,
            metadata={"fault_kind": fault.kind.value},
        )

    def to_json(self) -> JSONDict:
        return {
            "stage": self.stage.value,
            "url": self.url,
            "message": self.message,
            "error_type": self.error_type,
            "status_code": self.status_code,
            "created_at": self.created_at,
            "metadata": self.metadata,
        }


__all__ = [
    "ContentKind",
    "CrawlDbEntry",
    "CrawlStage",
    "ErrorRecord",
    "ExtractFault",
    "ExtractOutcome",
    "ExtractionResult",
    "FaultKind",
    "FetchResult",
    "FetchedDocument",
    "Iteration",
    "JSONDict",
    "JSONPrimitive",
    "JSONValue",
    "OutcomeStatus",
    "Outlink",
    "PageResult",
    "UrlStatus",
    "infer_content_kind",
    "mime_type_of",
    "utc_now_iso",
]
