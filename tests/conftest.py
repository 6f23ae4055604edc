"""Shared fixtures: fake fetch transport, document builders, file writers."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Mapping

import pytest

from miner.types import FetchedDocument, FetchResult


HTML_TYPE = "text/html; charset=utf-8"


def html_page(*anchors: str, body: str = "") -> bytes:
    markup = f"<html><head><title>t</title></head><body>{body}{''.join(anchors)}</body></html>"
    return markup.encode("utf-8")


class FakeFetcher:
    """In-memory stand-in for `miner.fetcher.Fetcher`.

    `pages` maps URL to either bytes (served as HTML with status 200) or a
    ready `FetchResult`. Unknown URLs return a 404.
    """

    def __init__(self, pages: Mapping[str, bytes | FetchResult] | None = None) -> None:
        self.pages = dict(pages or {})
        self.calls: list[str] = []
        self.closed = False
        self._lock = threading.Lock()

    def fetch(self, url: str) -> FetchResult:
        with self._lock:
            self.calls.append(url)

        page = self.pages.get(url)
        if isinstance(page, FetchResult):
            return page
        if page is None:
            return FetchResult(
                requested_url=url,
                final_url=url,
                status_code=404,
                content_type="text/html",
                body=b"",
            )
        return FetchResult(
            requested_url=url,
            final_url=url,
            status_code=200,
            content_type=HTML_TYPE,
            body=page,
            headers={"Content-Type": HTML_TYPE, "Server": "fake"},
        )

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_doc() -> Callable[..., FetchedDocument]:
    def _make(
        content: bytes,
        *,
        url: str = "https://a.example/",
        fetched_url: str | None = None,
        content_type: str = HTML_TYPE,
        headers: Mapping[str, str] | None = None,
    ) -> FetchedDocument:
        return FetchedDocument(
            base_url=url,
            fetched_url=fetched_url or url,
            content=content,
            content_type=content_type,
            headers=dict(headers or {"Content-Type": content_type}),
        )

    return _make


@pytest.fixture
def write_lines(tmp_path: Path) -> Callable[[str, list[str]], Path]:
    def _write(name: str, lines: list[str]) -> Path:
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write
