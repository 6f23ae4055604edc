"""Crawl db snapshots: one JSONL part file per loop directory.

A crawl db snapshot is a directory holding `part-00000.jsonl`, one
`CrawlDbEntry` per line keyed by normalized URL. Snapshots are written once
and never modified; each loop reads the previous snapshot and writes a new one.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, Iterator

from .constants import CRAWLDB_PART_NAME
from .errors import ConfigError
from .storage import atomic_write_text
from .types import CrawlDbEntry, UrlStatus
from .url import normalize_url


LOGGER = logging.getLogger(__name__)


class CrawlDb:
    """Read and write one crawl db snapshot directory."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    @property
    def part_path(self) -> Path:
        return self.path / CRAWLDB_PART_NAME

    def exists(self) -> bool:
        return self.part_path.is_file()

    def iter_entries(self) -> Iterator[CrawlDbEntry]:
        """Yield entries in file order.

        Raises FileNotFoundError when the snapshot is missing and ValueError on
        a malformed row.
        """

        with self.part_path.open("r", encoding="utf-8") as handle:
            for line_no, raw in enumerate(handle, start=1):
                line = raw.strip()
                if not line:
                    continue
                try:
                    payload = json.loads(line)
                except json.JSONDecodeError as exc:
                    raise ValueError(
                        f"Malformed crawl db row {self.part_path}:{line_no}: {exc}"
                    ) from exc
                yield CrawlDbEntry.from_json(payload)

    def load(self) -> list[CrawlDbEntry]:
        return list(self.iter_entries())

    def urls(self) -> set[str]:
        return {entry.url for entry in self.iter_entries()}

    def write(self, entries: Iterable[CrawlDbEntry]) -> int:
        """Atomically write `entries` as this snapshot. Returns the row count."""

        lines = [
            json.dumps(entry.to_json(), ensure_ascii=False, sort_keys=True)
            for entry in entries
        ]
        content = "\n".join(lines) + ("\n" if lines else "")
        atomic_write_text(self.part_path, content)
        return len(lines)


class UrlImporter:
    """Seed a crawl db from a newline-delimited URL list."""

    def __init__(self, *, source_label: str = "seed") -> None:
        self.source_label = source_label

    def read_urls(self, source_file: str | Path) -> list[str]:
        """Read raw URL lines, skipping blanks and `#` comments."""

        path = Path(source_file)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Cannot read seed URL file {path}: {exc}") from exc

        return [
            line.strip()
            for line in text.splitlines()
            if line.strip() and not line.strip().startswith("#")
        ]

    def import_urls(
        self,
        source_file: str | Path,
        crawldb_dir: str | Path,
        *,
        allow_duplicates: bool = False,
    ) -> int:
        """Write the seed URLs as unfetched entries of a new snapshot.

        Returns the number of entries written; see `write_urls`.
        """

        return self.write_urls(
            self.read_urls(source_file), crawldb_dir, allow_duplicates=allow_duplicates
        )

    def write_urls(
        self,
        raw_urls: Iterable[str],
        crawldb_dir: str | Path,
        *,
        allow_duplicates: bool = False,
    ) -> int:
        """Write already-read URL lines as unfetched entries of a new snapshot.

        URLs are normalized first; invalid ones are logged and skipped. Unless
        `allow_duplicates` is set, repeated URLs collapse to their first
        occurrence.
        """

        entries: list[CrawlDbEntry] = []
        seen: set[str] = set()

        for raw in raw_urls:
            url = normalize_url(raw)
            if url is None:
                LOGGER.warning("Skipping invalid seed URL %r", raw)
                continue
            if not allow_duplicates and url in seen:
                LOGGER.debug("Skipping duplicate seed URL %s", url)
                continue
            seen.add(url)
            entries.append(
                CrawlDbEntry(url=url, status=UrlStatus.UNFETCHED, source=self.source_label)
            )

        count = CrawlDb(crawldb_dir).write(entries)
        LOGGER.info("Imported %d seed URL(s) into %s", count, crawldb_dir)
        return count


def import_urls(
    source_file: str | Path,
    crawldb_dir: str | Path,
    *,
    allow_duplicates: bool = False,
) -> int:
    return UrlImporter().import_urls(
        source_file, crawldb_dir, allow_duplicates=allow_duplicates
    )


__all__ = [
    "CrawlDb",
    "UrlImporter",
    "import_urls",
]
