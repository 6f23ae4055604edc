"""Filesystem layout for one loop's output directory.

Storage owns the on-disk layout of mined results, error rows and stats.
Other modules should use this API instead of building paths manually.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Mapping

from .constants import (
    JSON_INDENT,
    CRAWLDB_SUBDIR_NAME,
    ERRORS_NAME,
    MINED_RESULTS_NAME,
    MINED_SUBDIR_NAME,
    STATS_NAME,
)
from .types import ErrorRecord, ExtractionResult


def atomic_write_text(path: Path, content: str) -> None:
    """Write `content` to `path` through a temp file and `os.replace`."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=path.name + ".",
        suffix=".tmp",
    )
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise


def atomic_write_json(path: Path, payload: Mapping[str, Any] | list[Any]) -> None:
    content = json.dumps(payload, ensure_ascii=False, indent=JSON_INDENT, sort_keys=True) + "\n"
    atomic_write_text(path, content)


class LoopStorage:
    """Persist one loop's artifacts under its `output_dir`."""

    def __init__(self, output_dir: str | Path) -> None:
        self.output_dir = Path(output_dir)

        self.crawldb_dir = self.output_dir / CRAWLDB_SUBDIR_NAME
        self.mined_dir = self.output_dir / MINED_SUBDIR_NAME

        self.results_path = self.mined_dir / MINED_RESULTS_NAME
        self.errors_path = self.output_dir / ERRORS_NAME
        self.stats_path = self.output_dir / STATS_NAME

        self._jsonl_lock = threading.Lock()

        self.mined_dir.mkdir(parents=True, exist_ok=True)

    def save_result(self, result: ExtractionResult) -> None:
        """Append one extraction result to `mined/results.jsonl`."""

        self._append_jsonl(self.results_path, result.to_json())

    def save_error(self, record: ErrorRecord) -> None:
        """Append one error row to `errors.jsonl`."""

        self._append_jsonl(self.errors_path, record.to_json())

    def save_stats(self, stats: Mapping[str, Any]) -> None:
        atomic_write_json(self.stats_path, dict(stats))

    def _append_jsonl(self, path: Path, payload: Mapping[str, Any]) -> None:
        line = json.dumps(payload, ensure_ascii=False, sort_keys=True)
        with self._jsonl_lock:
            with path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")


__all__ = [
    "LoopStorage",
    "atomic_write_json",
    "atomic_write_text",
]
