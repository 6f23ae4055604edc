"""Versioned loop directories under a working directory.

Each loop writes into its own `<index>-<millis>` directory. The sequence is
recorded in `loops.json` next to them, so finding the latest loop is an index
lookup rather than a directory scan.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from .constants import LOOP_INDEX_NAME
from .errors import WorkingDirError
from .storage import atomic_write_json
from .types import JSONDict, utc_now_iso


LOGGER = logging.getLogger(__name__)

LOOP_DIR_RE = re.compile(r"^(\d+)-(\d+)$")


@dataclass(frozen=True, slots=True)
class LoopDirRecord:
    """One entry of the loop index."""

    index: int
    name: str
    created_at: str

    def to_json(self) -> JSONDict:
        return {"index": self.index, "name": self.name, "created_at": self.created_at}

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "LoopDirRecord":
        return cls(
            index=int(payload["index"]),
            name=str(payload["name"]),
            created_at=str(payload.get("created_at") or ""),
        )


class LoopDirs:
    """Create, find and clear loop directories of one working directory."""

    def __init__(self, working_dir: str | Path) -> None:
        self.working_dir = Path(working_dir)
        self.index_path = self.working_dir / LOOP_INDEX_NAME

    def records(self) -> list[LoopDirRecord]:
        """Return indexed loop dirs ordered by loop index."""

        if not self.index_path.exists():
            return []

        try:
            payload = json.loads(self.index_path.read_text(encoding="utf-8"))
        except ValueError as exc:
            raise WorkingDirError(f"Corrupt loop index {self.index_path}: {exc}") from exc
        if not isinstance(payload, list):
            raise WorkingDirError(f"Loop index {self.index_path} must be a JSON list")

        try:
            records = [LoopDirRecord.from_json(item) for item in payload]
        except (KeyError, TypeError, ValueError) as exc:
            raise WorkingDirError(
                f"Corrupt loop index {self.index_path}: bad record {exc}"
            ) from exc
        return sorted(records, key=lambda record: record.index)

    def path_for(self, record: LoopDirRecord) -> Path:
        return self.working_dir / record.name

    def find_latest(self) -> Path | None:
        """Return the directory of the highest indexed loop, or None."""

        records = self.records()
        if not records:
            return None
        return self.path_for(records[-1])

    def make_loop_dir(self, index: int) -> Path:
        """Create and index the directory for loop `index`.

        Loop indexes must strictly increase within one working directory.
        """

        if index < 0:
            raise ValueError("loop index must be >= 0")

        records = self.records()
        if records and index <= records[-1].index:
            raise ValueError(
                f"loop index {index} does not follow latest loop {records[-1].index}"
            )

        self.working_dir.mkdir(parents=True, exist_ok=True)
        name = f"{index}-{time.time_ns() // 1_000_000}"
        path = self.working_dir / name
        path.mkdir(parents=False, exist_ok=False)

        records.append(LoopDirRecord(index=index, name=name, created_at=utc_now_iso()))
        atomic_write_json(self.index_path, [record.to_json() for record in records])
        LOGGER.debug("Created loop dir %s", path)
        return path

    def clear(self) -> int:
        """Delete every loop directory (indexed or stray) and the index.

        Returns the number of directories removed.
        """

        targets: set[Path] = set()
        if self.index_path.exists():
            targets.update(self.path_for(record) for record in self.records())

        if self.working_dir.is_dir():
            for child in self.working_dir.iterdir():
                if child.is_dir() and LOOP_DIR_RE.match(child.name):
                    targets.add(child)

        removed = 0
        for path in sorted(targets):
            if path.exists():
                shutil.rmtree(path)
                removed += 1

        if self.index_path.exists():
            self.index_path.unlink()
        return removed


def find_latest_loop_dir(working_dir: str | Path) -> Path | None:
    return LoopDirs(working_dir).find_latest()


def make_loop_dir(working_dir: str | Path, index: int) -> Path:
    return LoopDirs(working_dir).make_loop_dir(index)


__all__ = [
    "LOOP_DIR_RE",
    "LoopDirRecord",
    "LoopDirs",
    "find_latest_loop_dir",
    "make_loop_dir",
]
