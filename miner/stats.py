"""Thread-safe per-loop statistics aggregation."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
import threading
from typing import Any

from .types import ExtractOutcome, FaultKind, FetchResult, OutcomeStatus, utc_now_iso


class StatsCollector:
    """Collect and summarize one loop's fetch and extraction counters.

    The collector is thread-safe and intended for use across concurrent
    workers.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

        self.started_at = utc_now_iso()
        self.finished_at: str | None = None

        self._counts: dict[str, int] = defaultdict(int)
        self._status_code_counts: dict[str, int] = defaultdict(int)
        self._fetch_error_type_counts: dict[str, int] = defaultdict(int)
        self._fetch_elapsed_ms_total = 0
        self._fetch_bytes_total = 0

    def record_candidates(self, count: int) -> None:
        with self._lock:
            self._counts["candidates"] += count

    def record_fetch(self, result: FetchResult) -> None:
        """Record one fetch result."""

        with self._lock:
            if result.deferred:
                self._counts["deferred"] += 1
                return

            if result.ok:
                self._counts["fetched_ok"] += 1
            else:
                self._counts["fetched_error"] += 1

            if result.truncated:
                self._counts["truncated"] += 1

            if result.status_code is not None:
                self._status_code_counts[str(result.status_code)] += 1

            if result.error:
                err_type = result.error.split(":", maxsplit=1)[0].strip() or "Unknown"
                self._fetch_error_type_counts[err_type] += 1

            if result.elapsed_ms is not None:
                self._fetch_elapsed_ms_total += int(result.elapsed_ms)

            if result.content_length is not None:
                self._fetch_bytes_total += int(result.content_length)

    def record_skipped(self) -> None:
        with self._lock:
            self._counts["skipped"] += 1

    def record_outcome(self, outcome: ExtractOutcome) -> None:
        """Record one extraction outcome."""

        with self._lock:
            if outcome.status == OutcomeStatus.NOT_APPLICABLE:
                self._counts["not_applicable"] += 1
                return

            if outcome.status == OutcomeStatus.OK and outcome.result is not None:
                self._counts["mined_ok"] += 1
                self._counts["outlinks"] += len(outcome.result.outlinks)
                return

            if outcome.fault is not None and outcome.fault.kind == FaultKind.TIMEOUT:
                self._counts["timeouts"] += 1
            else:
                self._counts["parse_errors"] += 1

    def record_new_urls(self, count: int) -> None:
        with self._lock:
            self._counts["new_urls"] += count

    def count(self, name: str) -> int:
        with self._lock:
            return self._counts.get(name, 0)

    def finish(self) -> None:
        """Mark the loop as finished."""

        with self._lock:
            self.finished_at = utc_now_iso()

    def to_json(self) -> dict[str, Any]:
        """Return a JSON-serializable summary payload."""

        with self._lock:
            start = _parse_iso_utc(self.started_at)
            end = (
                _parse_iso_utc(self.finished_at)
                if self.finished_at
                else datetime.now(timezone.utc)
            )
            duration_seconds = max(0.0, (end - start).total_seconds())

            counters = {
                name: int(self._counts.get(name, 0))
                for name in (
                    "candidates",
                    "fetched_ok",
                    "fetched_error",
                    "deferred",
                    "truncated",
                    "skipped",
                    "mined_ok",
                    "not_applicable",
                    "timeouts",
                    "parse_errors",
                    "outlinks",
                    "new_urls",
                )
            }

            return {
                **counters,
                "started_at": self.started_at,
                "finished_at": self.finished_at,
                "duration_seconds": duration_seconds,
                "fetch": {
                    "status_code_counts": dict(self._status_code_counts),
                    "error_type_counts": dict(self._fetch_error_type_counts),
                    "elapsed_ms_total": self._fetch_elapsed_ms_total,
                    "bytes_total": self._fetch_bytes_total,
                },
            }


def _parse_iso_utc(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return datetime.now(timezone.utc)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


__all__ = ["StatsCollector"]
