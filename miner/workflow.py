"""One loop of the mining dataflow: fetch, extract, merge, persist.

`MiningWorkflow.run` reads the loop's input crawl db, fetches the unfetched
URLs admitted by the crawl filter on a pool of worker threads (each worker owns
one extractor and reuses it for every document it handles), then writes the
next crawl db snapshot together with mined results, errors and stats.
"""

from __future__ import annotations

import functools
import logging
import queue
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Protocol

from .config import FetchPolicy
from .constants import DEFAULT_CONCURRENCY
from .crawldb import CrawlDb
from .errors import IterationError
from .extractor import BoundedExtractor
from .fetcher import Fetcher
from .stats import StatsCollector
from .storage import LoopStorage
from .types import (
    CrawlDbEntry,
    CrawlStage,
    ErrorRecord,
    ExtractionResult,
    ExtractOutcome,
    FetchedDocument,
    FetchResult,
    Iteration,
    UrlStatus,
    mime_type_of,
    utc_now_iso,
)
from .url import resolve_url


LOGGER = logging.getLogger(__name__)

UrlPredicate = Callable[[str], bool]


class FetchTransport(Protocol):
    def fetch(self, url: str) -> FetchResult: ...

    def close(self) -> None: ...


class DocumentExtractor(Protocol):
    def extract(self, doc: FetchedDocument) -> ExtractOutcome: ...


ExtractorFactory = Callable[[], DocumentExtractor]


@dataclass(slots=True)
class _UrlOutcome:
    """What one loop learned about one crawl db URL."""

    status: UrlStatus
    fetched_at: str | None = None
    content_type: str | None = None
    status_code: int | None = None
    score: float | None = None
    result: ExtractionResult | None = None


class MiningWorkflow:
    """Default dataflow stage run once per loop by the orchestrator."""

    def __init__(
        self,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        fetcher_factory: Callable[[FetchPolicy], FetchTransport] = Fetcher,
    ) -> None:
        if concurrency <= 0:
            raise ValueError("concurrency must be > 0")
        self.concurrency = concurrency
        self.fetcher_factory = fetcher_factory

    def run(
        self,
        iteration: Iteration,
        *,
        fetch_policy: FetchPolicy,
        crawl_filter: UrlPredicate,
        mine_filter: UrlPredicate | None,
        extractor_factory: ExtractorFactory | None = None,
    ) -> Path:
        """Run one loop and return the produced crawl db directory."""

        if extractor_factory is None:
            extractor_factory = functools.partial(BoundedExtractor, mine_filter)

        try:
            entries = CrawlDb(iteration.input_state).load()
        except (OSError, ValueError) as exc:
            raise IterationError(
                f"Cannot read crawl db {iteration.input_state}: {exc}",
                loop_index=iteration.index,
            ) from exc

        storage = LoopStorage(iteration.output_dir)
        stats = StatsCollector()

        candidates = self.select_candidates(entries, crawl_filter, fetch_policy)
        stats.record_candidates(len(candidates))
        LOGGER.info(
            "Loop %d: %d known URL(s), %d candidate(s) to fetch",
            iteration.index,
            len(entries),
            len(candidates),
        )

        outcomes = self._process(
            candidates, fetch_policy, extractor_factory, storage, stats, iteration
        )

        merged = self.merge(entries, outcomes, crawl_filter, stats)
        try:
            CrawlDb(storage.crawldb_dir).write(merged)
        except OSError as exc:
            raise IterationError(
                f"Cannot write crawl db {storage.crawldb_dir}: {exc}",
                loop_index=iteration.index,
            ) from exc

        stats.finish()
        storage.save_stats(stats.to_json())
        LOGGER.info(
            "Loop %d finished: fetched_ok=%d fetch_errors=%d mined=%d faults=%d new_urls=%d",
            iteration.index,
            stats.count("fetched_ok"),
            stats.count("fetched_error"),
            stats.count("mined_ok"),
            stats.count("timeouts") + stats.count("parse_errors"),
            stats.count("new_urls"),
        )
        return storage.crawldb_dir

    @staticmethod
    def select_candidates(
        entries: Iterable[CrawlDbEntry],
        crawl_filter: UrlPredicate,
        fetch_policy: FetchPolicy,
    ) -> list[str]:
        """Unfetched URLs admitted by the crawl filter, in crawl db order."""

        candidates: list[str] = []
        seen: set[str] = set()
        for entry in entries:
            if entry.status != UrlStatus.UNFETCHED or entry.url in seen:
                continue
            seen.add(entry.url)
            if not crawl_filter(entry.url):
                continue
            candidates.append(entry.url)
            if (
                fetch_policy.max_urls_per_loop is not None
                and len(candidates) >= fetch_policy.max_urls_per_loop
            ):
                break
        return candidates

    def _process(
        self,
        candidates: list[str],
        fetch_policy: FetchPolicy,
        extractor_factory: ExtractorFactory,
        storage: LoopStorage,
        stats: StatsCollector,
        iteration: Iteration,
    ) -> dict[str, _UrlOutcome]:
        work: queue.Queue[str | None] = queue.Queue()
        for url in candidates:
            work.put(url)

        worker_count = max(1, min(self.concurrency, len(candidates)))
        for _ in range(worker_count):
            work.put(None)

        outcomes: dict[str, _UrlOutcome] = {}
        failures: list[tuple[str, Exception]] = []
        lock = threading.Lock()

        fetcher = self.fetcher_factory(fetch_policy)

        def worker() -> None:
            # one extractor per worker, reused sequentially
            extractor = extractor_factory()
            while True:
                url = work.get()
                if url is None:
                    return
                try:
                    outcome = self._process_url(
                        url, fetcher, extractor, fetch_policy, storage, stats
                    )
                except Exception as exc:
                    LOGGER.exception("Unexpected failure processing %s", url)
                    with lock:
                        failures.append((url, exc))
                    continue
                if outcome is not None:
                    with lock:
                        outcomes[url] = outcome

        workers = [
            threading.Thread(
                target=worker,
                name=f"miner-worker-{iteration.index}-{idx}",
                daemon=True,
            )
            for idx in range(worker_count)
        ]
        try:
            for thread in workers:
                thread.start()
            for thread in workers:
                thread.join()
        finally:
            fetcher.close()

        if failures:
            url, first = failures[0]
            raise IterationError(
                f"{len(failures)} unexpected worker failure(s) in loop {iteration.index}; "
                f"first at {url}: {first.__class__.__name__}: {first}",
                loop_index=iteration.index,
            ) from first

        return outcomes

    def _process_url(
        self,
        url: str,
        fetcher: FetchTransport,
        extractor: DocumentExtractor,
        fetch_policy: FetchPolicy,
        storage: LoopStorage,
        stats: StatsCollector,
    ) -> _UrlOutcome | None:
        fetch_result = fetcher.fetch(url)
        stats.record_fetch(fetch_result)

        if fetch_result.deferred:
            return None

        if not fetch_result.ok:
            storage.save_error(_fetch_error_record(url, fetch_result))
            return _UrlOutcome(
                status=UrlStatus.FETCH_ERROR,
                fetched_at=fetch_result.fetched_at,
                content_type=fetch_result.content_type,
                status_code=fetch_result.status_code,
            )

        fetched = _UrlOutcome(
            status=UrlStatus.FETCHED,
            fetched_at=fetch_result.fetched_at,
            content_type=fetch_result.content_type,
            status_code=fetch_result.status_code,
        )

        mime_type = mime_type_of(fetch_result.content_type)
        if not fetch_policy.accepts_mime_type(mime_type):
            LOGGER.debug("Skipping %s with content type %r", url, mime_type)
            stats.record_skipped()
            fetched.status = UrlStatus.SKIPPED
            return fetched

        outcome = extractor.extract(fetch_result.to_document())
        stats.record_outcome(outcome)

        if outcome.ok and outcome.result is not None:
            storage.save_result(outcome.result)
            fetched.score = outcome.result.page_score
            fetched.result = outcome.result
        elif outcome.fault is not None:
            storage.save_error(ErrorRecord.from_fault(outcome.fault))
        return fetched

    @staticmethod
    def merge(
        entries: list[CrawlDbEntry],
        outcomes: dict[str, _UrlOutcome],
        crawl_filter: UrlPredicate,
        stats: StatsCollector | None = None,
    ) -> list[CrawlDbEntry]:
        """Build the next crawl db from the prior rows and this loop's outcomes.

        Prior rows keep their order. Outlinks of mined documents are resolved,
        normalized and admitted by the crawl filter, then appended as unfetched
        when their URL is not known yet.
        """

        now = utc_now_iso()
        merged: list[CrawlDbEntry] = []
        known: set[str] = set()

        for entry in entries:
            known.add(entry.url)
            outcome = outcomes.get(entry.url)
            if outcome is None:
                merged.append(entry)
                continue
            merged.append(
                CrawlDbEntry(
                    url=entry.url,
                    status=outcome.status,
                    score=outcome.score if outcome.score is not None else entry.score,
                    fetched_at=outcome.fetched_at,
                    updated_at=now,
                    content_type=outcome.content_type,
                    status_code=outcome.status_code,
                    source=entry.source,
                )
            )

        new_urls = 0
        for entry in entries:
            outcome = outcomes.get(entry.url)
            if outcome is None or outcome.result is None:
                continue
            result = outcome.result
            base = result.base_url or result.url
            for link in result.outlinks:
                target = resolve_url(base, link.target_url)
                if target is None or target in known or not crawl_filter(target):
                    continue
                known.add(target)
                merged.append(
                    CrawlDbEntry(
                        url=target,
                        status=UrlStatus.UNFETCHED,
                        updated_at=now,
                        source=entry.url,
                    )
                )
                new_urls += 1

        if stats is not None:
            stats.record_new_urls(new_urls)
        return merged


def _fetch_error_record(url: str, result: FetchResult) -> ErrorRecord:
    if result.error:
        error_type, _, message = result.error.partition(":")
        if not message:
            error_type, message = "FetchError", result.error
        return ErrorRecord(
            stage=CrawlStage.FETCH,
            url=url,
            message=message.strip(),
            error_type=error_type.strip(),
            status_code=result.status_code,
        )
    return ErrorRecord(
        stage=CrawlStage.FETCH,
        url=url,
        message=f"HTTP status {result.status_code}",
        error_type="HTTPError",
        status_code=result.status_code,
    )


__all__ = [
    "DocumentExtractor",
    "ExtractorFactory",
    "FetchTransport",
    "MiningWorkflow",
]
