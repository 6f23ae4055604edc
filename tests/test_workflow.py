"""Tests for miner.workflow (one loop with a fake fetch transport)."""

import json
import threading

import pytest

from conftest import FakeFetcher, html_page
from miner.config import FetchPolicy
from miner.crawldb import CrawlDb
from miner.errors import IterationError
from miner.extractor import BoundedExtractor
from miner.types import CrawlDbEntry, FetchResult, Iteration, UrlStatus
from miner.url_filter import RegexUrlFilter
from miner.workflow import MiningWorkflow


SEED = "https://a.example/"
ALLOW_ALL = RegexUrlFilter([".*"])


def _iteration(tmp_path, entries, index=1):
    input_state = tmp_path / "0-1" / "crawldb"
    CrawlDb(input_state).write(entries)
    return Iteration(index=index, input_state=input_state, output_dir=tmp_path / f"{index}-1")


def _run(tmp_path, pages, entries=None, *, crawl_filter=ALLOW_ALL, mine_filter=ALLOW_ALL,
         policy=None, concurrency=2, extractor_factory=None):
    fetcher = FakeFetcher(pages)
    iteration = _iteration(tmp_path, entries or [CrawlDbEntry(url=SEED)])
    workflow = MiningWorkflow(concurrency=concurrency, fetcher_factory=lambda _: fetcher)
    produced = workflow.run(
        iteration,
        fetch_policy=policy or FetchPolicy(),
        crawl_filter=crawl_filter,
        mine_filter=mine_filter,
        extractor_factory=extractor_factory,
    )
    return produced, iteration, fetcher


def _read_jsonl(path):
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]


def _by_url(crawldb_dir):
    return {entry.url: entry for entry in CrawlDb(crawldb_dir).load()}


class TestMiningWorkflow:
    def test_fetches_mines_and_merges_outlinks(self, tmp_path):
        pages = {SEED: html_page('<a href="/docs/">Docs</a>', '<a href="https://c.example">C</a>')}
        produced, iteration, fetcher = _run(tmp_path, pages)

        assert produced == iteration.output_dir / "crawldb"
        assert fetcher.calls == [SEED]
        assert fetcher.closed

        rows = _by_url(produced)
        assert list(rows) == [SEED, "https://a.example/docs/", "https://c.example/"]
        assert rows[SEED].status == UrlStatus.FETCHED
        assert rows[SEED].score == 1.0
        assert rows[SEED].status_code == 200
        assert rows["https://c.example/"].status == UrlStatus.UNFETCHED
        assert rows["https://c.example/"].source == SEED

        results = _read_jsonl(iteration.output_dir / "mined" / "results.jsonl")
        assert len(results) == 1
        assert results[0]["url"] == SEED
        assert [link["target_url"] for link in results[0]["outlinks"]] == [
            "/docs/",
            "https://c.example",
        ]

    def test_input_snapshot_is_not_modified(self, tmp_path):
        produced, iteration, _ = _run(tmp_path, {SEED: html_page('<a href="/x">x</a>')})
        assert [entry.url for entry in CrawlDb(iteration.input_state).load()] == [SEED]
        assert produced != iteration.input_state

    def test_crawl_filter_gates_new_urls_and_fetching(self, tmp_path):
        entries = [CrawlDbEntry(url=SEED), CrawlDbEntry(url="https://blocked.example/")]
        pages = {SEED: html_page('<a href="https://blocked.example/p">p</a>', '<a href="/ok">ok</a>')}
        produced, _, fetcher = _run(
            tmp_path,
            pages,
            entries,
            crawl_filter=RegexUrlFilter([r"^https://a\.example/"]),
        )

        assert fetcher.calls == [SEED]
        rows = _by_url(produced)
        assert "https://blocked.example/p" not in rows
        assert rows["https://blocked.example/"].status == UrlStatus.UNFETCHED
        assert "https://a.example/ok" in rows

    def test_known_and_unusable_links_are_not_duplicated(self, tmp_path):
        pages = {
            SEED: html_page(
                '<a href="/">self</a>',
                '<a href="#top">frag</a>',
                '<a>no href</a>',
                '<a href="mailto:x@a.example">mail</a>',
                '<a href="/n">n</a>',
                '<a href="/n#again">n again</a>',
            )
        }
        produced, _, _ = _run(tmp_path, pages)
        assert [entry.url for entry in CrawlDb(produced).load()] == [SEED, "https://a.example/n"]

    def test_fetch_error_is_recorded_as_data(self, tmp_path):
        produced, iteration, _ = _run(tmp_path, {})

        assert _by_url(produced)[SEED].status == UrlStatus.FETCH_ERROR
        errors = _read_jsonl(iteration.output_dir / "errors.jsonl")
        assert len(errors) == 1
        assert errors[0]["stage"] == "fetch"
        assert errors[0]["status_code"] == 404

    def test_transport_error_message_is_split(self, tmp_path):
        pages = {
            SEED: FetchResult(
                requested_url=SEED,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                error="ConnectTimeout: timed out",
            )
        }
        _, iteration, _ = _run(tmp_path, pages)
        errors = _read_jsonl(iteration.output_dir / "errors.jsonl")
        assert errors[0]["error_type"] == "ConnectTimeout"
        assert errors[0]["message"] == "timed out"

    def test_invalid_mime_type_is_skipped(self, tmp_path):
        pages = {
            SEED: FetchResult(
                requested_url=SEED,
                final_url=SEED,
                status_code=200,
                content_type="application/pdf",
                body=b"%PDF-1.4",
            )
        }
        built = []

        def factory():
            extractor = BoundedExtractor(None)
            built.append(extractor)
            return extractor

        produced, iteration, _ = _run(tmp_path, pages, extractor_factory=factory)

        assert _by_url(produced)[SEED].status == UrlStatus.SKIPPED
        assert _read_jsonl(iteration.output_dir / "mined" / "results.jsonl") == []
        stats = json.loads((iteration.output_dir / "stats.json").read_text(encoding="utf-8"))
        assert stats["skipped"] == 1
        assert stats["mined_ok"] == 0

    def test_deferred_url_stays_unfetched(self, tmp_path):
        pages = {
            SEED: FetchResult(
                requested_url=SEED,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                deferred=True,
            )
        }
        produced, iteration, _ = _run(tmp_path, pages)
        assert _by_url(produced)[SEED].status == UrlStatus.UNFETCHED
        stats = json.loads((iteration.output_dir / "stats.json").read_text(encoding="utf-8"))
        assert stats["deferred"] == 1

    def test_mine_filter_rejection_produces_no_output(self, tmp_path):
        pages = {SEED: html_page('<a href="/x">x</a>')}
        produced, iteration, _ = _run(tmp_path, pages, mine_filter=RegexUrlFilter([]))

        rows = _by_url(produced)
        assert rows[SEED].status == UrlStatus.FETCHED
        assert rows[SEED].score is None
        assert list(rows) == [SEED]
        assert _read_jsonl(iteration.output_dir / "mined" / "results.jsonl") == []
        assert _read_jsonl(iteration.output_dir / "errors.jsonl") == []

    def test_extraction_fault_goes_to_errors(self, tmp_path):
        class Failing:
            def parse(self, content, metadata, *, content_handler, link_handler):
                raise RuntimeError("bad markup")

        pages = {SEED: html_page()}
        _, iteration, _ = _run(
            tmp_path,
            pages,
            extractor_factory=lambda: BoundedExtractor(None, parser=Failing()),
        )
        errors = _read_jsonl(iteration.output_dir / "errors.jsonl")
        assert [(e["stage"], e["message"]) for e in errors] == [("extract", "bad markup")]
        assert errors[0]["metadata"] == {"fault_kind": "parse_error"}

    def test_max_urls_per_loop(self, tmp_path):
        entries = [CrawlDbEntry(url=f"https://a.example/{i}") for i in range(5)]
        pages = {entry.url: html_page() for entry in entries}
        produced, _, fetcher = _run(
            tmp_path,
            pages,
            entries,
            policy=FetchPolicy(max_urls_per_loop=2),
            concurrency=1,
        )
        assert fetcher.calls == ["https://a.example/0", "https://a.example/1"]
        statuses = [entry.status for entry in CrawlDb(produced).load()]
        assert statuses.count(UrlStatus.FETCHED) == 2
        assert statuses.count(UrlStatus.UNFETCHED) == 3

    def test_already_fetched_urls_are_not_refetched(self, tmp_path):
        entries = [
            CrawlDbEntry(url=SEED, status=UrlStatus.FETCHED, score=0.3),
            CrawlDbEntry(url="https://a.example/new"),
        ]
        pages = {"https://a.example/new": html_page()}
        produced, _, fetcher = _run(tmp_path, pages, entries)
        assert fetcher.calls == ["https://a.example/new"]
        assert _by_url(produced)[SEED].score == 0.3

    def test_one_extractor_per_worker(self, tmp_path):
        entries = [CrawlDbEntry(url=f"https://a.example/{i}") for i in range(6)]
        pages = {entry.url: html_page() for entry in entries}
        built = []
        lock = threading.Lock()

        def factory():
            extractor = BoundedExtractor(None)
            with lock:
                built.append(extractor)
            return extractor

        _run(tmp_path, pages, entries, concurrency=3, extractor_factory=factory)

        assert len(built) == 3
        assert len({id(extractor) for extractor in built}) == 3

    def test_unexpected_worker_failure_raises_after_drain(self, tmp_path):
        class Exploding(FakeFetcher):
            def fetch(self, url):
                if url.endswith("/boom"):
                    with self._lock:
                        self.calls.append(url)
                    raise KeyError("boom")
                return super().fetch(url)

        entries = [CrawlDbEntry(url="https://a.example/boom"), CrawlDbEntry(url=SEED)]
        fetcher = Exploding({SEED: html_page()})
        workflow = MiningWorkflow(concurrency=1, fetcher_factory=lambda _: fetcher)

        with pytest.raises(IterationError) as excinfo:
            workflow.run(
                _iteration(tmp_path, entries),
                fetch_policy=FetchPolicy(),
                crawl_filter=ALLOW_ALL,
                mine_filter=ALLOW_ALL,
            )

        assert excinfo.value.loop_index == 1
        assert fetcher.calls == ["https://a.example/boom", SEED]
        assert fetcher.closed

    def test_missing_input_state(self, tmp_path):
        workflow = MiningWorkflow(fetcher_factory=lambda _: FakeFetcher())
        iteration = Iteration(index=3, input_state=tmp_path / "nope", output_dir=tmp_path / "3-1")
        with pytest.raises(IterationError, match="Cannot read crawl db"):
            workflow.run(
                iteration,
                fetch_policy=FetchPolicy(),
                crawl_filter=ALLOW_ALL,
                mine_filter=None,
            )

    def test_stats_written(self, tmp_path):
        pages = {SEED: html_page('<a href="/a">a</a>', '<a href="/b">b</a>')}
        _, iteration, _ = _run(tmp_path, pages)
        stats = json.loads((iteration.output_dir / "stats.json").read_text(encoding="utf-8"))
        assert stats["candidates"] == 1
        assert stats["fetched_ok"] == 1
        assert stats["mined_ok"] == 1
        assert stats["outlinks"] == 2
        assert stats["new_urls"] == 2
        assert stats["finished_at"] is not None

    def test_rejects_non_positive_concurrency(self):
        with pytest.raises(ValueError):
            MiningWorkflow(concurrency=0)
