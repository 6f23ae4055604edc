"""Tests for miner.fetcher (no network: the session is replaced)."""

from types import SimpleNamespace
from unittest import mock

import pytest
import requests
from requests.structures import CaseInsensitiveDict

import miner.fetcher as fetcher_module
from miner.config import FetcherMode, FetchPolicy
from miner.fetcher import Fetcher


class _FakeResponse:
    def __init__(self, body=b"", *, status_code=200, url=None, headers=None, raw_headers=None):
        self.body = body
        self.status_code = status_code
        self.url = url
        self.headers = CaseInsensitiveDict(
            headers or {"Content-Type": "text/html"}
        )
        self.raw = SimpleNamespace(headers=raw_headers) if raw_headers is not None else None

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.body), chunk_size):
            yield self.body[start : start + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class _MultiHeaders:
    def __init__(self, pairs):
        self._pairs = pairs

    def keys(self):
        seen = []
        for name, _ in self._pairs:
            if name not in seen:
                seen.append(name)
        return seen

    def getlist(self, name):
        return [value for key, value in self._pairs if key == name]


class _FakeClock:
    def __init__(self):
        self.now = 100.0
        self.sleeps: list[float] = []

    def monotonic(self):
        return self.now

    def perf_counter(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def _fetcher(session, **policy_kwargs) -> Fetcher:
    policy_kwargs.setdefault("crawl_delay_seconds", 0.0)
    policy_kwargs.setdefault("retry_backoff_seconds", 0.0)
    fetcher = Fetcher(FetchPolicy(**policy_kwargs))
    fetcher._thread_local_session = lambda: session
    return fetcher


class TestFetchBasics:
    def test_success(self):
        session = mock.Mock()
        session.get.return_value = _FakeResponse(
            b"<html></html>", url="https://a.example/final"
        )
        result = _fetcher(session).fetch("https://A.example")

        assert result.ok
        assert result.requested_url == "https://a.example/"
        assert result.final_url == "https://a.example/final"
        assert result.body == b"<html></html>"
        assert result.content_type == "text/html"
        assert not result.truncated
        _, kwargs = session.get.call_args
        assert kwargs["stream"] is True
        assert kwargs["headers"]["User-Agent"] == FetchPolicy().user_agent

    def test_body_truncated_at_max_content_size(self):
        session = mock.Mock()
        session.get.return_value = _FakeResponse(b"x" * 25)
        result = _fetcher(session, max_content_size=10).fetch("https://a.example/")
        assert result.body == b"x" * 10
        assert result.truncated

    def test_first_header_value_wins(self):
        session = mock.Mock()
        session.get.return_value = _FakeResponse(
            b"",
            raw_headers=_MultiHeaders(
                [("Content-Location", "/first"), ("Content-Location", "/second")]
            ),
        )
        result = _fetcher(session).fetch("https://a.example/")
        assert result.headers == {"Content-Location": "/first"}

    def test_invalid_url(self):
        session = mock.Mock()
        result = _fetcher(session).fetch("mailto:x@a.example")
        assert result.error == "Invalid or unsupported URL"
        session.get.assert_not_called()

    def test_closed_fetcher(self):
        session = mock.Mock()
        fetcher = _fetcher(session)
        fetcher.close()
        assert fetcher.fetch("https://a.example/").error == "Fetcher is closed"


class TestRetries:
    def test_retries_server_errors(self):
        session = mock.Mock()
        session.get.side_effect = [
            _FakeResponse(b"", status_code=503),
            _FakeResponse(b"ok", status_code=200),
        ]
        result = _fetcher(session, retries=1).fetch("https://a.example/")
        assert result.status_code == 200
        assert session.get.call_count == 2

    def test_client_error_is_terminal(self):
        session = mock.Mock()
        session.get.return_value = _FakeResponse(b"", status_code=404)
        result = _fetcher(session, retries=3).fetch("https://a.example/")
        assert result.status_code == 404
        assert not result.ok
        assert session.get.call_count == 1

    def test_request_exception_becomes_error(self):
        session = mock.Mock()
        session.get.side_effect = requests.ConnectionError("refused")
        result = _fetcher(session, retries=1).fetch("https://a.example/")
        assert result.error.startswith("ConnectionError")
        assert result.body is None
        assert session.get.call_count == 2


class TestPoliteness:
    @pytest.fixture
    def clock(self, monkeypatch):
        clock = _FakeClock()
        monkeypatch.setattr(fetcher_module, "time", clock)
        return clock

    def test_efficient_defers_busy_host(self, clock):
        session = mock.Mock()
        session.get.return_value = _FakeResponse(b"ok")
        fetcher = _fetcher(session, crawl_delay_seconds=5.0, fetcher_mode=FetcherMode.EFFICIENT)

        first = fetcher.fetch("https://a.example/1")
        second = fetcher.fetch("https://a.example/2")
        other_host = fetcher.fetch("https://b.example/1")

        assert first.ok and other_host.ok
        assert second.deferred
        assert not second.ok
        assert session.get.call_count == 2
        assert clock.sleeps == []

    def test_complete_waits_for_host(self, clock):
        session = mock.Mock()
        session.get.return_value = _FakeResponse(b"ok")
        fetcher = _fetcher(session, crawl_delay_seconds=5.0, fetcher_mode=FetcherMode.COMPLETE)

        fetcher.fetch("https://a.example/1")
        second = fetcher.fetch("https://a.example/2")

        assert second.ok
        assert clock.sleeps == [pytest.approx(5.0)]

    def test_impolite_ignores_delay(self, clock):
        session = mock.Mock()
        session.get.return_value = _FakeResponse(b"ok")
        fetcher = _fetcher(session, crawl_delay_seconds=5.0, fetcher_mode=FetcherMode.IMPOLITE)

        results = [fetcher.fetch(f"https://a.example/{i}") for i in range(3)]

        assert all(result.ok for result in results)
        assert clock.sleeps == []
