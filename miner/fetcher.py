"""URL fetching with requests, retries and the fetch policy's politeness modes."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Mapping

import requests

from .config import FetcherMode, FetchPolicy
from .types import FetchResult
from .url import host_from_url, normalize_url


LOGGER = logging.getLogger(__name__)

CHUNK_SIZE = 16 * 1024


@dataclass(frozen=True, slots=True)
class _AttemptConfig:
    attempts: int
    backoff_seconds: float


class Fetcher:
    """Fetch URLs with a thread-local `requests.Session` per worker.

    Politeness:
    - `complete` sleeps until the host's next slot is free.
    - `efficient` returns a deferred result instead of sleeping, so the URL
      stays unfetched for a later loop.
    - `impolite` never waits.
    """

    def __init__(self, policy: FetchPolicy) -> None:
        self.policy = policy

        self._thread_local = threading.local()

        self._rate_lock = threading.Lock()
        self._next_allowed_time_by_host: dict[str, float] = {}

        self._sessions_lock = threading.Lock()
        self._sessions: list[requests.Session] = []

        self._closed = False
        self._closed_lock = threading.Lock()

    def fetch(self, url: str) -> FetchResult:
        """Fetch one URL with retries and the configured politeness mode."""

        normalized = normalize_url(url)
        if normalized is None:
            return _error_result(url, "Invalid or unsupported URL")

        if self._is_closed():
            return _error_result(normalized, "Fetcher is closed")

        if not self._acquire_slot(
            normalized, block=self.policy.fetcher_mode == FetcherMode.COMPLETE
        ):
            LOGGER.debug("Deferring %s until its host is ready", normalized)
            return FetchResult(
                requested_url=normalized,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                deferred=True,
            )

        attempt_cfg = _AttemptConfig(
            attempts=max(1, self.policy.retries + 1),
            backoff_seconds=max(0.0, self.policy.retry_backoff_seconds),
        )
        return self._fetch_with_retries(normalized, attempt_cfg)

    def close(self) -> None:
        """Close every session opened by worker threads."""

        with self._closed_lock:
            self._closed = True

        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _is_closed(self) -> bool:
        with self._closed_lock:
            return self._closed

    def _fetch_with_retries(self, url: str, attempt_cfg: _AttemptConfig) -> FetchResult:
        last_result: FetchResult | None = None

        for attempt in range(1, attempt_cfg.attempts + 1):
            if self._is_closed():
                return _error_result(url, "Fetcher is closed")

            # the first attempt already holds a slot
            if attempt > 1:
                self._acquire_slot(url, block=self.policy.fetcher_mode != FetcherMode.IMPOLITE)

            result = self._fetch_once(url)
            last_result = result

            if self._is_terminal_result(result):
                return result

            if attempt < attempt_cfg.attempts and attempt_cfg.backoff_seconds > 0:
                time.sleep(attempt_cfg.backoff_seconds * attempt)

        if last_result is None:
            return _error_result(url, "Unknown fetch failure")
        return last_result

    @staticmethod
    def _is_terminal_result(result: FetchResult) -> bool:
        if result.error is not None:
            return False

        if result.status_code is None:
            return False

        if result.status_code in {408, 429} or result.status_code >= 500:
            return False

        return True

    def _fetch_once(self, url: str) -> FetchResult:
        started = time.perf_counter()
        session = self._thread_local_session()

        try:
            with session.get(
                url,
                headers={"User-Agent": self.policy.user_agent},
                timeout=self.policy.timeout_seconds,
                allow_redirects=True,
                stream=True,
            ) as response:
                body, truncated = self._read_body(response)
                headers = _first_value_headers(response)
                elapsed_ms = int((time.perf_counter() - started) * 1000)

                return FetchResult(
                    requested_url=url,
                    final_url=response.url or url,
                    status_code=response.status_code,
                    content_type=response.headers.get("Content-Type"),
                    body=body,
                    headers=headers,
                    elapsed_ms=elapsed_ms,
                    truncated=truncated,
                    error=None,
                )
        except requests.RequestException as exc:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            return FetchResult(
                requested_url=url,
                final_url=None,
                status_code=None,
                content_type=None,
                body=None,
                elapsed_ms=elapsed_ms,
                error=f"{exc.__class__.__name__}: {exc}",
            )

    def _read_body(self, response: requests.Response) -> tuple[bytes, bool]:
        limit = self.policy.max_content_size
        chunks: list[bytes] = []
        size = 0

        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            if not chunk:
                continue
            remaining = limit - size
            if len(chunk) > remaining:
                chunks.append(chunk[:remaining])
                return b"".join(chunks), True
            chunks.append(chunk)
            size += len(chunk)

        return b"".join(chunks), False

    def _thread_local_session(self) -> requests.Session:
        session = getattr(self._thread_local, "session", None)
        if session is None:
            session = requests.Session()
            self._thread_local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def _acquire_slot(self, url: str, *, block: bool) -> bool:
        """Reserve the host's next fetch slot.

        Returns False only when `block` is False and the host is not ready.
        """

        delay = max(0.0, self.policy.crawl_delay_seconds)
        if delay <= 0 or self.policy.fetcher_mode == FetcherMode.IMPOLITE:
            return True

        host = host_from_url(url)

        while True:
            with self._rate_lock:
                now = time.monotonic()
                next_allowed = self._next_allowed_time_by_host.get(host, 0.0)
                if now >= next_allowed:
                    self._next_allowed_time_by_host[host] = now + delay
                    return True
                sleep_for = next_allowed - now

            if not block:
                return False
            if sleep_for > 0:
                time.sleep(sleep_for)


def _first_value_headers(response: requests.Response) -> dict[str, str]:
    raw_headers = getattr(response.raw, "headers", None)
    if raw_headers is not None and hasattr(raw_headers, "getlist"):
        headers: dict[str, str] = {}
        for name in raw_headers.keys():
            values = raw_headers.getlist(name)
            if values and name not in headers:
                headers[name] = str(values[0])
        return headers
    return _as_str_dict(response.headers)


def _as_str_dict(headers: Mapping[str, str]) -> dict[str, str]:
    return {str(name): str(value) for name, value in headers.items()}


def _error_result(url: str, message: str) -> FetchResult:
    return FetchResult(
        requested_url=url,
        final_url=None,
        status_code=None,
        content_type=None,
        body=None,
        error=message,
    )


__all__ = ["CHUNK_SIZE", "Fetcher"]
