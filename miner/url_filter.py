"""Regex admission filters for fetch (crawl filter) and analysis (mine filter).

Pattern files hold one regular expression per line. Blank lines and lines
starting with `#` are ignored. A URL is admitted when at least one pattern
matches anywhere in it (`re.search` semantics); an empty pattern set admits
nothing.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable

from .errors import ConfigError


LOGGER = logging.getLogger(__name__)


def load_filter_patterns(path: str | Path) -> list[str]:
    """Read pattern strings from a newline-delimited pattern file."""

    pattern_path = Path(path)
    try:
        text = pattern_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read URL filter file {pattern_path}: {exc}") from exc

    patterns: list[str] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        patterns.append(line)
    return patterns


class RegexUrlFilter:
    """Immutable set of compiled URL patterns.

    Instances hold no mutable state after construction and can be shared by
    any number of worker threads.
    """

    __slots__ = ("_patterns", "name")

    def __init__(self, patterns: Iterable[str], *, name: str = "url_filter") -> None:
        compiled: list[re.Pattern[str]] = []
        for pattern in patterns:
            try:
                compiled.append(re.compile(pattern))
            except re.error as exc:
                raise ConfigError(f"Invalid {name} pattern {pattern!r}: {exc}") from exc

        self._patterns: tuple[re.Pattern[str], ...] = tuple(compiled)
        self.name = name

    @classmethod
    def from_file(cls, path: str | Path, *, name: str = "url_filter") -> "RegexUrlFilter":
        patterns = load_filter_patterns(path)
        url_filter = cls(patterns, name=name)
        LOGGER.info("Loaded %d %s pattern(s) from %s", len(url_filter), name, path)
        return url_filter

    @property
    def patterns(self) -> tuple[str, ...]:
        return tuple(pattern.pattern for pattern in self._patterns)

    def matches(self, url: str) -> bool:
        """Return True iff `url` matches at least one pattern."""

        return any(pattern.search(url) for pattern in self._patterns)

    is_admitted = matches

    def __call__(self, url: str) -> bool:
        return self.matches(url)

    def __len__(self) -> int:
        return len(self._patterns)

    def __repr__(self) -> str:
        return f"RegexUrlFilter(name={self.name!r}, patterns={len(self._patterns)})"


__all__ = [
    "RegexUrlFilter",
    "load_filter_patterns",
]
