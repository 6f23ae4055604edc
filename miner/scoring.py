"""Pluggable page scoring strategies."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, Protocol

from .constants import DEFAULT_MAX_WORDS_PER_PHRASE, DEFAULT_PAGE_SCORE
from .errors import ConfigError


TOKEN_RE = re.compile(r"[^\W_]+(?:'[^\W_]+)?", re.UNICODE)


class PageScorer(Protocol):
    """Scores the extracted body text of one document."""

    def score(self, content: str) -> float: ...


class ConstantScorer:
    """Give every mined page the same score."""

    def __init__(self, value: float = DEFAULT_PAGE_SCORE) -> None:
        self.value = float(value)

    def score(self, content: str) -> float:
        return self.value


class PhraseShingleAnalyzer:
    """Lowercase word tokenizer producing 1..N-word shingles."""

    def __init__(self, max_words_per_phrase: int = DEFAULT_MAX_WORDS_PER_PHRASE) -> None:
        if max_words_per_phrase <= 0:
            raise ValueError("max_words_per_phrase must be > 0")
        self.max_words_per_phrase = max_words_per_phrase

    @staticmethod
    def tokens(text: str) -> list[str]:
        return TOKEN_RE.findall(text.lower())

    def analyzed_phrase(self, phrase: str) -> str:
        return " ".join(self.tokens(phrase))

    def terms(self, text: str) -> list[str]:
        tokens = self.tokens(text)
        terms: list[str] = []
        for start in range(len(tokens)):
            for width in range(1, self.max_words_per_phrase + 1):
                end = start + width
                if end > len(tokens):
                    break
                terms.append(" ".join(tokens[start:end]))
        return terms


class PhraseRatioScorer:
    """Score = positive-term ratio minus negative-term ratio.

    Every shingle of the content counts once toward the total; a shingle found
    in the positive set is positive, else one found in the negative set is
    negative, else neutral. Empty content scores 0.0.
    """

    def __init__(
        self,
        positive_phrases: Iterable[str],
        negative_phrases: Iterable[str],
        *,
        max_words_per_phrase: int = DEFAULT_MAX_WORDS_PER_PHRASE,
    ) -> None:
        self.analyzer = PhraseShingleAnalyzer(max_words_per_phrase)
        self.positive = self._analyze_all(positive_phrases)
        self.negative = self._analyze_all(negative_phrases)

    def _analyze_all(self, phrases: Iterable[str]) -> frozenset[str]:
        analyzed = (self.analyzer.analyzed_phrase(phrase) for phrase in phrases)
        return frozenset(phrase for phrase in analyzed if phrase)

    def score(self, content: str) -> float:
        positive = 0
        negative = 0
        total = 0
        for term in self.analyzer.terms(content):
            total += 1
            if term in self.positive:
                positive += 1
            elif term in self.negative:
                negative += 1

        if total == 0:
            return 0.0
        return (positive - negative) / total


def load_phrases(path: str | Path) -> list[str]:
    """Read one phrase per line, skipping blanks and `#` comments."""

    phrase_path = Path(path)
    try:
        lines = phrase_path.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        raise ConfigError(f"Cannot read phrase file {phrase_path}: {exc}") from exc

    return [
        line.strip()
        for line in lines
        if line.strip() and not line.strip().startswith("#")
    ]


__all__ = [
    "ConstantScorer",
    "PageScorer",
    "PhraseRatioScorer",
    "PhraseShingleAnalyzer",
    "load_phrases",
]
