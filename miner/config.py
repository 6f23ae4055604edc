"""Typed miner configuration with JSON/YAML load/save helpers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import yaml  # type: ignore

from .constants import (
    DEFAULT_CONCURRENCY,
    DEFAULT_CRAWL_DELAY_SECONDS,
    DEFAULT_FETCHER_MODE,
    DEFAULT_MAX_CONTENT_SIZE,
    DEFAULT_MAX_URLS_PER_LOOP,
    DEFAULT_MAX_WORDS_PER_PHRASE,
    DEFAULT_PARSE_DEADLINE_SECONDS,
    DEFAULT_RETRIES,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    DEFAULT_VALID_MIME_TYPES,
    JSON_INDENT,
    SUPPORTED_CONFIG_SUFFIXES,
)
from .errors import ConfigError
from .types import JSONDict, JSONValue


class FetcherMode(str, Enum):
    """How the fetcher treats the per-host politeness delay."""

    COMPLETE = "complete"
    EFFICIENT = "efficient"
    IMPOLITE = "impolite"


def _as_int(value: Any, key: str) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid int for '{key}': {value!r}") from exc


def _to_mode(value: Any) -> FetcherMode:
    if isinstance(value, FetcherMode):
        return value
    if isinstance(value, str):
        return FetcherMode(value.strip().lower())
    raise ValueError(f"Invalid fetcher mode: {value!r}")


def _optional_path(value: Any) -> Path | None:
    if value is None or value == "":
        return None
    return Path(str(value))


@dataclass(slots=True)
class FetchPolicy:
    """Politeness and content limits applied by the fetch stage."""

    crawl_delay_seconds: float = DEFAULT_CRAWL_DELAY_SECONDS
    max_content_size: int = DEFAULT_MAX_CONTENT_SIZE
    fetcher_mode: FetcherMode = FetcherMode(DEFAULT_FETCHER_MODE)
    valid_mime_types: set[str] = field(default_factory=lambda: set(DEFAULT_VALID_MIME_TYPES))
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    retries: int = DEFAULT_RETRIES
    retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS
    user_agent: str = DEFAULT_USER_AGENT
    max_urls_per_loop: int | None = DEFAULT_MAX_URLS_PER_LOOP

    def __post_init__(self) -> None:
        self.fetcher_mode = _to_mode(self.fetcher_mode)
        self.valid_mime_types = {
            mime.strip().lower() for mime in self.valid_mime_types if mime and mime.strip()
        }

        if self.crawl_delay_seconds < 0:
            raise ValueError("crawl_delay_seconds must be >= 0")
        if self.max_content_size <= 0:
            raise ValueError("max_content_size must be > 0")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.retries < 0:
            raise ValueError("retries must be >= 0")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds must be >= 0")
        if self.max_urls_per_loop is not None and self.max_urls_per_loop <= 0:
            raise ValueError("max_urls_per_loop must be > 0 when set")

    def accepts_mime_type(self, mime_type: str) -> bool:
        """Return True when the bare MIME type may be handed to extraction.

        An empty `valid_mime_types` set accepts everything.
        """

        if not self.valid_mime_types:
            return True
        return mime_type.strip().lower() in self.valid_mime_types

    def to_dict(self) -> JSONDict:
        return {
            "crawl_delay_seconds": self.crawl_delay_seconds,
            "max_content_size": self.max_content_size,
            "fetcher_mode": self.fetcher_mode.value,
            "valid_mime_types": sorted(self.valid_mime_types),
            "timeout_seconds": self.timeout_seconds,
            "retries": self.retries,
            "retry_backoff_seconds": self.retry_backoff_seconds,
            "user_agent": self.user_agent,
            "max_urls_per_loop": self.max_urls_per_loop,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "FetchPolicy":
        mime_types = payload.get("valid_mime_types")
        return cls(
            crawl_delay_seconds=float(
                payload.get("crawl_delay_seconds", DEFAULT_CRAWL_DELAY_SECONDS)
            ),
            max_content_size=int(payload.get("max_content_size", DEFAULT_MAX_CONTENT_SIZE)),
            fetcher_mode=_to_mode(payload.get("fetcher_mode", DEFAULT_FETCHER_MODE)),
            valid_mime_types=(
                set(DEFAULT_VALID_MIME_TYPES)
                if mime_types is None
                else {str(item) for item in mime_types}
            ),
            timeout_seconds=float(payload.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
            retries=int(payload.get("retries", DEFAULT_RETRIES)),
            retry_backoff_seconds=float(
                payload.get("retry_backoff_seconds", DEFAULT_RETRY_BACKOFF_SECONDS)
            ),
            user_agent=str(payload.get("user_agent", DEFAULT_USER_AGENT)),
            max_urls_per_loop=_as_int(
                payload.get("max_urls_per_loop", DEFAULT_MAX_URLS_PER_LOOP),
                "max_urls_per_loop",
            ),
        )


@dataclass(slots=True)
class MinerConfig:
    """Top-level configuration used by the CLI, workflow and extractor."""

    fetch_policy: FetchPolicy = field(default_factory=FetchPolicy)
    concurrency: int = DEFAULT_CONCURRENCY
    parse_deadline_seconds: float = DEFAULT_PARSE_DEADLINE_SECONDS

    positive_phrases_file: Path | None = None
    negative_phrases_file: Path | None = None
    max_words_per_phrase: int = DEFAULT_MAX_WORDS_PER_PHRASE

    metadata: dict[str, JSONValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.concurrency <= 0:
            raise ValueError("concurrency must be > 0")
        if self.parse_deadline_seconds <= 0:
            raise ValueError("parse_deadline_seconds must be > 0")
        if self.max_words_per_phrase <= 0:
            raise ValueError("max_words_per_phrase must be > 0")
        if (self.positive_phrases_file is None) != (self.negative_phrases_file is None):
            raise ValueError(
                "positive_phrases_file and negative_phrases_file must be set together"
            )

    @property
    def uses_phrase_scoring(self) -> bool:
        return self.positive_phrases_file is not None and self.negative_phrases_file is not None

    def to_dict(self) -> JSONDict:
        """Serialize config for manifests and reproducibility."""

        return {
            "fetch_policy": self.fetch_policy.to_dict(),
            "concurrency": self.concurrency,
            "parse_deadline_seconds": self.parse_deadline_seconds,
            "positive_phrases_file": (
                None if self.positive_phrases_file is None else str(self.positive_phrases_file)
            ),
            "negative_phrases_file": (
                None if self.negative_phrases_file is None else str(self.negative_phrases_file)
            ),
            "max_words_per_phrase": self.max_words_per_phrase,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "MinerConfig":
        """Build config from a parsed dictionary."""

        policy_payload = payload.get("fetch_policy") or {}
        if not isinstance(policy_payload, Mapping):
            raise ValueError("'fetch_policy' must be a mapping")

        return cls(
            fetch_policy=FetchPolicy.from_dict(policy_payload),
            concurrency=int(payload.get("concurrency", DEFAULT_CONCURRENCY)),
            parse_deadline_seconds=float(
                payload.get("parse_deadline_seconds", DEFAULT_PARSE_DEADLINE_SECONDS)
            ),
            positive_phrases_file=_optional_path(payload.get("positive_phrases_file")),
            negative_phrases_file=_optional_path(payload.get("negative_phrases_file")),
            max_words_per_phrase=int(
                payload.get("max_words_per_phrase", DEFAULT_MAX_WORDS_PER_PHRASE)
            ),
            metadata=dict(payload.get("metadata", {})),
        )


def _load_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"YAML config at {path} must be a mapping at top level")
    return data


def load_config(path: str | Path) -> MinerConfig:
    """Load MinerConfig from JSON/YAML path.

    Any problem reading or validating the file is raised as `ConfigError`.
    """

    config_path = Path(path)
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ConfigError(
            f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
        )

    try:
        if suffix == ".json":
            payload = json.loads(config_path.read_text(encoding="utf-8"))
        else:
            payload = _load_yaml(config_path)

        if not isinstance(payload, dict):
            raise ValueError(f"Config at {config_path} must be a mapping")

        return MinerConfig.from_dict(payload)
    except ConfigError:
        raise
    except (OSError, ValueError, TypeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Invalid config {config_path}: {exc}") from exc


def save_config(config: MinerConfig, path: str | Path) -> None:
    """Save MinerConfig as JSON or YAML based on file extension."""

    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    suffix = out_path.suffix.lower()
    payload = config.to_dict()

    if suffix == ".json":
        out_path.write_text(
            json.dumps(payload, indent=JSON_INDENT, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        return

    if suffix in {".yaml", ".yml"}:
        out_path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
        return

    raise ConfigError(
        f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
    )


__all__ = [
    "FetchPolicy",
    "FetcherMode",
    "MinerConfig",
    "load_config",
    "save_config",
]
