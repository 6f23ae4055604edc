"""Default values and on-disk names shared by the miner modules."""

from __future__ import annotations


DEFAULT_CRAWL_DELAY_SECONDS = 1.0
DEFAULT_MAX_CONTENT_SIZE = 128 * 1024
DEFAULT_FETCHER_MODE = "efficient"
DEFAULT_VALID_MIME_TYPES: tuple[str, ...] = (
    "text/html",
    "application/xhtml+xml",
    "application/vnd.wap.xhtml+xml",
    "application/x-asp",
)
DEFAULT_TIMEOUT_SECONDS = 20.0
DEFAULT_RETRIES = 1
DEFAULT_RETRY_BACKOFF_SECONDS = 1.0
DEFAULT_USER_AGENT = "focused-miner/0.1 (+https://example.invalid/miner)"
DEFAULT_MAX_URLS_PER_LOOP: int | None = None

DEFAULT_CONCURRENCY = 4
DEFAULT_PARSE_DEADLINE_SECONDS = 30.0
DEFAULT_MAX_WORDS_PER_PHRASE = 2
DEFAULT_PAGE_SCORE = 1.0

CRAWLDB_SUBDIR_NAME = "crawldb"
CRAWLDB_PART_NAME = "part-00000.jsonl"
MINED_SUBDIR_NAME = "mined"
MINED_RESULTS_NAME = "results.jsonl"
ERRORS_NAME = "errors.jsonl"
STATS_NAME = "stats.json"
LOOP_INDEX_NAME = "loops.json"
LOGS_SUBDIR_NAME = "logs"
LOG_FILE_NAME = "miner.log"

JSON_INDENT = 2
SUPPORTED_CONFIG_SUFFIXES = (".json", ".yaml", ".yml")
