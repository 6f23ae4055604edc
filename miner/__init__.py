"""Miner package: multi-loop crawl orchestration, URL admission and bounded extraction."""

from .config import FetcherMode, FetchPolicy, MinerConfig, load_config, save_config
from .crawl_dirs import LoopDirs, find_latest_loop_dir, make_loop_dir
from .crawldb import CrawlDb, UrlImporter, import_urls
from .errors import ConfigError, IterationError, MinerError, WorkingDirError
from .extractor import BoundedExtractor
from .fetcher import Fetcher
from .orchestrator import IterationStage, LoopOrchestrator
from .scoring import ConstantScorer, PageScorer, PhraseRatioScorer, load_phrases
from .stats import StatsCollector
from .storage import LoopStorage
from .types import (
    ContentKind,
    CrawlDbEntry,
    CrawlStage,
    ErrorRecord,
    ExtractFault,
    ExtractOutcome,
    ExtractionResult,
    FaultKind,
    FetchResult,
    FetchedDocument,
    Iteration,
    OutcomeStatus,
    Outlink,
    PageResult,
    UrlStatus,
    utc_now_iso,
)
from .url import normalize_url, resolve_url
from .url_filter import RegexUrlFilter, load_filter_patterns
from .workflow import MiningWorkflow

__all__ = [
    "BoundedExtractor",
    "ConfigError",
    "ConstantScorer",
    "ContentKind",
    "CrawlDb",
    "CrawlDbEntry",
    "CrawlStage",
    "ErrorRecord",
    "ExtractFault",
    "ExtractOutcome",
    "ExtractionResult",
    "FaultKind",
    "FetchPolicy",
    "FetchResult",
    "FetchedDocument",
    "Fetcher",
    "FetcherMode",
    "Iteration",
    "IterationError",
    "IterationStage",
    "LoopDirs",
    "LoopOrchestrator",
    "LoopStorage",
    "MinerConfig",
    "MinerError",
    "MiningWorkflow",
    "OutcomeStatus",
    "Outlink",
    "PageResult",
    "PageScorer",
    "PhraseRatioScorer",
    "RegexUrlFilter",
    "StatsCollector",
    "UrlImporter",
    "UrlStatus",
    "WorkingDirError",
    "find_latest_loop_dir",
    "import_urls",
    "load_config",
    "load_filter_patterns",
    "load_phrases",
    "make_loop_dir",
    "normalize_url",
    "resolve_url",
    "save_config",
    "utc_now_iso",
]
