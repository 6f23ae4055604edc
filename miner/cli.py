"""CLI entrypoint for multi-loop crawl and mine runs."""

from __future__ import annotations

import argparse
import functools
import logging
from pathlib import Path
import sys

from .config import MinerConfig, load_config
from .constants import LOG_FILE_NAME, LOGS_SUBDIR_NAME
from .errors import ConfigError, IterationError, WorkingDirError
from .extractor import BoundedExtractor
from .orchestrator import IterationStage, LoopOrchestrator
from .scoring import PageScorer, PhraseRatioScorer, load_phrases
from .url_filter import RegexUrlFilter
from .workflow import ExtractorFactory, MiningWorkflow


LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ITERATION_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run a multi-loop focused crawl and mine links from fetched pages.",
    )

    parser.add_argument(
        "--working_dir",
        type=Path,
        required=True,
        help="Directory holding loop dirs, the loop index and logs. Prior loops are cleared.",
    )
    parser.add_argument(
        "--seed_urls",
        type=Path,
        required=True,
        help="Newline-delimited seed URL file.",
    )
    parser.add_argument(
        "--crawl_filter",
        type=Path,
        required=True,
        help="Regex pattern file deciding which URLs are fetched.",
    )
    parser.add_argument(
        "--mine_filter",
        type=Path,
        required=True,
        help="Regex pattern file deciding which fetched documents are mined.",
    )
    parser.add_argument("--num_loops", type=int, default=1)
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to JSON/YAML miner config (fetch policy, concurrency, scoring).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging.",
    )

    return parser.parse_args(argv)


def setup_logging(working_dir: Path, verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO

    log_dir = working_dir / LOGS_SUBDIR_NAME
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / LOG_FILE_NAME

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(log_level)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_scorer(config: MinerConfig) -> PageScorer | None:
    """Phrase-ratio scorer when both phrase files are configured, else None."""

    if not config.uses_phrase_scoring:
        return None
    return PhraseRatioScorer(
        load_phrases(config.positive_phrases_file),
        load_phrases(config.negative_phrases_file),
        max_words_per_phrase=config.max_words_per_phrase,
    )


def build_extractor_factory(
    config: MinerConfig,
    mine_filter: RegexUrlFilter | None,
) -> ExtractorFactory:
    """Return a factory giving each worker its own extractor."""

    return functools.partial(
        BoundedExtractor,
        mine_filter,
        scorer=build_scorer(config),
        deadline_seconds=config.parse_deadline_seconds,
    )


def run_crawl(
    working_dir: str | Path,
    seed_url_file: str | Path,
    crawl_filter_file: str | Path,
    mine_filter_file: str | Path,
    num_loops: int,
    fetch_policy_config: str | Path | None = None,
    *,
    stage: IterationStage | None = None,
) -> int:
    """Run a whole crawl and return the process exit status."""

    if num_loops < 0:
        LOGGER.error("num_loops must be >= 0, got %d", num_loops)
        return EXIT_CONFIG_ERROR

    try:
        config = load_config(fetch_policy_config) if fetch_policy_config else MinerConfig()
        crawl_filter = RegexUrlFilter.from_file(crawl_filter_file, name="crawl_filter")
        mine_filter = RegexUrlFilter.from_file(mine_filter_file, name="mine_filter")
        extractor_factory = build_extractor_factory(config, mine_filter)
    except ConfigError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return EXIT_CONFIG_ERROR

    orchestrator = LoopOrchestrator(
        working_dir,
        stage=stage or MiningWorkflow(concurrency=config.concurrency),
    )

    LOGGER.info(
        "Starting crawl: working_dir=%s, loops=%d, mode=%s, concurrency=%d",
        working_dir,
        num_loops,
        config.fetch_policy.fetcher_mode.value,
        config.concurrency,
    )

    try:
        seed_state = orchestrator.setup_working_dir(seed_url_file)
        final_state = orchestrator.run(
            seed_state,
            num_loops,
            config.fetch_policy,
            crawl_filter,
            mine_filter,
            extractor_factory=extractor_factory,
        )
    except KeyboardInterrupt:
        LOGGER.error("Interrupted by user")
        return EXIT_INTERRUPTED
    except ConfigError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return EXIT_CONFIG_ERROR
    except IterationError as exc:
        LOGGER.error("Crawl aborted: %s", exc)
        return EXIT_ITERATION_ERROR
    except WorkingDirError as exc:
        LOGGER.error("Working directory state is invalid: %s", exc)
        return EXIT_ITERATION_ERROR
    except OSError:
        LOGGER.exception("Working directory I/O failed")
        return EXIT_ITERATION_ERROR

    LOGGER.info("Crawl complete: final crawl db at %s", final_state)
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        setup_logging(args.working_dir, verbose=args.verbose)
    except OSError as exc:
        LOGGER.error("Cannot set up logging under %s: %s", args.working_dir, exc)
        return EXIT_ITERATION_ERROR

    return run_crawl(
        args.working_dir,
        args.seed_urls,
        args.crawl_filter,
        args.mine_filter,
        args.num_loops,
        args.config,
    )


if __name__ == "__main__":
    raise SystemExit(main())
