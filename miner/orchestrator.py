"""Sequential multi-loop orchestration.

The orchestrator owns the working directory: it clears prior loop artifacts,
seeds loop 0 from a URL list, then dispatches loops 1..N one after another,
feeding each loop's produced crawl db into the next. Any loop failure stops
the run; there is no resume and no retry.
"""

from __future__ import annotations

import functools
import logging
from pathlib import Path
from typing import Callable, Protocol

from .config import FetchPolicy
from .constants import CRAWLDB_SUBDIR_NAME
from .crawl_dirs import LoopDirs
from .crawldb import CrawlDb, UrlImporter
from .errors import IterationError
from .extractor import BoundedExtractor
from .types import Iteration
from .workflow import ExtractorFactory, MiningWorkflow


LOGGER = logging.getLogger(__name__)

UrlPredicate = Callable[[str], bool]


class IterationStage(Protocol):
    """The dataflow stage dispatched once per loop."""

    def run(
        self,
        iteration: Iteration,
        *,
        fetch_policy: FetchPolicy,
        crawl_filter: UrlPredicate,
        mine_filter: UrlPredicate | None,
        extractor_factory: ExtractorFactory | None = None,
    ) -> Path: ...


class LoopOrchestrator:
    """Run `num_loops` loops sequentially over one working directory."""

    def __init__(
        self,
        working_dir: str | Path,
        *,
        stage: IterationStage | None = None,
        loop_dirs: LoopDirs | None = None,
        importer: UrlImporter | None = None,
    ) -> None:
        self.working_dir = Path(working_dir)
        self.stage = stage or MiningWorkflow()
        self.loop_dirs = loop_dirs or LoopDirs(self.working_dir)
        self.importer = importer or UrlImporter()

    def setup_working_dir(
        self,
        seed_url_file: str | Path,
        *,
        allow_duplicates: bool = False,
    ) -> Path:
        """Clear prior loops, seed loop 0 and return its crawl db path.

        The seed file is read before anything is deleted, so an unreadable
        seed file leaves the previous run in place.
        """

        raw_urls = self.importer.read_urls(seed_url_file)

        removed = self.loop_dirs.clear()
        if removed:
            LOGGER.info("Cleared %d prior loop dir(s) under %s", removed, self.working_dir)

        seed_dir = self.loop_dirs.make_loop_dir(0)
        crawldb_dir = seed_dir / CRAWLDB_SUBDIR_NAME
        count = self.importer.write_urls(
            raw_urls, crawldb_dir, allow_duplicates=allow_duplicates
        )
        LOGGER.info("Seeded loop 0 with %d URL(s) at %s", count, crawldb_dir)
        return crawldb_dir

    def run(
        self,
        seed_state: str | Path,
        num_loops: int,
        fetch_policy: FetchPolicy,
        crawl_filter: UrlPredicate,
        mine_filter: UrlPredicate | None,
        *,
        extractor_factory: ExtractorFactory | None = None,
    ) -> Path:
        """Dispatch loops 1..num_loops and return the final crawl db path.

        With `num_loops == 0` the seed state is returned unchanged.
        """

        if num_loops < 0:
            raise ValueError("num_loops must be >= 0")

        if extractor_factory is None:
            extractor_factory = functools.partial(BoundedExtractor, mine_filter)

        current = Path(seed_state)
        for index in range(1, num_loops + 1):
            output_dir = self.loop_dirs.make_loop_dir(index)
            iteration = Iteration(index=index, input_state=current, output_dir=output_dir)
            LOGGER.info("Starting loop %d/%d: input=%s", index, num_loops, current)

            try:
                produced = self.stage.run(
                    iteration,
                    fetch_policy=fetch_policy,
                    crawl_filter=crawl_filter,
                    mine_filter=mine_filter,
                    extractor_factory=extractor_factory,
                )
            except IterationError:
                raise
            except Exception as exc:
                raise IterationError(
                    f"Loop {index} failed: {exc.__class__.__name__}: {exc}",
                    loop_index=index,
                ) from exc

            produced_db = CrawlDb(produced)
            if not produced_db.exists():
                raise IterationError(
                    f"Loop {index} produced no crawl db at {produced}",
                    loop_index=index,
                )

            LOGGER.info("Finished loop %d/%d: output=%s", index, num_loops, produced)
            current = produced_db.path

        return current


__all__ = [
    "IterationStage",
    "LoopOrchestrator",
]
