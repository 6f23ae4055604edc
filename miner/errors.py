"""Fatal error types raised by the miner.

Per-document faults are never raised; see `ExtractOutcome` in `types`.
"""

from __future__ import annotations


class MinerError(Exception):
    """Base class for fatal miner errors."""


class ConfigError(MinerError, ValueError):
    """Invalid configuration, pattern file, seed file or phrase file."""


class WorkingDirError(MinerError, ValueError):
    """The loop index of a working directory is unreadable or malformed."""


class IterationError(MinerError, RuntimeError):
    """A loop's dataflow stage failed; the run must stop."""

    def __init__(self, message: str, *, loop_index: int | None = None) -> None:
        super().__init__(message)
        self.loop_index = loop_index


__all__ = [
    "ConfigError",
    "IterationError",
    "MinerError",
    "WorkingDirError",
]
