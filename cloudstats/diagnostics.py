"""
Logging setup and diagnostic reporting.

Computational functions detect unusual-but-recoverable conditions (an empty
cloud, points without neighbors) and hand a Diagnostic to a sink instead of
printing. The default sink forwards to the standard logging module.
"""

import logging
import sys
from dataclasses import dataclass
from typing import List, Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logger(name: str = "cloudstats", level: int = logging.INFO) -> logging.Logger:
    """
    Return a logger with a single stream handler attached.

    Calling this repeatedly for the same name does not stack handlers.
    """
    logger = logging.getLogger(name)
    if not any(getattr(h, "_cloudstats", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._cloudstats = True
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


@dataclass(frozen=True)
class Diagnostic:
    """
    A recoverable condition detected during a computation.

    Attributes:
        source: Name of the operation that produced it
        code: Short machine-readable tag ("empty_cloud", "missing_neighbors")
        message: Human-readable description
        count: Number of affected points (0 when not point-specific)
    """
    source: str
    code: str
    message: str
    count: int = 0


class DiagnosticSink:
    """Receives diagnostics. Subclasses decide what to do with them."""

    def report(self, diagnostic: Diagnostic) -> None:
        raise NotImplementedError


class LoggingSink(DiagnosticSink):
    """Forwards diagnostics to a logger at a fixed level."""

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.DEBUG):
        self.logger = logger or logging.getLogger("cloudstats.diagnostics")
        self.level = level

    def report(self, diagnostic: Diagnostic) -> None:
        self.logger.log(
            self.level, "[%s] %s (count=%d)",
            diagnostic.source, diagnostic.message, diagnostic.count
        )


class CollectingSink(DiagnosticSink):
    """Keeps every diagnostic in memory, in arrival order."""

    def __init__(self):
        self.diagnostics: List[Diagnostic] = []

    def report(self, diagnostic: Diagnostic) -> None:
        self.diagnostics.append(diagnostic)

    def codes(self) -> List[str]:
        return [d.code for d in self.diagnostics]

    def clear(self) -> None:
        self.diagnostics.clear()

    def __len__(self) -> int:
        return len(self.diagnostics)


_default_sink = LoggingSink()


def get_default_sink() -> DiagnosticSink:
    return _default_sink


def resolve_sink(sink: Optional[DiagnosticSink]) -> DiagnosticSink:
    return _default_sink if sink is None else sink
