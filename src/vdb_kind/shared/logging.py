"""Logging setup for vdb-kind.

Events are structlog key-value records routed through the stdlib root
logger. Interactive runs render them as plain console lines on stderr,
below the progress output; ``--log-file`` switches to one JSON object per
line so a provisioning run can be inspected afterwards.
"""

import logging
import sys
from pathlib import Path

import structlog

# Index is the -v count; higher counts stay at the last level
VERBOSITY = (logging.WARNING, logging.INFO, logging.DEBUG)

_PROCESSORS: tuple[structlog.types.Processor, ...] = (
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
)


def verbosity_level(verbose: int) -> int:
    """Stdlib level for a -v count: warnings, then stage progress, then debug."""
    return VERBOSITY[max(0, min(verbose, len(VERBOSITY) - 1))]


def configure_logging(verbose: int = 0, log_file: str | Path | None = None) -> None:
    """Configure stdlib logging and structlog for one CLI run.

    Args:
        verbose: Number of -v flags given
        log_file: Append JSON lines here instead of console lines on stderr
    """
    level = verbosity_level(verbose)
    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(str(log_file))
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        handler = logging.StreamHandler(sys.stderr)
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    logging.basicConfig(level=level, handlers=[handler], format="%(message)s", force=True)
    structlog.configure(
        processors=[*_PROCESSORS, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Module logger; use ``get_logger(__name__)``."""
    return structlog.get_logger(name)
