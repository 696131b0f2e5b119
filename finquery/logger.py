"""Logging setup shared by the CLI and the pipeline.

Usage:
    from finquery.logger import get_logger
    logger = get_logger("finquery.resolver")
    logger.info("Resolved %d placeholders", count)
"""

import logging
import sys

_configured = False


def setup_logging(level: int | str = logging.INFO) -> None:
    """Attach a single stderr handler to the ``finquery`` logger."""
    global _configured
    root = logging.getLogger("finquery")
    root.setLevel(level)
    if _configured:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    root.addHandler(handler)
    root.propagate = False

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``finquery`` namespace."""
    if not _configured:
        setup_logging()
    return logging.getLogger(name)
