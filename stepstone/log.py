"""Logging setup for the stepstone command line.

Diagnostics always go to stderr (and optionally a file) so they never
interleave with a JSON report on stdout. The client libraries used by the
backends are chatty at DEBUG; they stay at WARNING unless ``--verbose`` asks
for everything.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

ROOT_LOGGER = "stepstone"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Loggers of the S3, etcd gateway and SQL clients.
NOISY_LOGGERS: tuple[str, ...] = (
    "boto3",
    "botocore",
    "urllib3",
    "s3transfer",
    "httpx",
    "httpcore",
    "sqlalchemy",
    "asyncio",
)


def configure_logging(
    level: str = "WARNING",
    log_file: Optional[str] = None,
    *,
    verbose: bool = False,
) -> logging.Logger:
    """Route the ``stepstone`` logger hierarchy to stderr and ``log_file``.

    Returns the root ``stepstone`` logger.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    resolved = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.WARNING)
    logging.basicConfig(level=resolved, format=LOG_FORMAT, handlers=handlers, force=True)
    logging.getLogger(ROOT_LOGGER).setLevel(resolved)

    third_party = logging.NOTSET if verbose else max(resolved, logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party)
    return logging.getLogger(ROOT_LOGGER)


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``stepstone`` hierarchy, whatever module asks for it."""
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
