"""Logging helpers for the setup tooling."""

from __future__ import annotations

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# botocore is chatty at DEBUG
_QUIET_LOGGERS = ("botocore", "boto3", "urllib3")


def configure_logging(verbose: bool = False) -> None:
    """Configure stderr logging for a setup run."""
    if verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logging.basicConfig(level=level, handlers=[handler], force=True)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
