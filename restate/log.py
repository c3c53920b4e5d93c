"""Logging setup for applications embedding restate.

The library itself only ever calls ``logging.getLogger(__name__)``; this
helper is for entry points and test sessions that want readable output.
"""

from __future__ import annotations

import logging

from restate.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def configure_logging(level: str | int | None = None) -> None:
    logging.basicConfig(
        level=level if level is not None else settings.log_level,
        format=LOG_FORMAT,
    )
