"""Logging configuration for backup and restore runs.

Standard library records and ``structlog`` events share one stream so that
messages from ``pymongo`` and the Azure SDK end up next to ours.
"""

from __future__ import annotations

import json
import logging
import sys
from functools import partial

import structlog

get_logger = structlog.get_logger

# Azure's HTTP pipeline logs every request at INFO.
_NOISY_LOGGERS = ("azure.core.pipeline.policies.http_logging_policy", "azure.identity")


def configure_logging(level: str | int = "INFO", fmt: str = "json") -> None:
    """Configure stdlib logging and structlog.

    ``fmt`` selects ``json`` (one object per line) or ``console`` output.
    """

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr, force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    if fmt == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer(
            serializer=partial(json.dumps, ensure_ascii=False, default=str)
        )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
