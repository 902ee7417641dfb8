"""structlog configuration.

Learn: Every module does `logger = structlog.get_logger()` and logs dotted
event names with keyword context (`logger.info("realtime.joined", ...)`).
This module decides how those events are rendered:
- development → coloured key=value console output
- everything else → one JSON object per line for log aggregation

contextvars are merged first so the request_id bound by
RequestContextMiddleware shows up on every line of that request.
"""

import logging
import sys
from typing import Optional

import structlog

from taskhub.config import settings

_configured = False


def configure_logging(
    level: Optional[str] = None,
    json: Optional[bool] = None,
) -> None:
    """Configure structlog and the stdlib root logger. Safe to call twice."""
    global _configured

    level_name = (level or settings.log_level).upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        log_level = logging.INFO
    use_json = settings.use_json_logs if json is None else json

    renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )

    # uvicorn / sqlalchemy go through stdlib logging
    if not _configured:
        logging.basicConfig(
            level=log_level,
            stream=sys.stdout,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    logging.getLogger().setLevel(log_level)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    _configured = True
