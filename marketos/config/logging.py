"""
Logging Configuration for MarketOS

structlog events go through the stdlib root handler so uvicorn, Prefect and
SQLAlchemy records share one format. Sync passes, alert rules and scheduled
jobs bind their identifiers with `log_context`, so every event emitted while
they run carries `integration_id`, `marketplace`, `rule` or `job`.
"""

from contextlib import contextmanager
import logging
import sys
from typing import Any, Iterator, MutableMapping, Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import ProcessorFormatter, add_log_level

from marketos.config.settings import get_settings

SECRET_KEYS = frozenset({"api_key", "client_id", "bot_token", "token", "password", "credentials"})
QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore", "asyncio")


def redact_secrets(logger: Any, method_name: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Mask credential fields, including inside a logged credentials dict."""
    for key, value in event_dict.items():
        if key in SECRET_KEYS and value:
            event_dict[key] = "***" if not isinstance(value, dict) else {k: "***" for k in value}
    return event_dict


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """
    Bind fields to every event logged inside the block.

    Example:
        with log_context(integration_id=str(integration.id), marketplace="WB"):
            logger.info("Sync started")
    """
    fields = {k: v for k, v in fields.items() if v is not None}
    tokens = structlog.contextvars.bind_contextvars(**fields)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)


def configure_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    Configure structured logging for the API, workers and scripts.

    Args:
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
        log_format: Override renderer ("json" or "text")
    """
    settings = get_settings()
    level = (log_level or settings.monitoring.log_level).upper()
    fmt = log_format or settings.monitoring.log_format
    numeric_level = getattr(logging, level, logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso", utc=True),
        redact_secrets,
        structlog.processors.format_exc_info,
    ]
    structlog.configure(
        processors=shared_processors + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Cyrillic product titles and alert texts stay readable in JSON
    renderer = JSONRenderer(ensure_ascii=False) if fmt == "json" else structlog.dev.ConsoleRenderer()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ProcessorFormatter(processor=renderer, foreign_pre_chain=shared_processors))

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(numeric_level)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger(__name__).info("Logging configured", level=level, format=fmt, environment=settings.app_env)
