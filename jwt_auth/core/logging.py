"""
Structured logging configuration using structlog.

Console output in development, JSON everywhere else. Request and job context
(request_id, user_id, task) is carried in structlog's contextvars so it shows
up on every log line of the request or job that bound it.

Token material must never reach a logger: log record ids and lineage ids
instead. As a backstop, values under known sensitive keys are masked before
rendering.
"""

import logging
import sys
from typing import Any, cast

import structlog
from structlog.types import EventDict, Processor

from jwt_auth.config import settings

REDACTED = "[redacted]"
SENSITIVE_KEYS = frozenset(
    {"access_token", "refresh_token", "token", "secret", "jwt_secret", "password", "authorization"}
)


def redact_token_material(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask values logged under a sensitive key."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = REDACTED
    return event_dict


def configure_logging() -> None:
    """
    Configure structured logging for the application.

    LOG_FORMAT=json forces JSON output in development too.
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_token_material,
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.ENVIRONMENT == "development" and settings.LOG_FORMAT != "json":
        processors: list[Processor] = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True)
        ]
    else:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.NOTSET),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper()),
    )

    if settings.ENVIRONMENT != "development":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a logger instance with the given name.

    Example:
        logger = get_logger(__name__)
        logger.info("refresh_token_rotated", user_id=123, family_id="...")
    """
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))


def bind_context(**kwargs: Any) -> None:
    """
    Bind context to all subsequent logs in this context.

    Example:
        bind_context(task="purge_expired_tokens")
        logger.info("task_started")  # Will include task
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Drop everything bound with bind_context (end of a request)."""
    structlog.contextvars.clear_contextvars()
