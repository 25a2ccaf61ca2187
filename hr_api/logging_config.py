"""
structlog setup.

Every event carries the service name and environment. Request-scoped fields
(request_id, method, path, employee_id) are merged in from contextvars bound
by CorrelationIdMiddleware and get_current_user.
"""

import logging
import sys

import structlog

from hr_api.config import settings


def add_service_context(logger, method_name, event_dict):
    event_dict.setdefault("service", settings.APP_NAME)
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    return event_dict


def _renderer():
    log_format = settings.LOG_FORMAT or (
        "console" if settings.ENVIRONMENT == "development" else "json"
    )
    if log_format == "console":
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_logging() -> None:
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    # uvicorn and SQLAlchemy log through the stdlib at the same level.
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_service_context,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
