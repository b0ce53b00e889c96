"""Structured logging

structlog renders both our own events and stdlib records (uvicorn,
SQLAlchemy) through one handler: colored console output in development and
JSON lines when LOG_JSON is set. Request middleware binds a correlation ID
into contextvars so every line of a request carries it.
"""
import logging
import sys
from functools import lru_cache
from uuid import uuid4

import structlog
from structlog.types import EventDict, Processor

SERVICE_NAME = "cohort-backend"
SERVICE_VERSION = "0.1.0"

_SENSITIVE_KEYS = frozenset({"password", "token", "access_token", "secret", "authorization", "cookie"})
_REDACTED = "[REDACTED]"

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "aiosqlite", "sqlalchemy.pool")


def _redact(value, depth: int = 0):
    if depth > 5:
        return value
    if isinstance(value, dict):
        return {
            k: _REDACTED if str(k).lower() in _SENSITIVE_KEYS else _redact(v, depth + 1)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_redact(item, depth + 1) for item in value]
    return value


def _censor_sensitive_keys(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    return _redact(event_dict)


def _add_service_info(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", SERVICE_VERSION)
    return event_dict


def _stringify_ids(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """UUID values of ``*_id`` keys render as plain strings."""
    for key, value in event_dict.items():
        if key.endswith("_id") and value is not None and not isinstance(value, (str, int)):
            event_dict[key] = str(value)
    return event_dict


SHARED_PROCESSORS: tuple[Processor, ...] = (
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
    _add_service_info,
    _stringify_ids,
    _censor_sensitive_keys,
)


def configure_logging(level: str = "INFO", json_logs: bool = False, log_sql: bool = False) -> None:
    """Route structlog and stdlib logging through a single stdout handler.

    Args:
        level: Root log level name.
        json_logs: Render JSON lines instead of colored console output.
        log_sql: Emit SQLAlchemy statements at DEBUG.
    """
    if json_logs:
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True, exception_formatter=structlog.dev.plain_traceback)

    structlog.configure(
        processors=[
            *SHARED_PROCESSORS,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=list(SHARED_PROCESSORS),
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    ))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # uvicorn installs its own handlers; let records propagate to ours instead
    for name in ("uvicorn", "uvicorn.error"):
        logging.getLogger(name).handlers = []
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.DEBUG if log_sql else logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def generate_correlation_id() -> str:
    return uuid4().hex[:8]


def bind_context(**kwargs) -> None:
    """Attach key-value pairs to every log line emitted in the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


def current_correlation_id() -> str | None:
    """The correlation ID bound by the request middleware, if any."""
    return structlog.contextvars.get_contextvars().get("correlation_id")


@lru_cache(maxsize=None)
def _domain_logger(domain: str) -> structlog.stdlib.BoundLogger:
    return get_logger(f"cohort.{domain}")


def api_logger() -> structlog.stdlib.BoundLogger:
    return _domain_logger("api")


def engine_logger() -> structlog.stdlib.BoundLogger:
    """Ordering and progress engines."""
    return _domain_logger("engine")


def db_logger() -> structlog.stdlib.BoundLogger:
    return _domain_logger("db")


def auth_logger() -> structlog.stdlib.BoundLogger:
    return _domain_logger("auth")


def points_logger() -> structlog.stdlib.BoundLogger:
    """Point awards and leaderboard reads."""
    return _domain_logger("points")
