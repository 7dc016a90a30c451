"""Structured logging for the download service."""

import sys
import structlog
import logging
from pathlib import Path
from typing import Optional
from core.config import Settings

SERVICE_NAME = "photo-downloads"

# Third-party loggers that chatter at INFO on every request or S3 call
QUIET_LOGGERS = (
    "uvicorn",
    "uvicorn.access",
    "uvicorn.error",
    "watchfiles",
    "botocore",
    "boto3",
    "s3transfer",
    "urllib3",
    "httpx",
    "apprise",
    "aiosqlite",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
)

# Cache keys are 64 hex chars; the prefix is enough to correlate log lines
CACHE_KEY_LOG_LENGTH = 12


def shorten_secrets(logger, method_name, event_dict):
    """Keep download tokens and full cache keys out of log output.

    A token is a bearer credential for the photos it names.
    """
    token = event_dict.get("token")
    if isinstance(token, str) and token:
        event_dict["token"] = f"{token[:8]}..."
    cache_key = event_dict.get("cache_key")
    if isinstance(cache_key, str):
        event_dict["cache_key"] = cache_key[:CACHE_KEY_LOG_LENGTH]
    return event_dict


def _handlers(settings: Settings, level: int):
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    if not settings.log_file:
        return [console]

    log_path = Path(settings.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_path)
    file_handler.setLevel(level)
    return [console, file_handler]


def configure_logging(settings: Settings) -> None:
    """Route stdlib and structlog output through one set of handlers."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        handlers=_handlers(settings, level),
        format="%(message)s",
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        shorten_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if settings.log_format == "json":
        processors = [
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
        ] + processors
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.insert(0, structlog.processors.TimeStamper(fmt="%H:%M:%S"))
        processors.append(structlog.dev.ConsoleRenderer(
            colors=False,
            pad_event=30,
            exception_formatter=structlog.dev.plain_traceback
        ))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=SERVICE_NAME)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_build_timing(logger: structlog.BoundLogger, started_at: float,
                     finished_at: float, **kwargs) -> None:
    """Log a finished archive build with its wall-clock duration."""
    logger.info(
        "Archive build finished",
        duration_ms=int(round((finished_at - started_at) * 1000)),
        **kwargs
    )


def log_cache_event(logger: structlog.BoundLogger, action: str, cache_key: str,
                    hit: Optional[bool] = None, **kwargs) -> None:
    """Debug-level trace of archive cache lookups and installs."""
    if hit is not None:
        kwargs["cache_hit"] = hit
    logger.debug("Archive cache " + action, cache_key=cache_key, **kwargs)
