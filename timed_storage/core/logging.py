"""Structured logging for the storage engine."""

import sys
import structlog
import logging
from pathlib import Path
from typing import Optional
from timed_storage.core.config import Settings

# Driver loggers that flood INFO with per-statement chatter
_QUIET_LOGGERS = ("aiosqlite", "sqlalchemy.engine", "sqlalchemy.pool")


def configure_logging(settings: Settings) -> None:
    """Route structlog through stdlib logging using the storage settings.

    Wired as a container resource, so applications embedding the store opt
    in with ``Container.init_resources()``.
    """
    level = getattr(logging, settings.log_level.upper())

    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(level=level, handlers=handlers, format="%(message)s")
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False, pad_event=35)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_cache_operation(logger: structlog.BoundLogger, operation: str,
                        key: str, hit: Optional[bool] = None, **kwargs) -> None:
    """Debug-level record of a single cache operation."""
    if hit is not None:
        kwargs["cache_hit"] = hit
    logger.debug("Cache operation", operation=operation, cache_key=key, **kwargs)
