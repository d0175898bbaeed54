import logging
import sys
from pathlib import Path
from typing import Any

import structlog

from cmmcalc.config import get_config

LOG_FILE = Path("logs/cmmcalc.log")

# Chatty third-party loggers kept at WARNING unless DEBUG is requested
_NOISY_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncio", "httpx")


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure structured logging for the API and CLI.

    structlog loggers (web layer) and stdlib ``logging.getLogger(__name__)``
    loggers (services) end up in the same handlers and the same renderer, so
    a run's service logs carry the request_id bound by the web middleware.

    Args:
        level: Log level name; defaults to ``LOG_LEVEL`` from config
        fmt: ``json`` or ``text``; defaults to ``LOG_FORMAT`` from config
    """
    if level is None or fmt is None:
        config = get_config()
        level = level or config.log_level
        fmt = fmt or config.log_format
    level = level.upper()
    fmt = fmt.lower()

    shared = _shared_processors()

    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if fmt == "json":
        renderer: Any = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if LOG_FILE.parent.exists():
        handlers.append(logging.FileHandler(LOG_FILE, encoding="utf-8"))

    root = logging.getLogger()
    for handler in list(root.handlers):
        if (handler.get_name() or "").startswith("cmmcalc."):
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        handler.set_name(f"cmmcalc.{type(handler).__name__}")
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if level == "DEBUG" else logging.WARNING)
