"""
PickOps - Logging configuration

Standard library loggers everywhere, rendered through structlog:
- json (one object per line) or text output
- optional log file
- a dedicated "pickops.audit" logger that mirrors every audit entry,
  optionally into its own file

Fields passed with `extra=` end up as keys of the rendered event.
"""
import logging
import sys
from pathlib import Path
from typing import Optional

import structlog

from pickops.core.settings import Settings, get_settings

AUDIT_LOGGER_NAME = "pickops.audit"

# Applied to every stdlib record before rendering
_PRE_CHAIN = [
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.ExtraAdder(),
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
]


def _build_formatter(fmt: str) -> logging.Formatter:
    if fmt.lower() == "json":
        pre_chain = _PRE_CHAIN + [structlog.processors.format_exc_info]
        renderer = structlog.processors.JSONRenderer(default=str)
    else:
        # The console renderer formats exc_info itself
        pre_chain = _PRE_CHAIN
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def _file_handler(path: str, formatter: logging.Formatter) -> logging.Handler:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(formatter)
    return handler


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure root and audit loggers from settings. Safe to call twice."""
    settings = settings or get_settings()
    formatter = _build_formatter(settings.LOG_FORMAT)

    root = logging.getLogger()
    root.setLevel(settings.LOG_LEVEL.upper())
    for handler in list(root.handlers):
        if getattr(handler, "_pickops", False):
            root.removeHandler(handler)

    stream = logging.StreamHandler(sys.stdout)
    stream.setFormatter(formatter)
    stream._pickops = True
    root.addHandler(stream)

    if settings.LOG_FILE:
        file_handler = _file_handler(settings.LOG_FILE, formatter)
        file_handler._pickops = True
        root.addHandler(file_handler)

    audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
    for handler in list(audit_logger.handlers):
        audit_logger.removeHandler(handler)
    if settings.AUDIT_LOG_FILE:
        audit_logger.addHandler(_file_handler(settings.AUDIT_LOG_FILE, _build_formatter("json")))

    # Keep third-party noise down
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER_NAME)
