"""Loguru setup: stdout + rotating file, stdlib interception, Slack alerts on errors."""

import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

import httpx
from loguru import logger

from plasma_yields.core.config import settings

LOG_FORMAT = "{time:YYYY-MM-DDTHH:mm:ss.SSSZ} {level: <8} [{extra[name]}] {message}"
LOG_FILE = Path("logs") / "app.log"
SLACK_TIMEOUT_SECONDS = 5.0

_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}
_KNOWN_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}
_INTERCEPTED = ("uvicorn", "uvicorn.error", "uvicorn.access", "alembic")
# Per-request chatter; only warnings are worth keeping
_QUIET = ("httpx", "httpcore")

_configured = False


class InterceptHandler(logging.Handler):
    """Route stdlib records (uvicorn, alembic, sqlalchemy) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_name == "emit":
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).bind(name=record.name).log(
            level, record.getMessage()
        )


def _resolve_level(raw: str | None) -> str:
    level = (raw or "INFO").strip().upper()
    level = _LEVEL_ALIASES.get(level, level)
    if level not in _KNOWN_LEVELS:
        return "INFO"
    if settings.is_production and level in {"TRACE", "DEBUG"}:
        return "INFO"
    return level


def _slack_text(record: Dict[str, Any]) -> str:
    source = record["extra"].get("name", "plasma_yields")
    lines = [f"*plasma-yields {record['level'].name}* in `{source}`", record["message"]]
    if record["exception"] is not None:
        lines.append(f"`{record['exception'].type.__name__}`")
    return "\n".join(lines)


def _slack_sink(message: Any) -> None:
    webhook = settings.SLACK_WEBHOOK_URL
    if not webhook:
        return
    try:
        httpx.post(webhook, json={"text": _slack_text(message.record)}, timeout=SLACK_TIMEOUT_SECONDS)
    except httpx.HTTPError:
        pass


def _handlers(level: str) -> List[Dict[str, Any]]:
    common = {"level": level, "format": LOG_FORMAT, "backtrace": False, "diagnose": False}
    handlers: List[Dict[str, Any]] = [
        {"sink": sys.stdout, **common},
        {"sink": LOG_FILE, "rotation": "10 MB", "retention": "14 days", "enqueue": True, **common},
    ]
    if settings.SLACK_WEBHOOK_URL:
        handlers.append({"sink": _slack_sink, "level": "ERROR", "enqueue": True})
    return handlers


def configure_logging() -> None:
    global _configured
    if _configured:
        return
    _configured = True

    LOG_FILE.parent.mkdir(exist_ok=True)
    logger.configure(handlers=_handlers(_resolve_level(settings.LOG_LEVEL)), extra={"name": "plasma_yields"})

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _INTERCEPTED:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False
    for name in _QUIET:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logger.__class__:
    return logger.bind(name=name)


configure_logging()
