"""
observability/logger.py — reversetk Structured Logger

structlog renders every event; stdlib logging only carries the records to
their handlers. Output goes to:
  - reversetk.log (rotating, always the configured renderer)
  - stderr, unless console_output is off (stdout belongs to the CLI)

Every line carries timestamp, level, logger and event. Once a gateway
session is known its id is attached to every line too (see bind_session).

Usage:
    from reversetk.observability.logger import get_logger, setup_logging

    setup_logging(level="DEBUG", json_format=False)   # once, at startup
    log = get_logger(__name__)
    log.info("capabilities.captured", value=16381)
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Optional

import structlog

LOG_FILE_NAME = "reversetk.log"


# ─────────────────────────────────────────────────────────────────────────────
# Building blocks
# ─────────────────────────────────────────────────────────────────────────────

def _pre_chain() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _handlers(
    log_dir: str | Path | None,
    console_output: bool,
    max_bytes: int,
    backup_count: int,
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if log_dir is not None:
        directory = Path(log_dir).expanduser()
        directory.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            filename=directory / LOG_FILE_NAME,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        ))
    if console_output:
        handlers.append(logging.StreamHandler(sys.stderr))
    return handlers


def _renderer(json_format: bool) -> Any:
    if json_format:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────

def setup_logging(
    level: str = "INFO",
    log_dir: str | Path | None = "./data/logs",
    json_format: bool = True,
    console_output: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Configure structlog and stdlib logging. Safe to call again (tests, CLI
    --log-level); previous handlers are replaced.

    Args:
        level:          DEBUG | INFO | WARNING | ERROR | CRITICAL
        log_dir:        Directory for reversetk.log. None means no file.
        json_format:    JSON lines everywhere, or a coloured console format.
        console_output: Also write to stderr.
        max_bytes:      Rotation threshold for reversetk.log.
        backup_count:   Rotated files kept.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    pre_chain = _pre_chain()

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(json_format),
        ],
        foreign_pre_chain=pre_chain,
    )
    handlers = _handlers(log_dir, console_output, max_bytes, backup_count)
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)

    logging.basicConfig(level=numeric_level, handlers=handlers, force=True)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def setup_logging_from_settings(settings: Any, level: Optional[str] = None) -> None:
    """Configure logging from a Settings object; `level` overrides the config."""
    cfg = settings.logging
    setup_logging(
        level=level or cfg.level,
        log_dir=cfg.log_dir,
        json_format=cfg.json_format,
        console_output=cfg.console_output,
        max_bytes=cfg.max_file_size_mb * 1024 * 1024,
        backup_count=cfg.backup_count,
    )


def get_logger(name: str = "reversetk", **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """
    Get a bound logger with optional initial context values.

    Example:
        log = get_logger(__name__, component="interceptor")
        log.info("identify.rewritten", capabilities=16381)
        # → {"event": "identify.rewritten", "capabilities": 16381,
        #    "component": "interceptor", "logger": "reversetk.gateway.interceptor", ...}
    """
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger


def bind_session(session_id: str) -> None:
    """
    Attach the gateway session id to every later log line in this context.

    GatewayInterceptor calls this when a READY dispatch reveals the id.
    """
    structlog.contextvars.bind_contextvars(session_id=session_id)


def clear_session() -> None:
    """Drop the session id again (connection closed); other context is kept."""
    structlog.contextvars.unbind_contextvars("session_id")
