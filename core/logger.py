"""
Centralized logging configuration for tunnel-autopilot.

Structured logging via structlog on top of stdlib logging, with a rotating log
file per process role and masking of tunnel key material.

The daemon and the one-shot `tunnelctl` can run at the same time, so each role
writes its own file: two processes rotating one file corrupts it on Windows.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, TextIO

import structlog

from core.log_masking import mask_log_data

DEFAULT_LOG_FILE = "logs/autopilot.log"
DAEMON_ROLE = "daemon"

LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

QUIET_LOGGERS = ("uvicorn", "uvicorn.access", "apscheduler", "httpx", "httpcore")


def role_log_file(log_file: str, role: str) -> Path:
    """
    Log file for a process role.

    The daemon writes `log_file` itself; other roles write a sibling file,
    e.g. logs/autopilot-tunnelctl.log.
    """
    path = Path(log_file)
    if role == DAEMON_ROLE:
        return path
    return path.with_name(f"{path.stem}-{role}{path.suffix or '.log'}")


def _file_handler(path: Path, level: int) -> Optional[logging.Handler]:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            path,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
            delay=True
        )
    except OSError as e:
        # console logging continues without the file
        logging.getLogger().warning(f"Failed to setup file logging at {path}: {e}")
        return None

    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    return handler


def _mask_processor(logger, method_name, event_dict):
    return mask_log_data(event_dict)


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    enable_file_logging: bool = True,
    role: str = DAEMON_ROLE,
    console_stream: Optional[TextIO] = None
) -> None:
    """
    Configure stdlib logging and structlog for this process.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_file: Daemon log file path (defaults to logs/autopilot.log)
        enable_file_logging: Also write a rotating log file (10MB, 5 backups)
        role: Process role, bound to every event and used to pick the log file
        console_stream: Console destination; stdout by default. tunnelctl passes
            stderr so its stdout carries only command output.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(console_stream or sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(console_handler)

    if enable_file_logging:
        path = role_log_file(log_file or DEFAULT_LOG_FILE, role)
        file_handler = _file_handler(path, level)
        if file_handler is not None:
            root_logger.addHandler(file_handler)
            root_logger.debug(f"Logging to file: {path}")

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(role=role)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            _mask_processor,
            structlog.dev.ConsoleRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger for a module (pass __name__)."""
    return structlog.get_logger(name)
