"""structlog setup for the scanner: JSON lines to stdout and a rotating file."""

import logging
import os
import socket
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

import structlog


def scanner_context(app_name: str, scanner_id: Optional[str] = None):
    """Processor stamping every event with the service and the node it runs on.

    Several nodes ship to the same log sink, so each line carries
    ``service`` and ``scanner``. Keys already on the event win.
    """
    static = {
        "service": app_name.lower(),
        "scanner": scanner_id or socket.gethostname(),
    }

    def _add(logger, method_name, event_dict):
        for key, value in static.items():
            event_dict.setdefault(key, value)
        return event_dict

    return _add


def setup_logging(
    app_name: str = "RADAR",
    scanner_id: Optional[str] = None,
    debug: bool = False,
    log_dir: str = "logs",
    log_max_bytes: int = 10_000_000,
    log_backup_count: int = 5,
) -> Optional[str]:
    """Configure structlog and the stdlib root handlers.

    Returns the log file path, or None when ``log_dir`` is not writable and
    only stdout is used.
    """
    log_level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            scanner_context(app_name, scanner_id),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    formatter = logging.Formatter("%(message)s")
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    # docker-py and httpx log every request at DEBUG/INFO
    for noisy in ("docker", "urllib3", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    log_path = os.path.join(log_dir, f"{app_name.lower()}.log")
    try:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path, maxBytes=log_max_bytes, backupCount=log_backup_count, encoding="utf-8"
        )
    except OSError:
        return None
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)
    return log_path


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)
