# Structured logging with per-item context

import logging
import os
import sys

import structlog


def bind_sync_item(item_id: str, kind: str) -> None:
    """Bind item id and kind so every log line of the run carries them"""
    structlog.contextvars.bind_contextvars(sync_item_id=item_id, sync_kind=kind)


def unbind_sync_item() -> None:
    structlog.contextvars.unbind_contextvars("sync_item_id", "sync_kind")


def setup_logging(log_level: str = "INFO") -> None:
    """
    Setup structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Note:
        When GRAPHSYNC_LOG_STDERR=1, log lines go to stderr so that stdout
        stays clean for machine-readable CLI output.
    """
    stream = sys.stderr if os.environ.get("GRAPHSYNC_LOG_STDERR") else sys.stdout
    logging.basicConfig(
        format="%(message)s",
        stream=stream,
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Structured logger instance
    """
    return structlog.get_logger(name)
