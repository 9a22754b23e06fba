# Observability package
from .logging import (
    bind_sync_item,
    get_logger,
    setup_logging,
    unbind_sync_item,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "bind_sync_item",
    "unbind_sync_item",
]
