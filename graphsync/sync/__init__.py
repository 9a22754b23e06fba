"""
Sync queue and batched transactional execution.

Usage:
    from graphsync.sync import SyncEngine, SyncKind

    engine = SyncEngine()
    engine.add_selected_sync(SyncKind.NODE_PROPERTY, "status")
    engine.wait_until_idle()
"""

from .control import ExecutionControl
from .engine import SyncEngine
from .errors import CredentialsRequired, ErrorType, SyncSetupError, categorize_error
from .history import SyncHistory
from .queue import SyncQueueManager
from .state import QueueState, RunState, StateSlice, StateStore
from .types import (
    ExecutorResult,
    NameSet,
    Progress,
    RowError,
    SyncItem,
    SyncKind,
    SyncPhase,
    SyncScope,
    SyncStatus,
)

__all__ = [
    "CredentialsRequired",
    "ErrorType",
    "ExecutionControl",
    "ExecutorResult",
    "NameSet",
    "Progress",
    "QueueState",
    "RowError",
    "RunState",
    "StateSlice",
    "StateStore",
    "SyncEngine",
    "SyncHistory",
    "SyncItem",
    "SyncKind",
    "SyncPhase",
    "SyncQueueManager",
    "SyncScope",
    "SyncSetupError",
    "SyncStatus",
    "categorize_error",
]
