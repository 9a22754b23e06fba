"""
Sync item data model.

A SyncItem is one queued or executing unit of work for a single kind. Target
names are held in a NameSet while the item lives in the queue and are only
turned into plain lists at the history boundary (``to_history_dict``).
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional


class SyncKind(str, Enum):
    NODE_PROPERTY = "node-property-sync"
    RELATIONSHIP = "relationship-sync"
    LABEL = "label-sync"

    @classmethod
    def parse(cls, value: str) -> "SyncKind":
        """Accept the full tag or its short form ("node-property", "label" ...)."""
        value = value.strip().lower()
        for kind in cls:
            if value in (kind.value, kind.value[: -len("-sync")]):
                return kind
        raise ValueError(f"Unknown sync kind: {value}")


class SyncStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncStatus.COMPLETED, SyncStatus.ERROR, SyncStatus.CANCELLED)


class SyncScope(str, Enum):
    SELECTED = "selected"
    FULL = "full"


class SyncPhase(str, Enum):
    SCANNING = "scanning"
    CONNECTING = "connecting"
    CREATING_NODES = "creating_nodes"
    UPDATING_PROPERTIES = "updating_properties"
    CREATING_RELATIONSHIPS = "creating_relationships"
    APPLYING_LABELS = "applying_labels"


class NameSet:
    """Ordered set of target names with unique membership."""

    __slots__ = ("_names",)

    def __init__(self, names: Optional[Iterable[str]] = None):
        self._names: Dict[str, None] = {}
        if names:
            self.update(names)

    def add(self, name: str) -> bool:
        """Add ``name``; returns False when it was already present."""
        if name in self._names:
            return False
        self._names[name] = None
        return True

    def update(self, names: Iterable[str]) -> List[str]:
        """Union ``names`` in and return the ones that were new."""
        return [name for name in names if self.add(name)]

    def issuperset(self, names: Iterable[str]) -> bool:
        return all(name in self._names for name in names)

    def to_list(self) -> List[str]:
        return list(self._names)

    @classmethod
    def from_list(cls, names: Optional[Iterable[str]]) -> "NameSet":
        return cls(names or [])

    def copy(self) -> "NameSet":
        return NameSet(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._names))

    def __len__(self) -> int:
        return len(self._names)

    def __bool__(self) -> bool:
        return bool(self._names)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, NameSet):
            return set(self._names) == set(other._names)
        if isinstance(other, (set, frozenset)):
            return set(self._names) == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"NameSet({self.to_list()!r})"


@dataclass
class RowError:
    """One document-level failure recorded during execution."""

    document: str
    error: str
    error_type: str
    name: Optional[str] = None
    target: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "document": self.document,
            "error": self.error,
            "error_type": self.error_type,
        }
        if self.name is not None:
            data["name"] = self.name
        if self.target is not None:
            data["target"] = self.target
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RowError":
        return cls(
            document=data.get("document", ""),
            error=data.get("error", ""),
            error_type=data.get("error_type", "UNKNOWN"),
            name=data.get("name"),
            target=data.get("target"),
        )


@dataclass
class NameCounts:
    success_count: int = 0
    error_count: int = 0


@dataclass(frozen=True)
class Progress:
    current: int = 0
    total: int = 0
    phase: Optional[SyncPhase] = None
    current_target: Optional[str] = None

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 0.0
        return min(1.0, self.current / self.total)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SyncItem:
    kind: SyncKind
    names: NameSet = field(default_factory=NameSet)
    scope: SyncScope = SyncScope.SELECTED
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: SyncStatus = SyncStatus.QUEUED
    created_at: str = field(default_factory=_utc_now_iso)

    # Execution bookkeeping
    started_at: Optional[float] = None
    completed_at: Optional[str] = None
    success: Optional[bool] = None
    duration_ms: Optional[int] = None
    message: Optional[str] = None

    total_count: int = 0
    success_count: int = 0
    error_count: int = 0
    stats: Dict[str, int] = field(default_factory=dict)
    errors: List[RowError] = field(default_factory=list)
    name_stats: Dict[str, NameCounts] = field(default_factory=dict)

    @property
    def is_full(self) -> bool:
        return self.scope == SyncScope.FULL

    def mark_started(self) -> None:
        self.status = SyncStatus.PROCESSING
        self.started_at = time.time()

    def mark_finished(self, status: SyncStatus, message: Optional[str] = None) -> None:
        self.status = status
        self.completed_at = _utc_now_iso()
        if self.started_at is not None:
            self.duration_ms = int((time.time() - self.started_at) * 1000)
        if message is not None:
            self.message = message

    def apply_result(self, result: "ExecutorResult") -> None:
        self.names = result.names.copy()
        self.success = result.success
        self.total_count = result.total_count
        self.success_count = result.success_count
        self.error_count = result.error_count
        self.stats = dict(result.stats)
        self.errors = list(result.errors)
        self.name_stats = dict(result.name_stats)
        if result.message:
            self.message = result.message

    def to_history_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "names": self.names.to_list(),
            "scope": self.scope.value,
            "status": self.status.value,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "success": self.success,
            "duration_ms": self.duration_ms,
            "message": self.message,
            "total_count": self.total_count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "stats": dict(self.stats),
            "errors": [e.to_dict() for e in self.errors],
            "name_stats": {
                name: {"success_count": c.success_count, "error_count": c.error_count}
                for name, c in self.name_stats.items()
            },
        }

    @classmethod
    def from_history_dict(cls, data: Dict[str, Any]) -> "SyncItem":
        return cls(
            id=data["id"],
            kind=SyncKind(data["kind"]),
            names=NameSet.from_list(data.get("names")),
            scope=SyncScope(data.get("scope", SyncScope.SELECTED.value)),
            status=SyncStatus(data.get("status", SyncStatus.COMPLETED.value)),
            created_at=data.get("created_at") or _utc_now_iso(),
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
            success=data.get("success"),
            duration_ms=data.get("duration_ms"),
            message=data.get("message"),
            total_count=data.get("total_count", 0),
            success_count=data.get("success_count", 0),
            error_count=data.get("error_count", 0),
            stats=dict(data.get("stats") or {}),
            errors=[RowError.from_dict(e) for e in data.get("errors") or []],
            name_stats={
                name: NameCounts(**counts)
                for name, counts in (data.get("name_stats") or {}).items()
            },
        )


@dataclass
class ExecutorResult:
    """Outcome of one executor run. Row and batch failures live in ``errors``."""

    success: bool = True
    cancelled: bool = False
    total_count: int = 0
    success_count: int = 0
    error_count: int = 0
    stats: Dict[str, int] = field(default_factory=dict)
    errors: List[RowError] = field(default_factory=list)
    name_stats: Dict[str, NameCounts] = field(default_factory=dict)
    message: Optional[str] = None
    duration_ms: int = 0
    # Names the executor actually prepared and wrote
    names: NameSet = field(default_factory=NameSet)
