"""
Queue run statistics accumulator.

A "run" starts when the queue begins draining and ends when it is empty.
Outcomes of every item processed during the run are accumulated and emitted
as one consolidated ``sync_run_summary`` log event.

Usage in the queue manager:
    run_stats = QueueRunStats.start_new()

    # After each item:
    run_stats.record_item(item)

    # When the queue drains:
    run_stats.emit_summary()
"""

import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from graphsync.shared.observability import get_logger

from .types import SyncItem, SyncStatus

logger = get_logger(__name__)


@dataclass
class FailedItem:
    """Details of an item that ended in error."""

    item_id: str
    kind: str
    error: str
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


@dataclass
class QueueRunStats:
    run_id: str
    start_time: float
    end_time: Optional[float] = None

    items_processed: int = 0
    items_completed: int = 0
    items_failed: int = 0
    items_cancelled: int = 0

    rows_succeeded: int = 0
    rows_failed: int = 0

    # Kind-specific counters summed across items (nodes_created, ...)
    counters: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    error_types: Dict[str, int] = field(default_factory=lambda: defaultdict(int))

    failed_items: List[FailedItem] = field(default_factory=list)

    @classmethod
    def start_new(cls) -> "QueueRunStats":
        return cls(
            run_id=f"run_{datetime.now().strftime('%Y%m%d_%H%M%S')}",
            start_time=time.monotonic(),
        )

    def record_item(self, item: SyncItem) -> None:
        self.items_processed += 1

        if item.status == SyncStatus.COMPLETED:
            self.items_completed += 1
        elif item.status == SyncStatus.CANCELLED:
            self.items_cancelled += 1
        else:
            self.items_failed += 1
            self.failed_items.append(
                FailedItem(
                    item_id=item.id,
                    kind=item.kind.value,
                    error=item.message or "Unknown error",
                )
            )

        self.rows_succeeded += item.success_count
        self.rows_failed += item.error_count
        for key, value in item.stats.items():
            self.counters[key] += value
        for row_error in item.errors:
            self.error_types[row_error.error_type] += 1

    def finalize(self) -> Dict[str, Any]:
        self.end_time = time.monotonic()
        return {
            "run_id": self.run_id,
            "duration_seconds": round(self.end_time - self.start_time, 2),
            "items": {
                "processed": self.items_processed,
                "completed": self.items_completed,
                "failed": self.items_failed,
                "cancelled": self.items_cancelled,
            },
            "rows": {
                "succeeded": self.rows_succeeded,
                "failed": self.rows_failed,
            },
            "counters": dict(self.counters),
            "error_types": dict(self.error_types),
            "failures": [
                {"item_id": f.item_id, "kind": f.kind, "error": f.error}
                for f in self.failed_items
            ],
        }

    def emit_summary(self) -> Dict[str, Any]:
        summary = self.finalize()

        logger.info(
            "sync_run_summary",
            run_id=summary["run_id"],
            duration_seconds=summary["duration_seconds"],
            items_processed=summary["items"]["processed"],
            items_completed=summary["items"]["completed"],
            items_failed=summary["items"]["failed"],
            items_cancelled=summary["items"]["cancelled"],
            rows_succeeded=summary["rows"]["succeeded"],
            rows_failed=summary["rows"]["failed"],
            counters=summary["counters"],
        )

        if self.items_failed > 0:
            logger.warning(
                "sync_run_had_failures",
                run_id=self.run_id,
                failed_count=self.items_failed,
                failures=summary["failures"],
            )

        if self.error_types:
            logger.info(
                "sync_run_row_errors",
                run_id=self.run_id,
                error_types=summary["error_types"],
            )

        return summary

    @property
    def has_data(self) -> bool:
        return self.items_processed > 0
