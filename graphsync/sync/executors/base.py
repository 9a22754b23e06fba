"""
Shared batch-transactional loop for the per-kind executors.

One transaction is opened per sync item and registered with the control
plane. Batches run in document order; before each batch the loop waits while
paused and checks for cancellation. A cancelled run is rolled back and
returned as a partial result. Row and batch failures are recorded by the
concrete executor and never abort the loop. When the final commit fails, every
row credited inside the transaction is turned into a row error; anything else
that escapes the loop rolls the transaction back and propagates.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

from graphsync.documents import Document, DocumentSource
from graphsync.shared.config import Config
from graphsync.shared.observability import get_logger
from graphsync.shared.observability.metrics import (
    sync_batch_duration_seconds,
    sync_rows_total,
)

from ..control import ExecutionControl
from ..conversion import calculate_batch_size
from ..errors import ErrorType, categorize_error, categorize_with_default
from ..state import StateStore
from ..types import (
    ExecutorResult,
    NameCounts,
    NameSet,
    RowError,
    SyncItem,
    SyncKind,
    SyncPhase,
)

logger = get_logger(__name__)

FrontMatterReader = Callable[[Document], Optional[Dict[str, Any]]]
LinkExtractor = Callable[[Any], List[str]]

RowT = TypeVar("RowT")


@dataclass
class Prepared(Generic[RowT]):
    """Output of pre-processing. Validation failures go straight onto the result."""

    rows: List[RowT] = field(default_factory=list)
    skipped: int = 0
    message: Optional[str] = None


class BatchExecutor(Generic[RowT]):
    kind: SyncKind

    def __init__(
        self,
        config: Config,
        documents: DocumentSource,
        read_front_matter: FrontMatterReader,
        state: StateStore,
        control: ExecutionControl,
    ):
        self.config = config
        self.documents = documents
        self.read_front_matter = read_front_matter
        self.state = state
        self.control = control
        # (document, names) credited since the transaction opened
        self._uncommitted: List[Tuple[str, List[str]]] = []

    @property
    def node_label(self) -> str:
        return self.config.sync.node_label

    # Hooks

    def prepare(self, names: NameSet, result: ExecutorResult) -> Prepared[RowT]:
        raise NotImplementedError

    def apply_batch(self, tx: Any, batch: List[RowT], result: ExecutorResult) -> None:
        raise NotImplementedError

    def phase_for(self, item: SyncItem) -> SyncPhase:
        raise NotImplementedError

    def row_label(self, row: RowT) -> str:
        return getattr(row, "path", None) or str(row)

    def row_names(self, row: RowT) -> List[str]:
        return []

    def requested(self, names: NameSet, enabled: Dict[str, Any]) -> List[Any]:
        """Entries of ``enabled`` for ``names``, in name order."""
        selected = []
        for name in names:
            if name in enabled:
                selected.append(enabled[name])
            else:
                logger.warning(
                    "sync_name_without_enabled_mapping", kind=self.kind.value, name=name
                )
        return selected

    # Bookkeeping helpers

    def _init_name_stats(self, result: ExecutorResult, names: Iterable[str]) -> None:
        for name in names:
            result.name_stats.setdefault(name, NameCounts())

    def record_success(
        self, result: ExecutorResult, document: str, names: Iterable[str]
    ) -> None:
        """Count one written row, crediting each mapping name that contributed."""
        names = list(names)
        result.success_count += 1
        self._uncommitted.append((document, names))
        for name in names:
            result.name_stats.setdefault(name, NameCounts()).success_count += 1
        sync_rows_total.labels(kind=self.kind.value, outcome="success").inc()

    def record_error(
        self,
        result: ExecutorResult,
        document: str,
        error: str,
        error_type: ErrorType,
        names: Iterable[str] = (),
        target: Optional[str] = None,
    ) -> None:
        """Count one failed row, charging each mapping name it involved."""
        names = list(names)
        result.error_count += 1
        result.errors.append(
            RowError(
                document=document,
                error=error,
                error_type=error_type.value,
                name=", ".join(names) if names else None,
                target=target,
            )
        )
        for name in names:
            result.name_stats.setdefault(name, NameCounts()).error_count += 1
        sync_rows_total.labels(kind=self.kind.value, outcome="error").inc()

    def add_stat(self, result: ExecutorResult, key: str, value: int) -> None:
        result.stats[key] = result.stats.get(key, 0) + int(value or 0)

    def run_statement(self, tx: Any, query: str, **params) -> Tuple[List[Any], Any]:
        """Run one bulk statement; returns its records and summary counters."""
        start = time.perf_counter()
        try:
            cursor = tx.run(query, **params)
            records = list(cursor)
            counters = cursor.consume().counters
        finally:
            sync_batch_duration_seconds.labels(kind=self.kind.value).observe(
                time.perf_counter() - start
            )
        return records, counters

    def fail_batch(
        self, result: ExecutorResult, batch: List[RowT], exc: Exception
    ) -> None:
        error_type = categorize_error(exc)
        logger.warning(
            "sync_batch_failed",
            kind=self.kind.value,
            rows=len(batch),
            error_type=error_type.value,
            error=str(exc),
        )
        for row in batch:
            self.record_error(
                result,
                document=self.row_label(row),
                error=str(exc),
                error_type=error_type,
                names=self.row_names(row),
            )

    # Main loop

    def execute(self, item: SyncItem, session: Any) -> ExecutorResult:
        start = time.time()
        result = ExecutorResult(names=item.names.copy())
        phase = self.phase_for(item)

        self.state.set_progress(current=0, total=0, phase=SyncPhase.SCANNING, current_target=None)
        prepared = self.prepare(result.names, result)
        validation_errors = result.error_count

        rows = prepared.rows
        result.total_count = len(rows) + validation_errors
        logger.info(
            "sync_executor_prepared",
            kind=self.kind.value,
            rows=len(rows),
            skipped=prepared.skipped,
            validation_errors=validation_errors,
        )

        if rows:
            self._run_batches(session, item, rows, result, phase)
        elif prepared.message:
            result.message = prepared.message

        result.success = result.error_count == 0 and not result.cancelled
        result.duration_ms = int((time.time() - start) * 1000)
        if result.message is None:
            result.message = self.summarize(result)
        return result

    def summarize(self, result: ExecutorResult) -> str:
        if result.cancelled:
            return f"Cancelled after {result.success_count} row(s)"
        if result.error_count:
            return f"Synced {result.success_count} row(s) with {result.error_count} error(s)"
        return f"Successfully synced {result.success_count} row(s)"

    def prepare_late_names(self, item: SyncItem, result: ExecutorResult) -> List[RowT]:
        """Rows for names added to a running item after it was prepared."""
        late = NameSet(name for name in item.names if name not in result.names)
        if not late:
            return []
        result.names.update(late)
        errors_before = result.error_count
        prepared = self.prepare(late, result)
        result.total_count += len(prepared.rows) + (result.error_count - errors_before)
        logger.info(
            "sync_late_names_prepared",
            kind=self.kind.value,
            names=late.to_list(),
            rows=len(prepared.rows),
        )
        return prepared.rows

    def _run_batches(
        self,
        session: Any,
        item: SyncItem,
        rows: List[RowT],
        result: ExecutorResult,
        phase: SyncPhase,
    ) -> None:
        batch_size = calculate_batch_size(len(rows), self.config.sync.batch_size)
        poll = self.config.sync.pause_poll_seconds
        self._uncommitted = []

        tx = session.begin_transaction()
        self.control.set_transaction(tx)
        try:
            done = 0
            while rows:
                total = done + len(rows)
                for offset in range(0, len(rows), batch_size):
                    self.control.wait_if_paused(poll)
                    if self.control.is_cancelled():
                        tx.rollback()
                        result.cancelled = True
                        logger.info(
                            "sync_executor_cancelled",
                            kind=self.kind.value,
                            processed=done + offset,
                            total=total,
                        )
                        return

                    batch = rows[offset : offset + batch_size]
                    self.apply_batch(tx, batch, result)

                    self.state.set_progress(
                        current=done + offset + len(batch),
                        total=total,
                        phase=phase,
                        current_target=self.row_label(batch[-1]),
                    )
                done = total
                rows = self.prepare_late_names(item, result)

            try:
                tx.commit()
            except Exception as e:
                self._fail_commit(tx, result, e)
        except Exception:
            logger.error("sync_transaction_rolled_back", kind=self.kind.value, exc_info=True)
            self._rollback_quietly(tx)
            raise
        finally:
            self._uncommitted = []
            self.control.clear_transaction()

    def _fail_commit(self, tx: Any, result: ExecutorResult, exc: Exception) -> None:
        """Rows credited inside a transaction that failed to commit were not written."""
        error_type = categorize_with_default(exc, ErrorType.TRANSACTION)
        logger.error(
            "sync_commit_failed",
            kind=self.kind.value,
            rolled_back_rows=len(self._uncommitted),
            error_type=error_type.value,
            error=str(exc),
        )
        self._rollback_quietly(tx)

        message = f"Transaction commit failed: {exc}"
        for document, names in self._uncommitted:
            result.success_count -= 1
            for name in names:
                result.name_stats[name].success_count -= 1
            self.record_error(result, document, message, error_type, names=names)
        result.message = message

    def _rollback_quietly(self, tx: Any) -> None:
        try:
            tx.rollback()
        except Exception as rollback_error:
            logger.warning("sync_rollback_failed", error=str(rollback_error))
