"""
Sync queue manager.

Requests are folded into existing queue entries where possible: one selected
item and one full item per kind at most, with later requests unioning their
names into the existing entry. A single-flight loop drains the queue in FIFO
order, handing each item to a dispatch callable; an exception from one item is
logged and the loop moves on to the next.
"""

import threading
from typing import Callable, Iterable, List, Optional

from graphsync.shared.observability import get_logger
from graphsync.shared.observability.metrics import sync_queue_depth

from .run_stats import QueueRunStats
from .state import StateStore
from .types import NameSet, SyncItem, SyncKind, SyncScope

logger = get_logger(__name__)

EnabledNames = Callable[[SyncKind], List[str]]
Dispatch = Callable[[SyncItem], None]


class SyncQueueManager:
    def __init__(
        self,
        state: StateStore,
        enabled_names: EnabledNames,
        dispatch: Dispatch,
        autostart: bool = True,
        legacy_full_sync_detection: bool = False,
    ):
        self.state = state
        self.enabled_names = enabled_names
        self.dispatch = dispatch
        self.autostart = autostart
        self.legacy_full_sync_detection = legacy_full_sync_detection

        self._lock = threading.RLock()
        self._processing = False
        self._idle = threading.Event()
        self._idle.set()
        self._worker: Optional[threading.Thread] = None

    # Classification

    def is_full(self, item: SyncItem) -> bool:
        if self.legacy_full_sync_detection:
            # Containment against the enabled names as of right now
            return item.names.issuperset(self.enabled_names(item.kind))
        return item.scope == SyncScope.FULL

    def _find_full(self, queue: Iterable[SyncItem], kind: SyncKind) -> Optional[SyncItem]:
        for item in queue:
            if item.kind == kind and self.is_full(item):
                return item
        return None

    def _find_selected(
        self, queue: Iterable[SyncItem], kind: SyncKind
    ) -> Optional[SyncItem]:
        for item in queue:
            if item.kind == kind and not self.is_full(item):
                return item
        return None

    # Enqueue operations

    @property
    def queue(self) -> List[SyncItem]:
        return list(self.state.queue_state.queue)

    @property
    def current(self) -> Optional[SyncItem]:
        return self.state.queue_state.current

    def _publish(self, queue: List[SyncItem]) -> None:
        self.state.set_queue_state(queue=queue)
        sync_queue_depth.set(len(queue))

    def add_selected_sync(self, kind: SyncKind, name: str) -> SyncItem:
        kind = SyncKind(kind)
        with self._lock:
            queue = self.queue
            target = self._find_full(queue, kind)
            if target is not None:
                target.names.add(name)
                logger.debug(
                    "sync_name_folded_into_full", kind=kind.value, name=name, item_id=target.id
                )
            else:
                target = self._find_selected(queue, kind)
                if target is not None:
                    target.names.add(name)
                else:
                    target = SyncItem(kind=kind, names=NameSet([name]))
                    queue.append(target)
                    logger.info(
                        "sync_item_queued",
                        item_id=target.id,
                        kind=kind.value,
                        scope=target.scope.value,
                    )
            self._publish(queue)
        self._trigger()
        return target

    def add_full_sync(self) -> List[SyncItem]:
        """Queue (or extend) one full item per kind."""
        items = []
        with self._lock:
            queue = self.queue
            for kind in SyncKind:
                names = self.enabled_names(kind)
                target = self._find_full(queue, kind)
                if target is None and not self.legacy_full_sync_detection:
                    target = self._find_selected(queue, kind)
                    if target is not None:
                        target.scope = SyncScope.FULL
                        logger.info(
                            "sync_item_promoted_to_full", item_id=target.id, kind=kind.value
                        )
                if target is not None:
                    added = target.names.update(names)
                    target.scope = SyncScope.FULL
                    if added:
                        logger.debug(
                            "sync_full_item_extended", item_id=target.id, added=added
                        )
                else:
                    target = SyncItem(
                        kind=kind, names=NameSet(names), scope=SyncScope.FULL
                    )
                    queue.append(target)
                    logger.info(
                        "sync_item_queued",
                        item_id=target.id,
                        kind=kind.value,
                        scope=target.scope.value,
                        names=len(target.names),
                    )
                items.append(target)
            self._publish(queue)
        self._trigger()
        return items

    def add_name_to_active_full_sync(self, kind: SyncKind, name: str) -> bool:
        """Extend the executing and/or queued full item of ``kind`` with ``name``."""
        kind = SyncKind(kind)
        extended = False
        with self._lock:
            current = self.current
            if current is not None and current.kind == kind and self.is_full(current):
                if current.names.add(name):
                    extended = True
                    self.state.set_queue_state(current=current)

            queue = self.queue
            queued_full = self._find_full(queue, kind)
            if queued_full is not None and queued_full.names.add(name):
                extended = True
                self._publish(queue)
        if extended:
            logger.info("sync_full_item_name_added", kind=kind.value, name=name)
        return extended

    def remove_item(self, item_id: str) -> bool:
        with self._lock:
            queue = self.queue
            remaining = [item for item in queue if item.id != item_id]
            removed = len(remaining) != len(queue)
            self._publish(remaining)
        if removed:
            logger.info("sync_item_removed", item_id=item_id)
        return removed

    # Processing

    @property
    def is_processing(self) -> bool:
        return self._processing

    def _trigger(self) -> None:
        if self.autostart:
            self.start_processing()

    def start_processing(self) -> bool:
        """Drain the queue on a background thread; False if already draining."""
        with self._lock:
            if self._processing:
                return False
            self._idle.clear()
            worker = threading.Thread(
                target=self.process_queue, name="graphsync-queue", daemon=True
            )
            self._worker = worker
        worker.start()
        return True

    def _pop_next(self) -> Optional[SyncItem]:
        with self._lock:
            queue = self.queue
            if not queue:
                self.state.set_queue_state(current=None)
                sync_queue_depth.set(0)
                self._processing = False
                self._idle.set()
                return None
            item = queue.pop(0)
            self.state.set_queue_state(queue=queue, current=item)
            sync_queue_depth.set(len(queue))
            return item

    def process_queue(self) -> bool:
        """Drain the queue on the calling thread; no-op while another drain runs."""
        with self._lock:
            if self._processing:
                return False
            self._processing = True
            self._idle.clear()

        run_stats = QueueRunStats.start_new()
        try:
            while True:
                item = self._pop_next()
                if item is None:
                    break
                try:
                    self.dispatch(item)
                except Exception as e:
                    logger.error(
                        "sync_item_failed",
                        item_id=item.id,
                        kind=item.kind.value,
                        error=str(e),
                        exc_info=True,
                    )
                finally:
                    run_stats.record_item(item)
                    with self._lock:
                        self.state.set_queue_state(current=None)
        finally:
            with self._lock:
                if self._processing:
                    self._processing = False
                    self._idle.set()

        if run_stats.has_data:
            run_stats.emit_summary()
        return True

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        return self._idle.wait(timeout)
