"""
Sync engine.

Owns the state store, the control plane, the queue manager, the history and
the collaborators needed to execute items. One engine is constructed per
process (or per test) and passed around; nothing here is a module global.

Each item opens its own driver, runs in one session and one transaction, and
closes the driver before the next item starts, so at most one transaction is
open at any time.
"""

import time
from typing import Any, Callable, Dict, List, Optional

from graphsync.documents import DocumentSource, MarkdownVault
from graphsync.shared.config import Config, Settings, get_config, get_settings
from graphsync.shared.connections import ConnectionManager
from graphsync.shared.credentials import CredentialProvider, SettingsCredentialProvider
from graphsync.shared.observability import bind_sync_item, get_logger, unbind_sync_item
from graphsync.shared.observability.metrics import (
    sync_item_duration_seconds,
    sync_items_total,
)

from .control import ExecutionControl
from .errors import SyncSetupError
from .executors import LabelExecutor, NodePropertyExecutor, RelationshipExecutor
from .executors.base import BatchExecutor, FrontMatterReader, LinkExtractor
from .history import SyncHistory
from .queue import SyncQueueManager
from .state import StateStore
from .types import Progress, SyncItem, SyncKind, SyncPhase, SyncStatus

logger = get_logger(__name__)

KIND_TITLES = {
    SyncKind.NODE_PROPERTY: "Node property",
    SyncKind.RELATIONSHIP: "Relationship",
    SyncKind.LABEL: "Label",
}


class SyncEngine:
    def __init__(
        self,
        config: Optional[Config] = None,
        settings: Optional[Settings] = None,
        documents: Optional[DocumentSource] = None,
        read_front_matter: Optional[FrontMatterReader] = None,
        extract_links: Optional[LinkExtractor] = None,
        credentials: Optional[CredentialProvider] = None,
        connections: Optional[ConnectionManager] = None,
        history: Optional[SyncHistory] = None,
        autostart: bool = True,
    ):
        self.config = config or get_config()
        self.settings = settings or get_settings()
        self._documents = documents
        self._read_front_matter = read_front_matter
        self._extract_links = extract_links
        self.credentials = credentials or SettingsCredentialProvider(self.settings)
        self.connections = connections or ConnectionManager(self.settings)
        self.history = history or SyncHistory(
            self.config.sync.history_path, self.config.sync.history_max_entries
        )

        self.state = StateStore()
        self.control = ExecutionControl()
        self.queue = SyncQueueManager(
            self.state,
            enabled_names=self.enabled_names,
            dispatch=self.run_item,
            autostart=autostart,
            legacy_full_sync_detection=self.config.sync.legacy_full_sync_detection,
        )

    # Configuration lookups

    def enabled_names(self, kind: SyncKind) -> List[str]:
        mappings = self.config.mappings
        if kind == SyncKind.NODE_PROPERTY:
            return mappings.enabled_node_property_names()
        if kind == SyncKind.RELATIONSHIP:
            return mappings.enabled_relationship_names()
        return mappings.enabled_label_names()

    def kinds_for_name(self, name: str) -> List[SyncKind]:
        mappings = self.config.mappings
        kinds = []
        if any(m.property_name == name for m in mappings.node_properties):
            kinds.append(SyncKind.NODE_PROPERTY)
        if any(m.property_name == name for m in mappings.relationships):
            kinds.append(SyncKind.RELATIONSHIP)
        if any(r.label_name == name for r in mappings.labels):
            kinds.append(SyncKind.LABEL)
        return kinds

    # Enqueue operations

    def add_selected_sync(self, kind: SyncKind, name: str) -> SyncItem:
        return self.queue.add_selected_sync(kind, name)

    def add_full_sync(self) -> List[SyncItem]:
        return self.queue.add_full_sync()

    def add_name_to_active_full_sync(self, kind: SyncKind, name: str) -> bool:
        return self.queue.add_name_to_active_full_sync(kind, name)

    def remove_item(self, item_id: str) -> bool:
        return self.queue.remove_item(item_id)

    def set_mapping_enabled(self, name: str, enabled: bool = True) -> bool:
        """Toggle a mapping; enabling one also extends any full sync in flight."""
        if not self.config.mappings.set_enabled(name, enabled):
            raise KeyError(f"No mapping or label rule named {name!r}")
        if enabled:
            for kind in self.kinds_for_name(name):
                self.queue.add_name_to_active_full_sync(kind, name)
        return True

    def process_queue(self) -> bool:
        return self.queue.process_queue()

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        return self.queue.wait_until_idle(timeout)

    # Control

    def pause(self) -> None:
        self.control.pause()
        self.state.set_run_state(paused=True)

    def resume(self) -> None:
        self.control.resume()
        self.state.set_run_state(paused=False)

    def cancel_now(self) -> None:
        self._cancel_current()

    def request_cancel(self, grace_seconds: Optional[float] = None) -> None:
        """Pause immediately and cancel after the grace period unless undone."""
        if grace_seconds is None:
            grace_seconds = self.config.sync.cancel_grace_seconds
        self.state.set_run_state(paused=True)
        self.control.schedule_cancel(grace_seconds, on_cancel=self._on_cancel_fired)

    def undo_cancel(self) -> bool:
        undone = self.control.undo_cancel()
        if undone:
            self.state.set_run_state(paused=False)
        return undone

    def _cancel_current(self) -> None:
        self.control.cancel()
        self._on_cancel_fired()

    def _on_cancel_fired(self) -> None:
        self.state.set_run_state(cancelled=True)
        current = self.queue.current
        if current is not None:
            self.queue.remove_item(current.id)

    # Execution

    def documents(self) -> DocumentSource:
        if self._documents is None:
            if not self.config.sync.vault_path:
                raise SyncSetupError("No vault path configured (sync.vault_path)")
            self._documents = MarkdownVault(self.config.sync.vault_path)
        return self._documents

    def _front_matter_reader(self, documents: DocumentSource) -> FrontMatterReader:
        if self._read_front_matter is not None:
            return self._read_front_matter
        if isinstance(documents, MarkdownVault):
            return documents.read_front_matter
        raise SyncSetupError("No front-matter reader available")

    def _link_extractor(self, documents: DocumentSource) -> Optional[LinkExtractor]:
        if self._extract_links is not None:
            return self._extract_links
        if isinstance(documents, MarkdownVault):
            return documents.link_extractor()
        return None

    def executor_for(self, kind: SyncKind) -> BatchExecutor:
        documents = self.documents()
        reader = self._front_matter_reader(documents)
        if kind == SyncKind.NODE_PROPERTY:
            return NodePropertyExecutor(self.config, documents, reader, self.state, self.control)
        if kind == SyncKind.RELATIONSHIP:
            return RelationshipExecutor(
                self.config,
                documents,
                reader,
                self.state,
                self.control,
                extract_links=self._link_extractor(documents),
            )
        if kind == SyncKind.LABEL:
            return LabelExecutor(self.config, documents, reader, self.state, self.control)
        raise SyncSetupError(f"Unsupported sync kind: {kind}")

    def run_item(self, item: SyncItem) -> SyncItem:
        """Execute one item to a terminal status and record it in history."""
        bind_sync_item(item.id, item.kind.value)
        item.mark_started()
        self.control.begin_run()
        self.state.set_queue_state(current=item)
        self.state.set_run_state(
            running=True,
            paused=False,
            cancelled=False,
            progress=Progress(phase=SyncPhase.SCANNING),
        )
        logger.info(
            "sync_item_started",
            scope=item.scope.value,
            names=item.names.to_list(),
        )

        driver = None
        try:
            credentials = self.credentials.get_credentials()

            if item.is_full:
                added = item.names.update(self.enabled_names(item.kind))
                if added:
                    logger.info("sync_full_item_refreshed", added=added)
                    self.state.set_queue_state(current=item)

            executor = self.executor_for(item.kind)

            self.state.set_progress(phase=SyncPhase.CONNECTING)
            try:
                driver = self.connections.open_driver(credentials)
            except Exception as e:
                raise SyncSetupError(f"Could not connect to Neo4j: {e}") from e

            with driver.session() as session:
                result = executor.execute(item, session)

            item.apply_result(result)
            item.mark_finished(
                SyncStatus.CANCELLED if result.cancelled else SyncStatus.COMPLETED
            )
        except Exception as e:
            item.success = False
            item.mark_finished(
                SyncStatus.ERROR, message=f"{KIND_TITLES[item.kind]} sync failed: {e}"
            )
            raise
        finally:
            self._finish_item(item, driver)
        return item

    def _finish_item(self, item: SyncItem, driver: Any) -> None:
        try:
            self.history.add(item)
            sync_items_total.labels(kind=item.kind.value, status=item.status.value).inc()
            if item.duration_ms is not None:
                sync_item_duration_seconds.labels(kind=item.kind.value).observe(
                    item.duration_ms / 1000
                )
            log = logger.warning if item.status == SyncStatus.ERROR else logger.info
            log(
                "sync_item_finished",
                status=item.status.value,
                success=item.success,
                duration_ms=item.duration_ms,
                total=item.total_count,
                succeeded=item.success_count,
                failed=item.error_count,
                stats=item.stats,
                message=item.message,
            )
        finally:
            self.connections.close_driver(driver)
            self.control.end_run()
            self.state.reset_run_state()
            unbind_sync_item()

    # Inspection

    def history_entries(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return self.history.entries(limit)

    def subscribe(self, state_slice, callback: Callable[[Any], None]) -> Callable[[], None]:
        return self.state.subscribe(state_slice, callback)

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        """Cancel whatever is running and wait for the queue to drain."""
        if self.queue.is_processing:
            self.state.set_queue_state(queue=[])
            self._cancel_current()
        started = time.monotonic()
        idle = self.wait_until_idle(timeout)
        logger.info(
            "sync_engine_shutdown",
            idle=idle,
            waited_seconds=round(time.monotonic() - started, 2),
        )
        return idle
