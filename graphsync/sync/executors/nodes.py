"""
Node-property sync.

Copies enabled front-matter properties onto the document nodes with one
``UNWIND``/``MERGE`` statement per batch. Documents without any of the
requested properties are skipped; values that fail conversion are dropped
from the document's property map without failing the document.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from graphsync.neo.identifiers import node_label_clause
from graphsync.shared.config import NodePropertyMapping
from graphsync.shared.observability import get_logger

from ..conversion import convert_value
from ..types import ExecutorResult, NameSet, SyncItem, SyncKind, SyncPhase
from .base import BatchExecutor, Prepared

logger = get_logger(__name__)


@dataclass
class NodeRow:
    path: str
    name: str
    props: Dict[str, Any] = field(default_factory=dict)
    # Mapping names declared by the document
    sources: List[str] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)

    def to_param(self) -> Dict[str, Any]:
        return {"path": self.path, "name": self.name, "props": self.props}


class NodePropertyExecutor(BatchExecutor[NodeRow]):
    kind = SyncKind.NODE_PROPERTY

    def phase_for(self, item: SyncItem) -> SyncPhase:
        return SyncPhase.CREATING_NODES if item.is_full else SyncPhase.UPDATING_PROPERTIES

    def mappings_for(self, names: NameSet) -> List[NodePropertyMapping]:
        enabled = {
            m.property_name: m for m in self.config.mappings.enabled_node_properties()
        }
        return self.requested(names, enabled)

    def prepare(self, names: NameSet, result: ExecutorResult) -> Prepared[NodeRow]:
        mappings = self.mappings_for(names)
        if not mappings:
            return Prepared(message="No enabled node property mappings to sync")
        self._init_name_stats(result, [m.property_name for m in mappings])

        prepared: Prepared[NodeRow] = Prepared()
        for document in self.documents.list_documents():
            front_matter = self.read_front_matter(document)
            if not front_matter:
                prepared.skipped += 1
                continue

            row = NodeRow(path=document.path, name=document.name)
            for mapping in mappings:
                value = front_matter.get(mapping.property_name)
                if value is None:
                    continue
                row.sources.append(mapping.property_name)
                converted = convert_value(value, mapping.node_property_type)
                if converted is None:
                    row.dropped.append(mapping.property_name)
                    continue
                row.props[mapping.node_property_name] = converted

            if not row.sources:
                prepared.skipped += 1
                continue
            if row.dropped:
                logger.debug(
                    "sync_values_dropped",
                    document=document.path,
                    properties=row.dropped,
                )
            prepared.rows.append(row)
        return prepared

    def statement(self) -> str:
        return (
            "UNWIND $rows AS row "
            f"MERGE (n{node_label_clause(self.node_label)} {{path: row.path}}) "
            "ON CREATE SET n.name = row.name "
            "SET n += row.props"
        )

    def apply_batch(self, tx: Any, batch: List[NodeRow], result: ExecutorResult) -> None:
        try:
            _, counters = self.run_statement(
                tx, self.statement(), rows=[row.to_param() for row in batch]
            )
        except Exception as e:
            self.fail_batch(result, batch, e)
            return

        created = counters.nodes_created
        self.add_stat(result, "nodes_created", created)
        self.add_stat(result, "nodes_updated", max(0, len(batch) - created))
        self.add_stat(result, "properties_set", counters.properties_set)
        for row in batch:
            self.record_success(result, row.path, row.sources)

    def row_names(self, row: NodeRow) -> List[str]:
        return row.sources
