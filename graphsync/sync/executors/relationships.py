"""
Relationship sync.

Each batch runs three statements in order:

1. ensure placeholder target nodes exist for every distinct target,
2. check which source nodes exist (relationships never get a new source),
3. merge relationships, one statement per (type, direction) group.

Relationship types cannot be bound as parameters, so they are validated and
interpolated; grouping keeps each statement to a single literal type. A failed
group only affects its own rows.
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from graphsync.documents import DocumentSource, document_name
from graphsync.neo.identifiers import identifier_error, node_label_clause, validate_identifier
from graphsync.shared.config import Config, RelationshipDirection, RelationshipMapping
from graphsync.shared.observability import get_logger

from ..control import ExecutionControl
from ..errors import ErrorType, SyncSetupError, categorize_error, categorize_with_default
from ..state import StateStore
from ..types import ExecutorResult, NameSet, SyncItem, SyncKind, SyncPhase
from .base import BatchExecutor, FrontMatterReader, LinkExtractor, Prepared

logger = get_logger(__name__)


@dataclass
class RelationshipRow:
    path: str
    name: str
    target: str
    relationship_type: str
    direction: RelationshipDirection


class RelationshipExecutor(BatchExecutor[RelationshipRow]):
    kind = SyncKind.RELATIONSHIP

    def __init__(
        self,
        config: Config,
        documents: DocumentSource,
        read_front_matter: FrontMatterReader,
        state: StateStore,
        control: ExecutionControl,
        extract_links: Optional[LinkExtractor] = None,
    ):
        super().__init__(config, documents, read_front_matter, state, control)
        self.extract_links = extract_links

    def phase_for(self, item: SyncItem) -> SyncPhase:
        return SyncPhase.CREATING_RELATIONSHIPS

    def row_names(self, row: RelationshipRow) -> List[str]:
        return [row.name]

    def prepare(
        self, names: NameSet, result: ExecutorResult
    ) -> Prepared[RelationshipRow]:
        enabled = {m.property_name: m for m in self.config.mappings.enabled_relationships()}
        mappings: List[RelationshipMapping] = self.requested(names, enabled)
        if not mappings:
            return Prepared(message="No enabled relationship mappings to sync")
        if self.extract_links is None:
            raise SyncSetupError("Relationship sync requires a link extractor")
        self._init_name_stats(result, [m.property_name for m in mappings])

        invalid = {
            m.property_name: identifier_error(m.relationship_type, "Relationship type")
            for m in mappings
        }

        prepared: Prepared[RelationshipRow] = Prepared()
        for document in self.documents.list_documents():
            front_matter = self.read_front_matter(document)
            if not front_matter:
                prepared.skipped += 1
                continue

            for mapping in mappings:
                value = front_matter.get(mapping.property_name)
                if not value:
                    continue
                if invalid[mapping.property_name]:
                    self.record_error(
                        result,
                        document.path,
                        invalid[mapping.property_name],
                        ErrorType.VALIDATION,
                        names=[mapping.property_name],
                    )
                    continue
                for target in self.extract_links(value):
                    prepared.rows.append(
                        RelationshipRow(
                            path=document.path,
                            name=mapping.property_name,
                            target=target,
                            relationship_type=mapping.relationship_type,
                            direction=mapping.direction,
                        )
                    )
        return prepared

    # Statements

    def target_statement(self) -> str:
        label = node_label_clause(self.node_label)
        return (
            "UNWIND $batch AS item "
            f"MERGE (target{label} {{path: item.targetPath}}) "
            "ON CREATE SET target.name = item.targetName"
        )

    def source_statement(self) -> str:
        label = node_label_clause(self.node_label)
        return (
            "UNWIND $batch AS sourcePath "
            f"MATCH (source{label} {{path: sourcePath}}) "
            "RETURN sourcePath"
        )

    def relationship_statement(
        self, relationship_type: str, direction: RelationshipDirection
    ) -> str:
        relationship_type = validate_identifier(relationship_type, "Relationship type")
        label = node_label_clause(self.node_label)
        if direction == RelationshipDirection.OUTGOING:
            pattern = f"(source)-[r:{relationship_type}]->(target)"
        else:
            pattern = f"(target)-[r:{relationship_type}]->(source)"
        return (
            "UNWIND $batch AS item "
            f"MATCH (source{label} {{path: item.sourcePath}}) "
            f"MATCH (target{label} {{path: item.targetPath}}) "
            f"MERGE {pattern}"
        )

    # Batch protocol

    def apply_batch(
        self, tx: Any, batch: List[RelationshipRow], result: ExecutorResult
    ) -> None:
        if not self._ensure_targets(tx, batch, result):
            return
        existing = self._existing_sources(tx, batch, result)
        if existing is None:
            return

        valid = []
        for row in batch:
            if row.path in existing:
                valid.append(row)
            else:
                self.record_error(
                    result,
                    row.path,
                    "Source node does not exist",
                    ErrorType.SOURCE_MISSING,
                    names=[row.name],
                    target=row.target,
                )

        for (relationship_type, direction), rows in self._group(valid).items():
            self._merge_group(tx, relationship_type, direction, rows, result)

    def _ensure_targets(
        self, tx: Any, batch: List[RelationshipRow], result: ExecutorResult
    ) -> bool:
        targets: Dict[str, str] = {}
        for row in batch:
            targets.setdefault(row.target, document_name(row.target))
        try:
            _, counters = self.run_statement(
                tx,
                self.target_statement(),
                batch=[{"targetPath": p, "targetName": n} for p, n in targets.items()],
            )
        except Exception as e:
            error_type = categorize_with_default(e, ErrorType.TARGET_FAILURE)
            logger.warning(
                "sync_target_nodes_failed",
                targets=len(targets),
                error_type=error_type.value,
                error=str(e),
            )
            for row in batch:
                self.record_error(
                    result,
                    row.path,
                    f"Target node creation failed: {e}",
                    error_type,
                    names=[row.name],
                    target=row.target,
                )
            return False

        self.add_stat(result, "target_nodes_created", counters.nodes_created)
        return True

    def _existing_sources(
        self, tx: Any, batch: List[RelationshipRow], result: ExecutorResult
    ) -> Optional[set]:
        sources = list(OrderedDict.fromkeys(row.path for row in batch))
        try:
            records, _ = self.run_statement(tx, self.source_statement(), batch=sources)
        except Exception as e:
            error_type = categorize_with_default(e, ErrorType.SOURCE_MISSING)
            logger.warning(
                "sync_source_check_failed",
                sources=len(sources),
                error_type=error_type.value,
                error=str(e),
            )
            for row in batch:
                self.record_error(
                    result,
                    row.path,
                    f"Source node check failed: {e}",
                    error_type,
                    names=[row.name],
                    target=row.target,
                )
            return None
        return {record["sourcePath"] for record in records}

    @staticmethod
    def _group(
        rows: List[RelationshipRow],
    ) -> "OrderedDict[Tuple[str, RelationshipDirection], List[RelationshipRow]]":
        groups: "OrderedDict[Tuple[str, RelationshipDirection], List[RelationshipRow]]" = (
            OrderedDict()
        )
        for row in rows:
            groups.setdefault((row.relationship_type, row.direction), []).append(row)
        return groups

    def _merge_group(
        self,
        tx: Any,
        relationship_type: str,
        direction: RelationshipDirection,
        rows: List[RelationshipRow],
        result: ExecutorResult,
    ) -> None:
        try:
            _, counters = self.run_statement(
                tx,
                self.relationship_statement(relationship_type, direction),
                batch=[{"sourcePath": r.path, "targetPath": r.target} for r in rows],
            )
        except Exception as e:
            error_type = categorize_error(e)
            logger.warning(
                "sync_relationship_group_failed",
                relationship_type=relationship_type,
                direction=direction.value,
                rows=len(rows),
                error_type=error_type.value,
                error=str(e),
            )
            for row in rows:
                self.record_error(
                    result,
                    row.path,
                    str(e),
                    error_type,
                    names=[row.name],
                    target=row.target,
                )
            return

        created = counters.relationships_created
        self.add_stat(result, "relationships_created", created)
        self.add_stat(result, "relationships_updated", max(0, len(rows) - created))
        for row in rows:
            self.record_success(result, row.path, [row.name])
