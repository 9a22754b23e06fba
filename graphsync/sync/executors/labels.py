"""
Label sync.

Tag rules match the document's front-matter ``tags``; path rules match the
directory prefix (an empty pattern means documents at the vault root). Labels
are applied to existing document nodes only, one statement per label per
batch; documents whose node is absent are reported as missing sources.
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, List

from graphsync.documents import Document, extract_tags
from graphsync.neo.identifiers import identifier_error, node_label_clause, validate_identifier
from graphsync.shared.config import LabelRule, LabelRuleType
from graphsync.shared.observability import get_logger

from ..errors import ErrorType, categorize_error
from ..types import ExecutorResult, NameSet, SyncItem, SyncKind, SyncPhase
from .base import BatchExecutor, Prepared

logger = get_logger(__name__)


@dataclass
class LabelRow:
    path: str
    name: str


def rule_matches(rule: LabelRule, document: Document, tags: List[str]) -> bool:
    if rule.type == LabelRuleType.TAG:
        return rule.pattern in tags
    if rule.pattern == "":
        return "/" not in document.path
    return document.path == rule.pattern or document.path.startswith(rule.pattern + "/")


class LabelExecutor(BatchExecutor[LabelRow]):
    kind = SyncKind.LABEL

    def phase_for(self, item: SyncItem) -> SyncPhase:
        return SyncPhase.APPLYING_LABELS

    def row_names(self, row: LabelRow) -> List[str]:
        return [row.name]

    def rules_for(self, names: NameSet) -> List[LabelRule]:
        by_label: Dict[str, List[LabelRule]] = {}
        for rule in self.config.mappings.enabled_labels():
            by_label.setdefault(rule.label_name, []).append(rule)
        return [rule for rules in self.requested(names, by_label) for rule in rules]

    def prepare(self, names: NameSet, result: ExecutorResult) -> Prepared[LabelRow]:
        rules = self.rules_for(names)
        if not rules:
            return Prepared(message="No label rules to sync")
        labels = list(OrderedDict.fromkeys(rule.label_name for rule in rules))
        self._init_name_stats(result, labels)
        invalid = {label: identifier_error(label, "Label") for label in labels}

        prepared: Prepared[LabelRow] = Prepared()
        for document in self.documents.list_documents():
            tags = extract_tags(self.read_front_matter(document))
            matched = OrderedDict()
            for rule in rules:
                if rule_matches(rule, document, tags):
                    matched[rule.label_name] = None
            if not matched:
                prepared.skipped += 1
                continue
            for label in matched:
                if invalid[label]:
                    self.record_error(
                        result, document.path, invalid[label], ErrorType.VALIDATION, names=[label]
                    )
                else:
                    prepared.rows.append(LabelRow(path=document.path, name=label))

        if not prepared.rows and not result.error_count:
            prepared.message = "No labels to apply"
        return prepared

    def statement(self, label: str) -> str:
        label = validate_identifier(label, "Label")
        return (
            "UNWIND $paths AS path "
            f"MATCH (n{node_label_clause(self.node_label)} {{path: path}}) "
            f"SET n:{label} "
            "RETURN path"
        )

    def apply_batch(self, tx: Any, batch: List[LabelRow], result: ExecutorResult) -> None:
        groups: "OrderedDict[str, List[LabelRow]]" = OrderedDict()
        for row in batch:
            groups.setdefault(row.name, []).append(row)

        for label, rows in groups.items():
            try:
                records, counters = self.run_statement(
                    tx, self.statement(label), paths=[row.path for row in rows]
                )
            except Exception as e:
                error_type = categorize_error(e)
                logger.warning(
                    "sync_label_group_failed",
                    label=label,
                    rows=len(rows),
                    error_type=error_type.value,
                    error=str(e),
                )
                for row in rows:
                    self.record_error(result, row.path, str(e), error_type, names=[label])
                continue

            matched = {record["path"] for record in records}
            applied = counters.labels_added
            self.add_stat(result, "labels_applied", applied)
            self.add_stat(result, "labels_already_present", max(0, len(matched) - applied))
            for row in rows:
                if row.path in matched:
                    self.record_success(result, row.path, [label])
                else:
                    self.record_error(
                        result,
                        row.path,
                        "Document node does not exist",
                        ErrorType.SOURCE_MISSING,
                        names=[label],
                    )
