from conftest import FakeDriver, InMemoryDocuments, make_config

from graphsync.documents import Document
from graphsync.shared.config import LabelRule
from graphsync.sync import ExecutionControl, NameSet, StateStore, SyncItem, SyncKind
from graphsync.sync.executors import LabelExecutor
from graphsync.sync.executors.labels import rule_matches


def _run(graph, config, front_matter, names):
    documents = InMemoryDocuments(front_matter)
    executor = LabelExecutor(
        config, documents, documents.read_front_matter, StateStore(), ExecutionControl()
    )
    item = SyncItem(kind=SyncKind.LABEL, names=NameSet(names))
    return executor.execute(item, FakeDriver(graph).session())


def test_rule_matching():
    tag_rule = LabelRule(label_name="PROJECT", type="tag", pattern="#project")
    root_rule = LabelRule(label_name="INBOX", type="path", pattern="")
    dir_rule = LabelRule(label_name="DAILY", type="path", pattern="/journal/daily/")

    assert tag_rule.pattern == "project"
    assert rule_matches(tag_rule, Document("x.md", "x"), ["project"])
    assert rule_matches(root_rule, Document("x.md", "x"), [])
    assert not rule_matches(root_rule, Document("a/x.md", "x"), [])
    assert rule_matches(dir_rule, Document("journal/daily/d.md", "d"), [])
    assert not rule_matches(dir_rule, Document("journal/dailyish/d.md", "d"), [])


def test_applies_labels_to_existing_nodes(graph):
    graph.add_node("p.md")
    graph.add_node("journal/daily/d.md")
    graph.nodes["journal/daily/d.md"]["labels"].add("DAILY")
    config = make_config(
        labels=[
            {"label_name": "PROJECT", "type": "tag", "pattern": "project"},
            {"label_name": "DAILY", "type": "path", "pattern": "journal/daily"},
        ]
    )
    front_matter = {"p.md": {"tags": ["#project"]}, "journal/daily/d.md": None}

    result = _run(graph, config, front_matter, ["PROJECT", "DAILY"])

    assert result.success_count == 2
    assert "PROJECT" in graph.nodes["p.md"]["labels"]
    assert result.stats["labels_applied"] == 1
    assert result.stats["labels_already_present"] == 1


def test_missing_document_node_is_source_missing(graph):
    config = make_config(labels=[{"label_name": "PROJECT", "type": "tag", "pattern": "project"}])

    result = _run(graph, config, {"p.md": {"tags": "project"}}, ["PROJECT"])

    assert result.error_count == 1
    assert result.errors[0].error_type == "SOURCE_MISSING"
    assert result.name_stats["PROJECT"].error_count == 1


def test_invalid_label_is_validation_error(graph):
    graph.add_node("p.md")
    config = make_config(labels=[{"label_name": "Project", "type": "tag", "pattern": "project"}])

    result = _run(graph, config, {"p.md": {"tags": ["project"]}}, ["Project"])

    assert result.error_count == 1
    assert result.errors[0].error_type == "VALIDATION"
    assert graph.statements == []


def test_no_matching_documents(graph):
    config = make_config(labels=[{"label_name": "PROJECT", "type": "tag", "pattern": "project"}])

    result = _run(graph, config, {"p.md": {"tags": ["other"]}}, ["PROJECT"])

    assert result.success is True
    assert result.message == "No labels to apply"
