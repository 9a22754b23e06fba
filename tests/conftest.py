# Shared fixtures: in-process graph double, in-memory documents, engine factory

import re
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from graphsync.documents import Document, document_name  # noqa: E402
from graphsync.shared.config import (  # noqa: E402
    Config,
    LabelRule,
    MappingConfig,
    NodePropertyMapping,
    RelationshipMapping,
    Settings,
    SyncConfig,
)
from graphsync.shared.credentials import SessionCredentialStore  # noqa: E402
from graphsync.sync import SyncEngine, SyncHistory  # noqa: E402

REL_PATTERN = re.compile(r"\[r:([A-Z0-9_]+)\]")
SET_LABEL_PATTERN = re.compile(r"SET n:([A-Z0-9_]+)")


def counters(**values) -> SimpleNamespace:
    base = {
        "nodes_created": 0,
        "properties_set": 0,
        "relationships_created": 0,
        "labels_added": 0,
    }
    base.update(values)
    return SimpleNamespace(**base)


class FakeResult:
    def __init__(self, records: List[Dict[str, Any]], summary_counters: SimpleNamespace):
        self._records = records
        self._counters = summary_counters

    def __iter__(self):
        return iter(self._records)

    def consume(self):
        return SimpleNamespace(counters=self._counters)


class FakeGraph:
    """
    Minimal interpretation of the statements the executors issue.

    ``fail_on`` maps a substring of the statement text to the exception raised
    when a statement containing it runs. ``on_statement`` is called before
    every statement with (graph, query, params).
    """

    def __init__(self):
        self.nodes: Dict[str, Dict[str, Any]] = {}
        self.relationships: set = set()
        self.fail_on: Dict[str, Exception] = {}
        self.on_statement: Optional[Callable[["FakeGraph", str, Dict[str, Any]], None]] = None
        self.statements: List[str] = []

    def add_node(self, path: str, **props) -> None:
        self.nodes[path] = {"labels": set(), "props": {"path": path, "name": document_name(path), **props}}

    def execute(self, query: str, params: Dict[str, Any]) -> FakeResult:
        self.statements.append(query)
        if self.on_statement is not None:
            self.on_statement(self, query, params)
        for needle, exc in self.fail_on.items():
            if needle in query:
                raise exc

        if "SET n += row.props" in query:
            return self._merge_nodes(params["rows"])
        if "item.targetName" in query:
            return self._merge_targets(params["batch"])
        if "RETURN sourcePath" in query:
            found = [{"sourcePath": p} for p in params["batch"] if p in self.nodes]
            return FakeResult(found, counters())
        if "MERGE (source)-" in query or "MERGE (target)-" in query:
            return self._merge_relationships(query, params["batch"])
        if "RETURN path" in query:
            return self._set_labels(query, params["paths"])
        raise AssertionError(f"Unexpected statement: {query}")

    def _merge_nodes(self, rows):
        created = props_set = 0
        for row in rows:
            if row["path"] not in self.nodes:
                self.add_node(row["path"])
                self.nodes[row["path"]]["props"]["name"] = row["name"]
                created += 1
            self.nodes[row["path"]]["props"].update(row["props"])
            props_set += len(row["props"])
        return FakeResult([], counters(nodes_created=created, properties_set=props_set))

    def _merge_targets(self, batch):
        created = 0
        for item in batch:
            if item["targetPath"] not in self.nodes:
                self.add_node(item["targetPath"])
                self.nodes[item["targetPath"]]["props"]["name"] = item["targetName"]
                created += 1
        return FakeResult([], counters(nodes_created=created))

    def _merge_relationships(self, query, batch):
        rel_type = REL_PATTERN.search(query).group(1)
        outgoing = "MERGE (source)-" in query
        created = 0
        for item in batch:
            start, end = item["sourcePath"], item["targetPath"]
            key = (start, rel_type, end) if outgoing else (end, rel_type, start)
            if key not in self.relationships:
                self.relationships.add(key)
                created += 1
        return FakeResult([], counters(relationships_created=created))

    def _set_labels(self, query, paths):
        label = SET_LABEL_PATTERN.search(query).group(1)
        matched, added = [], 0
        for path in paths:
            node = self.nodes.get(path)
            if node is None:
                continue
            matched.append({"path": path})
            if label not in node["labels"]:
                node["labels"].add(label)
                added += 1
        return FakeResult(matched, counters(labels_added=added))


class FakeTransaction:
    """
    With ``strict`` set, a failed statement terminates the transaction the way
    the server does: later statements and the commit raise.
    """

    def __init__(
        self,
        graph: FakeGraph,
        probe: Optional[Callable[[], Any]] = None,
        strict: bool = False,
    ):
        self.graph = graph
        self.probe = probe
        self.strict = strict
        self.failed = False
        self.committed = False
        self.rolled_back = False
        self.rollback_probe = None

    def run(self, query, parameters=None, **kwargs):
        if self.failed:
            raise RuntimeError("Transaction has been terminated and must be rolled back")
        params = dict(parameters or {})
        params.update(kwargs)
        try:
            return self.graph.execute(query, params)
        except Exception:
            self.failed = self.strict
            raise

    def commit(self):
        if self.failed:
            raise RuntimeError("Transaction has been terminated")
        self.committed = True

    def rollback(self):
        self.rolled_back = True
        if self.probe is not None:
            self.rollback_probe = self.probe()


class FakeSession:
    def __init__(self, driver: "FakeDriver"):
        self.driver = driver

    def begin_transaction(self):
        tx = FakeTransaction(
            self.driver.graph, self.driver.rollback_probe, strict=self.driver.strict
        )
        self.driver.transactions.append(tx)
        return tx

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


class FakeDriver:
    def __init__(self, graph: FakeGraph):
        self.graph = graph
        self.transactions: List[FakeTransaction] = []
        self.rollback_probe = None
        self.strict = False
        self.closed = False

    def session(self, **kwargs):
        return FakeSession(self)

    def close(self):
        self.closed = True


class FakeConnections:
    def __init__(self, driver: FakeDriver):
        self.driver = driver
        self.opened = 0
        self.closed = 0

    def open_driver(self, credentials):
        self.opened += 1
        self.driver.closed = False
        return self.driver

    def close_driver(self, driver):
        if driver is not None:
            self.closed += 1
            driver.close()


class InMemoryDocuments:
    """Document source backed by a ``{path: front_matter}`` dict."""

    def __init__(self, front_matter: Dict[str, Optional[Dict[str, Any]]]):
        self.front_matter = front_matter

    def list_documents(self) -> List[Document]:
        return [Document(path=p, name=document_name(p)) for p in sorted(self.front_matter)]

    def read_front_matter(self, document: Document) -> Optional[Dict[str, Any]]:
        return self.front_matter.get(document.path)


def simple_links(value) -> List[str]:
    """Link extractor for tests: ``[[x]]`` -> ``x.md``"""
    values = value if isinstance(value, list) else [value]
    targets = []
    for entry in values:
        if isinstance(entry, str) and entry.startswith("[[") and entry.endswith("]]"):
            targets.append(entry[2:-2] + ".md")
    return targets


def make_config(
    node_properties=(),
    relationships=(),
    labels=(),
    **sync_options,
) -> Config:
    return Config(
        sync=SyncConfig(**sync_options),
        mappings=MappingConfig(
            node_properties=[
                m if isinstance(m, NodePropertyMapping) else NodePropertyMapping(**m)
                for m in node_properties
            ],
            relationships=[
                m if isinstance(m, RelationshipMapping) else RelationshipMapping(**m)
                for m in relationships
            ],
            labels=[r if isinstance(r, LabelRule) else LabelRule(**r) for r in labels],
        ),
    )


@pytest.fixture
def graph() -> FakeGraph:
    return FakeGraph()


@pytest.fixture
def driver(graph) -> FakeDriver:
    return FakeDriver(graph)


@pytest.fixture
def credentials() -> SessionCredentialStore:
    store = SessionCredentialStore("neo4j")
    store.set_password("secret")
    return store


@pytest.fixture
def make_engine(driver, credentials):
    def _make(config: Config, front_matter: Dict[str, Any], **kwargs) -> SyncEngine:
        documents = InMemoryDocuments(front_matter)
        options = dict(
            config=config,
            settings=Settings(),
            documents=documents,
            read_front_matter=documents.read_front_matter,
            extract_links=simple_links,
            credentials=credentials,
            connections=FakeConnections(driver),
            history=SyncHistory(None, config.sync.history_max_entries),
            autostart=False,
        )
        options.update(kwargs)
        return SyncEngine(**options)

    return _make
