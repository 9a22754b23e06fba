import json

from graphsync.sync import NameSet, SyncHistory, SyncItem, SyncKind, SyncStatus
from graphsync.sync.types import RowError


def _item(n):
    item = SyncItem(kind=SyncKind.NODE_PROPERTY, names=NameSet([f"p{n}", "status"]))
    item.mark_started()
    item.mark_finished(SyncStatus.COMPLETED, message=f"run {n}")
    return item


def test_history_is_capped_and_newest_first():
    history = SyncHistory()

    for n in range(60):
        history.add(_item(n))

    entries = history.entries()
    assert len(entries) == 50
    assert entries[0]["message"] == "run 59"
    assert entries[-1]["message"] == "run 10"


def test_names_are_serialized_as_ordered_lists():
    history = SyncHistory()
    entry = history.add(_item(1))

    assert entry["names"] == ["p1", "status"]


def test_history_persists_to_json_and_reloads(tmp_path):
    path = tmp_path / "state" / "history.json"
    history = SyncHistory(str(path), max_entries=3)
    item = _item(1)
    item.errors.append(RowError(document="a.md", error="nope", error_type="VALIDATION"))
    history.add(item)

    on_disk = json.loads(path.read_text())
    assert on_disk[0]["id"] == item.id

    reloaded = SyncHistory(str(path), max_entries=3)
    restored = reloaded.items()[0]
    assert restored.id == item.id
    assert restored.names == {"p1", "status"}
    assert restored.status == SyncStatus.COMPLETED
    assert restored.errors[0].error_type == "VALIDATION"


def test_corrupt_history_file_starts_empty(tmp_path):
    path = tmp_path / "history.json"
    path.write_text("{not json")

    assert SyncHistory(str(path)).entries() == []
