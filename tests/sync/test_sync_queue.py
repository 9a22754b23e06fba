import threading

from graphsync.sync import NameSet, StateSlice, StateStore, SyncItem, SyncKind, SyncScope
from graphsync.sync.queue import SyncQueueManager

NODE = SyncKind.NODE_PROPERTY
REL = SyncKind.RELATIONSHIP
LABEL = SyncKind.LABEL


def _manager(enabled=None, dispatch=None, **kwargs):
    enabled = enabled if enabled is not None else {NODE: [], REL: [], LABEL: []}
    dispatched = []

    def default_dispatch(item):
        dispatched.append(item)

    manager = SyncQueueManager(
        StateStore(),
        enabled_names=lambda kind: list(enabled[kind]),
        dispatch=dispatch or default_dispatch,
        autostart=kwargs.pop("autostart", False),
        **kwargs,
    )
    return manager, dispatched


def test_same_name_twice_yields_one_item():
    manager, _ = _manager()

    manager.add_selected_sync(NODE, "Status")
    manager.add_selected_sync(NODE, "Status")

    assert len(manager.queue) == 1
    item = manager.queue[0]
    assert item.names == {"Status"}
    assert item.scope == SyncScope.SELECTED


def test_selected_requests_fold_into_existing_item_of_same_kind():
    manager, _ = _manager()

    first = manager.add_selected_sync(NODE, "status")
    second = manager.add_selected_sync(NODE, "priority")
    manager.add_selected_sync(REL, "related")

    assert first.id == second.id
    assert [item.kind for item in manager.queue] == [NODE, REL]
    assert manager.queue[0].names.to_list() == ["status", "priority"]


def test_full_sync_creates_one_item_per_kind_even_when_empty():
    manager, _ = _manager({NODE: ["status", "priority"], REL: ["related"], LABEL: []})

    items = manager.add_full_sync()

    assert [item.kind for item in items] == [NODE, REL, LABEL]
    assert all(item.scope == SyncScope.FULL for item in items)
    assert items[0].names == {"status", "priority"}
    assert len(items[2].names) == 0


def test_full_sync_twice_extends_instead_of_duplicating():
    enabled = {NODE: ["status"], REL: [], LABEL: []}
    manager, _ = _manager(enabled)

    manager.add_full_sync()
    enabled[NODE].append("due")
    manager.add_full_sync()

    node_items = [item for item in manager.queue if item.kind == NODE]
    assert len(node_items) == 1
    assert node_items[0].names.to_list() == ["status", "due"]
    assert len(manager.queue) == 3


def test_selected_request_after_full_sync_mutates_full_item():
    manager, _ = _manager({NODE: ["status"], REL: [], LABEL: []})
    (full, _, _) = manager.add_full_sync()

    returned = manager.add_selected_sync(NODE, "draft")

    assert returned.id == full.id
    assert len([i for i in manager.queue if i.kind == NODE]) == 1
    assert "draft" in full.names


def test_full_sync_promotes_queued_selected_item():
    manager, _ = _manager({NODE: ["status", "priority"], REL: [], LABEL: []})
    selected = manager.add_selected_sync(NODE, "status")

    manager.add_full_sync()

    node_items = [i for i in manager.queue if i.kind == NODE]
    assert node_items == [selected]
    assert selected.scope == SyncScope.FULL
    assert selected.names == {"status", "priority"}


def test_add_name_to_active_full_sync_extends_current_and_queued():
    manager, _ = _manager({NODE: ["status"], REL: [], LABEL: []})
    (queued_full, _, _) = manager.add_full_sync()
    current = SyncItem(kind=NODE, names=NameSet(["status"]), scope=SyncScope.FULL)
    manager.state.set_queue_state(current=current)

    extended = manager.add_name_to_active_full_sync(NODE, "due")

    assert extended is True
    assert "due" in current.names
    assert "due" in queued_full.names


def test_add_name_to_active_full_sync_ignores_selected_items():
    manager, _ = _manager({NODE: ["status", "priority"], REL: [], LABEL: []})
    selected = manager.add_selected_sync(NODE, "status")

    assert manager.add_name_to_active_full_sync(NODE, "due") is False
    assert "due" not in selected.names


def test_remove_item_filters_by_id():
    manager, _ = _manager()
    node = manager.add_selected_sync(NODE, "status")
    rel = manager.add_selected_sync(REL, "related")

    assert manager.remove_item(node.id) is True
    assert manager.remove_item("missing") is False
    assert [item.id for item in manager.queue] == [rel.id]


def test_process_queue_continues_after_item_failure():
    seen = []

    def dispatch(item):
        seen.append(item.kind)
        if item.kind == NODE:
            raise RuntimeError("Password not available")

    manager, _ = _manager(dispatch=dispatch)
    manager.add_selected_sync(NODE, "status")
    manager.add_selected_sync(LABEL, "PROJECT")

    assert manager.process_queue() is True

    assert seen == [NODE, LABEL]
    assert manager.queue == []
    assert manager.current is None
    assert manager.is_processing is False


def test_process_queue_is_single_flight():
    nested = []
    manager = None

    def dispatch(item):
        nested.append(manager.process_queue())

    manager, _ = _manager(dispatch=dispatch)
    manager.add_selected_sync(NODE, "status")
    manager.process_queue()

    assert nested == [False]


def test_current_is_none_or_single_item_during_processing():
    observed = []
    manager, _ = _manager()
    manager.state.subscribe(StateSlice.QUEUE, observed.append)

    manager.add_selected_sync(NODE, "status")
    manager.add_selected_sync(REL, "related")
    manager.add_selected_sync(LABEL, "PROJECT")
    manager.process_queue()

    for queue_state in observed:
        ids = [item.id for item in queue_state.queue]
        assert len(ids) == len(set(ids))
        if queue_state.current is not None:
            assert queue_state.current.id not in ids
    assert observed[-1].current is None


def test_items_are_dispatched_in_fifo_order():
    manager, dispatched = _manager()
    manager.add_selected_sync(REL, "related")
    manager.add_selected_sync(NODE, "status")
    manager.add_selected_sync(REL, "parent")

    manager.process_queue()

    assert [item.kind for item in dispatched] == [REL, NODE]
    assert dispatched[0].names.to_list() == ["related", "parent"]


def test_legacy_detection_treats_covering_selection_as_full():
    manager, _ = _manager(
        {NODE: ["status"], REL: [], LABEL: []}, legacy_full_sync_detection=True
    )
    selected = manager.add_selected_sync(NODE, "status")

    assert manager.is_full(selected) is True
    manager.add_full_sync()
    assert len([i for i in manager.queue if i.kind == NODE]) == 1


def test_autostart_drains_queue_on_background_thread():
    done = threading.Event()

    def dispatch(item):
        done.set()

    manager, _ = _manager(dispatch=dispatch, autostart=True)
    manager.add_selected_sync(NODE, "status")

    assert done.wait(2)
    assert manager.wait_until_idle(2)
    assert manager.queue == []
