"""
Subscribable sync state.

Two slices are held: the queue (queued items plus the current one) and the
run (running/paused/cancelled flags plus live progress). Mutations merge
shallowly into a slice and synchronously notify subscribers of that slice and
subscribers of ``ALL``. Subscribing replays the current snapshot immediately.
"""

import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from graphsync.shared.observability import get_logger

from .types import Progress, SyncItem

logger = get_logger(__name__)


class StateSlice(str, Enum):
    QUEUE = "queue"
    RUN = "run"
    ALL = "all"


@dataclass(frozen=True)
class QueueState:
    queue: Tuple[SyncItem, ...] = ()
    current: Optional[SyncItem] = None


@dataclass(frozen=True)
class RunState:
    running: bool = False
    paused: bool = False
    cancelled: bool = False
    progress: Progress = field(default_factory=Progress)


@dataclass(frozen=True)
class StateSnapshot:
    queue: QueueState
    run: RunState


Subscriber = Callable[[Any], None]


class StateStore:
    def __init__(self):
        self._lock = threading.RLock()
        self._queue_state = QueueState()
        self._run_state = RunState()
        self._subscribers: Dict[StateSlice, List[Subscriber]] = {
            s: [] for s in StateSlice
        }

    @property
    def queue_state(self) -> QueueState:
        return self._queue_state

    @property
    def run_state(self) -> RunState:
        return self._run_state

    def snapshot(self) -> StateSnapshot:
        with self._lock:
            return StateSnapshot(queue=self._queue_state, run=self._run_state)

    def _slice_value(self, state_slice: StateSlice) -> Any:
        if state_slice == StateSlice.QUEUE:
            return self._queue_state
        if state_slice == StateSlice.RUN:
            return self._run_state
        return self.snapshot()

    def set_queue_state(self, **changes) -> QueueState:
        with self._lock:
            if "queue" in changes:
                changes["queue"] = tuple(changes["queue"])
            self._queue_state = replace(self._queue_state, **changes)
            value = self._queue_state
        self._notify(StateSlice.QUEUE, value)
        return value

    def set_run_state(self, **changes) -> RunState:
        with self._lock:
            self._run_state = replace(self._run_state, **changes)
            value = self._run_state
        self._notify(StateSlice.RUN, value)
        return value

    def set_progress(self, **changes) -> Progress:
        with self._lock:
            progress = replace(self._run_state.progress, **changes)
        self.set_run_state(progress=progress)
        return progress

    def reset_run_state(self) -> RunState:
        with self._lock:
            self._run_state = RunState()
            value = self._run_state
        self._notify(StateSlice.RUN, value)
        return value

    def subscribe(
        self, state_slice: StateSlice, callback: Subscriber
    ) -> Callable[[], None]:
        """Register ``callback``; it is called right away with the current value."""
        state_slice = StateSlice(state_slice)
        with self._lock:
            self._subscribers[state_slice].append(callback)
            current = self._slice_value(state_slice)
        self._invoke(callback, current)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers[state_slice]
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def _notify(self, state_slice: StateSlice, value: Any) -> None:
        with self._lock:
            slice_callbacks = list(self._subscribers[state_slice])
            all_callbacks = list(self._subscribers[StateSlice.ALL])
            snapshot = (
                StateSnapshot(queue=self._queue_state, run=self._run_state)
                if all_callbacks
                else None
            )
        for callback in slice_callbacks:
            self._invoke(callback, value)
        for callback in all_callbacks:
            self._invoke(callback, snapshot)

    def _invoke(self, callback: Subscriber, value: Any) -> None:
        try:
            callback(value)
        except Exception as e:
            logger.warning(
                "state_subscriber_failed",
                callback=getattr(callback, "__name__", repr(callback)),
                error=str(e),
            )
