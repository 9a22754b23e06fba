"""
Execution control plane.

Holds the pause/cancel signals and the handle of the transaction currently
open by the active executor. Executors consult it only at batch boundaries:
``wait_if_paused`` blocks the batch loop while paused and returns as soon as
the run is resumed or cancelled; ``is_cancelled`` is polled once per batch.
"""

import threading
from typing import Any, Callable, Optional

from graphsync.shared.observability import get_logger

logger = get_logger(__name__)


class ExecutionControl:
    def __init__(self):
        self._cond = threading.Condition()
        self._paused = False
        self._cancelled = False
        self._transaction: Optional[Any] = None
        self._cancel_timer: Optional[threading.Timer] = None

    # Run lifecycle

    def begin_run(self) -> None:
        with self._cond:
            if self._transaction is not None:
                raise RuntimeError("A transaction is still open from a previous run")
            self._paused = False
            self._cancelled = False

    def end_run(self) -> None:
        self._stop_timer()
        with self._cond:
            self._paused = False
            self._cancelled = False
            self._transaction = None
            self._cond.notify_all()

    # Signals

    def pause(self) -> None:
        with self._cond:
            self._paused = True
        logger.info("sync_paused")

    def resume(self) -> None:
        with self._cond:
            self._paused = False
            self._cond.notify_all()
        logger.info("sync_resumed")

    def cancel(self) -> None:
        # Paused stays set: the rollback happens without resuming first
        with self._cond:
            self._cancelled = True
            self._cond.notify_all()
        logger.info("sync_cancel_requested", paused=self._paused)

    def is_paused(self) -> bool:
        return self._paused

    def is_cancelled(self) -> bool:
        return self._cancelled

    def wait_if_paused(self, poll_interval: float = 0.1) -> None:
        with self._cond:
            while self._paused and not self._cancelled:
                self._cond.wait(timeout=poll_interval)

    # Transaction handle

    def set_transaction(self, tx: Any) -> None:
        with self._cond:
            self._transaction = tx

    def clear_transaction(self) -> None:
        with self._cond:
            self._transaction = None

    @property
    def transaction(self) -> Optional[Any]:
        return self._transaction

    @property
    def has_open_transaction(self) -> bool:
        return self._transaction is not None

    # Grace period

    def schedule_cancel(
        self, delay: float, on_cancel: Optional[Callable[[], None]] = None
    ) -> None:
        """Pause now and cancel after ``delay`` seconds unless undone."""
        self._stop_timer()
        self.pause()

        def fire() -> None:
            with self._cond:
                self._cancel_timer = None
            self.cancel()
            if on_cancel is not None:
                on_cancel()

        if delay <= 0:
            fire()
            return

        timer = threading.Timer(delay, fire)
        timer.daemon = True
        with self._cond:
            self._cancel_timer = timer
        timer.start()
        logger.info("sync_cancel_scheduled", delay_seconds=delay)

    def undo_cancel(self) -> bool:
        """Withdraw a pending cancel and resume; False if none was pending."""
        if not self._stop_timer():
            return False
        self.resume()
        logger.info("sync_cancel_undone")
        return True

    @property
    def cancel_pending(self) -> bool:
        return self._cancel_timer is not None

    def _stop_timer(self) -> bool:
        with self._cond:
            timer, self._cancel_timer = self._cancel_timer, None
        if timer is None:
            return False
        timer.cancel()
        return True
