"""Serialized execution of outbound completion calls.

The completion endpoint is only ever called from one place at a time. Every
caller hands a zero-argument callable to :class:`SequentialTaskQueue` and
receives a :class:`concurrent.futures.Future` straight away; a single drain
worker runs the callables strictly in submission order and settles each
future exactly once.

The worker is woken as soon as work is submitted and additionally re-checks
the queue every ``drain_interval`` seconds. Tests that do not want a thread
can leave the worker stopped and advance the queue with :meth:`tick`.
"""
from __future__ import annotations

import itertools
import logging
import threading
import time
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Optional

LOGGER = logging.getLogger(__name__)

DEFAULT_DRAIN_INTERVAL = 1.0


@dataclass(frozen=True)
class QueueEntry:
    """One pending unit of work and the handle its caller is waiting on."""

    sequence: int
    task: Callable[[], Any]
    handle: Future

    def on_complete(self, result: Any) -> None:
        self.handle.set_result(result)

    def on_error(self, exc: BaseException) -> None:
        self.handle.set_exception(exc)


class SequentialTaskQueue:
    """FIFO queue that runs at most one task at a time."""

    def __init__(
        self,
        *,
        drain_interval: float = DEFAULT_DRAIN_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        name: str = "completion-queue",
    ) -> None:
        if drain_interval <= 0:
            raise ValueError("drain_interval must be positive.")
        self.drain_interval = float(drain_interval)
        self.name = name
        self._clock = clock
        self._condition = threading.Condition()
        self._pending: Deque[QueueEntry] = deque()
        self._sequence = itertools.count(1)
        self._busy = False
        self._started_at: Optional[float] = None
        self._worker: Optional[threading.Thread] = None
        self._stop_requested = False

    # ---------------- public API ----------------
    def submit(self, task: Callable[[], Any]) -> Future:
        """Append ``task`` to the queue and return its notification handle."""

        if not callable(task):
            raise TypeError("task must be a zero-argument callable.")

        handle: Future = Future()
        with self._condition:
            entry = QueueEntry(sequence=next(self._sequence), task=task, handle=handle)
            self._pending.append(entry)
            LOGGER.debug("Queued task #%s (%s pending)", entry.sequence, len(self._pending))
            self._condition.notify_all()
        return handle

    def tick(self) -> bool:
        """Run one drain step. Returns True when a task was executed."""

        with self._condition:
            if self._busy or not self._pending:
                return False
            entry = self._pending.popleft()
            self._busy = True
            self._started_at = self._clock()

        try:
            self._execute(entry)
        finally:
            with self._condition:
                self._busy = False
                self._started_at = None
                self._condition.notify_all()
        return True

    def run_until_idle(self) -> int:
        """Drain every pending task on the calling thread."""

        executed = 0
        while self.tick():
            executed += 1
        return executed

    def start(self) -> None:
        with self._condition:
            if self._worker is not None and self._worker.is_alive():
                return
            self._stop_requested = False
            self._worker = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._worker.start()
        LOGGER.info("Started %s (drain interval %.2fs)", self.name, self.drain_interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the drain worker. Pending entries stay queued."""

        with self._condition:
            worker = self._worker
            self._stop_requested = True
            self._condition.notify_all()
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout)
        with self._condition:
            if self._worker is worker:
                self._worker = None
        LOGGER.info("Stopped %s", self.name)

    @property
    def busy(self) -> bool:
        with self._condition:
            return self._busy

    @property
    def pending(self) -> int:
        with self._condition:
            return len(self._pending)

    @property
    def running(self) -> bool:
        worker = self._worker
        return worker is not None and worker.is_alive()

    def status(self) -> Dict[str, Any]:
        with self._condition:
            busy_for = None
            if self._started_at is not None:
                busy_for = max(0.0, self._clock() - self._started_at)
            return {
                "busy": self._busy,
                "pending": len(self._pending),
                "busy_seconds": busy_for,
                "running": self.running,
            }

    # ---------------- internals ----------------
    def _execute(self, entry: QueueEntry) -> None:
        if not entry.handle.set_running_or_notify_cancel():
            LOGGER.debug("Skipping task #%s; its caller cancelled it", entry.sequence)
            return

        try:
            result = entry.task()
        except BaseException as exc:
            LOGGER.warning("Queued task #%s failed: %r", entry.sequence, exc)
            entry.on_error(exc)
            if isinstance(exc, (KeyboardInterrupt, SystemExit)):
                raise
        else:
            entry.on_complete(result)

    def _run(self) -> None:
        while True:
            with self._condition:
                while not self._stop_requested and (self._busy or not self._pending):
                    self._condition.wait(timeout=self.drain_interval)
                if self._stop_requested:
                    return
            try:
                self.tick()
            except (KeyboardInterrupt, SystemExit) as exc:
                # Already delivered to the task's handle; the worker keeps draining.
                LOGGER.warning("%s kept running after a task raised %r", self.name, exc)


__all__ = ["DEFAULT_DRAIN_INTERVAL", "QueueEntry", "SequentialTaskQueue"]
