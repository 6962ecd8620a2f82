import sys
import threading
import time
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from mystery_writer.task_queue import SequentialTaskQueue


@pytest.fixture
def queue():
    queue = SequentialTaskQueue(drain_interval=0.01)
    yield queue
    queue.stop(timeout=2)


def test_tasks_run_in_submission_order(queue):
    order = []
    handles = [queue.submit(lambda i=i: order.append(i) or i) for i in range(5)]

    assert queue.pending == 5
    assert queue.run_until_idle() == 5

    assert order == [0, 1, 2, 3, 4]
    assert [handle.result(timeout=0) for handle in handles] == [0, 1, 2, 3, 4]
    assert queue.pending == 0


def test_mixed_outcomes_settle_each_handle_in_order(queue):
    events = []

    def first():
        events.append("start A")
        time.sleep(0.05)
        events.append("end A")
        return "A"

    def second():
        events.append("start B")
        events.append("end B")
        raise RuntimeError("boom")

    def third():
        events.append("start C")
        events.append(f"B settled: {handle2.done()}")
        return "C"

    handle1 = queue.submit(first)
    handle2 = queue.submit(second)
    handle3 = queue.submit(third)
    queue.start()

    assert handle1.result(timeout=2) == "A"
    with pytest.raises(RuntimeError, match="boom"):
        handle2.result(timeout=2)
    assert handle3.result(timeout=2) == "C"
    assert events == ["start A", "end A", "start B", "end B", "start C", "B settled: True"]


def test_only_one_task_runs_at_a_time_across_threads(queue):
    lock = threading.Lock()
    state = {"active": 0, "max_active": 0}

    def task():
        with lock:
            state["active"] += 1
            state["max_active"] = max(state["max_active"], state["active"])
        time.sleep(0.002)
        with lock:
            state["active"] -= 1
        return threading.current_thread().name

    queue.start()
    handles = []
    handles_lock = threading.Lock()

    def submitter():
        for _ in range(5):
            handle = queue.submit(task)
            with handles_lock:
                handles.append(handle)

    submitters = [threading.Thread(target=submitter) for _ in range(4)]
    for thread in submitters:
        thread.start()
    for thread in submitters:
        thread.join()

    names = {handle.result(timeout=5) for handle in handles}
    assert len(handles) == 20
    assert state["max_active"] == 1
    assert names == {queue.name}


def test_failure_does_not_block_following_tasks(queue):
    def broken():
        raise ValueError("bad payload")

    failed = queue.submit(broken)
    succeeded = queue.submit(lambda: "still runs")

    queue.run_until_idle()

    assert isinstance(failed.exception(timeout=0), ValueError)
    assert succeeded.result(timeout=0) == "still runs"
    assert not queue.busy


class Abort(BaseException):
    pass


def test_base_exception_settles_handle_and_worker_keeps_draining(queue):
    def aborting():
        raise Abort("stop everything")

    aborted = queue.submit(aborting)
    follower = queue.submit(lambda: "next")
    queue.start()

    assert follower.result(timeout=2) == "next"
    assert isinstance(aborted.exception(timeout=0), Abort)
    assert queue.running
    assert queue.pending == 0
    assert not queue.busy


def test_system_exit_is_delivered_and_reraised_by_tick(queue):
    def exiting():
        raise SystemExit(3)

    handle = queue.submit(exiting)
    follower = queue.submit(lambda: "after")

    with pytest.raises(SystemExit):
        queue.tick()

    assert isinstance(handle.exception(timeout=0), SystemExit)
    assert not queue.busy
    queue.start()
    assert follower.result(timeout=2) == "after"


def test_worker_survives_system_exit_from_a_task(queue):
    def exiting():
        raise SystemExit(1)

    queue.start()
    exited = queue.submit(exiting)
    later = queue.submit(lambda: "later")

    assert later.result(timeout=2) == "later"
    assert isinstance(exited.exception(timeout=0), SystemExit)
    assert queue.running


def test_each_handle_settles_exactly_once(queue):
    handle = queue.submit(lambda: 42)
    queue.tick()

    assert handle.done()
    assert handle.result(timeout=0) == 42
    assert handle.exception(timeout=0) is None
    assert not handle.cancelled()


def test_tick_is_a_no_op_when_nothing_is_pending(queue):
    for _ in range(3):
        assert queue.tick() is False
    assert queue.pending == 0
    assert queue.busy is False
    assert queue.status()["busy_seconds"] is None


def test_tick_from_inside_a_running_task_does_nothing(queue):
    observed = {}
    queue.submit(lambda: "later")

    def reentrant():
        observed["busy"] = queue.busy
        observed["tick"] = queue.tick()
        observed["pending"] = queue.pending
        return None

    queue.submit(reentrant)
    queue.tick()  # runs "later"
    queue.tick()  # runs the reentrant task

    assert observed == {"busy": True, "tick": False, "pending": 0}


def test_status_uses_injected_clock():
    ticks = iter([100.0, 103.5])
    queue = SequentialTaskQueue(drain_interval=1.0, clock=lambda: next(ticks))
    seen = {}

    def task():
        seen.update(queue.status())

    queue.submit(task)
    queue.tick()

    assert seen["busy"] is True
    assert seen["busy_seconds"] == pytest.approx(3.5)
    assert seen["pending"] == 0


def test_cancelled_handle_is_skipped(queue):
    calls = []
    handle = queue.submit(lambda: calls.append("ran"))
    follower = queue.submit(lambda: "next")

    assert handle.cancel()
    queue.run_until_idle()

    assert calls == []
    assert handle.cancelled()
    assert follower.result(timeout=0) == "next"


def test_stopped_worker_leaves_entries_pending(queue):
    queue.start()
    assert queue.running
    queue.stop(timeout=2)
    assert not queue.running

    handle = queue.submit(lambda: "manual")
    time.sleep(0.05)
    assert queue.pending == 1
    assert not handle.done()

    queue.tick()
    assert handle.result(timeout=0) == "manual"


def test_worker_can_be_restarted(queue):
    queue.start()
    queue.stop(timeout=2)
    queue.start()

    assert queue.submit(lambda: "again").result(timeout=2) == "again"


def test_submit_rejects_non_callables(queue):
    with pytest.raises(TypeError):
        queue.submit("not a task")


def test_drain_interval_must_be_positive():
    with pytest.raises(ValueError):
        SequentialTaskQueue(drain_interval=0)
