import threading
import time

import pytest

from mediaseg.runtime.executor import SingleThreadScheduledExecutor


def test_execute_runs_on_worker_thread():
    executor = SingleThreadScheduledExecutor()
    done = threading.Event()
    seen = []

    def task():
        seen.append(executor.in_worker_thread())
        done.set()

    executor.execute(task)
    assert done.wait(2)
    assert seen == [True]
    executor.shutdown()
    assert executor.await_termination(2)


def test_fixed_rate_repeats_until_cancelled():
    executor = SingleThreadScheduledExecutor()
    ticks = []
    enough = threading.Event()

    def tick():
        ticks.append(time.monotonic())
        if len(ticks) == 5:
            task.cancel()
            enough.set()

    task = executor.schedule_at_fixed_rate(tick, 0.0, 0.005)
    assert enough.wait(2)
    time.sleep(0.05)
    assert len(ticks) == 5
    assert task.cancelled()
    executor.shutdown_now()


def test_shutdown_cancels_periodic_but_runs_queued_one_shot():
    executor = SingleThreadScheduledExecutor()
    gate = threading.Event()
    ran = []
    executor.execute(gate.wait)
    periodic = executor.schedule_at_fixed_rate(lambda: ran.append("tick"), 0.0, 0.01)
    executor.execute(lambda: ran.append("once"))
    executor.shutdown()
    gate.set()
    assert executor.await_termination(2)
    assert ran == ["once"]
    assert periodic.cancelled()


def test_shutdown_now_drops_queue_without_blocking():
    executor = SingleThreadScheduledExecutor()
    gate = threading.Event()
    started = threading.Event()
    ran = []

    def blocker():
        started.set()
        gate.wait(2)

    executor.execute(blocker)
    assert started.wait(2)
    executor.schedule(lambda: ran.append("late"), 0.0)

    t0 = time.monotonic()
    assert executor.shutdown_now() == 1
    assert time.monotonic() - t0 < 0.5
    assert executor.shutdown_now() == 0
    assert executor.is_shutdown()

    gate.set()
    assert executor.await_termination(2)
    assert ran == []
    assert executor.is_terminated()


def test_submit_after_shutdown_raises():
    executor = SingleThreadScheduledExecutor()
    executor.shutdown()
    with pytest.raises(RuntimeError):
        executor.execute(lambda: None)


def test_failing_periodic_task_is_cancelled_and_worker_survives():
    executor = SingleThreadScheduledExecutor()
    calls = []

    def boom():
        calls.append(1)
        raise RuntimeError("boom")

    task = executor.schedule_at_fixed_rate(boom, 0.0, 0.005)
    done = threading.Event()
    executor.schedule(done.set, 0.05)
    assert done.wait(2)
    assert calls == [1]
    assert task.cancelled()
    executor.shutdown_now()
