import os
import sys
import threading

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from jobs import JobScheduler, JobResult, SchedulerFull


def _square(x):
    return x * x


def _boom():
    raise ZeroDivisionError("bad chunk")


def test_callbacks_run_on_drain_in_completion_order():
    seen = []
    with JobScheduler("t", max_workers=1, max_pending=16) as jobs:
        for i in range(6):
            jobs.submit(_square, lambda r: seen.append(r.result()), i)
        assert jobs.wait(timeout=10)
        # Nothing runs until the consumer drains.
        assert seen == []
        assert jobs.drain() == 6
    # A single worker finishes jobs in submission order.
    assert seen == [0, 1, 4, 9, 16, 25]
    assert jobs.completed_total == 6


def test_callbacks_run_on_the_draining_thread():
    threads = []
    with JobScheduler("t", max_workers=2) as jobs:
        jobs.submit(_square, lambda r: threads.append(threading.current_thread()), 3)
        jobs.wait(timeout=10)
        jobs.drain()
    assert threads == [threading.current_thread()]


def test_failure_is_delivered_as_a_tagged_result():
    results = []
    with JobScheduler("t", max_workers=1) as jobs:
        jobs.submit(_boom, results.append, name="chunk (1, 2)")
        jobs.wait(timeout=10)
        jobs.drain()
    (result,) = results
    assert isinstance(result, JobResult)
    assert not result.ok
    assert result.name == "chunk (1, 2)"
    assert isinstance(result.error, ZeroDivisionError)
    assert "bad chunk" in result.trace
    with pytest.raises(ZeroDivisionError):
        result.result()
    assert jobs.failed_total == 1


def test_submit_raises_when_full():
    release = threading.Event()
    with JobScheduler("t", max_workers=1, max_pending=2) as jobs:
        jobs.submit(release.wait, lambda r: None, 10)
        jobs.submit(release.wait, lambda r: None, 10)
        with pytest.raises(SchedulerFull):
            jobs.submit(release.wait, lambda r: None, 10)
        assert jobs.submitted_total == 2
        release.set()
        assert jobs.wait(timeout=10)
        assert jobs.drain() == 2


def test_undrained_results_count_as_pending():
    with JobScheduler("t", max_workers=1, max_pending=1) as jobs:
        jobs.submit(_square, lambda r: None, 2)
        jobs.wait(timeout=10)
        assert jobs.pending >= 1
        with pytest.raises(SchedulerFull):
            jobs.submit(_square, lambda r: None, 3)
        jobs.drain()


def test_raising_callback_does_not_stop_the_batch():
    seen = []

    def explode(result):
        raise RuntimeError("callback failed")

    with JobScheduler("t", max_workers=1) as jobs:
        jobs.submit(_square, explode, 1)
        jobs.submit(_square, lambda r: seen.append(r.result()), 5)
        jobs.wait(timeout=10)
        assert jobs.drain() == 2
    assert seen == [25]


def test_drain_with_nothing_queued():
    with JobScheduler("t", max_workers=1) as jobs:
        assert jobs.drain() == 0
        assert jobs.wait(timeout=1)
