'''
jobs.py -- background work with a main-thread completion queue

Work runs on a thread pool. Finished jobs park (callback, result) pairs in a
lock-guarded queue and the consumer runs the callbacks from drain(), once per
tick, on its own thread. Nothing is ever cancelled or dropped once accepted.
'''
# standard library imports
import time
import threading
import traceback
from collections import deque
import concurrent.futures

# local imports
import config
import logutil


class SchedulerFull(RuntimeError):
    """Raised by submit() when the pool already holds max_pending jobs."""


class JobResult(object):
    __slots__ = ("value", "error", "trace", "name", "elapsed_ms")

    def __init__(self, value=None, error=None, trace=None, name=None, elapsed_ms=0.0):
        self.value = value
        self.error = error
        self.trace = trace
        self.name = name
        self.elapsed_ms = elapsed_ms

    @property
    def ok(self):
        return self.error is None

    def result(self):
        if self.error is not None:
            raise self.error
        return self.value

    def __repr__(self):
        state = "ok" if self.ok else f"failed {self.error!r}"
        return f"JobResult({self.name} {state})"


class JobScheduler(object):

    def __init__(self, name="jobs", max_workers=None, max_pending=None):
        self.name = name
        if max_workers is None:
            max_workers = getattr(config, 'MESH_WORKERS', 2)
        if max_pending is None:
            max_pending = getattr(config, 'MAX_PENDING_JOBS', 64)
        self.max_workers = max(1, int(max_workers))
        self.max_pending = max(1, int(max_pending))
        self.executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix=name,
        )
        self._lock = threading.Lock()
        self._completed = deque()
        self._futures = set()
        self.submitted_total = 0
        self.completed_total = 0
        self.failed_total = 0

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.shutdown()
        return False

    @property
    def pending(self):
        """Jobs accepted but not yet drained."""
        with self._lock:
            return len(self._futures) + len(self._completed)

    @property
    def in_flight(self):
        with self._lock:
            return len(self._futures)

    def _run(self, work, on_complete, name, args):
        t0 = time.perf_counter()
        try:
            value = work(*args)
        except Exception as e:
            result = JobResult(error=e, trace=traceback.format_exc(), name=name)
        else:
            result = JobResult(value=value, name=name)
        result.elapsed_ms = (time.perf_counter() - t0) * 1000.0
        with self._lock:
            self._completed.append((on_complete, result))
        if result.ok:
            logutil.log("JOBS", f"{self.name} done {name} ms={result.elapsed_ms:.1f}")
        else:
            logutil.log("JOBS", f"{self.name} failed {name} {result.error!r}", level="WARN")

    def submit(self, work, on_complete, *args, name=None):
        """ Run work(*args) on the pool; on_complete(JobResult) runs in drain().

        Raises SchedulerFull when the pool already holds max_pending jobs that
        have not been drained yet.
        """
        if name is None:
            name = getattr(work, '__name__', repr(work))
        with self._lock:
            if len(self._futures) + len(self._completed) >= self.max_pending:
                raise SchedulerFull(f"{self.name}: {self.max_pending} jobs pending")
            self.submitted_total += 1
            future = self.executor.submit(self._run, work, on_complete, name, args)
            self._futures.add(future)
        future.add_done_callback(self._forget)
        logutil.log("JOBS", f"{self.name} submit {name}")
        return future

    def _forget(self, future):
        with self._lock:
            self._futures.discard(future)

    def drain(self):
        """ Run every callback queued so far, oldest first, on this thread.

        Returns the number of callbacks run. A callback that raises is logged
        and the rest of the batch still runs.
        """
        with self._lock:
            if not self._completed:
                return 0
            batch = self._completed
            self._completed = deque()
        for on_complete, result in batch:
            if result.ok:
                self.completed_total += 1
            else:
                self.failed_total += 1
            try:
                on_complete(result)
            except Exception as e:
                logutil.log("JOBS", f"{self.name} callback for {result.name} raised {e!r}", level="ERROR")
                logutil.log("JOBS", traceback.format_exc(), level="ERROR")
        return len(batch)

    def wait(self, timeout=None):
        """Block until every accepted job has finished running. Returns True if none are left."""
        with self._lock:
            futures = list(self._futures)
        done, not_done = concurrent.futures.wait(futures, timeout=timeout)
        return not not_done

    def shutdown(self, wait=True):
        self.executor.shutdown(wait=wait)
