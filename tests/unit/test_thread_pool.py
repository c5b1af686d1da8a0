"""
Unit tests for the worker thread pool.
"""

import queue
import threading

import pytest

from knoxius.core import ThreadPool
from knoxius.core.thread_pool import Worker, WorkerState


@pytest.fixture
def pool():
    pool = ThreadPool(min_workers=1, max_workers=2, max_queue_size=2, poll_interval=0.5)
    pool.start()
    yield pool
    pool.shutdown(wait=False)


class TestThreadPool:

    def test_submit_requires_start(self):
        with pytest.raises(RuntimeError):
            ThreadPool().submit(print)

    def test_runs_tasks(self, pool):
        done = threading.Event()

        assert pool.submit(done.set)
        assert done.wait(2.0)

    def test_failing_task_keeps_worker_alive(self, pool):
        done = threading.Event()

        def broken():
            raise ValueError("boom")

        pool.submit(broken)
        pool.submit(done.set)

        assert done.wait(2.0)
        assert pool.stats["tasks"]["failed"] == 1

    def test_full_queue_rejects(self):
        pool = ThreadPool(min_workers=1, max_workers=1, max_queue_size=2, poll_interval=0.5)
        pool.start()
        release = threading.Event()
        started = threading.Event()

        def block():
            started.set()
            release.wait(5.0)

        # Occupy the only worker, then fill the queue.
        assert pool.submit(block)
        assert started.wait(2.0)
        assert pool.submit(release.wait, 5.0)
        assert pool.submit(release.wait, 5.0)

        assert not pool.submit(release.wait, 5.0)
        release.set()
        pool.shutdown(wait=True, timeout=5.0)

    def test_scales_up_to_max(self, pool):
        release = threading.Event()
        pool.submit(release.wait, 5.0)
        pool.submit(release.wait, 5.0)
        pool.submit(release.wait, 5.0)

        assert pool.stats["workers"]["total"] <= 2
        release.set()

    def test_shutdown_waits_for_queued_tasks(self):
        pool = ThreadPool(min_workers=1, max_workers=1, poll_interval=0.5)
        pool.start()
        results = []
        for i in range(5):
            pool.submit(results.append, i)

        pool.shutdown(wait=True, timeout=5.0)

        assert results == [0, 1, 2, 3, 4]

    def test_submit_after_shutdown_fails(self):
        pool = ThreadPool(min_workers=1, max_workers=1)
        pool.start()
        pool.shutdown()

        with pytest.raises(RuntimeError):
            pool.submit(print)


class TestWorker:

    def test_idle_worker_stops_without_sentinel(self):
        worker = Worker(queue.Queue(), worker_id=1, poll_interval=0.1)
        worker.start()

        worker.shutdown()
        worker.join(timeout=2.0)

        assert not worker.is_alive()
        assert worker.state is WorkerState.STOPPED

    def test_stops_on_sentinel(self):
        tasks = queue.Queue()
        worker = Worker(tasks, worker_id=2, poll_interval=30.0)
        worker.start()

        tasks.put(None)
        worker.join(timeout=2.0)

        assert not worker.is_alive()
