"""
=============================================================================
WORKER THREAD POOL
=============================================================================

Accepted connections are queued here and served by a bounded set of
worker threads. One request's handler units always run on one worker,
one after another; different connections run on different workers.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          ThreadPool                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   submit(fn, args) ──► ┌───────────────────────────────┐            │
    │                        │  queue.Queue(maxsize=100)     │            │
    │                        │  [conn] [conn] [conn] ...     │            │
    │                        └──────┬──────────┬─────────────┘            │
    │                               │          │                           │
    │                        ┌──────▼───┐ ┌────▼─────┐     ┌──────────┐   │
    │                        │ Worker-0 │ │ Worker-1 │ ... │ Worker-N │   │
    │                        └──────────┘ └──────────┘     └──────────┘   │
    │                                                                      │
    │   min_workers start with the pool; more are added, up to             │
    │   max_workers, while every worker is busy and tasks are waiting.     │
    │                                                                      │
    │   Shutdown: one ``None`` per worker ("poison pill") ends its loop.   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import threading
import queue
import time
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Any


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """A deferred call: ``func(*args, **kwargs)``."""

    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)


class Worker(threading.Thread):
    """
    Pulls tasks off the shared queue until it receives ``None``.

    A task that raises is logged and counted; the worker keeps going.
    """

    def __init__(self, task_queue: queue.Queue, worker_id: int, idle_timeout: float = 1.0):
        super().__init__(name=f"Worker-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self.tasks_completed = 0
        self.tasks_failed = 0
        self._stop_event = threading.Event()

    def run(self):
        logger.debug("Worker %d started", self.worker_id)

        while not self._stop_event.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break
                self._execute(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug("Worker %d stopped", self.worker_id)

    def _execute(self, task: Task):
        self.state = WorkerState.BUSY
        started = time.monotonic()
        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
        except Exception:
            self.tasks_failed += 1
            logger.exception(
                "Worker %d task failed after %.3fs",
                self.worker_id, time.monotonic() - started,
            )
        finally:
            self.state = WorkerState.IDLE

    def stop(self):
        self._stop_event.set()


class ThreadPool:
    """
    Bounded worker pool.

        pool = ThreadPool(min_workers=2, max_workers=4)
        pool.start()
        pool.submit(serve, args=(conn,))   # False if the queue is full
        pool.shutdown(timeout=5.0)
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 16,
        queue_size: int = 100,
    ):
        if min_workers < 1 or max_workers < min_workers:
            raise ValueError("Need 1 <= min_workers <= max_workers")

        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queue_size = queue_size

        self._task_queue: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=queue_size)
        self._workers: list[Worker] = []
        self._lock = threading.Lock()
        self._next_worker_id = 0
        self._started = False
        self._shutting_down = False

    @property
    def is_running(self) -> bool:
        return self._started and not self._shutting_down

    def start(self):
        """Create the minimum set of workers. Calling twice is a no-op."""
        if self._started:
            return

        logger.info("Starting thread pool with %d workers", self.min_workers)
        with self._lock:
            for _ in range(self.min_workers):
                self._add_worker_locked()
        self._started = True

    def _add_worker_locked(self) -> Worker:
        worker = Worker(self._task_queue, self._next_worker_id)
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(self, func: Callable[..., Any], args: tuple = (), kwargs: Optional[dict] = None) -> bool:
        """
        Queue ``func(*args, **kwargs)`` without blocking.

        Returns:
            True if queued, False if the queue is full.

        Raises:
            RuntimeError: If the pool is not running.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")
        if self._shutting_down:
            raise RuntimeError("Thread pool is shutting down")

        try:
            self._task_queue.put(Task(func, args, kwargs or {}), block=False)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        with self._lock:
            if len(self._workers) >= self.max_workers:
                return
            all_busy = all(w.state == WorkerState.BUSY for w in self._workers)
            if all_busy and self._task_queue.qsize() > 0:
                logger.debug(
                    "Scaling up: %d -> %d workers",
                    len(self._workers), len(self._workers) + 1,
                )
                self._add_worker_locked()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop accepting tasks, optionally drain the queue, then stop workers.

        Args:
            wait: Let queued tasks finish first.
            timeout: Upper bound on the drain, in seconds.
        """
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        self._shutting_down = True

        if wait:
            deadline = None if timeout is None else time.monotonic() + timeout
            while self._task_queue.unfinished_tasks:
                if deadline is not None and time.monotonic() > deadline:
                    logger.warning("Thread pool drain timed out, stopping workers")
                    break
                time.sleep(0.05)

        for worker in self._workers:
            worker.stop()
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                pass

        for worker in self._workers:
            worker.join(timeout=2.0)

        self._workers.clear()
        self._started = False
        self._shutting_down = False
        logger.info("Thread pool shutdown complete")

    @property
    def stats(self) -> dict:
        """Worker and task counters, for debugging."""
        with self._lock:
            workers = list(self._workers)
        return {
            "workers": {
                "total": len(workers),
                "busy": sum(1 for w in workers if w.state == WorkerState.BUSY),
                "idle": sum(1 for w in workers if w.state == WorkerState.IDLE),
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": sum(w.tasks_completed for w in workers),
                "failed": sum(w.tasks_failed for w in workers),
            },
        }
