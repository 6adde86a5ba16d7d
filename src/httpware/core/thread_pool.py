"""
=============================================================================
THREAD POOL
=============================================================================

Worker threads that serve accepted connections.

    accept loop ──submit()──► bounded queue ──► Worker-0 ─┐
                                            ──► Worker-1 ─┼─► handle connection
                                            ──► Worker-N ─┘

    - ``min_workers`` threads start with the pool.
    - When every worker is busy and tasks are waiting, one more worker is
      added, up to ``max_workers``.
    - The queue is bounded by ``max_queue_size``; ``submit(block=False)``
      returns False when it is full and the server answers 503.
    - ``None`` on the queue is the poison pill that stops a worker.

Each HTTP/1.1 keep-alive connection, and each HTTP/2 connection, occupies
one worker for its whole lifetime.

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """
    A deferred call: ``func(*args, **kwargs)``.

    ``timeout`` bounds how long the task may wait in the queue; a task
    picked up later than that is dropped with a warning.
    """
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    timeout: Optional[float] = None
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """Daemon thread pulling tasks off the shared queue."""

    def __init__(
        self,
        task_queue: queue.Queue,
        worker_id: int,
        idle_timeout: float = 60.0
    ):
        super().__init__(name=f"Worker-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()
        self._current_task: Optional[Task] = None

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        """
        Run one task. Exceptions are logged and counted so a failing
        connection never kills the worker.
        """
        self.state = WorkerState.BUSY
        self._current_task = task
        start_time = time.time()

        try:
            waited = start_time - task.submitted_at
            if task.timeout and waited > task.timeout:
                logger.warning(
                    f"Task timed out before execution "
                    f"(waited {waited:.2f}s, timeout was {task.timeout}s)"
                )
                self.tasks_failed += 1
                return

            task.func(*task.args, **task.kwargs)

            elapsed = time.time() - start_time
            logger.debug(f"Worker {self.worker_id} completed task in {elapsed:.3f}s")
            self.tasks_completed += 1

        except Exception as e:
            elapsed = time.time() - start_time
            logger.exception(
                f"Worker {self.worker_id} task failed after {elapsed:.3f}s: {e}"
            )
            self.tasks_failed += 1

        finally:
            self.state = WorkerState.IDLE
            self._current_task = None

    def shutdown(self):
        self._shutdown.set()


class ThreadPool:
    """
    Bounded, self-scaling pool of worker threads.

    Usage:
        pool = ThreadPool(min_workers=2, max_workers=8)
        pool.start()
        pool.submit(handle, args=(conn,), block=False)
        pool.shutdown(wait=True, timeout=5.0)
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 16,
        max_queue_size: int = 100,
        idle_timeout: float = 60.0
    ):
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queue_size = max_queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=max_queue_size)

        self._workers: list[Worker] = []
        self._lock = threading.Lock()
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    def start(self):
        if self._started:
            return

        logger.info(f"Starting thread pool with {self.min_workers} workers")
        self._shutdown = False

        with self._lock:
            for _ in range(self.min_workers):
                self._add_worker_locked()

        self._started = True

    def _add_worker_locked(self) -> Worker:
        """Start one more worker. Caller holds ``self._lock``."""
        if len(self._workers) >= self.max_workers:
            raise RuntimeError("Maximum workers reached")

        worker = Worker(
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            idle_timeout=self.idle_timeout
        )
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        timeout: Optional[float] = None,
        block: bool = True,
        queue_timeout: Optional[float] = None
    ) -> bool:
        """
        Queue ``func(*args, **kwargs)``.

        Returns:
            True if queued, False if the queue stayed full.

        Raises:
            RuntimeError: the pool is not running.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")
        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {}, timeout=timeout)

        try:
            self._task_queue.put(task, block=block, timeout=queue_timeout)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        """Add a worker when all are busy, work is queued, and there is room."""
        with self._lock:
            busy_count = sum(1 for w in self._workers if w.state == WorkerState.BUSY)
            if busy_count < len(self._workers) or len(self._workers) >= self.max_workers:
                return
            if self._task_queue.qsize() > 0:
                logger.debug(
                    f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
                )
                self._add_worker_locked()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop all workers.

        Args:
            wait: Let queued tasks run first.
            timeout: Upper bound on that wait; after it the pool stops anyway.
        """
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        self._shutdown = True

        if wait:
            if timeout:
                deadline = time.time() + timeout
                while not self._task_queue.empty():
                    if time.time() > deadline:
                        logger.warning("Shutdown timeout, forcing stop")
                        break
                    time.sleep(0.1)
            else:
                self._task_queue.join()

        for _ in self._workers:
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                break

        for worker in self._workers:
            worker.shutdown()
            worker.join(timeout=2.0)

        with self._lock:
            self._workers.clear()
        self._started = False

        logger.info("Thread pool shutdown complete")

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    @property
    def active_workers(self) -> int:
        return sum(1 for w in self._workers if w.state != WorkerState.STOPPED)

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.IDLE)

    @property
    def queue_size(self) -> int:
        """Tasks currently waiting."""
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        total_completed = sum(w.tasks_completed for w in self._workers)
        total_failed = sum(w.tasks_failed for w in self._workers)

        return {
            "workers": {
                "total": len(self._workers),
                "active": self.active_workers,
                "busy": self.busy_workers,
                "idle": self.idle_workers,
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": total_completed,
                "failed": total_failed,
            },
        }
