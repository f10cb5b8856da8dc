"""
=============================================================================
THREAD POOL
=============================================================================

Worker threads that serve accepted connections. The accept loop never
writes to a client itself; it hands each Connection to the pool and goes
straight back to accept().

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Thread Pool                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   accept loop ──submit()──►  TASK QUEUE (bounded, FIFO)             │
    │                              [conn 7] [conn 8] [conn 9] ...         │
    │                                   │                                  │
    │                                   │ get()                            │
    │                                   ▼                                  │
    │        ┌──────────┐ ┌──────────┐ ┌──────────┐ ┌──────────┐          │
    │        │ Worker 0 │ │ Worker 1 │ │ Worker 2 │ │ Worker 3 │          │
    │        │ (busy)   │ │ (idle)   │ │ (busy)   │ │ (idle)   │          │
    │        └──────────┘ └──────────┘ └──────────┘ └──────────┘          │
    │                                                                      │
    │   min_workers start with the pool; one more is added whenever a     │
    │   task would otherwise wait (up to max_workers, if set). Surplus    │
    │   workers exit after idle_timeout seconds without work.             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SHUTDOWN: THE POISON PILL
=============================================================================

    pool.shutdown()
        └─ for each worker: queue.put(None)
        └─ a worker that gets None leaves its loop and exits

=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """
    A deferred function call.

    Attributes:
        func: The function to execute.
        args: Positional arguments.
        kwargs: Keyword arguments.
        submitted_at: When the task was queued, for wait-time logging.
    """
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Worker thread pulling tasks from the shared queue.

    Loop:
        1. get() a task (wakes every idle_timeout seconds to check shutdown,
           and to ask the pool whether it is surplus and should exit)
        2. None → exit
        3. run it; exceptions are logged, never fatal to the worker
        4. task_done()
    """

    def __init__(
        self,
        task_queue: queue.Queue,
        worker_id: int,
        idle_timeout: float = 60.0,
        retire: Optional[Callable[["Worker"], bool]] = None,
    ):
        # Daemon: a stuck client must not keep the process alive at exit
        super().__init__(name=f"stdinhttp-worker-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout
        self._retire = retire

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"{self.name} waiting for connections")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                if self._retire is not None and self._retire(self):
                    break
                continue

            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"{self.name} exited")

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.time()
        waited = start_time - task.submitted_at

        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
            logger.debug(
                f"{self.name} finished in {time.time() - start_time:.3f}s "
                f"(queued {waited:.3f}s)"
            )
        except Exception as e:
            self.tasks_failed += 1
            logger.exception(
                f"{self.name} crashed serving a connection after {time.time() - start_time:.3f}s: {e}"
            )
        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        """Signal the worker to stop after its current task."""
        self._shutdown.set()


class ThreadPool:
    """
    Pool of worker threads with a fixed minimum and an optional maximum.

    A worker is added whenever a task is waiting and every worker already
    has one, so with max_workers=None no task ever waits behind a slow one.
    Workers above min_workers exit after idle_timeout seconds without work.

    Usage:
        pool = ThreadPool(min_workers=4, max_workers=None)
        pool.start()
        pool.submit(serve, args=(conn,))
        pool.shutdown(wait=True, timeout=5.0)
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: Optional[int] = 16,
        queue_size: int = 100,
        idle_timeout: float = 60.0,
    ):
        """
        Args:
            min_workers: Workers created by start() and kept for the pool's life.
            max_workers: Hard cap on workers; None for no cap.
            queue_size: Maximum tasks waiting for a worker.
            idle_timeout: How often idle workers wake to check for shutdown;
                          also how long a surplus worker idles before exiting.
        """
        if min_workers < 1:
            raise ValueError("min_workers must be >= 1")
        if max_workers is not None and max_workers < min_workers:
            raise ValueError("max_workers must be >= min_workers")

        self.min_workers = min_workers
        self.max_workers = max_workers
        self.queue_size = queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=queue_size)

        self._workers: List[Worker] = []
        self._lock = threading.Lock()  # Protects _workers and _next_worker_id
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

        # Counts carried over from workers that have exited
        self._retired_completed = 0
        self._retired_failed = 0

    @property
    def is_running(self) -> bool:
        return self._started and not self._shutdown

    def start(self):
        """Create the minimum set of workers. No-op if already started."""
        if self._started:
            return

        cap = "no cap" if self.max_workers is None else f"max {self.max_workers}"
        logger.info(f"Starting {self.min_workers} connection workers ({cap})")

        with self._lock:
            for _ in range(self.min_workers):
                self._spawn_worker()

        self._shutdown = False
        self._started = True

    def _spawn_worker(self) -> Worker:
        """Create and start one worker. Caller must hold _lock."""
        worker = Worker(
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            idle_timeout=self.idle_timeout,
            retire=self._retire_worker,
        )
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[Dict[str, Any]] = None,
        block: bool = True,
        queue_timeout: Optional[float] = None,
    ) -> bool:
        """
        Queue a task.

        Args:
            func: The function to execute.
            args: Positional arguments.
            kwargs: Keyword arguments.
            block: Wait for room if the queue is full.
            queue_timeout: Upper bound on that wait; None waits forever.

        Returns:
            True if queued, False if the queue stayed full.

        Raises:
            RuntimeError: If the pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Worker pool not started")
        if self._shutdown:
            raise RuntimeError("Worker pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {})

        try:
            self._task_queue.put(task, block=block, timeout=queue_timeout)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _at_capacity(self) -> bool:
        return self.max_workers is not None and len(self._workers) >= self.max_workers

    def _maybe_scale_up(self):
        """
        Add workers until there is one per unfinished task, or the cap.

        unfinished_tasks counts queued and running tasks together, so it
        does not depend on when a worker flips its own state to BUSY.
        """
        with self._lock:
            while (
                self._task_queue.unfinished_tasks > len(self._workers)
                and not self._at_capacity()
            ):
                logger.debug(f"All {len(self._workers)} workers busy, adding one")
                self._spawn_worker()

    def _retire_worker(self, worker: Worker) -> bool:
        """
        Called by an idle worker after idle_timeout. Returns True if it should exit.

        A worker is only let go while the pool stays above min_workers and
        the rest can still cover every unfinished task.
        """
        with self._lock:
            if self._shutdown or len(self._workers) <= self.min_workers:
                return False
            if self._task_queue.unfinished_tasks >= len(self._workers):
                return False
            self._workers.remove(worker)
            self._retired_completed += worker.tasks_completed
            self._retired_failed += worker.tasks_failed

        logger.debug(f"{worker.name} idle for {self.idle_timeout}s, retiring")
        return True

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool.

        Args:
            wait: Let queued tasks finish before stopping workers.
            timeout: Upper bound on that wait; None waits for the queue
                     to drain completely.
        """
        if not self._started:
            return

        logger.info(
            f"Stopping connection workers "
            f"({self._task_queue.unfinished_tasks} connections in flight)"
        )
        self._shutdown = True

        if wait:
            if timeout is None:
                self._task_queue.join()
            else:
                deadline = time.time() + timeout
                while self._task_queue.unfinished_tasks:
                    if time.time() > deadline:
                        logger.warning("Timed out waiting for in-flight connections; abandoning them")
                        break
                    time.sleep(0.05)

        with self._lock:
            workers = list(self._workers)

        for _ in workers:
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                pass  # Workers still see the shutdown flag on their next wake-up

        for worker in workers:
            worker.shutdown()
            worker.join(timeout=2.0)

        with self._lock:
            self._workers.clear()
        self._started = False

        logger.info("Connection workers stopped")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    @property
    def stats(self) -> dict:
        """Worker and task counts, as a plain dict."""
        with self._lock:
            workers = list(self._workers)
            completed = self._retired_completed
            failed = self._retired_failed
        return {
            "workers": {
                "total": len(workers),
                "busy": sum(1 for w in workers if w.state == WorkerState.BUSY),
                "idle": sum(1 for w in workers if w.state == WorkerState.IDLE),
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": completed + sum(w.tasks_completed for w in workers),
                "failed": failed + sum(w.tasks_failed for w in workers),
            },
        }
