"""
=============================================================================
THREAD POOL
=============================================================================

Worker threads that each own one client connection for its whole
keep-alive lifetime. The accept loop only queues; it never blocks on a
slow client.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept loop ──submit(conn)──►  ┌──────────────────┐               │
    │                                  │  pending conns   │  (bounded)    │
    │                                  └────────┬─────────┘               │
    │                     ┌─────────────────────┼──────────────┐          │
    │                     ▼                     ▼              ▼          │
    │                 Worker-0              Worker-1   ...  Worker-N      │
    │                 handler(conn)         handler(conn)                 │
    │                                                                      │
    │   min_workers start with the pool. A connection that arrives while  │
    │   every worker is busy adds one more, up to max_workers.            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Why threads and not asyncio? Every request touches the filesystem with
blocking calls (lstat, open, read), and there is no shared mutable state
between requests, so plain threads need no locking beyond the queue.

=============================================================================
"""

import logging
import queue
import threading
import time
from typing import Callable, List, Optional

from .connection import Connection

logger = logging.getLogger(__name__)

ConnectionHandler = Callable[[Connection], None]

# Wakes a worker up for good
_STOP = None


class Worker(threading.Thread):
    """Runs the handler for queued connections until told to stop."""

    def __init__(self, pending: "queue.Queue[Optional[Connection]]", handler: ConnectionHandler,
                 worker_id: int, poll_interval: float):
        super().__init__(name=f"devserve-worker-{worker_id}", daemon=True)
        self.pending = pending
        self.handler = handler
        self.worker_id = worker_id
        self.poll_interval = poll_interval
        self.busy = False
        self._stopping = threading.Event()

    def run(self):
        while not self._stopping.is_set():
            try:
                conn = self.pending.get(timeout=self.poll_interval)
            except queue.Empty:
                continue

            try:
                if conn is _STOP:
                    break
                self._serve(conn)
            finally:
                self.pending.task_done()

        logger.debug(f"{self.name} stopped")

    def _serve(self, conn: Connection):
        self.busy = True
        try:
            self.handler(conn)
        except Exception as e:
            # One broken connection must not take the worker down with it
            logger.exception(f"[{conn.id}] Connection handler failed: {e}")
            conn.close()
        finally:
            self.busy = False

    def stop(self):
        self._stopping.set()


class ThreadPool:
    """
    Workers for accepted connections.

    Usage:
        pool = ThreadPool(process_connection, min_workers=4, max_workers=16)
        pool.start()
        if not pool.submit(conn):
            ...  # overloaded: answer 503 and close
        pool.shutdown(timeout=5.0)
    """

    def __init__(
        self,
        handler: ConnectionHandler,
        min_workers: int = 4,
        max_workers: int = 16,
        max_pending: int = 100,
        poll_interval: float = 1.0,
    ):
        self.handler = handler
        self.min_workers = min_workers
        self.max_workers = max(max_workers, min_workers)
        self.poll_interval = poll_interval

        self._pending: "queue.Queue[Optional[Connection]]" = queue.Queue(maxsize=max_pending)
        self._workers: List[Worker] = []
        self._lock = threading.Lock()
        self._running = False
        self._next_id = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def size(self) -> int:
        return len(self._workers)

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.busy)

    def start(self):
        with self._lock:
            if self._running:
                return
            self._running = True
            for _ in range(self.min_workers):
                self._spawn()
        logger.debug(f"Started {self.min_workers} workers (max {self.max_workers})")

    def _spawn(self) -> Worker:
        worker = Worker(self._pending, self.handler, self._next_id, self.poll_interval)
        self._next_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(self, conn: Connection) -> bool:
        """
        Queue a connection for the next free worker.

        Returns:
            False if the pool is stopped or too many connections are
            already waiting; the caller still owns conn then.
        """
        if not self._running:
            return False
        try:
            self._pending.put_nowait(conn)
        except queue.Full:
            return False

        with self._lock:
            if self.busy_workers >= len(self._workers) and len(self._workers) < self.max_workers:
                logger.debug(f"All {len(self._workers)} workers busy, adding one")
                self._spawn()
        return True

    def shutdown(self, timeout: Optional[float] = None):
        """
        Stop accepting work and wait for workers to finish their current
        connection. Connections still waiting in the queue are closed.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False
            workers = list(self._workers)
            self._workers.clear()

        self._close_pending()

        for worker in workers:
            worker.stop()
            try:
                self._pending.put_nowait(_STOP)
            except queue.Full:
                pass  # the stop flag is seen within poll_interval

        deadline = time.monotonic() + timeout if timeout is not None else None
        for worker in workers:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            worker.join(remaining)
            if worker.is_alive():
                logger.warning(f"{worker.name} still busy after shutdown timeout")

    def _close_pending(self):
        while True:
            try:
                conn = self._pending.get_nowait()
            except queue.Empty:
                return
            if conn is not _STOP:
                conn.close()
            self._pending.task_done()
