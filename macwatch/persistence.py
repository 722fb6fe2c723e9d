#!/usr/bin/env python3
"""
MACWATCH Persistence Worker
===========================

Background writer that moves binding changes from the classification loop
to the durable store.

Enqueueing never blocks the caller. When the queue is full the write is
dropped and counted; the next observation of that address restores it after
a restart.
"""

import queue
import threading
from typing import Optional

from loguru import logger

from .binding_store import BindingDatabase
from .metrics import MetricsRegistry


_STOP = object()


class PersistenceWorker:
    """
    Queue-fed durable writer running on its own thread.

    Args:
        database: BindingDatabase to write to
        metrics: MetricsRegistry for failure counters
        queue_size: Maximum pending writes (0 = unbounded)
    """

    def __init__(self, database: BindingDatabase,
                 metrics: Optional[MetricsRegistry] = None,
                 queue_size: int = 10000):
        self.database = database
        self.metrics = metrics or MetricsRegistry()
        self.queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._worker: Optional[threading.Thread] = None
        self._stopping = False
        self._written_count = 0

    def start(self) -> None:
        if self._worker is not None:
            return
        self._worker = threading.Thread(target=self._write_loop, daemon=True, name="Binding-Writer")
        self._worker.start()
        logger.info(f"PersistenceWorker started (queue_size={self.queue.maxsize})")

    def submit(self, key: str, mac: str) -> bool:
        """
        Queue a binding for writing.

        Returns:
            True if queued, False if dropped
        """
        try:
            self.queue.put_nowait((key, mac))
            return True
        except queue.Full:
            self.metrics.inc("persist_dropped_total")
            logger.warning(f"Binding write queue full - dropping {key} -> {mac}")
            return False

    def _write_loop(self):
        while True:
            item = self.queue.get()
            try:
                if item is _STOP:
                    return
                key, mac = item
                if self.database.put(key, mac):
                    self._written_count += 1
                else:
                    self.metrics.inc("persist_failures_total")
            except Exception as e:
                self.metrics.inc("persist_failures_total")
                logger.error(f"Binding writer error: {e}")
            finally:
                self.queue.task_done()

    def flush(self) -> None:
        """Wait until every queued write has been attempted."""
        self.queue.join()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Write everything still queued, then stop the worker.

        With no timeout this waits for the whole backlog.

        Returns:
            True once the worker has exited, False if it is still writing
        """
        if self._worker is None:
            return True
        if not self._stopping:
            # Sentinel may block briefly if the queue is full; the worker is draining it
            self.queue.put(_STOP)
            self._stopping = True
        self._worker.join(timeout=timeout)
        if self._worker.is_alive():
            logger.warning(f"Binding writer still draining ({self.queue.qsize()} queued)")
            return False
        self._worker = None
        self._stopping = False
        logger.info(f"PersistenceWorker stopped ({self._written_count} bindings written)")
        return True

    @property
    def written_count(self) -> int:
        return self._written_count

    @property
    def pending(self) -> int:
        return self.queue.qsize()
