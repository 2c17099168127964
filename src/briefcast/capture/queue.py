"""Bounded background worker pool for signal enrichment."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)

_SENTINEL = object()


class EnrichmentQueue:
    """Run ``handler(signal_id)`` on daemon worker threads.

    ``submit`` never blocks longer than ``put_timeout_seconds``; when the queue
    is full the signal id is dropped and logged, leaving the signal ``QUEUED``
    for a later ``signal enrich``.
    """

    def __init__(
        self,
        *,
        handler: Callable[[str], None],
        workers: int = 2,
        max_size: int = 100,
        put_timeout_seconds: float = 0.5,
    ) -> None:
        if workers <= 0:
            raise ValueError("workers must be a positive integer")
        self._handler = handler
        self._queue: queue.Queue[str | object] = queue.Queue(maxsize=max_size)
        self._put_timeout = put_timeout_seconds
        self._closed = threading.Event()
        self._threads = [
            threading.Thread(
                target=self._worker_loop,
                daemon=True,
                name=f"enrichment-worker-{index}",
            )
            for index in range(workers)
        ]
        self.dropped = 0
        self.failed = 0
        for thread in self._threads:
            thread.start()

    def submit(self, signal_id: str) -> bool:
        """Enqueue a signal id; ``False`` when closed or full."""

        if self._closed.is_set():
            logger.warning("Enrichment queue closed; dropping signal %s", signal_id)
            return False
        try:
            self._queue.put(signal_id, timeout=self._put_timeout)
        except queue.Full:
            self.dropped += 1
            logger.warning("Enrichment queue full; dropping signal %s", signal_id)
            return False
        return True

    def drain(self) -> None:
        """Block until every submitted signal has been processed."""

        self._queue.join()

    def close(self, *, timeout_seconds: float = 15.0) -> None:
        """Finish queued work, then stop the workers."""

        if self._closed.is_set():
            return
        self._closed.set()
        for _ in self._threads:
            self._queue.put(_SENTINEL)
        for thread in self._threads:
            thread.join(timeout=timeout_seconds)
        logger.debug("Enrichment workers stopped")

    def _worker_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _SENTINEL:
                    return
                self._handler(str(item))
            except Exception:
                self.failed += 1
                logger.exception("Enrichment worker failed for signal %s", item)
            finally:
                self._queue.task_done()

    def __enter__(self) -> EnrichmentQueue:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
