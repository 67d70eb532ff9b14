"""Background writer that applies saves strictly in the order they were issued."""

from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

logger = logging.getLogger(__name__)

SaveJob = Callable[[], bool]


class SaveQueue:
    """Single worker thread running save jobs first-in, first-out.

    A save issued later can never be overwritten by one issued earlier, since
    the earlier job has always finished before the later one starts.
    """

    def __init__(self, name: str = "seabattle-autosave") -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, job: SaveJob) -> Future[bool]:
        """Queue ``job``; the returned future resolves to its success flag."""
        with self._lock:
            if self._closed:
                logger.warning("save_rejected_queue_closed")
                rejected: Future[bool] = Future()
                rejected.set_result(False)
                return rejected
            sequence = next(self._sequence)
            future = self._executor.submit(self._run, sequence, job)
        return future

    def close(self, wait: bool = True) -> None:
        """Stop accepting saves; with ``wait`` block until queued ones finish."""
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)

    @staticmethod
    def _run(sequence: int, job: SaveJob) -> bool:
        try:
            ok = job()
        except Exception:
            logger.exception("save_job_failed", extra={"sequence": sequence})
            return False
        logger.debug("save_job_finished", extra={"sequence": sequence, "ok": ok})
        return ok
