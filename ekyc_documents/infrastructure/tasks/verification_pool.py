"""
Background verification workers.

Verification runs on a bounded thread pool, outside the request that
triggered it. At most one job per document id is in flight; a second
submit for the same id while the first is running is ignored.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait as wait_futures
from typing import Callable

logger = logging.getLogger(__name__)


class VerificationWorkerPool:

    def __init__(self, handler: Callable[[str], object], max_workers: int = 4):
        self._handler = handler
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="verify")
        self._lock = threading.Lock()
        self._futures: dict[str, Future] = {}
        self._closed = False

    def submit(self, document_id: str) -> bool:
        """Queue verification of `document_id`. False if already queued/running or shut down."""
        with self._lock:
            if self._closed:
                logger.warning(f"Worker pool closed, verification of {document_id} not scheduled")
                return False
            if document_id in self._futures:
                logger.debug(f"Verification of {document_id} already in flight")
                return False
            future = self._executor.submit(self._run, document_id)
            self._futures[document_id] = future
        return True

    def _run(self, document_id: str):
        try:
            return self._handler(document_id)
        except Exception:
            logger.exception(f"Verification job for {document_id} crashed")
            return None
        finally:
            self._forget(document_id)

    def _forget(self, document_id: str) -> None:
        with self._lock:
            self._futures.pop(document_id, None)

    def in_flight(self) -> int:
        with self._lock:
            return len(self._futures)

    def is_in_flight(self, document_id: str) -> bool:
        with self._lock:
            return document_id in self._futures

    def cancel(self, document_id: str) -> bool:
        """Cancel a job that has not started yet."""
        with self._lock:
            future = self._futures.get(document_id)
            if future is None or not future.cancel():
                return False
            self._futures.pop(document_id, None)
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until every queued job finished. True if none are left."""
        with self._lock:
            pending = list(self._futures.values())
        if pending:
            wait_futures(pending, timeout=timeout)
        return self.in_flight() == 0

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait, cancel_futures=not wait)
        logger.info("Verification worker pool stopped")
