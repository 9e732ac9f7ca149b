"""
Outbox for best-effort side calls.

Jobs posted here (moderation mirroring, audit rows) run at most once on a
small background pool. They never block the caller and never raise into it:
a failure, either an exception or a QueryResult carrying an error, is
logged at WARNING and dropped.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Set

from ..api.client import QueryResult
from ..api.config import Config


LOGGER = logging.getLogger(__name__)


class Outbox:
    """Fire-and-forget queue with explicit at-most-once semantics"""

    def __init__(self, max_workers: int = None):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or Config.OUTBOX_WORKERS,
            thread_name_prefix='outbox'
        )
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()
        self.failures = 0

    def post(self, name: str, func: Callable[..., Any], *args, **kwargs) -> Future:
        """
        Queue a job.

        Args:
            name: Label used in logs
            func: Callable to run once

        Returns:
            Future resolving to True on success, False on failure
        """
        future = self._executor.submit(self._run, name, func, args, kwargs)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)
        return future

    def _run(self, name: str, func: Callable[..., Any], args, kwargs) -> bool:
        try:
            result = func(*args, **kwargs)
        except Exception as exc:
            return self._failed(name, exc)
        if isinstance(result, QueryResult) and result.error is not None:
            return self._failed(name, result.error.message)
        LOGGER.debug("outbox job %s done", name)
        return True

    def _failed(self, name: str, reason: Any) -> bool:
        with self._lock:
            self.failures += 1
        LOGGER.warning("outbox job %s failed: %s", name, reason)
        return False

    def _discard(self, future: Future):
        with self._lock:
            self._pending.discard(future)

    def flush(self, timeout: float = None) -> bool:
        """Wait for queued jobs; True if all finished within timeout"""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def close(self, wait_for_jobs: bool = True):
        self._executor.shutdown(wait=wait_for_jobs)
