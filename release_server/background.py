from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundWriter:
    """Fire-and-forget executor for bookkeeping writes (download stats, audit log).

    Exceptions raised by submitted work are logged and never reach the
    request that scheduled it. With ``synchronous=True`` work runs inline,
    which keeps tests deterministic.
    """

    def __init__(self, max_workers: int = 2, synchronous: bool = False) -> None:
        self.synchronous = synchronous
        self._executor = None if synchronous else ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="bookkeeping"
        )
        self._pending: set[Future] = set()
        self._lock = threading.Lock()

    def _run(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        try:
            fn(*args, **kwargs)
        except Exception:
            logger.exception("Background task %s failed", getattr(fn, "__name__", fn))

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        if self._executor is None:
            self._run(fn, *args, **kwargs)
            return
        future = self._executor.submit(self._run, fn, *args, **kwargs)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def wait(self, timeout: float | None = None) -> None:
        """Block until currently queued work has finished."""
        with self._lock:
            pending = set(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
