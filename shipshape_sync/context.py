"""Execution contexts and join primitives used by the sync coordinator.

All mutation of tracks and of the coordinator's bookkeeping happens on one
:class:`PrimaryContext`; network work runs on a background pool and hands its
results back by posting to the primary context.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class PrimaryContext:
    """Single-threaded executor that owns the canonical object graph.

    Tasks run FIFO in submission order. Posting from the primary thread itself
    runs the task inline so nested posts cannot deadlock.
    """

    def __init__(self, name: str = "primary") -> None:
        self._name = name
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._local = threading.local()

    def is_current(self) -> bool:
        return bool(getattr(self._local, "active", False))

    def post(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> "Future[T]":
        if self.is_current():
            future: "Future[T]" = Future()
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as exc:
                LOGGER.exception("%s inline task %s failed", self._name, _task_name(fn))
                future.set_exception(exc)
            return future
        future = self._executor.submit(self._run, fn, *args, **kwargs)
        future.add_done_callback(lambda f: self._log_failure(fn, f))
        return future

    def _run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        self._local.active = True
        try:
            return fn(*args, **kwargs)
        finally:
            self._local.active = False

    def _log_failure(self, fn: Callable[..., Any], future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            LOGGER.error(
                "%s task %s failed: %s", self._name, _task_name(fn), exc, exc_info=exc
            )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class CountdownLatch:
    """Counting gate that invokes ``on_zero`` exactly once when drained."""

    def __init__(self, count: int, on_zero: Callable[[], None] | None = None) -> None:
        if count < 0:
            raise ValueError("count must be >= 0")
        self._count = count
        self._on_zero = on_zero
        self._lock = threading.Lock()
        self._done = threading.Event()
        if count == 0:
            self._done.set()

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    def count_down(self) -> None:
        with self._lock:
            if self._count == 0:
                LOGGER.warning("CountdownLatch.count_down called after reaching zero")
                return
            self._count -= 1
            reached_zero = self._count == 0
        if reached_zero:
            self._done.set()
            if self._on_zero is not None:
                self._on_zero()

    def wait(self, timeout: float | None = None) -> bool:
        return self._done.wait(timeout)


def _task_name(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__qualname__", None) or getattr(fn, "__name__", repr(fn))


__all__ = ["CountdownLatch", "PrimaryContext"]
