"""Coalesce bursts of map viewport changes into a single bounds query."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Protocol

from .config import VIEWPORT_DEBOUNCE_SECONDS
from .models import ViewportQuad
from .sync import OnComplete, OnEach, OnError

LOGGER = logging.getLogger(__name__)

ViewportProvider = Callable[[], Optional[ViewportQuad]]


class BoundsFetcher(Protocol):
    def fetch_in_bounds(
        self,
        quad: ViewportQuad,
        on_each: OnEach | None = None,
        on_complete: OnComplete | None = None,
        on_error: OnError | None = None,
    ) -> None: ...


class ViewportDebouncer:
    """Single-shot timer re-armed on every viewport change.

    The viewport is read from ``viewport_provider`` when the timer fires, not
    when it is armed, so the query always targets the settled map position.
    """

    def __init__(
        self,
        fetcher: BoundsFetcher,
        viewport_provider: ViewportProvider,
        *,
        delay: float = VIEWPORT_DEBOUNCE_SECONDS,
        on_each: OnEach | None = None,
        on_complete: OnComplete | None = None,
        on_error: OnError | None = None,
    ) -> None:
        if delay < 0:
            raise ValueError("delay must be >= 0")
        self._fetcher = fetcher
        self._viewport_provider = viewport_provider
        self._delay = delay
        self._on_each = on_each
        self._on_complete = on_complete
        self._on_error = on_error
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def viewport_changed(self) -> None:
        """Arm (or re-arm) the timer; any earlier pending timer is dropped."""

        with self._lock:
            self._cancel_locked()
            self._generation += 1
            timer = threading.Timer(self._delay, self._fire, args=(self._generation,))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def viewport_will_change(self) -> None:
        """A gesture is starting; the pre-gesture viewport must not be queried."""

        self.cancel()

    def cancel(self) -> None:
        with self._lock:
            self._cancel_locked()

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            # Invalidate a timer that already fired but has not taken the lock.
            self._generation += 1

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
        quad = self._viewport_provider()
        if quad is None:
            LOGGER.debug("Viewport unavailable; skipping bounds query")
            return
        self._fetcher.fetch_in_bounds(
            quad,
            on_each=self._on_each,
            on_complete=self._on_complete,
            on_error=self._on_error,
        )


__all__ = ["BoundsFetcher", "ViewportDebouncer"]
