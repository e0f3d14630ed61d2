"""Sync coordinator: reconciles local tracks with the remote path store.

Threading model
---------------
* Public methods may be called from any thread and return immediately.
* Network calls and payload parsing run on a background worker pool and
  produce immutable :class:`~shipshape_sync.api_client.wire.TrackPayload`
  snapshots.
* Everything that touches tracks, the in-flight fetch map or the latest
  bounds token runs on the :class:`~shipshape_sync.context.PrimaryContext`.

Failures never escape a worker thread; they are delivered as
:class:`SyncResult` values or through the ``on_error`` callback.
"""

from __future__ import annotations

import functools
import itertools
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Generic, List, Optional, Set, TypeVar

from .api_client import TrackAPI
from .api_client.wire import TrackPayload, serialize_track
from .config import EVICT_TEMPORARY_TRACKS, SYNC_MAX_WORKERS
from .context import CountdownLatch, PrimaryContext
from .errors import (
    DecodeError,
    DuplicateInFlightError,
    ShipShapeAPIError,
    SupersededError,
    ValidationError,
)
from .models import Sailor, Track, TrackState, ViewportQuad, apply_metadata
from .store import InMemoryTrackStore, save_quietly
from .sync_session import SyncSession

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

OnEach = Callable[[str], None]
OnComplete = Callable[[List[str]], None]
OnError = Callable[[ShipShapeAPIError], None]


@dataclass(frozen=True)
class SyncResult(Generic[T]):
    """Outcome of an asynchronous sync call: a value or an error, never both."""

    value: Optional[T] = None
    error: Optional[ShipShapeAPIError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _drop_if_superseded(method: Callable[..., None]) -> Callable[..., None]:
    """Swallow :class:`SupersededError` raised by a bounds step."""

    @functools.wraps(method)
    def wrapper(self: "SyncCoordinator", *args: Any, **kwargs: Any) -> None:
        try:
            method(self, *args, **kwargs)
        except SupersededError as exc:
            LOGGER.debug("Dropping %s: %s", method.__name__, exc)

    return wrapper


class SyncCoordinator:
    def __init__(
        self,
        store: InMemoryTrackStore,
        session: SyncSession,
        *,
        api: TrackAPI | None = None,
        primary: PrimaryContext | None = None,
        max_workers: int | None = None,
        evict_temporary: bool = EVICT_TEMPORARY_TRACKS,
    ) -> None:
        self.max_workers = max_workers or SYNC_MAX_WORKERS
        if self.max_workers <= 0:
            raise ValueError("max_workers must be positive")
        self._store = store
        self._session = session
        self._api = api or session.create_api()
        self._owns_primary = primary is None
        self._primary = primary or PrimaryContext()
        self._workers = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="sync-worker"
        )
        self._evict_temporary = evict_temporary
        # Primary-context state.
        self._in_flight: Dict[str, "Future[SyncResult[str]]"] = {}
        self._token_counter = itertools.count(1)
        self._latest_bounds_token = 0

    @property
    def primary(self) -> PrimaryContext:
        return self._primary

    @property
    def latest_bounds_token(self) -> int:
        return self._latest_bounds_token

    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    def shutdown(self, wait: bool = True) -> None:
        self._workers.shutdown(wait=wait)
        if self._owns_primary:
            self._primary.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------
    def upload(self, track: Track) -> "Future[SyncResult[str]]":
        """Send ``track`` to the server; the result carries the new remote id."""

        result: "Future[SyncResult[str]]" = Future()
        if not track.points:
            message = f"Refusing to upload track {track.display_id} without points"
            LOGGER.warning(message)
            result.set_result(SyncResult(error=ValidationError(message)))
            return result
        self._primary.post(self._begin_upload, track, result)
        return result

    def _begin_upload(self, track: Track, result: "Future[SyncResult[str]]") -> None:
        # Cached stats may lag behind the points.
        track.recalculate_stats()
        payload = serialize_track(track)
        self._workers.submit(self._run_upload, track, payload, result)

    def _run_upload(
        self, track: Track, payload: dict, result: "Future[SyncResult[str]]"
    ) -> None:
        # Worker thread: only the serialised payload is read here.
        try:
            remote_id = self._api.create_path(payload)
        except ShipShapeAPIError as exc:
            LOGGER.error("Upload of track %s failed: %s", track.local_id, exc)
            result.set_result(SyncResult(error=exc))
            return
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Unexpected upload failure for track %s", track.local_id)
            result.set_result(SyncResult(error=ShipShapeAPIError(str(exc))))
            return
        self._primary.post(self._finish_upload, track, remote_id, result)

    def _finish_upload(
        self, track: Track, remote_id: str, result: "Future[SyncResult[str]]"
    ) -> None:
        track.remote_id = remote_id
        save_quietly(self._store, f"Upload of track {track.local_id}")
        result.set_result(SyncResult(value=remote_id))

    # ------------------------------------------------------------------
    # Fetch by id
    # ------------------------------------------------------------------
    def fetch_by_id(
        self, remote_id: str, include_points: bool = True
    ) -> "Future[SyncResult[str]]":
        """Download one path and create it locally; the result is the local id.

        Only one fetch per remote id may be in flight. A second request for
        the same id resolves with :class:`DuplicateInFlightError` without any
        network call.
        """

        result: "Future[SyncResult[str]]" = Future()
        self._primary.post(self._begin_fetch, remote_id, include_points, result)
        return result

    def _begin_fetch(
        self,
        remote_id: str,
        include_points: bool,
        result: "Future[SyncResult[str]]",
    ) -> None:
        if remote_id in self._in_flight:
            message = f"Fetch for path {remote_id} already in flight"
            LOGGER.info(message)
            result.set_result(SyncResult(error=DuplicateInFlightError(message)))
            return
        self._in_flight[remote_id] = result
        self._workers.submit(self._run_fetch, remote_id, include_points, result)

    def _run_fetch(
        self,
        remote_id: str,
        include_points: bool,
        result: "Future[SyncResult[str]]",
    ) -> None:
        try:
            payload = self._api.get_path(remote_id, include_points=include_points)
        except ShipShapeAPIError as exc:
            LOGGER.warning("Fetch of path %s failed: %s", remote_id, exc)
            self._primary.post(self._finish_fetch, remote_id, None, exc, result)
            return
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Unexpected failure fetching path %s", remote_id)
            error = ShipShapeAPIError(f"Fetch of path {remote_id} failed: {exc}")
            self._primary.post(self._finish_fetch, remote_id, None, error, result)
            return
        self._primary.post(self._finish_fetch, remote_id, payload, None, result)

    def _finish_fetch(
        self,
        remote_id: str,
        payload: TrackPayload | None,
        error: ShipShapeAPIError | None,
        result: "Future[SyncResult[str]]",
    ) -> None:
        outcome: SyncResult[str]
        try:
            if payload is None:
                outcome = SyncResult(error=error or DecodeError(f"Path {remote_id} missing body"))
            else:
                outcome = SyncResult(value=self._materialize(payload))
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Failed to store fetched path %s", remote_id)
            outcome = SyncResult(error=DecodeError(f"Path {remote_id} could not be stored: {exc}"))
        finally:
            self._in_flight.pop(remote_id, None)
        result.set_result(outcome)

    def _materialize(self, payload: TrackPayload) -> str:
        """Create (or refresh) the local track for ``payload``; primary only."""

        existing = self._store.find_by_remote_id(payload.remote_id)
        if existing is not None:
            self._merge_remote(existing, payload)
            if payload.points is not None and existing.state is not TrackState.RECORDING:
                existing.points = [p.to_point() for p in payload.points]
            save_quietly(self._store, f"Refresh of path {payload.remote_id}")
            return existing.local_id

        track = payload.build_track(self._resolve_creator(payload.creator_username))
        track.temporary = not self._is_session_user(payload.creator_username)
        self._store.add_track(track)
        save_quietly(self._store, f"Fetch of path {payload.remote_id}")
        LOGGER.debug(
            "Stored path %s as local track %s (%d points)",
            payload.remote_id,
            track.local_id,
            len(track.points),
        )
        return track.local_id

    def _merge_remote(self, track: Track, payload: TrackPayload) -> None:
        metadata = payload.to_metadata(self._resolve_creator(payload.creator_username))
        if track.state is TrackState.RECORDING:
            # The local recording owns its state until the tracker stops it.
            metadata = replace(metadata, state=None)
        apply_metadata(track, metadata)

    def _resolve_creator(self, username: str | None) -> Sailor | None:
        # Unknown creators stay unset; no Sailor is created for them.
        if not username:
            return None
        return self._store.sailor_by_username(username)

    def _is_session_user(self, username: str | None) -> bool:
        return bool(username) and username == self._session.username

    # ------------------------------------------------------------------
    # Fetch in bounds
    # ------------------------------------------------------------------
    def fetch_in_bounds(
        self,
        quad: ViewportQuad,
        on_each: OnEach | None = None,
        on_complete: OnComplete | None = None,
        on_error: OnError | None = None,
    ) -> None:
        """Query paths intersecting ``quad`` and make each available locally.

        A newer call supersedes older ones: a superseded call never invokes
        any of its callbacks. ``on_each`` fires once per resolved path in no
        particular order; ``on_complete`` fires once with every resolved local
        id after all paths settle.
        """

        self._primary.post(self._begin_bounds, quad, on_each, on_complete, on_error)

    def _begin_bounds(
        self,
        quad: ViewportQuad,
        on_each: OnEach | None,
        on_complete: OnComplete | None,
        on_error: OnError | None,
    ) -> None:
        token = next(self._token_counter)
        self._latest_bounds_token = token
        LOGGER.debug("Bounds request token=%d", token)
        self._workers.submit(
            self._run_bounds, token, quad, on_each, on_complete, on_error
        )

    @_drop_if_superseded
    def _run_bounds(
        self,
        token: int,
        quad: ViewportQuad,
        on_each: OnEach | None,
        on_complete: OnComplete | None,
        on_error: OnError | None,
    ) -> None:
        try:
            payloads = self._api.get_paths_in_bounds(quad)
        except ShipShapeAPIError as exc:
            self._ensure_current(token)
            LOGGER.warning("Bounds request token=%d failed: %s", token, exc)
            self._primary.post(self._report_bounds_error, token, exc, on_error)
            return
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Unexpected failure in bounds request token=%d", token)
            error = ShipShapeAPIError(f"Bounds request failed: {exc}")
            self._primary.post(self._report_bounds_error, token, error, on_error)
            return
        self._ensure_current(token)
        self._primary.post(
            self._process_bounds, token, payloads, on_each, on_complete
        )

    @_drop_if_superseded
    def _report_bounds_error(
        self, token: int, error: ShipShapeAPIError, on_error: OnError | None
    ) -> None:
        self._ensure_current(token)
        _invoke(on_error, error, context="bounds on_error")

    @_drop_if_superseded
    def _process_bounds(
        self,
        token: int,
        payloads: List[TrackPayload],
        on_each: OnEach | None,
        on_complete: OnComplete | None,
    ) -> None:
        # Time may have passed since the response arrived; re-check here.
        self._ensure_current(token)

        resolved: List[str] = []
        unique: Dict[str, TrackPayload] = {}
        for payload in payloads:
            unique.setdefault(payload.remote_id, payload)
        keep_remote_ids = set(unique)

        def finish() -> None:
            self._primary.post(
                self._finish_bounds, token, resolved, keep_remote_ids, on_complete
            )

        if not unique:
            finish()
            return

        latch = CountdownLatch(len(unique), on_zero=finish)
        merged = 0
        for remote_id, payload in unique.items():
            existing = self._store.find_by_remote_id(remote_id)
            if existing is not None:
                self._merge_remote(existing, payload)
                merged += 1
                resolved.append(existing.local_id)
                _invoke(on_each, existing.local_id, context="bounds on_each")
                latch.count_down()
                continue
            # An earlier batch may already be downloading this path; join it.
            future = self._in_flight.get(remote_id)
            if future is None:
                future = self.fetch_by_id(remote_id, include_points=True)
            future.add_done_callback(
                lambda fut, _remote_id=remote_id: self._primary.post(
                    self._bounds_path_fetched,
                    token,
                    _remote_id,
                    fut.result(),
                    resolved,
                    on_each,
                    latch,
                )
            )
        if merged:
            save_quietly(self._store, f"Bounds merge token={token}")

    @_drop_if_superseded
    def _bounds_path_fetched(
        self,
        token: int,
        remote_id: str,
        outcome: SyncResult[str],
        resolved: List[str],
        on_each: OnEach | None,
        latch: CountdownLatch,
    ) -> None:
        try:
            if not outcome.ok:
                LOGGER.debug("Bounds path %s not fetched: %s", remote_id, outcome.error)
            elif outcome.value is not None:
                self._ensure_current(token)
                resolved.append(outcome.value)
                _invoke(on_each, outcome.value, context="bounds on_each")
        finally:
            latch.count_down()

    @_drop_if_superseded
    def _finish_bounds(
        self,
        token: int,
        resolved: List[str],
        keep_remote_ids: Set[str],
        on_complete: OnComplete | None,
    ) -> None:
        self._ensure_current(token)
        if self._evict_temporary:
            self._store.evict_temporary(self._session.username, keep_remote_ids)
        LOGGER.info("Bounds request token=%d resolved %d paths", token, len(resolved))
        _invoke(on_complete, list(resolved), context="bounds on_complete")

    def _ensure_current(self, token: int) -> None:
        latest = self._latest_bounds_token
        if token != latest:
            raise SupersededError(
                f"bounds request token={token} superseded by token={latest}"
            )


def _invoke(callback: Callable[[T], None] | None, value: T, *, context: str) -> None:
    if callback is None:
        return
    try:
        callback(value)
    except Exception:
        LOGGER.debug("%s callback failed", context, exc_info=True)


__all__ = ["SyncCoordinator", "SyncResult"]
