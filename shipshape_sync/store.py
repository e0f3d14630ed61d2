"""In-memory object store standing in for the app's persistence layer.

The coordinator only relies on the query/save surface below, so a real
database-backed store can replace this one without touching sync code.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional

from .errors import PersistenceError
from .models import Sailor, Track, TrackState, Vessel

LOGGER = logging.getLogger(__name__)

SaveHook = Callable[[List[Track]], None]


class InMemoryTrackStore:
    """Track/Sailor/Vessel registry keyed by local id.

    ``save_hook`` receives a snapshot of all tracks on every :meth:`save`; it
    may raise to simulate a failing backend, in which case
    :class:`PersistenceError` is raised and in-memory state is kept.
    """

    def __init__(self, save_hook: SaveHook | None = None) -> None:
        self._tracks: Dict[str, Track] = {}
        self._sailors: Dict[str, Sailor] = {}
        self._vessels: List[Vessel] = []
        self._save_hook = save_hook
        self._lock = threading.RLock()
        self.save_count = 0

    # --- Tracks ---------------------------------------------------------
    def add_track(self, track: Track) -> Track:
        with self._lock:
            self._tracks[track.local_id] = track
        return track

    def get_track(self, local_id: str) -> Optional[Track]:
        with self._lock:
            return self._tracks.get(local_id)

    def delete_track(self, track: Track) -> None:
        """Remove a track; its points go with it."""

        with self._lock:
            removed = self._tracks.pop(track.local_id, None)
        if removed is not None:
            removed.points.clear()

    def find_by_remote_id(self, remote_id: str) -> Optional[Track]:
        with self._lock:
            for track in self._tracks.values():
                if track.remote_id == remote_id:
                    return track
        return None

    def tracks_with_state(self, state: TrackState) -> List[Track]:
        with self._lock:
            matches = [t for t in self._tracks.values() if t.state is state]
        matches.sort(key=lambda t: t.created_at)
        return matches

    def tracks_for_sailor(self, sailor: Sailor) -> List[Track]:
        with self._lock:
            matches = [
                t
                for t in self._tracks.values()
                if t.creator is not None and t.creator.username == sailor.username
            ]
        matches.sort(key=lambda t: t.created_at, reverse=True)
        return matches

    def all_tracks(self) -> List[Track]:
        with self._lock:
            return list(self._tracks.values())

    def evict_temporary(
        self, owner_username: str | None, keep_remote_ids: Iterable[str]
    ) -> List[Track]:
        """Drop temporary tracks owned by others and absent from ``keep_remote_ids``."""

        keep = set(keep_remote_ids)
        evicted: List[Track] = []
        with self._lock:
            for track in list(self._tracks.values()):
                if not track.temporary:
                    continue
                if track.creator is not None and track.creator.username == owner_username:
                    continue
                if track.remote_id is not None and track.remote_id in keep:
                    continue
                evicted.append(track)
            for track in evicted:
                self.delete_track(track)
        if evicted:
            LOGGER.debug("Evicted %d temporary tracks", len(evicted))
        return evicted

    # --- Sailors & vessels ---------------------------------------------
    def add_sailor(self, sailor: Sailor) -> Sailor:
        with self._lock:
            self._sailors[sailor.username] = sailor
        return sailor

    def sailor_by_username(self, username: str) -> Optional[Sailor]:
        with self._lock:
            return self._sailors.get(username)

    def add_vessel(self, vessel: Vessel) -> Vessel:
        with self._lock:
            self._vessels.append(vessel)
        return vessel

    def vessels_for_owner(self, owner: Sailor) -> List[Vessel]:
        with self._lock:
            return [
                v
                for v in self._vessels
                if v.owner is not None and v.owner.username == owner.username
            ]

    # --- Persistence ----------------------------------------------------
    def save(self) -> None:
        with self._lock:
            snapshot = list(self._tracks.values())
        if self._save_hook is not None:
            try:
                self._save_hook(snapshot)
            except Exception as exc:
                raise PersistenceError(f"Failed to save track store: {exc}") from exc
        self.save_count += 1


def save_quietly(store: InMemoryTrackStore, context: str) -> bool:
    """Save the store, logging failures instead of raising.

    A failed save leaves the in-memory graph as the source of truth for the
    session; nothing is rolled back.
    """

    try:
        store.save()
    except PersistenceError as exc:
        LOGGER.error("%s: store save failed: %s", context, exc)
        return False
    return True


__all__ = ["InMemoryTrackStore", "save_quietly"]
