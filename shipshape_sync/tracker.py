"""Recording lifecycle: owns the single active track and appends samples to it."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable, List, Optional

from .config import ACTIVE_TRACK_TITLE
from .models import GeoPoint, PropulsionMethod, Track, TrackState
from .store import InMemoryTrackStore, save_quietly
from .sync_session import SyncSession

LOGGER = logging.getLogger(__name__)


class TrackerState(str, Enum):
    RECORDING = "recording"
    PAUSED = "paused"
    STOPPED = "stopped"


@dataclass(frozen=True, slots=True)
class LocationSample:
    latitude: float
    longitude: float
    timestamp: datetime
    propulsion: Optional[PropulsionMethod] = None
    notes: Optional[str] = None


StateListener = Callable[[TrackerState, TrackerState], None]


class LocationTracker:
    """Turns a location-update stream into points on the active track.

    Intended to run on the primary context, like every other track mutation.
    """

    def __init__(self, store: InMemoryTrackStore, session: SyncSession) -> None:
        self._store = store
        self._session = session
        self._state = TrackerState.STOPPED
        self._active: Track | None = None
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> TrackerState:
        return self._state

    @property
    def active_track(self) -> Track | None:
        return self._active

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def restore(self) -> Track | None:
        """Resume an interrupted recording and fault any extra recording tracks.

        Only the session sailor's own tracks (or tracks without a creator) can
        be resumed; recording tracks of other sailors are always faulted.
        """

        for track in self._store.tracks_with_state(TrackState.RECORDING):
            if track is self._active:
                continue
            if self._active is None and self._is_own(track):
                self._active = track
                self.change_state(TrackerState.RECORDING)
                continue
            LOGGER.warning(
                "Track %s was also recording; moving it to fault", track.display_id
            )
            track.transition_to(TrackState.FAULT)
        save_quietly(self._store, "Tracker restore")
        return self._active

    def change_state(self, new_state: TrackerState) -> None:
        old_state = self._state
        if new_state == old_state:
            return

        if old_state is TrackerState.STOPPED and new_state is TrackerState.RECORDING:
            if self._active is None:
                self._active = self._start_track()
        elif new_state is TrackerState.STOPPED and self._active is not None:
            self._complete_active()

        self._state = new_state
        LOGGER.info("Tracker state %s -> %s", old_state.value, new_state.value)
        for listener in list(self._listeners):
            try:
                listener(old_state, new_state)
            except Exception:
                LOGGER.debug("Tracker state listener failed", exc_info=True)

    def record_locations(self, samples: Iterable[LocationSample]) -> int:
        """Append one point per sample to the active track; returns points added."""

        if self._active is None or self._state is not TrackerState.RECORDING:
            return 0
        added = 0
        for sample in samples:
            self._active.add_point(
                GeoPoint(
                    latitude=sample.latitude,
                    longitude=sample.longitude,
                    timestamp=sample.timestamp,
                    propulsion=sample.propulsion,
                    notes=sample.notes,
                )
            )
            added += 1
        if added:
            save_quietly(self._store, "Record locations")
        return added

    def _is_own(self, track: Track) -> bool:
        return track.creator is None or track.creator.username == self._session.username

    def _start_track(self) -> Track:
        track = Track(
            title=ACTIVE_TRACK_TITLE,
            vessel=self._session.active_vessel,
            creator=self._session.active_sailor,
        )
        track.transition_to(TrackState.RECORDING)
        self._store.add_track(track)
        save_quietly(self._store, "Start recording")
        LOGGER.info("Started recording track %s", track.local_id)
        return track

    def _complete_active(self) -> None:
        track = self._active
        if track is None:
            return
        if track.state is TrackState.RECORDING:
            track.transition_to(TrackState.COMPLETE)
        stats = track.recalculate_stats()
        save_quietly(self._store, "Stop recording")
        LOGGER.info(
            "Stopped recording track %s (%d points, %.0f m, %.0f s)",
            track.local_id,
            len(track.points),
            stats.total_distance,
            stats.total_time,
        )
        self._active = None


__all__ = ["LocationSample", "LocationTracker", "TrackerState"]
