"""Domain records for tracks, points and the people/boats that own them."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from .errors import TrackStateError
from .stats import compute_stats

LatLon = Tuple[float, float]
RGB = Tuple[float, float, float]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_local_id() -> str:
    return uuid.uuid4().hex


class PropulsionMethod(str, Enum):
    SAIL = "sail"
    MOTOR = "motor"
    HUMAN = "human"
    ANCHOR = "anchor"
    NONE = "none"

    @classmethod
    def parse(cls, raw: Any) -> Optional["PropulsionMethod"]:
        """Return the matching method, or ``None`` for blank/unknown values."""

        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, str) or not raw.strip():
            return None
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return None


class TrackType(str, Enum):
    PAST = "past"
    FUTURE = "future"

    @classmethod
    def parse(cls, raw: Any, default: "TrackType | None" = None) -> "TrackType":
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, str):
            normalized = raw.strip().lower()
            if normalized == "planned":
                return cls.FUTURE
            try:
                return cls(normalized)
            except ValueError:
                pass
        return default or cls.PAST


class TrackState(str, Enum):
    EDITING = "editing"
    RECORDING = "recording"
    COMPLETE = "complete"
    DOWNLOADING = "downloading"
    FAULT = "fault"

    @classmethod
    def parse(cls, raw: Any, default: "TrackState | None" = None) -> "TrackState":
        """Parse a wire value; unknown strings map to FAULT."""

        if isinstance(raw, cls):
            return raw
        if raw is None:
            return default or cls.COMPLETE
        if isinstance(raw, str):
            try:
                return cls(raw.strip().lower())
            except ValueError:
                return cls.FAULT
        return cls.FAULT


# FAULT is reachable from every state and is not listed here.
_ALLOWED_TRANSITIONS: Dict[TrackState, FrozenSet[TrackState]] = {
    TrackState.EDITING: frozenset({TrackState.RECORDING}),
    TrackState.RECORDING: frozenset({TrackState.COMPLETE}),
    TrackState.COMPLETE: frozenset(),
    TrackState.DOWNLOADING: frozenset({TrackState.COMPLETE}),
    TrackState.FAULT: frozenset(),
}


@dataclass(eq=False)
class Sailor:
    username: str
    real_name: Optional[str] = None
    profile: Optional[str] = None
    remote_id: Optional[str] = None


@dataclass(eq=False)
class Vessel:
    name: str
    propulsion: Optional[PropulsionMethod] = None
    length: Optional[float] = None
    year_built: Optional[int] = None
    remote_id: Optional[str] = None
    notes: Optional[str] = None
    owner: Optional[Sailor] = None


@dataclass(frozen=True, slots=True)
class GeoPoint:
    """One timestamped location sample.

    Points are frozen; use :meth:`with_remote_id` to attach the server id after
    a sync, which returns a copy.
    """

    latitude: float
    longitude: float
    timestamp: datetime
    propulsion: Optional[PropulsionMethod] = None
    notes: Optional[str] = None
    remote_id: Optional[str] = None

    @property
    def coordinate(self) -> LatLon:
        return self.latitude, self.longitude

    def with_remote_id(self, remote_id: str) -> "GeoPoint":
        return GeoPoint(
            latitude=self.latitude,
            longitude=self.longitude,
            timestamp=self.timestamp,
            propulsion=self.propulsion,
            notes=self.notes,
            remote_id=remote_id,
        )


@dataclass(frozen=True, slots=True)
class TrackStats:
    total_time: float = 0.0
    total_distance: float = 0.0
    average_speed: float = 0.0


@dataclass(eq=False)
class Track:
    """A recorded or planned voyage.

    ``total_time``, ``total_distance`` and ``average_speed`` are caches of
    :func:`shipshape_sync.stats.compute_stats`; ``points`` is the source of
    truth.
    """

    title: str = "Untitled Track"
    created_at: datetime = field(default_factory=_utcnow)
    remote_id: Optional[str] = None
    notes: Optional[str] = None
    total_time: float = 0.0
    total_distance: float = 0.0
    average_speed: float = 0.0
    type: TrackType = TrackType.PAST
    state: TrackState = TrackState.EDITING
    vessel: Optional[Vessel] = None
    creator: Optional[Sailor] = None
    temporary: bool = False
    points: List[GeoPoint] = field(default_factory=list)
    local_id: str = field(default_factory=_new_local_id)

    @property
    def display_id(self) -> str:
        """Remote id when synced, otherwise the local id."""

        return self.remote_id or self.local_id

    def add_point(self, point: GeoPoint) -> None:
        self.points.append(point)

    def transition_to(self, new_state: TrackState) -> None:
        if new_state == self.state:
            return
        if new_state is TrackState.FAULT:
            self.state = new_state
            return
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise TrackStateError(
                f"Track {self.display_id} cannot move from {self.state.value} to {new_state.value}"
            )
        self.state = new_state

    def recalculate_stats(self) -> TrackStats:
        stats = compute_stats(self.points)
        self.total_time = stats.total_time
        self.total_distance = stats.total_distance
        self.average_speed = stats.average_speed
        return stats


@dataclass(frozen=True, slots=True)
class TrackMetadata:
    """Fields known from a remote payload; ``None`` means "not provided"."""

    title: Optional[str] = None
    created_at: Optional[datetime] = None
    remote_id: Optional[str] = None
    notes: Optional[str] = None
    total_time: Optional[float] = None
    total_distance: Optional[float] = None
    average_speed: Optional[float] = None
    type: Optional[TrackType] = None
    state: Optional[TrackState] = None
    creator: Optional[Sailor] = None


def apply_metadata(track: Track, update: TrackMetadata) -> Track:
    """Copy every non-None field of ``update`` onto ``track`` and return it."""

    for item in fields(update):
        value = getattr(update, item.name)
        if value is not None:
            setattr(track, item.name, value)
    return track


@dataclass(frozen=True, slots=True)
class SegmentStyle:
    stroke_color: RGB
    alpha: float
    line_width: float


@dataclass(slots=True)
class TrackSegment:
    """A maximal run of a track's points sharing one propulsion method."""

    propulsion: PropulsionMethod
    coordinates: List[LatLon]
    parent_id: Optional[str] = None
    color_index: int = 0
    style: Optional[SegmentStyle] = None


@dataclass(frozen=True, slots=True)
class ViewportQuad:
    """Corners of the visible map area as (lat, lon) pairs."""

    top_left: LatLon
    top_right: LatLon
    bottom_right: LatLon
    bottom_left: LatLon

    def corners(self) -> List[LatLon]:
        return [self.top_left, self.top_right, self.bottom_right, self.bottom_left]
