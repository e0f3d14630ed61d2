"""Conversion between local tracks and the remote JSON representation.

Outbound payloads only carry fields that are set locally: the server treats
an omitted key differently from an explicit empty value, so ``None`` is never
serialised. Inbound payloads are parsed defensively into immutable DTOs that
can cross threads safely and be materialised on the primary context.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..errors import DecodeError
from ..models import (
    GeoPoint,
    PropulsionMethod,
    Sailor,
    Track,
    TrackMetadata,
    TrackState,
    TrackType,
    ViewportQuad,
    apply_metadata,
)

LOGGER = logging.getLogger(__name__)

JSONObj = Dict[str, Any]


@dataclass(frozen=True, slots=True)
class PointPayload:
    latitude: float
    longitude: float
    timestamp: datetime
    propulsion: Optional[PropulsionMethod] = None
    notes: Optional[str] = None
    remote_id: Optional[str] = None

    def to_point(self) -> GeoPoint:
        return GeoPoint(
            latitude=self.latitude,
            longitude=self.longitude,
            timestamp=self.timestamp,
            propulsion=self.propulsion,
            notes=self.notes,
            remote_id=self.remote_id,
        )


@dataclass(frozen=True, slots=True)
class TrackPayload:
    """Snapshot of a remote path; ``points`` is ``None`` when not requested."""

    remote_id: str
    title: Optional[str] = None
    created_at: Optional[datetime] = None
    notes: Optional[str] = None
    total_time: Optional[float] = None
    total_distance: Optional[float] = None
    average_speed: Optional[float] = None
    type: Optional[TrackType] = None
    state: Optional[TrackState] = None
    creator_username: Optional[str] = None
    points: Optional[Tuple[PointPayload, ...]] = None

    def to_metadata(self, creator: Sailor | None = None) -> TrackMetadata:
        """Fields to merge locally.

        A remote ``recording`` state becomes ``fault``: only the local tracker
        may hold a recording track.
        """

        state = self.state
        if state is TrackState.RECORDING:
            state = TrackState.FAULT
        return TrackMetadata(
            title=self.title,
            created_at=self.created_at,
            remote_id=self.remote_id,
            notes=self.notes,
            total_time=self.total_time,
            total_distance=self.total_distance,
            average_speed=self.average_speed,
            type=self.type,
            state=state,
            creator=creator,
        )

    def build_track(self, creator: Sailor | None = None) -> Track:
        """Materialise a new local track; call on the primary context."""

        track = Track(state=TrackState.DOWNLOADING)
        apply_metadata(track, self.to_metadata(creator))
        if self.state is None:
            track.transition_to(TrackState.COMPLETE)
        if self.points is not None:
            track.points = [point.to_point() for point in self.points]
        return track


# --- Outbound ---------------------------------------------------------------
def to_epoch_seconds(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def serialize_point(point: GeoPoint) -> JSONObj:
    payload: JSONObj = {
        "latitude": point.latitude,
        "longitude": point.longitude,
        "created": to_epoch_seconds(point.timestamp),
    }
    if point.propulsion is not None:
        payload["propulsion"] = point.propulsion.value
    if point.notes is not None:
        payload["notes"] = point.notes
    return payload


def serialize_track(track: Track) -> JSONObj:
    """Build the upload body for ``track``, omitting every unset field."""

    average_speed = track.average_speed
    if average_speed is None or math.isnan(average_speed):
        average_speed = 0.0
    candidates: JSONObj = {
        "title": track.title,
        "created": to_epoch_seconds(track.created_at) if track.created_at else None,
        "notes": track.notes,
        "totalTime": track.total_time,
        "totalDistance": track.total_distance,
        "averageSpeed": average_speed,
        "type": track.type.value if track.type is not None else None,
        "state": track.state.value if track.state is not None else None,
        "vessel": track.vessel.name if track.vessel is not None else None,
        "vessel_id": track.vessel.remote_id if track.vessel is not None else None,
    }
    payload = {key: value for key, value in candidates.items() if value is not None}
    payload["points"] = [serialize_point(point) for point in track.points]
    return payload


def encode_bounds(quad: ViewportQuad) -> str:
    """Eight comma-separated floats: (lon, lat) for TL, TR, BR, BL."""

    values: List[str] = []
    for lat, lon in quad.corners():
        values.append(repr(float(lon)))
        values.append(repr(float(lat)))
    return ",".join(values)


# --- Inbound ----------------------------------------------------------------
def parse_upload_response(data: Mapping[str, Any]) -> str:
    remote_id = _coerce_id(data.get("path_id"))
    if remote_id is None:
        raise DecodeError("Upload response lacks path_id")
    return remote_id


def parse_track_payload(
    data: Mapping[str, Any],
    *,
    fallback_remote_id: str | None = None,
    include_points: bool = True,
) -> TrackPayload:
    """Parse one remote path. Only a usable id is mandatory."""

    remote_id = _coerce_id(data.get("_id")) or fallback_remote_id
    if remote_id is None:
        raise DecodeError("Path payload lacks _id")
    created_at = _coerce_datetime(data.get("created"))
    points: Optional[Tuple[PointPayload, ...]] = None
    if include_points:
        points = _parse_points(data.get("points"), created_at)
    creator = data.get("creator")
    creator_username = None
    if isinstance(creator, Mapping):
        creator_username = _coerce_str(creator.get("username"))
    raw_type = data.get("type")
    raw_state = data.get("state")
    return TrackPayload(
        remote_id=remote_id,
        title=_coerce_str(data.get("title")),
        created_at=created_at,
        notes=_coerce_str(data.get("notes")),
        total_time=_coerce_float(data.get("totalTime")),
        total_distance=_coerce_float(data.get("totalDistance")),
        average_speed=_coerce_float(data.get("averageSpeed")),
        type=TrackType.parse(raw_type) if raw_type is not None else None,
        state=TrackState.parse(raw_state) if raw_state is not None else None,
        creator_username=creator_username,
        points=points,
    )


def parse_bounds_response(data: Mapping[str, Any]) -> List[TrackPayload]:
    raw_paths = data.get("paths")
    if raw_paths is None:
        return []
    if not isinstance(raw_paths, list):
        raise DecodeError("Bounds response 'paths' is not a list")
    parsed: List[TrackPayload] = []
    for entry in raw_paths:
        if not isinstance(entry, Mapping):
            LOGGER.debug("Skipping non-object bounds entry: %r", entry)
            continue
        try:
            parsed.append(parse_track_payload(entry, include_points=False))
        except DecodeError:
            LOGGER.debug("Skipping bounds entry without _id: %r", entry)
    return parsed


def _parse_points(raw: Any, track_created: datetime | None) -> Tuple[PointPayload, ...]:
    if not isinstance(raw, list):
        return ()
    points: List[PointPayload] = []
    last_timestamp = track_created
    for entry in raw:
        if not isinstance(entry, Mapping):
            continue
        latitude = _coerce_float(entry.get("latitude"))
        longitude = _coerce_float(entry.get("longitude"))
        if latitude is None or longitude is None:
            LOGGER.debug("Skipping point without coordinates: %r", entry)
            continue
        timestamp = _coerce_datetime(entry.get("created")) or last_timestamp
        if timestamp is None:
            timestamp = datetime.fromtimestamp(0, tz=timezone.utc)
        last_timestamp = timestamp
        points.append(
            PointPayload(
                latitude=latitude,
                longitude=longitude,
                timestamp=timestamp,
                propulsion=PropulsionMethod.parse(entry.get("propulsion")),
                notes=_coerce_str(entry.get("notes")),
                remote_id=_coerce_id(entry.get("_id")),
            )
        )
    return tuple(points)


def _coerce_id(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def _coerce_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _coerce_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _coerce_datetime(value: Any) -> Optional[datetime]:
    seconds = _coerce_float(value)
    if seconds is None or math.isnan(seconds):
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


__all__ = [
    "PointPayload",
    "TrackPayload",
    "encode_bounds",
    "parse_bounds_response",
    "parse_track_payload",
    "parse_upload_response",
    "serialize_point",
    "serialize_track",
    "to_epoch_seconds",
]
