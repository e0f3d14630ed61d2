"""Split tracks into propulsion runs and pick a render style for each run.

The map surface consumes the :class:`TrackSegment` list produced here; the
segments are rebuilt every time a track's annotation is (re)generated and are
never persisted.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from .config import (
    OTHER_TRACK_ALPHA,
    OTHER_TRACK_COLOR,
    OTHER_TRACK_LINE_WIDTH,
    OWN_TRACK_ALPHA_MIN,
    OWN_TRACK_ALPHA_STEP,
    OWN_TRACK_COLOR,
    OWN_TRACK_LINE_WIDTH,
    RECORDING_TRACK_COLOR,
)
from .models import (
    GeoPoint,
    LatLon,
    PropulsionMethod,
    SegmentStyle,
    Sailor,
    Track,
    TrackSegment,
    TrackState,
)

LOGGER = logging.getLogger(__name__)


def split_by_propulsion(
    points: Sequence[GeoPoint],
) -> List[tuple[Optional[PropulsionMethod], List[LatLon]]]:
    """Return ``(propulsion, coordinates)`` runs in point order.

    The first point carrying a propulsion value seeds the current method. A
    point whose method differs closes the run collected so far (the point
    itself starts the next run). The last run is always emitted, even when
    empty.
    """

    runs: List[tuple[Optional[PropulsionMethod], List[LatLon]]] = []
    current: Optional[PropulsionMethod] = None
    coordinates: List[LatLon] = []
    for point in points:
        propulsion = point.propulsion
        if current is None and propulsion is not None:
            current = propulsion
        if propulsion != current:
            runs.append((current, coordinates))
            current = propulsion
            coordinates = []
        coordinates.append(point.coordinate)
    runs.append((current, coordinates))
    return runs


def style_for_segment(
    is_own_track: bool, color_index: int, track_state: TrackState
) -> SegmentStyle:
    """Deterministic style for a segment given its track's ownership and state."""

    if track_state is TrackState.RECORDING:
        return SegmentStyle(
            stroke_color=RECORDING_TRACK_COLOR,
            alpha=1.0,
            line_width=OWN_TRACK_LINE_WIDTH,
        )
    if is_own_track:
        alpha = max(OWN_TRACK_ALPHA_MIN, 1.0 - OWN_TRACK_ALPHA_STEP * max(color_index, 0))
        return SegmentStyle(
            stroke_color=OWN_TRACK_COLOR,
            alpha=alpha,
            line_width=OWN_TRACK_LINE_WIDTH,
        )
    return SegmentStyle(
        stroke_color=OTHER_TRACK_COLOR,
        alpha=OTHER_TRACK_ALPHA,
        line_width=OTHER_TRACK_LINE_WIDTH,
    )


def segment_track(
    track: Track,
    *,
    color_index: int = 0,
    is_own_track: bool = True,
) -> List[TrackSegment]:
    """Partition ``track`` into styled segments.

    A track without points yields exactly one empty segment with propulsion
    ``NONE``.
    """

    parent_id = track.display_id
    style = style_for_segment(is_own_track, color_index, track.state)
    if not track.points:
        return [
            TrackSegment(
                propulsion=PropulsionMethod.NONE,
                coordinates=[],
                parent_id=parent_id,
                color_index=color_index,
                style=style,
            )
        ]
    return [
        TrackSegment(
            propulsion=propulsion or PropulsionMethod.NONE,
            coordinates=coordinates,
            parent_id=parent_id,
            color_index=color_index,
            style=style,
        )
        for propulsion, coordinates in split_by_propulsion(track.points)
    ]


def is_own_track(track: Track, active_sailor: Sailor | None) -> bool:
    """Tracks without a creator are treated as the local user's own."""

    if track.creator is None:
        return True
    if active_sailor is None:
        return False
    return track.creator.username == active_sailor.username


@dataclass
class TrackAnnotation:
    track: Track
    color_index: int
    segments: List[TrackSegment] = field(default_factory=list)


class AnnotationRegistry:
    """Keeps the segments currently shown on the map, one entry per track.

    Each track gets the next color index the first time it is added and keeps
    it across updates, so restyling is stable while a track stays visible.
    """

    def __init__(self, active_sailor: Sailor | None = None) -> None:
        self._active_sailor = active_sailor
        self._annotations: Dict[str, TrackAnnotation] = {}
        self._next_color_index = 0
        self._lock = threading.RLock()

    def add_track(self, track: Track) -> List[TrackSegment]:
        return self.update_track(track)

    def update_track(self, track: Track) -> List[TrackSegment]:
        with self._lock:
            existing = self._annotations.get(track.local_id)
            if existing is not None:
                color_index = existing.color_index
            else:
                color_index = self._next_color_index
                self._next_color_index += 1
            segments = segment_track(
                track,
                color_index=color_index,
                is_own_track=is_own_track(track, self._active_sailor),
            )
            self._annotations[track.local_id] = TrackAnnotation(
                track=track, color_index=color_index, segments=segments
            )
        LOGGER.debug(
            "Annotated track %s with %d segments (color_index=%d)",
            track.display_id,
            len(segments),
            color_index,
        )
        return segments

    def update_all(self) -> None:
        with self._lock:
            tracks = [annotation.track for annotation in self._annotations.values()]
        for track in tracks:
            self.update_track(track)

    def remove_track(self, track: Track) -> None:
        with self._lock:
            self._annotations.pop(track.local_id, None)

    def clear(self) -> None:
        with self._lock:
            self._annotations.clear()

    def segments_for(self, track: Track) -> List[TrackSegment]:
        with self._lock:
            annotation = self._annotations.get(track.local_id)
            return list(annotation.segments) if annotation else []

    def segments_for_tracks(self, tracks: Iterable[Track]) -> List[TrackSegment]:
        collected: List[TrackSegment] = []
        for track in tracks:
            collected.extend(self.segments_for(track))
        return collected

    def __contains__(self, track: object) -> bool:
        if not isinstance(track, Track):
            return False
        with self._lock:
            return track.local_id in self._annotations

    def __len__(self) -> int:
        with self._lock:
            return len(self._annotations)


__all__ = [
    "AnnotationRegistry",
    "TrackAnnotation",
    "is_own_track",
    "segment_track",
    "split_by_propulsion",
    "style_for_segment",
]
