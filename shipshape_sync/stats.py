"""Trip statistics derived from an ordered point sequence."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Sequence, Tuple

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .models import GeoPoint, TrackStats

_EARTH_RADIUS_M = 6_371_000.0


def compute_stats(points: Sequence["GeoPoint"]) -> "TrackStats":
    """Return elapsed time (s), distance (m) and average speed (m/s).

    Elapsed time spans the first to the last timestamp. Average speed divides
    the distance by the sum of the pairwise time deltas, which only matches
    the elapsed time when timestamps are strictly increasing. When every
    pairwise delta is zero the speed is NaN; a single point has no pairs and
    reports zero for everything.
    """

    from .models import TrackStats

    if not points:
        return TrackStats()
    total_time = (points[-1].timestamp - points[0].timestamp).total_seconds()
    if len(points) == 1:
        return TrackStats(total_time=total_time)

    total_distance = 0.0
    moving_time = 0.0
    previous = points[0]
    for current in points[1:]:
        total_distance += haversine_m(
            (previous.latitude, previous.longitude),
            (current.latitude, current.longitude),
        )
        moving_time += (current.timestamp - previous.timestamp).total_seconds()
        previous = current

    if moving_time == 0:
        average_speed = math.nan
    else:
        average_speed = total_distance / moving_time
    return TrackStats(
        total_time=total_time,
        total_distance=total_distance,
        average_speed=average_speed,
    )


def haversine_m(first: Tuple[float, float], second: Tuple[float, float]) -> float:
    """Great-circle distance in metres between two (lat, lon) pairs."""

    lat1, lon1 = first
    lat2, lon2 = second
    sin = math.sin
    cos = math.cos
    radians = math.radians
    lat1_rad = radians(lat1)
    lat2_rad = radians(lat2)
    delta_lat = lat2_rad - lat1_rad
    delta_lon = radians(lon2 - lon1)
    sin_half_lat = sin(delta_lat / 2.0)
    sin_half_lon = sin(delta_lon / 2.0)
    a = sin_half_lat**2 + cos(lat1_rad) * cos(lat2_rad) * sin_half_lon**2
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return _EARTH_RADIUS_M * c


__all__ = ["compute_stats", "haversine_m"]
