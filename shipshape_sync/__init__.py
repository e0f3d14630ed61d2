"""ShipShape track sync and annotation engine."""

from .errors import (
    DecodeError,
    DuplicateInFlightError,
    NetworkUnreachableError,
    ServerError,
    ShipShapeAPIError,
    ValidationError,
)
from .models import (
    GeoPoint,
    PropulsionMethod,
    Sailor,
    Track,
    TrackMetadata,
    TrackSegment,
    TrackState,
    TrackType,
    Vessel,
    ViewportQuad,
    apply_metadata,
)
from .segmenter import AnnotationRegistry, segment_track, style_for_segment
from .stats import compute_stats
from .store import InMemoryTrackStore
from .sync import SyncCoordinator, SyncResult
from .sync_session import SyncSession

__all__ = [
    "AnnotationRegistry",
    "DecodeError",
    "DuplicateInFlightError",
    "GeoPoint",
    "InMemoryTrackStore",
    "NetworkUnreachableError",
    "PropulsionMethod",
    "Sailor",
    "ServerError",
    "ShipShapeAPIError",
    "SyncCoordinator",
    "SyncResult",
    "SyncSession",
    "Track",
    "TrackMetadata",
    "TrackSegment",
    "TrackState",
    "TrackType",
    "ValidationError",
    "Vessel",
    "ViewportQuad",
    "apply_metadata",
    "compute_stats",
    "segment_track",
    "style_for_segment",
]
