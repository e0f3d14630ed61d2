"""HTTP client components for the remote track API (session, codec, endpoints)."""

from .resources import TrackAPI  # noqa: F401
from .session import create_session  # noqa: F401
from .wire import (  # noqa: F401
    PointPayload,
    TrackPayload,
    encode_bounds,
    serialize_track,
)
