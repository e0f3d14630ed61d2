"""Central error types used across the application."""

from __future__ import annotations


class ShipShapeAPIError(RuntimeError):
    """Base error for remote track API failures."""


class NetworkUnreachableError(ShipShapeAPIError):
    """Raised when the server cannot be reached (DNS, connect, timeout)."""


class ServerError(ShipShapeAPIError):
    """Raised when the server answers with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(ServerError):
    """Raised when the server rejects the basic-auth credentials."""


class ResourceNotFoundError(ServerError):
    """Raised when a path does not exist on the server."""


class DecodeError(ShipShapeAPIError):
    """Raised when a response body is missing, not JSON, or lacks required fields."""


class DuplicateInFlightError(ShipShapeAPIError):
    """Raised when a fetch for the same remote id is already running."""


class SupersededError(ShipShapeAPIError):
    """Raised internally when a newer viewport query replaced an older one."""


class ValidationError(ShipShapeAPIError):
    """Raised when a request is rejected locally before any network call."""


class PersistenceError(RuntimeError):
    """Raised by the object store when saving fails."""


class TrackStateError(ValueError):
    """Raised when a track is asked to perform an illegal state transition."""


__all__ = [
    "ShipShapeAPIError",
    "NetworkUnreachableError",
    "ServerError",
    "AuthenticationError",
    "ResourceNotFoundError",
    "DecodeError",
    "DuplicateInFlightError",
    "SupersededError",
    "ValidationError",
    "PersistenceError",
    "TrackStateError",
]
