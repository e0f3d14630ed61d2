"""Per-login state passed explicitly to the coordinator and tracker."""

from __future__ import annotations

from dataclasses import dataclass, field

from .api_client import TrackAPI, create_session
from .config import (
    REQUEST_TIMEOUT,
    SHIPSHAPE_API_BASE,
    SHIPSHAPE_PASSWORD,
    SHIPSHAPE_USERNAME,
)
from .models import Sailor, Vessel


def _mask_tail(value: str | None, visible: int = 2) -> str:
    if not value:
        return ""
    return "****" + value[-visible:] if len(value) > visible else "****"


@dataclass
class SyncSession:
    """Credentials plus the sailor and vessel new tracks are attributed to."""

    username: str
    password: str = field(default="", repr=False)
    active_sailor: Sailor | None = None
    active_vessel: Vessel | None = None
    base_url: str = SHIPSHAPE_API_BASE
    timeout: int = REQUEST_TIMEOUT

    @classmethod
    def from_config(cls) -> "SyncSession":
        username = SHIPSHAPE_USERNAME
        return cls(
            username=username,
            password=SHIPSHAPE_PASSWORD,
            active_sailor=Sailor(username=username) if username else None,
        )

    @property
    def masked_password(self) -> str:
        return _mask_tail(self.password)

    def create_api(self) -> TrackAPI:
        return TrackAPI(
            session=create_session(self.username, self.password),
            base_url=self.base_url,
            timeout=self.timeout,
        )


__all__ = ["SyncSession"]
