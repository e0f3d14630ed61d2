"""Blocking calls against the remote path endpoints.

Every method raises a :class:`~shipshape_sync.errors.ShipShapeAPIError`
subclass on failure; callers running on worker threads are expected to catch
and forward those errors rather than let them escape the thread.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urljoin

import requests

from ..config import REQUEST_TIMEOUT, SHIPSHAPE_API_BASE
from ..errors import NetworkUnreachableError
from ..models import ViewportQuad
from .response_handling import classify_response_status, decode_json_object
from .session import create_session
from .wire import (
    TrackPayload,
    encode_bounds,
    parse_bounds_response,
    parse_track_payload,
    parse_upload_response,
)

LOGGER = logging.getLogger(__name__)


class TrackAPI:
    """Encapsulates the REST endpoints used for track sync."""

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        base_url: str = SHIPSHAPE_API_BASE,
        timeout: int = REQUEST_TIMEOUT,
    ) -> None:
        self._session = session or create_session()
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._timeout = timeout

    @property
    def session(self) -> requests.Session:
        return self._session

    def url_for(self, path: str) -> str:
        return urljoin(self._base_url, path)

    def create_path(self, payload: Dict[str, Any]) -> str:
        """Upload a track body and return the server-assigned path id."""

        context = "Upload path"
        url = self.url_for("paths")
        try:
            response = self._session.post(url, json=payload, timeout=self._timeout)
        except requests.RequestException as exc:
            raise self._network_error(context, exc) from exc
        data = self._checked_body(response, context)
        remote_id = parse_upload_response(data)
        LOGGER.info(
            "Uploaded path with %d points -> path_id=%s",
            len(payload.get("points", [])),
            remote_id,
        )
        return remote_id

    def get_path(self, remote_id: str, include_points: bool = True) -> TrackPayload:
        context = f"Fetch path {remote_id}"
        url = self.url_for(f"paths/{quote(str(remote_id), safe='')}")
        params = {"points": "true" if include_points else "false"}
        data = self._get(url, params, context)
        return parse_track_payload(
            data, fallback_remote_id=remote_id, include_points=include_points
        )

    def get_paths_in_bounds(self, quad: ViewportQuad) -> List[TrackPayload]:
        context = "Fetch paths in bounds"
        url = self.url_for("paths/bounds")
        data = self._get(url, {"q": encode_bounds(quad)}, context)
        return parse_bounds_response(data)

    def _get(
        self, url: str, params: Optional[Dict[str, Any]], context: str
    ) -> Dict[str, Any]:
        try:
            response = self._session.get(url, params=params, timeout=self._timeout)
        except requests.RequestException as exc:
            raise self._network_error(context, exc) from exc
        return self._checked_body(response, context)

    def _checked_body(self, response: requests.Response, context: str) -> Dict[str, Any]:
        error = classify_response_status(response, context)
        if error is not None:
            raise error
        return decode_json_object(response, context)

    @staticmethod
    def _network_error(context: str, exc: Exception) -> NetworkUnreachableError:
        message = f"{context} network error: {exc.__class__.__name__}"
        LOGGER.warning(message)
        return NetworkUnreachableError(message)


__all__ = ["TrackAPI"]
