"""Global pytest fixtures & helpers.

Adds project root to path and provides fake HTTP plumbing plus track
factories shared by the sync, wire and segmenter tests.
"""
from __future__ import annotations

import json
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from shipshape_sync.api_client import TrackAPI
from shipshape_sync.models import GeoPoint, PropulsionMethod, Sailor, Track
from shipshape_sync.store import InMemoryTrackStore
from shipshape_sync.sync import SyncCoordinator
from shipshape_sync.sync_session import SyncSession

BASE_URL = "http://example.test/api/v0.1/"
T0 = datetime(2025, 6, 1, 8, 0, 0, tzinfo=timezone.utc)


class FakeResp:
    """Minimal fake response matching needed parts of requests.Response."""

    def __init__(self, status_code=200, data=None, headers=None, raw_text=None):
        self.status_code = status_code
        self._data = data
        self._raw_text = raw_text
        self.headers = headers or {}
        self.url = "fake://"

    def json(self):
        if self._raw_text is not None:
            raise ValueError("not json")
        if self._data is None:
            raise ValueError("empty body")
        return self._data

    @property
    def text(self):
        if self._raw_text is not None:
            return self._raw_text
        if self._data is None:
            return ""
        return json.dumps(self._data)

    @property
    def content(self):
        return self.text.encode()


Handler = Callable[..., FakeResp]


class FakeSession:
    """Records calls and dispatches to per-method handlers."""

    def __init__(self, get: Optional[Handler] = None, post: Optional[Handler] = None):
        self._get = get
        self._post = post
        self.calls: List[Dict[str, Any]] = []

    def get(self, url, params=None, timeout=None, **kwargs):
        self.calls.append({"method": "GET", "url": url, "params": params})
        if self._get is None:
            raise AssertionError(f"Unexpected GET {url}")
        return self._get(url, params=params)

    def post(self, url, json=None, timeout=None, **kwargs):
        self.calls.append({"method": "POST", "url": url, "json": json})
        if self._post is None:
            raise AssertionError(f"Unexpected POST {url}")
        return self._post(url, json=json)

    def count(self, method: str, url_suffix: str = "") -> int:
        return sum(
            1
            for call in self.calls
            if call["method"] == method and call["url"].endswith(url_suffix)
        )


# --- Factory helpers -------------------------------------------------
def make_point(minutes: float, lat: float, lon: float, propulsion=PropulsionMethod.SAIL, notes=None):
    return GeoPoint(
        latitude=lat,
        longitude=lon,
        timestamp=T0 + timedelta(minutes=minutes),
        propulsion=propulsion,
        notes=notes,
    )


def make_track(propulsions=None, **kwargs) -> Track:
    track = Track(**kwargs)
    for index, propulsion in enumerate(propulsions or []):
        track.add_point(make_point(index, 41.0 + index * 0.001, -71.0, propulsion))
    return track


def path_payload(remote_id: str, *, points: int = 2, username: str | None = "sam", **fields) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "_id": remote_id,
        "title": f"Path {remote_id}",
        "created": T0.timestamp(),
        "totalTime": 60.0 * max(points - 1, 0),
        "totalDistance": 100.0,
        "averageSpeed": 1.5,
        "type": "past",
        "state": "complete",
        "points": [
            {
                "latitude": 41.0 + i * 0.001,
                "longitude": -71.0,
                "created": T0.timestamp() + 60 * i,
                "propulsion": "sail",
            }
            for i in range(points)
        ],
    }
    if username is not None:
        body["creator"] = {"username": username}
    body.update(fields)
    return body


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def store():
    return InMemoryTrackStore()


@pytest.fixture
def sync_session():
    sailor = Sailor(username="sam")
    return SyncSession(username="sam", password="secret", active_sailor=sailor, base_url=BASE_URL)


@pytest.fixture
def make_coordinator(store, sync_session):
    created: List[SyncCoordinator] = []

    def _make(fake_session: FakeSession, **kwargs) -> SyncCoordinator:
        api = TrackAPI(session=fake_session, base_url=BASE_URL, timeout=1)
        coordinator = SyncCoordinator(store, sync_session, api=api, **kwargs)
        created.append(coordinator)
        return coordinator

    yield _make
    for coordinator in created:
        coordinator.shutdown(wait=True)
