"""Tests for SyncCoordinator.fetch_in_bounds (staleness, merging, completion)."""

import threading
from typing import List

import pytest

from shipshape_sync.errors import SupersededError
from shipshape_sync.models import Sailor, Track, TrackState, ViewportQuad

from conftest import FakeResp, FakeSession, path_payload

WAIT = 5

QUAD_A = ViewportQuad((42.0, -72.0), (42.0, -70.0), (40.0, -70.0), (40.0, -72.0))
QUAD_B = ViewportQuad((12.0, 5.0), (12.0, 6.0), (11.0, 6.0), (11.0, 5.0))


class Recorder:
    """Collects callbacks and signals completion."""

    def __init__(self) -> None:
        self.each: List[str] = []
        self.complete: List[List[str]] = []
        self.errors: List[Exception] = []
        self.done = threading.Event()

    def on_each(self, local_id: str) -> None:
        self.each.append(local_id)

    def on_complete(self, local_ids: List[str]) -> None:
        self.complete.append(local_ids)
        self.done.set()

    def on_error(self, exc: Exception) -> None:
        self.errors.append(exc)
        self.done.set()

    def fetch(self, coordinator, quad) -> None:
        coordinator.fetch_in_bounds(
            quad, on_each=self.on_each, on_complete=self.on_complete, on_error=self.on_error
        )


def _bounds_body(*remote_ids):
    return {"paths": [{"_id": rid, "title": f"Remote {rid}", "totalDistance": 42.0} for rid in remote_ids]}


def test_existing_and_new_paths_complete_once(make_coordinator, store):
    existing = store.add_track(Track(title="local", notes="keep", remote_id="old"))

    def get(url, params):
        if url.endswith("paths/bounds"):
            return FakeResp(200, _bounds_body("old", "new"))
        return FakeResp(200, path_payload("new", points=2))

    coordinator = make_coordinator(FakeSession(get=get))
    recorder = Recorder()
    recorder.fetch(coordinator, QUAD_A)

    assert recorder.done.wait(WAIT)
    new_track = store.find_by_remote_id("new")
    assert new_track is not None
    assert sorted(recorder.each) == sorted([existing.local_id, new_track.local_id])
    assert len(recorder.complete) == 1
    assert sorted(recorder.complete[0]) == sorted(recorder.each)

    # Merge overwrote present fields only.
    assert existing.title == "Remote old"
    assert existing.total_distance == 42.0
    assert existing.notes == "keep"
    assert len(new_track.points) == 2


def test_empty_result_completes_with_no_ids(make_coordinator):
    coordinator = make_coordinator(FakeSession(get=lambda url, params: FakeResp(200, {"paths": []})))
    recorder = Recorder()
    recorder.fetch(coordinator, QUAD_A)
    assert recorder.done.wait(WAIT)
    assert recorder.complete == [[]]
    assert recorder.each == []


def test_superseded_response_fires_no_callbacks(make_coordinator):
    a_entered = threading.Event()
    a_release = threading.Event()

    def get(url, params):
        if url.endswith("paths/bounds") and params["q"].startswith("-72.0"):
            a_entered.set()
            assert a_release.wait(WAIT)
            return FakeResp(200, _bounds_body("a1"))
        if url.endswith("paths/bounds"):
            return FakeResp(200, _bounds_body())
        raise AssertionError(f"Unexpected fetch {url}")

    session = FakeSession(get=get)
    coordinator = make_coordinator(session)
    rec_a, rec_b = Recorder(), Recorder()

    rec_a.fetch(coordinator, QUAD_A)
    assert a_entered.wait(WAIT)
    rec_b.fetch(coordinator, QUAD_B)
    assert rec_b.done.wait(WAIT)

    a_release.set()
    coordinator.shutdown(wait=True)

    assert rec_a.each == []
    assert rec_a.complete == []
    assert rec_a.errors == []
    assert rec_b.complete == [[]]
    assert session.count("GET", "paths/a1") == 0


def test_superseded_while_waiting_for_primary_is_dropped(make_coordinator):
    """The response arrives while current, but a newer query wins before processing."""
    a_release = threading.Event()
    a_entered = threading.Event()
    process_posted = threading.Event()
    primary_gate = threading.Event()

    def get(url, params):
        if params["q"].startswith("-72.0"):
            a_entered.set()
            assert a_release.wait(WAIT)
            return FakeResp(200, _bounds_body("a1"))
        return FakeResp(200, _bounds_body())

    coordinator = make_coordinator(FakeSession(get=get))
    original_post = coordinator.primary.post

    def tracking_post(fn, *args, **kwargs):
        if getattr(fn, "__name__", "") == "_process_bounds" and not process_posted.is_set():
            process_posted.set()
        return original_post(fn, *args, **kwargs)

    coordinator.primary.post = tracking_post  # type: ignore[method-assign]
    rec_a, rec_b = Recorder(), Recorder()

    rec_a.fetch(coordinator, QUAD_A)
    assert a_entered.wait(WAIT)
    coordinator.primary.post(primary_gate.wait, WAIT)
    rec_b.fetch(coordinator, QUAD_B)  # queued behind the gate
    a_release.set()
    assert process_posted.wait(WAIT)
    primary_gate.set()

    assert rec_b.done.wait(WAIT)
    coordinator.shutdown(wait=True)
    assert rec_a.complete == []
    assert rec_a.each == []
    assert rec_b.complete == [[]]


def test_failed_path_fetch_still_counts_toward_completion(make_coordinator, store):
    def get(url, params):
        if url.endswith("paths/bounds"):
            return FakeResp(200, _bounds_body("ok", "broken"))
        if url.endswith("paths/broken"):
            return FakeResp(500, {"message": "boom"})
        return FakeResp(200, path_payload("ok"))

    coordinator = make_coordinator(FakeSession(get=get))
    recorder = Recorder()
    recorder.fetch(coordinator, QUAD_A)

    assert recorder.done.wait(WAIT)
    ok_track = store.find_by_remote_id("ok")
    assert recorder.complete == [[ok_track.local_id]]
    assert recorder.each == [ok_track.local_id]
    assert store.find_by_remote_id("broken") is None


def test_duplicate_ids_in_batch_fetch_once(make_coordinator, store):
    def get(url, params):
        if url.endswith("paths/bounds"):
            return FakeResp(200, _bounds_body("dup", "dup"))
        return FakeResp(200, path_payload("dup"))

    session = FakeSession(get=get)
    coordinator = make_coordinator(session)
    recorder = Recorder()
    recorder.fetch(coordinator, QUAD_A)

    assert recorder.done.wait(WAIT)
    assert session.count("GET", "paths/dup") == 1
    assert len(recorder.complete) == 1
    assert len(recorder.complete[0]) == 1


def test_bounds_error_reported_through_on_error(make_coordinator):
    coordinator = make_coordinator(FakeSession(get=lambda url, params: FakeResp(502, {})))
    recorder = Recorder()
    recorder.fetch(coordinator, QUAD_A)
    assert recorder.done.wait(WAIT)
    assert recorder.complete == []
    assert len(recorder.errors) == 1


def test_foreign_temporary_tracks_outside_result_are_evicted(make_coordinator, store):
    me = store.add_sailor(Sailor(username="sam"))
    stale = store.add_track(Track(remote_id="gone", temporary=True, creator=Sailor(username="kim")))
    visible = store.add_track(Track(remote_id="seen", temporary=True))
    mine = store.add_track(Track(remote_id="mine", temporary=True, creator=me))
    permanent = store.add_track(Track(remote_id="kept"))

    coordinator = make_coordinator(
        FakeSession(get=lambda url, params: FakeResp(200, _bounds_body("seen")))
    )
    recorder = Recorder()
    recorder.fetch(coordinator, QUAD_A)
    assert recorder.done.wait(WAIT)

    remaining = set(t.local_id for t in store.all_tracks())
    assert stale.local_id not in remaining
    assert {visible.local_id, mine.local_id, permanent.local_id} <= remaining


def test_path_downloading_for_superseded_batch_reaches_newer_batch(make_coordinator, store):
    x_entered = threading.Event()
    x_release = threading.Event()
    b_posted = threading.Event()

    def get(url, params):
        if url.endswith("paths/bounds"):
            return FakeResp(200, _bounds_body("X"))
        x_entered.set()
        assert x_release.wait(WAIT)
        return FakeResp(200, path_payload("X"))

    session = FakeSession(get=get)
    coordinator = make_coordinator(session)
    original_post = coordinator.primary.post

    def tracking_post(fn, *args, **kwargs):
        if getattr(fn, "__name__", "") == "_process_bounds" and args[0] == 2:
            b_posted.set()
        return original_post(fn, *args, **kwargs)

    coordinator.primary.post = tracking_post  # type: ignore[method-assign]
    rec_a, rec_b = Recorder(), Recorder()

    rec_a.fetch(coordinator, QUAD_A)
    assert x_entered.wait(WAIT)
    rec_b.fetch(coordinator, QUAD_B)
    assert b_posted.wait(WAIT)
    # Flush the primary queue so batch B has attached to the running download.
    coordinator.primary.post(lambda: None).result(timeout=WAIT)
    assert not rec_b.done.is_set()

    x_release.set()
    assert rec_b.done.wait(WAIT)

    track = store.find_by_remote_id("X")
    assert track is not None
    assert rec_b.each == [track.local_id]
    assert rec_b.complete == [[track.local_id]]
    assert rec_a.each == []
    assert rec_a.complete == []
    assert session.count("GET", "paths/X") == 1
    assert coordinator.in_flight() == frozenset()


def test_stale_token_raises_superseded(make_coordinator):
    coordinator = make_coordinator(FakeSession(get=lambda url, params: FakeResp(200, {"paths": []})))
    recorder = Recorder()
    recorder.fetch(coordinator, QUAD_A)
    assert recorder.done.wait(WAIT)

    latest = coordinator.latest_bounds_token
    coordinator._ensure_current(latest)
    with pytest.raises(SupersededError):
        coordinator._ensure_current(latest - 1)


def test_bounds_merge_keeps_local_recording_state(make_coordinator, store):
    live = store.add_track(Track(state=TrackState.RECORDING, remote_id="live"))
    body = {"paths": [{"_id": "live", "title": "Synced", "state": "recording"}]}
    coordinator = make_coordinator(FakeSession(get=lambda url, params: FakeResp(200, body)))
    recorder = Recorder()
    recorder.fetch(coordinator, QUAD_A)
    assert recorder.done.wait(WAIT)
    assert live.title == "Synced"
    assert live.state is TrackState.RECORDING
    assert store.tracks_with_state(TrackState.RECORDING) == [live]
