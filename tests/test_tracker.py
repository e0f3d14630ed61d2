from datetime import timedelta

import pytest

from shipshape_sync.errors import TrackStateError
from shipshape_sync.models import PropulsionMethod, Sailor, Track, TrackState, Vessel
from shipshape_sync.sync_session import SyncSession
from shipshape_sync.tracker import LocationSample, LocationTracker, TrackerState

from conftest import T0


@pytest.fixture
def session():
    sam = Sailor(username="sam")
    return SyncSession(username="sam", active_sailor=sam, active_vessel=Vessel(name="Petrel", owner=sam))


def _samples(count, start=0):
    return [
        LocationSample(
            latitude=41.0 + 0.001 * i,
            longitude=-71.0,
            timestamp=T0 + timedelta(minutes=i),
            propulsion=PropulsionMethod.SAIL,
        )
        for i in range(start, start + count)
    ]


def test_start_and_stop_recording(store, session):
    tracker = LocationTracker(store, session)
    transitions = []
    tracker.add_listener(lambda old, new: transitions.append((old, new)))

    tracker.change_state(TrackerState.RECORDING)
    track = tracker.active_track
    assert track is not None
    assert track.state is TrackState.RECORDING
    assert track.title == "Active Route"
    assert track.creator is session.active_sailor
    assert track.vessel is session.active_vessel
    assert store.get_track(track.local_id) is track

    assert tracker.record_locations(_samples(3)) == 3
    tracker.change_state(TrackerState.STOPPED)

    assert tracker.active_track is None
    assert track.state is TrackState.COMPLETE
    assert track.total_time == pytest.approx(120.0)
    assert track.total_distance > 0
    assert transitions == [
        (TrackerState.STOPPED, TrackerState.RECORDING),
        (TrackerState.RECORDING, TrackerState.STOPPED),
    ]


def test_paused_tracker_ignores_samples(store, session):
    tracker = LocationTracker(store, session)
    tracker.change_state(TrackerState.RECORDING)
    tracker.change_state(TrackerState.PAUSED)
    assert tracker.record_locations(_samples(2)) == 0
    tracker.change_state(TrackerState.RECORDING)
    assert tracker.record_locations(_samples(2)) == 2
    assert len(tracker.active_track.points) == 2


def test_samples_without_active_track_are_dropped(store, session):
    tracker = LocationTracker(store, session)
    assert tracker.record_locations(_samples(2)) == 0
    assert store.all_tracks() == []


def test_restore_resumes_oldest_and_faults_the_rest(store, session):
    first = store.add_track(Track(state=TrackState.RECORDING, created_at=T0))
    extra = store.add_track(Track(state=TrackState.RECORDING, created_at=T0 + timedelta(hours=2)))

    tracker = LocationTracker(store, session)
    assert tracker.restore() is first
    assert tracker.state is TrackerState.RECORDING
    assert extra.state is TrackState.FAULT
    assert first.state is TrackState.RECORDING
    assert len(store.tracks_with_state(TrackState.RECORDING)) == 1


def test_restore_never_adopts_another_sailors_track(store, session):
    foreign = store.add_track(
        Track(state=TrackState.RECORDING, created_at=T0, creator=Sailor(username="kim"))
    )
    mine = store.add_track(
        Track(state=TrackState.RECORDING, created_at=T0 + timedelta(hours=1), creator=session.active_sailor)
    )

    tracker = LocationTracker(store, session)
    assert tracker.restore() is mine
    assert mine.state is TrackState.RECORDING
    assert foreign.state is TrackState.FAULT

    tracker.record_locations(_samples(2))
    assert len(mine.points) == 2
    assert foreign.points == []


def test_restore_with_nothing_recording(store, session):
    tracker = LocationTracker(store, session)
    assert tracker.restore() is None
    assert tracker.state is TrackerState.STOPPED


def test_failing_listener_does_not_block_transition(store, session):
    tracker = LocationTracker(store, session)

    def broken(old, new):
        raise RuntimeError("listener bug")

    tracker.add_listener(broken)
    tracker.change_state(TrackerState.RECORDING)
    assert tracker.state is TrackerState.RECORDING


def test_complete_track_cannot_resume_recording():
    track = Track(state=TrackState.COMPLETE)
    with pytest.raises(TrackStateError):
        track.transition_to(TrackState.RECORDING)
