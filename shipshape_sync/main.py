"""Command line entry point for inspecting and syncing tracks."""

from __future__ import annotations

import argparse
import json
import logging
import threading
from pathlib import Path
from typing import List, Sequence

from .api_client.wire import parse_track_payload
from .errors import DecodeError
from .models import Track, ViewportQuad
from .segmenter import segment_track
from .store import InMemoryTrackStore
from .sync import SyncCoordinator
from .sync_session import SyncSession

LOGGER = logging.getLogger(__name__)

# Generous ceiling for a full bounds batch including per-path fetches.
_WAIT_SECONDS = 120.0


def _setup_logging(level: str = "INFO") -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=getattr(logging, level),
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shipshape_sync",
        description="Inspect local track files and sync tracks with the ShipShape server.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    sub = parser.add_subparsers(dest="command", required=True)

    stats = sub.add_parser("stats", help="Show stats and segments of a track JSON file")
    stats.add_argument("path", type=Path)

    fetch = sub.add_parser("fetch", help="Download a path by its remote id")
    fetch.add_argument("remote_id")

    bounds = sub.add_parser("bounds", help="List paths inside a viewport")
    bounds.add_argument(
        "corners",
        nargs=8,
        type=float,
        metavar="LON_LAT",
        help="lon lat pairs for top-left, top-right, bottom-right, bottom-left",
    )
    return parser


def summarize_track(track: Track) -> str:
    stats = track.recalculate_stats()
    segments = segment_track(track)
    lines = [
        f"{track.title} ({track.display_id})",
        f"  points:    {len(track.points)}",
        f"  time:      {stats.total_time:.0f} s",
        f"  distance:  {stats.total_distance:.1f} m",
        f"  avg speed: {stats.average_speed:.2f} m/s",
        f"  segments:  {len(segments)}",
    ]
    for index, segment in enumerate(segments, start=1):
        lines.append(
            f"    {index}. {segment.propulsion.value:<6} {len(segment.coordinates)} points"
        )
    return "\n".join(lines)


def parse_corners(values: Sequence[float]) -> ViewportQuad:
    if len(values) != 8:
        raise ValueError(f"Expected 8 corner values, got {len(values)}")
    # Input is (lon, lat) per corner; the quad stores (lat, lon).
    pairs = [(values[i + 1], values[i]) for i in range(0, 8, 2)]
    return ViewportQuad(*pairs)


def _cmd_stats(path: Path) -> int:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        payload = parse_track_payload(data, fallback_remote_id=path.stem)
    except (OSError, ValueError, DecodeError) as exc:
        LOGGER.error("Failed to read track file '%s': %s", path, exc)
        return 1
    print(summarize_track(payload.build_track()))
    return 0


def _cmd_fetch(coordinator: SyncCoordinator, store: InMemoryTrackStore, remote_id: str) -> int:
    outcome = coordinator.fetch_by_id(remote_id).result(timeout=_WAIT_SECONDS)
    if not outcome.ok or outcome.value is None:
        LOGGER.error("Fetch of path %s failed: %s", remote_id, outcome.error)
        return 1
    track = store.get_track(outcome.value)
    if track is None:
        LOGGER.error("Fetched path %s vanished from the local store", remote_id)
        return 1
    print(summarize_track(track))
    return 0


def _cmd_bounds(coordinator: SyncCoordinator, store: InMemoryTrackStore, quad: ViewportQuad) -> int:
    done = threading.Event()
    resolved: List[str] = []
    failures: List[Exception] = []

    def on_complete(local_ids: List[str]) -> None:
        resolved.extend(local_ids)
        done.set()

    def on_error(exc: Exception) -> None:
        failures.append(exc)
        done.set()

    coordinator.fetch_in_bounds(quad, on_complete=on_complete, on_error=on_error)
    if not done.wait(_WAIT_SECONDS):
        LOGGER.error("Timed out waiting for bounds query")
        return 1
    if failures:
        LOGGER.error("Bounds query failed: %s", failures[0])
        return 1
    for local_id in resolved:
        track = store.get_track(local_id)
        if track is not None:
            print(f"{track.display_id}\t{track.title}\t{len(track.points)} points")
    LOGGER.info("Found %d paths in bounds", len(resolved))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.log_level)

    if args.command == "stats":
        return _cmd_stats(args.path)

    session = SyncSession.from_config()
    if not session.username:
        LOGGER.warning("SHIPSHAPE_USERNAME is not set; requests will be anonymous")
    store = InMemoryTrackStore()
    if session.active_sailor is not None:
        store.add_sailor(session.active_sailor)
    coordinator = SyncCoordinator(store, session)
    try:
        if args.command == "fetch":
            return _cmd_fetch(coordinator, store, args.remote_id)
        return _cmd_bounds(coordinator, store, parse_corners(args.corners))
    finally:
        coordinator.shutdown(wait=False)
