"""Central configuration for the ShipShape track sync engine.

All values are constants imported by the rest of the package. Adjust as needed
for your environment. Credentials are read from environment variables
(optionally via a local `.env`).
"""

from __future__ import annotations

import importlib
import os


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


# Load .env variables when python-dotenv is available.
_load_dotenv = None
try:
    _dotenv_mod = importlib.import_module("dotenv")
    _load_dotenv = getattr(_dotenv_mod, "load_dotenv", None)
except Exception:
    _load_dotenv = None

if callable(_load_dotenv):
    # Load .env from the current directory or any parent folder.
    _load_dotenv()


# ---------------------------------------------------------------------------
# Remote API settings
# ---------------------------------------------------------------------------
# Base URL of the track REST API. Must end with a slash; endpoint paths are
# joined onto it.
SHIPSHAPE_API_BASE = os.getenv("SHIPSHAPE_API_BASE", "http://u26f5.net/api/v0.1/")

# Basic-auth credentials pulled from the environment. Do not hardcode secrets.
SHIPSHAPE_USERNAME = os.getenv("SHIPSHAPE_USERNAME", "")
SHIPSHAPE_PASSWORD = os.getenv("SHIPSHAPE_PASSWORD", "")

# Request timeout in seconds.
REQUEST_TIMEOUT = _env_int("SHIPSHAPE_REQUEST_TIMEOUT", 15)

# HTTP session pool sizes for concurrent requests.
HTTP_POOL_CONNECTIONS = 10
HTTP_POOL_MAXSIZE = 10

# Transport-level retries for idempotent reads. Uploads are never retried
# automatically; a failed upload is reported to the caller instead.
HTTP_GET_RETRIES = _env_int("SHIPSHAPE_HTTP_GET_RETRIES", 3)
HTTP_RETRY_BACKOFF_FACTOR = _env_float("SHIPSHAPE_HTTP_RETRY_BACKOFF", 0.5)


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------
# Background workers used for network calls and payload parsing.
SYNC_MAX_WORKERS = _env_int("SHIPSHAPE_SYNC_MAX_WORKERS", 4)

# Delay (seconds) before a viewport change turns into a bounds query.
VIEWPORT_DEBOUNCE_SECONDS = _env_float("SHIPSHAPE_VIEWPORT_DEBOUNCE_SECONDS", 0.3)

# Drop temporary tracks that fell out of the latest viewport result set.
EVICT_TEMPORARY_TRACKS = _env_bool("SHIPSHAPE_EVICT_TEMPORARY_TRACKS", True)


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------
# Title given to a track created when recording starts.
ACTIVE_TRACK_TITLE = "Active Route"


# ---------------------------------------------------------------------------
# Segment styling
# ---------------------------------------------------------------------------
# Colours are (red, green, blue) floats in the 0..1 range.
OWN_TRACK_COLOR = (0.94, 0.30, 0.30)
RECORDING_TRACK_COLOR = (1.0, 0.80, 0.0)
OTHER_TRACK_COLOR = (0.20, 0.45, 0.85)

# Own tracks fade by this much per color index, down to the floor.
OWN_TRACK_ALPHA_STEP = 0.15
OWN_TRACK_ALPHA_MIN = 0.25
OTHER_TRACK_ALPHA = 0.6

OWN_TRACK_LINE_WIDTH = 5.0
OTHER_TRACK_LINE_WIDTH = 3.0
