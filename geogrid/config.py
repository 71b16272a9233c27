"""Engine configuration.

Loads overrides from geogrid_config.json when available, falling back to
sensible defaults. Keep provider request shapes and scoring policy
centralized here.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

_REPO_ROOT = Path(__file__).resolve().parent.parent

# --- Provider endpoints ---

DATAFORSEO_BASE_URL = "https://api.dataforseo.com/v3"
DATAFORSEO_SERP_PATH = "serp/google/organic"
DATAFORSEO_LOGIN_ENV = "DATAFORSEO_LOGIN"
DATAFORSEO_PASSWORD_ENV = "DATAFORSEO_PASSWORD"

# --- Task request shape ---

LANGUAGE_CODE = "en"
DEVICE = "desktop"
DEVICE_OS = "windows"
SEARCH_DEPTH = 20
DEFAULT_LOCATION_CODE = 2840  # United States
# Appended to "lat,lng" when set, e.g. "15z" for the maps endpoint.
COORDINATE_SUFFIX = ""
TASK_BODY_EXTRA: Dict[str, Any] = {}

# DataForSEO status codes
STATUS_OK = 20000
STATUS_TASK_CREATED = 20100
STATUS_TASK_HANDED = 40601
STATUS_TASK_IN_QUEUE = 40602
STATUS_NOT_FOUND = 40400

RESULT_ITEM_TYPES = {"organic", "maps_element", "local_pack"}

# --- Poll policy (seconds) ---

SUBMIT_MAX_ATTEMPTS = 2
POLL_INITIAL_WAIT_SECONDS = 15.0
POLL_BACKOFF_START_SECONDS = 5.0
POLL_BACKOFF_MAX_SECONDS = 30.0
TASK_DEADLINE_SECONDS = 90.0

# --- Orchestration ---

DEFAULT_GRID_SIZE = 5
DEFAULT_RADIUS_KM = 5.0
DEFAULT_SHAPE = "square"
DEFAULT_CONCURRENCY = 5
GRID_DEADLINE_SECONDS = 300.0
ORCHESTRATOR_TICK_SECONDS = 0.25

# --- HTTP ---

HTTP_TIMEOUT_SECONDS = 20
HTTP_RETRY_MAX = 2
HTTP_BACKOFF_BASE = 0.5
HTTP_BACKOFF_MAX = 8.0

# --- Cache and outputs ---

CACHE_DB_PATH = "geogrid_cache.db"
CACHE_TTL_SECONDS = 24 * 3600
OUTPUT_DIR = "out"

# --- Metrics policy ---

FIRST_PAGE_MAX_RANK = 10
TOP_SPOT_MAX_RANK = 3
RANK_SCALE = 20.0
HIGHLIGHT_POINTS = 3
COMPETITORS_PER_POINT = 3


@dataclass(frozen=True)
class VisibilityWeights:
    afpr: float = 0.3
    grm: float = 0.3
    tss: float = 0.4


VISIBILITY_WEIGHTS = VisibilityWeights()

# Display bands: rank metrics are "good" below RANK_GOOD_BELOW, share metrics
# are "good" above SHARE_GOOD_ABOVE.
RANK_GOOD_BELOW = 5.0
RANK_WARNING_BELOW = 10.0
SHARE_GOOD_ABOVE = 50.0
SHARE_WARNING_ABOVE = 20.0

# --- Location codes for location-code submissions ---

LOCATION_CODES: Dict[str, int] = {
    "United States": 2840,
    "New York": 1022300,
    "Los Angeles": 1022462,
    "Chicago": 1016367,
    "San Francisco": 1023191,
    "Miami": 1020275,
    "Dallas": 1020584,
    "Houston": 1020432,
    "Atlanta": 1015212,
    "Boston": 1019026,
    "Seattle": 1024497,
    "Denver": 1019634,
    "Phoenix": 1022135,
    "Las Vegas": 1021339,
    "UK": 2826,
    "London": 1006894,
    "Canada": 2124,
    "Toronto": 1010223,
    "Australia": 2036,
    "Sydney": 1007402,
}


def lookup_location_code(location: str) -> int:
    """Resolve a city/country name to a DataForSEO location code.

    Tries an exact match, then a case-insensitive one, then a partial match
    in either direction. Unknown names resolve to DEFAULT_LOCATION_CODE.
    """
    if location in LOCATION_CODES:
        return LOCATION_CODES[location]
    lowered = location.strip().lower()
    if not lowered:
        return DEFAULT_LOCATION_CODE
    for name, code in LOCATION_CODES.items():
        if name.lower() == lowered:
            return code
    for name, code in LOCATION_CODES.items():
        key = name.lower()
        if key in lowered or lowered in key:
            return code
    return DEFAULT_LOCATION_CODE


_FLOAT_KEYS = {
    "poll_initial_wait_seconds": "POLL_INITIAL_WAIT_SECONDS",
    "poll_backoff_start_seconds": "POLL_BACKOFF_START_SECONDS",
    "poll_backoff_max_seconds": "POLL_BACKOFF_MAX_SECONDS",
    "task_deadline_seconds": "TASK_DEADLINE_SECONDS",
    "grid_deadline_seconds": "GRID_DEADLINE_SECONDS",
    "default_radius_km": "DEFAULT_RADIUS_KM",
}
_INT_KEYS = {
    "submit_max_attempts": "SUBMIT_MAX_ATTEMPTS",
    "search_depth": "SEARCH_DEPTH",
    "default_location_code": "DEFAULT_LOCATION_CODE",
    "default_grid_size": "DEFAULT_GRID_SIZE",
    "default_concurrency": "DEFAULT_CONCURRENCY",
    "cache_ttl_seconds": "CACHE_TTL_SECONDS",
    "http_timeout_seconds": "HTTP_TIMEOUT_SECONDS",
    "http_retry_max": "HTTP_RETRY_MAX",
}
_STR_KEYS = {
    "serp_path": "DATAFORSEO_SERP_PATH",
    "language_code": "LANGUAGE_CODE",
    "device": "DEVICE",
    "os": "DEVICE_OS",
    "default_shape": "DEFAULT_SHAPE",
    "coordinate_suffix": "COORDINATE_SUFFIX",
    "cache_db_path": "CACHE_DB_PATH",
    "output_dir": "OUTPUT_DIR",
}


def load_engine_config(path: Optional[str] = None) -> bool:
    """Load engine configuration from a JSON file.

    Updates module-level globals with values from the config file.
    Returns True if config was loaded, False if file not found.
    """
    if path is None:
        path = str(_REPO_ROOT / "geogrid_config.json")

    config_path = Path(path)
    if not config_path.exists():
        return False

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    globals_ref = globals()

    for key, name in _FLOAT_KEYS.items():
        if data.get(key) is not None:
            globals_ref[name] = float(data[key])
    for key, name in _INT_KEYS.items():
        if data.get(key) is not None:
            globals_ref[name] = int(data[key])
    for key, name in _STR_KEYS.items():
        if data.get(key):
            globals_ref[name] = str(data[key])

    extra = data.get("task_body_extra")
    if isinstance(extra, dict):
        globals_ref["TASK_BODY_EXTRA"] = dict(extra)

    weights = data.get("visibility_weights", {})
    if weights:
        current = globals_ref["VISIBILITY_WEIGHTS"]
        globals_ref["VISIBILITY_WEIGHTS"] = VisibilityWeights(
            afpr=float(weights.get("afpr", current.afpr)),
            grm=float(weights.get("grm", current.grm)),
            tss=float(weights.get("tss", current.tss)),
        )

    thresholds = data.get("thresholds", {})
    if "rank_good_below" in thresholds:
        globals_ref["RANK_GOOD_BELOW"] = float(thresholds["rank_good_below"])
    if "rank_warning_below" in thresholds:
        globals_ref["RANK_WARNING_BELOW"] = float(thresholds["rank_warning_below"])
    if "share_good_above" in thresholds:
        globals_ref["SHARE_GOOD_ABOVE"] = float(thresholds["share_good_above"])
    if "share_warning_above" in thresholds:
        globals_ref["SHARE_WARNING_ABOVE"] = float(thresholds["share_warning_above"])

    locations = data.get("location_codes", {})
    if locations:
        merged = dict(globals_ref["LOCATION_CODES"])
        merged.update({str(k): int(v) for k, v in locations.items()})
        globals_ref["LOCATION_CODES"] = merged

    return True
