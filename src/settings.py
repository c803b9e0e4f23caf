"""Static configuration for breakwatch.

All user-editable settings (matching policy, tracking, notifications,
logging) live in a single JSON file for quick edits without touching Python.
"""

import json
import os

from core.config import MatchingConfig, NotificationConfig, TrackingConfig
from core.models import REQUEST, TAB

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Settings are loaded from config.json so operators can tune matching and
# tracking without editing code.
CONFIG_PATH = os.environ.get("BREAKWATCH_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _project_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Where to store the SQLite database (ledger and dynamic catalogs).
DB_PATH = _project_path(_CONFIG.get("database", {}).get("path", "breakwatch.db"))

# Bundled breakage catalogs, one JSON array per rule kind.
_catalogs = _CONFIG.get("catalogs", {})
CATALOG_PATHS = {
    TAB: _project_path(_catalogs.get(TAB, "breakages/tab.json")),
    REQUEST: _project_path(_catalogs.get(REQUEST, "breakages/request.json")),
}

# Domain comparison per rule kind:
# - "host": the URL hostname must be listed as is
# - "base_domain": the URL is reduced to its registrable domain first
_matching = _CONFIG.get("matching", {})
MATCHING = MatchingConfig(
    tab_mode=_matching.get(TAB, "host"),
    request_mode=_matching.get(REQUEST, "base_domain"),
)

# Which tab load statuses count as a navigation, and which request types
# are watched ([] means all of them).
_tracking = _CONFIG.get("tracking", {})
_requests = _tracking.get("requests", {})
TRACKING = TrackingConfig(
    trigger_statuses=frozenset(_tracking.get("trigger_statuses", ["loading"])),
    track_requests=bool(_requests.get("enabled", True)),
    request_types=frozenset(_requests.get("types", [])),
)

# "informational" ignores the user's answer; "actionable" allowlists and
# reloads on click and remembers "not anymore".
NOTIFICATIONS = NotificationConfig(mode=_CONFIG.get("notifications", {}).get("mode", "informational"))

# Seconds to wait for the browser to answer a bridge call.
BRIDGE_CALL_TIMEOUT = float(_CONFIG.get("bridge", {}).get("call_timeout_seconds", 10))

# Test mode tracks regardless of the feature state. BREAKWATCH_TEST_MODE
# overrides it from the environment (.env is loaded by the app).
TEST_MODE = bool(_CONFIG.get("test_mode", False))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
