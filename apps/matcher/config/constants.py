"""
constants.py — Shared configuration and constants for the matcher.

All environment variables, paths, regex patterns, and constants that are
used across multiple modules are centralised here.
"""

import datetime
import os
import re
from pathlib import Path

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

DATA_DIR = Path(os.environ.get("MATCHER_DATA_DIR", "/data"))
DB_PATH = os.environ.get("MATCHER_DB_PATH", str(DATA_DIR / "matcher.db"))

# Quality settings JSON document. Empty means built-in defaults.
QUALITY_SETTINGS_PATH = os.environ.get("QUALITY_SETTINGS_PATH", "")

# Feed records already fetched by the feed transport (JSON list).
FEED_ITEMS_PATH = os.environ.get("FEED_ITEMS_PATH", str(DATA_DIR / "feed_items.json"))

# ---------------------------------------------------------------------------
# Environment-variable configuration
# ---------------------------------------------------------------------------

# Radarr (movie library manager)
RADARR_URL = os.environ.get("RADARR_URL", "http://radarr:7878")
RADARR_API_KEY = os.environ.get("RADARR_API_KEY", "")

# Sonarr (show library manager)
SONARR_URL = os.environ.get("SONARR_URL", "http://sonarr:8989")
SONARR_API_KEY = os.environ.get("SONARR_API_KEY", "")

# TMDb (metadata service)
TMDB_API_KEY = os.environ.get("TMDB_API_KEY", "")
TMDB_BASE = "https://api.themoviedb.org/3"

# Every external call carries this timeout.
LOOKUP_TIMEOUT = int(os.environ.get("LOOKUP_TIMEOUT_SECS", "15"))

# Library-manager history events kept on a matched release.
HISTORY_LIMIT = int(os.environ.get("HISTORY_LIMIT", "10"))

# Status-change entries kept on each release.
AUDIT_TRAIL_LIMIT = int(os.environ.get("AUDIT_TRAIL_LIMIT", "20"))

# ---------------------------------------------------------------------------
# Compiled regex patterns
# ---------------------------------------------------------------------------

# Characters stripped from display titles
UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*]')

# Dotted/underscored release-name separators
SEPARATORS = re.compile(r"[._]+")

# Candidate 4-digit years (validated separately)
YEAR_PATTERN = re.compile(r"(?<![0-9])((?:19|20)\d{2})(?![0-9])")

# Season markers for show titles (e.g. "S01", "S1E01", "Season 2")
SEASON_PATTERNS = [
    re.compile(r"^(.+?)[\s.]+S(\d{1,2})(?:E\d+)?(?![0-9])", re.IGNORECASE),
    re.compile(r"^(.+?)[\s.]+Season[\s.]+(\d{1,2})", re.IGNORECASE),
]

# ---------------------------------------------------------------------------
# Year validation
# ---------------------------------------------------------------------------

_CURRENT_YEAR = datetime.date.today().year
_MIN_YEAR = 1920
_MAX_YEAR = _CURRENT_YEAR + 1


def validate_year(year: int | None, reference_text: str | None = None) -> int | None:
    """Validate an extracted year for plausibility.

    Returns the year if valid, otherwise None.

    Rules:
      - Must be within [1920, current_year + 1]
      - If reference_text is provided, the year must appear literally in
        that text (guards against years lifted from unrelated metadata).
    """
    if year is None:
        return None
    if not (_MIN_YEAR <= year <= _MAX_YEAR):
        return None
    if reference_text is not None and str(year) not in reference_text:
        return None
    return year
