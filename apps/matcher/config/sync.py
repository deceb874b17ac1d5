#!/usr/bin/env python3
"""
sync.py — One full sync cycle: feed → library snapshot → matching.

The order is fixed. Matching against a library snapshot older than the feed
records would report items already in the library as new.

Usage (inside the matcher container):
    python sync.py

Feed records are read from FEED_ITEMS_PATH, a JSON list already fetched by
the feed transport. Each record needs at least a guid (or link) and a title;
"mediaType": "tv" routes it to the show engine.

Exit status 1 when configuration is missing or invalid (e.g. a rejected
Radarr API key); every record would be misclassified otherwise.
"""

import json
import logging
import sys
from pathlib import Path

from arr_client import RadarrClient, SonarrClient
from constants import (
    DB_PATH,
    FEED_ITEMS_PATH,
    LOOKUP_TIMEOUT,
    QUALITY_SETTINGS_PATH,
    RADARR_API_KEY,
    RADARR_URL,
    SONARR_API_KEY,
    SONARR_URL,
    TMDB_API_KEY,
)
from errors import ConfigurationError, MatcherError, RecordValidationError, ServiceLookupError
from library import MovieLibrary, ShowLibrary
from matching import MatchingEngine
from models import FeedItem
from settings import load_quality_settings
from store import ReleaseStore
from tmdb_client import TmdbClient
from tv_matching import TvMatchingEngine

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger("matcher")


# ---------------------------------------------------------------------------
# Feed source
# ---------------------------------------------------------------------------

class JsonFeedSource:
    """Feed records previously fetched by the transport, as a JSON list."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def fetch(self) -> list[FeedItem]:
        if not self.path.exists():
            log.warning(f"Feed file {self.path} not found, nothing to match")
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ServiceLookupError(f"Cannot read feed file {self.path}: {e}") from e
        if not isinstance(data, list):
            raise ServiceLookupError(f"Feed file {self.path} must hold a JSON list")

        items: list[FeedItem] = []
        seen: set[str] = set()
        for entry in data:
            try:
                item = FeedItem.from_dict(entry)
            except (RecordValidationError, AttributeError) as e:
                log.warning(f"  Skipping feed record: {e}")
                continue
            if item.guid in seen:
                continue
            seen.add(item.guid)
            items.append(item)
        return items


# ---------------------------------------------------------------------------
# Sync cycle
# ---------------------------------------------------------------------------

def run_sync_cycle(feed_source, movie_library, movie_engine,
                   show_library=None, tv_engine=None) -> dict:
    """Refresh the feed, then the libraries, then run the engines.

    Returns {"movies": MatchingStats, "shows": TvMatchingStats | None}.
    """
    log.info("Step 1: Refreshing feed records...")
    items = feed_source.fetch()
    movies = [i for i in items if i.media_type == "movie"]
    shows = [i for i in items if i.media_type == "tv"]
    log.info(f"Found {len(items)} feed record(s) ({len(movies)} movie, {len(shows)} show)")

    log.info("Step 2: Refreshing library snapshots...")
    movie_library.refresh()
    if show_library is not None and tv_engine is not None:
        show_library.refresh()

    log.info("Step 3: Matching...")
    result = {"movies": movie_engine.run(movies), "shows": None}
    if tv_engine is not None:
        result["shows"] = tv_engine.run(shows)
    elif shows:
        log.info(f"  {len(shows)} show record(s) left unmatched (Sonarr disabled)")
    return result


def main():
    """Entry point — run one sync cycle."""
    log.info("=" * 60)
    log.info("Release matcher starting")
    log.info(f"  Database:       {DB_PATH}")
    log.info(f"  Feed records:   {FEED_ITEMS_PATH}")
    log.info(f"  Settings:       {QUALITY_SETTINGS_PATH or 'built-in defaults'}")
    log.info(f"  Radarr:         {RADARR_URL}")
    log.info(f"  Sonarr:         {SONARR_URL if SONARR_API_KEY else 'disabled (set SONARR_API_KEY)'}")
    log.info(f"  TMDb API:       {'enabled' if TMDB_API_KEY else 'disabled (set TMDB_API_KEY)'}")
    log.info(f"  Lookup timeout: {LOOKUP_TIMEOUT}s")
    log.info("=" * 60)

    try:
        settings = load_quality_settings(QUALITY_SETTINGS_PATH)
        metadata = TmdbClient(TMDB_API_KEY) if TMDB_API_KEY else None
        store = ReleaseStore(DB_PATH)

        movie_library = MovieLibrary(RadarrClient(RADARR_URL, RADARR_API_KEY))
        movie_engine = MatchingEngine(store, movie_library, settings, metadata)

        show_library = tv_engine = None
        if SONARR_API_KEY:
            show_library = ShowLibrary(SonarrClient(SONARR_URL, SONARR_API_KEY))
            tv_engine = TvMatchingEngine(store, show_library, settings, metadata)

        run_sync_cycle(JsonFeedSource(FEED_ITEMS_PATH), movie_library, movie_engine,
                       show_library, tv_engine)
    except ConfigurationError as e:
        log.error(f"Configuration error: {e}")
        sys.exit(1)
    except MatcherError as e:
        log.error(f"Sync failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
