"""
tv_matching.py — Show/season matching engine.

Same pass structure as the movie engine, with show-specific lookups:

  - show name, season and year come from the title (parse_tv_title)
  - library lookup: embedded TVDB/TMDb/IMDb id, then the show name, then a
    TMDb show search whose TVDB id is retried against the library
  - in library, season monitored        → IGNORED
  - in library, season missing/unmonitored → NEW_SEASON
  - not in library                      → NEW_SHOW (ATTENTION_NEEDED when
                                           only an IMDb id is known)

Only ADDED is sticky for shows.
"""

import logging
import threading
from dataclasses import dataclass

from errors import ConfigurationError, PersistenceError, RunInProgressError
from matching import guarded, parse_feed_item
from models import FeedItem, LibraryItem, TvRelease, utc_now_iso
from parsing import normalize_title, parse_tv_title
from policy import is_allowed
from settings import QualitySettings
from states import TvReleaseStatus, is_sticky

log = logging.getLogger("matcher")


@dataclass
class TvMatchingStats:
    total: int = 0
    processed: int = 0
    skipped: int = 0
    new_shows: int = 0
    new_seasons: int = 0
    existing: int = 0
    ignored: int = 0
    attention_needed: int = 0
    errors: int = 0

    def summary(self) -> str:
        return (f"{self.processed} processed, {self.skipped} skipped, {self.errors} errors "
                f"(new shows={self.new_shows}, new seasons={self.new_seasons}, "
                f"existing={self.existing}, ignored={self.ignored}, "
                f"attention={self.attention_needed})")


class TvMatchingEngine:
    """Show matching engine. One run at a time per instance."""

    def __init__(self, store, library, settings: QualitySettings, metadata=None):
        self.store = store
        self.library = library
        self.settings = settings
        self.metadata = metadata
        self._run_lock = threading.Lock()

    def run(self, items) -> TvMatchingStats:
        if not self._run_lock.acquire(blocking=False):
            raise RunInProgressError("TV matching is already running")
        try:
            items = list(items)
            stats = TvMatchingStats(total=len(items))
            log.info(f"Matching {len(items)} show record(s)...")
            for item in items:
                try:
                    self.process_item(item, stats)
                except (ConfigurationError, PersistenceError):
                    raise
                except Exception as e:
                    stats.errors += 1
                    log.error(f"  Error processing {item.guid} ({item.title}): {e}", exc_info=True)
            log.info(f"TV matching complete: {stats.summary()}")
            return stats
        finally:
            self._run_lock.release()

    # --------------- per item ---------------

    def process_item(self, item: FeedItem, stats: TvMatchingStats) -> TvRelease | None:
        parsed = parse_feed_item(item)
        tv_title = parse_tv_title(item.title)

        stored = self.store.get_tv_by_guid(item.guid)
        if stored and is_sticky(stored.status, tv=True):
            stats.skipped += 1
            log.debug(f"  {item.title}: {stored.status.value}, skipped")
            return None

        release = TvRelease(
            guid=item.guid,
            title=item.title,
            normalized_title=normalize_title(item.title),
            show_name=tv_title.show_name,
            season_number=tv_title.season,
            year=tv_title.year or parsed.year,
            source_site=item.source_site,
            link=item.link,
            published_at=item.published_at,
            resolution=parsed.resolution,
            source_tag=parsed.source_tag,
            codec=parsed.codec,
            audio=parsed.audio,
            rss_size_mb=parsed.size_mb,
            tvdb_id=parsed.tvdb_id,
            tmdb_id=parsed.tmdb_id,
            imdb_id=parsed.imdb_id,
        )

        if not is_allowed(parsed, self.settings):
            release.status = TvReleaseStatus.IGNORED
            log.info(f"  {item.title}: {parsed.resolution} not allowed → IGNORED")
            return self._save(release, stats, existing=False)

        show = self._find_show(release)
        if show is None:
            only_imdb = bool(release.imdb_id and not (release.tvdb_id or release.tmdb_id))
            release.status = TvReleaseStatus.ATTENTION_NEEDED if only_imdb else TvReleaseStatus.NEW_SHOW
        elif release.season_number is not None and not show.has_season(release.season_number):
            release.status = TvReleaseStatus.NEW_SEASON
        else:
            release.status = TvReleaseStatus.IGNORED

        where = f"in library as {show.title}" if show else "not in library"
        season = f"S{release.season_number:02d}" if release.season_number is not None else "no season"
        log.info(f"  {item.title}: {where}, {season} → {release.status.value}")
        return self._save(release, stats, existing=show is not None)

    # --------------- lookups ---------------

    def _find_show(self, release: TvRelease) -> LibraryItem | None:
        show = None
        if release.tvdb_id or release.tmdb_id or release.imdb_id:
            show = guarded("Library id lookup", self.library.lookup_by_external_id,
                           tvdb_id=release.tvdb_id, tmdb_id=release.tmdb_id, imdb_id=release.imdb_id)

        if show is None and release.show_name:
            candidates = guarded("Library title lookup", self.library.lookup_by_title,
                                 release.show_name, release.year) or []
            show = candidates[0] if candidates else None

        if show is None and self.metadata is not None:
            self._resolve_metadata(release)
            if release.tvdb_id or release.tmdb_id:
                show = guarded("Library id lookup", self.library.lookup_by_external_id,
                               tvdb_id=release.tvdb_id, tmdb_id=release.tmdb_id)

        if show is not None:
            release.sonarr_series_id = show.id
            release.sonarr_series_title = show.title
            release.tvdb_id = release.tvdb_id or show.tvdb_id
            release.tmdb_id = release.tmdb_id or show.tmdb_id
            release.imdb_id = release.imdb_id or show.imdb_id
        return show

    def _resolve_metadata(self, release: TvRelease) -> None:
        """TMDb show search, then TMDb → TVDB/IMDb id translation."""
        if not release.tmdb_id and release.show_name:
            found = guarded("TMDb search", self.metadata.search_tv, release.show_name, release.year)
            if found:
                release.tmdb_id = found["tmdb_id"]
        if release.tmdb_id and not release.tvdb_id:
            ids = guarded("TMDb external ids", self.metadata.get_tv_external_ids, release.tmdb_id) or {}
            release.tvdb_id = ids.get("tvdb_id") or release.tvdb_id
            release.imdb_id = release.imdb_id or ids.get("imdb_id")

    def _save(self, release: TvRelease, stats: TvMatchingStats, existing: bool) -> TvRelease:
        release.last_checked_at = utc_now_iso()
        stored = self.store.upsert_tv_by_guid(release)
        stats.processed += 1
        if stored.status == TvReleaseStatus.NEW_SHOW:
            stats.new_shows += 1
        elif stored.status == TvReleaseStatus.NEW_SEASON:
            stats.new_seasons += 1
        elif stored.status == TvReleaseStatus.ATTENTION_NEEDED:
            stats.attention_needed += 1
        elif existing:
            stats.existing += 1
        else:
            stats.ignored += 1
        return stored
