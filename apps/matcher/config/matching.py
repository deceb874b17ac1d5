"""
matching.py — Movie matching engine.

One sequential pass over the feed records. Per record:

  1. Parse the title (quality, year, size, languages, embedded ids)
  2. Skip the record if its stored status is sticky (ADDED / UPGRADED)
  3. Eligibility gate — a disallowed resolution is stored IGNORED with no
     external lookup at all
  4. Library lookup: embedded id first (a TMDb id that TMDb maps to a
     different IMDb id than the feed's is replaced first), then the cleaned
     title, then a TMDb search/translation and a retry of the library with
     the id it found
  5. No library match → NEW (ATTENTION_NEEDED when only an IMDb id exists)
  6. Library match → fetch the current file + recent history, score both
     sides with the same formula, and apply the upgrade AND-gate
  7. Upsert (the store merges statuses and keeps the audit trail)

A failing record is logged and counted; it never stops the batch.
ConfigurationError and PersistenceError are the exceptions: they abort the
run. ServiceLookupError is recovered as "no match".
"""

import logging
import threading
from dataclasses import dataclass, replace
from pathlib import PurePath

from errors import ConfigurationError, PersistenceError, RunInProgressError, ServiceLookupError
from models import FeedItem, LibraryItem, Release, utc_now_iso
from parsing import (
    ParsedRelease,
    clean_search_title,
    extract_external_ids,
    normalize_title,
    parse_release,
    parse_size_mb,
)
from policy import is_allowed, upgrade_verdict
from scoring import score_existing_file, score_release
from settings import QualitySettings
from states import ReleaseStatus, is_sticky

log = logging.getLogger("matcher")


@dataclass
class MatchingStats:
    total: int = 0
    processed: int = 0
    skipped: int = 0
    new: int = 0
    upgrade_candidates: int = 0
    existing: int = 0
    ignored: int = 0
    attention_needed: int = 0
    errors: int = 0

    def summary(self) -> str:
        return (f"{self.processed} processed, {self.skipped} skipped, {self.errors} errors "
                f"(new={self.new}, upgrades={self.upgrade_candidates}, existing={self.existing}, "
                f"ignored={self.ignored}, attention={self.attention_needed})")


# ---------------------------------------------------------------------------
# Shared helpers (also used by the TV engine)
# ---------------------------------------------------------------------------

def parse_feed_item(item: FeedItem) -> ParsedRelease:
    """Parse a feed record, filling ids and size from its description."""
    parsed = parse_release(item.title)
    ids = extract_external_ids(item.description)
    changes = {k: v for k, v in ids.items() if v and not getattr(parsed, k)}
    size = item.size_mb or parsed.size_mb or parse_size_mb(item.description)
    if size != parsed.size_mb:
        changes["size_mb"] = size
    return replace(parsed, **changes) if changes else parsed


def guarded(label: str, fn, *args, **kwargs):
    """Call an external lookup, turning ServiceLookupError into None."""
    try:
        return fn(*args, **kwargs)
    except ServiceLookupError as e:
        log.warning(f"  {label} failed: {e}")
        return None


def audio_flags(parsed: ParsedRelease, original_language: str | None,
                settings: QualitySettings) -> tuple[bool, bool]:
    """(is_dubbed, preferred_language) for a parsed release."""
    languages = parsed.audio_languages
    original = (original_language or "").lower()[:2]
    is_dubbed = parsed.is_dubbed or bool(original and languages and original not in languages)
    preferred = any(lang in settings.preferred_audio_languages for lang in languages)
    return is_dubbed, preferred


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class MatchingEngine:
    """Movie matching engine. One run at a time per instance."""

    def __init__(self, store, library, settings: QualitySettings, metadata=None):
        self.store = store
        self.library = library
        self.settings = settings
        self.metadata = metadata
        self._run_lock = threading.Lock()

    def run(self, items) -> MatchingStats:
        """Process a batch of FeedItems. Raises RunInProgressError on overlap."""
        if not self._run_lock.acquire(blocking=False):
            raise RunInProgressError("Movie matching is already running")
        try:
            items = list(items)
            stats = MatchingStats(total=len(items))
            log.info(f"Matching {len(items)} movie record(s)...")
            for item in items:
                try:
                    self.process_item(item, stats)
                except (ConfigurationError, PersistenceError):
                    raise
                except Exception as e:
                    stats.errors += 1
                    log.error(f"  Error processing {item.guid} ({item.title}): {e}", exc_info=True)
            log.info(f"Movie matching complete: {stats.summary()}")
            return stats
        finally:
            self._run_lock.release()

    # --------------- per item ---------------

    def process_item(self, item: FeedItem, stats: MatchingStats) -> Release | None:
        parsed = parse_feed_item(item)

        stored = self.store.get_by_guid(item.guid)
        if stored and is_sticky(stored.status):
            stats.skipped += 1
            log.debug(f"  {item.title}: {stored.status.value}, skipped")
            return None

        release = self._base_record(item, parsed)

        if not is_allowed(parsed, self.settings):
            release.status = ReleaseStatus.IGNORED
            log.info(f"  {item.title}: {parsed.resolution} not allowed → IGNORED")
            return self._save(release, stats, existing=False)

        movie = self._find_movie(release)
        if movie is None:
            only_imdb = bool(release.imdb_id and not release.tmdb_id)
            release.status = ReleaseStatus.ATTENTION_NEEDED if only_imdb else ReleaseStatus.NEW
            log.info(f"  {item.title}: not in library → {release.status.value}")
            return self._save(release, stats, existing=False)

        try:
            self._evaluate_upgrade(release, parsed, movie)
        except ServiceLookupError as e:
            log.warning(f"  {item.title}: library file lookup failed ({e}) → NEW")
            release = self._base_record(item, parsed)
            release.status = ReleaseStatus.NEW
            return self._save(release, stats, existing=False)
        return self._save(release, stats, existing=True)

    def _base_record(self, item: FeedItem, parsed: ParsedRelease) -> Release:
        return Release(
            guid=item.guid,
            title=item.title,
            normalized_title=normalize_title(item.title),
            year=parsed.year,
            source_site=item.source_site,
            link=item.link,
            published_at=item.published_at,
            resolution=parsed.resolution,
            source_tag=parsed.source_tag,
            codec=parsed.codec,
            audio=parsed.audio,
            rss_size_mb=parsed.size_mb,
            tmdb_id=parsed.tmdb_id,
            imdb_id=parsed.imdb_id,
            is_dubbed=parsed.is_dubbed,
            audio_languages=list(parsed.audio_languages),
        )

    # --------------- lookups ---------------

    def _find_movie(self, release: Release) -> LibraryItem | None:
        if self.metadata is not None and release.tmdb_id and release.imdb_id:
            self._check_id_pair(release)

        movie = None
        if release.tmdb_id or release.imdb_id:
            movie = guarded("Library id lookup", self.library.lookup_by_external_id,
                            tmdb_id=release.tmdb_id, imdb_id=release.imdb_id)

        clean = clean_search_title(release.title)
        if movie is None and clean:
            candidates = guarded("Library title lookup", self.library.lookup_by_title,
                                 clean, release.year) or []
            movie = candidates[0] if candidates else None

        if movie is None and self.metadata is not None:
            self._resolve_metadata(release, clean)
            if release.tmdb_id:
                movie = guarded("Library id lookup", self.library.lookup_by_external_id,
                                tmdb_id=release.tmdb_id)
        elif self.metadata is not None and release.tmdb_id and not release.tmdb_title:
            self._canonical(release)

        if movie is not None:
            release.radarr_movie_id = movie.id
            release.radarr_movie_title = movie.title
            release.tmdb_id = release.tmdb_id or movie.tmdb_id
            release.imdb_id = release.imdb_id or movie.imdb_id
            release.tmdb_original_language = release.tmdb_original_language or movie.original_language
        return movie

    def _check_id_pair(self, release: Release) -> None:
        """Replace a feed TMDb id that TMDb maps to a different IMDb id.

        The IMDb id wins when TMDb can translate it and the year agrees
        (or either year is unknown). Otherwise the feed's TMDb id is kept.
        """
        info = guarded("TMDb title lookup", self.metadata.get_canonical_title, release.tmdb_id)
        if not info:
            return
        tmdb_imdb = info.get("imdb_id")
        if not tmdb_imdb or tmdb_imdb == release.imdb_id:
            release.tmdb_title = info.get("title") or release.tmdb_title
            release.tmdb_original_language = info.get("original_language") or release.tmdb_original_language
            return

        log.warning(f"  TMDb {release.tmdb_id} is {tmdb_imdb} on TMDb, feed says {release.imdb_id}")
        found = guarded("TMDb IMDb lookup", self.metadata.find_by_imdb, release.imdb_id)
        if not found:
            log.info(f"  No TMDb id for {release.imdb_id}, keeping {release.tmdb_id}")
            return
        if release.year and found.get("year") and found["year"] != release.year:
            log.info(f"  {found['title']} ({found['year']}) rejected: year {release.year} expected, "
                     f"keeping {release.tmdb_id}")
            return
        log.info(f"  Using TMDb {found['tmdb_id']} ({found.get('title')}) from {release.imdb_id}")
        release.tmdb_id = found["tmdb_id"]
        release.tmdb_title = found.get("title")
        release.tmdb_original_language = found.get("original_language")

    def _resolve_metadata(self, release: Release, clean: str) -> None:
        """Fill tmdb_id / title / language from TMDb."""
        found = None
        if release.tmdb_id:
            self._canonical(release)
            return
        if release.imdb_id:
            found = guarded("TMDb IMDb lookup", self.metadata.find_by_imdb, release.imdb_id)
        elif clean:
            found = guarded("TMDb search", self.metadata.search_movie, clean, release.year)
            if found and release.year and found.get("year") and found["year"] != release.year:
                log.info(f"  TMDb result {found['title']} ({found['year']}) rejected: "
                         f"year {release.year} expected")
                found = None
        if found:
            release.tmdb_id = found["tmdb_id"]
            release.tmdb_title = found.get("title")
            release.tmdb_original_language = found.get("original_language")

    def _canonical(self, release: Release) -> None:
        info = guarded("TMDb title lookup", self.metadata.get_canonical_title, release.tmdb_id)
        if info:
            release.tmdb_title = info.get("title") or release.tmdb_title
            release.tmdb_original_language = info.get("original_language") or release.tmdb_original_language
            release.imdb_id = release.imdb_id or info.get("imdb_id")

    # --------------- decision ---------------

    def _evaluate_upgrade(self, release: Release, parsed: ParsedRelease, movie: LibraryItem) -> None:
        existing = self.library.get_existing_file(movie.id)
        release.library_history = self.library.get_history(movie.id)

        existing_parsed = None
        existing_size = None
        if existing is not None:
            existing_size = existing.size_mb
            existing_parsed = parse_release(PurePath(existing.path).name, existing.media_info)
            release.existing_file_path = existing.path
            release.existing_file_attributes = {
                **existing_parsed.to_attributes(),
                "path": existing.path,
                "size_mb": existing_size,
            }
        release.existing_size_mb = existing_size

        is_dubbed, preferred = audio_flags(parsed, release.tmdb_original_language, self.settings)
        release.is_dubbed = is_dubbed
        existing_dubbed = existing_preferred = False
        if existing_parsed is not None:
            existing_dubbed, existing_preferred = audio_flags(
                existing_parsed, release.tmdb_original_language, self.settings)

        new_score = score_release(parsed, self.settings, is_dubbed=is_dubbed, preferred_language=preferred)
        existing_score = score_existing_file(existing_parsed, existing_size, self.settings,
                                             is_dubbed=existing_dubbed, preferred_language=existing_preferred)
        release.new_quality_score = new_score
        release.existing_quality_score = existing_score

        verdict = upgrade_verdict(new_score, existing_score, parsed.size_mb, existing_size, self.settings)
        release.status = verdict.status
        size_text = "n/a" if verdict.size_delta_percent is None else f"{verdict.size_delta_percent:+.0f}%"
        log.info(f"  {release.title}: in library as {movie.title}, "
                 f"score {existing_score:.0f} → {new_score:.0f} ({verdict.score_delta:+.0f}), "
                 f"size {size_text} → {release.status.value}")

    def _save(self, release: Release, stats: MatchingStats, existing: bool) -> Release:
        release.last_checked_at = utc_now_iso()
        stored = self.store.upsert_by_guid(release)
        stats.processed += 1
        if stored.status == ReleaseStatus.UPGRADE_CANDIDATE:
            stats.upgrade_candidates += 1
        elif stored.status == ReleaseStatus.NEW:
            stats.new += 1
        elif stored.status == ReleaseStatus.ATTENTION_NEEDED:
            stats.attention_needed += 1
        elif existing:
            stats.existing += 1
        else:
            stats.ignored += 1
        return stored
