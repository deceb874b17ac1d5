"""
models.py — Record types shared by the engines, the store and grouping.

Release / TvRelease are the persisted per-guid records. Rows coming back
from the store are validated through from_row(); a malformed row raises
RecordValidationError instead of leaking an untyped dict into the engine.

FeedItem, LibraryItem and ExistingFile are the shapes of the data consumed
from the feed source and the library manager.
"""

import datetime
import json
from dataclasses import dataclass, field, fields
from typing import Any, Mapping

from errors import RecordValidationError
from states import ReleaseStatus, TvReleaseStatus

BYTES_PER_MB = 1024 * 1024


def utc_now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="seconds")


# ---------------------------------------------------------------------------
# Row coercion helpers
# ---------------------------------------------------------------------------

def _required_str(row: Mapping[str, Any], key: str) -> str:
    value = row.get(key)
    if not isinstance(value, str) or not value.strip():
        raise RecordValidationError(f"{key} must be a non-empty string, got {value!r}")
    return value


def _opt_str(row: Mapping[str, Any], key: str) -> str | None:
    value = row.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise RecordValidationError(f"{key} must be a string, got {value!r}")
    return value


def _opt_int(row: Mapping[str, Any], key: str) -> int | None:
    value = row.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise RecordValidationError(f"{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise RecordValidationError(f"{key} must be an integer, got {value!r}") from None


def _opt_float(row: Mapping[str, Any], key: str) -> float | None:
    value = row.get(key)
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise RecordValidationError(f"{key} must be a number, got {value!r}") from None


def _flag(row: Mapping[str, Any], key: str) -> bool:
    value = row.get(key)
    if value in (None, 0, 1, True, False):
        return bool(value)
    raise RecordValidationError(f"{key} must be a boolean flag, got {value!r}")


def _json(row: Mapping[str, Any], key: str, kind: type) -> Any:
    value = row.get(key)
    if value is None or value == "":
        return kind()
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            raise RecordValidationError(f"{key} is not valid JSON") from None
    if not isinstance(value, kind):
        raise RecordValidationError(f"{key} must be a {kind.__name__}, got {type(value).__name__}")
    return value


def _status(row: Mapping[str, Any], status_type: type) -> Any:
    try:
        return status_type(row.get("status"))
    except ValueError:
        raise RecordValidationError(f"Unknown status {row.get('status')!r}") from None


JSON_FIELDS = {"audio_languages", "existing_file_attributes", "library_history", "audit_trail"}


def _to_row(record: Any) -> dict[str, Any]:
    row: dict[str, Any] = {}
    for f in fields(record):
        value = getattr(record, f.name)
        if f.name in JSON_FIELDS:
            value = json.dumps(value, ensure_ascii=False)
        elif f.name == "status":
            value = value.value
        elif isinstance(value, bool):
            value = int(value)
        row[f.name] = value
    return row


# ---------------------------------------------------------------------------
# Persisted records
# ---------------------------------------------------------------------------

@dataclass
class Release:
    """A movie release, one row per feed guid."""
    guid: str
    title: str
    normalized_title: str = ""
    year: int | None = None
    source_site: str = ""
    link: str = ""
    published_at: str = ""
    resolution: str = "UNKNOWN"
    source_tag: str = "OTHER"
    codec: str = "UNKNOWN"
    audio: str = "Unknown"
    rss_size_mb: float | None = None
    existing_size_mb: float | None = None
    tmdb_id: int | None = None
    tmdb_title: str | None = None
    tmdb_original_language: str | None = None
    imdb_id: str | None = None
    is_dubbed: bool = False
    audio_languages: list = field(default_factory=list)
    radarr_movie_id: int | None = None
    radarr_movie_title: str | None = None
    existing_quality_score: float | None = None
    new_quality_score: float | None = None
    existing_file_path: str | None = None
    existing_file_attributes: dict = field(default_factory=dict)
    library_history: list = field(default_factory=list)
    status: ReleaseStatus = ReleaseStatus.NEW
    manually_ignored: bool = False
    last_checked_at: str = ""
    audit_trail: list = field(default_factory=list)

    @property
    def library_id(self) -> int | None:
        return self.radarr_movie_id

    @property
    def display_name(self) -> str | None:
        return self.radarr_movie_title or self.tmdb_title

    def external_ids(self) -> list[tuple[str, Any]]:
        """(provider, id) pairs, metadata-service ids before library ids."""
        pairs = [("tmdb", self.tmdb_id), ("imdb", self.imdb_id), ("radarr", self.radarr_movie_id)]
        return [(provider, value) for provider, value in pairs if value]

    def to_row(self) -> dict[str, Any]:
        return _to_row(self)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Release":
        return cls(
            guid=_required_str(row, "guid"),
            title=_required_str(row, "title"),
            normalized_title=_opt_str(row, "normalized_title") or "",
            year=_opt_int(row, "year"),
            source_site=_opt_str(row, "source_site") or "",
            link=_opt_str(row, "link") or "",
            published_at=_opt_str(row, "published_at") or "",
            resolution=_opt_str(row, "resolution") or "UNKNOWN",
            source_tag=_opt_str(row, "source_tag") or "OTHER",
            codec=_opt_str(row, "codec") or "UNKNOWN",
            audio=_opt_str(row, "audio") or "Unknown",
            rss_size_mb=_opt_float(row, "rss_size_mb"),
            existing_size_mb=_opt_float(row, "existing_size_mb"),
            tmdb_id=_opt_int(row, "tmdb_id"),
            tmdb_title=_opt_str(row, "tmdb_title"),
            tmdb_original_language=_opt_str(row, "tmdb_original_language"),
            imdb_id=_opt_str(row, "imdb_id"),
            is_dubbed=_flag(row, "is_dubbed"),
            audio_languages=_json(row, "audio_languages", list),
            radarr_movie_id=_opt_int(row, "radarr_movie_id"),
            radarr_movie_title=_opt_str(row, "radarr_movie_title"),
            existing_quality_score=_opt_float(row, "existing_quality_score"),
            new_quality_score=_opt_float(row, "new_quality_score"),
            existing_file_path=_opt_str(row, "existing_file_path"),
            existing_file_attributes=_json(row, "existing_file_attributes", dict),
            library_history=_json(row, "library_history", list),
            status=_status(row, ReleaseStatus),
            manually_ignored=_flag(row, "manually_ignored"),
            last_checked_at=_opt_str(row, "last_checked_at") or "",
            audit_trail=_json(row, "audit_trail", list),
        )


@dataclass
class TvRelease:
    """A show/season release, one row per feed guid."""
    guid: str
    title: str
    normalized_title: str = ""
    show_name: str = ""
    season_number: int | None = None
    year: int | None = None
    source_site: str = ""
    link: str = ""
    published_at: str = ""
    resolution: str = "UNKNOWN"
    source_tag: str = "OTHER"
    codec: str = "UNKNOWN"
    audio: str = "Unknown"
    rss_size_mb: float | None = None
    tvdb_id: int | None = None
    tmdb_id: int | None = None
    imdb_id: str | None = None
    sonarr_series_id: int | None = None
    sonarr_series_title: str | None = None
    status: TvReleaseStatus = TvReleaseStatus.NEW_SHOW
    manually_ignored: bool = False
    last_checked_at: str = ""
    audit_trail: list = field(default_factory=list)

    @property
    def library_id(self) -> int | None:
        return self.sonarr_series_id

    @property
    def display_name(self) -> str | None:
        return self.sonarr_series_title or self.show_name or None

    def external_ids(self) -> list[tuple[str, Any]]:
        pairs = [
            ("tmdb", self.tmdb_id),
            ("tvdb", self.tvdb_id),
            ("imdb", self.imdb_id),
            ("sonarr", self.sonarr_series_id),
        ]
        return [(provider, value) for provider, value in pairs if value]

    def to_row(self) -> dict[str, Any]:
        return _to_row(self)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "TvRelease":
        return cls(
            guid=_required_str(row, "guid"),
            title=_required_str(row, "title"),
            normalized_title=_opt_str(row, "normalized_title") or "",
            show_name=_opt_str(row, "show_name") or "",
            season_number=_opt_int(row, "season_number"),
            year=_opt_int(row, "year"),
            source_site=_opt_str(row, "source_site") or "",
            link=_opt_str(row, "link") or "",
            published_at=_opt_str(row, "published_at") or "",
            resolution=_opt_str(row, "resolution") or "UNKNOWN",
            source_tag=_opt_str(row, "source_tag") or "OTHER",
            codec=_opt_str(row, "codec") or "UNKNOWN",
            audio=_opt_str(row, "audio") or "Unknown",
            rss_size_mb=_opt_float(row, "rss_size_mb"),
            tvdb_id=_opt_int(row, "tvdb_id"),
            tmdb_id=_opt_int(row, "tmdb_id"),
            imdb_id=_opt_str(row, "imdb_id"),
            sonarr_series_id=_opt_int(row, "sonarr_series_id"),
            sonarr_series_title=_opt_str(row, "sonarr_series_title"),
            status=_status(row, TvReleaseStatus),
            manually_ignored=_flag(row, "manually_ignored"),
            last_checked_at=_opt_str(row, "last_checked_at") or "",
            audit_trail=_json(row, "audit_trail", list),
        )


# ---------------------------------------------------------------------------
# Consumed shapes
# ---------------------------------------------------------------------------

@dataclass
class FeedItem:
    """One syndicated record as handed over by the feed transport."""
    guid: str
    title: str
    link: str = ""
    published_at: str = ""
    enclosure_size: int | None = None
    description: str = ""
    source_site: str = ""
    media_type: str = "movie"

    @property
    def size_mb(self) -> float | None:
        if not self.enclosure_size:
            return None
        return self.enclosure_size / BYTES_PER_MB

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FeedItem":
        title = data.get("title") or data.get("link")
        guid = data.get("guid") or data.get("link")
        if not guid or not title:
            raise RecordValidationError(f"Feed record needs a guid and a title: {dict(data)!r}")
        media_type = str(data.get("mediaType") or data.get("media_type") or "movie").lower()
        if media_type not in ("movie", "tv"):
            raise RecordValidationError(f"Unknown media type {media_type!r} for {guid}")
        return cls(
            guid=str(guid),
            title=str(title),
            link=str(data.get("link") or ""),
            published_at=str(data.get("publishedAt") or data.get("published_at") or ""),
            enclosure_size=_opt_int(data, "enclosureSize") or _opt_int(data, "enclosure_size"),
            description=str(data.get("description") or ""),
            source_site=str(data.get("sourceSite") or data.get("source_site") or ""),
            media_type=media_type,
        )


@dataclass
class ExistingFile:
    """The file the library manager currently holds for an item."""
    path: str
    size_bytes: int = 0
    media_info: dict = field(default_factory=dict)

    @property
    def size_mb(self) -> float:
        return self.size_bytes / BYTES_PER_MB


@dataclass
class LibraryItem:
    """A movie or series tracked by the library manager."""
    id: int
    title: str
    year: int | None = None
    tmdb_id: int | None = None
    imdb_id: str | None = None
    tvdb_id: int | None = None
    original_language: str | None = None
    seasons: list = field(default_factory=list)
    existing_file: ExistingFile | None = None

    def has_season(self, season: int) -> bool:
        """True when the season exists in the library and is monitored."""
        return any(
            s.get("seasonNumber") == season and s.get("monitored")
            for s in self.seasons
        )
