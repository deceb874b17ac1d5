"""
store.py — SQLite persistence for movie and show releases.

One row per feed guid in movie_releases / tv_releases. Every write is an
upsert keyed by guid that runs the status merge (states.merge / merge_tv)
inside the same transaction as the read of the stored row, so a resync can
never overwrite a sticky status.

The manual-ignore flag belongs to the user: upserts keep whatever the
stored row says. Only set_manual_ignore() changes it.

List/dict fields are stored as JSON text and come back through
Release.from_row / TvRelease.from_row, which reject malformed rows.
"""

import logging
import sqlite3
import threading
from typing import Any

import states
from constants import AUDIT_TRAIL_LIMIT, DB_PATH
from errors import PersistenceError
from models import Release, TvRelease, utc_now_iso

log = logging.getLogger("matcher")


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

MOVIE_COLUMNS = [
    ("guid", "TEXT PRIMARY KEY"),
    ("title", "TEXT NOT NULL"),
    ("normalized_title", "TEXT"),
    ("year", "INTEGER"),
    ("source_site", "TEXT"),
    ("link", "TEXT"),
    ("published_at", "TEXT"),
    ("resolution", "TEXT"),
    ("source_tag", "TEXT"),
    ("codec", "TEXT"),
    ("audio", "TEXT"),
    ("rss_size_mb", "REAL"),
    ("existing_size_mb", "REAL"),
    ("tmdb_id", "INTEGER"),
    ("tmdb_title", "TEXT"),
    ("tmdb_original_language", "TEXT"),
    ("imdb_id", "TEXT"),
    ("is_dubbed", "INTEGER"),
    ("audio_languages", "TEXT"),
    ("radarr_movie_id", "INTEGER"),
    ("radarr_movie_title", "TEXT"),
    ("existing_quality_score", "REAL"),
    ("new_quality_score", "REAL"),
    ("existing_file_path", "TEXT"),
    ("existing_file_attributes", "TEXT"),
    ("library_history", "TEXT"),
    ("status", "TEXT NOT NULL"),
    ("manually_ignored", "INTEGER"),
    ("last_checked_at", "TEXT"),
    ("audit_trail", "TEXT"),
]

TV_COLUMNS = [
    ("guid", "TEXT PRIMARY KEY"),
    ("title", "TEXT NOT NULL"),
    ("normalized_title", "TEXT"),
    ("show_name", "TEXT"),
    ("season_number", "INTEGER"),
    ("year", "INTEGER"),
    ("source_site", "TEXT"),
    ("link", "TEXT"),
    ("published_at", "TEXT"),
    ("resolution", "TEXT"),
    ("source_tag", "TEXT"),
    ("codec", "TEXT"),
    ("audio", "TEXT"),
    ("rss_size_mb", "REAL"),
    ("tvdb_id", "INTEGER"),
    ("tmdb_id", "INTEGER"),
    ("imdb_id", "TEXT"),
    ("sonarr_series_id", "INTEGER"),
    ("sonarr_series_title", "TEXT"),
    ("status", "TEXT NOT NULL"),
    ("manually_ignored", "INTEGER"),
    ("last_checked_at", "TEXT"),
    ("audit_trail", "TEXT"),
]

MOVIE_TABLE = "movie_releases"
TV_TABLE = "tv_releases"


class _Table:
    """Column list, record type and merge function of one release table."""

    def __init__(self, name: str, columns: list, record_type: type, merge, tv: bool):
        self.name = name
        self.columns = [col for col, _ in columns]
        self.definition = ", ".join(f"{col} {col_type}" for col, col_type in columns)
        self.record_type = record_type
        self.merge = merge
        self.tv = tv


_MOVIES = _Table(MOVIE_TABLE, MOVIE_COLUMNS, Release, states.merge, tv=False)
_SHOWS = _Table(TV_TABLE, TV_COLUMNS, TvRelease, states.merge_tv, tv=True)


def _audit_entry(at: str, old, new, reason: str) -> dict[str, Any]:
    return {
        "at": at,
        "from": old.value if old is not None else None,
        "to": new.value,
        "reason": reason,
    }


def _append_audit(trail: list, entry: dict) -> list:
    return (list(trail) + [entry])[-AUDIT_TRAIL_LIMIT:]


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class ReleaseStore:
    """SQLite-backed release store. Safe to share between threads."""

    def __init__(self, path: str = DB_PATH):
        self.path = path
        self._lock = threading.RLock()
        try:
            self._conn = sqlite3.connect(path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._create_tables()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open release store {path}: {e}") from e

    def _create_tables(self) -> None:
        with self._conn:
            for table in (_MOVIES, _SHOWS):
                self._conn.execute(f"CREATE TABLE IF NOT EXISTS {table.name} ({table.definition})")
            for table in (_MOVIES, _SHOWS):
                found = [row[1] for row in self._conn.execute(f"PRAGMA table_info({table.name})")]
                if found != table.columns:
                    raise PersistenceError(f"{table.name} schema mismatch: {found}")

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Generic helpers
    # ------------------------------------------------------------------

    def _fetch(self, table: _Table, guid: str):
        try:
            row = self._conn.execute(
                f"SELECT * FROM {table.name} WHERE guid = ?", (guid,),
            ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Read of {guid} failed: {e}") from e
        return table.record_type.from_row(dict(row)) if row else None

    def _write(self, table: _Table, record) -> None:
        row = record.to_row()
        placeholders = ", ".join("?" for _ in table.columns)
        self._conn.execute(
            f"INSERT OR REPLACE INTO {table.name} ({', '.join(table.columns)}) "
            f"VALUES ({placeholders})",
            [row[col] for col in table.columns],
        )

    def _upsert(self, table: _Table, record):
        with self._lock:
            try:
                with self._conn:
                    stored = self._fetch(table, record.guid)
                    old = stored.status if stored else None
                    record.status = table.merge(old, record.status)
                    record.manually_ignored = stored.manually_ignored if stored else record.manually_ignored
                    trail = stored.audit_trail if stored else []
                    if record.status != old:
                        trail = _append_audit(
                            trail, _audit_entry(record.last_checked_at or utc_now_iso(),
                                                old, record.status, "sync"),
                        )
                    record.audit_trail = trail
                    self._write(table, record)
            except sqlite3.Error as e:
                raise PersistenceError(f"Upsert of {record.guid} failed: {e}") from e
        return record

    def _list(self, table: _Table, status=None) -> list:
        query = f"SELECT * FROM {table.name}"
        params: tuple = ()
        if status is not None:
            query += " WHERE status = ?"
            params = (status.value if hasattr(status, "value") else status,)
        query += " ORDER BY published_at DESC, guid"
        try:
            rows = self._conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Listing {table.name} failed: {e}") from e
        return [table.record_type.from_row(dict(row)) for row in rows]

    def _apply_action(self, table: _Table, guid: str, action: str):
        with self._lock:
            try:
                with self._conn:
                    stored = self._fetch(table, guid)
                    if stored is None:
                        raise PersistenceError(f"No release with guid {guid}")
                    new = states.apply_action(stored.status, action, tv=table.tv)
                    stored.audit_trail = _append_audit(
                        stored.audit_trail, _audit_entry(utc_now_iso(), stored.status, new, action),
                    )
                    stored.status = new
                    self._write(table, stored)
            except sqlite3.Error as e:
                raise PersistenceError(f"Action {action} on {guid} failed: {e}") from e
        log.info(f"  {guid}: {action} → {new.value}")
        return stored

    def _set_manual_ignore(self, table: _Table, guid: str, ignored: bool) -> None:
        with self._lock:
            try:
                with self._conn:
                    cur = self._conn.execute(
                        f"UPDATE {table.name} SET manually_ignored = ? WHERE guid = ?",
                        (int(ignored), guid),
                    )
            except sqlite3.Error as e:
                raise PersistenceError(f"Manual ignore of {guid} failed: {e}") from e
        if cur.rowcount == 0:
            raise PersistenceError(f"No release with guid {guid}")

    # ------------------------------------------------------------------
    # Movies
    # ------------------------------------------------------------------

    def get_by_guid(self, guid: str) -> Release | None:
        return self._fetch(_MOVIES, guid)

    def upsert_by_guid(self, record: Release) -> Release:
        """Insert or update a movie release, keeping a sticky stored status."""
        return self._upsert(_MOVIES, record)

    def list_releases(self, status=None) -> list[Release]:
        return self._list(_MOVIES, status)

    def apply_action(self, guid: str, action: str) -> Release:
        return self._apply_action(_MOVIES, guid, action)

    def set_manual_ignore(self, guid: str, ignored: bool = True) -> None:
        self._set_manual_ignore(_MOVIES, guid, ignored)

    # ------------------------------------------------------------------
    # Shows
    # ------------------------------------------------------------------

    def get_tv_by_guid(self, guid: str) -> TvRelease | None:
        return self._fetch(_SHOWS, guid)

    def upsert_tv_by_guid(self, record: TvRelease) -> TvRelease:
        """Insert or update a show release, keeping a sticky stored status."""
        return self._upsert(_SHOWS, record)

    def list_tv_releases(self, status=None) -> list[TvRelease]:
        return self._list(_SHOWS, status)

    def apply_tv_action(self, guid: str, action: str) -> TvRelease:
        return self._apply_action(_SHOWS, guid, action)

    def set_tv_manual_ignore(self, guid: str, ignored: bool = True) -> None:
        self._set_manual_ignore(_SHOWS, guid, ignored)
