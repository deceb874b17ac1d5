"""
arr_client.py — Radarr / Sonarr REST clients (API v3).

Provides the minimum surface the matcher needs from the library managers:
  1. List the whole library (for the snapshot)
  2. Fetch the file currently held for a movie
  3. Fetch a bounded window of recent history

Id and title lookups are served by library.py from the listed snapshot.

Error mapping:
  - missing URL/key, HTTP 401/403  → ConfigurationError (fatal for the run)
  - anything else that goes wrong  → ServiceLookupError (caller treats as no match)

429 / 503 are retried with exponential back-off.
"""

import logging
import time
from typing import Any

import requests

from constants import HISTORY_LIMIT, LOOKUP_TIMEOUT
from errors import ConfigurationError, ServiceLookupError
from models import ExistingFile, LibraryItem
from parsing import LANGUAGE_CODES

log = logging.getLogger("matcher")


def _language_code(value: Any) -> str | None:
    """Radarr/Sonarr report {"id": 26, "name": "Hindi"}; we want "hi"."""
    if isinstance(value, dict):
        value = value.get("name")
    if not value:
        return None
    name = str(value).strip().lower()
    return LANGUAGE_CODES.get(name, name[:2] or None)


def movie_item_from_api(data: dict) -> LibraryItem:
    """Build a LibraryItem from a Radarr /movie entry."""
    movie_file = data.get("movieFile") or None
    return LibraryItem(
        id=data["id"],
        title=data.get("title", ""),
        year=data.get("year") or None,
        tmdb_id=data.get("tmdbId") or None,
        imdb_id=data.get("imdbId") or None,
        original_language=_language_code(data.get("originalLanguage")),
        existing_file=existing_file_from_api(movie_file) if movie_file else None,
    )


def series_item_from_api(data: dict) -> LibraryItem:
    """Build a LibraryItem from a Sonarr /series entry."""
    return LibraryItem(
        id=data["id"],
        title=data.get("title", ""),
        year=data.get("year") or None,
        tmdb_id=data.get("tmdbId") or None,
        imdb_id=data.get("imdbId") or None,
        tvdb_id=data.get("tvdbId") or None,
        original_language=_language_code(data.get("originalLanguage")),
        seasons=list(data.get("seasons") or []),
    )


def existing_file_from_api(data: dict) -> ExistingFile:
    return ExistingFile(
        path=data.get("relativePath") or data.get("path") or "",
        size_bytes=int(data.get("size") or 0),
        media_info=dict(data.get("mediaInfo") or {}),
    )


class ArrClient:
    """Shared request plumbing for the *arr v3 APIs."""

    service = "arr"
    max_retries = 2
    backoff = 2.0

    def __init__(self, base_url: str, api_key: str, timeout: float = LOOKUP_TIMEOUT):
        if not base_url or not api_key:
            raise ConfigurationError(f"{self.service}: URL and API key must both be set")
        self.base_url = base_url.rstrip("/")
        self.api = f"{self.base_url}/api/v3"
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers["X-Api-Key"] = api_key

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get(self, path: str, params: dict | None = None) -> Any:
        return self._request("GET", path, params=params)

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.api}{path}"
        for attempt in range(self.max_retries + 1):
            try:
                resp = self._session.request(method, url, timeout=self.timeout, **kwargs)
            except requests.exceptions.RequestException as e:
                raise ServiceLookupError(f"{self.service}: {method} {path} failed: {e}") from e

            if resp.status_code in (401, 403):
                raise ConfigurationError(
                    f"{self.service}: {resp.status_code} on {path}, check the API key"
                )
            if resp.status_code in (429, 503) and attempt < self.max_retries:
                wait = self.backoff * (2 ** attempt)
                log.warning(f"  {self.service}: {resp.status_code} on {method} {path}, "
                            f"retrying in {wait:.0f}s (attempt {attempt + 1}/{self.max_retries})")
                time.sleep(wait)
                continue
            if resp.status_code == 404:
                return None
            try:
                resp.raise_for_status()
                return resp.json()
            except (requests.exceptions.RequestException, ValueError) as e:
                raise ServiceLookupError(f"{self.service}: {method} {path} failed: {e}") from e

        raise ServiceLookupError(f"{self.service}: {method} {path} failed after {self.max_retries} retries")

    @staticmethod
    def _bounded(events: Any, limit: int) -> list[dict]:
        if isinstance(events, dict):
            events = events.get("records", [])
        if not isinstance(events, list):
            return []
        events = sorted(events, key=lambda e: e.get("date", ""), reverse=True)
        return events[:limit]


class RadarrClient(ArrClient):
    """Radarr (movies)."""

    service = "Radarr"

    def list_movies(self) -> list[LibraryItem]:
        data = self._get("/movie") or []
        return [movie_item_from_api(m) for m in data]

    def get_existing_file(self, movie_id: int) -> ExistingFile | None:
        data = self._get(f"/movie/{movie_id}")
        if not data or not data.get("movieFile"):
            return None
        return existing_file_from_api(data["movieFile"])

    def get_history(self, movie_id: int, limit: int = HISTORY_LIMIT) -> list[dict]:
        return self._bounded(self._get("/history/movie", params={"movieId": movie_id}), limit)


class SonarrClient(ArrClient):
    """Sonarr (shows)."""

    service = "Sonarr"

    def list_series(self) -> list[LibraryItem]:
        data = self._get("/series") or []
        return [series_item_from_api(s) for s in data]

    def get_history(self, series_id: int, limit: int = HISTORY_LIMIT) -> list[dict]:
        return self._bounded(self._get("/history/series", params={"seriesId": series_id}), limit)
