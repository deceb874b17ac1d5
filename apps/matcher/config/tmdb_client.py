"""
tmdb_client.py — TMDb metadata lookups.

Canonical titles and original languages for matched works, title searches
used when a release carries no id, and id translation (IMDb → TMDb,
TMDb → TVDB for shows).

Search results are ranked by word overlap (Jaccard) between the query and
the result's title/original title, plus year proximity, a small recency
bias when no year is known, popularity and TMDb's own rank.
"""

import datetime
import logging
import re
from typing import Any

import requests

from constants import LOOKUP_TIMEOUT, TMDB_BASE
from errors import ConfigurationError, ServiceLookupError

log = logging.getLogger("matcher")


# ---------------------------------------------------------------------------
# Result scoring
# ---------------------------------------------------------------------------

def _words(text: str) -> set[str]:
    return set(re.findall(r"[a-z0-9]+", (text or "").lower()))


def _jaccard(a: set[str], b: set[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def _result_year(result: dict, date_key: str) -> int | None:
    date = result.get(date_key) or ""
    if len(date) >= 4 and date[:4].isdigit():
        return int(date[:4])
    return None


def score_result(query_title: str, result: dict, query_year: int | None,
                 name_key: str = "title", date_key: str = "release_date",
                 search_rank: int = 0) -> float:
    """Score a single TMDb search result against the query title/year."""
    query_words = _words(query_title)
    if not query_words:
        return 0.0

    original = result.get("original_title") or result.get("original_name") or ""
    title_score = max(
        _jaccard(query_words, _words(result.get(name_key, ""))),
        _jaccard(query_words, _words(original)),
    )

    # Year proximity
    year_score = 0.0
    result_year = _result_year(result, date_key)
    if query_year and result_year:
        diff = abs(result_year - query_year)
        if diff == 0:
            year_score = 0.3
        elif diff <= 1:
            year_score = 0.15
        elif diff <= 2:
            year_score = 0.1
        else:
            year_score = -0.5

    # Recency bias (when no year provided)
    recency_bonus = 0.0
    if not query_year and result_year:
        years_ago = datetime.date.today().year - result_year
        if years_ago <= 2:
            recency_bonus = 0.06
        elif years_ago <= 5:
            recency_bonus = 0.04
        elif years_ago <= 10:
            recency_bonus = 0.02

    pop_score = min(result.get("popularity", 0) / 500, 0.10)
    rank_bonus = max(0.0, 0.04 - search_rank * 0.002)

    return title_score + year_score + recency_bonus + pop_score + rank_bonus


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class TmdbClient:
    """Lightweight TMDb v3 client."""

    def __init__(self, api_key: str, base_url: str = TMDB_BASE, timeout: float = LOOKUP_TIMEOUT):
        if not api_key:
            raise ConfigurationError("TMDb: API key must be set")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = requests.Session()
        self._cache: dict[tuple, Any] = {}

    def _get(self, path: str, **params) -> Any:
        key = (path, tuple(sorted(params.items())))
        if key in self._cache:
            return self._cache[key]
        try:
            resp = self._session.get(
                f"{self.base_url}{path}",
                params={"api_key": self.api_key, **params},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise ServiceLookupError(f"TMDb: GET {path} failed: {e}") from e
        if resp.status_code == 401:
            raise ConfigurationError("TMDb: 401 Unauthorized, check TMDB_API_KEY")
        if resp.status_code == 404:
            data = None
        else:
            try:
                resp.raise_for_status()
                data = resp.json()
            except (requests.exceptions.RequestException, ValueError) as e:
                raise ServiceLookupError(f"TMDb: GET {path} failed: {e}") from e
        self._cache[key] = data
        return data

    # --------------- canonical titles ---------------

    def get_canonical_title(self, tmdb_id: int, media_type: str = "movie") -> dict | None:
        """Return {title, original_language, imdb_id} for a TMDb id, or None."""
        path = f"/movie/{tmdb_id}" if media_type == "movie" else f"/tv/{tmdb_id}"
        data = self._get(path)
        if not data:
            return None
        return {
            "title": data.get("title") or data.get("name") or "",
            "original_language": data.get("original_language") or None,
            "imdb_id": data.get("imdb_id") or None,
        }

    # --------------- search ---------------

    def _search(self, title: str, year: int | None, media_type: str) -> dict | None:
        if media_type == "movie":
            path, name_key, date_key, year_param = "/search/movie", "title", "release_date", "year"
        else:
            path, name_key, date_key, year_param = "/search/tv", "name", "first_air_date", "first_air_date_year"

        params: dict = {"query": title}
        if year:
            params[year_param] = year
        results = (self._get(path, **params) or {}).get("results", [])
        # Retry without year filter if no results
        if not results and year:
            results = (self._get(path, query=title) or {}).get("results", [])
        if not results:
            return None

        scored = [
            (r, score_result(title, r, year, name_key=name_key, date_key=date_key, search_rank=i))
            for i, r in enumerate(results)
        ]
        scored.sort(key=lambda x: x[1], reverse=True)
        best = scored[0][0]
        result = {
            "tmdb_id": best["id"],
            "title": best.get(name_key, ""),
            "year": _result_year(best, date_key),
            "original_language": best.get("original_language") or None,
        }
        log.info(f"  TMDb → {title} = {result['title']} ({result['year']}) [tmdbid={result['tmdb_id']}]")
        return result

    def search_movie(self, title: str, year: int | None = None) -> dict | None:
        """Best movie match as {tmdb_id, title, year, original_language}, or None."""
        return self._search(title, year, "movie")

    def search_tv(self, title: str, year: int | None = None) -> dict | None:
        return self._search(title, year, "tv")

    # --------------- id translation ---------------

    def find_by_imdb(self, imdb_id: str) -> dict | None:
        data = self._get(f"/find/{imdb_id}", external_source="imdb_id") or {}
        results = data.get("movie_results") or []
        if not results:
            return None
        movie = results[0]
        return {
            "tmdb_id": movie["id"],
            "title": movie.get("title", ""),
            "year": _result_year(movie, "release_date"),
            "original_language": movie.get("original_language") or None,
        }

    def get_tv_external_ids(self, tmdb_id: int) -> dict:
        """Return {tvdb_id, imdb_id} for a TMDb show (values may be None)."""
        data = self._get(f"/tv/{tmdb_id}/external_ids") or {}
        return {
            "tvdb_id": data.get("tvdb_id") or None,
            "imdb_id": data.get("imdb_id") or None,
        }
