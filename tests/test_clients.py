import json

import pytest
import requests

import arr_client
from arr_client import RadarrClient, SonarrClient, movie_item_from_api
from constants import HISTORY_LIMIT
from errors import ConfigurationError, ServiceLookupError
from library import MovieLibrary, ShowLibrary
from tmdb_client import TmdbClient, score_result

MOVIE = {
    "id": 1,
    "title": "Movie Name",
    "year": 2024,
    "tmdbId": 550,
    "imdbId": "tt1234567",
    "originalLanguage": {"id": 26, "name": "Hindi"},
    "movieFile": {
        "relativePath": "Movie.Name.2024.720p.WEBRip.x264-XYZ.mkv",
        "size": 1073741824,
        "mediaInfo": {"videoCodec": "x264", "audioCodec": "AAC", "audioChannels": 2},
    },
}


def _response(status, payload=None):
    resp = requests.Response()
    resp.status_code = status
    resp.url = "http://radarr.local/api/v3"
    resp._content = json.dumps(payload).encode() if payload is not None else b""
    return resp


class _Replay:
    """Stands in for Session.request / Session.get, replaying canned responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        return self.responses.pop(0)


@pytest.fixture
def radarr():
    return RadarrClient("http://radarr.local/", "key")


def test_missing_credentials_are_a_configuration_error():
    with pytest.raises(ConfigurationError):
        RadarrClient("", "key")
    with pytest.raises(ConfigurationError):
        SonarrClient("http://sonarr.local", "")
    with pytest.raises(ConfigurationError):
        TmdbClient("")


def test_list_movies(radarr, monkeypatch):
    replay = _Replay(_response(200, [MOVIE]))
    monkeypatch.setattr(radarr._session, "request", replay)

    (item,) = radarr.list_movies()

    assert item.tmdb_id == 550
    assert item.original_language == "hi"
    assert item.existing_file.size_mb == 1024
    assert item.existing_file.media_info["audioChannels"] == 2
    args, _ = replay.calls[0]
    assert args == ("GET", "http://radarr.local/api/v3/movie")
    assert radarr._session.headers["X-Api-Key"] == "key"


def test_unauthorized_is_a_configuration_error(radarr, monkeypatch):
    monkeypatch.setattr(radarr._session, "request", _Replay(_response(401)))

    with pytest.raises(ConfigurationError):
        radarr.list_movies()


def test_server_error_is_a_lookup_error(radarr, monkeypatch):
    monkeypatch.setattr(radarr._session, "request", _Replay(_response(500, {"error": "boom"})))

    with pytest.raises(ServiceLookupError):
        radarr.list_movies()


def test_connection_error_is_a_lookup_error(radarr, monkeypatch):
    def refuse(*args, **kwargs):
        raise requests.exceptions.ConnectionError("refused")

    monkeypatch.setattr(radarr._session, "request", refuse)

    with pytest.raises(ServiceLookupError):
        radarr.get_existing_file(1)


def test_rate_limit_is_retried(radarr, monkeypatch):
    monkeypatch.setattr(arr_client.time, "sleep", lambda seconds: None)
    replay = _Replay(_response(429), _response(200, [MOVIE]))
    monkeypatch.setattr(radarr._session, "request", replay)

    assert [m.id for m in radarr.list_movies()] == [1]
    assert len(replay.calls) == 2


def test_not_found_is_none(radarr, monkeypatch):
    monkeypatch.setattr(radarr._session, "request", _Replay(_response(404)))

    assert radarr.get_existing_file(99) is None


def test_history_is_bounded_and_newest_first(radarr, monkeypatch):
    events = {"records": [{"date": f"2026-10-{day:02d}T00:00:00Z"} for day in range(1, 16)]}
    monkeypatch.setattr(radarr._session, "request", _Replay(_response(200, events)))

    history = radarr.get_history(1, limit=3)

    assert [e["date"][:10] for e in history] == ["2026-10-15", "2026-10-14", "2026-10-13"]


def test_series_parsing():
    sonarr = SonarrClient("http://sonarr.local", "key")
    replay = _Replay(_response(200, [{"id": 10, "title": "The Family Man", "tvdbId": 355567,
                                      "seasons": [{"seasonNumber": 1, "monitored": True}]}]))
    sonarr._session.request = replay

    (show,) = sonarr.list_series()

    assert show.tvdb_id == 355567
    assert show.has_season(1)
    assert not show.has_season(2)


# ---------------------------------------------------------------------------
# TMDb
# ---------------------------------------------------------------------------

def test_score_result_prefers_title_and_year():
    exact = {"title": "Movie Name", "release_date": "2024-05-01"}
    wrong_year = {"title": "Movie Name", "release_date": "1990-05-01"}
    other = {"title": "Something Else", "release_date": "2024-05-01"}

    assert score_result("Movie Name", exact, 2024) > score_result("Movie Name", wrong_year, 2024)
    assert score_result("Movie Name", exact, 2024) > score_result("Movie Name", other, 2024)
    assert score_result("", exact, 2024) == 0.0


def test_search_movie_picks_best_and_caches(monkeypatch):
    tmdb = TmdbClient("key")
    results = {"results": [
        {"id": 1, "title": "Movie Name Returns", "release_date": "2019-01-01", "popularity": 50},
        {"id": 2, "title": "Movie Name", "release_date": "2024-03-01", "original_language": "hi"},
    ]}
    replay = _Replay(_response(200, results))
    monkeypatch.setattr(tmdb._session, "get", replay)

    found = tmdb.search_movie("Movie Name", 2024)
    again = tmdb.search_movie("Movie Name", 2024)

    assert found == {"tmdb_id": 2, "title": "Movie Name", "year": 2024, "original_language": "hi"}
    assert again == found
    assert len(replay.calls) == 1
    assert replay.calls[0][1]["params"]["year"] == 2024


def test_search_retries_without_year(monkeypatch):
    tmdb = TmdbClient("key")
    replay = _Replay(
        _response(200, {"results": []}),
        _response(200, {"results": [{"id": 5, "name": "Show", "first_air_date": "2020-01-01"}]}),
    )
    monkeypatch.setattr(tmdb._session, "get", replay)

    found = tmdb.search_tv("Show", 2021)

    assert found["tmdb_id"] == 5
    assert "first_air_date_year" not in replay.calls[1][1]["params"]


def test_tmdb_errors(monkeypatch):
    tmdb = TmdbClient("key")
    monkeypatch.setattr(tmdb._session, "get", _Replay(_response(401), _response(500), _response(404)))

    with pytest.raises(ConfigurationError):
        tmdb.get_canonical_title(1)
    with pytest.raises(ServiceLookupError):
        tmdb.get_canonical_title(2)
    assert tmdb.get_canonical_title(3) is None


def test_tv_external_ids(monkeypatch):
    tmdb = TmdbClient("key")
    monkeypatch.setattr(tmdb._session, "get", _Replay(_response(200, {"tvdb_id": 355567, "imdb_id": ""})))

    assert tmdb.get_tv_external_ids(93352) == {"tvdb_id": 355567, "imdb_id": None}


# ---------------------------------------------------------------------------
# Library snapshots
# ---------------------------------------------------------------------------

class _StubRadarr:
    def __init__(self, movies):
        self.movies = movies
        self.history_limits = []

    def list_movies(self):
        return self.movies

    def get_existing_file(self, movie_id):
        return None

    def get_history(self, movie_id, limit):
        self.history_limits.append(limit)
        return [{"eventType": "grabbed"}] * 50


def test_snapshot_must_be_refreshed_first():
    library = MovieLibrary(_StubRadarr([]))

    with pytest.raises(ServiceLookupError):
        library.lookup_by_title("Movie Name")


def test_movie_snapshot_lookups():
    items = [
        movie_item_from_api(MOVIE),
        movie_item_from_api({"id": 2, "title": "Movie Name", "year": 1990, "tmdbId": 9}),
        movie_item_from_api({"id": 3, "title": "Movie Name", "year": 2023, "tmdbId": 10}),
    ]
    client = _StubRadarr(items)
    library = MovieLibrary(client)

    assert library.refresh() == 3
    assert library.lookup_by_external_id(tmdb_id=550).id == 1
    assert library.lookup_by_external_id(imdb_id="tt1234567").id == 1
    assert library.lookup_by_external_id(tmdb_id=12345) is None
    assert [i.id for i in library.lookup_by_title("movie.name", 2024)] == [1, 3]
    assert [i.id for i in library.lookup_by_title("Movie Name")] == [1, 2, 3]
    assert library.get_existing_file(1).path.endswith("x264-XYZ.mkv")
    assert library.get_existing_file(2) is None
    assert len(library.get_history(1)) == HISTORY_LIMIT
    assert client.history_limits == [HISTORY_LIMIT]


def test_show_snapshot_lookup():
    class StubSonarr:
        def list_series(self):
            return [arr_client.series_item_from_api({"id": 10, "title": "The Family Man", "tvdbId": 355567})]

    library = ShowLibrary(StubSonarr())
    library.refresh()

    assert library.lookup_by_external_id(tvdb_id=355567).id == 10
    assert library.lookup_by_title("the family man")[0].title == "The Family Man"


def test_title_lookup_keeps_undated_items_last():
    items = [
        movie_item_from_api({"id": 4, "title": "Movie Name", "tmdbId": 11}),
        movie_item_from_api({"id": 3, "title": "Movie Name", "year": 2023, "tmdbId": 10}),
        movie_item_from_api({"id": 2, "title": "Movie Name", "year": 1990, "tmdbId": 9}),
        movie_item_from_api(MOVIE),
    ]
    library = MovieLibrary(_StubRadarr(items))
    library.refresh()

    assert [i.id for i in library.lookup_by_title("Movie Name", 2024)] == [1, 3, 4]
