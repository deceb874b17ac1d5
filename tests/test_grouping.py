import datetime

import pytest

from grouping import (
    PRIORITY_EXISTING,
    PRIORITY_NEW,
    PRIORITY_UPGRADE,
    build_movie_groups,
    build_show_groups,
    parse_published,
    sort_groups,
    time_bucket,
    views,
)
from models import Release, TvRelease
from states import ReleaseStatus, TvReleaseStatus

UTC = datetime.timezone.utc
NOW = datetime.datetime(2026, 10, 18, 12, 0, tzinfo=UTC)


def _release(guid, title, year, published="2026-10-18T08:00:00Z", **kwargs):
    return Release(guid=guid, title=title, year=year, published_at=published, **kwargs)


@pytest.fixture
def records():
    return [
        _release("a", "Movie.Name.2024.1080p.WEB-DL.x264-GRP", 2024, tmdb_id=550, radarr_movie_id=1,
                 radarr_movie_title="Movie Name", status=ReleaseStatus.UPGRADE_CANDIDATE),
        _release("b", "Movie.Name.2024.720p.WEBRip.x264-XYZ", 2024, "2026-10-17T20:00:00Z",
                 status=ReleaseStatus.IGNORED),
        _release("c", "Other.Film.2023.1080p.WEB-DL.x264", 2023, tmdb_id=7),
        _release("d", "Random.Thing.2022.1080p.WEB-DL", 2022),
        _release("e", "Ignored.Film.2021.2160p.WEB-DL", 2021, tmdb_id=8, status=ReleaseStatus.IGNORED),
        _release("f", "Hidden.Film.2020.1080p.WEB-DL", 2020, tmdb_id=9, manually_ignored=True),
    ]


def _by_key(groups):
    return {g.key: g for g in groups}


def test_classification(records):
    groups = _by_key(build_movie_groups(records))

    assert groups["tmdb:550"].category == "existing"
    assert sorted(r.guid for r in groups["tmdb:550"].records) == ["a", "b"]
    assert groups["tmdb:7"].category == "new"
    assert groups["title:random thing 2022"].category == "unmatched"
    assert groups["tmdb:8"].category == "ignored"


def test_group_properties(records):
    group = _by_key(build_movie_groups(records))["tmdb:550"]

    assert group.primary.guid == "a"
    assert group.title == "Movie Name (2024)"
    assert group.library_id == 1
    assert group.tmdb_id == 550
    assert [r.guid for r in group.upgrades] == ["a"]
    assert group.priority == PRIORITY_UPGRADE
    assert group.latest_published == datetime.datetime(2026, 10, 18, 8, 0, tzinfo=UTC)


def test_views_drop_ignored_and_manually_ignored(records):
    result = views(build_movie_groups(records), NOW)

    assert [g.key for g in result["existing"]] == ["tmdb:550"]
    assert [g.key for g in result["new"]] == ["tmdb:7"]
    assert [g.key for g in result["unmatched"]] == ["title:random thing 2022"]


def test_sort_by_bucket_then_priority_then_recency():
    records = [
        _release("exist", "Kept.Film.2020.1080p.WEB-DL", 2020, "2026-10-18T11:00:00Z",
                 tmdb_id=1, radarr_movie_id=11, status=ReleaseStatus.IGNORED),
        _release("upg", "Better.Film.2021.1080p.WEB-DL", 2021, "2026-10-18T09:00:00Z",
                 tmdb_id=2, radarr_movie_id=12, status=ReleaseStatus.UPGRADE_CANDIDATE),
        _release("new-late", "Late.Film.2022.1080p.WEB-DL", 2022, "2026-10-18T07:00:00Z", tmdb_id=3),
        _release("new-early", "Early.Film.2022.1080p.WEB-DL", 2022, "2026-10-18T06:00:00Z", tmdb_id=4),
        _release("old", "Old.Film.2019.1080p.WEB-DL", 2019, "2026-10-10T06:00:00Z", tmdb_id=5),
        _release("yday", "Yday.Film.2019.1080p.WEB-DL", 2019, "2026-10-17T06:00:00Z",
                 tmdb_id=6, radarr_movie_id=16, status=ReleaseStatus.IGNORED),
    ]
    groups = build_movie_groups(records)

    ordered = [g.primary.guid for g in sort_groups(groups, NOW)]

    assert ordered == ["new-late", "new-early", "upg", "exist", "yday", "old"]
    priorities = {g.primary.guid: g.priority for g in groups}
    assert priorities["exist"] == PRIORITY_EXISTING
    assert priorities["new-late"] == PRIORITY_NEW


def test_show_groups():
    records = [
        TvRelease(guid="s2", title="The.Family.Man.S02.1080p", show_name="The Family Man",
                  season_number=2, tvdb_id=355567, sonarr_series_id=10, status=TvReleaseStatus.IGNORED),
        TvRelease(guid="s3", title="The.Family.Man.S03.1080p", show_name="The Family Man",
                  season_number=3, status=TvReleaseStatus.NEW_SEASON),
    ]

    (group,) = build_show_groups(records)

    assert group.key == "tvdb:355567"
    assert group.category == "existing"
    assert group.seasons == [2, 3]
    assert group.tvdb_id == 355567
    assert group.upgrades == []
    assert group.priority == PRIORITY_EXISTING


@pytest.mark.parametrize("published, expected", [
    (datetime.datetime(2026, 10, 18, 1, 0, tzinfo=UTC), "today"),
    (datetime.datetime(2026, 10, 17, 23, 59, tzinfo=UTC), "yesterday"),
    (datetime.datetime(2026, 10, 16, 12, 0, tzinfo=UTC), "older"),
    (None, "older"),
])
def test_time_bucket(published, expected):
    assert time_bucket(published, NOW) == expected


def test_parse_published():
    assert parse_published("2026-10-18T08:00:00Z") == datetime.datetime(2026, 10, 18, 8, 0, tzinfo=UTC)
    assert parse_published("Sat, 17 Oct 2026 10:00:00 +0000") == datetime.datetime(2026, 10, 17, 10, 0, tzinfo=UTC)
    assert parse_published("2026-10-18T08:00:00").tzinfo == UTC
    assert parse_published("not a date") is None
    assert parse_published("") is None
