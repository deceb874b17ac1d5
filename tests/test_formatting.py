from formatting import display_title, format_media_name, format_size, sanitise
from models import Release, TvRelease
from scoring import format_score


def test_sanitise():
    assert sanitise('Movie: Name? <Cut>  ') == "Movie Name Cut"
    assert sanitise("Title...") == "Title"


def test_format_media_name():
    assert format_media_name("Movie Name", 2024) == "Movie Name (2024)"
    assert format_media_name("Movie Name", None) == "Movie Name"


def test_display_title_preference():
    release = Release(guid="g", title="Movie.Name.2024.1080p.WEB-DL.x264-GRP", year=2024)
    assert display_title(release) == "Movie Name (2024)"

    release.tmdb_title = "Movie Name: The Film"
    assert display_title(release) == "Movie Name The Film (2024)"

    release.radarr_movie_title = "Library Name"
    assert display_title(release) == "Library Name (2024)"

    show = TvRelease(guid="t", title="The.Family.Man.S03.1080p", show_name="The Family Man")
    assert display_title(show) == "The Family Man"


def test_format_size():
    assert format_size(None) == "—"
    assert format_size(700) == "700 MB"
    assert format_size(4096) == "4.00 GB"


def test_format_score():
    assert format_score(None) == "—"
    assert format_score(310).startswith("★★★★★")
    assert format_score(130).startswith("★★")
    assert "(130)" in format_score(130)
