import pytest

from errors import InvalidActionError
from states import (
    MOVIE_STICKY,
    ReleaseStatus,
    TvReleaseStatus,
    apply_action,
    is_sticky,
    merge,
    merge_tv,
)


@pytest.mark.parametrize("existing", list(ReleaseStatus))
@pytest.mark.parametrize("computed", list(ReleaseStatus))
def test_movie_merge_table(existing, computed):
    expected = existing if existing in MOVIE_STICKY else computed

    assert merge(existing, computed) == expected


@pytest.mark.parametrize("existing", list(TvReleaseStatus))
@pytest.mark.parametrize("computed", list(TvReleaseStatus))
def test_tv_merge_table(existing, computed):
    expected = existing if existing == TvReleaseStatus.ADDED else computed

    assert merge_tv(existing, computed) == expected


@pytest.mark.parametrize("sticky", [ReleaseStatus.ADDED, ReleaseStatus.UPGRADED])
@pytest.mark.parametrize("computed", [
    ReleaseStatus.NEW, ReleaseStatus.IGNORED, ReleaseStatus.UPGRADE_CANDIDATE,
])
def test_sticky_statuses_survive_resync(sticky, computed):
    assert merge(sticky, computed) == sticky


def test_first_sighting_takes_computed():
    assert merge(None, ReleaseStatus.IGNORED) == ReleaseStatus.IGNORED
    assert merge_tv(None, "NEW_SEASON") == TvReleaseStatus.NEW_SEASON


def test_is_sticky():
    assert is_sticky("ADDED")
    assert is_sticky(ReleaseStatus.UPGRADED)
    assert not is_sticky(ReleaseStatus.NEW)
    assert is_sticky(TvReleaseStatus.ADDED, tv=True)
    assert not is_sticky(TvReleaseStatus.NEW_SEASON, tv=True)


def test_actions_move_between_states():
    assert apply_action(ReleaseStatus.NEW, "add") == ReleaseStatus.ADDED
    assert apply_action(ReleaseStatus.ATTENTION_NEEDED, "add") == ReleaseStatus.ADDED
    assert apply_action(ReleaseStatus.UPGRADE_CANDIDATE, "upgrade") == ReleaseStatus.UPGRADED
    assert apply_action(ReleaseStatus.UPGRADED, "reset") == ReleaseStatus.NEW
    assert apply_action(TvReleaseStatus.NEW_SEASON, "add", tv=True) == TvReleaseStatus.ADDED
    assert apply_action(TvReleaseStatus.ADDED, "reset", tv=True) == TvReleaseStatus.NEW_SHOW


@pytest.mark.parametrize("current, action, tv", [
    (ReleaseStatus.ADDED, "add", False),
    (ReleaseStatus.NEW, "upgrade", False),
    (ReleaseStatus.IGNORED, "add", False),
    (TvReleaseStatus.NEW_SHOW, "upgrade", True),
    (ReleaseStatus.NEW, "delete", False),
])
def test_illegal_actions_raise(current, action, tv):
    with pytest.raises(InvalidActionError):
        apply_action(current, action, tv=tv)
