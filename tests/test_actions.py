import pytest

import actions
from actions import run_action
from errors import InvalidActionError, PersistenceError
from models import Release, TvRelease
from states import ReleaseStatus, TvReleaseStatus
from store import ReleaseStore


@pytest.fixture
def db():
    s = ReleaseStore(":memory:")
    s.upsert_by_guid(Release(guid="m1", title="Movie.Name.2024.1080p", status=ReleaseStatus.UPGRADE_CANDIDATE))
    s.upsert_tv_by_guid(TvRelease(guid="t1", title="Show.S02.1080p", status=TvReleaseStatus.NEW_SEASON))
    yield s
    s.close()


def test_status_actions(db):
    assert run_action(db, "m1", "upgrade").status == ReleaseStatus.UPGRADED
    assert run_action(db, "m1", "reset").status == ReleaseStatus.NEW
    assert run_action(db, "t1", "add", "show").status == TvReleaseStatus.ADDED


def test_flag_actions_leave_status_alone(db):
    record = run_action(db, "m1", "ignore")
    assert record.manually_ignored
    assert record.status == ReleaseStatus.UPGRADE_CANDIDATE

    assert not run_action(db, "m1", "unignore").manually_ignored
    assert run_action(db, "t1", "ignore", "show").manually_ignored


def test_illegal_and_unknown(db):
    with pytest.raises(InvalidActionError):
        run_action(db, "t1", "upgrade", "show")
    with pytest.raises(PersistenceError):
        run_action(db, "missing", "add")


def test_main_rejects_bad_arguments(monkeypatch):
    monkeypatch.setattr(actions.sys, "argv", ["actions.py", "m1", "delete"])

    with pytest.raises(SystemExit) as excinfo:
        actions.main()
    assert excinfo.value.code == 1


def test_main_applies_action(tmp_path, monkeypatch):
    path = str(tmp_path / "matcher.db")
    store = ReleaseStore(path)
    store.upsert_by_guid(Release(guid="m1", title="Movie.Name.2024.1080p"))
    store.close()
    monkeypatch.setattr(actions, "DB_PATH", path)
    monkeypatch.setattr(actions.sys, "argv", ["actions.py", "m1", "add"])

    actions.main()

    store = ReleaseStore(path)
    assert store.get_by_guid("m1").status == ReleaseStatus.ADDED
    store.close()
