"""
states.py — Release status state machine.

Two pure, storage-independent pieces:

  merge(existing, computed) — what a resync writes. Sticky statuses
      (ADDED/UPGRADED for movies, ADDED for shows) always survive; any
      other stored status is replaced by the freshly computed one.

  apply_action(current, action) — what an explicit user/automation action
      writes. This is the only way out of a sticky status.

Manual ignore is not a status; it is a separate flag on the record.
"""

from enum import Enum

from errors import InvalidActionError


class ReleaseStatus(str, Enum):
    NEW = "NEW"
    UPGRADE_CANDIDATE = "UPGRADE_CANDIDATE"
    IGNORED = "IGNORED"
    ADDED = "ADDED"
    UPGRADED = "UPGRADED"
    ATTENTION_NEEDED = "ATTENTION_NEEDED"


class TvReleaseStatus(str, Enum):
    NEW_SHOW = "NEW_SHOW"
    NEW_SEASON = "NEW_SEASON"
    IGNORED = "IGNORED"
    ADDED = "ADDED"
    ATTENTION_NEEDED = "ATTENTION_NEEDED"


MOVIE_STICKY = frozenset({ReleaseStatus.ADDED, ReleaseStatus.UPGRADED})
TV_STICKY = frozenset({TvReleaseStatus.ADDED})


def _build_merge_table(states, sticky) -> dict:
    return {
        (existing, computed): existing if existing in sticky else computed
        for existing in states
        for computed in states
    }


MOVIE_MERGE_TABLE = _build_merge_table(ReleaseStatus, MOVIE_STICKY)
TV_MERGE_TABLE = _build_merge_table(TvReleaseStatus, TV_STICKY)


def is_sticky(status, tv: bool = False) -> bool:
    if tv:
        return TvReleaseStatus(status) in TV_STICKY
    return ReleaseStatus(status) in MOVIE_STICKY


def merge(existing: ReleaseStatus | None, computed: ReleaseStatus) -> ReleaseStatus:
    """Status a movie resync persists. `existing` is None on first sighting."""
    computed = ReleaseStatus(computed)
    if existing is None:
        return computed
    return MOVIE_MERGE_TABLE[(ReleaseStatus(existing), computed)]


def merge_tv(existing: TvReleaseStatus | None, computed: TvReleaseStatus) -> TvReleaseStatus:
    """Status a show resync persists. `existing` is None on first sighting."""
    computed = TvReleaseStatus(computed)
    if existing is None:
        return computed
    return TV_MERGE_TABLE[(TvReleaseStatus(existing), computed)]


# ---------------------------------------------------------------------------
# Explicit actions
# ---------------------------------------------------------------------------

ACTIONS = ("add", "upgrade", "reset")

MOVIE_ACTIONS = {
    "add": ({ReleaseStatus.NEW, ReleaseStatus.ATTENTION_NEEDED}, ReleaseStatus.ADDED),
    "upgrade": ({ReleaseStatus.UPGRADE_CANDIDATE}, ReleaseStatus.UPGRADED),
    "reset": (set(ReleaseStatus), ReleaseStatus.NEW),
}

TV_ACTIONS = {
    "add": ({TvReleaseStatus.NEW_SHOW, TvReleaseStatus.NEW_SEASON,
             TvReleaseStatus.ATTENTION_NEEDED}, TvReleaseStatus.ADDED),
    "reset": (set(TvReleaseStatus), TvReleaseStatus.NEW_SHOW),
}


def apply_action(current, action: str, tv: bool = False):
    """Return the status an explicit action moves `current` to.

    Raises InvalidActionError when the action is unknown or not allowed
    from the current status.
    """
    table = TV_ACTIONS if tv else MOVIE_ACTIONS
    status_type = TvReleaseStatus if tv else ReleaseStatus
    if action not in table:
        raise InvalidActionError(f"Unknown action '{action}'")
    allowed_from, target = table[action]
    current = status_type(current)
    if current not in allowed_from:
        raise InvalidActionError(
            f"Cannot {action} a release in status {current.value}"
        )
    return target
