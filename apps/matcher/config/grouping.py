"""
grouping.py — Read-side rollup of stored releases into per-work groups.

Groups come from keys.GroupIndex (id key, else heuristic title+year key).
Each group is then classified:

  existing   any member carries a library id
  unmatched  no external id of any kind anywhere in the group
  new        eligible (non-IGNORED) members and no library id
  ignored    none of the above

Classification is checked in that order. Groups whose members are all
manually ignored are dropped from the new and existing views.

Within a view, groups are bucketed by their most recent member's publish
time (today / yesterday / older, split at local midnight), then sorted by
status priority (new > upgrade > existing) and recency.
"""

import datetime
import email.utils
from dataclasses import dataclass, field

from formatting import display_title
from keys import group_records
from states import ReleaseStatus, TvReleaseStatus

BUCKETS = ("today", "yesterday", "older")

PRIORITY_NEW = 0
PRIORITY_UPGRADE = 1
PRIORITY_EXISTING = 2

VIEWS = ("new", "existing", "unmatched")

_EPOCH = datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------

def parse_published(text: str | None) -> datetime.datetime | None:
    """Parse an ISO-8601 or RFC 2822 timestamp into an aware datetime."""
    if not text:
        return None
    try:
        dt = datetime.datetime.fromisoformat(text.strip().replace("Z", "+00:00"))
    except ValueError:
        try:
            dt = email.utils.parsedate_to_datetime(text)
        except (TypeError, ValueError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return dt


def time_bucket(published: datetime.datetime | None, now: datetime.datetime) -> str:
    """today / yesterday / older, relative to midnight in now's timezone."""
    if published is None:
        return "older"
    if now.tzinfo is None:
        now = now.astimezone()
    day = published.astimezone(now.tzinfo).date()
    today = now.date()
    if day >= today:
        return "today"
    if day == today - datetime.timedelta(days=1):
        return "yesterday"
    return "older"


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------

@dataclass
class _Group:
    key: str
    records: list = field(default_factory=list)

    ignored_status = None
    upgrade_statuses = frozenset()

    @property
    def primary(self):
        """Member with the most metadata: library match, then tmdb id, then first."""
        for record in self.records:
            if record.library_id:
                return record
        for record in self.records:
            if record.tmdb_id:
                return record
        return self.records[0]

    @property
    def title(self) -> str:
        return display_title(self.primary)

    @property
    def library_id(self) -> int | None:
        return next((r.library_id for r in self.records if r.library_id), None)

    @property
    def has_any_id(self) -> bool:
        return not self.key.startswith("title:")

    @property
    def all_manually_ignored(self) -> bool:
        return all(r.manually_ignored for r in self.records)

    @property
    def latest_published(self) -> datetime.datetime | None:
        stamps = [parse_published(r.published_at) for r in self.records]
        stamps = [s for s in stamps if s is not None]
        return max(stamps) if stamps else None

    @property
    def category(self) -> str:
        if self.library_id:
            return "existing"
        if not self.has_any_id:
            return "unmatched"
        if any(r.status != self.ignored_status for r in self.records):
            return "new"
        return "ignored"

    @property
    def upgrades(self) -> list:
        return [r for r in self.records if r.library_id and r.status in self.upgrade_statuses]

    @property
    def priority(self) -> int:
        if self.category != "existing":
            return PRIORITY_NEW
        if self.upgrades:
            return PRIORITY_UPGRADE
        return PRIORITY_EXISTING

    def bucket(self, now: datetime.datetime) -> str:
        return time_bucket(self.latest_published, now)


@dataclass
class MovieGroup(_Group):
    ignored_status = ReleaseStatus.IGNORED
    upgrade_statuses = frozenset({ReleaseStatus.UPGRADE_CANDIDATE, ReleaseStatus.UPGRADED})

    @property
    def tmdb_id(self) -> int | None:
        return next((r.tmdb_id for r in self.records if r.tmdb_id), None)

    @property
    def existing_file(self) -> dict:
        """File attributes of the library copy, from any member that has them."""
        return next((r.existing_file_attributes for r in self.records if r.existing_file_attributes), {})


@dataclass
class ShowGroup(_Group):
    ignored_status = TvReleaseStatus.IGNORED
    upgrade_statuses = frozenset({TvReleaseStatus.NEW_SEASON})

    @property
    def tvdb_id(self) -> int | None:
        return next((r.tvdb_id for r in self.records if r.tvdb_id), None)

    @property
    def seasons(self) -> list[int]:
        return sorted({r.season_number for r in self.records if r.season_number is not None})


def build_movie_groups(records) -> list[MovieGroup]:
    return [MovieGroup(key=k, records=v) for k, v in group_records(records).items()]


def build_show_groups(records) -> list[ShowGroup]:
    return [ShowGroup(key=k, records=v) for k, v in group_records(records).items()]


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------

def sort_groups(groups, now: datetime.datetime | None = None) -> list:
    """Bucket order, then status priority, then most recent first."""
    now = now or datetime.datetime.now().astimezone()

    def sort_key(group):
        latest = group.latest_published or _EPOCH
        return (BUCKETS.index(group.bucket(now)), group.priority, -latest.timestamp(), group.key)

    return sorted(groups, key=sort_key)


def views(groups, now: datetime.datetime | None = None) -> dict[str, list]:
    """Split groups into the new / existing / unmatched views, each sorted."""
    result: dict[str, list] = {name: [] for name in VIEWS}
    for group in groups:
        category = group.category
        if category not in result:
            continue
        if category in ("new", "existing") and group.all_manually_ignored:
            continue
        result[category].append(group)
    return {name: sort_groups(members, now) for name, members in result.items()}
