"""
library.py — In-memory snapshots of the movie and show libraries.

refresh() pulls the whole library from Radarr/Sonarr once per sync cycle;
the matching engines then resolve every feed record against the snapshot
through id and normalized-title indices instead of one HTTP call per item.
File and history lookups for a matched item still go to the client.

Using a snapshot before refresh() raises ServiceLookupError, since
matching against an empty library would report every record as new.
"""

import logging

from constants import HISTORY_LIMIT
from errors import ServiceLookupError
from models import ExistingFile, LibraryItem
from parsing import normalize_title

log = logging.getLogger("matcher")


class _Snapshot:
    """Id and title indices over a list of LibraryItems."""

    kind = "library"

    def __init__(self, client):
        self.client = client
        self.items: list[LibraryItem] | None = None
        self._by_id: dict[int, LibraryItem] = {}
        self._by_external: dict[tuple[str, object], LibraryItem] = {}
        self._by_title: dict[str, list[LibraryItem]] = {}

    def _fetch(self) -> list[LibraryItem]:
        raise NotImplementedError

    def load(self, items: list[LibraryItem]) -> None:
        self.items = list(items)
        self._by_id.clear()
        self._by_external.clear()
        self._by_title.clear()
        for item in self.items:
            self._by_id[item.id] = item
            for provider in ("tmdb", "tvdb", "imdb"):
                value = getattr(item, f"{provider}_id")
                if value:
                    self._by_external.setdefault((provider, value), item)
            self._by_title.setdefault(normalize_title(item.title), []).append(item)

    def refresh(self) -> int:
        self.load(self._fetch())
        log.info(f"  {self.kind} snapshot: {len(self.items)} item(s)")
        return len(self.items)

    def _require(self) -> None:
        if self.items is None:
            raise ServiceLookupError(f"{self.kind} snapshot used before refresh()")

    # --------------- lookups ---------------

    def get(self, item_id: int) -> LibraryItem | None:
        self._require()
        return self._by_id.get(item_id)

    def _by_ids(self, **ids) -> LibraryItem | None:
        self._require()
        for provider, value in ids.items():
            if value:
                item = self._by_external.get((provider.removesuffix("_id"), value))
                if item:
                    return item
        return None

    def lookup_by_title(self, term: str, year: int | None = None) -> list[LibraryItem]:
        """Items whose normalized title equals the term's.

        With a year: exact-year items, then items one year off, then items with
        no year on record. Items with a different known year are dropped.
        """
        self._require()
        found = list(self._by_title.get(normalize_title(term), []))
        if year:
            exact = [i for i in found if i.year == year]
            near = [i for i in found if i.year and abs(i.year - year) == 1]
            undated = [i for i in found if not i.year]
            return exact + near + undated
        return found

    def get_history(self, item_id: int) -> list[dict]:
        return self.client.get_history(item_id, limit=HISTORY_LIMIT)[:HISTORY_LIMIT]


class MovieLibrary(_Snapshot):
    kind = "Radarr"

    def _fetch(self) -> list[LibraryItem]:
        return self.client.list_movies()

    def lookup_by_external_id(self, tmdb_id: int | None = None,
                              imdb_id: str | None = None) -> LibraryItem | None:
        return self._by_ids(tmdb_id=tmdb_id, imdb_id=imdb_id)

    def get_existing_file(self, item_id: int) -> ExistingFile | None:
        """The movie's current file; the snapshot copy when it has one."""
        item = self.get(item_id)
        if item and item.existing_file:
            return item.existing_file
        return self.client.get_existing_file(item_id)


class ShowLibrary(_Snapshot):
    kind = "Sonarr"

    def _fetch(self) -> list[LibraryItem]:
        return self.client.list_series()

    def lookup_by_external_id(self, tvdb_id: int | None = None, tmdb_id: int | None = None,
                              imdb_id: str | None = None) -> LibraryItem | None:
        return self._by_ids(tvdb_id=tvdb_id, tmdb_id=tmdb_id, imdb_id=imdb_id)
