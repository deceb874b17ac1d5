"""
keys.py — Grouping keys for same-work detection.

Two strategies:

  ID key        "{provider}:{id}", metadata-service ids preferred over
                library-manager ids (tmdb > imdb > radarr / tvdb > sonarr).
  Heuristic key the normalized title with year, quality tokens, language
                and HDR/subtitle tags, trailing release-group tags and
                leftover long numbers stripped, and the year re-attached:
                "nishaanchi 2 2025".

Records carrying any id group by id only. Id-less records join the id group
whose members share their heuristic key, or else group by that key alone.

GroupIndex keeps an id → group union-find plus a heuristicKey → groups
index, so a record whose id shows up after id-less records with the same
heuristic key pulls them in without rescanning every group. The result does
not depend on the order records are added.

The trailing release-group strip only looks at words after the last
year/quality token, so a bare title ("the family man") keeps every word.
It is still lossy for titles whose short final word follows the year.
Both sides of a comparison lose it the same way, so keys still agree.
"""

import re
from typing import Any, Iterable

from parsing import LANGUAGE_PATTERNS, normalize_title, parse_year

# Trailing 2-4 letter tokens treated as release-group tags ("dtr khn").
RELEASE_GROUP_MAX_TOKENS = 2

_YEAR = re.compile(r"\b(?:19|20)\d{2}\b")
_RESOLUTION = re.compile(r"\b(?:2160p|1080p|720p|480p|576p|4k|uhd|fhd|hd|sd)\b")
_CODEC = re.compile(r"\b(?:x\s?264|x\s?265|h\s?264|h\s?265|h264|h265|hevc|avc)\b")
_SOURCE = re.compile(
    r"\b(?:amzn|amazon|netflix|nf|atvp|dsnp|disney|hmax|jc|jiocinema|zee5|hotstar|hs|ss"
    r"|web\s?dl|webdl|webrip|web|blu\s?ray|bluray|bdrip|brrip|dvdrip|dvd|hdtv)\b"
)
_AUDIO = re.compile(
    r"\b(?:ddp?\s?[257]\s[01]|aac\s?[257]\s[01]|[257]\s[01]"
    r"|ddp|dd|eac3|ac3|atmos|true\s?hd|dts|aac|stereo)\b"
)
# HDR, bit depth, subtitle, repack and dub markers. Language names come
# from the parser's table.
_TAGS = re.compile(
    r"\b(?:hdr(?:10)?|dv|dovi|10\s?bit|8\s?bit|e?subs?|msubs?|proper|repack|dubbed|dual\s?audio|multi)\b"
)
_SHORT_TOKEN = re.compile(r"^[a-z]{2,4}$")
_LONG_NUMBER = re.compile(r"\b\d{3,}\b")

# Placeholder left where a year/quality token was removed.
_MARK = "\x00"


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------

def id_keys(record: Any) -> list[str]:
    """All "{provider}:{id}" keys of a record, preferred provider first."""
    return [f"{provider}:{value}" for provider, value in record.external_ids()]


def id_key(record: Any) -> str | None:
    keys = id_keys(record)
    return keys[0] if keys else None


def _strip_release_group(tokens: list[str], max_tokens: int) -> list[str]:
    """Drop short tags trailing the last removed year/quality token.

    Titles with no quality tokens keep every word.
    """
    if _MARK not in tokens:
        return tokens
    last = len(tokens) - 1 - tokens[::-1].index(_MARK)
    head, tail = tokens[:last + 1], tokens[last + 1:]
    words = sum(1 for t in head if t != _MARK) + len(tail)
    stripped = 0
    while tail and stripped < max_tokens and words > 1 and _SHORT_TOKEN.match(tail[-1]):
        tail.pop()
        stripped += 1
        words -= 1
    return head + tail


def heuristic_key(title: str, year: int | None = None,
                  max_group_tokens: int = RELEASE_GROUP_MAX_TOKENS) -> str:
    """Quality-free "name year" key for a raw or normalized title."""
    if year is None:
        year = parse_year(title or "")
    clean = normalize_title(title)
    patterns = [_YEAR, _RESOLUTION, _CODEC, _SOURCE, _AUDIO, _TAGS] + [p for _, p in LANGUAGE_PATTERNS]
    for pattern in patterns:
        clean = pattern.sub(f" {_MARK} ", clean)
    tokens = _strip_release_group(clean.split(), max_group_tokens)
    clean = _LONG_NUMBER.sub(" ", " ".join(t for t in tokens if t != _MARK))
    clean = re.sub(r"\s+", " ", clean).strip()
    if year:
        clean = f"{clean} {year}".strip()
    return clean


def record_heuristic_key(record: Any) -> str:
    """Heuristic key for a Release (title) or TvRelease (show name)."""
    title = getattr(record, "show_name", "") or record.normalized_title or record.title
    return heuristic_key(title, record.year)


# ---------------------------------------------------------------------------
# Group index
# ---------------------------------------------------------------------------

_PROVIDER_RANK = {"tmdb": 0, "tvdb": 1, "imdb": 2, "radarr": 3, "sonarr": 4}


def _key_rank(key: str) -> tuple:
    provider, _, value = key.partition(":")
    return (_PROVIDER_RANK.get(provider, 9), provider, value)


class GroupIndex:
    """Incrementally group records by id, falling back to heuristic keys."""

    def __init__(self, key_func=record_heuristic_key):
        self._key_func = key_func
        self._parent: dict[str, str] = {}
        self._id_members: dict[str, list] = {}        # any id key → records added under it
        self._heuristic_ids: dict[str, set[str]] = {}  # heuristic key → id keys
        self._title_members: dict[str, list] = {}     # heuristic key → id-less records

    # --------------- union-find over id keys ---------------

    def _find(self, key: str) -> str:
        self._parent.setdefault(key, key)
        root = key
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[key] != root:
            self._parent[key], key = root, self._parent[key]
        return root

    def _union(self, a: str, b: str) -> None:
        ra, rb = self._find(a), self._find(b)
        if ra == rb:
            return
        # The preferred key becomes the root so group keys are stable.
        if _key_rank(rb) < _key_rank(ra):
            ra, rb = rb, ra
        self._parent[rb] = ra

    # --------------- public API ---------------

    def add(self, record: Any) -> None:
        keys = id_keys(record)
        heuristic = self._key_func(record)
        if not keys:
            self._title_members.setdefault(heuristic, []).append(record)
            return
        for key in keys[1:]:
            self._union(keys[0], key)
        self._find(keys[0])
        self._id_members.setdefault(keys[0], []).append(record)
        self._heuristic_ids.setdefault(heuristic, set()).add(keys[0])

    def add_all(self, records: Iterable[Any]) -> "GroupIndex":
        for record in records:
            self.add(record)
        return self

    def groups(self) -> dict[str, list]:
        """Return {group_key: [records]}; keys are "provider:id" or "title:<key>"."""
        grouped: dict[str, list] = {}
        for key, members in self._id_members.items():
            grouped.setdefault(self._find(key), []).extend(members)

        for heuristic, members in self._title_members.items():
            roots = {self._find(k) for k in self._heuristic_ids.get(heuristic, ())}
            if roots:
                # Conflicting ids for one heuristic key: pick deterministically.
                target = min(roots, key=_key_rank)
            else:
                target = f"title:{heuristic}"
            grouped.setdefault(target, []).extend(members)
        return grouped


def group_records(records: Iterable[Any]) -> dict[str, list]:
    return GroupIndex().add_all(records).groups()
