"""
formatting.py — Display names and human-readable sizes.

Produces the labels the presentation layer shows for releases and groups.
"""

import re

from constants import SEPARATORS, UNSAFE_CHARS
from parsing import clean_search_title


def sanitise(name: str) -> str:
    """Remove path-unsafe characters and collapse whitespace."""
    name = UNSAFE_CHARS.sub("", name or "")
    name = re.sub(r"\s+", " ", name).strip()
    name = name.rstrip(". ")
    return name


def format_media_name(title: str, year: int | None) -> str:
    """Title (Year)."""
    title = sanitise(title)
    return f"{title} ({year})" if year else title


def display_title(record) -> str:
    """Best display name for a release.

    Library title first, then the metadata title, then the work title
    cleaned out of the raw release name.
    """
    name = record.display_name
    if not name:
        name = getattr(record, "show_name", "") or clean_search_title(record.title)
    if not name:
        name = SEPARATORS.sub(" ", record.title)
    return format_media_name(name, record.year)


def format_size(size_mb: float | None) -> str:
    if size_mb is None:
        return "—"
    if size_mb >= 1024:
        return f"{size_mb / 1024:.2f} GB"
    return f"{size_mb:.0f} MB"
