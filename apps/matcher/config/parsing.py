"""
parsing.py — Release-title parsing into structured quality attributes.

Turns free-text feed titles and library file names into a ParsedRelease:
resolution, source tag, video codec, audio, size, audio languages, year and
any external ids embedded in the text. Parsing never fails: tokens that are
not found resolve to explicit defaults (UNKNOWN / OTHER / Unknown).

Each attribute is resolved by walking an ordered pattern table and taking
the first hit, so overlapping tokens (e.g. "DDP5.1 Atmos" vs "AC3") always
resolve the same way. Audio is channel-aware: the base codec, the channel
layout and the Atmos marker are detected separately and combined into one
label such as "DDP 5.1 Atmos".

Companion "media info" facts read by the library manager can fill in
attributes the file name did not reveal, but never override a regex hit.
"""

import logging
import re
from dataclasses import asdict, dataclass, field, replace
from typing import Any

from guessit import guessit

from constants import SEASON_PATTERNS, SEPARATORS, YEAR_PATTERN, validate_year

log = logging.getLogger("matcher")

UNKNOWN = "UNKNOWN"
UNKNOWN_AUDIO = "Unknown"
OTHER_SOURCE = "OTHER"

RESOLUTIONS = ("2160p", "1080p", "720p", "480p", UNKNOWN)
CODECS = ("x265", "HEVC", "x264", "AVC", UNKNOWN)


def _token(pattern: str) -> re.Pattern:
    """Compile a case-insensitive pattern bounded by non-alphanumerics.

    Release names use dots, dashes and underscores as separators, which
    plain \\b does not treat consistently (underscore is a word char).
    """
    return re.compile(rf"(?<![a-z0-9])(?:{pattern})(?![a-z0-9])", re.IGNORECASE)


def _audio_token(pattern: str) -> re.Pattern:
    """Like _token, but a channel layout may follow directly (DDP5.1)."""
    return re.compile(rf"(?<![a-z0-9])(?:{pattern})(?![a-z])", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Pattern tables (first match wins)
# ---------------------------------------------------------------------------

RESOLUTION_PATTERNS = [
    ("2160p", _token(r"2160[pi]|4k|uhd")),
    ("1080p", _token(r"1080[pi]|fhd")),
    ("720p",  _token(r"720[pi]")),
    ("480p",  _token(r"480[pi]|576[pi]")),
]

CODEC_PATTERNS = [
    ("x265", _token(r"x\.?265")),
    ("HEVC", _token(r"hevc|h[\s.]?265")),
    ("x264", _token(r"x\.?264")),
    ("AVC",  _token(r"avc|h[\s.]?264")),
]

# Streaming platforms first: "AMZN.WEB-DL" is an AMZN release.
SOURCE_PATTERNS = [
    ("AMZN",   _token(r"amzn|amazon")),
    ("NF",     _token(r"nf|netflix")),
    ("ATVP",   _token(r"atvp|aptv")),
    ("DSNP",   _token(r"dsnp|dsny|disney\+?")),
    ("HMAX",   _token(r"hmax")),
    ("JC",     _token(r"jc|jiocinema")),
    ("ZEE5",   _token(r"zee5")),
    ("HS",     _token(r"hs|hotstar")),
    ("SS",     _token(r"ss")),
    ("BluRay", _token(r"blu[\s.-]?ray|bdrip|brrip")),
    ("WEBRip", _token(r"web[\s.-]?rip")),
    ("WEB-DL", _token(r"web[\s.-]?dl|web")),
    ("DVDRip", _token(r"dvd[\s.-]?rip|dvd")),
    ("HDTV",   _token(r"hdtv")),
]

# Base audio codec, highest priority first.
AUDIO_CODEC_PATTERNS = [
    ("TrueHD", _audio_token(r"true[\s.-]?hd")),
    ("DTS",    _audio_token(r"dts")),
    ("DDP",    _audio_token(r"ddp|dd\+|e-?ac-?3")),
    ("DD",     _audio_token(r"dd|ac-?3")),
    ("AAC",    _audio_token(r"aac")),
]

AUDIO_CHANNEL_PATTERNS = [
    ("7.1", re.compile(r"(?<![0-9])7[\s.]1(?![0-9])")),
    ("5.1", re.compile(r"(?<![0-9])5[\s.]1(?![0-9])")),
    ("2.0", re.compile(r"(?<![0-9])2[\s.]0(?![0-9])|(?<![a-z])stereo(?![a-z])", re.IGNORECASE)),
]

ATMOS_PATTERN = _audio_token(r"atmos")

LANGUAGE_PATTERNS = [
    ("hi", _token(r"hindi|हिंदी")),
    ("te", _token(r"telugu|తెలుగు")),
    ("ta", _token(r"tamil|தமிழ்")),
    ("kn", _token(r"kannada|ಕನ್ನಡ")),
    ("ml", _token(r"malayalam|മലയാളം")),
    ("en", _token(r"english|eng")),
]

# Media-info language names/codes → ISO 639-1
LANGUAGE_CODES = {
    "hindi": "hi", "hin": "hi", "hi": "hi",
    "telugu": "te", "tel": "te", "te": "te",
    "tamil": "ta", "tam": "ta", "ta": "ta",
    "kannada": "kn", "kan": "kn", "kn": "kn",
    "malayalam": "ml", "mal": "ml", "ml": "ml",
    "english": "en", "eng": "en", "en": "en",
}

DUBBED_PATTERN = _token(r"dubbed|dub")

SIZE_PATTERN = re.compile(r"(?<![0-9.])(\d+(?:\.\d+)?)\s*(gib|gb|mib|mb)(?![a-z])", re.IGNORECASE)

TMDB_ID_PATTERNS = [
    re.compile(r"themoviedb\.org/(?:movie|tv)/(\d+)", re.IGNORECASE),
    re.compile(r"(?<![a-z])tmdb(?:id)?[\s=:_-]*(\d+)", re.IGNORECASE),
]
TVDB_ID_PATTERNS = [
    re.compile(r"thetvdb\.com/\S*?series/(\d+)", re.IGNORECASE),
    re.compile(r"(?<![a-z])tvdb(?:id)?[\s=:_-]*(\d+)", re.IGNORECASE),
]
IMDB_ID_PATTERN = re.compile(r"(?<![a-z0-9])(tt\d{7,8})(?![0-9])", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class ParsedRelease:
    resolution: str = UNKNOWN
    source_tag: str = OTHER_SOURCE
    codec: str = UNKNOWN
    audio: str = UNKNOWN_AUDIO
    size_mb: float | None = None
    audio_languages: list[str] = field(default_factory=list)
    year: int | None = None
    is_dubbed: bool = False
    tmdb_id: int | None = None
    tvdb_id: int | None = None
    imdb_id: str | None = None

    @property
    def is_ambiguous(self) -> bool:
        """True when no quality token was recognised at all."""
        return (
            self.resolution == UNKNOWN
            and self.codec == UNKNOWN
            and self.audio == UNKNOWN_AUDIO
            and self.source_tag == OTHER_SOURCE
        )

    def to_attributes(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class TvTitle:
    show_name: str
    season: int | None = None
    year: int | None = None


# ---------------------------------------------------------------------------
# Token helpers
# ---------------------------------------------------------------------------

def _first_match(table: list[tuple[str, re.Pattern]], text: str, default: str) -> str:
    for value, pattern in table:
        if pattern.search(text):
            return value
    return default


def _audio_label(codec: str | None, channels: str | None, atmos: bool) -> str:
    parts = [p for p in (codec, channels) if p]
    if atmos:
        parts.append("Atmos")
    return " ".join(parts) or UNKNOWN_AUDIO


def parse_audio(text: str) -> str:
    """Resolve the audio label, e.g. "DDP 5.1 Atmos", "DD 5.1", "2.0"."""
    codec = _first_match(AUDIO_CODEC_PATTERNS, text, "")
    channels = _first_match(AUDIO_CHANNEL_PATTERNS, text, "")
    atmos = bool(ATMOS_PATTERN.search(text))
    return _audio_label(codec, channels, atmos)


def parse_year(text: str) -> int | None:
    """Return the last plausible 4-digit year in the text.

    The last one wins because titles may start with a year-like word
    ("1917.2019.1080p").
    """
    year = None
    for m in YEAR_PATTERN.finditer(text):
        candidate = validate_year(int(m.group(1)))
        if candidate is not None:
            year = candidate
    return year


def parse_size_mb(text: str) -> float | None:
    """Parse the first "3.2 GiB" / "700MB" style size into megabytes."""
    m = SIZE_PATTERN.search(text or "")
    if not m:
        return None
    value = float(m.group(1))
    if m.group(2).lower() in ("gb", "gib"):
        value *= 1024
    return value


def parse_languages(text: str) -> list[str]:
    return [code for code, pattern in LANGUAGE_PATTERNS if pattern.search(text)]


def _first_int(patterns: list[re.Pattern], text: str) -> int | None:
    for pattern in patterns:
        m = pattern.search(text)
        if m:
            return int(m.group(1))
    return None


def extract_external_ids(text: str) -> dict[str, Any]:
    """Find TMDB/TVDB/IMDB ids embedded in a title or feed description."""
    text = text or ""
    imdb = IMDB_ID_PATTERN.search(text)
    return {
        "tmdb_id": _first_int(TMDB_ID_PATTERNS, text),
        "tvdb_id": _first_int(TVDB_ID_PATTERNS, text),
        "imdb_id": imdb.group(1).lower() if imdb else None,
    }


# ---------------------------------------------------------------------------
# Media-info merge
# ---------------------------------------------------------------------------

def _codec_from_media_info(value: str) -> str:
    upper = value.upper()
    if "X265" in upper:
        return "x265"
    if "HEVC" in upper or "265" in upper:
        return "HEVC"
    if "X264" in upper:
        return "x264"
    if "AVC" in upper or "264" in upper:
        return "AVC"
    return UNKNOWN


def _audio_codec_from_media_info(value: str) -> str:
    upper = value.upper()
    if "TRUEHD" in upper:
        return "TrueHD"
    if "DTS" in upper:
        return "DTS"
    if "EAC3" in upper or "E-AC-3" in upper or "DDP" in upper:
        return "DDP"
    if "AC3" in upper or "AC-3" in upper:
        return "DD"
    if "AAC" in upper:
        return "AAC"
    return value.strip()


def _channels_from_media_info(value: Any) -> str | None:
    try:
        channels = float(value)
    except (TypeError, ValueError):
        return None
    if channels in (8, 7.1):
        return "7.1"
    if channels in (6, 5.1):
        return "5.1"
    if channels in (2, 2.0):
        return "2.0"
    return None


def _resolution_from_media_info(value: str) -> str:
    m = re.match(r"\s*(\d+)\s*x\s*(\d+)", value or "")
    if not m:
        return UNKNOWN
    width, height = int(m.group(1)), int(m.group(2))
    if width >= 3200 or height >= 2000:
        return "2160p"
    if width >= 1800 or height >= 1000:
        return "1080p"
    if width >= 1200 or height >= 700:
        return "720p"
    return "480p"


def _languages_from_media_info(value: Any) -> list[str]:
    if isinstance(value, str):
        names = re.split(r"[/,|]", value)
    elif isinstance(value, list):
        names = [str(v) for v in value]
    else:
        return []
    codes: list[str] = []
    for name in names:
        code = LANGUAGE_CODES.get(name.strip().lower())
        if code and code not in codes:
            codes.append(code)
    return codes


def apply_media_info(parsed: ParsedRelease, media_info: dict[str, Any] | None) -> ParsedRelease:
    """Fill UNKNOWN/Unknown/empty attributes from the library file's media info.

    A confident match from the file name is never overridden.
    """
    if not media_info:
        return parsed
    changes: dict[str, Any] = {}

    if parsed.resolution == UNKNOWN and media_info.get("resolution"):
        changes["resolution"] = _resolution_from_media_info(str(media_info["resolution"]))

    if parsed.codec == UNKNOWN and media_info.get("videoCodec"):
        changes["codec"] = _codec_from_media_info(str(media_info["videoCodec"]))

    if parsed.audio == UNKNOWN_AUDIO and media_info.get("audioCodec"):
        codec = str(media_info["audioCodec"])
        features = str(media_info.get("audioAdditionalFeatures") or "")
        atmos = "ATMOS" in codec.upper() or "ATMOS" in features.upper()
        base = None if codec.strip().upper() == "ATMOS" else _audio_codec_from_media_info(codec)
        changes["audio"] = _audio_label(
            base,
            _channels_from_media_info(media_info.get("audioChannels")),
            atmos,
        )

    if not parsed.audio_languages and media_info.get("audioLanguages"):
        changes["audio_languages"] = _languages_from_media_info(media_info["audioLanguages"])

    return replace(parsed, **changes) if changes else parsed


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_release(title: str | None, media_info: dict[str, Any] | None = None) -> ParsedRelease:
    """Parse a release title or file name. Never raises."""
    text = title or ""
    ids = extract_external_ids(text)
    parsed = ParsedRelease(
        resolution=_first_match(RESOLUTION_PATTERNS, text, UNKNOWN),
        source_tag=_first_match(SOURCE_PATTERNS, text, OTHER_SOURCE),
        codec=_first_match(CODEC_PATTERNS, text, UNKNOWN),
        audio=parse_audio(text),
        size_mb=parse_size_mb(text),
        audio_languages=parse_languages(text),
        year=parse_year(text),
        is_dubbed=bool(DUBBED_PATTERN.search(text)),
        tmdb_id=ids["tmdb_id"],
        tvdb_id=ids["tvdb_id"],
        imdb_id=ids["imdb_id"],
    )
    return apply_media_info(parsed, media_info)


def normalize_title(title: str | None) -> str:
    """Lower-case, punctuation to spaces, whitespace collapsed."""
    text = re.sub(r"[^\w\s]|_", " ", (title or "").lower())
    return re.sub(r"\s+", " ", text).strip()


def _guess(title: str, media_type: str) -> dict:
    try:
        return dict(guessit(title, {"type": media_type}))
    except Exception as e:
        log.debug(f"guessit failed for '{title}': {e}")
        return {}


def _as_text(value: Any) -> str:
    if isinstance(value, list):
        value = value[0] if value else ""
    return str(value or "").strip()


def clean_search_title(title: str | None) -> str:
    """Extract the work title used for library and metadata searches.

    "Movie.Name.2024.1080p.WEB-DL.DD5.1.x264-GRP" -> "Movie Name"
    """
    text = title or ""
    name = _as_text(_guess(text, "movie").get("title")) if text else ""
    if name:
        return name

    # Fallback: everything before the first year or resolution token
    flat = SEPARATORS.sub(" ", text)
    cut = len(flat)
    year_m = YEAR_PATTERN.search(flat)
    if year_m and validate_year(int(year_m.group(1))):
        cut = min(cut, year_m.start())
    for _, pattern in RESOLUTION_PATTERNS:
        m = pattern.search(flat)
        if m:
            cut = min(cut, m.start())
    flat = flat[:cut]
    flat = re.sub(r"\s*[(\[].*?[)\]]\s*$", "", flat)
    return re.sub(r"\s+", " ", flat).strip(" -")


def parse_tv_title(title: str | None) -> TvTitle:
    """Extract show name, season number and year from a show release title.

    "The.Family.Man.S03.1080p.AMZN.WEB-DL" -> ("The Family Man", 3, None)
    """
    text = (title or "").strip()
    guess = _guess(text, "episode") if text else {}

    season = guess.get("season")
    if isinstance(season, list):
        season = min(season) if season else None
    year = guess.get("year")
    year = validate_year(year, text) if isinstance(year, int) else None

    show_name = _as_text(guess.get("title"))
    if show_name:
        return TvTitle(show_name=show_name, season=season, year=year)

    flat = SEPARATORS.sub(" ", text)
    for pattern in SEASON_PATTERNS:
        m = pattern.search(flat)
        if m:
            show_name = re.sub(r"\s+", " ", m.group(1)).strip()
            return TvTitle(show_name=show_name, season=int(m.group(2)), year=year)

    return TvTitle(show_name=re.sub(r"\s+", " ", flat).strip(), season=season, year=year)
