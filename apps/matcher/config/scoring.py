"""
scoring.py — Quality scoring for parsed releases and library files.

Score = resolution + source tag + codec + best audio pattern
        (+ preferred-language bonus) (− dubbed penalty) (+ size bonus).

The weights come from QualitySettings. A key missing from a weight table
contributes 0. The same formula scores the file already in the library so
"new minus existing" deltas are directly comparable.
"""

from dataclasses import replace

from parsing import ParsedRelease
from settings import QualitySettings

# ---------------------------------------------------------------------------
# Score constants
# ---------------------------------------------------------------------------

# Size bonus (when enabled): points per GB, capped
SIZE_BONUS_PER_GB = 1.0
SIZE_BONUS_CAP = 10.0

# Fallback for a library file whose name yields no quality tokens
EXISTING_ESTIMATE_MB_PER_POINT = 100.0
EXISTING_ESTIMATE_CAP = 50.0


def _compact(text: str) -> str:
    return "".join(text.split()).upper()


def best_audio_weight(audio: str, weights: dict[str, float]) -> float:
    """Highest weight whose key appears in the audio label.

    Matching ignores case and spaces, so "DDP 5.1" matches "DDP5.1 Atmos".
    """
    label = _compact(audio or "")
    if not label:
        return 0
    hits = [w for key, w in weights.items() if key and _compact(key) in label]
    return max(hits) if hits else 0


def size_bonus(size_mb: float | None) -> float:
    if not size_mb or size_mb <= 0:
        return 0
    return min(size_mb / 1024 * SIZE_BONUS_PER_GB, SIZE_BONUS_CAP)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def score_release(parsed: ParsedRelease, settings: QualitySettings,
                  is_dubbed: bool = False, preferred_language: bool = False) -> float:
    """Score a parsed release. Higher = better. Pure; never raises on unknown keys."""
    score = 0.0
    score += settings.resolution_weights.get(parsed.resolution, 0)
    score += settings.source_tag_weights.get(parsed.source_tag, 0)
    score += settings.codec_weights.get(parsed.codec, 0)
    score += best_audio_weight(parsed.audio, settings.audio_weights)

    if preferred_language:
        score += settings.preferred_language_bonus
    if is_dubbed:
        score -= abs(settings.dubbed_penalty)
    if settings.size_bonus_enabled:
        score += size_bonus(parsed.size_mb)
    return score


def estimate_from_size(size_mb: float | None) -> float:
    """Capped size-proportional score for a file we could not parse."""
    if not size_mb or size_mb <= 0:
        return 0
    return min(size_mb / EXISTING_ESTIMATE_MB_PER_POINT, EXISTING_ESTIMATE_CAP)


def score_existing_file(parsed: ParsedRelease | None, size_mb: float | None,
                        settings: QualitySettings, is_dubbed: bool = False,
                        preferred_language: bool = False) -> float:
    """Score the library's current file with the same flags as a new release.

    An unparseable file name falls back to estimate_from_size() instead of 0,
    which would make every new release look like a huge upgrade.
    """
    if parsed is None or parsed.is_ambiguous:
        return estimate_from_size(size_mb)
    if parsed.size_mb is None and size_mb:
        parsed = replace(parsed, size_mb=size_mb)
    return score_release(parsed, settings, is_dubbed=is_dubbed, preferred_language=preferred_language)


def format_score(score: float | None) -> str:
    """Human-readable quality score label."""
    if score is None:
        return "—"
    value = round(score)
    if score >= 300:
        return f"★★★★★ ({value})"
    if score >= 250:
        return f"★★★★ ({value})"
    if score >= 200:
        return f"★★★ ({value})"
    if score >= 120:
        return f"★★ ({value})"
    return f"★ ({value})"
