from dataclasses import replace

import pytest

from parsing import ParsedRelease, parse_release
from policy import is_allowed, size_increase_percent, upgrade_verdict
from scoring import (
    SIZE_BONUS_CAP,
    best_audio_weight,
    estimate_from_size,
    format_score,
    score_existing_file,
    score_release,
)
from settings import ResolutionRule, default_quality_settings
from states import ReleaseStatus


@pytest.fixture
def settings():
    return default_quality_settings()


@pytest.fixture
def no_size_bonus(settings):
    return replace(settings, size_bonus_enabled=False)


def test_score_is_additive(no_size_bonus):
    parsed = parse_release("Movie.Name.2024.1080p.WEB-DL.DD5.1.x264-GRP")

    # 1080p 80 + WEB-DL 75 + x264 80 + "DD 5.1" 70
    assert score_release(parsed, no_size_bonus) == 305


def test_score_is_pure(settings):
    parsed = parse_release("Movie.2024.1080p.AMZN.WEB-DL.DDP5.1.Atmos.x264 4.2 GB")

    assert score_release(parsed, settings) == score_release(parsed, settings)


def test_unknown_weight_keys_contribute_zero(no_size_bonus):
    parsed = parse_release("Movie.Name.2024.1080p.WEB-DL.DD5.1.x264-GRP")
    odd = replace(parsed, source_tag="MYSTERY", codec="AV1", resolution="4320p")

    assert score_release(odd, no_size_bonus) == 70


def test_best_audio_weight_takes_highest_match(settings):
    weights = settings.audio_weights

    assert best_audio_weight("DDP 5.1 Atmos", weights) == 100
    assert best_audio_weight("DDP 5.1", weights) == 85
    assert best_audio_weight("AAC 2.0", weights) == 40
    assert best_audio_weight("Unknown", weights) == 0
    assert best_audio_weight("", weights) == 0


def test_flags_apply_bonus_and_penalty(no_size_bonus):
    parsed = parse_release("Movie.2024.1080p.WEB-DL.x264")
    base = score_release(parsed, no_size_bonus)

    assert score_release(parsed, no_size_bonus, is_dubbed=True) == base - 20
    assert score_release(parsed, no_size_bonus, preferred_language=True) == base + 15


def test_size_bonus_is_capped(settings, no_size_bonus):
    parsed = replace(parse_release("Movie.2024.1080p.WEB-DL.x264"), size_mb=4096)
    base = score_release(parsed, no_size_bonus)

    assert score_release(parsed, settings) == base + 4
    huge = replace(parsed, size_mb=200 * 1024)
    assert score_release(huge, settings) == base + SIZE_BONUS_CAP


def test_existing_file_falls_back_to_size_estimate(settings):
    assert score_existing_file(None, 3000, settings) == 30
    assert score_existing_file(ParsedRelease(), 8000, settings) == 50
    assert score_existing_file(None, None, settings) == 0
    assert estimate_from_size(0) == 0


def test_existing_file_uses_same_formula(settings):
    parsed = parse_release("Movie.2024.720p.WEBRip.AAC2.0.x264-XYZ.mkv")

    assert score_existing_file(parsed, 1024, settings) == score_release(
        replace(parsed, size_mb=1024), settings,
    )


def test_format_score():
    assert format_score(None) == "—"
    assert format_score(305.2) == "★★★★★ (305)"
    assert format_score(90) == "★ (90)"


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

def test_is_allowed_fails_closed(settings):
    assert is_allowed(parse_release("Movie.2024.1080p.WEB-DL"), settings)
    assert not is_allowed(parse_release("Movie.2024.2160p.WEB-DL"), settings)
    assert not is_allowed(parse_release("Movie.2024.WEB-DL"), settings)

    only_1080 = replace(settings, resolutions=(ResolutionRule("1080p", True),))
    assert not is_allowed(parse_release("Movie.2024.720p.WEB-DL"), only_1080)


@pytest.mark.parametrize("new_score, new_size, expected", [
    (100, 1100, ReleaseStatus.UPGRADE_CANDIDATE),   # score ok, size ok
    (85, 1100, ReleaseStatus.IGNORED),              # score short
    (100, 1050, ReleaseStatus.IGNORED),             # size short
    (85, 1050, ReleaseStatus.IGNORED),              # both short
])
def test_upgrade_requires_both_margins(settings, new_score, new_size, expected):
    verdict = upgrade_verdict(new_score, 70, new_size, 1000, settings)

    assert verdict.status == expected


def test_unknown_new_size_never_upgrades(settings):
    verdict = upgrade_verdict(500, 10, None, 1000, settings)

    assert verdict.score_ok
    assert not verdict.size_ok
    assert verdict.status == ReleaseStatus.IGNORED


def test_size_increase_percent():
    assert size_increase_percent(1500, 1000) == 50
    assert size_increase_percent(None, 1000) is None
    assert size_increase_percent(1000, 0) is None
    assert size_increase_percent(1000, None) is None


def test_missing_library_file_never_upgrades(settings):
    verdict = upgrade_verdict(500, 0, 4000, None, settings)

    assert verdict.score_ok
    assert not verdict.size_ok
    assert verdict.size_delta_percent is None
    assert verdict.status == ReleaseStatus.IGNORED
