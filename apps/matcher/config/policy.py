"""
policy.py — Eligibility gate and upgrade verdict.

is_allowed() is fail-closed: a resolution with no rule in the settings is
denied just like one whose rule says allowed=False.

upgrade_verdict() requires BOTH margins: the score delta must reach
upgradeThreshold and the size growth must reach
minSizeIncreasePercentForUpgrade.
"""

from dataclasses import dataclass

from parsing import ParsedRelease
from settings import QualitySettings
from states import ReleaseStatus


def is_allowed(parsed: ParsedRelease, settings: QualitySettings) -> bool:
    rule = settings.rule_for(parsed.resolution)
    return bool(rule and rule.allowed)


def size_increase_percent(new_size_mb: float | None, existing_size_mb: float | None) -> float | None:
    """Percent growth of the new file over the existing one.

    None when either size is unknown or the existing size is 0 (no file in
    the library), so the size margin cannot be met.
    """
    if new_size_mb is None or not existing_size_mb:
        return None
    return (new_size_mb - existing_size_mb) / existing_size_mb * 100


@dataclass(frozen=True)
class UpgradeVerdict:
    score_delta: float
    size_delta_percent: float | None
    score_ok: bool
    size_ok: bool

    @property
    def is_upgrade(self) -> bool:
        return self.score_ok and self.size_ok

    @property
    def status(self) -> ReleaseStatus:
        return ReleaseStatus.UPGRADE_CANDIDATE if self.is_upgrade else ReleaseStatus.IGNORED


def upgrade_verdict(new_score: float, existing_score: float,
                    new_size_mb: float | None, existing_size_mb: float | None,
                    settings: QualitySettings) -> UpgradeVerdict:
    score_delta = new_score - existing_score
    size_delta = size_increase_percent(new_size_mb, existing_size_mb)
    return UpgradeVerdict(
        score_delta=score_delta,
        size_delta_percent=size_delta,
        score_ok=score_delta >= settings.upgrade_threshold,
        size_ok=size_delta is not None and size_delta >= settings.min_size_increase_percent,
    )
