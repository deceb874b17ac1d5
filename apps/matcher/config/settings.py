"""
settings.py — Quality settings: defaults, validation, and loading.

The settings document is the camelCase JSON the settings page stores. It is
validated once per run and handed to the parser/scorer/policy as an
explicit, immutable parameter.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from jsonschema import Draft7Validator

from errors import ConfigurationError

log = logging.getLogger("matcher")


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_SETTINGS: dict[str, Any] = {
    "resolutions": [
        {"resolution": "2160p", "allowed": False,
         "preferredCodecs": ["x265", "HEVC"], "discouragedCodecs": ["x264"]},
        {"resolution": "1080p", "allowed": True,
         "preferredCodecs": ["x264"], "discouragedCodecs": ["x265", "HEVC"]},
        {"resolution": "720p", "allowed": True,
         "preferredCodecs": ["x264"], "discouragedCodecs": []},
        {"resolution": "480p", "allowed": True,
         "preferredCodecs": [], "discouragedCodecs": []},
    ],
    "resolutionWeights": {
        "2160p": 100,
        "1080p": 80,
        "720p": 50,
        "480p": 20,
        "UNKNOWN": 10,
    },
    "sourceTagWeights": {
        "AMZN": 90,
        "NF": 90,
        "ATVP": 90,
        "DSNP": 85,
        "HMAX": 85,
        "JC": 85,
        "SS": 85,
        "ZEE5": 80,
        "HS": 75,
        "BluRay": 85,
        "WEB-DL": 75,
        "WEBRip": 60,
        "HDTV": 45,
        "DVDRip": 30,
        "OTHER": 50,
    },
    "codecWeights": {
        "x265": 70,
        "HEVC": 70,
        "x264": 80,
        "AVC": 80,
        "UNKNOWN": 30,
    },
    "audioWeights": {
        "Atmos": 100,
        "TrueHD": 90,
        "DDP 7.1": 88,
        "DDP 5.1": 85,
        "DTS": 75,
        "DD 5.1": 70,
        "AAC 5.1": 60,
        "DDP 2.0": 50,
        "2.0": 40,
    },
    "preferredAudioLanguages": ["hi", "en"],
    "dubbedPenalty": 20,
    "preferredLanguageBonus": 15,
    "sizeBonusEnabled": True,
    "minSizeIncreasePercentForUpgrade": 10,
    "upgradeThreshold": 20,
}


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ResolutionRule:
    resolution: str
    allowed: bool
    preferred_codecs: tuple[str, ...] = ()
    discouraged_codecs: tuple[str, ...] = ()


@dataclass(frozen=True)
class QualitySettings:
    """Scoring rubric and upgrade thresholds for one run."""
    resolutions: tuple[ResolutionRule, ...]
    resolution_weights: dict[str, float] = field(default_factory=dict)
    source_tag_weights: dict[str, float] = field(default_factory=dict)
    codec_weights: dict[str, float] = field(default_factory=dict)
    audio_weights: dict[str, float] = field(default_factory=dict)
    preferred_audio_languages: tuple[str, ...] = ()
    dubbed_penalty: float = 0
    preferred_language_bonus: float = 0
    size_bonus_enabled: bool = False
    min_size_increase_percent: float = 0
    upgrade_threshold: float = 0

    def rule_for(self, resolution: str) -> ResolutionRule | None:
        for rule in self.resolutions:
            if rule.resolution == resolution:
                return rule
        return None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _weights() -> dict[str, Any]:
    return {"type": "object", "additionalProperties": {"type": "number"}}


def settings_schema() -> dict[str, Any]:
    return {
        "type": "object",
        "additionalProperties": True,
        "properties": {
            "resolutions": {
                "type": "array",
                "items": {
                    "type": "object",
                    "additionalProperties": True,
                    "properties": {
                        "resolution": {"type": "string"},
                        "allowed": {"type": "boolean"},
                        "preferredCodecs": {"type": "array", "items": {"type": "string"}},
                        "discouragedCodecs": {"type": "array", "items": {"type": "string"}},
                    },
                    "required": ["resolution", "allowed"],
                },
            },
            "resolutionWeights": _weights(),
            "sourceTagWeights": _weights(),
            "codecWeights": _weights(),
            "audioWeights": _weights(),
            "preferredAudioLanguages": {"type": "array", "items": {"type": "string"}},
            "dubbedPenalty": {"type": "number"},
            "preferredLanguageBonus": {"type": "number"},
            "sizeBonusEnabled": {"type": "boolean"},
            "minSizeIncreasePercentForUpgrade": {"type": "number"},
            "upgradeThreshold": {"type": "number"},
        },
        "required": [
            "resolutions",
            "resolutionWeights",
            "sourceTagWeights",
            "codecWeights",
            "audioWeights",
            "minSizeIncreasePercentForUpgrade",
            "upgradeThreshold",
        ],
    }


def validate_settings(data: Any) -> list[str]:
    """Return a list of human-readable problems (empty when valid)."""
    validator = Draft7Validator(settings_schema())
    errors = []
    for error in sorted(validator.iter_errors(data), key=lambda e: list(e.path)):
        path = ".".join(str(part) for part in error.path)
        prefix = f"{path}: " if path else ""
        errors.append(prefix + error.message)
    return errors


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def quality_settings_from_dict(data: dict[str, Any]) -> QualitySettings:
    """Build QualitySettings from the stored JSON document.

    Raises ConfigurationError listing every schema problem.
    """
    problems = validate_settings(data)
    if problems:
        raise ConfigurationError("Invalid quality settings: " + "; ".join(problems))

    rules = tuple(
        ResolutionRule(
            resolution=r["resolution"],
            allowed=r["allowed"],
            preferred_codecs=tuple(r.get("preferredCodecs") or ()),
            discouraged_codecs=tuple(r.get("discouragedCodecs") or ()),
        )
        for r in data["resolutions"]
    )
    return QualitySettings(
        resolutions=rules,
        resolution_weights=dict(data["resolutionWeights"]),
        source_tag_weights=dict(data["sourceTagWeights"]),
        codec_weights=dict(data["codecWeights"]),
        audio_weights=dict(data["audioWeights"]),
        preferred_audio_languages=tuple(data.get("preferredAudioLanguages") or ()),
        dubbed_penalty=data.get("dubbedPenalty", 0),
        preferred_language_bonus=data.get("preferredLanguageBonus", 0),
        size_bonus_enabled=data.get("sizeBonusEnabled", False),
        min_size_increase_percent=data["minSizeIncreasePercentForUpgrade"],
        upgrade_threshold=data["upgradeThreshold"],
    )


def default_quality_settings() -> QualitySettings:
    return quality_settings_from_dict(DEFAULT_SETTINGS)


def load_quality_settings(path: str | Path | None) -> QualitySettings:
    """Load settings from a JSON file, or the defaults when no path is set."""
    if not path:
        log.info("Quality settings: using built-in defaults")
        return default_quality_settings()
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Cannot read quality settings {path}: {e}") from e
    log.info(f"Quality settings: loaded from {path}")
    return quality_settings_from_dict(data)
