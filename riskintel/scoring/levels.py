"""Risk level classification."""

from enum import StrEnum


class RiskLevel(StrEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    EXTREME = "Extreme"


# Lower bound (inclusive) per level, highest first
LEVEL_THRESHOLDS: tuple[tuple[int, RiskLevel], ...] = (
    (15, RiskLevel.EXTREME),
    (10, RiskLevel.HIGH),
    (5, RiskLevel.MEDIUM),
)

_ELEVATED = frozenset({RiskLevel.HIGH, RiskLevel.EXTREME})
_CONTAINED = frozenset({RiskLevel.LOW, RiskLevel.MEDIUM})


def level_for_score(score: int) -> RiskLevel:
    for threshold, level in LEVEL_THRESHOLDS:
        if score >= threshold:
            return level
    return RiskLevel.LOW


def level_for(likelihood: int, impact: int) -> RiskLevel:
    return level_for_score(likelihood * impact)


def is_escalation(from_level: RiskLevel, to_level: RiskLevel) -> bool:
    """Moved from Low/Medium into High/Extreme."""
    return RiskLevel(from_level) in _CONTAINED and RiskLevel(to_level) in _ELEVATED


def is_de_escalation(from_level: RiskLevel, to_level: RiskLevel) -> bool:
    """Moved from High/Extreme down into Low/Medium."""
    return RiskLevel(from_level) in _ELEVATED and RiskLevel(to_level) in _CONTAINED
