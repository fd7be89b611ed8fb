"""
Residual Risk Calculator.

Maps inherent likelihood/impact plus the risk's controls to residual
likelihood/impact/score. Each control is rated on four DIME dimensions
(Design, Implementation, Monitoring, Evaluation), 0..3 each, and targets
either Likelihood or Impact. The two dimensions are reduced independently.

Formulas are versioned; the identifier is persisted next to every cached
residual so old numbers stay explainable after a formula change.

multiplicative-v1 (default):
    e_i        = mean(D, I, M, E) / 3
    remaining  = Π (1 − e_i)          over controls targeting the dimension
    residual   = clamp(ceil(inherent × remaining), 1, matrix_size)

max-effectiveness-v0 (legacy):
    e_i        = 0 if D == 0 or I == 0 else (D + I + M + E) / 12
    residual   = max(1, inherent − round_half_up((inherent − 1) × max(e_i)))

All arithmetic is exact (fractions.Fraction); no float rounding leaks into
the ceiling.
"""

import math
from dataclasses import dataclass
from enum import StrEnum
from fractions import Fraction
from typing import Iterable, Protocol

from riskintel.errors import ValidationError
from riskintel.scoring.levels import RiskLevel, level_for_score

DIME_MAX = 3


class ResidualFormula(StrEnum):
    MULTIPLICATIVE_V1 = "multiplicative-v1"
    MAX_EFFECTIVENESS_V0 = "max-effectiveness-v0"


class ControlTarget(StrEnum):
    LIKELIHOOD = "Likelihood"
    IMPACT = "Impact"


class ControlLike(Protocol):
    """Anything carrying DIME scores: the ORM Control or a ControlScore."""

    target: str
    design_score: int
    implementation_score: int
    monitoring_score: int
    evaluation_score: int


@dataclass(frozen=True)
class ControlScore:
    target: ControlTarget
    design_score: int = 0
    implementation_score: int = 0
    monitoring_score: int = 0
    evaluation_score: int = 0


@dataclass(frozen=True)
class ResidualResult:
    likelihood: int
    impact: int
    score: int
    formula: ResidualFormula

    @property
    def level(self) -> RiskLevel:
        return level_for_score(self.score)


def _dime(control: ControlLike) -> tuple[int, int, int, int]:
    scores = (
        control.design_score,
        control.implementation_score,
        control.monitoring_score,
        control.evaluation_score,
    )
    for value in scores:
        if not 0 <= value <= DIME_MAX:
            raise ValidationError(
                f"DIME sub-scores must be between 0 and {DIME_MAX}",
                field="dime",
                details={"scores": list(scores)},
            )
    return scores


def control_effectiveness(
    control: ControlLike,
    formula: ResidualFormula = ResidualFormula.MULTIPLICATIVE_V1,
) -> Fraction:
    """Effectiveness of one control in [0, 1]."""
    d, i, m, e = _dime(control)
    if ResidualFormula(formula) is ResidualFormula.MAX_EFFECTIVENESS_V0 and (d == 0 or i == 0):
        return Fraction(0)
    return Fraction(d + i + m + e, 4 * DIME_MAX)


def _round_half_up(value: Fraction) -> int:
    return math.floor(value + Fraction(1, 2))


def _clamp(value: int, matrix_size: int) -> int:
    return max(1, min(matrix_size, value))


def _reduce(
    inherent: int,
    effectivenesses: list[Fraction],
    matrix_size: int,
    formula: ResidualFormula,
) -> int:
    if not effectivenesses:
        return _clamp(inherent, matrix_size)

    if formula is ResidualFormula.MAX_EFFECTIVENESS_V0:
        best = max(effectivenesses)
        return _clamp(inherent - _round_half_up((inherent - 1) * best), matrix_size)

    remaining = Fraction(1)
    for eff in effectivenesses:
        remaining *= 1 - eff
    return _clamp(math.ceil(inherent * remaining), matrix_size)


def compute_residual(
    likelihood: int,
    impact: int,
    controls: Iterable[ControlLike],
    matrix_size: int = 5,
    formula: ResidualFormula | str = ResidualFormula.MULTIPLICATIVE_V1,
) -> ResidualResult:
    """
    Residual likelihood/impact for an inherent pair and its controls.

    Pure; the caller persists the result and stamps last_residual_calc.
    """
    try:
        formula = ResidualFormula(formula)
    except ValueError:
        raise ValidationError(f"Unknown residual formula: {formula}", field="formula")

    by_target: dict[ControlTarget, list[Fraction]] = {
        ControlTarget.LIKELIHOOD: [],
        ControlTarget.IMPACT: [],
    }
    for control in controls:
        try:
            target = ControlTarget(control.target)
        except ValueError:
            raise ValidationError(
                f"Unknown control target: {control.target}", field="target"
            )
        by_target[target].append(control_effectiveness(control, formula))

    res_l = _reduce(likelihood, by_target[ControlTarget.LIKELIHOOD], matrix_size, formula)
    res_i = _reduce(impact, by_target[ControlTarget.IMPACT], matrix_size, formula)
    return ResidualResult(
        likelihood=res_l,
        impact=res_i,
        score=res_l * res_i,
        formula=formula,
    )
