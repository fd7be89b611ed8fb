"""
Alert lifecycle rules — pure functions.

    pending ──accept──▶ accepted ──apply──▶ applied
       │                   ▲                   │
       └──reject──▶ rejected └──────undo───────┘

Score aggregation: when several applied alerts touch the same risk, each
dimension takes the single change with the largest magnitude (sign kept),
added to the pre-intelligence baseline and clamped to the matrix.
"""

from typing import Iterable, Optional

from riskintel.errors import AlertAlreadyAppliedError, InvalidTransitionError
from riskintel.intelligence.schemas import AlertStatus
from riskintel.treatment.schemas import TreatmentAction

TRANSITIONS: dict[tuple[AlertStatus, TreatmentAction], AlertStatus] = {
    (AlertStatus.PENDING, TreatmentAction.ACCEPT): AlertStatus.ACCEPTED,
    (AlertStatus.PENDING, TreatmentAction.REJECT): AlertStatus.REJECTED,
    (AlertStatus.ACCEPTED, TreatmentAction.APPLY): AlertStatus.APPLIED,
    (AlertStatus.APPLIED, TreatmentAction.UNDO): AlertStatus.ACCEPTED,
}


def transition(status: str, action: TreatmentAction, alert_id: str = "") -> AlertStatus:
    """Target status for ``action`` or raise if the alert is not eligible."""
    current = AlertStatus(status)
    action = TreatmentAction(action)
    target = TRANSITIONS.get((current, action))
    if target is None:
        if current is AlertStatus.APPLIED and action is TreatmentAction.APPLY:
            raise AlertAlreadyAppliedError(alert_id)
        raise InvalidTransitionError(alert_id, current.value, action.value)
    return target


def dominant_change(changes: Iterable[Optional[int]]) -> int:
    """
    Largest-magnitude change, sign preserved.

    Ties between +n and -n go to +n (risk-increasing), whichever alert was
    applied first, so the result never depends on application order.
    None counts as 0.
    """
    values = [c or 0 for c in changes]
    if not values:
        return 0
    return max(values, key=lambda c: (abs(c), c))


def clamp_score(value: int, matrix_size: int) -> int:
    return max(1, min(matrix_size, value))


def adjusted_scores(
    baseline_likelihood: int,
    baseline_impact: int,
    changes: Iterable[tuple[Optional[int], Optional[int]]],
    matrix_size: int,
) -> tuple[int, int]:
    """Inherent (likelihood, impact) after applying a set of alert deltas."""
    changes = list(changes)
    d_l = dominant_change(c[0] for c in changes)
    d_i = dominant_change(c[1] for c in changes)
    return (
        clamp_score(baseline_likelihood + d_l, matrix_size),
        clamp_score(baseline_impact + d_i, matrix_size),
    )
