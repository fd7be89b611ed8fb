"""Risk level threshold tests."""

import pytest

from riskintel.scoring.levels import (
    RiskLevel,
    is_de_escalation,
    is_escalation,
    level_for,
    level_for_score,
)


class TestLevelForScore:
    @pytest.mark.parametrize(
        "score,expected",
        [
            (1, RiskLevel.LOW),
            (4, RiskLevel.LOW),
            (5, RiskLevel.MEDIUM),
            (9, RiskLevel.MEDIUM),
            (10, RiskLevel.HIGH),
            (14, RiskLevel.HIGH),
            (15, RiskLevel.EXTREME),
            (36, RiskLevel.EXTREME),
        ],
    )
    def test_thresholds(self, score, expected):
        assert level_for_score(score) == expected

    def test_level_for_pair(self):
        assert level_for(4, 5) == RiskLevel.EXTREME
        assert level_for(2, 5) == RiskLevel.HIGH
        assert level_for(1, 1) == RiskLevel.LOW

    def test_values_are_display_names(self):
        assert [lvl.value for lvl in RiskLevel] == ["Low", "Medium", "High", "Extreme"]


class TestEscalation:
    def test_escalation(self):
        assert is_escalation(RiskLevel.LOW, RiskLevel.HIGH)
        assert is_escalation(RiskLevel.MEDIUM, RiskLevel.EXTREME)
        assert not is_escalation(RiskLevel.HIGH, RiskLevel.EXTREME)
        assert not is_escalation(RiskLevel.LOW, RiskLevel.MEDIUM)

    def test_de_escalation(self):
        assert is_de_escalation(RiskLevel.EXTREME, RiskLevel.LOW)
        assert is_de_escalation(RiskLevel.HIGH, RiskLevel.MEDIUM)
        assert not is_de_escalation(RiskLevel.EXTREME, RiskLevel.HIGH)

    def test_disjoint(self):
        """No level pair is both an escalation and a de-escalation."""
        for a in RiskLevel:
            for b in RiskLevel:
                assert not (is_escalation(a, b) and is_de_escalation(a, b))

    def test_accepts_strings(self):
        assert is_escalation("Medium", "High")
