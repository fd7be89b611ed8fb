"""
Residual risk calculator tests.

Tests: DIME effectiveness, multiplicative combiner, legacy formula,
clamping, level reclassification, input validation.
"""

from fractions import Fraction

import pytest
from hypothesis import given, settings as hyp_settings
from hypothesis import strategies as st

from riskintel.errors import ValidationError
from riskintel.scoring.levels import RiskLevel
from riskintel.scoring.residual import (
    ControlScore,
    ControlTarget,
    ResidualFormula,
    compute_residual,
    control_effectiveness,
)

L = ControlTarget.LIKELIHOOD
I = ControlTarget.IMPACT


def control(target=L, d=2, i=2, m=2, e=2) -> ControlScore:
    return ControlScore(target, d, i, m, e)


class TestControlEffectiveness:
    def test_mean_over_three(self):
        """All DIME = 2 gives 2/3."""
        assert control_effectiveness(control()) == Fraction(2, 3)

    def test_bounds(self):
        assert control_effectiveness(control(d=0, i=0, m=0, e=0)) == 0
        assert control_effectiveness(control(d=3, i=3, m=3, e=3)) == 1

    def test_legacy_requires_design_and_implementation(self):
        """max-effectiveness-v0 treats a control without D or I as ineffective."""
        no_design = control(d=0, i=3, m=3, e=3)
        assert control_effectiveness(no_design, ResidualFormula.MAX_EFFECTIVENESS_V0) == 0
        assert control_effectiveness(no_design) == Fraction(9, 12)

    def test_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            control_effectiveness(control(d=4))
        with pytest.raises(ValidationError):
            control_effectiveness(control(m=-1))


class TestMultiplicative:
    def test_reference_example(self):
        """L4/I5 (Extreme) with one likelihood control at DIME 2 → L2/I5, score 10, High."""
        result = compute_residual(4, 5, [control()])
        assert result.likelihood == 2
        assert result.impact == 5
        assert result.score == 10
        assert result.level == RiskLevel.HIGH
        assert result.formula is ResidualFormula.MULTIPLICATIVE_V1

    def test_no_controls_equals_inherent(self):
        result = compute_residual(3, 4, [])
        assert (result.likelihood, result.impact, result.score) == (3, 4, 12)

    def test_dimensions_are_independent(self):
        """An impact control never touches likelihood."""
        result = compute_residual(4, 4, [control(target=I)])
        assert result.likelihood == 4
        assert result.impact == 2

    def test_diminishing_returns(self):
        """Two half-effective controls leave a quarter of the risk."""
        half = control(d=2, i=1, m=2, e=1)
        assert compute_residual(5, 1, [half]).likelihood == 3      # ceil(2.5)
        assert compute_residual(5, 1, [half, half]).likelihood == 2  # ceil(1.25)

    def test_fully_effective_clamps_to_one(self):
        result = compute_residual(5, 5, [control(d=3, i=3, m=3, e=3, target=I)])
        assert result.impact == 1
        assert result.score == 5

    def test_ceiling_is_exact(self):
        """4 × (1 − 3/4) is exactly 1, not 1.0000001."""
        three_quarters = control(d=3, i=3, m=3, e=0)
        assert compute_residual(4, 1, [three_quarters]).likelihood == 1

    def test_zero_scored_control_changes_nothing(self):
        result = compute_residual(4, 3, [control(d=0, i=0, m=0, e=0)])
        assert (result.likelihood, result.impact) == (4, 3)

    def test_six_by_six_matrix(self):
        result = compute_residual(6, 6, [], matrix_size=6)
        assert result.score == 36

    def test_accepts_formula_string(self):
        result = compute_residual(4, 5, [control()], formula="multiplicative-v1")
        assert result.likelihood == 2

    def test_unknown_formula(self):
        with pytest.raises(ValidationError):
            compute_residual(3, 3, [], formula="fancy-v9")

    def test_unknown_target(self):
        with pytest.raises(ValidationError):
            compute_residual(3, 3, [ControlScore("Velocity", 2, 2, 2, 2)])


class TestMaxEffectiveness:
    v0 = ResidualFormula.MAX_EFFECTIVENESS_V0

    def test_strongest_control_wins(self):
        weak = control(d=1, i=1, m=1, e=1)
        strong = control()
        # (4 − 1) × 2/3 = 2 → 4 − 2
        assert compute_residual(4, 1, [weak, strong], formula=self.v0).likelihood == 2

    def test_rounds_half_up(self):
        half = control(d=2, i=1, m=2, e=1)
        # (4 − 1) × 1/2 = 1.5 → 2
        assert compute_residual(4, 1, [half], formula=self.v0).likelihood == 2

    def test_full_effectiveness_floor_is_one(self):
        best = control(d=3, i=3, m=3, e=3)
        assert compute_residual(5, 1, [best], formula=self.v0).likelihood == 1

    def test_formula_is_recorded(self):
        assert compute_residual(2, 2, [], formula=self.v0).formula is self.v0


dime = st.integers(min_value=0, max_value=3)
controls_strategy = st.lists(
    st.builds(ControlScore, st.sampled_from([L, I]), dime, dime, dime, dime),
    max_size=6,
)


class TestResidualProperties:
    @given(
        likelihood=st.integers(min_value=1, max_value=6),
        impact=st.integers(min_value=1, max_value=6),
        controls=controls_strategy,
        formula=st.sampled_from(list(ResidualFormula)),
    )
    @hyp_settings(max_examples=200)
    def test_residual_never_exceeds_inherent(self, likelihood, impact, controls, formula):
        """Controls only ever reduce, and the result stays on the matrix."""
        result = compute_residual(likelihood, impact, controls, matrix_size=6, formula=formula)
        assert 1 <= result.likelihood <= likelihood
        assert 1 <= result.impact <= impact
        assert result.score == result.likelihood * result.impact

    @given(
        likelihood=st.integers(min_value=1, max_value=5),
        controls=controls_strategy,
        extra=st.builds(ControlScore, st.just(L), dime, dime, dime, dime),
    )
    @hyp_settings(max_examples=200)
    def test_adding_a_control_never_raises_residual(self, likelihood, controls, extra):
        before = compute_residual(likelihood, 5, controls)
        after = compute_residual(likelihood, 5, controls + [extra])
        assert after.likelihood <= before.likelihood
