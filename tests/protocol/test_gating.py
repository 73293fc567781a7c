"""Tests for the APY gating policy and its parameters."""

import pytest

from yield_rebalancer.errors import (
    InvalidAmount,
    TargetApyNotHigher,
    ThresholdNotMet,
)
from yield_rebalancer.protocol.gating import evaluate_gain
from yield_rebalancer.protocol.parameters import RebalanceParameters


@pytest.fixture
def params() -> RebalanceParameters:
    return RebalanceParameters(min_rebalance_threshold=300, safety_margin_applied=20)


class TestRebalanceParameters:
    def test_defaults(self) -> None:
        p = RebalanceParameters()
        assert p.min_rebalance_threshold == 100
        assert p.safety_margin_applied == 10

    def test_negative_rejected(self) -> None:
        with pytest.raises(InvalidAmount):
            RebalanceParameters(min_rebalance_threshold=-1)

    def test_non_integer_rejected(self) -> None:
        with pytest.raises(InvalidAmount):
            RebalanceParameters(safety_margin_applied=1.5)  # type: ignore[arg-type]

    def test_bool_rejected(self) -> None:
        with pytest.raises(InvalidAmount):
            RebalanceParameters(safety_margin_applied=True)

    def test_zero_allowed(self) -> None:
        p = RebalanceParameters(min_rebalance_threshold=0, safety_margin_applied=0)
        assert p.min_rebalance_threshold == 0


class TestEvaluateGain:
    def test_approves_when_gain_clears_threshold_plus_margin(self, params: RebalanceParameters) -> None:
        decision = evaluate_gain(200, 600, params)
        assert decision.approved is True
        assert decision.raw_gain == 400
        assert decision.adjusted_gain == 380
        assert decision.reason is None
        decision.raise_if_rejected()

    @pytest.mark.parametrize("source, target", [(500, 500), (500, 400), (0, 0)])
    def test_not_higher(self, params: RebalanceParameters, source: int, target: int) -> None:
        decision = evaluate_gain(source, target, params)
        assert decision.approved is False
        assert decision.reason == "Rebalance target APY must be higher"
        with pytest.raises(TargetApyNotHigher, match="Rebalance target APY must be higher"):
            decision.raise_if_rejected()

    def test_not_higher_wins_even_with_zero_threshold(self) -> None:
        decision = evaluate_gain(500, 500, RebalanceParameters(0, 0))
        assert decision.reason == "Rebalance target APY must be higher"

    def test_below_threshold(self, params: RebalanceParameters) -> None:
        decision = evaluate_gain(200, 400, params)
        assert decision.approved is False
        with pytest.raises(ThresholdNotMet, match="APY difference is below the minimum threshold."):
            decision.raise_if_rejected()

    def test_margin_boundary_exactly_met(self, params: RebalanceParameters) -> None:
        # 320 raw - 20 margin == 300 threshold
        decision = evaluate_gain(100, 420, params)
        assert decision.adjusted_gain == 300
        assert decision.approved is True

    def test_margin_boundary_one_short(self, params: RebalanceParameters) -> None:
        # Clears the threshold on raw gain but not once the margin is taken off
        decision = evaluate_gain(100, 419, params)
        assert decision.raw_gain == 319
        assert decision.adjusted_gain == 299
        assert decision.approved is False

    def test_margin_larger_than_gain(self) -> None:
        decision = evaluate_gain(100, 105, RebalanceParameters(0, 10))
        assert decision.adjusted_gain == -5
        assert decision.reason == "APY difference is below the minimum threshold."

    def test_decision_keeps_parameters(self, params: RebalanceParameters) -> None:
        assert evaluate_gain(0, 1000, params).parameters is params
