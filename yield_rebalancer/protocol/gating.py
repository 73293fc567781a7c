"""APY comparison policy that gates a rebalance.

The safety margin is subtracted from the raw gain before the threshold
comparison:

    raw_gain      = target_apy - source_apy
    adjusted_gain = raw_gain - safety_margin_applied
    approve iff raw_gain > 0 and adjusted_gain >= min_rebalance_threshold
"""

from dataclasses import dataclass

from yield_rebalancer.errors import (
    TARGET_APY_NOT_HIGHER_MESSAGE,
    THRESHOLD_NOT_MET_MESSAGE,
    TargetApyNotHigher,
    ThresholdNotMet,
)
from yield_rebalancer.protocol.parameters import RebalanceParameters


@dataclass(frozen=True)
class RebalanceDecision:
    """Outcome of comparing two APY readings against the gating parameters."""

    source_apy: int
    target_apy: int
    raw_gain: int
    adjusted_gain: int
    parameters: RebalanceParameters
    approved: bool
    reason: str | None = None

    def raise_if_rejected(self) -> None:
        """Raise the error matching the rejection reason, if any."""
        if self.reason == TARGET_APY_NOT_HIGHER_MESSAGE:
            raise TargetApyNotHigher()
        if self.reason == THRESHOLD_NOT_MET_MESSAGE:
            raise ThresholdNotMet()


def evaluate_gain(
    source_apy: int, target_apy: int, params: RebalanceParameters
) -> RebalanceDecision:
    """Apply the gating policy to a pair of APY readings (bps).

    A non-positive raw gain is rejected before the threshold is considered,
    so it is reported as such even when the margin and threshold are zero.
    """
    raw_gain = target_apy - source_apy
    adjusted_gain = raw_gain - params.safety_margin_applied

    reason: str | None = None
    if raw_gain <= 0:
        reason = TARGET_APY_NOT_HIGHER_MESSAGE
    elif adjusted_gain < params.min_rebalance_threshold:
        reason = THRESHOLD_NOT_MET_MESSAGE

    return RebalanceDecision(
        source_apy=source_apy,
        target_apy=target_apy,
        raw_gain=raw_gain,
        adjusted_gain=adjusted_gain,
        parameters=params,
        approved=reason is None,
        reason=reason,
    )
