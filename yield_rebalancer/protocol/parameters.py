"""Administrator-controlled rebalance gating parameters."""

from dataclasses import dataclass

from yield_rebalancer.data.constants import (
    DEFAULT_MIN_REBALANCE_THRESHOLD,
    DEFAULT_SAFETY_MARGIN_APPLIED,
)
from yield_rebalancer.errors import InvalidAmount


@dataclass(frozen=True)
class RebalanceParameters:
    """Threshold and safety margin, both in bps of APY.

    Attributes:
        min_rebalance_threshold: Minimum discounted APY gain required to move.
        safety_margin_applied: Discount subtracted from the raw APY gain.
    """

    min_rebalance_threshold: int = DEFAULT_MIN_REBALANCE_THRESHOLD
    safety_margin_applied: int = DEFAULT_SAFETY_MARGIN_APPLIED

    def __post_init__(self) -> None:
        require_non_negative_int("min_rebalance_threshold", self.min_rebalance_threshold)
        require_non_negative_int("safety_margin_applied", self.safety_margin_applied)


def require_non_negative_int(name: str, value: int) -> None:
    """Reject anything that is not a non-negative integer."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidAmount(f"{name} must be non-negative, got {value}")
