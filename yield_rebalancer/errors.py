"""Error taxonomy for registry and rebalance operations.

Every error is terminal for the call that raised it; nothing here is retried
automatically. Callers decide whether to try again.
"""

TARGET_APY_NOT_HIGHER_MESSAGE = "Rebalance target APY must be higher"
THRESHOLD_NOT_MET_MESSAGE = "APY difference is below the minimum threshold."


class RebalancerError(Exception):
    """Base class for all rebalancer failures."""


class UnknownPool(RebalancerError, KeyError):
    """No pool is registered under the given identifier."""

    def __init__(self, pool_id: str) -> None:
        super().__init__(pool_id)
        self.pool_id = pool_id

    def __str__(self) -> str:
        return f"Unknown pool: {self.pool_id}"


class DuplicateIdentifier(RebalancerError):
    """A pool is already registered under the given identifier."""

    def __init__(self, pool_id: str) -> None:
        super().__init__(f"Pool already registered: {pool_id}")
        self.pool_id = pool_id


class InvalidAmount(RebalancerError, ValueError):
    """Balance, amount or parameter value outside its allowed range."""


class InsufficientBalance(RebalancerError, ValueError):
    """The source pool cannot cover the requested amount."""

    def __init__(self, pool_id: str, balance: int, amount: int) -> None:
        super().__init__(
            f"Pool {pool_id} holds {balance}, cannot move {amount}"
        )
        self.pool_id = pool_id
        self.balance = balance
        self.amount = amount


class TargetApyNotHigher(RebalancerError):
    def __init__(self) -> None:
        super().__init__(TARGET_APY_NOT_HIGHER_MESSAGE)


class ThresholdNotMet(RebalancerError):
    def __init__(self) -> None:
        super().__init__(THRESHOLD_NOT_MET_MESSAGE)


class Unauthorized(RebalancerError):
    """Caller does not hold the administrator capability."""

    def __init__(self, caller: str) -> None:
        super().__init__(f"Caller is not an administrator: {caller}")
        self.caller = caller


class OracleUnavailable(RebalancerError):
    """The APY source for a pool could not be read."""


class ExecutionFailed(RebalancerError):
    """The Safe or Aave adapter rejected, failed or timed out."""


class PoolBusy(RebalancerError):
    """An earlier, timed-out adapter call on this pool has not finished yet."""

    def __init__(self, pool_id: str) -> None:
        super().__init__(f"Pool {pool_id} has an unsettled execution in flight")
        self.pool_id = pool_id
