"""Abstract collaborator interfaces consumed by the rebalance engine."""

from abc import ABC, abstractmethod

from yield_rebalancer.protocol.pool import Pool


class ApyOracle(ABC):
    """Source of current APY readings, queried fresh at decision time."""

    @abstractmethod
    def get_current_apy(self, pool: Pool) -> int:
        """Get the pool's current APY in bps.

        Raises:
            OracleUnavailable: the reading could not be obtained.
        """


class SafeExecutor(ABC):
    """The Safe: the only channel through which generic-pool funds move.

    A generic pool's capital sits at that pool's custody address, which
    lets the Safe spend the token on its behalf. Aave-backed capital is
    supplied by the Safe itself, so moves that touch Aave pass through the
    Safe via :meth:`collect` and :meth:`release`.
    """

    @abstractmethod
    def transfer(
        self,
        token_address: str,
        source_pool_id: str,
        target_pool_id: str,
        amount: int,
    ) -> bool:
        """Move ``amount`` of a token from source custody to target custody.

        Returns True once the Safe has executed the transfer.
        """

    @abstractmethod
    def collect(self, token_address: str, source_pool_id: str, amount: int) -> bool:
        """Pull ``amount`` from a pool's custody into the Safe."""

    @abstractmethod
    def release(self, token_address: str, target_pool_id: str, amount: int) -> bool:
        """Send ``amount`` from the Safe to a pool's custody."""


class AaveExecutor(ABC):
    """Aave lending pool operations carried out on behalf of the Safe."""

    @abstractmethod
    def withdraw(
        self,
        lending_pool_address: str,
        data_provider_address: str,
        token_address: str,
        amount: int,
    ) -> bool:
        """Withdraw ``amount`` of the asset from Aave back into the Safe."""

    @abstractmethod
    def deposit(
        self,
        lending_pool_address: str,
        data_provider_address: str,
        token_address: str,
        amount: int,
    ) -> bool:
        """Supply ``amount`` of the asset from the Safe into Aave."""


class AccessControl(ABC):
    """Administrator capability check gating every mutating call."""

    @abstractmethod
    def is_admin(self, caller: str) -> bool:
        """Whether ``caller`` holds the administrator capability."""
