"""In-process adapters used when no chain connection is configured.

The dry-run executors move nothing; they log and record each request so a
rebalance can be rehearsed end to end.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from yield_rebalancer.data.interfaces import (
    AaveExecutor,
    AccessControl,
    ApyOracle,
    SafeExecutor,
)
from yield_rebalancer.errors import OracleUnavailable
from yield_rebalancer.protocol.pool import Pool

logger = logging.getLogger(__name__)


class StaticApyOracle(ApyOracle):
    """APY readings from a fixed mapping of pool id to bps."""

    def __init__(self, apys: Mapping[str, int] | None = None) -> None:
        self._apys: dict[str, int] = dict(apys or {})

    def set_apy(self, pool_id: str, apy: int) -> None:
        self._apys[pool_id] = apy

    def get_current_apy(self, pool: Pool) -> int:
        try:
            return self._apys[pool.pool_id]
        except KeyError:
            raise OracleUnavailable(f"No APY reading for pool {pool.pool_id}") from None


@dataclass(frozen=True)
class TransferRequest:
    """A fund movement requested from a dry-run executor."""

    action: str
    token_address: str
    amount: int
    source: str
    destination: str


class DryRunSafeExecutor(SafeExecutor):
    """Records Safe transfers instead of submitting them."""

    def __init__(self) -> None:
        self.requests: list[TransferRequest] = []

    def transfer(
        self,
        token_address: str,
        source_pool_id: str,
        target_pool_id: str,
        amount: int,
    ) -> bool:
        logger.info(
            "[dry-run] Safe transfer of %d %s from %s to %s",
            amount, token_address, source_pool_id, target_pool_id,
        )
        self.requests.append(
            TransferRequest("transfer", token_address, amount, source_pool_id, target_pool_id)
        )
        return True

    def collect(self, token_address: str, source_pool_id: str, amount: int) -> bool:
        logger.info("[dry-run] Safe collects %d %s from %s", amount, token_address, source_pool_id)
        self.requests.append(
            TransferRequest("collect", token_address, amount, source_pool_id, "safe")
        )
        return True

    def release(self, token_address: str, target_pool_id: str, amount: int) -> bool:
        logger.info("[dry-run] Safe releases %d %s to %s", amount, token_address, target_pool_id)
        self.requests.append(
            TransferRequest("release", token_address, amount, "safe", target_pool_id)
        )
        return True


class DryRunAaveExecutor(AaveExecutor):
    """Records Aave withdrawals and deposits instead of submitting them."""

    def __init__(self) -> None:
        self.requests: list[TransferRequest] = []

    def withdraw(
        self,
        lending_pool_address: str,
        data_provider_address: str,
        token_address: str,
        amount: int,
    ) -> bool:
        logger.info("[dry-run] Aave withdraw of %d %s from %s", amount, token_address, lending_pool_address)
        self.requests.append(
            TransferRequest("withdraw", token_address, amount, lending_pool_address, "safe")
        )
        return True

    def deposit(
        self,
        lending_pool_address: str,
        data_provider_address: str,
        token_address: str,
        amount: int,
    ) -> bool:
        logger.info("[dry-run] Aave deposit of %d %s into %s", amount, token_address, lending_pool_address)
        self.requests.append(
            TransferRequest("deposit", token_address, amount, "safe", lending_pool_address)
        )
        return True


class StaticAccessControl(AccessControl):
    """Fixed set of administrator addresses, compared case-insensitively."""

    def __init__(self, admins: Iterable[str]) -> None:
        self._admins = frozenset(a.lower() for a in admins if a)

    def is_admin(self, caller: str) -> bool:
        return bool(caller) and caller.lower() in self._admins
