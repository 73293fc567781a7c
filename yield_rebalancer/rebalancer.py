"""Administrator-facing rebalancer: registry and engine behind one access check."""

from __future__ import annotations

import logging

from yield_rebalancer.config import RebalancerConfig
from yield_rebalancer.data.provider_factory import Adapters, create_adapters
from yield_rebalancer.data.state_store import JsonStateStore
from yield_rebalancer.engine.decision_engine import RebalanceDecisionEngine
from yield_rebalancer.engine.journal import RebalanceAttempt
from yield_rebalancer.errors import Unauthorized
from yield_rebalancer.protocol.gating import RebalanceDecision
from yield_rebalancer.protocol.parameters import RebalanceParameters
from yield_rebalancer.protocol.pool import AaveMarket, Pool
from yield_rebalancer.protocol.registry import PoolRegistry

logger = logging.getLogger(__name__)


class YieldRebalancer:
    """Pool registration, balance tracking and gated rebalancing.

    Every mutating call takes the caller's address and requires the
    administrator capability; reads are open.
    """

    def __init__(self, registry: PoolRegistry, engine: RebalanceDecisionEngine) -> None:
        self.registry = registry
        self.engine = engine

    def _require_admin(self, caller: str) -> None:
        if not self.engine.access_control.is_admin(caller):
            logger.warning("Rejected registry change from non-administrator %s", caller)
            raise Unauthorized(caller)

    # Registry -----------------------------------------------------------

    def register_liquidity_pool(
        self,
        caller: str,
        pool_id: str,
        name: str,
        token_address: str,
        apy_oracle_address: str,
        is_aave_pool: bool,
    ) -> Pool:
        self._require_admin(caller)
        return self.registry.register_liquidity_pool(
            pool_id, name, token_address, apy_oracle_address, is_aave_pool
        )

    def update_pool_balance(self, caller: str, pool_id: str, new_balance: int) -> Pool:
        self._require_admin(caller)
        return self.registry.update_pool_balance(pool_id, new_balance)

    def get_pool_details(self, pool_id: str) -> Pool:
        return self.registry.get_pool_details(pool_id)

    # Parameters ---------------------------------------------------------

    @property
    def min_rebalance_threshold(self) -> int:
        return self.engine.min_rebalance_threshold

    @property
    def safety_margin_applied(self) -> int:
        return self.engine.safety_margin_applied

    def set_min_rebalance_threshold(self, caller: str, value: int) -> RebalanceParameters:
        return self.engine.set_min_rebalance_threshold(caller, value)

    def set_safety_margin_applied(self, caller: str, value: int) -> RebalanceParameters:
        return self.engine.set_safety_margin_applied(caller, value)

    # Rebalancing --------------------------------------------------------

    def evaluate_rebalance(self, source_pool_id: str, target_pool_id: str) -> RebalanceDecision:
        return self.engine.evaluate_rebalance(source_pool_id, target_pool_id)

    def execute_rebalance(
        self, caller: str, source_pool_id: str, target_pool_id: str, amount: int
    ) -> RebalanceAttempt:
        return self.engine.execute_rebalance(caller, source_pool_id, target_pool_id, amount)

    def close(self) -> None:
        self.engine.close()


def create_rebalancer(
    config: RebalancerConfig,
    adapters: Adapters | None = None,
    use_onchain: bool = False,
) -> YieldRebalancer:
    """Wire a :class:`YieldRebalancer` from configuration.

    Parameters
    ----------
    config : RebalancerConfig
        Deployment settings.
    adapters : Adapters | None
        Pre-built collaborators; created with :func:`create_adapters` when
        omitted.
    use_onchain : bool
        Passed to :func:`create_adapters`.
    """
    if adapters is None:
        adapters = create_adapters(config, use_onchain=use_onchain)

    store = JsonStateStore(config.state_path) if config.state_path else None
    if store is None:
        logger.warning("No state path configured; pools and parameters will not survive a restart")

    aave_market = None
    if config.has_aave_market:
        aave_market = AaveMarket(
            lending_pool_address=config.aave_lending_pool_address,
            data_provider_address=config.aave_data_provider_address,
        )

    registry = PoolRegistry(aave_market=aave_market, store=store)
    engine = RebalanceDecisionEngine(
        registry=registry,
        oracle=adapters.oracle,
        safe=adapters.safe,
        aave=adapters.aave,
        access_control=adapters.access_control,
        parameters=RebalanceParameters(
            min_rebalance_threshold=config.min_rebalance_threshold,
            safety_margin_applied=config.safety_margin_applied,
        ),
        store=store,
        execution_timeout=config.execution_timeout,
    )
    return YieldRebalancer(registry, engine)
