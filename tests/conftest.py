"""Shared fixtures: a registry, static adapters and an engine wired to them."""

from collections.abc import Iterator

import pytest

from yield_rebalancer.data.static_adapters import (
    DryRunAaveExecutor,
    DryRunSafeExecutor,
    StaticAccessControl,
    StaticApyOracle,
)
from yield_rebalancer.engine.decision_engine import RebalanceDecisionEngine
from yield_rebalancer.protocol.parameters import RebalanceParameters
from yield_rebalancer.protocol.pool import AaveMarket
from yield_rebalancer.protocol.registry import PoolRegistry

ADMIN = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
OUTSIDER = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
ORACLE = "0x90F79bf6EB2c4f870365E785982E1f101E93b906"
AAVE_MARKET = AaveMarket(
    lending_pool_address="0x87870Bca3F3fD6335C3F4ce8392D69350B4fA4E2",
    data_provider_address="0x7B4EB56E7CD4b454BA8ff71E4518426369a138a3",
)


@pytest.fixture
def admin() -> str:
    return ADMIN


@pytest.fixture
def outsider() -> str:
    return OUTSIDER


@pytest.fixture
def usdc() -> str:
    return USDC


@pytest.fixture
def oracle_address() -> str:
    return ORACLE


@pytest.fixture
def aave_market() -> AaveMarket:
    return AAVE_MARKET


@pytest.fixture
def registry() -> PoolRegistry:
    return PoolRegistry(aave_market=AAVE_MARKET)


@pytest.fixture
def oracle() -> StaticApyOracle:
    # 500 bps raw gain pool1 -> pool2, well above the default 100 + 10
    return StaticApyOracle({"pool1": 300, "pool2": 800})


@pytest.fixture
def safe() -> DryRunSafeExecutor:
    return DryRunSafeExecutor()


@pytest.fixture
def aave() -> DryRunAaveExecutor:
    return DryRunAaveExecutor()


@pytest.fixture
def engine(
    registry: PoolRegistry,
    oracle: StaticApyOracle,
    safe: DryRunSafeExecutor,
    aave: DryRunAaveExecutor,
) -> Iterator[RebalanceDecisionEngine]:
    engine = RebalanceDecisionEngine(
        registry=registry,
        oracle=oracle,
        safe=safe,
        aave=aave,
        access_control=StaticAccessControl([ADMIN]),
        parameters=RebalanceParameters(min_rebalance_threshold=100, safety_margin_applied=10),
        execution_timeout=1.0,
    )
    yield engine
    engine.close()


@pytest.fixture
def funded_pools(registry: PoolRegistry) -> PoolRegistry:
    """pool1 (generic, 1000) and pool2 (generic, 0)."""
    registry.register_liquidity_pool("pool1", "Test Pool", USDC, ORACLE, False)
    registry.register_liquidity_pool("pool2", "Test Pool2", USDC, ORACLE, False)
    registry.update_pool_balance("pool1", 1000)
    return registry
