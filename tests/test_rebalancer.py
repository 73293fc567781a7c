"""End-to-end tests through the administrator-facing facade."""

from collections.abc import Iterator
from pathlib import Path

import pytest

from yield_rebalancer.config import RebalancerConfig
from yield_rebalancer.data.provider_factory import Adapters
from yield_rebalancer.data.static_adapters import (
    DryRunAaveExecutor,
    DryRunSafeExecutor,
    StaticAccessControl,
    StaticApyOracle,
)
from yield_rebalancer.errors import (
    DuplicateIdentifier,
    TargetApyNotHigher,
    ThresholdNotMet,
    Unauthorized,
    UnknownPool,
)
from yield_rebalancer.rebalancer import YieldRebalancer, create_rebalancer

ADMIN = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
OUTSIDER = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
ORACLE = "0x90F79bf6EB2c4f870365E785982E1f101E93b906"


def _config(tmp_path: Path | None = None, **overrides) -> RebalancerConfig:
    values = dict(
        admin_addresses=(ADMIN,),
        aave_lending_pool_address="0x87870Bca3F3fD6335C3F4ce8392D69350B4fA4E2",
        aave_data_provider_address="0x7B4EB56E7CD4b454BA8ff71E4518426369a138a3",
        state_path=str(tmp_path / "state.json") if tmp_path else None,
    )
    values.update(overrides)
    return RebalancerConfig(**values)


def _adapters(oracle: StaticApyOracle) -> Adapters:
    return Adapters(
        oracle=oracle,
        safe=DryRunSafeExecutor(),
        aave=DryRunAaveExecutor(),
        access_control=StaticAccessControl([ADMIN]),
    )


@pytest.fixture
def oracle() -> StaticApyOracle:
    return StaticApyOracle({"pool1": 300, "pool2": 800})


@pytest.fixture
def rebalancer(oracle: StaticApyOracle) -> Iterator[YieldRebalancer]:
    rebalancer = create_rebalancer(_config(), adapters=_adapters(oracle))
    yield rebalancer
    rebalancer.close()


class TestRegistration:
    def test_register_and_read(self, rebalancer: YieldRebalancer) -> None:
        rebalancer.register_liquidity_pool(ADMIN, "pool1", "Test Pool", USDC, ORACLE, False)
        pool = rebalancer.get_pool_details("pool1")
        assert pool.name == "Test Pool"
        assert pool.token_address == USDC
        assert pool.apy_oracle_address == ORACLE
        assert pool.is_aave_pool is False
        assert pool.current_balance == 0

    def test_register_aave_pool(self, rebalancer: YieldRebalancer) -> None:
        rebalancer.register_liquidity_pool(ADMIN, "aave", "Aave USDC", USDC, ORACLE, True)
        assert rebalancer.get_pool_details("aave").is_aave_pool is True

    def test_duplicate_rejected(self, rebalancer: YieldRebalancer) -> None:
        rebalancer.register_liquidity_pool(ADMIN, "pool1", "Test Pool", USDC, ORACLE, False)
        with pytest.raises(DuplicateIdentifier):
            rebalancer.register_liquidity_pool(ADMIN, "pool1", "Other", USDC, ORACLE, False)
        assert rebalancer.get_pool_details("pool1").name == "Test Pool"

    def test_outsider_cannot_register(self, rebalancer: YieldRebalancer) -> None:
        with pytest.raises(Unauthorized):
            rebalancer.register_liquidity_pool(OUTSIDER, "pool1", "Test Pool", USDC, ORACLE, False)
        with pytest.raises(UnknownPool):
            rebalancer.get_pool_details("pool1")

    def test_outsider_cannot_update_balance(self, rebalancer: YieldRebalancer) -> None:
        rebalancer.register_liquidity_pool(ADMIN, "pool1", "Test Pool", USDC, ORACLE, False)
        with pytest.raises(Unauthorized):
            rebalancer.update_pool_balance(OUTSIDER, "pool1", 1000)
        assert rebalancer.get_pool_details("pool1").current_balance == 0

    def test_update_balance(self, rebalancer: YieldRebalancer) -> None:
        rebalancer.register_liquidity_pool(ADMIN, "pool1", "Test Pool", USDC, ORACLE, False)
        rebalancer.update_pool_balance(ADMIN, "pool1", 1000)
        assert rebalancer.get_pool_details("pool1").current_balance == 1000


class TestRebalanceFlow:
    @pytest.fixture(autouse=True)
    def _pools(self, rebalancer: YieldRebalancer) -> None:
        rebalancer.register_liquidity_pool(ADMIN, "pool1", "Test Pool", USDC, ORACLE, False)
        rebalancer.register_liquidity_pool(ADMIN, "pool2", "Test Pool2", USDC, ORACLE, False)
        rebalancer.update_pool_balance(ADMIN, "pool1", 1000)

    def test_rebalance_moves_funds(self, rebalancer: YieldRebalancer) -> None:
        rebalancer.execute_rebalance(ADMIN, "pool1", "pool2", 500)
        assert rebalancer.get_pool_details("pool1").current_balance == 500
        assert rebalancer.get_pool_details("pool2").current_balance == 500

    def test_lower_target_apy_rejected(self, rebalancer: YieldRebalancer, oracle: StaticApyOracle) -> None:
        oracle.set_apy("pool2", 200)
        with pytest.raises(TargetApyNotHigher):
            rebalancer.execute_rebalance(ADMIN, "pool1", "pool2", 500)

    def test_threshold_rejection(self, rebalancer: YieldRebalancer) -> None:
        rebalancer.set_min_rebalance_threshold(ADMIN, 600)
        assert rebalancer.min_rebalance_threshold == 600
        with pytest.raises(ThresholdNotMet):
            rebalancer.execute_rebalance(ADMIN, "pool1", "pool2", 500)

    def test_margin_setter(self, rebalancer: YieldRebalancer) -> None:
        rebalancer.set_safety_margin_applied(ADMIN, 25)
        assert rebalancer.safety_margin_applied == 25

    def test_evaluate(self, rebalancer: YieldRebalancer) -> None:
        decision = rebalancer.evaluate_rebalance("pool1", "pool2")
        assert decision.approved is True
        assert decision.adjusted_gain == 490


class TestCreateRebalancer:
    def test_config_parameters_applied(self, oracle: StaticApyOracle) -> None:
        rebalancer = create_rebalancer(
            _config(min_rebalance_threshold=250, safety_margin_applied=15), adapters=_adapters(oracle)
        )
        try:
            assert rebalancer.min_rebalance_threshold == 250
            assert rebalancer.safety_margin_applied == 15
        finally:
            rebalancer.close()

    def test_default_adapters_are_dry_run(self) -> None:
        rebalancer = create_rebalancer(_config())
        try:
            assert isinstance(rebalancer.engine.safe, DryRunSafeExecutor)
            assert rebalancer.engine.access_control.is_admin(ADMIN)
        finally:
            rebalancer.close()

    def test_aave_pool_needs_market(self, oracle: StaticApyOracle) -> None:
        config = _config(aave_lending_pool_address=None, aave_data_provider_address=None)
        rebalancer = create_rebalancer(config, adapters=_adapters(oracle))
        try:
            with pytest.raises(ValueError, match="Aave market"):
                rebalancer.register_liquidity_pool(ADMIN, "aave", "Aave USDC", USDC, ORACLE, True)
        finally:
            rebalancer.close()

    def test_state_survives_restart(self, tmp_path: Path, oracle: StaticApyOracle) -> None:
        first = create_rebalancer(_config(tmp_path), adapters=_adapters(oracle))
        first.register_liquidity_pool(ADMIN, "pool1", "Test Pool", USDC, ORACLE, False)
        first.register_liquidity_pool(ADMIN, "pool2", "Test Pool2", USDC, ORACLE, True)
        first.update_pool_balance(ADMIN, "pool1", 1000)
        first.execute_rebalance(ADMIN, "pool1", "pool2", 400)
        first.set_min_rebalance_threshold(ADMIN, 200)
        first.close()

        second = create_rebalancer(_config(tmp_path), adapters=_adapters(oracle))
        try:
            assert second.get_pool_details("pool1").current_balance == 600
            pool2 = second.get_pool_details("pool2")
            assert pool2.current_balance == 400
            assert pool2.is_aave_pool is True
            # Stored parameters win over the configured ones
            assert second.min_rebalance_threshold == 200
        finally:
            second.close()
