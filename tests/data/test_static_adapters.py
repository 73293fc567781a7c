"""Tests for the static and dry-run adapters."""

import pytest

from yield_rebalancer.data.interfaces import (
    AaveExecutor,
    AccessControl,
    ApyOracle,
    SafeExecutor,
)
from yield_rebalancer.data.static_adapters import (
    DryRunAaveExecutor,
    DryRunSafeExecutor,
    StaticAccessControl,
    StaticApyOracle,
    TransferRequest,
)
from yield_rebalancer.errors import OracleUnavailable
from yield_rebalancer.protocol.pool import GenericVenue, Pool

USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"


def _pool(pool_id: str) -> Pool:
    return Pool(pool_id, pool_id, "0x90F79bf6EB2c4f870365E785982E1f101E93b906", GenericVenue(USDC))


class TestStaticApyOracle:
    def test_reads_mapping(self) -> None:
        oracle = StaticApyOracle({"pool1": 420})
        assert oracle.get_current_apy(_pool("pool1")) == 420

    def test_set_apy(self) -> None:
        oracle = StaticApyOracle()
        oracle.set_apy("pool1", 100)
        assert oracle.get_current_apy(_pool("pool1")) == 100

    def test_missing_reading_is_unavailable(self) -> None:
        with pytest.raises(OracleUnavailable):
            StaticApyOracle().get_current_apy(_pool("pool1"))


class TestDryRunExecutors:
    def test_safe_records_transfer(self) -> None:
        safe = DryRunSafeExecutor()
        assert safe.transfer(USDC, "pool1", "pool2", 500) is True
        assert safe.requests == [TransferRequest("transfer", USDC, 500, "pool1", "pool2")]

    def test_safe_records_collect_and_release(self) -> None:
        safe = DryRunSafeExecutor()
        assert safe.collect(USDC, "pool1", 5) is True
        assert safe.release(USDC, "pool2", 5) is True
        assert safe.requests == [
            TransferRequest("collect", USDC, 5, "pool1", "safe"),
            TransferRequest("release", USDC, 5, "safe", "pool2"),
        ]

    def test_aave_records_withdraw_and_deposit(self) -> None:
        aave = DryRunAaveExecutor()
        assert aave.withdraw("0xpool", "0xprovider", USDC, 10) is True
        assert aave.deposit("0xpool", "0xprovider", USDC, 10) is True
        assert [r.action for r in aave.requests] == ["withdraw", "deposit"]


class TestStaticAccessControl:
    def test_case_insensitive(self) -> None:
        acl = StaticAccessControl(["0xAbCdEf0000000000000000000000000000000001"])
        assert acl.is_admin("0xabcdef0000000000000000000000000000000001") is True

    def test_unknown_caller(self) -> None:
        acl = StaticAccessControl(["0x01"])
        assert acl.is_admin("0x02") is False
        assert acl.is_admin("") is False

    def test_empty_entries_ignored(self) -> None:
        assert StaticAccessControl(["", "0x01"]).is_admin("") is False


class TestInterfaceConformance:
    def test_types(self) -> None:
        assert isinstance(StaticApyOracle(), ApyOracle)
        assert isinstance(DryRunSafeExecutor(), SafeExecutor)
        assert isinstance(DryRunAaveExecutor(), AaveExecutor)
        assert isinstance(StaticAccessControl(()), AccessControl)
