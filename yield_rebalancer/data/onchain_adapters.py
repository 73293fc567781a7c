"""On-chain adapters for APY oracles, the Safe and Aave V3 via web3.py."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from web3 import Web3

from yield_rebalancer.data.constants import (
    AAVE_REFERRAL_CODE,
    BPS,
    RAY,
    SAFE_OPERATION_CALL,
    SECONDS_PER_YEAR,
    ZERO_ADDRESS,
)
from yield_rebalancer.data.contracts import (
    AAVE_POOL_ABI,
    APY_ORACLE_ABI,
    ERC20_ABI,
    POOL_DATA_PROVIDER_ABI,
    SAFE_ABI,
)
from yield_rebalancer.data.interfaces import (
    AaveExecutor,
    AccessControl,
    ApyOracle,
    SafeExecutor,
)
from yield_rebalancer.errors import OracleUnavailable
from yield_rebalancer.protocol.pool import AaveVenue, Pool

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _ray_to_float(ray: int) -> float:
    """Convert RAY (1e27) fixed-point to a decimal fraction."""
    return ray / float(RAY)


def _supply_rate_to_apy_bps(liquidity_rate_ray: int) -> int:
    """Compound Aave's per-second supply rate (an APR in RAY) into APY bps."""
    apr = _ray_to_float(liquidity_rate_ray)
    apy = (1.0 + apr / SECONDS_PER_YEAR) ** SECONDS_PER_YEAR - 1.0
    return int(round(apy * BPS))


class _ContractCache:
    """Lazily built contract objects keyed by address."""

    def __init__(self, w3: Web3, abi: list[dict[str, Any]]) -> None:
        self._w3 = w3
        self._abi = abi
        self._contracts: dict[str, Any] = {}

    def get(self, address: str) -> Any:
        key = address.lower()
        if key not in self._contracts:
            self._contracts[key] = self._w3.eth.contract(
                address=self._w3.to_checksum_address(address),
                abi=self._abi,
            )
        return self._contracts[key]


# ---------------------------------------------------------------------------
# APY oracles
# ---------------------------------------------------------------------------

class OnChainApyOracle(ApyOracle):
    """Reads ``getCurrentApy(poolId)`` from each pool's oracle contract."""

    def __init__(self, w3: Web3) -> None:
        self._oracles = _ContractCache(w3, APY_ORACLE_ABI)

    def get_current_apy(self, pool: Pool) -> int:
        try:
            oracle = self._oracles.get(pool.apy_oracle_address)
            return int(oracle.functions.getCurrentApy(pool.pool_id).call())
        except Exception as exc:
            logger.warning(
                "APY oracle %s failed for pool %s",
                pool.apy_oracle_address, pool.pool_id, exc_info=True,
            )
            raise OracleUnavailable(f"APY oracle unavailable for pool {pool.pool_id}") from exc


class AaveApyOracle(ApyOracle):
    """Derives Aave pools' APY from the reserve's current supply rate.

    Parameters
    ----------
    w3 : Web3
        Connected web3 instance.
    fallback : ApyOracle | None
        Oracle used for pools that are not Aave-backed.
    """

    def __init__(self, w3: Web3, fallback: ApyOracle | None = None) -> None:
        self._w3 = w3
        self._data_providers = _ContractCache(w3, POOL_DATA_PROVIDER_ABI)
        self._fallback = fallback

    def get_current_apy(self, pool: Pool) -> int:
        if not isinstance(pool.venue, AaveVenue):
            if self._fallback is None:
                raise OracleUnavailable(f"No APY source for non-Aave pool {pool.pool_id}")
            return self._fallback.get_current_apy(pool)

        try:
            provider = self._data_providers.get(pool.venue.data_provider_address)
            data = provider.functions.getReserveData(
                self._w3.to_checksum_address(pool.token_address),
            ).call()
        except Exception as exc:
            logger.warning("Aave reserve read failed for pool %s", pool.pool_id, exc_info=True)
            raise OracleUnavailable(f"Aave reserve data unavailable for pool {pool.pool_id}") from exc
        return _supply_rate_to_apy_bps(data[5])  # liquidityRate


# ---------------------------------------------------------------------------
# Safe execution
# ---------------------------------------------------------------------------

class SafeTransactor:
    """Submits single-call Safe transactions signed by an owner key.

    The sending account must be a Safe owner and the Safe threshold must be
    met by that owner alone; the approval is the pre-validated signature
    form (``r`` = owner address, ``s`` = 0, ``v`` = 1).
    """

    def __init__(
        self,
        w3: Web3,
        safe_address: str,
        private_key: str,
        receipt_timeout: float = 120.0,
    ) -> None:
        self._w3 = w3
        self._account = w3.eth.account.from_key(private_key)
        self._safe = w3.eth.contract(
            address=w3.to_checksum_address(safe_address),
            abi=SAFE_ABI,
        )
        self._receipt_timeout = receipt_timeout

    @property
    def w3(self) -> Web3:
        return self._w3

    @property
    def safe_address(self) -> str:
        return self._safe.address

    def _owner_signature(self) -> bytes:
        owner = bytes.fromhex(self._account.address[2:])
        return bytes(12) + owner + bytes(32) + b"\x01"

    def execute(self, to: str, data: str) -> bool:
        """Have the Safe call ``to`` with ``data``; True if mined successfully."""
        call = self._safe.functions.execTransaction(
            self._w3.to_checksum_address(to),
            0,
            data,
            SAFE_OPERATION_CALL,
            0,
            0,
            0,
            ZERO_ADDRESS,
            ZERO_ADDRESS,
            self._owner_signature(),
        )
        tx = call.build_transaction({
            "from": self._account.address,
            "nonce": self._w3.eth.get_transaction_count(self._account.address),
        })
        signed = self._account.sign_transaction(tx)
        tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
        receipt = self._w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=self._receipt_timeout
        )
        if receipt["status"] != 1:
            logger.warning("Safe transaction %s reverted", tx_hash.hex())
            return False
        return True


class SafeTransactionExecutor(SafeExecutor):
    """ERC-20 moves between pool custody addresses, executed by the Safe.

    Each custody address must have approved the Safe to spend the pool's
    token; capital leaves a custody address only through ``transferFrom``.

    Parameters
    ----------
    transactor : SafeTransactor
        Safe submission helper.
    custody_addresses : Mapping[str, str]
        Pool id to the address that holds that pool's capital.
    """

    def __init__(
        self,
        transactor: SafeTransactor,
        custody_addresses: Mapping[str, str],
    ) -> None:
        self._transactor = transactor
        self._custody = dict(custody_addresses)
        self._tokens = _ContractCache(transactor.w3, ERC20_ABI)

    def _custody_of(self, pool_id: str) -> str | None:
        address = self._custody.get(pool_id)
        if address is None:
            logger.warning("No custody address configured for pool %s", pool_id)
            return None
        return self._transactor.w3.to_checksum_address(address)

    def _transfer_from(self, token_address: str, holder: str, recipient: str, amount: int) -> bool:
        token = self._tokens.get(token_address)
        data = token.encode_abi("transferFrom", args=[holder, recipient, amount])
        return self._transactor.execute(token_address, data)

    def transfer(
        self,
        token_address: str,
        source_pool_id: str,
        target_pool_id: str,
        amount: int,
    ) -> bool:
        holder = self._custody_of(source_pool_id)
        recipient = self._custody_of(target_pool_id)
        if holder is None or recipient is None:
            return False
        logger.info(
            "Submitting Safe transfer of %d %s (%s -> %s)",
            amount, token_address, source_pool_id, target_pool_id,
        )
        return self._transfer_from(token_address, holder, recipient, amount)

    def collect(self, token_address: str, source_pool_id: str, amount: int) -> bool:
        holder = self._custody_of(source_pool_id)
        if holder is None:
            return False
        logger.info("Submitting Safe collection of %d %s from %s", amount, token_address, source_pool_id)
        return self._transfer_from(token_address, holder, self._transactor.safe_address, amount)

    def release(self, token_address: str, target_pool_id: str, amount: int) -> bool:
        recipient = self._custody_of(target_pool_id)
        if recipient is None:
            return False
        token = self._tokens.get(token_address)
        data = token.encode_abi("transfer", args=[recipient, amount])
        logger.info("Submitting Safe release of %d %s to %s", amount, token_address, target_pool_id)
        return self._transactor.execute(token_address, data)


class SafeAaveExecutor(AaveExecutor):
    """Aave V3 ``withdraw`` / ``supply`` executed by the Safe."""

    def __init__(self, transactor: SafeTransactor) -> None:
        self._transactor = transactor
        self._pools = _ContractCache(transactor.w3, AAVE_POOL_ABI)
        self._data_providers = _ContractCache(transactor.w3, POOL_DATA_PROVIDER_ABI)
        self._tokens = _ContractCache(transactor.w3, ERC20_ABI)

    def _supplied_balance(self, data_provider_address: str, token_address: str) -> int:
        w3 = self._transactor.w3
        provider = self._data_providers.get(data_provider_address)
        data = provider.functions.getUserReserveData(
            w3.to_checksum_address(token_address),
            self._transactor.safe_address,
        ).call()
        return int(data[0])  # currentATokenBalance

    def withdraw(
        self,
        lending_pool_address: str,
        data_provider_address: str,
        token_address: str,
        amount: int,
    ) -> bool:
        supplied = self._supplied_balance(data_provider_address, token_address)
        if supplied < amount:
            logger.warning(
                "Safe has %d supplied to Aave for %s, cannot withdraw %d",
                supplied, token_address, amount,
            )
            return False

        w3 = self._transactor.w3
        pool = self._pools.get(lending_pool_address)
        data = pool.encode_abi(
            "withdraw",
            args=[w3.to_checksum_address(token_address), amount, self._transactor.safe_address],
        )
        return self._transactor.execute(lending_pool_address, data)

    def deposit(
        self,
        lending_pool_address: str,
        data_provider_address: str,
        token_address: str,
        amount: int,
    ) -> bool:
        w3 = self._transactor.w3
        token = self._tokens.get(token_address)
        approve = token.encode_abi(
            "approve", args=[w3.to_checksum_address(lending_pool_address), amount]
        )
        if not self._transactor.execute(token_address, approve):
            return False

        pool = self._pools.get(lending_pool_address)
        supply = pool.encode_abi(
            "supply",
            args=[
                w3.to_checksum_address(token_address),
                amount,
                self._transactor.safe_address,
                AAVE_REFERRAL_CODE,
            ],
        )
        return self._transactor.execute(lending_pool_address, supply)


# ---------------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------------

class SafeOwnerAccessControl(AccessControl):
    """Treats the Safe's owners as administrators."""

    def __init__(self, w3: Web3, safe_address: str) -> None:
        self._w3 = w3
        self._safe = w3.eth.contract(
            address=w3.to_checksum_address(safe_address),
            abi=SAFE_ABI,
        )

    def is_admin(self, caller: str) -> bool:
        try:
            return bool(
                self._safe.functions.isOwner(self._w3.to_checksum_address(caller)).call()
            )
        except Exception:
            logger.warning("Safe owner check failed for %s", caller, exc_info=True)
            return False
