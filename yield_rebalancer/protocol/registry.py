"""Authoritative store of pool metadata and balances."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator

import pandas as pd

from yield_rebalancer.data.state_store import JsonStateStore
from yield_rebalancer.errors import (
    DuplicateIdentifier,
    InsufficientBalance,
    UnknownPool,
)
from yield_rebalancer.protocol.parameters import require_non_negative_int
from yield_rebalancer.protocol.pool import AaveMarket, AaveVenue, GenericVenue, Pool, Venue

logger = logging.getLogger(__name__)


class PoolRegistry:
    """Pool id to :class:`Pool` mapping with optional durable backing.

    Parameters
    ----------
    aave_market : AaveMarket | None
        Aave contracts attached to pools registered with ``is_aave_pool``.
    store : JsonStateStore | None
        When given, pools are loaded from it on construction and every
        mutation is saved before it becomes visible in memory.
    """

    def __init__(
        self,
        aave_market: AaveMarket | None = None,
        store: JsonStateStore | None = None,
    ) -> None:
        self._aave_market = aave_market
        self._store = store
        self._lock = threading.RLock()
        self._pools: dict[str, Pool] = {}
        if store is not None:
            self._pools = {p.pool_id: p for p in store.load_pools()}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require(self, pool_id: str) -> Pool:
        pool = self._pools.get(pool_id)
        if pool is None:
            raise UnknownPool(pool_id)
        return pool

    def _commit(self, *updated: Pool) -> None:
        """Persist then publish; caller holds the lock."""
        pools = dict(self._pools)
        for pool in updated:
            pools[pool.pool_id] = pool
        if self._store is not None:
            self._store.save_pools(pools.values())
        self._pools = pools

    def _venue_for(self, token_address: str, is_aave_pool: bool) -> Venue:
        if not is_aave_pool:
            return GenericVenue(token_address=token_address)
        if self._aave_market is None:
            raise ValueError("Cannot register an Aave pool: no Aave market configured")
        return AaveVenue(
            token_address=token_address,
            lending_pool_address=self._aave_market.lending_pool_address,
            data_provider_address=self._aave_market.data_provider_address,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def register_liquidity_pool(
        self,
        pool_id: str,
        name: str,
        token_address: str,
        apy_oracle_address: str,
        is_aave_pool: bool,
    ) -> Pool:
        """Create a pool with zero balance.

        Raises:
            DuplicateIdentifier: ``pool_id`` is already registered.
        """
        if not pool_id:
            raise ValueError("pool_id must be a non-empty string")
        venue = self._venue_for(token_address, is_aave_pool)
        pool = Pool(
            pool_id=pool_id,
            name=name,
            apy_oracle_address=apy_oracle_address,
            venue=venue,
        )
        with self._lock:
            if pool_id in self._pools:
                raise DuplicateIdentifier(pool_id)
            self._commit(pool)
        logger.info("Registered pool %s (%s, aave=%s)", pool_id, name, is_aave_pool)
        return pool

    def update_pool_balance(self, pool_id: str, new_balance: int) -> Pool:
        """Overwrite a pool's balance (initialisation and corrections)."""
        require_non_negative_int("new_balance", new_balance)
        with self._lock:
            pool = self._require(pool_id).with_balance(new_balance)
            self._commit(pool)
        logger.info("Set balance of pool %s to %d", pool_id, new_balance)
        return pool

    def get_pool_details(self, pool_id: str) -> Pool:
        with self._lock:
            return self._require(pool_id)

    def transfer_balance(self, source_pool_id: str, target_pool_id: str, amount: int) -> tuple[Pool, Pool]:
        """Move ``amount`` of tracked balance between two pools in one commit."""
        require_non_negative_int("amount", amount)
        with self._lock:
            source = self._require(source_pool_id)
            target = self._require(target_pool_id)
            if amount > source.current_balance:
                raise InsufficientBalance(source_pool_id, source.current_balance, amount)
            if source_pool_id == target_pool_id:
                return source, target
            source = source.with_balance(source.current_balance - amount)
            target = target.with_balance(target.current_balance + amount)
            self._commit(source, target)
        return source, target

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def pool_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._pools)

    def total_balance(self) -> int:
        with self._lock:
            return sum(p.current_balance for p in self._pools.values())

    def to_dataframe(self) -> pd.DataFrame:
        with self._lock:
            rows = [p.to_dict() for p in self._pools.values()]
        return pd.DataFrame(rows)

    def __contains__(self, pool_id: object) -> bool:
        return pool_id in self._pools

    def __len__(self) -> int:
        return len(self._pools)

    def __iter__(self) -> Iterator[Pool]:
        with self._lock:
            return iter(list(self._pools.values()))
