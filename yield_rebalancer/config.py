"""Runtime configuration read from the environment and an optional .env file."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from yield_rebalancer.data.constants import (
    DEFAULT_EXECUTION_TIMEOUT,
    DEFAULT_MIN_REBALANCE_THRESHOLD,
    DEFAULT_SAFETY_MARGIN_APPLIED,
)

logger = logging.getLogger(__name__)

APY_SOURCES = ("oracle", "aave")


def load_env_file(path: str | Path) -> None:
    """Copy ``KEY=value`` lines into ``os.environ`` without overriding it."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for line in env_path.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            key, _, value = line.partition("=")
            os.environ.setdefault(key.strip(), value.strip())


def _split_list(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _parse_custody(raw: str) -> dict[str, str]:
    """Parse ``pool1=0xabc,pool2=0xdef``."""
    custody: dict[str, str] = {}
    for item in _split_list(raw):
        pool_id, sep, address = item.partition("=")
        if not sep or not pool_id.strip() or not address.strip():
            raise ValueError(f"Malformed POOL_CUSTODY_ADDRESSES entry: {item!r}")
        custody[pool_id.strip()] = address.strip()
    return custody


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    return int(raw) if raw else default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    return float(raw) if raw else default


@dataclass(frozen=True)
class RebalancerConfig:
    """Deployment settings for a rebalancer instance."""

    rpc_url: str | None = None
    safe_address: str | None = None
    admin_addresses: tuple[str, ...] = ()
    aave_lending_pool_address: str | None = None
    aave_data_provider_address: str | None = None
    executor_private_key: str | None = field(default=None, repr=False)
    pool_custody_addresses: dict[str, str] = field(default_factory=dict)
    state_path: str | None = None
    min_rebalance_threshold: int = DEFAULT_MIN_REBALANCE_THRESHOLD
    safety_margin_applied: int = DEFAULT_SAFETY_MARGIN_APPLIED
    execution_timeout: float = DEFAULT_EXECUTION_TIMEOUT
    apy_source: str = "oracle"

    def __post_init__(self) -> None:
        if self.apy_source not in APY_SOURCES:
            raise ValueError(f"apy_source must be one of {APY_SOURCES}, got {self.apy_source!r}")
        if self.execution_timeout <= 0:
            raise ValueError("execution_timeout must be positive")

    @property
    def has_aave_market(self) -> bool:
        return bool(self.aave_lending_pool_address and self.aave_data_provider_address)

    @property
    def can_execute_onchain(self) -> bool:
        return bool(self.rpc_url and self.safe_address and self.executor_private_key)


def load_config(env_file: str | Path | None = None) -> RebalancerConfig:
    """Build a :class:`RebalancerConfig` from the environment.

    Parameters
    ----------
    env_file : str | Path | None
        Optional ``.env`` file read first; variables already set in the
        environment take precedence.
    """
    if env_file is not None:
        load_env_file(env_file)

    def _opt(name: str) -> str | None:
        value = os.environ.get(name, "").strip()
        return value or None

    config = RebalancerConfig(
        rpc_url=_opt("ETH_RPC_URL"),
        safe_address=_opt("SAFE_CONTRACT_ADDRESS"),
        admin_addresses=_split_list(os.environ.get("ADMIN_ADDRESS", "")),
        aave_lending_pool_address=_opt("AAVE_LENDING_POOL_ADDRESS"),
        aave_data_provider_address=_opt("AAVE_DATA_PROVIDER_ADDRESS"),
        executor_private_key=_opt("EXECUTOR_PRIVATE_KEY"),
        pool_custody_addresses=_parse_custody(os.environ.get("POOL_CUSTODY_ADDRESSES", "")),
        state_path=_opt("REBALANCER_STATE_PATH"),
        min_rebalance_threshold=_env_int("MIN_REBALANCE_THRESHOLD_BPS", DEFAULT_MIN_REBALANCE_THRESHOLD),
        safety_margin_applied=_env_int("SAFETY_MARGIN_BPS", DEFAULT_SAFETY_MARGIN_APPLIED),
        execution_timeout=_env_float("EXECUTION_TIMEOUT_SECONDS", DEFAULT_EXECUTION_TIMEOUT),
        apy_source=_opt("APY_SOURCE") or "oracle",
    )
    logger.debug("Loaded config: %s", config)
    return config
