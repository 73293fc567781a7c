"""Factory for the collaborator adapters, selecting dry-run or on-chain."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

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
)

if TYPE_CHECKING:
    from yield_rebalancer.config import RebalancerConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Adapters:
    """The four collaborators a rebalance engine needs."""

    oracle: ApyOracle
    safe: SafeExecutor
    aave: AaveExecutor
    access_control: AccessControl


def _dry_run(config: RebalancerConfig) -> Adapters:
    return Adapters(
        oracle=StaticApyOracle(),
        safe=DryRunSafeExecutor(),
        aave=DryRunAaveExecutor(),
        access_control=StaticAccessControl(config.admin_addresses),
    )


def create_adapters(config: RebalancerConfig, use_onchain: bool = False) -> Adapters:
    """Create adapters for ``config``.

    Parameters
    ----------
    config : RebalancerConfig
        Deployment settings.
    use_onchain : bool
        If True, talk to the chain at ``config.rpc_url``. Execution stays
        dry-run unless a Safe address and executor key are also configured.

    Returns
    -------
    Adapters
        On-chain adapters where configured, dry-run/static ones otherwise.
    """
    if not use_onchain:
        return _dry_run(config)

    if not config.rpc_url:
        logger.warning("On-chain adapters requested but no RPC URL provided; using dry-run adapters")
        return _dry_run(config)

    from web3 import Web3

    from yield_rebalancer.data.onchain_adapters import (
        AaveApyOracle,
        OnChainApyOracle,
        SafeAaveExecutor,
        SafeOwnerAccessControl,
        SafeTransactionExecutor,
        SafeTransactor,
    )

    w3 = Web3(Web3.HTTPProvider(config.rpc_url))

    oracle: ApyOracle = OnChainApyOracle(w3)
    if config.apy_source == "aave":
        oracle = AaveApyOracle(w3, fallback=oracle)

    safe: SafeExecutor
    aave: AaveExecutor
    if config.can_execute_onchain:
        transactor = SafeTransactor(
            w3,
            config.safe_address,
            config.executor_private_key,
            receipt_timeout=config.execution_timeout,
        )
        safe = SafeTransactionExecutor(transactor, config.pool_custody_addresses)
        aave = SafeAaveExecutor(transactor)
    else:
        logger.warning("No Safe address or executor key configured; execution is dry-run")
        safe = DryRunSafeExecutor()
        aave = DryRunAaveExecutor()

    access_control: AccessControl
    if config.admin_addresses:
        access_control = StaticAccessControl(config.admin_addresses)
    elif config.safe_address:
        access_control = SafeOwnerAccessControl(w3, config.safe_address)
    else:
        logger.warning("No administrators configured; every mutating call will be rejected")
        access_control = StaticAccessControl(())

    return Adapters(oracle=oracle, safe=safe, aave=aave, access_control=access_control)
