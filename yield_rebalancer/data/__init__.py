"""Collaborator adapters for APY oracles, the Safe, Aave and access control."""

from yield_rebalancer.data.provider_factory import Adapters, create_adapters

__all__ = ["Adapters", "create_adapters"]
