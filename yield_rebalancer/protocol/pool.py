"""Pool records and the venue each pool's capital is held in."""

from dataclasses import dataclass, replace
from typing import Any, Union


@dataclass(frozen=True)
class AaveMarket:
    """Aave V3 contracts shared by every Aave-backed pool."""

    lending_pool_address: str
    data_provider_address: str


@dataclass(frozen=True)
class GenericVenue:
    """Capital held directly in Safe custody; moved by plain token transfer."""

    token_address: str


@dataclass(frozen=True)
class AaveVenue:
    """Capital supplied to an Aave lending pool on behalf of the Safe."""

    token_address: str
    lending_pool_address: str
    data_provider_address: str


Venue = Union[GenericVenue, AaveVenue]


@dataclass(frozen=True)
class Pool:
    """Snapshot of a registered liquidity pool.

    The venue is fixed at registration; only ``current_balance`` changes over
    a pool's life, and every change produces a new snapshot.
    """

    pool_id: str
    name: str
    apy_oracle_address: str
    venue: Venue
    current_balance: int = 0

    @property
    def token_address(self) -> str:
        return self.venue.token_address

    @property
    def is_aave_pool(self) -> bool:
        return isinstance(self.venue, AaveVenue)

    def with_balance(self, balance: int) -> "Pool":
        return replace(self, current_balance=balance)

    def to_dict(self) -> dict[str, Any]:
        """Flat representation used for persistence and DataFrame export."""
        data: dict[str, Any] = {
            "pool_id": self.pool_id,
            "name": self.name,
            "token_address": self.token_address,
            "apy_oracle_address": self.apy_oracle_address,
            "is_aave_pool": self.is_aave_pool,
            "current_balance": self.current_balance,
        }
        if isinstance(self.venue, AaveVenue):
            data["lending_pool_address"] = self.venue.lending_pool_address
            data["data_provider_address"] = self.venue.data_provider_address
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Pool":
        venue: Venue
        if data.get("is_aave_pool"):
            venue = AaveVenue(
                token_address=data["token_address"],
                lending_pool_address=data["lending_pool_address"],
                data_provider_address=data["data_provider_address"],
            )
        else:
            venue = GenericVenue(token_address=data["token_address"])
        return cls(
            pool_id=data["pool_id"],
            name=data["name"],
            apy_oracle_address=data["apy_oracle_address"],
            venue=venue,
            current_balance=int(data.get("current_balance", 0)),
        )
