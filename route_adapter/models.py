"""Swap route models returned by the routing service."""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class SwapDirection(Enum):
    EXACT_IN = "EXACT_IN"
    EXACT_OUT = "EXACT_OUT"


@dataclass(frozen=True)
class PoolHop:
    pool_id: str
    provider: str
    from_asset: str
    to_asset: str
    a_to_b: bool
    amount_in: int
    amount_out: int


@dataclass(frozen=True)
class Route:
    from_asset: str
    to_asset: str
    direction: SwapDirection
    amount_in: int
    amount_out: int
    hops: Tuple[PoolHop, ...]
    price_impact: float = 0.0

    @property
    def pool_ids(self) -> Tuple[str, ...]:
        return tuple(hop.pool_id for hop in self.hops)
