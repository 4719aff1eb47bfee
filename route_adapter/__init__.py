from .models import PoolHop, Route, SwapDirection
from .router import (
    HttpRouteFinder,
    RouteFinder,
    find_route,
    minimum_output,
    parse_route,
    splice_swap,
)

__all__ = [
    "HttpRouteFinder",
    "PoolHop",
    "Route",
    "RouteFinder",
    "SwapDirection",
    "find_route",
    "minimum_output",
    "parse_route",
    "splice_swap",
]
