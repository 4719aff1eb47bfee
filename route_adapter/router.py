"""Find swap routes and splice the swap between a withdraw and a deposit."""

import logging
from typing import Optional, Protocol

import requests

from tx_engine.deadline import Deadline
from tx_engine.encoder import (
    encode,
    pure_address,
    pure_address_vector,
    pure_bool_vector,
    pure_u64,
)
from tx_engine.errors import (
    ConstructionError,
    EncodingError,
    NetworkError,
    NoRouteFound,
    TimedOut,
)
from tx_engine.models import Operation, ResultArg
from tx_engine.objects import normalize_address, normalize_type_tag

from .models import PoolHop, Route, SwapDirection

logger = logging.getLogger(__name__)

PPM = 1_000_000
SWAP_MODULE = "router"
SWAP_FUNCTION = "swap"


class RouteFinder(Protocol):
    def find(
        self,
        from_asset: str,
        to_asset: str,
        amount: int,
        direction: SwapDirection,
        deadline: Deadline,
    ) -> Optional[Route]:
        ...


class HttpRouteFinder:
    """Route lookups against an aggregator ``find_routes`` HTTP endpoint."""

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        providers: Optional[str] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._providers = providers

    def find(
        self,
        from_asset: str,
        to_asset: str,
        amount: int,
        direction: SwapDirection,
        deadline: Deadline,
    ) -> Optional[Route]:
        params = {
            "from": from_asset,
            "target": to_asset,
            "amount": str(amount),
            "by_amount_in": "true" if direction == SwapDirection.EXACT_IN else "false",
        }
        if self._providers:
            params["providers"] = self._providers

        timeout = deadline.check("route lookup")
        try:
            response = self._session.get(
                f"{self._base_url}/find_routes", params=params, timeout=timeout
            )
        except requests.Timeout as exc:
            raise TimedOut("Route lookup timed out.", operation="route lookup") from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Route lookup failed: {exc}", operation="route lookup") from exc

        if response.status_code >= 500:
            raise NetworkError(
                f"Routing service returned HTTP {response.status_code}.",
                operation="route lookup",
            )
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise NoRouteFound(
                f"Routing service refused the lookup with HTTP {response.status_code}.",
                operation="route lookup",
                asset=from_asset,
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise NetworkError(
                "Routing service returned a non-JSON body.", operation="route lookup"
            ) from exc
        return parse_route(body, from_asset, to_asset, direction)


def parse_route(
    body: dict, from_asset: str, to_asset: str, direction: SwapDirection
) -> Optional[Route]:
    try:
        return _parse_route(body, from_asset, to_asset, direction)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise NoRouteFound(
            "Malformed route response.",
            operation="route lookup",
            asset=from_asset,
            payload=body,
        ) from exc


def _parse_route(
    body: dict, from_asset: str, to_asset: str, direction: SwapDirection
) -> Optional[Route]:
    if body.get("code", 200) != 200:
        return None
    data = body.get("data") or {}
    hops = []
    for candidate in data.get("routes") or ():
        for hop in candidate.get("path") or ():
            hops.append(
                PoolHop(
                    pool_id=normalize_address(hop["id"]),
                    provider=str(hop.get("provider", "")),
                    from_asset=hop.get("from", from_asset),
                    to_asset=hop.get("target", to_asset),
                    a_to_b=bool(hop.get("direction", True)),
                    amount_in=int(hop.get("amount_in", 0)),
                    amount_out=int(hop.get("amount_out", 0)),
                )
            )
    if not hops:
        return None
    return Route(
        from_asset=from_asset,
        to_asset=to_asset,
        direction=direction,
        amount_in=int(data.get("amount_in", 0)),
        amount_out=int(data.get("amount_out", 0)),
        hops=tuple(hops),
        price_impact=float(data.get("deviation_ratio", 0.0)),
    )


def find_route(
    finder: RouteFinder,
    from_asset: str,
    to_asset: str,
    amount: int,
    direction: SwapDirection,
    deadline: Deadline,
) -> Route:
    from_tag = normalize_type_tag(from_asset)
    to_tag = normalize_type_tag(to_asset)
    if from_tag == to_tag:
        raise ConstructionError(
            "Swap requires two distinct assets.", operation="swap", asset=from_asset
        )
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ConstructionError(
            "Swap amount must be a positive integer.",
            operation="swap",
            asset=from_asset,
            payload=amount,
        )

    route = finder.find(from_asset, to_asset, amount, direction, deadline)
    if route is None or not route.hops or route.amount_out <= 0:
        logger.info("No route %s -> %s for %s", from_asset, to_asset, amount)
        raise NoRouteFound(
            f"No route from {from_asset} to {to_asset} for {amount}.",
            asset=from_asset,
        )
    logger.info(
        "Route %s -> %s: %d hop(s), out=%d, impact=%.4f",
        from_asset,
        to_asset,
        len(route.hops),
        route.amount_out,
        route.price_impact,
    )
    return route


def minimum_output(route: Route, slippage: float, fee_rate: float) -> int:
    """Lowest acceptable output after the overlay fee and slippage bound."""

    fee_ppm = to_ppm(fee_rate, "fee rate")
    slippage_ppm = to_ppm(slippage, "slippage")
    after_fee = route.amount_out * (PPM - fee_ppm) // PPM
    return after_fee * (PPM - slippage_ppm) // PPM


def splice_swap(
    route: Route,
    input_coin: ResultArg,
    slippage: float,
    fee_rate: float,
    fee_receiver: str,
    package: str,
) -> Operation:
    """Swap operation that consumes ``input_coin`` and outputs the target coin."""

    min_out = minimum_output(route, slippage, fee_rate)
    return encode(
        package,
        SWAP_MODULE,
        SWAP_FUNCTION,
        [
            input_coin,
            pure_address_vector(route.pool_ids),
            pure_bool_vector(hop.a_to_b for hop in route.hops),
            pure_u64(min_out),
            pure_u64(to_ppm(fee_rate, "fee rate")),
            pure_address(fee_receiver),
        ],
        [route.from_asset, route.to_asset],
    )


def to_ppm(fraction: float, label: str) -> int:
    if not 0 <= fraction < 1:
        raise EncodingError(f"{label} must be within [0, 1).", payload=fraction)
    return int(round(fraction * PPM))
