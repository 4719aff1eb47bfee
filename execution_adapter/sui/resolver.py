"""Resolve a built unit into ``TransactionData`` the ledger can deserialize.

The builder only records object ids. Before a dry run the ledger needs each
input's current version and digest (or initial shared version), the
reference gas price and the coins that pay for gas.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from tx_engine.deadline import Deadline
from tx_engine.errors import ConstructionError, ObjectReferenceError
from tx_engine.models import (
    GasData,
    InputObject,
    ObjectArg,
    ObjectRef,
    TransactionData,
    TransactionUnit,
)
from tx_engine.objects import SUI_COIN_TYPE

from .client import LedgerClient
from .models import CoinBalance

logger = logging.getLogger(__name__)

MAX_GAS_OBJECTS = 256


def object_ids(unit: TransactionUnit) -> Tuple[str, ...]:
    """Object ids referenced by ``unit``, deduplicated in order of first use."""

    seen: List[str] = []
    for operation in unit.operations:
        for argument in operation.arguments:
            if isinstance(argument, ObjectArg) and argument.object_id not in seen:
                seen.append(argument.object_id)
    return tuple(seen)


def resolve_objects(
    unit: TransactionUnit, ledger: LedgerClient, deadline: Deadline
) -> Tuple[InputObject, ...]:
    ids = object_ids(unit)
    if not ids:
        return ()
    found = {item.object_id: item for item in ledger.get_objects(ids, deadline)}
    missing = [object_id for object_id in ids if object_id not in found]
    if missing:
        raise ObjectReferenceError(
            f"Objects not found on the ledger: {', '.join(missing)}.", payload=missing
        )
    return tuple(found[object_id].input_ref() for object_id in ids)


def select_gas(
    coins: Iterable[CoinBalance],
    budget: int,
    exclude: Iterable[str] = (),
) -> Tuple[ObjectRef, ...]:
    """Largest coins first until their balance covers ``budget``."""

    excluded = set(exclude)
    chosen: List[ObjectRef] = []
    total = 0
    for coin in sorted(coins, key=lambda item: item.balance, reverse=True):
        if coin.ref.object_id in excluded:
            continue
        chosen.append(coin.ref)
        total += coin.balance
        if total >= budget:
            return tuple(chosen)
        if len(chosen) == MAX_GAS_OBJECTS:
            break
    raise ConstructionError(
        f"SUI coins cover {total} of gas budget {budget}.",
        operation="gas",
        asset=SUI_COIN_TYPE,
        payload={"available": total, "budget": budget},
    )


def resolve(
    unit: TransactionUnit,
    ledger: LedgerClient,
    deadline: Deadline,
    expiration_epoch: Optional[int] = None,
) -> TransactionData:
    objects = resolve_objects(unit, ledger, deadline)
    price = ledger.reference_gas_price(deadline)
    payment = select_gas(
        ledger.gas_coins(unit.sender, deadline),
        unit.gas_budget,
        exclude=(item.object_id for item in objects),
    )
    logger.debug(
        "Resolved %d input object(s), %d gas coin(s) at price %d",
        len(objects),
        len(payment),
        price,
    )
    return TransactionData(
        unit=unit,
        objects=objects,
        gas=GasData(payment=payment, owner=unit.sender, price=price, budget=unit.gas_budget),
        expiration_epoch=expiration_epoch,
    )
