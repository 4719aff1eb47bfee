"""Dry-run gate: no transaction is signed until its projected effects are checked."""

import logging
from typing import Iterable

from tx_engine.deadline import Deadline
from tx_engine.encoder import serialize_transaction, transaction_digest
from tx_engine.errors import SimulationFailed, SimulationMismatch
from tx_engine.models import SimulationResult, TransactionData
from tx_engine.objects import is_valid_address, normalize_address, normalize_type_tag

from .client import LedgerClient
from .models import BalanceExpectation, SimulationClearance

logger = logging.getLogger(__name__)


def simulate(
    transaction: TransactionData, ledger: LedgerClient, deadline: Deadline
) -> SimulationResult:
    tx_bytes = serialize_transaction(transaction)
    result = ledger.dry_run(tx_bytes, deadline)
    logger.info(
        "Dry run %s: success=%s changes=%d",
        transaction_digest(tx_bytes),
        result.success,
        len(result.balance_changes),
    )
    return result


def verify(
    transaction: TransactionData,
    result: SimulationResult,
    expectations: Iterable[BalanceExpectation] = (),
) -> SimulationClearance:
    if not result.success:
        raise SimulationFailed(
            f"Ledger rejected dry run: {result.error or 'unknown error'}",
            operation=_targets(transaction),
            payload=result.error,
        )

    for expectation in expectations:
        owner = _normalize_owner(expectation.owner)
        coin_type = normalize_type_tag(expectation.coin_type)
        delta = result.delta(owner, coin_type)
        too_low = expectation.minimum is not None and delta < expectation.minimum
        too_high = expectation.maximum is not None and delta > expectation.maximum
        if too_low or too_high:
            raise SimulationMismatch(
                f"Projected delta {delta} outside expected {expectation.describe()}.",
                operation=_targets(transaction),
                asset=coin_type,
                payload={
                    "owner": owner,
                    "delta": delta,
                    "minimum": expectation.minimum,
                    "maximum": expectation.maximum,
                },
            )

    return SimulationClearance(
        digest=transaction_digest(serialize_transaction(transaction)),
        result=result,
    )


def simulate_and_verify(
    transaction: TransactionData,
    ledger: LedgerClient,
    deadline: Deadline,
    expectations: Iterable[BalanceExpectation] = (),
) -> SimulationClearance:
    return verify(transaction, simulate(transaction, ledger, deadline), expectations)


def _normalize_owner(owner: str) -> str:
    return normalize_address(owner) if is_valid_address(owner) else owner.lower()


def _targets(transaction: TransactionData) -> str:
    return ", ".join(f"{op.module}::{op.function}" for op in transaction.operations)
