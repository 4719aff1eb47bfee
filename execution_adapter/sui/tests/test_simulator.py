"""Dry-run gate tests."""

import unittest

from execution_adapter.sui.models import BalanceExpectation, at_least, exactly
from execution_adapter.sui.simulator import simulate_and_verify, verify
from tx_engine.builder import build
from tx_engine.deadline import Deadline
from tx_engine.encoder import encode, pure_u64, serialize_transaction, transaction_digest
from tx_engine.errors import SimulationFailed, SimulationMismatch
from tx_engine.models import (
    BalanceChange,
    GasCoinArg,
    GasData,
    ObjectRef,
    SimulationResult,
    TransactionData,
)

SENDER = "0x" + "0a" * 32
SUI = "0x2::sui::SUI"
SUI_TAG = "0x" + "0" * 63 + "2::sui::SUI"
GAS_COIN = ObjectRef("0x" + "9a" * 32, 12, "1" * 32)


class _DryRunLedger:
    def __init__(self, result: SimulationResult) -> None:
        self.result = result
        self.dry_runs = []

    def dry_run(self, tx_bytes, deadline):
        self.dry_runs.append(tx_bytes)
        return self.result


def _transaction():
    unit = build(
        [encode("0x2", "coin", "split", [GasCoinArg(), pure_u64(1000)], [SUI])],
        SENDER,
    )
    return TransactionData(
        unit=unit,
        objects=(),
        gas=GasData(payment=(GAS_COIN,), owner=SENDER, price=1000, budget=unit.gas_budget),
    )


class SimulatorTests(unittest.TestCase):
    def test_clearance_binds_transaction_digest(self) -> None:
        transaction = _transaction()
        ledger = _DryRunLedger(
            SimulationResult(
                success=True,
                balance_changes=(BalanceChange(SENDER, SUI_TAG, -1000),),
            )
        )

        clearance = simulate_and_verify(
            transaction, ledger, Deadline(10), [exactly(SENDER, SUI, -1000)]
        )

        tx_bytes = serialize_transaction(transaction)
        self.assertEqual(ledger.dry_runs, [tx_bytes])
        self.assertEqual(clearance.digest, transaction_digest(tx_bytes))
        self.assertTrue(clearance.result.success)

    def test_failed_dry_run_raises(self) -> None:
        result = SimulationResult(success=False, balance_changes=(), error="MoveAbort(2)")
        with self.assertRaises(SimulationFailed) as ctx:
            verify(_transaction(), result)
        self.assertEqual(ctx.exception.payload, "MoveAbort(2)")
        self.assertIn("coin::split", ctx.exception.operation)

    def test_delta_below_minimum_is_mismatch(self) -> None:
        result = SimulationResult(
            success=True,
            balance_changes=(BalanceChange(SENDER, SUI_TAG, 40),),
        )
        with self.assertRaises(SimulationMismatch) as ctx:
            verify(_transaction(), result, [at_least(SENDER, SUI, 50)])
        self.assertEqual(ctx.exception.asset, SUI_TAG)
        self.assertEqual(ctx.exception.payload["delta"], 40)
        self.assertEqual(ctx.exception.payload["minimum"], 50)

    def test_exact_expectation_rejects_larger_debit(self) -> None:
        result = SimulationResult(
            success=True,
            balance_changes=(BalanceChange(SENDER, SUI_TAG, -1001),),
        )
        with self.assertRaises(SimulationMismatch):
            verify(_transaction(), result, [exactly(SENDER, SUI, -1000)])

    def test_expectation_owner_and_type_are_normalized(self) -> None:
        result = SimulationResult(
            success=True,
            balance_changes=(BalanceChange(SENDER, SUI_TAG, 75),),
        )
        expectation = BalanceExpectation(
            owner=SENDER.upper().replace("0X", "0x"),
            coin_type="0x02::sui::SUI",
            minimum=75,
        )
        verify(_transaction(), result, [expectation])

    def test_absent_owner_has_zero_delta(self) -> None:
        result = SimulationResult(success=True, balance_changes=())
        verify(_transaction(), result, [BalanceExpectation(SENDER, SUI, maximum=0)])
        with self.assertRaises(SimulationMismatch):
            verify(_transaction(), result, [at_least(SENDER, SUI, 1)])


if __name__ == "__main__":
    unittest.main()
