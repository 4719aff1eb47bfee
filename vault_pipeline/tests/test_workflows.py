"""End-to-end vault workflows against an in-memory ledger."""

import copy
import unittest
from collections import Counter

from capability_gate.models import Capability, CapabilityKind, VaultInstance
from execution_adapter.sui.executor import RetryPolicy
from execution_adapter.sui.models import SHARED, CoinBalance, InspectResult, LedgerObject
from route_adapter.models import PoolHop, Route, SwapDirection
from tx_engine.builder import DEFAULT_GAS_BUDGET
from tx_engine.deadline import Deadline
from tx_engine.encoder import decode_address, decode_u64, pure_u64, transaction_digest
from tx_engine.errors import (
    AuthorizationError,
    DuplicateSubmission,
    NoRouteFound,
    ObjectReferenceError,
    SimulationFailed,
    SimulationMismatch,
    SubmissionRejected,
    TimedOut,
)
from tx_engine.models import (
    BalanceChange,
    CreatedObject,
    ExecutionResult,
    ObjectRef,
    SimulationResult,
)
from vault_pipeline.attempt import AttemptState
from vault_pipeline.workflows import VaultPipeline, created_balance_manager
from wallet_core.signer import Ed25519Signer

PACKAGE = "0x" + "1e" * 32
ROUTER = "0x" + "2e" * 32
VERSION = "0x" + "3e" * 32
ADMIN_CAP = "0x" + "4e" * 32
ACCESS_LIST = "0x" + "5e" * 32
BOT = "0x" + "6e" * 32
POOL = "0x" + "77" * 32
SUI = "0x2::sui::SUI"
USDC = "0xdba34672e30cb065b1f93e3ab55318768fd6fef66c15942c9f7cb846e2f900e7::usdc::USDC"
SUI_TAG = "0x" + "0" * 63 + "2::sui::SUI"
GAS = 2_000_000
GAS_COIN = "0x" + "9a" * 32
ZERO_DIGEST = "1" * 32
NO_WAIT = RetryPolicy(max_attempts=3, base_delay_seconds=0.0)


_PRIMITIVE_TAGS = {
    0: "bool",
    1: "u8",
    2: "u64",
    3: "u128",
    4: "address",
    5: "signer",
    8: "u16",
    9: "u32",
    10: "u256",
}


class _Reader:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    def take(self, size: int) -> bytes:
        chunk = self.data[self.pos : self.pos + size]
        self.pos += size
        return chunk

    def byte(self) -> int:
        return self.take(1)[0]

    def u16(self) -> int:
        return int.from_bytes(self.take(2), "little")

    def uleb(self) -> int:
        value = 0
        shift = 0
        while True:
            byte = self.byte()
            value |= (byte & 0x7F) << shift
            shift += 7
            if not byte & 0x80:
                return value

    def string(self) -> str:
        return self.take(self.uleb()).decode("utf-8")

    def address(self) -> str:
        return "0x" + self.take(32).hex()

    def type_tag(self) -> str:
        tag = self.byte()
        if tag in _PRIMITIVE_TAGS:
            return _PRIMITIVE_TAGS[tag]
        if tag == 6:
            return f"vector<{self.type_tag()}>"
        name = f"{self.address()}::{self.string()}::{self.string()}"
        params = [self.type_tag() for _ in range(self.uleb())]
        return f"{name}<{', '.join(params)}>" if params else name


def _decode_kind(reader: _Reader):
    assert reader.byte() == 0, "not a programmable transaction"
    inputs = []
    for _ in range(reader.uleb()):
        if reader.byte() == 0:
            inputs.append(("pure", reader.take(reader.uleb())))
            continue
        owned = reader.byte() == 0
        object_id = reader.address()
        reader.take(8)
        if owned:
            reader.take(reader.uleb())
        else:
            reader.take(1)
        inputs.append(("object", object_id))

    operations = []
    for _ in range(reader.uleb()):
        assert reader.byte() == 0, "only Move calls are composed"
        reader.address()
        module = reader.string()
        function = reader.string()
        types = [reader.type_tag() for _ in range(reader.uleb())]
        args = []
        for _ in range(reader.uleb()):
            tag = reader.byte()
            if tag == 0:
                args.append(("gas", None))
            elif tag == 1:
                args.append(inputs[reader.u16()])
            else:
                index = reader.u16()
                reader.u16()
                args.append(("result", index))
        operations.append((module, function, types, args))
    return operations


def _decode_transaction(tx_bytes: bytes):
    reader = _Reader(tx_bytes)
    assert reader.byte() == 0, "not TransactionData V1"
    operations = _decode_kind(reader)
    return reader.address(), operations


class _VaultLedger:
    """Interprets vault calls so dry runs and executions have real effects."""

    def __init__(self, swap_numerator: int = 1, swap_denominator: int = 1) -> None:
        self.managers = {}
        self.executed = {}
        self.missing = set()
        self.swap_numerator = swap_numerator
        self.swap_denominator = swap_denominator
        self.dry_runs = 0
        self.submissions = 0
        self._next_id = 0xB0

    def seed(self, coin_type_tag: str, amount: int) -> str:
        manager = self._new_id()
        self.managers[manager] = {coin_type_tag: amount}
        return manager

    def _new_id(self) -> str:
        self._next_id += 1
        return "0x" + format(self._next_id, "064x")

    def get_objects(self, object_ids, deadline):
        return tuple(
            LedgerObject(object_id, 1, ZERO_DIGEST, SHARED, initial_shared_version=1)
            if object_id in self.managers or object_id == VERSION
            else LedgerObject(object_id, 1, ZERO_DIGEST, "0x" + "0a" * 32)
            for object_id in object_ids
            if object_id not in self.missing
        )

    def reference_gas_price(self, deadline):
        return 1000

    def gas_coins(self, owner, deadline):
        return (CoinBalance(ObjectRef(GAS_COIN, 1, ZERO_DIGEST), 10 ** 12),)

    def _interpret(self, sender: str, operations, managers: dict):
        changes = Counter()
        changes[(sender, SUI_TAG)] -= GAS
        outputs = []
        consumed = set()
        shared = []
        returns = []

        def coin(arg):
            consumed.add(arg[1])
            return outputs[arg[1]]

        def credit(manager, tag, amount):
            balances = managers[manager]
            balances[tag] = balances.get(tag, 0) + amount
            changes[(manager, tag)] += amount

        for module, function, types, args in operations:
            output = None
            if (module, function) == ("coin", "split"):
                amount = decode_u64(args[1][1])
                changes[(sender, types[0])] -= amount
                output = (types[0], amount)
            elif function == "create_balance_manager":
                output = self._new_id()
                managers[output] = {}
            elif function == "share_balance_manager":
                shared.append(coin(args[0]))
            elif function == "user_deposit":
                tag, amount = coin(args[1])
                credit(args[0][1], tag, amount)
            elif function in ("user_withdraw", "bot_withdraw"):
                manager = args[1][1]
                amount = decode_u64(args[2][1])
                if managers[manager].get(types[0], 0) < amount:
                    raise ValueError("MoveAbort: insufficient balance")
                credit(manager, types[0], -amount)
                output = (types[0], amount)
            elif function == "public_transfer":
                tag, amount = coin(args[0])
                changes[(decode_address(args[1][1]), tag)] += amount
            elif function == "swap":
                _, amount = coin(args[0])
                out = amount * self.swap_numerator // self.swap_denominator
                if out < decode_u64(args[3][1]):
                    raise ValueError("MoveAbort: slippage exceeded")
                output = (types[1], out)
            elif function == "bot_deposit":
                tag, amount = coin(args[2])
                credit(args[1][1], tag, amount)
            elif function == "query":
                returns.append(managers[args[0][1]].get(types[0], 0))
            outputs.append(output)

        for index, output in enumerate(outputs):
            if isinstance(output, tuple) and index not in consumed:
                raise ValueError(f"UnusedValueWithoutDrop in command {index}")

        balance_changes = tuple(
            BalanceChange(owner, tag, amount)
            for (owner, tag), amount in sorted(changes.items())
            if amount
        )
        return balance_changes, shared, returns

    def dry_run(self, tx_bytes, deadline):
        deadline.check("dry_run")
        self.dry_runs += 1
        sender, operations = _decode_transaction(tx_bytes)
        try:
            changes, _, _ = self._interpret(sender, operations, copy.deepcopy(self.managers))
        except (KeyError, ValueError) as exc:
            return SimulationResult(success=False, balance_changes=(), error=str(exc))
        return SimulationResult(success=True, balance_changes=changes)

    def dev_inspect(self, sender, kind_bytes, deadline):
        operations = _decode_kind(_Reader(kind_bytes))
        try:
            _, _, returns = self._interpret(sender, operations, copy.deepcopy(self.managers))
        except (KeyError, ValueError) as exc:
            return InspectResult(success=False, return_values=(), error=str(exc))
        return InspectResult(
            success=True,
            return_values=tuple((pure_u64(value).value,) for value in returns),
        )

    def execute(self, tx_bytes, signatures, deadline):
        self.submissions += 1
        digest = transaction_digest(tx_bytes)
        if digest in self.executed:
            raise DuplicateSubmission("Transaction already executed")
        sender, operations = _decode_transaction(tx_bytes)
        try:
            changes, shared, _ = self._interpret(sender, operations, self.managers)
        except (KeyError, ValueError) as exc:
            raise SubmissionRejected(str(exc)) from exc
        result = ExecutionResult(
            digest=digest,
            finalized=True,
            effects={"status": {"status": "success"}},
            created_objects=tuple(
                CreatedObject(object_id, PACKAGE + "::vault::BalanceManager", True)
                for object_id in shared
            ),
            balance_changes=changes,
        )
        self.executed[digest] = result
        return result

    def get_transaction(self, digest, deadline):
        return self.executed[digest]


class _StaticFinder:
    def __init__(self, route) -> None:
        self.route = route
        self.calls = 0

    def find(self, from_asset, to_asset, amount, direction, deadline):
        self.calls += 1
        return self.route


def _route(amount_in: int, amount_out: int) -> Route:
    return Route(
        from_asset=USDC,
        to_asset=SUI,
        direction=SwapDirection.EXACT_IN,
        amount_in=amount_in,
        amount_out=amount_out,
        hops=(PoolHop(POOL, "CETUS", USDC, SUI, False, amount_in, amount_out),),
    )


def _vault() -> VaultInstance:
    return VaultInstance(
        package_id=PACKAGE,
        version_id=VERSION,
        admin_cap_id=ADMIN_CAP,
        access_list_id=ACCESS_LIST,
    )


class VaultWorkflowTests(unittest.TestCase):
    def setUp(self) -> None:
        self.signer = Ed25519Signer.from_secret(b"\x07" * 32)
        self.ledger = _VaultLedger()

    def _pipeline(self, capabilities=None, finder=None, ledger=None) -> VaultPipeline:
        if capabilities is None:
            capabilities = (
                Capability(CapabilityKind.ADMIN, ADMIN_CAP),
                Capability(CapabilityKind.ACCESS_LIST, ACCESS_LIST),
            )
        return VaultPipeline(
            _vault(),
            capabilities,
            ledger or self.ledger,
            self.signer,
            finder,
            router_package=ROUTER,
            retry=NO_WAIT,
        )

    def test_create_share_deposit_and_query(self) -> None:
        pipeline = self._pipeline()

        created = pipeline.create_balance_manager(BOT)
        self.assertEqual(created.state, AttemptState.FINALIZED)
        self.assertEqual(
            created.history,
            (
                AttemptState.NEW,
                AttemptState.BUILT,
                AttemptState.SIMULATED_PASS,
                AttemptState.SIGNED,
                AttemptState.SUBMITTED,
                AttemptState.FINALIZED,
            ),
        )
        manager = created_balance_manager(created.result)
        pipeline.use_balance_manager(manager)

        deposit = pipeline.deposit(1_000_000_000)
        self.assertEqual(deposit.state, AttemptState.FINALIZED)
        self.assertEqual(
            deposit.clearance.result.delta(pipeline.sender, SUI_TAG),
            -1_000_000_000 - GAS,
        )

        self.assertGreaterEqual(pipeline.query_balance(SUI), 1_000_000_000)
        self.assertEqual(
            pipeline.query_balances([SUI, USDC]),
            {SUI: 1_000_000_000, USDC: 0},
        )

    def test_withdraw_returns_coin_to_sender(self) -> None:
        manager = self.ledger.seed(SUI_TAG, 5_000_000_000)
        pipeline = self._pipeline()

        attempt = pipeline.withdraw(1_000_000_000, balance_manager=manager)

        self.assertEqual(attempt.state, AttemptState.FINALIZED)
        self.assertEqual(
            [operation.function for operation in attempt.unit.operations],
            ["user_withdraw", "public_transfer"],
        )
        self.assertEqual(
            attempt.clearance.result.delta(pipeline.sender, SUI_TAG),
            1_000_000_000 - GAS,
        )
        self.assertEqual(self.ledger.managers[manager][SUI_TAG], 4_000_000_000)

    def test_withdraw_that_never_reaches_sender_is_blocked(self) -> None:
        manager = self.ledger.seed(SUI_TAG, 5_000_000_000)

        class _Diverting(_VaultLedger):
            def dry_run(self, tx_bytes, deadline):
                self.dry_runs += 1
                sender, _ = _decode_transaction(tx_bytes)
                return SimulationResult(
                    success=True,
                    balance_changes=(BalanceChange(sender, SUI_TAG, -GAS),),
                )

        diverting = _Diverting()
        diverting.managers = self.ledger.managers
        pipeline = self._pipeline(ledger=diverting)

        with self.assertRaises(SimulationMismatch) as ctx:
            pipeline.withdraw(1_000_000_000, balance_manager=manager)

        self.assertEqual(ctx.exception.payload["delta"], -GAS)
        self.assertEqual(pipeline.attempts[-1].state, AttemptState.SIMULATED_FAIL)
        self.assertEqual(diverting.submissions, 0)

    def test_unresolvable_object_stops_before_built(self) -> None:
        manager = self.ledger.seed(SUI_TAG, 0)
        self.ledger.missing.add(VERSION)
        pipeline = self._pipeline()

        with self.assertRaises(ObjectReferenceError):
            pipeline.deposit(1_000, balance_manager=manager)

        attempt = pipeline.attempts[-1]
        self.assertEqual(attempt.state, AttemptState.NEW)
        self.assertIsInstance(attempt.error, ObjectReferenceError)
        self.assertEqual(self.ledger.dry_runs, 0)

    def test_dry_run_bytes_carry_resolved_gas(self) -> None:
        manager = self.ledger.seed(SUI_TAG, 0)
        attempt = self._pipeline().deposit(1_000, balance_manager=manager, dry_run=True)

        transaction = attempt.transaction
        self.assertEqual(transaction.gas.price, 1000)
        self.assertEqual([ref.object_id for ref in transaction.gas.payment], [GAS_COIN])
        self.assertEqual([ref.object_id for ref in transaction.objects], [manager, VERSION])

    def test_bot_trade_moves_exact_amount_in_one_unit(self) -> None:
        manager = self.ledger.seed(USDC, 500)
        pipeline = self._pipeline(finder=_StaticFinder(_route(100, 100)))

        attempt = pipeline.bot_trade(USDC, SUI, 100, slippage=0.01, balance_manager=manager)

        self.assertEqual(attempt.state, AttemptState.FINALIZED)
        self.assertEqual(len(attempt.unit.operations), 3)
        projected = attempt.clearance.result
        self.assertEqual(projected.delta(manager, USDC), -100)
        self.assertGreaterEqual(projected.delta(manager, SUI_TAG), 0)
        self.assertEqual(self.ledger.managers[manager][USDC], 400)
        self.assertEqual(self.ledger.managers[manager][SUI_TAG], 100)

    def test_bot_trade_dry_run_stops_before_signing(self) -> None:
        manager = self.ledger.seed(USDC, 500)
        pipeline = self._pipeline(finder=_StaticFinder(_route(100, 100)))
        attempt = pipeline.bot_trade(USDC, SUI, 100, balance_manager=manager, dry_run=True)
        self.assertEqual(attempt.state, AttemptState.SIMULATED_PASS)
        self.assertEqual(self.ledger.submissions, 0)

    def test_no_route_builds_no_unit(self) -> None:
        manager = self.ledger.seed(SUI_TAG, 0)
        pipeline = self._pipeline(finder=_StaticFinder(None))

        with self.assertRaises(NoRouteFound):
            pipeline.bot_trade(USDC, SUI, 100, balance_manager=manager)

        attempt = pipeline.attempts[-1]
        self.assertIsNone(attempt.unit)
        self.assertEqual(attempt.state, AttemptState.NEW)
        self.assertIsInstance(attempt.error, NoRouteFound)
        self.assertEqual(self.ledger.dry_runs, 0)

    def test_worse_swap_fails_simulation_and_never_submits(self) -> None:
        manager = self.ledger.seed(USDC, 500)
        self.ledger.swap_numerator = 1
        self.ledger.swap_denominator = 2
        pipeline = self._pipeline(finder=_StaticFinder(_route(100, 100)))

        with self.assertRaises(SimulationFailed):
            pipeline.bot_trade(USDC, SUI, 100, balance_manager=manager)

        self.assertEqual(pipeline.attempts[-1].state, AttemptState.SIMULATED_FAIL)
        self.assertEqual(self.ledger.submissions, 0)

    def test_deposit_mismatch_blocks_submission(self) -> None:
        manager = self.ledger.seed(SUI_TAG, 0)

        class _Skimming(_VaultLedger):
            def dry_run(self, tx_bytes, deadline):
                result = super().dry_run(tx_bytes, deadline)
                return SimulationResult(
                    success=True,
                    balance_changes=tuple(
                        BalanceChange(change.owner, change.coin_type, change.amount + GAS + 1)
                        for change in result.balance_changes
                    ),
                )

        skimming = _Skimming()
        skimming.managers = self.ledger.managers
        pipeline = self._pipeline(ledger=skimming)
        with self.assertRaises(SimulationMismatch):
            pipeline.deposit(1_000, balance_manager=manager)
        self.assertEqual(pipeline.attempts[-1].state, AttemptState.SIMULATED_FAIL)
        self.assertEqual(skimming.submissions, 0)

    def test_deposit_debiting_more_than_amount_and_budget_is_blocked(self) -> None:
        manager = self.ledger.seed(SUI_TAG, 0)

        class _Overcharging(_VaultLedger):
            def dry_run(self, tx_bytes, deadline):
                self.dry_runs += 1
                sender, _ = _decode_transaction(tx_bytes)
                return SimulationResult(
                    success=True,
                    balance_changes=(
                        BalanceChange(sender, SUI_TAG, -1_000 - DEFAULT_GAS_BUDGET - 1),
                    ),
                )

        overcharging = _Overcharging()
        overcharging.managers = self.ledger.managers
        pipeline = self._pipeline(ledger=overcharging)

        with self.assertRaises(SimulationMismatch) as ctx:
            pipeline.deposit(1_000, balance_manager=manager)

        self.assertEqual(ctx.exception.payload["minimum"], -1_000 - DEFAULT_GAS_BUDGET)
        self.assertEqual(overcharging.submissions, 0)

    def test_missing_capability_is_denied_before_building(self) -> None:
        manager = self.ledger.seed(SUI_TAG, 0)
        pipeline = self._pipeline(
            capabilities=(Capability(CapabilityKind.ADMIN, ADMIN_CAP),),
            finder=_StaticFinder(_route(100, 100)),
        )

        with self.assertRaises(AuthorizationError):
            pipeline.bot_trade(USDC, SUI, 100, balance_manager=manager)

        self.assertEqual(pipeline.attempts[-1].state, AttemptState.DENIED)
        self.assertEqual(self.ledger.dry_runs, 0)

    def test_expired_deadline_times_out_attempt(self) -> None:
        ticks = iter([0.0, 100.0, 100.0, 100.0])
        deadline = Deadline(5, clock=lambda: next(ticks))
        pipeline = self._pipeline()

        with self.assertRaises(TimedOut):
            pipeline.acl_add("0x" + "8e" * 32, deadline=deadline)

        self.assertEqual(pipeline.attempts[-1].state, AttemptState.TIMED_OUT)
        self.assertEqual(self.ledger.dry_runs, 0)

    def test_timeout_during_dry_run_times_out_built_attempt(self) -> None:
        class _Stalled(_VaultLedger):
            def dry_run(self, tx_bytes, deadline):
                raise TimedOut("dry run timed out", operation="sui_dryRunTransactionBlock")

        pipeline = self._pipeline(ledger=_Stalled())
        with self.assertRaises(TimedOut):
            pipeline.acl_add("0x" + "8e" * 32)
        self.assertEqual(
            pipeline.attempts[-1].history,
            (AttemptState.NEW, AttemptState.BUILT, AttemptState.TIMED_OUT),
        )

    def test_rejected_submission_is_terminal(self) -> None:
        class _Rejecting(_VaultLedger):
            def execute(self, tx_bytes, signatures, deadline):
                self.submissions += 1
                raise SubmissionRejected("InsufficientGas")

        pipeline = self._pipeline(ledger=_Rejecting())
        with self.assertRaises(SubmissionRejected):
            pipeline.acl_add("0x" + "8e" * 32)
        self.assertEqual(pipeline.attempts[-1].state, AttemptState.REJECTED)

    def test_resubmitting_finalized_bytes_returns_prior_result(self) -> None:
        pipeline = self._pipeline()
        first = pipeline.acl_add("0x" + "8e" * 32)
        second = pipeline.acl_add("0x" + "8e" * 32)
        self.assertEqual(first.result.digest, second.result.digest)
        self.assertEqual(second.state, AttemptState.FINALIZED)
        self.assertEqual(len(self.ledger.executed), 1)

    def test_query_failure_is_reported(self) -> None:
        pipeline = self._pipeline()
        with self.assertRaises(SimulationFailed):
            pipeline.query_balance(SUI, balance_manager="0x" + "99" * 32)


if __name__ == "__main__":
    unittest.main()
