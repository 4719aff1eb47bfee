"""Vault workflows: gate, build, dry run, sign and submit one unit at a time."""

import logging
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence

from capability_gate.gate import CapabilityGate
from capability_gate.models import AuthorizationDecision, Capability, VaultInstance
from capability_gate.policy import DEFAULT_POLICY, CapabilityPolicy
from execution_adapter.sui.client import JsonRpcLedgerClient, LedgerClient
from execution_adapter.sui.executor import DEFAULT_RETRY, RetryPolicy, require_clearance, sign, submit
from execution_adapter.sui.models import BalanceExpectation, at_least, exactly
from execution_adapter.sui.resolver import resolve, resolve_objects
from execution_adapter.sui.simulator import simulate_and_verify
from route_adapter.models import SwapDirection
from route_adapter.router import HttpRouteFinder, RouteFinder, find_route, minimum_output
from tx_engine.deadline import Deadline
from tx_engine.builder import DEFAULT_GAS_BUDGET
from tx_engine.encoder import decode_u64, serialize_kind
from tx_engine.errors import (
    AuthorizationError,
    ConstructionError,
    EncodingError,
    LedgerRejection,
    SimulationError,
    SimulationFailed,
    TimedOut,
    VaultError,
)
from tx_engine.models import ExecutionResult, OperationKind
from tx_engine.objects import SUI_COIN_TYPE, normalize_address, normalize_type_tag
from wallet_core.signer import Ed25519Signer, Signer

from .attempt import AttemptState, TransactionAttempt
from .calls import BALANCE_MANAGER_TYPE, VaultCallBuilder
from .config import DEFAULT_TIMEOUT_SECONDS, VaultConfig

logger = logging.getLogger(__name__)

Compose = Callable[[VaultCallBuilder, Deadline], Optional[Iterable[BalanceExpectation]]]

_FAILURE_STATES = (
    (TimedOut, AttemptState.TIMED_OUT),
    (AuthorizationError, AttemptState.DENIED),
    (SimulationError, AttemptState.SIMULATED_FAIL),
    (LedgerRejection, AttemptState.REJECTED),
)

_SUI_TAG = normalize_type_tag(SUI_COIN_TYPE)


@contextmanager
def _tracked(attempt: TransactionAttempt) -> Iterator[None]:
    try:
        yield
    except VaultError as exc:
        attempt.error = exc
        for error_type, state in _FAILURE_STATES:
            if isinstance(exc, error_type):
                if attempt.can_transition(state):
                    attempt.transition(state)
                break
        logger.warning("%s failed in %s: %s", attempt.label, attempt.state.value, exc)
        raise


class VaultPipeline:
    """Runs vault workflows for one sender against one vault deployment."""

    def __init__(
        self,
        vault: VaultInstance,
        capabilities: Iterable[Capability],
        ledger: LedgerClient,
        signer: Optional[Signer] = None,
        route_finder: Optional[RouteFinder] = None,
        *,
        sender: Optional[str] = None,
        balance_manager_id: Optional[str] = None,
        router_package: Optional[str] = None,
        fee_receiver: Optional[str] = None,
        gas_budget: Optional[int] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        retry: RetryPolicy = DEFAULT_RETRY,
        policy: CapabilityPolicy = DEFAULT_POLICY,
    ) -> None:
        if signer is None and sender is None:
            raise ConstructionError("A signer or an explicit sender is required.")
        self._gate = CapabilityGate(vault, capabilities, policy)
        self._ledger = ledger
        self._signer = signer
        self._route_finder = route_finder
        self._sender = normalize_address(sender or signer.address)
        self._balance_manager_id = balance_manager_id
        self._router_package = router_package
        self._fee_receiver = fee_receiver
        self._gas_budget = gas_budget
        self._timeout_seconds = timeout_seconds
        self._retry = retry
        self._attempts: List[TransactionAttempt] = []

    @classmethod
    def from_config(
        cls,
        config: VaultConfig,
        ledger: Optional[LedgerClient] = None,
        signer: Optional[Signer] = None,
        route_finder: Optional[RouteFinder] = None,
        sender: Optional[str] = None,
    ) -> "VaultPipeline":
        if signer is None and config.signer_secret:
            signer = Ed25519Signer.from_hex(config.signer_secret)
        return cls(
            config.vault_instance(),
            config.capabilities(),
            ledger or JsonRpcLedgerClient(config.rpc_url),
            signer,
            route_finder or HttpRouteFinder(config.router_url),
            sender=sender,
            balance_manager_id=config.balance_manager_id,
            router_package=config.router_package,
            fee_receiver=config.fee_receiver,
            gas_budget=config.gas_budget,
            timeout_seconds=config.timeout_seconds,
        )

    @property
    def sender(self) -> str:
        return self._sender

    @property
    def vault(self) -> VaultInstance:
        return self._gate.vault

    @property
    def attempts(self) -> tuple:
        return tuple(self._attempts)

    def authorize(self, operation_kind: OperationKind) -> AuthorizationDecision:
        return self._gate.authorize(operation_kind)

    def new_deadline(self) -> Deadline:
        return Deadline(self._timeout_seconds)

    def calls(self) -> VaultCallBuilder:
        return VaultCallBuilder(self._gate, self._sender, self._gas_budget)

    def run(
        self,
        label: str,
        compose: Compose,
        *,
        dry_run: bool = False,
        deadline: Optional[Deadline] = None,
    ) -> TransactionAttempt:
        """Drive one attempt through the pipeline.

        ``compose`` adds calls to a fresh builder and returns the balance
        expectations the dry run has to meet. With ``dry_run`` the attempt
        stops at ``SIMULATED_PASS``.
        """

        deadline = deadline or self.new_deadline()
        attempt = TransactionAttempt(label)
        self._attempts.append(attempt)

        with _tracked(attempt):
            deadline.check("build")
            calls = self.calls()
            expectations = tuple(compose(calls, deadline) or ())
            unit = calls.build()
            attempt.built(unit, resolve(unit, self._ledger, deadline))

            attempt.clearance = simulate_and_verify(
                attempt.transaction, self._ledger, deadline, expectations
            )
            attempt.transition(AttemptState.SIMULATED_PASS)
            if dry_run:
                return attempt

            if self._signer is None:
                raise ConstructionError("No signer configured; only dry runs are possible.")
            tx_bytes = require_clearance(attempt.transaction, attempt.clearance)
            signed = sign(attempt.transaction, tx_bytes, self._signer)
            attempt.transition(AttemptState.SIGNED)

            deadline.check("submit")
            attempt.transition(AttemptState.SUBMITTED)
            attempt.result = submit(signed, self._ledger, deadline, self._retry)
            attempt.transition(AttemptState.FINALIZED)
        return attempt

    def create_balance_manager(self, bot_address: str, **options) -> TransactionAttempt:
        def compose(calls: VaultCallBuilder, deadline: Deadline) -> None:
            manager = calls.create_balance_manager(bot_address)
            calls.share_balance_manager(manager)

        return self.run("create-balance-manager", compose, **options)

    def deposit(
        self,
        amount: int,
        coin_type: str = SUI_COIN_TYPE,
        balance_manager: Optional[str] = None,
        source_coin: Optional[str] = None,
        **options,
    ) -> TransactionAttempt:
        manager = self._require_balance_manager(balance_manager)

        def compose(calls: VaultCallBuilder, deadline: Deadline) -> List[BalanceExpectation]:
            coin = calls.split_coin(amount, coin_type, source_coin)
            calls.user_deposit(manager, coin, coin_type, self.vault.version_id)
            return [self._sender_expectation(coin_type, -amount)]

        return self.run("deposit", compose, **options)

    def withdraw(
        self,
        amount: int,
        coin_type: str = SUI_COIN_TYPE,
        balance_manager: Optional[str] = None,
        **options,
    ) -> TransactionAttempt:
        manager = self._require_balance_manager(balance_manager)

        def compose(calls: VaultCallBuilder, deadline: Deadline) -> List[BalanceExpectation]:
            coin = calls.user_withdraw(manager, amount, coin_type, self.vault.version_id)
            calls.transfer(coin, coin_type, self._sender)
            return [self._sender_expectation(coin_type, amount)]

        return self.run("withdraw", compose, **options)

    def acl_add(self, record: str, **options) -> TransactionAttempt:
        def compose(calls: VaultCallBuilder, deadline: Deadline) -> None:
            calls.acl_add(record, self.vault.version_id)

        return self.run("acl-add", compose, **options)

    def bot_trade(
        self,
        from_asset: str,
        to_asset: str,
        amount: int,
        slippage: float = 0.01,
        fee_rate: float = 0.0,
        balance_manager: Optional[str] = None,
        min_deposit: int = 0,
        **options,
    ) -> TransactionAttempt:
        """Withdraw ``amount`` of ``from_asset``, swap it and deposit the output.

        The route is looked up before any call is built; without a route the
        attempt ends before construction.
        """

        manager = self._require_balance_manager(balance_manager)
        if self._route_finder is None:
            raise ConstructionError("No route finder configured.", operation="bot_trade")
        if self._router_package is None:
            raise ConstructionError("No router package configured.", operation="bot_trade")
        fee_receiver = self._fee_receiver or self._sender

        def compose(calls: VaultCallBuilder, deadline: Deadline) -> List[BalanceExpectation]:
            route = find_route(
                self._route_finder,
                from_asset,
                to_asset,
                amount,
                SwapDirection.EXACT_IN,
                deadline,
            )
            min_out = minimum_output(route, slippage, fee_rate)
            coin = calls.bot_withdraw(manager, amount, from_asset)
            swapped = calls.swap(
                route, coin, slippage, fee_rate, fee_receiver, self._router_package
            )
            calls.bot_deposit(manager, swapped, to_asset, min_deposit)
            return [
                exactly(manager, from_asset, -amount),
                at_least(manager, to_asset, min_out),
            ]

        return self.run("bot-trade", compose, **options)

    def query_balance(
        self,
        coin_type: str,
        balance_manager: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> int:
        manager = self._require_balance_manager(balance_manager)
        deadline = deadline or self.new_deadline()
        calls = self.calls()
        calls.query(manager, coin_type)
        unit = calls.build()
        kind_bytes = serialize_kind(unit, resolve_objects(unit, self._ledger, deadline))
        inspected = self._ledger.dev_inspect(self._sender, kind_bytes, deadline)
        if not inspected.success:
            raise SimulationFailed(
                f"Balance query failed: {inspected.error or 'unknown error'}",
                operation="query",
                asset=coin_type,
            )
        try:
            raw = inspected.return_values[0][0]
        except IndexError as exc:
            raise SimulationFailed(
                "Balance query returned no value.", operation="query", asset=coin_type
            ) from exc
        try:
            return decode_u64(raw)
        except EncodingError as exc:
            raise SimulationFailed(
                f"Balance query returned malformed value: {exc}",
                operation="query",
                asset=coin_type,
            ) from exc

    def query_balances(
        self,
        coin_types: Sequence[str],
        balance_manager: Optional[str] = None,
    ) -> Dict[str, int]:
        deadline = self.new_deadline()
        return {
            coin_type: self.query_balance(coin_type, balance_manager, deadline)
            for coin_type in coin_types
        }

    def use_balance_manager(self, balance_manager_id: str) -> None:
        self._balance_manager_id = normalize_address(balance_manager_id)

    def _require_balance_manager(self, explicit: Optional[str]) -> str:
        manager = explicit or self._balance_manager_id
        if manager is None:
            raise ConstructionError("No balance manager id configured.")
        return normalize_address(manager)

    def _sender_expectation(self, coin_type: str, delta: int) -> BalanceExpectation:
        # The sender also pays up to the gas budget in SUI.
        if normalize_type_tag(coin_type) == _SUI_TAG:
            gas_budget = self._gas_budget or DEFAULT_GAS_BUDGET
            return BalanceExpectation(
                self._sender, coin_type, minimum=delta - gas_budget, maximum=delta
            )
        return exactly(self._sender, coin_type, delta)


def created_balance_manager(result: ExecutionResult) -> str:
    """Object id of the shared BalanceManager created by ``result``."""

    shared = result.created_shared(BALANCE_MANAGER_TYPE)
    if len(shared) != 1:
        raise LedgerRejection(
            f"Expected one shared BalanceManager, found {len(shared)}.",
            operation="create_balance_manager",
            payload=result.digest,
        )
    return shared[0].object_id
