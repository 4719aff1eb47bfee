"""Capability-checked factories for vault Move calls.

Each factory asks the capability gate first and only then encodes its
operation into the unit under construction, so a denied call never reaches
the builder. Calls whose ledger function takes the vault version object
accept it as a required ``version`` argument.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from capability_gate.gate import CapabilityGate
from route_adapter.models import Route
from route_adapter.router import splice_swap
from tx_engine.builder import TransactionBuilder
from tx_engine.encoder import encode, pure_address, pure_u64
from tx_engine.errors import ConstructionError
from tx_engine.models import (
    Argument,
    GasCoinArg,
    OperationKind,
    ResultArg,
    TransactionUnit,
)
from tx_engine.objects import SUI_COIN_TYPE, normalize_type_tag, resolve_object

logger = logging.getLogger(__name__)

VAULT_MODULE = "vault"
COIN_PACKAGE = "0x2"
BALANCE_MANAGER_TYPE = "::BalanceManager"

_SUI_TAG = normalize_type_tag(SUI_COIN_TYPE)


class VaultCallBuilder:
    """Collects vault calls for one sender into a single atomic unit."""

    def __init__(
        self,
        gate: CapabilityGate,
        sender: str,
        gas_budget: Optional[int] = None,
    ) -> None:
        self._gate = gate
        self._package = gate.vault.package_id
        self._tx = TransactionBuilder()
        self._tx.set_sender(sender)
        if gas_budget is not None:
            self._tx.set_gas_budget(gas_budget)
        self._kinds: List[OperationKind] = []

    @property
    def kinds(self) -> Tuple[OperationKind, ...]:
        return tuple(self._kinds)

    def split_coin(
        self,
        amount: int,
        coin_type: str = SUI_COIN_TYPE,
        source_coin: Optional[str] = None,
    ) -> ResultArg:
        """Split ``amount`` off the gas coin (SUI) or off ``source_coin``."""

        if source_coin is not None:
            source: Argument = resolve_object(source_coin)
        elif normalize_type_tag(coin_type) == _SUI_TAG:
            source = GasCoinArg()
        else:
            raise ConstructionError(
                "A source coin object is required for non-SUI deposits.",
                operation=OperationKind.SPLIT_COIN.value,
                asset=coin_type,
            )
        return self._add(
            OperationKind.SPLIT_COIN,
            "split",
            [source, pure_u64(amount)],
            [coin_type],
            package=COIN_PACKAGE,
            module="coin",
        )

    def create_balance_manager(self, bot_address: str) -> ResultArg:
        admin_cap = self._capability_id(OperationKind.CREATE_ACCOUNT)
        access_list = self._gate.vault.access_list_id
        if access_list is None:
            raise ConstructionError(
                "Creating a balance manager needs the vault access list id.",
                operation=OperationKind.CREATE_ACCOUNT.value,
            )
        return self._add(
            OperationKind.CREATE_ACCOUNT,
            "create_balance_manager",
            [resolve_object(admin_cap), resolve_object(access_list), pure_address(bot_address)],
            checked=True,
        )

    def share_balance_manager(self, balance_manager: ResultArg) -> ResultArg:
        self._gate.require(OperationKind.SHARE_ACCOUNT)
        return self._add(
            OperationKind.SHARE_ACCOUNT,
            "share_balance_manager",
            [balance_manager],
            checked=True,
        )

    def user_deposit(
        self,
        balance_manager: str,
        coin: Argument,
        coin_type: str,
        version: str,
    ) -> ResultArg:
        return self._add(
            OperationKind.DEPOSIT,
            "user_deposit",
            [resolve_object(balance_manager), coin, resolve_object(version)],
            [coin_type],
        )

    def user_withdraw(
        self,
        balance_manager: str,
        amount: int,
        coin_type: str,
        version: str,
    ) -> ResultArg:
        admin_cap = self._capability_id(OperationKind.WITHDRAW)
        return self._add(
            OperationKind.WITHDRAW,
            "user_withdraw",
            [
                resolve_object(admin_cap),
                resolve_object(balance_manager),
                pure_u64(amount),
                resolve_object(version),
            ],
            [coin_type],
            checked=True,
        )

    def acl_add(self, record: str, version: str) -> ResultArg:
        self._gate.require(OperationKind.ACCESS_LIST_ADD)
        return self._add(
            OperationKind.ACCESS_LIST_ADD,
            "acl_add",
            [resolve_object(record), resolve_object(version)],
            checked=True,
        )

    def bot_withdraw(self, balance_manager: str, amount: int, coin_type: str) -> ResultArg:
        access_list = self._capability_id(OperationKind.BOT_WITHDRAW)
        return self._add(
            OperationKind.BOT_WITHDRAW,
            "bot_withdraw",
            [resolve_object(access_list), resolve_object(balance_manager), pure_u64(amount)],
            [coin_type],
            checked=True,
        )

    def bot_deposit(
        self,
        balance_manager: str,
        coin: Argument,
        coin_type: str,
        min_amount: int = 0,
    ) -> ResultArg:
        access_list = self._capability_id(OperationKind.BOT_DEPOSIT)
        return self._add(
            OperationKind.BOT_DEPOSIT,
            "bot_deposit",
            [
                resolve_object(access_list),
                resolve_object(balance_manager),
                coin,
                pure_u64(min_amount),
            ],
            [coin_type],
            checked=True,
        )

    def swap(
        self,
        route: Route,
        input_coin: ResultArg,
        slippage: float,
        fee_rate: float,
        fee_receiver: str,
        router_package: str,
    ) -> ResultArg:
        self._gate.require(OperationKind.SWAP)
        operation = splice_swap(route, input_coin, slippage, fee_rate, fee_receiver, router_package)
        self._kinds.append(OperationKind.SWAP)
        return self._tx.add(operation)

    def transfer(self, coin: Argument, coin_type: str, recipient: str) -> ResultArg:
        """Send ``coin`` to ``recipient``; a coin left unused would abort the unit."""

        return self._add(
            OperationKind.TRANSFER,
            "public_transfer",
            [coin, pure_address(recipient)],
            [f"{COIN_PACKAGE}::coin::Coin<{coin_type}>"],
            package=COIN_PACKAGE,
            module="transfer",
        )

    def query(self, balance_manager: str, coin_type: str) -> ResultArg:
        return self._add(
            OperationKind.QUERY,
            "query",
            [resolve_object(balance_manager)],
            [coin_type],
        )

    def build(self) -> TransactionUnit:
        unit = self._tx.build()
        logger.debug(
            "Built unit for %s with %d operation(s)",
            unit.sender,
            len(unit.operations),
        )
        return unit

    def _capability_id(self, kind: OperationKind) -> str:
        decision = self._gate.require(kind)
        if decision.capability is None:
            raise ConstructionError(
                f"{kind.value} requires a capability object argument.",
                operation=kind.value,
            )
        return decision.capability.object_id

    def _add(
        self,
        kind: OperationKind,
        function: str,
        arguments: Sequence[Argument],
        type_arguments: Sequence[str] = (),
        package: Optional[str] = None,
        module: str = VAULT_MODULE,
        checked: bool = False,
    ) -> ResultArg:
        if not checked:
            self._gate.require(kind)
        operation = encode(package or self._package, module, function, arguments, type_arguments)
        self._kinds.append(kind)
        return self._tx.add(operation)
