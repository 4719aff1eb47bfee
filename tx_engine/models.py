"""Domain models for vault operations and transaction units."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union


class OperationKind(Enum):
    CREATE_ACCOUNT = "CREATE_ACCOUNT"
    SHARE_ACCOUNT = "SHARE_ACCOUNT"
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    BOT_WITHDRAW = "BOT_WITHDRAW"
    BOT_DEPOSIT = "BOT_DEPOSIT"
    ACCESS_LIST_ADD = "ACCESS_LIST_ADD"
    SWAP = "SWAP"
    SPLIT_COIN = "SPLIT_COIN"
    TRANSFER = "TRANSFER"
    QUERY = "QUERY"


@dataclass(frozen=True)
class GasCoinArg:
    """The coin paying for gas, usable as a coin input."""


@dataclass(frozen=True)
class ObjectArg:
    object_id: str


@dataclass(frozen=True)
class PureArg:
    value: bytes
    type_name: str


@dataclass(frozen=True)
class ResultArg:
    """Output ``output_index`` of the operation at ``operation_index``."""

    operation_index: int
    output_index: int = 0


Argument = Union[GasCoinArg, ObjectArg, PureArg, ResultArg]


@dataclass(frozen=True)
class Operation:
    package: str
    module: str
    function: str
    arguments: Tuple[Argument, ...]
    type_arguments: Tuple[str, ...] = ()

    @property
    def target(self) -> str:
        return f"{self.package}::{self.module}::{self.function}"


@dataclass(frozen=True)
class TransactionUnit:
    operations: Tuple[Operation, ...]
    sender: str
    gas_budget: int


@dataclass(frozen=True)
class ObjectRef:
    """An owned or immutable object at one version."""

    object_id: str
    version: int
    digest: str


@dataclass(frozen=True)
class SharedObjectRef:
    object_id: str
    initial_shared_version: int
    mutable: bool = True


InputObject = Union[ObjectRef, SharedObjectRef]


@dataclass(frozen=True)
class GasData:
    payment: Tuple[ObjectRef, ...]
    owner: str
    price: int
    budget: int


@dataclass(frozen=True)
class TransactionData:
    """A unit whose object inputs, gas payment and gas price are resolved.

    Its serialized form is what the dry run evaluates and what gets signed.
    """

    unit: TransactionUnit
    objects: Tuple[InputObject, ...]
    gas: GasData
    expiration_epoch: Optional[int] = None

    @property
    def sender(self) -> str:
        return self.unit.sender

    @property
    def operations(self) -> Tuple[Operation, ...]:
        return self.unit.operations


@dataclass(frozen=True)
class BalanceChange:
    owner: str
    coin_type: str
    amount: int


@dataclass(frozen=True)
class SimulationResult:
    success: bool
    balance_changes: Tuple[BalanceChange, ...]
    error: Optional[str] = None

    def delta(self, owner: str, coin_type: str) -> int:
        return sum(
            change.amount
            for change in self.balance_changes
            if change.owner == owner and change.coin_type == coin_type
        )


@dataclass(frozen=True)
class CreatedObject:
    object_id: str
    object_type: str
    shared: bool


@dataclass(frozen=True)
class ExecutionResult:
    digest: str
    finalized: bool
    effects: dict
    created_objects: Tuple[CreatedObject, ...] = ()
    balance_changes: Tuple[BalanceChange, ...] = ()

    def created_shared(self, type_suffix: str) -> Tuple[CreatedObject, ...]:
        return tuple(
            item
            for item in self.created_objects
            if item.shared and item.object_type.endswith(type_suffix)
        )
