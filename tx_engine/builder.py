"""Assemble ordered operations into one atomic transaction unit."""

from typing import List, Optional, Sequence

from .errors import (
    ConstructionError,
    EmptyOperationsError,
    ForwardReferenceError,
    NoSenderError,
)
from .models import Operation, ResultArg, TransactionUnit
from .objects import normalize_address

DEFAULT_GAS_BUDGET = 100_000_000


def build(
    operations: Sequence[Operation],
    sender: Optional[str],
    gas_budget: Optional[int] = None,
) -> TransactionUnit:
    if not operations:
        raise EmptyOperationsError("Transaction unit must include at least one operation.")
    if not sender:
        raise NoSenderError("Transaction unit requires a sender.")
    if gas_budget is None:
        gas_budget = DEFAULT_GAS_BUDGET
    if isinstance(gas_budget, bool) or not isinstance(gas_budget, int) or gas_budget <= 0:
        raise ConstructionError("Gas budget must be a positive integer.", payload=gas_budget)

    _validate_references(operations)
    return TransactionUnit(
        operations=tuple(operations),
        sender=normalize_address(sender),
        gas_budget=gas_budget,
    )


def _validate_references(operations: Sequence[Operation]) -> None:
    for position, operation in enumerate(operations):
        for argument in operation.arguments:
            if not isinstance(argument, ResultArg):
                continue
            if argument.operation_index >= position:
                raise ForwardReferenceError(
                    f"Operation {position} ({operation.target}) consumes the output "
                    f"of operation {argument.operation_index}, which does not precede it.",
                    operation=operation.target,
                )


class TransactionBuilder:
    """Incremental form of ``build`` that hands out result references."""

    def __init__(self) -> None:
        self._operations: List[Operation] = []
        self._sender: Optional[str] = None
        self._gas_budget: Optional[int] = None

    @property
    def operations(self) -> tuple:
        return tuple(self._operations)

    def add(self, operation: Operation) -> ResultArg:
        self._operations.append(operation)
        return ResultArg(operation_index=len(self._operations) - 1)

    def set_sender(self, sender: str) -> None:
        self._sender = normalize_address(sender)

    def set_gas_budget(self, gas_budget: int) -> None:
        self._gas_budget = gas_budget

    def set_gas_budget_if_not_set(self, gas_budget: int) -> None:
        if self._gas_budget is None:
            self._gas_budget = gas_budget

    def build(self) -> TransactionUnit:
        return build(self._operations, self._sender, self._gas_budget)
