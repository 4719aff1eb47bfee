"""Sui adapter models for signed bytes, inspection output and dry-run checks."""

from dataclasses import dataclass
from typing import Optional, Tuple

from tx_engine.errors import ObjectReferenceError
from tx_engine.models import InputObject, ObjectRef, SharedObjectRef, SimulationResult

SHARED = "shared"
IMMUTABLE = "immutable"
OBJECT_OWNED = "object"


@dataclass(frozen=True)
class SignedTransaction:
    """Signed bytes; retries resubmit this exact value."""

    tx_bytes: bytes
    signatures: Tuple[str, ...]
    digest: str


@dataclass(frozen=True)
class InspectResult:
    success: bool
    return_values: Tuple[Tuple[bytes, ...], ...]
    error: Optional[str] = None


@dataclass(frozen=True)
class BalanceExpectation:
    owner: str
    coin_type: str
    minimum: Optional[int] = None
    maximum: Optional[int] = None

    def describe(self) -> str:
        low = "-inf" if self.minimum is None else str(self.minimum)
        high = "+inf" if self.maximum is None else str(self.maximum)
        return f"{self.coin_type} for {self.owner} within [{low}, {high}]"


def exactly(owner: str, coin_type: str, amount: int, tolerance: int = 0) -> BalanceExpectation:
    return BalanceExpectation(
        owner=owner,
        coin_type=coin_type,
        minimum=amount - tolerance,
        maximum=amount + tolerance,
    )


def at_least(owner: str, coin_type: str, amount: int) -> BalanceExpectation:
    return BalanceExpectation(owner=owner, coin_type=coin_type, minimum=amount)


@dataclass(frozen=True)
class SimulationClearance:
    """Proof that the transaction bytes with ``digest`` passed the dry-run gate."""

    digest: str
    result: SimulationResult


@dataclass(frozen=True)
class LedgerObject:
    """Current ownership and version of one object, as the ledger reports it."""

    object_id: str
    version: int
    digest: str
    owner: str
    initial_shared_version: Optional[int] = None

    def input_ref(self) -> InputObject:
        if self.initial_shared_version is not None:
            return SharedObjectRef(self.object_id, self.initial_shared_version)
        if self.owner == OBJECT_OWNED:
            raise ObjectReferenceError(
                f"Object {self.object_id} is owned by another object.",
                payload=self.object_id,
            )
        return ObjectRef(self.object_id, self.version, self.digest)


@dataclass(frozen=True)
class CoinBalance:
    ref: ObjectRef
    balance: int
