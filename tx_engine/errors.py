"""Error taxonomy shared by every stage of the vault transaction pipeline."""

from typing import Optional


class VaultError(Exception):
    """Base class for pipeline failures surfaced to callers."""

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        asset: Optional[str] = None,
        payload: Optional[object] = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.asset = asset
        self.payload = payload

    def detail(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": str(self),
            "operation": self.operation,
            "asset": self.asset,
            "payload": self.payload,
        }


class AuthorizationError(VaultError):
    """Raised when the caller lacks the capability an operation requires."""


class ConstructionError(VaultError):
    """Raised when an operation set or transaction unit is malformed."""


class ObjectReferenceError(ConstructionError):
    """Raised when an object id or address cannot be normalized."""


class EncodingError(ConstructionError):
    """Raised when a value cannot be encoded canonically."""


class EmptyOperationsError(ConstructionError):
    """Raised when a transaction unit would contain no operations."""


class NoSenderError(ConstructionError):
    """Raised when a transaction unit is built without a sender."""


class ForwardReferenceError(ConstructionError):
    """Raised when an operation consumes the output of a later operation."""


class SimulationError(VaultError):
    """Raised when a dry run rejects the unit or diverges from expectations."""


class SimulationFailed(SimulationError):
    """Raised when the ledger reports an execution error during dry run."""


class SimulationMismatch(SimulationError):
    """Raised when projected balance changes fall outside expectations."""


class NetworkError(VaultError):
    """Raised on transient transport failures. Retryable."""


class TimedOut(VaultError):
    """Raised when an attempt exceeds its deadline or is cancelled."""


class LedgerRejection(VaultError):
    """Raised when a submitted transaction fails on the ledger."""


class SubmissionRejected(LedgerRejection):
    """Raised when the submit endpoint rejects signed transaction bytes."""


class NoRouteFound(VaultError):
    """Raised when the routing service has no viable path for a swap."""


class DuplicateSubmission(LedgerRejection):
    """Raised when the ledger has already executed identical signed bytes."""
