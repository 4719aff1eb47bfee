"""Sign cleared transactions and submit them for finality."""

import logging
from dataclasses import dataclass
from typing import Optional

from tx_engine.deadline import Deadline
from tx_engine.encoder import serialize_transaction, transaction_digest
from tx_engine.errors import (
    ConstructionError,
    DuplicateSubmission,
    NetworkError,
    SimulationError,
)
from tx_engine.models import ExecutionResult, TransactionData
from tx_engine.objects import normalize_address
from wallet_core.signer import Signer

from .client import LedgerClient
from .models import SignedTransaction, SimulationClearance

logger = logging.getLogger(__name__)


class ExecutionBlockedError(SimulationError):
    """Raised when execution is attempted without a matching dry-run pass."""


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff for transient submission failures."""

    max_attempts: int = 3
    base_delay_seconds: float = 0.5
    max_delay_seconds: float = 8.0

    def delay(self, attempt: int) -> float:
        return min(self.base_delay_seconds * (2 ** (attempt - 1)), self.max_delay_seconds)


DEFAULT_RETRY = RetryPolicy()


def require_clearance(
    transaction: TransactionData, clearance: Optional[SimulationClearance]
) -> bytes:
    """Return the transaction bytes if ``clearance`` is a passing dry run of them."""

    if clearance is None:
        raise ExecutionBlockedError("Execution requires a passing dry run.")
    if not clearance.result.success:
        raise ExecutionBlockedError("Dry run did not succeed; execution blocked.")
    tx_bytes = serialize_transaction(transaction)
    if transaction_digest(tx_bytes) != clearance.digest:
        raise ExecutionBlockedError("Dry-run clearance belongs to other transaction bytes.")
    return tx_bytes


def sign(transaction: TransactionData, tx_bytes: bytes, signer: Signer) -> SignedTransaction:
    if normalize_address(signer.address) != transaction.sender:
        raise ConstructionError(
            f"Signer {signer.address} is not the sender {transaction.sender}.",
            operation="sign",
        )
    return SignedTransaction(
        tx_bytes=tx_bytes,
        signatures=(signer.sign_transaction(tx_bytes),),
        digest=transaction_digest(tx_bytes),
    )


def submit(
    signed: SignedTransaction,
    ledger: LedgerClient,
    deadline: Deadline,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> ExecutionResult:
    """Submit ``signed``; transient failures resubmit the same bytes."""

    last_error: Optional[NetworkError] = None
    for attempt in range(1, retry.max_attempts + 1):
        try:
            result = ledger.execute(signed.tx_bytes, signed.signatures, deadline)
        except DuplicateSubmission:
            logger.info("Transaction %s already executed; fetching result.", signed.digest)
            return ledger.get_transaction(signed.digest, deadline)
        except NetworkError as exc:
            last_error = exc
            if attempt == retry.max_attempts:
                break
            delay = retry.delay(attempt)
            logger.warning(
                "Submission of %s failed (%s); retry %d/%d in %.2fs",
                signed.digest,
                exc,
                attempt,
                retry.max_attempts - 1,
                delay,
            )
            deadline.sleep(delay, "submit")
            continue
        logger.info("Transaction %s finalized=%s", result.digest, result.finalized)
        return result

    assert last_error is not None
    raise last_error


def execute(
    transaction: TransactionData,
    clearance: Optional[SimulationClearance],
    signer: Signer,
    ledger: LedgerClient,
    deadline: Deadline,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> ExecutionResult:
    tx_bytes = require_clearance(transaction, clearance)
    signed = sign(transaction, tx_bytes, signer)
    return submit(signed, ledger, deadline, retry)
