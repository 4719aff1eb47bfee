"""Per-attempt state machine for one transaction unit."""

import logging
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from tx_engine.errors import VaultError
from tx_engine.models import ExecutionResult, TransactionData, TransactionUnit

from execution_adapter.sui.models import SimulationClearance

logger = logging.getLogger(__name__)


class AttemptState(Enum):
    NEW = "NEW"
    BUILT = "BUILT"
    DENIED = "DENIED"
    SIMULATED_PASS = "SIMULATED_PASS"
    SIMULATED_FAIL = "SIMULATED_FAIL"
    SIGNED = "SIGNED"
    SUBMITTED = "SUBMITTED"
    FINALIZED = "FINALIZED"
    REJECTED = "REJECTED"
    TIMED_OUT = "TIMED_OUT"


_TRANSITIONS: Dict[AttemptState, FrozenSet[AttemptState]] = {
    AttemptState.NEW: frozenset(
        (AttemptState.BUILT, AttemptState.DENIED, AttemptState.TIMED_OUT)
    ),
    AttemptState.BUILT: frozenset(
        (AttemptState.SIMULATED_PASS, AttemptState.SIMULATED_FAIL, AttemptState.TIMED_OUT)
    ),
    AttemptState.SIMULATED_PASS: frozenset((AttemptState.SIGNED, AttemptState.TIMED_OUT)),
    AttemptState.SIGNED: frozenset((AttemptState.SUBMITTED, AttemptState.TIMED_OUT)),
    AttemptState.SUBMITTED: frozenset(
        (AttemptState.FINALIZED, AttemptState.REJECTED, AttemptState.TIMED_OUT)
    ),
}

TERMINAL_STATES = frozenset(
    (
        AttemptState.DENIED,
        AttemptState.SIMULATED_FAIL,
        AttemptState.FINALIZED,
        AttemptState.REJECTED,
        AttemptState.TIMED_OUT,
    )
)


class AttemptTransitionError(ValueError):
    """Raised when an attempt would move to a state it cannot reach."""


class TransactionAttempt:
    """Tracks one unit from construction to its terminal outcome.

    States only move forward: a unit that failed simulation, was rejected or
    timed out is never resumed; a fresh attempt with a fresh unit is required.
    """

    def __init__(self, label: str) -> None:
        self.label = label
        self._state = AttemptState.NEW
        self._history: List[AttemptState] = [AttemptState.NEW]
        self.unit: Optional[TransactionUnit] = None
        self.transaction: Optional[TransactionData] = None
        self.clearance: Optional[SimulationClearance] = None
        self.result: Optional[ExecutionResult] = None
        self.error: Optional[VaultError] = None

    @property
    def state(self) -> AttemptState:
        return self._state

    @property
    def history(self) -> tuple:
        return tuple(self._history)

    @property
    def terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def can_transition(self, target: AttemptState) -> bool:
        return target in _TRANSITIONS.get(self._state, frozenset())

    def transition(self, target: AttemptState) -> None:
        if not self.can_transition(target):
            raise AttemptTransitionError(
                f"{self.label}: cannot move from {self._state.value} to {target.value}."
            )
        logger.info("%s: %s -> %s", self.label, self._state.value, target.value)
        self._state = target
        self._history.append(target)

    def built(self, unit: TransactionUnit, transaction: TransactionData) -> None:
        self.transition(AttemptState.BUILT)
        self.unit = unit
        self.transaction = transaction

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "state": self._state.value,
            "history": [state.value for state in self._history],
            "digest": self.result.digest if self.result else None,
            "error": self.error.detail() if self.error else None,
        }
