"""Local capability gate evaluated before an operation joins a transaction."""

import logging
from typing import Iterable, Tuple

from tx_engine.errors import AuthorizationError
from tx_engine.models import OperationKind
from tx_engine.objects import is_valid_address, normalize_address

from .models import AuthorizationDecision, Capability, VaultInstance
from .policy import DEFAULT_POLICY, CapabilityPolicy

logger = logging.getLogger(__name__)


def authorize(
    operation_kind: OperationKind,
    presented: Iterable[Capability],
    vault: VaultInstance,
    policy: CapabilityPolicy = DEFAULT_POLICY,
) -> AuthorizationDecision:
    """Decide whether ``presented`` capabilities allow ``operation_kind``.

    The ledger enforces capabilities again at execution time; this check only
    keeps unauthorized units from costing a network round trip.
    """

    if not isinstance(operation_kind, OperationKind):
        return AuthorizationDecision(
            operation_kind=operation_kind,
            authorized=False,
            reason="Unsupported operation kind.",
        )

    required = policy.required_kind(operation_kind)
    if required is None:
        return AuthorizationDecision(
            operation_kind=operation_kind,
            authorized=True,
            reason="No capability required.",
        )

    candidates = tuple(cap for cap in presented if cap.kind == required)
    if not candidates:
        return AuthorizationDecision(
            operation_kind=operation_kind,
            authorized=False,
            reason=f"{required.value} capability not presented.",
            required_kind=required,
        )

    expected = vault.expected_id(required)
    if expected is None:
        return AuthorizationDecision(
            operation_kind=operation_kind,
            authorized=False,
            reason=f"Vault defines no {required.value} object to match against.",
            required_kind=required,
        )

    expected_id = normalize_address(expected)
    for capability in candidates:
        if not is_valid_address(capability.object_id):
            continue
        if normalize_address(capability.object_id) == expected_id:
            return AuthorizationDecision(
                operation_kind=operation_kind,
                authorized=True,
                reason=f"{required.value} capability matches vault.",
                required_kind=required,
                capability=capability,
            )

    return AuthorizationDecision(
        operation_kind=operation_kind,
        authorized=False,
        reason=f"{required.value} capability does not belong to this vault.",
        required_kind=required,
    )


def require_authorized(
    operation_kind: OperationKind,
    presented: Iterable[Capability],
    vault: VaultInstance,
    policy: CapabilityPolicy = DEFAULT_POLICY,
) -> AuthorizationDecision:
    """Like ``authorize`` but raises ``AuthorizationError`` on denial."""

    decision = authorize(operation_kind, presented, vault, policy)
    if not decision.authorized:
        name = getattr(operation_kind, "value", str(operation_kind))
        logger.info("Denied %s: %s", name, decision.reason)
        raise AuthorizationError(decision.reason, operation=name)
    return decision


class CapabilityGate:
    """Holds the caller's capabilities for one vault and checks each call."""

    def __init__(
        self,
        vault: VaultInstance,
        capabilities: Iterable[Capability],
        policy: CapabilityPolicy = DEFAULT_POLICY,
    ) -> None:
        self._vault = vault
        self._capabilities: Tuple[Capability, ...] = tuple(capabilities)
        self._policy = policy

    @property
    def vault(self) -> VaultInstance:
        return self._vault

    @property
    def capabilities(self) -> Tuple[Capability, ...]:
        return self._capabilities

    def authorize(self, operation_kind: OperationKind) -> AuthorizationDecision:
        return authorize(operation_kind, self._capabilities, self._vault, self._policy)

    def require(self, operation_kind: OperationKind) -> AuthorizationDecision:
        return require_authorized(
            operation_kind, self._capabilities, self._vault, self._policy
        )
