from .gate import CapabilityGate, authorize, require_authorized
from .models import AuthorizationDecision, Capability, CapabilityKind, VaultInstance
from .policy import DEFAULT_POLICY, CapabilityPolicy

__all__ = [
    "AuthorizationDecision",
    "Capability",
    "CapabilityGate",
    "CapabilityKind",
    "CapabilityPolicy",
    "DEFAULT_POLICY",
    "VaultInstance",
    "authorize",
    "require_authorized",
]
