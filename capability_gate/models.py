"""Capability objects, vault instance identity and gate decisions."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from tx_engine.models import OperationKind


class CapabilityKind(Enum):
    ADMIN = "ADMIN"
    ACCESS_LIST = "ACCESS_LIST"
    BOT_ALLOW = "BOT_ALLOW"


@dataclass(frozen=True)
class Capability:
    kind: CapabilityKind
    object_id: str


@dataclass(frozen=True)
class VaultInstance:
    """Object ids that identify one deployed vault."""

    package_id: str
    version_id: str
    admin_cap_id: Optional[str] = None
    access_list_id: Optional[str] = None
    bot_allow_id: Optional[str] = None

    def expected_id(self, kind: CapabilityKind) -> Optional[str]:
        if kind == CapabilityKind.ADMIN:
            return self.admin_cap_id
        if kind == CapabilityKind.ACCESS_LIST:
            return self.access_list_id
        if kind == CapabilityKind.BOT_ALLOW:
            return self.bot_allow_id
        return None


@dataclass(frozen=True)
class AuthorizationDecision:
    operation_kind: OperationKind
    authorized: bool
    reason: str
    required_kind: Optional[CapabilityKind] = None
    capability: Optional[Capability] = None
