"""Required capability per vault operation."""

from dataclasses import dataclass, field
from typing import Dict, Optional

from tx_engine.errors import ConstructionError
from tx_engine.models import OperationKind

from .models import CapabilityKind


def _default_requirements() -> Dict[OperationKind, Optional[CapabilityKind]]:
    return {
        OperationKind.CREATE_ACCOUNT: CapabilityKind.ADMIN,
        OperationKind.SHARE_ACCOUNT: CapabilityKind.ADMIN,
        OperationKind.ACCESS_LIST_ADD: CapabilityKind.ADMIN,
        OperationKind.WITHDRAW: CapabilityKind.ADMIN,
        OperationKind.BOT_WITHDRAW: CapabilityKind.ACCESS_LIST,
        OperationKind.BOT_DEPOSIT: CapabilityKind.ACCESS_LIST,
        OperationKind.DEPOSIT: None,
        OperationKind.SWAP: None,
        OperationKind.SPLIT_COIN: None,
        OperationKind.TRANSFER: None,
        OperationKind.QUERY: None,
    }


@dataclass(frozen=True)
class CapabilityPolicy:
    requirements: Dict[OperationKind, Optional[CapabilityKind]] = field(
        default_factory=_default_requirements
    )

    def required_kind(self, kind: OperationKind) -> Optional[CapabilityKind]:
        if kind not in self.requirements:
            raise ConstructionError(
                f"No capability policy for operation {kind.value}.", operation=kind.value
            )
        return self.requirements[kind]


DEFAULT_POLICY = CapabilityPolicy()
