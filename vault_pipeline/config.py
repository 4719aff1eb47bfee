"""Environment-driven configuration for one deployed vault."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Tuple, Union

from dotenv import load_dotenv

from capability_gate.models import Capability, CapabilityKind, VaultInstance
from execution_adapter.sui.client import MAINNET_URL
from tx_engine.builder import DEFAULT_GAS_BUDGET
from tx_engine.errors import VaultError
from tx_engine.objects import is_valid_address, normalize_address

ENV_PREFIX = "VAULT_"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_ROUTER_URL = "https://api-sui.cetus.zone/router_v2"

_ID_FIELDS = (
    "package",
    "version_id",
    "admin_cap_id",
    "access_list_id",
    "held_admin_cap_id",
    "held_access_list_id",
    "balance_manager_id",
    "fee_receiver",
    "router_package",
)


class ConfigError(VaultError):
    """Raised when required configuration is missing or malformed."""


@dataclass(frozen=True)
class VaultConfig:
    package: str
    version_id: str
    rpc_url: str = MAINNET_URL
    admin_cap_id: Optional[str] = None
    access_list_id: Optional[str] = None
    held_admin_cap_id: Optional[str] = None
    held_access_list_id: Optional[str] = None
    balance_manager_id: Optional[str] = None
    fee_receiver: Optional[str] = None
    router_url: str = DEFAULT_ROUTER_URL
    router_package: Optional[str] = None
    gas_budget: int = DEFAULT_GAS_BUDGET
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    signer_secret: Optional[str] = field(default=None, repr=False)
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        for name in _ID_FIELDS:
            value = getattr(self, name)
            if value is None:
                continue
            if not is_valid_address(value):
                raise ConfigError(f"{_env_name(name)} is not a valid object id.", payload=value)
            object.__setattr__(self, name, normalize_address(value))
        if self.gas_budget <= 0:
            raise ConfigError("VAULT_GAS_BUDGET must be positive.", payload=self.gas_budget)
        if self.timeout_seconds <= 0:
            raise ConfigError(
                "VAULT_TIMEOUT_SECONDS must be positive.", payload=self.timeout_seconds
            )

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        dotenv_path: Optional[Union[str, Path]] = None,
    ) -> "VaultConfig":
        """Read ``VAULT_*`` settings, loading ``dotenv_path`` into the process first."""

        if environ is None:
            load_dotenv(dotenv_path=dotenv_path)
            environ = os.environ

        def get(name: str) -> Optional[str]:
            value = environ.get(_env_name(name), "").strip()
            return value or None

        missing = [_env_name(name) for name in ("package", "version_id") if get(name) is None]
        if missing:
            raise ConfigError(f"Missing required settings: {', '.join(missing)}.")

        kwargs = {
            name: get(name)
            for name in (
                "admin_cap_id",
                "access_list_id",
                "held_admin_cap_id",
                "held_access_list_id",
                "balance_manager_id",
                "fee_receiver",
                "router_package",
                "signer_secret",
            )
        }
        for name in ("rpc_url", "router_url", "log_level"):
            value = get(name)
            if value is not None:
                kwargs[name] = value
        if get("gas_budget") is not None:
            kwargs["gas_budget"] = _parse(get("gas_budget"), int, "gas_budget")
        if get("timeout_seconds") is not None:
            kwargs["timeout_seconds"] = _parse(get("timeout_seconds"), float, "timeout_seconds")

        return cls(package=get("package"), version_id=get("version_id"), **kwargs)

    def require(self, name: str) -> str:
        value = getattr(self, name)
        if value is None:
            raise ConfigError(f"{_env_name(name)} is required for this operation.")
        return value

    def vault_instance(self) -> VaultInstance:
        return VaultInstance(
            package_id=self.package,
            version_id=self.version_id,
            admin_cap_id=self.admin_cap_id,
            access_list_id=self.access_list_id,
        )

    def capabilities(self) -> Tuple[Capability, ...]:
        """Capabilities the configured signer holds.

        These come from ``VAULT_HELD_*`` and are matched against the vault's
        own ``VAULT_ADMIN_CAP_ID`` and ``VAULT_ACCESS_LIST_ID``.
        """

        held = []
        if self.held_admin_cap_id is not None:
            held.append(Capability(CapabilityKind.ADMIN, self.held_admin_cap_id))
        if self.held_access_list_id is not None:
            held.append(Capability(CapabilityKind.ACCESS_LIST, self.held_access_list_id))
        return tuple(held)


def _env_name(name: str) -> str:
    return ENV_PREFIX + name.upper()


def _parse(raw: str, kind: type, name: str):
    try:
        return kind(raw)
    except ValueError as exc:
        raise ConfigError(f"{_env_name(name)} must be a number.", payload=raw) from exc
