from .attempt import AttemptState, AttemptTransitionError, TransactionAttempt
from .calls import VaultCallBuilder
from .config import ConfigError, VaultConfig
from .workflows import VaultPipeline, created_balance_manager

__all__ = [
    "AttemptState",
    "AttemptTransitionError",
    "ConfigError",
    "TransactionAttempt",
    "VaultCallBuilder",
    "VaultConfig",
    "VaultPipeline",
    "created_balance_manager",
]
