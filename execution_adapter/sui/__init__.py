from .client import JsonRpcError, JsonRpcLedgerClient, LedgerClient, MAINNET_URL
from .executor import (
    DEFAULT_RETRY,
    ExecutionBlockedError,
    RetryPolicy,
    execute,
    require_clearance,
    sign,
    submit,
)
from .models import (
    BalanceExpectation,
    CoinBalance,
    InspectResult,
    LedgerObject,
    SignedTransaction,
    SimulationClearance,
    at_least,
    exactly,
)
from .resolver import resolve, resolve_objects, select_gas
from .simulator import simulate, simulate_and_verify, verify

__all__ = [
    "BalanceExpectation",
    "CoinBalance",
    "DEFAULT_RETRY",
    "ExecutionBlockedError",
    "InspectResult",
    "JsonRpcError",
    "JsonRpcLedgerClient",
    "LedgerObject",
    "LedgerClient",
    "MAINNET_URL",
    "RetryPolicy",
    "SignedTransaction",
    "SimulationClearance",
    "at_least",
    "exactly",
    "execute",
    "require_clearance",
    "resolve",
    "resolve_objects",
    "select_gas",
    "sign",
    "simulate",
    "simulate_and_verify",
    "submit",
    "verify",
]
