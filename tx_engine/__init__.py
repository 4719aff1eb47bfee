from .builder import DEFAULT_GAS_BUDGET, TransactionBuilder, build
from .deadline import Deadline
from .encoder import (
    decode_address,
    decode_u64,
    encode,
    pure_address,
    pure_address_vector,
    pure_bool,
    pure_bool_vector,
    pure_u16,
    pure_u64,
    serialize_kind,
    serialize_transaction,
    signing_digest,
    transaction_digest,
)
from .errors import (
    AuthorizationError,
    ConstructionError,
    DuplicateSubmission,
    EmptyOperationsError,
    EncodingError,
    ForwardReferenceError,
    LedgerRejection,
    NetworkError,
    NoRouteFound,
    NoSenderError,
    ObjectReferenceError,
    SimulationError,
    SimulationFailed,
    SimulationMismatch,
    SubmissionRejected,
    TimedOut,
    VaultError,
)
from .models import (
    Argument,
    BalanceChange,
    CreatedObject,
    ExecutionResult,
    GasCoinArg,
    GasData,
    InputObject,
    ObjectArg,
    ObjectRef,
    Operation,
    OperationKind,
    PureArg,
    ResultArg,
    SharedObjectRef,
    SimulationResult,
    TransactionData,
    TransactionUnit,
)
from .objects import SUI_COIN_TYPE, normalize_address, normalize_type_tag, resolve_object

__all__ = [
    "Argument",
    "AuthorizationError",
    "BalanceChange",
    "ConstructionError",
    "CreatedObject",
    "DuplicateSubmission",
    "DEFAULT_GAS_BUDGET",
    "Deadline",
    "EmptyOperationsError",
    "EncodingError",
    "ExecutionResult",
    "ForwardReferenceError",
    "GasCoinArg",
    "GasData",
    "InputObject",
    "LedgerRejection",
    "NetworkError",
    "NoRouteFound",
    "NoSenderError",
    "ObjectArg",
    "ObjectRef",
    "ObjectReferenceError",
    "Operation",
    "OperationKind",
    "PureArg",
    "ResultArg",
    "SharedObjectRef",
    "SUI_COIN_TYPE",
    "SimulationError",
    "SimulationFailed",
    "SimulationMismatch",
    "SimulationResult",
    "SubmissionRejected",
    "TimedOut",
    "TransactionBuilder",
    "TransactionData",
    "TransactionUnit",
    "VaultError",
    "build",
    "decode_address",
    "decode_u64",
    "encode",
    "normalize_address",
    "normalize_type_tag",
    "pure_address",
    "pure_address_vector",
    "pure_bool",
    "pure_bool_vector",
    "pure_u16",
    "pure_u64",
    "resolve_object",
    "serialize_kind",
    "serialize_transaction",
    "signing_digest",
    "transaction_digest",
]
