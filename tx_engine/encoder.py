"""BCS encoding of Move calls into Sui ``TransactionData``.

Integers are fixed-width little-endian, addresses are exactly 32 bytes,
sequences and byte strings carry a ULEB128 length prefix and enum variants a
one-byte tag. The same logical value always serializes to the same bytes, so
the bytes sent to the dry-run endpoint are the bytes that get signed and
submitted.

A ``TransactionUnit`` holds object ids only. ``serialize_kind`` and
``serialize_transaction`` need the resolved references (versions, digests,
initial shared versions) and the gas data that the ledger expects inline.
"""

import hashlib
import re
from typing import Dict, Iterable, List, Sequence

from .errors import EncodingError, ObjectReferenceError
from .models import (
    Argument,
    GasCoinArg,
    InputObject,
    ObjectArg,
    ObjectRef,
    Operation,
    PureArg,
    ResultArg,
    SharedObjectRef,
    TransactionData,
    TransactionUnit,
)
from .objects import (
    ADDRESS_LENGTH,
    normalize_address,
    normalize_type_tag,
    split_struct_tag,
)

U16_MAX = 2**16 - 1
U64_MAX = 2**64 - 1
DIGEST_LENGTH = 32

_TRANSACTION_DATA_SALT = b"TransactionData::"
_INTENT_PREFIX = bytes((0, 0, 0))

_TRANSACTION_DATA_V1 = 0
_KIND_PROGRAMMABLE = 0
_CALL_ARG_PURE = 0
_CALL_ARG_OBJECT = 1
_OBJECT_IMM_OR_OWNED = 0
_OBJECT_SHARED = 1
_COMMAND_MOVE_CALL = 0
_ARG_GAS_COIN = 0
_ARG_INPUT = 1
_ARG_NESTED_RESULT = 3
_EXPIRATION_NONE = 0
_EXPIRATION_EPOCH = 1

_TYPE_TAGS = {
    "bool": 0,
    "u8": 1,
    "u64": 2,
    "u128": 3,
    "address": 4,
    "signer": 5,
    "u16": 8,
    "u32": 9,
    "u256": 10,
}
_TYPE_VECTOR = 6
_TYPE_STRUCT = 7

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_B58_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def encode(
    package: str,
    module: str,
    function: str,
    arguments: Sequence[Argument],
    type_arguments: Sequence[str] = (),
) -> Operation:
    """Encode one Move call into an immutable ``Operation``."""

    target = f"{module}::{function}"
    for name in (module, function):
        if not isinstance(name, str) or not _IDENTIFIER.match(name):
            raise EncodingError(f"Invalid Move identifier: {name!r}.", operation=target)
    for argument in arguments:
        _validate_argument(argument, target)
    return Operation(
        package=normalize_address(package),
        module=module,
        function=function,
        arguments=tuple(arguments),
        type_arguments=tuple(normalize_type_tag(tag) for tag in type_arguments),
    )


def pure_u64(value: int) -> PureArg:
    return PureArg(value=_encode_uint(value, 8, U64_MAX), type_name="u64")


def pure_u16(value: int) -> PureArg:
    return PureArg(value=_encode_uint(value, 2, U16_MAX), type_name="u16")


def pure_bool(value: bool) -> PureArg:
    if not isinstance(value, bool):
        raise EncodingError("Boolean value required.", payload=value)
    return PureArg(value=b"\x01" if value else b"\x00", type_name="bool")


def pure_address(value: str) -> PureArg:
    return PureArg(value=_address_bytes(value), type_name="address")


def pure_address_vector(values: Iterable[str]) -> PureArg:
    items = [_address_bytes(value) for value in values]
    return PureArg(value=_vector(items), type_name="vector<address>")


def pure_bool_vector(values: Iterable[bool]) -> PureArg:
    items = [pure_bool(value).value for value in values]
    return PureArg(value=_vector(items), type_name="vector<bool>")


def decode_u64(data: bytes) -> int:
    if len(data) != 8:
        raise EncodingError(f"u64 requires 8 bytes, got {len(data)}.")
    return int.from_bytes(data, "little")


def decode_address(data: bytes) -> str:
    if len(data) != ADDRESS_LENGTH:
        raise EncodingError(f"Address requires {ADDRESS_LENGTH} bytes, got {len(data)}.")
    return "0x" + data.hex()


def serialize_type_tag(tag: str) -> bytes:
    tag = normalize_type_tag(tag)
    if tag in _TYPE_TAGS:
        return bytes((_TYPE_TAGS[tag],))
    if tag.startswith("vector<"):
        return bytes((_TYPE_VECTOR,)) + serialize_type_tag(tag[len("vector<"):-1])
    address, module, name, params = split_struct_tag(tag)
    for identifier in (module, name):
        if not _IDENTIFIER.match(identifier):
            raise EncodingError(f"Invalid Move identifier: {identifier!r}.", payload=tag)
    return b"".join(
        (
            bytes((_TYPE_STRUCT,)),
            _address_bytes(address),
            _string(module),
            _string(name),
            _vector([serialize_type_tag(param) for param in params]),
        )
    )


def serialize_kind(unit: TransactionUnit, objects: Iterable[InputObject] = ()) -> bytes:
    """``TransactionKind::ProgrammableTransaction`` bytes for ``unit``.

    Object inputs are deduplicated by id in order of first use; every pure
    value is its own input. ``objects`` must resolve every object id the
    unit references.
    """

    refs = {ref.object_id: ref for ref in objects}
    inputs: List[bytes] = []
    object_slots: Dict[str, int] = {}
    commands = []
    for operation in unit.operations:
        arguments = []
        for argument in operation.arguments:
            if isinstance(argument, ObjectArg):
                slot = object_slots.get(argument.object_id)
                if slot is None:
                    ref = refs.get(argument.object_id)
                    if ref is None:
                        raise ObjectReferenceError(
                            f"Object {argument.object_id} was not resolved.",
                            operation=operation.target,
                            payload=argument.object_id,
                        )
                    slot = len(inputs)
                    inputs.append(_object_input(ref))
                    object_slots[argument.object_id] = slot
                arguments.append(bytes((_ARG_INPUT,)) + _u16(slot))
            elif isinstance(argument, PureArg):
                arguments.append(bytes((_ARG_INPUT,)) + _u16(len(inputs)))
                inputs.append(bytes((_CALL_ARG_PURE,)) + _bytes(argument.value))
            elif isinstance(argument, GasCoinArg):
                arguments.append(bytes((_ARG_GAS_COIN,)))
            elif isinstance(argument, ResultArg):
                arguments.append(
                    bytes((_ARG_NESTED_RESULT,))
                    + _u16(argument.operation_index)
                    + _u16(argument.output_index)
                )
            else:
                raise EncodingError(
                    f"Unsupported argument type: {type(argument).__name__}.",
                    operation=operation.target,
                )
        commands.append(_move_call(operation, arguments))
    return bytes((_KIND_PROGRAMMABLE,)) + _vector(inputs) + _vector(commands)


def serialize_transaction(data: TransactionData) -> bytes:
    """``TransactionData::V1`` bytes: the value that is dry-run and signed."""

    gas = data.gas
    if not gas.payment:
        raise EncodingError("Gas payment must name at least one coin.", operation="gas")
    if data.expiration_epoch is None:
        expiration = bytes((_EXPIRATION_NONE,))
    else:
        expiration = bytes((_EXPIRATION_EPOCH,)) + _u64(data.expiration_epoch)
    return b"".join(
        (
            bytes((_TRANSACTION_DATA_V1,)),
            serialize_kind(data.unit, data.objects),
            _address_bytes(data.sender),
            _vector([_object_ref(ref) for ref in gas.payment]),
            _address_bytes(gas.owner),
            _u64(gas.price),
            _u64(gas.budget),
            expiration,
        )
    )


def transaction_digest(tx_bytes: bytes) -> str:
    digest = hashlib.blake2b(_TRANSACTION_DATA_SALT + tx_bytes, digest_size=32).digest()
    return b58encode(digest)


def signing_digest(tx_bytes: bytes) -> bytes:
    return hashlib.blake2b(_INTENT_PREFIX + tx_bytes, digest_size=32).digest()


def b58encode(data: bytes) -> str:
    n_pad = 0
    for byte in data:
        if byte != 0:
            break
        n_pad += 1
    num = int.from_bytes(data, "big")
    out = bytearray()
    while num > 0:
        num, rem = divmod(num, 58)
        out.append(_B58_ALPHABET[rem])
    out.extend(_B58_ALPHABET[0] for _ in range(n_pad))
    out.reverse()
    return out.decode("ascii")


def b58decode(value: str) -> bytes:
    try:
        raw = value.encode("ascii")
    except (AttributeError, UnicodeEncodeError) as exc:
        raise EncodingError("Base58 value must be an ASCII string.", payload=value) from exc
    num = 0
    for char in raw:
        index = _B58_ALPHABET.find(char)
        if index < 0:
            raise EncodingError("Invalid base58 character.", payload=value)
        num = num * 58 + index
    n_pad = len(raw) - len(raw.lstrip(b"1"))
    return b"\x00" * n_pad + num.to_bytes((num.bit_length() + 7) // 8, "big")


def _validate_argument(argument: Argument, target: str) -> None:
    if isinstance(argument, GasCoinArg):
        return
    if isinstance(argument, ObjectArg):
        if argument.object_id != normalize_address(argument.object_id):
            raise EncodingError("Object arguments must be normalized.", operation=target)
        return
    if isinstance(argument, PureArg):
        if not isinstance(argument.value, bytes) or not argument.type_name:
            raise EncodingError("Pure arguments must carry typed bytes.", operation=target)
        return
    if isinstance(argument, ResultArg):
        if not 0 <= argument.operation_index <= U16_MAX or not 0 <= argument.output_index <= U16_MAX:
            raise EncodingError("Result references must fit in u16.", operation=target)
        return
    raise EncodingError(
        f"Unsupported argument type: {type(argument).__name__}.", operation=target
    )


def _move_call(operation: Operation, arguments: List[bytes]) -> bytes:
    return b"".join(
        (
            bytes((_COMMAND_MOVE_CALL,)),
            _address_bytes(operation.package),
            _string(operation.module),
            _string(operation.function),
            _vector([serialize_type_tag(tag) for tag in operation.type_arguments]),
            _vector(arguments),
        )
    )


def _object_input(ref: InputObject) -> bytes:
    if isinstance(ref, SharedObjectRef):
        return b"".join(
            (
                bytes((_CALL_ARG_OBJECT, _OBJECT_SHARED)),
                _address_bytes(ref.object_id),
                _u64(ref.initial_shared_version),
                pure_bool(ref.mutable).value,
            )
        )
    return bytes((_CALL_ARG_OBJECT, _OBJECT_IMM_OR_OWNED)) + _object_ref(ref)


def _object_ref(ref: ObjectRef) -> bytes:
    digest = b58decode(ref.digest)
    if len(digest) != DIGEST_LENGTH:
        raise EncodingError(
            f"Object digest must be {DIGEST_LENGTH} bytes.", payload=ref.digest
        )
    return _address_bytes(ref.object_id) + _u64(ref.version) + _bytes(digest)


def _encode_uint(value: int, width: int, maximum: int) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodingError("Unsigned integers must be int, never float.", payload=value)
    if value < 0 or value > maximum:
        raise EncodingError(f"Value {value} out of range for {width * 8}-bit.", payload=value)
    return value.to_bytes(width, "little")


def _u16(value: int) -> bytes:
    return _encode_uint(value, 2, U16_MAX)


def _u64(value: int) -> bytes:
    return _encode_uint(value, 8, U64_MAX)


def _address_bytes(value: str) -> bytes:
    return bytes.fromhex(normalize_address(value)[2:])


def _string(value: str) -> bytes:
    return _bytes(value.encode("utf-8"))


def _bytes(value: bytes) -> bytes:
    return _uleb128(len(value)) + value


def _vector(items: Sequence[bytes]) -> bytes:
    return _uleb128(len(items)) + b"".join(items)


def _uleb128(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)
