"""Normalize and validate references to on-ledger objects and type tags."""

from typing import List, Tuple

from .errors import ObjectReferenceError
from .models import ObjectArg

ADDRESS_LENGTH = 32
SUI_COIN_TYPE = "0x2::sui::SUI"
PRIMITIVE_TYPES = frozenset(
    ("bool", "u8", "u16", "u32", "u64", "u128", "u256", "address", "signer")
)

_HEX_DIGITS = frozenset("0123456789abcdef")


def normalize_address(value: str) -> str:
    """Return the canonical ``0x``-prefixed, 64 hex digit form of ``value``."""

    if not isinstance(value, str):
        raise ObjectReferenceError("Object id must be a string.", payload=value)
    raw = value.strip().lower()
    if raw.startswith("0x"):
        raw = raw[2:]
    if not raw:
        raise ObjectReferenceError("Object id must be non-empty.", payload=value)
    if len(raw) > ADDRESS_LENGTH * 2:
        raise ObjectReferenceError(
            f"Object id exceeds {ADDRESS_LENGTH} bytes.", payload=value
        )
    if any(char not in _HEX_DIGITS for char in raw):
        raise ObjectReferenceError("Object id must be hexadecimal.", payload=value)
    return "0x" + raw.rjust(ADDRESS_LENGTH * 2, "0")


def is_valid_address(value: str) -> bool:
    try:
        normalize_address(value)
    except ObjectReferenceError:
        return False
    return True


def resolve_object(value: str) -> ObjectArg:
    return ObjectArg(object_id=normalize_address(value))


def normalize_type_tag(tag: str) -> str:
    """Normalize ``address::module::Name<...>`` so equal types compare equal.

    Primitive types and ``vector<...>`` pass through with their element type
    normalized.
    """

    if not isinstance(tag, str) or not tag.strip():
        raise ObjectReferenceError("Type tag must be non-empty.", payload=tag)
    tag = tag.strip()
    if tag in PRIMITIVE_TYPES:
        return tag
    if tag.startswith("vector<"):
        if not tag.endswith(">"):
            raise ObjectReferenceError("Unbalanced type parameters.", payload=tag)
        return f"vector<{normalize_type_tag(tag[len('vector<'):-1])}>"

    address, module, name, params = split_struct_tag(tag)
    normalized = f"{normalize_address(address)}::{module}::{name}"
    if params:
        inner = ", ".join(normalize_type_tag(item) for item in params)
        normalized += f"<{inner}>"
    return normalized


def split_struct_tag(tag: str) -> Tuple[str, str, str, Tuple[str, ...]]:
    """Split ``address::module::Name<P, ...>`` into its four parts."""

    generic_start = tag.find("<")
    if generic_start == -1:
        head, params = tag, ""
    else:
        if not tag.endswith(">"):
            raise ObjectReferenceError("Unbalanced type parameters.", payload=tag)
        head = tag[:generic_start]
        params = tag[generic_start + 1 : -1]

    parts = head.split("::")
    if len(parts) != 3 or not parts[1] or not parts[2]:
        raise ObjectReferenceError(
            "Type tag must look like address::module::Name.", payload=tag
        )
    items = tuple(_split_params(params)) if params else ()
    return parts[0], parts[1], parts[2], items


def coin_symbol(tag: str) -> str:
    """Short display name of a coin type, e.g. ``SUI`` for ``0x2::sui::SUI``."""

    return tag.split("<", 1)[0].rsplit("::", 1)[-1]


def _split_params(params: str) -> List[str]:
    items = []
    depth = 0
    current = []
    for char in params:
        if char == "<":
            depth += 1
        elif char == ">":
            depth -= 1
        if char == "," and depth == 0:
            items.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    items.append("".join(current).strip())
    if depth != 0 or any(not item for item in items):
        raise ObjectReferenceError("Malformed type parameters.", payload=params)
    return items
