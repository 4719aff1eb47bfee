"""Ed25519 transaction signing for vault senders and bots."""

import base64
import hashlib
from typing import Optional, Protocol

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from tx_engine.encoder import signing_digest

ED25519_FLAG = 0x00
_PUBLIC_KEY_LENGTH = 32
_SIGNATURE_LENGTH = 64


class Signer(Protocol):
    @property
    def address(self) -> str:
        ...

    def sign_transaction(self, tx_bytes: bytes) -> str:
        ...


class Ed25519Signer:
    """Signs the intent digest of transaction bytes with one Ed25519 key."""

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key = private_key
        self._public_key = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    @classmethod
    def generate(cls) -> "Ed25519Signer":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_secret(cls, secret: bytes) -> "Ed25519Signer":
        if len(secret) != 32:
            raise ValueError("Ed25519 secret must be 32 bytes.")
        return cls(Ed25519PrivateKey.from_private_bytes(secret))

    @classmethod
    def from_hex(cls, secret_hex: str) -> "Ed25519Signer":
        raw = secret_hex.strip().lower()
        if raw.startswith("0x"):
            raw = raw[2:]
        try:
            secret = bytes.fromhex(raw)
        except ValueError as exc:
            raise ValueError("Signer secret must be hex encoded.") from exc
        return cls.from_secret(secret)

    @property
    def public_key(self) -> bytes:
        return self._public_key

    @property
    def address(self) -> str:
        return derive_address(self._public_key)

    def sign_transaction(self, tx_bytes: bytes) -> str:
        signature = self._private_key.sign(signing_digest(tx_bytes))
        serialized = bytes((ED25519_FLAG,)) + signature + self._public_key
        return base64.b64encode(serialized).decode("ascii")


def derive_address(public_key: bytes) -> str:
    digest = hashlib.blake2b(bytes((ED25519_FLAG,)) + public_key, digest_size=32)
    return "0x" + digest.hexdigest()


def verify_signature(serialized: str, tx_bytes: bytes) -> Optional[str]:
    """Return the signer address when ``serialized`` signs ``tx_bytes``."""

    raw = base64.b64decode(serialized.encode("ascii"))
    if len(raw) != 1 + _SIGNATURE_LENGTH + _PUBLIC_KEY_LENGTH or raw[0] != ED25519_FLAG:
        return None
    signature = raw[1 : 1 + _SIGNATURE_LENGTH]
    public_key = raw[1 + _SIGNATURE_LENGTH :]
    try:
        Ed25519PublicKey.from_public_bytes(public_key).verify(
            signature, signing_digest(tx_bytes)
        )
    except InvalidSignature:
        return None
    return derive_address(public_key)
