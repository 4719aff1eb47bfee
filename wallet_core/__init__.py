from .signer import Ed25519Signer, Signer, derive_address, verify_signature

__all__ = [
    "Ed25519Signer",
    "Signer",
    "derive_address",
    "verify_signature",
]
