"""
RingCT cryptographic primitives.

The engine reaches curve math only through CryptoProvider.
"""

from ringct.crypto.hashing import sha256, sha256d, hash160, hash_to_scalar
from ringct.crypto.provider import (
    CryptoBackend,
    CryptoProvider,
    MlsagSignature,
    RewindResult,
    get_crypto_provider,
)

__all__ = [
    # Hashing
    "sha256",
    "sha256d",
    "hash160",
    "hash_to_scalar",
    # Provider
    "CryptoBackend",
    "CryptoProvider",
    "MlsagSignature",
    "RewindResult",
    "get_crypto_provider",
]
