"""
Hash functions used across the engine.
"""

import hashlib

from Crypto.Hash import RIPEMD160

from ringct.constants import CURVE_ORDER, BIG_ENDIAN


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def sha256d(data: bytes) -> bytes:
    """Double SHA-256 (txids, MLSAG preimage, sighash)."""
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data)), the P2PKH pubkey hash."""
    return RIPEMD160.new(hashlib.sha256(data).digest()).digest()


def hash_to_scalar(*parts: bytes) -> int:
    """SHA-256 of the concatenated parts reduced modulo the group order."""
    h = hashlib.sha256()
    for part in parts:
        h.update(part)
    return int.from_bytes(h.digest(), BIG_ENDIAN) % CURVE_ORDER
