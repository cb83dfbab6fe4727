"""
Low-level secp256k1 operations on top of libsecp256k1 (coincurve).

Scalars are Python ints in [0, n) at this layer and 32-byte big-endian
buffers at the provider boundary. Points are 33-byte compressed encodings.
"""

import hashlib
import secrets
import struct
from typing import List, Optional, Sequence

from coincurve import PrivateKey, PublicKey

from ringct.constants import BIG_ENDIAN, CURVE_ORDER, PUBLIC_KEY_SIZE, SECRET_KEY_SIZE

# Domain separation tags
DOMAIN_HASH_TO_POINT = b"RingCT_HashToPoint_v1"
DOMAIN_KEY_IMAGE = b"RingCT_KeyImage_v1"
H_GENERATOR_SEED = b"RingCT Pedersen H Generator v1"


class CurveError(ValueError):
    """Invalid point, invalid scalar, or point at infinity."""
    pass


# ============================================================================
# SCALARS
# ============================================================================

def scalar_from_bytes(data: bytes) -> int:
    if len(data) != SECRET_KEY_SIZE:
        raise CurveError(f"Scalar must be {SECRET_KEY_SIZE} bytes, got {len(data)}")
    return int.from_bytes(data, BIG_ENDIAN) % CURVE_ORDER


def scalar_to_bytes(value: int) -> bytes:
    return (value % CURVE_ORDER).to_bytes(SECRET_KEY_SIZE, BIG_ENDIAN)


def scalar_random() -> int:
    """Uniform scalar in [1, n)."""
    return secrets.randbelow(CURVE_ORDER - 1) + 1


# ============================================================================
# POINTS
# ============================================================================

def is_valid_point(point: bytes) -> bool:
    """Check point is a valid compressed secp256k1 point."""
    if len(point) != PUBLIC_KEY_SIZE or point[0] not in (0x02, 0x03):
        return False
    try:
        PublicKey(point)
        return True
    except ValueError:
        return False


def base_mul(k: int) -> bytes:
    """k * G."""
    k %= CURVE_ORDER
    if k == 0:
        raise CurveError("Scalar multiplication by zero")
    return PrivateKey(scalar_to_bytes(k)).public_key.format(compressed=True)


def point_mul(k: int, point: bytes) -> bytes:
    """k * P."""
    k %= CURVE_ORDER
    if k == 0:
        raise CurveError("Scalar multiplication by zero")
    try:
        return PublicKey(point).multiply(scalar_to_bytes(k)).format(compressed=True)
    except ValueError as e:
        raise CurveError(f"Point multiplication failed: {e}") from e


def point_add(*points: bytes) -> bytes:
    """Sum of points. Raises CurveError on the point at infinity."""
    if not points:
        raise CurveError("Cannot sum an empty point list")
    if len(points) == 1:
        if not is_valid_point(points[0]):
            raise CurveError("Invalid point")
        return bytes(points[0])
    try:
        keys = [PublicKey(p) for p in points]
        return PublicKey.combine_keys(keys).format(compressed=True)
    except ValueError as e:
        raise CurveError(f"Point addition failed: {e}") from e


def point_negate(point: bytes) -> bytes:
    """-P: flip the y parity prefix."""
    if len(point) != PUBLIC_KEY_SIZE or point[0] not in (0x02, 0x03):
        raise CurveError("Invalid point")
    return bytes([point[0] ^ 0x01]) + point[1:]


def point_sub(a: bytes, b: bytes) -> bytes:
    """a - b."""
    return point_add(a, point_negate(b))


def points_equal_sum(positive: Sequence[bytes], negative: Sequence[bytes]) -> bool:
    """True if sum(positive) == sum(negative)."""
    terms = list(positive) + [point_negate(p) for p in negative]
    if not terms:
        return True
    for p in terms:
        if not is_valid_point(p):
            return False
    try:
        point_add(*terms)
    except CurveError:
        # Sum is the point at infinity
        return True
    return False


def hash_to_point(data: bytes) -> bytes:
    """
    Hash data to a secp256k1 point.

    Try-and-increment over SHA-256 x candidates; the parity bit comes from
    a second hash of the same input.
    """
    for counter in range(256):
        hash_input = DOMAIN_HASH_TO_POINT + data + struct.pack('<B', counter)
        x = hashlib.sha256(hash_input).digest()
        parity = hashlib.sha256(hash_input + b'\xff').digest()[0] & 1
        candidate = bytes([0x02 | parity]) + x
        if is_valid_point(candidate):
            return candidate

    raise CurveError("Hash to point failed after 256 attempts")


# ============================================================================
# GENERATORS
# ============================================================================

_H: Optional[bytes] = None


def generator_h() -> bytes:
    """Second Pedersen generator H with unknown discrete log relative to G."""
    global _H
    if _H is None:
        _H = hash_to_point(H_GENERATOR_SEED)
    return _H


def key_image_base(pubkey: bytes) -> bytes:
    """Hp(P) used for key images."""
    return hash_to_point(DOMAIN_KEY_IMAGE + pubkey)


def commit(value: int, blind: int) -> bytes:
    """blind * G + value * H."""
    terms: List[bytes] = []
    if blind % CURVE_ORDER:
        terms.append(base_mul(blind))
    if value % CURVE_ORDER:
        terms.append(point_mul(value, generator_h()))
    if not terms:
        raise CurveError("Commitment to zero value with zero blind")
    return point_add(*terms)
