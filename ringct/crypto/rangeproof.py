"""
Rewindable bit-decomposition range proofs.

The committed value is written as

    value = min_value + mantissa * 10^exp,   0 <= mantissa < 2^bits

and each mantissa bit gets its own commitment C_i = r_i*G + b_i*2^i*10^exp*H
with sum(r_i) equal to the output blind. A two-member ring signature over
{C_i, C_i - 2^i*10^exp*H} shows each C_i commits to 0 or to its digit
weight without revealing which.

Value, blind and an optional message travel encrypted in the proof so the
recipient can rewind it with the nonce shared at output creation.

Wire layout:
    version(1) | exp(1) | bits(1) | min_value(u64 LE)
    varbytes(encrypted payload)
    bits * [C_i(33) | e0(32) | s0(32) | s1(32)]
"""

import hashlib
import hmac
import logging
from typing import List, Tuple

from Crypto.Cipher import ChaCha20

from ringct.constants import (
    BIG_ENDIAN,
    BLIND_SIZE,
    COMMITMENT_SIZE,
    CURVE_ORDER,
    HASH_SIZE,
    RANGE_PROOF_MAX_BITS,
    RANGE_PROOF_MAX_EXPONENT,
)
from ringct.core.serialization import ByteReader, ByteWriter
from ringct.crypto import curve
from ringct.crypto.curve import CurveError, scalar_from_bytes, scalar_to_bytes
from ringct.crypto.hashing import hash_to_scalar
from ringct.crypto.provider import RewindResult
from ringct.errors import FormatError, RangeProofError

logger = logging.getLogger(__name__)

PROOF_VERSION = 1
DOMAIN_RANGE_PROOF = b"RingCT_RangeProof_v1"
BIT_PROOF_SIZE = COMMITMENT_SIZE + 3 * HASH_SIZE
PAYLOAD_HEADER_SIZE = 8 + BLIND_SIZE


def _keystream_cipher(nonce: bytes, commitment: bytes) -> ChaCha20.ChaCha20Cipher:
    key = hashlib.sha256(nonce + commitment).digest()
    return ChaCha20.new(key=key, nonce=bytes(8))


def _bit_challenge(commitment: bytes, index: int, bit_commit: bytes, L: bytes) -> int:
    return hash_to_scalar(DOMAIN_RANGE_PROOF, commitment, bytes([index]), bit_commit, L)


def _ring_point(s: int, e: int, P: bytes) -> bytes:
    """s*G + e*P."""
    return curve.point_add(curve.base_mul(s), curve.point_mul(e, P))


def _parse(proof: bytes) -> Tuple[int, int, int, bytes, List[Tuple[bytes, bytes, bytes, bytes]]]:
    try:
        reader = ByteReader(proof)
        version = reader.read_u8()
        if version != PROOF_VERSION:
            raise RangeProofError(f"Unsupported range proof version {version}")
        exp = reader.read_u8()
        bits = reader.read_u8()
        min_value = reader.read_u64()
        payload = reader.read_bytes()
        if exp > RANGE_PROOF_MAX_EXPONENT:
            raise RangeProofError(f"Range proof exponent {exp} out of range")
        if not 1 <= bits <= RANGE_PROOF_MAX_BITS:
            raise RangeProofError(f"Range proof bit count {bits} out of range")
        if reader.remaining() != bits * BIT_PROOF_SIZE:
            raise RangeProofError(
                f"Range proof body is {reader.remaining()} bytes, expected {bits * BIT_PROOF_SIZE}"
            )
        rows = []
        for _ in range(bits):
            rows.append((
                reader.read_fixed_bytes(COMMITMENT_SIZE),
                reader.read_fixed_bytes(HASH_SIZE),
                reader.read_fixed_bytes(HASH_SIZE),
                reader.read_fixed_bytes(HASH_SIZE),
            ))
    except FormatError as e:
        raise RangeProofError(f"Malformed range proof: {e.message}") from e
    return exp, bits, min_value, payload, rows


def sign(
    commitment: bytes,
    value: int,
    blind: bytes,
    nonce: bytes,
    message: bytes = b"",
    min_value: int = 0,
    exp: int = 0,
    min_bits: int = 0,
) -> bytes:
    """
    Prove that commitment opens to value.

    Raises:
        RangeProofError: if value is outside what the parameters can express
    """
    if value < 0 or min_value < 0 or value < min_value:
        raise RangeProofError(f"Value {value} below minimum {min_value}")
    if not 0 <= exp <= RANGE_PROOF_MAX_EXPONENT:
        raise RangeProofError(f"Exponent {exp} out of range")

    scale = 10 ** exp
    mantissa, remainder = divmod(value - min_value, scale)
    effective_min = min_value + remainder
    bits = max(min_bits, mantissa.bit_length(), 1)
    if bits > RANGE_PROOF_MAX_BITS:
        raise RangeProofError(f"Value needs {bits} bits, maximum is {RANGE_PROOF_MAX_BITS}")
    if effective_min >= 1 << 64:
        raise RangeProofError("Minimum value does not fit in 64 bits")

    r = scalar_from_bytes(blind)
    if curve.commit(value, r) != commitment:
        raise RangeProofError("Commitment does not open to value and blind")

    bit_blinds = [curve.scalar_random() for _ in range(bits - 1)]
    bit_blinds.append((r - sum(bit_blinds)) % CURVE_ORDER)

    w = ByteWriter()
    w.write_u8(PROOF_VERSION).write_u8(exp).write_u8(bits).write_u64(effective_min)

    plaintext = value.to_bytes(8, BIG_ENDIAN) + scalar_to_bytes(r) + message
    w.write_bytes(_keystream_cipher(nonce, commitment).encrypt(plaintext))

    for i in range(bits):
        digit = (2 ** i) * scale
        b = (mantissa >> i) & 1
        ri = bit_blinds[i]
        Ci = curve.commit(digit * b, ri)
        members = (Ci, curve.point_sub(Ci, curve.point_mul(digit, curve.generator_h())))

        alpha = curve.scalar_random()
        s = [0, 0]
        e = [0, 0]
        other = 1 - b
        e[other] = _bit_challenge(commitment, i, Ci, curve.base_mul(alpha))
        s[other] = curve.scalar_random()
        e[b] = _bit_challenge(commitment, i, Ci, _ring_point(s[other], e[other], members[other]))
        s[b] = (alpha - e[b] * ri) % CURVE_ORDER

        w.write_raw(Ci)
        w.write_raw(scalar_to_bytes(e[0]))
        w.write_raw(scalar_to_bytes(s[0]))
        w.write_raw(scalar_to_bytes(s[1]))

    return w.to_bytes()


def verify(commitment: bytes, proof: bytes) -> Tuple[int, int]:
    """
    Verify a range proof against its commitment.

    Returns:
        (min_value, max_value)

    Raises:
        RangeProofError: if the proof does not hold
    """
    exp, bits, min_value, _, rows = _parse(proof)
    scale = 10 ** exp

    try:
        positive = [row[0] for row in rows]
        if min_value:
            positive.append(curve.point_mul(min_value, curve.generator_h()))
        if not curve.points_equal_sum(positive, [commitment]):
            raise RangeProofError("Bit commitments do not sum to the commitment")

        for i, (Ci, e0_bytes, s0_bytes, s1_bytes) in enumerate(rows):
            digit = (2 ** i) * scale
            P1 = curve.point_sub(Ci, curve.point_mul(digit, curve.generator_h()))
            e0 = scalar_from_bytes(e0_bytes)
            e1 = _bit_challenge(commitment, i, Ci, _ring_point(scalar_from_bytes(s0_bytes), e0, Ci))
            e0_check = _bit_challenge(commitment, i, Ci, _ring_point(scalar_from_bytes(s1_bytes), e1, P1))
            if not hmac.compare_digest(scalar_to_bytes(e0_check), e0_bytes):
                logger.debug(f"Range proof bit {i} ring doesn't close")
                raise RangeProofError(f"Bit proof {i} is invalid")
    except CurveError as e:
        raise RangeProofError(f"Range proof point error: {e}") from e

    return min_value, min_value + ((1 << bits) - 1) * scale


def rewind(nonce: bytes, commitment: bytes, proof: bytes) -> RewindResult:
    """
    Recover value, blind and message from a proof.

    Raises:
        RangeProofError: wrong nonce or invalid proof
    """
    _, _, _, payload, _ = _parse(proof)
    if len(payload) < PAYLOAD_HEADER_SIZE:
        raise RangeProofError("Range proof payload too short")

    plaintext = _keystream_cipher(nonce, commitment).decrypt(payload)
    value = int.from_bytes(plaintext[:8], BIG_ENDIAN)
    blind = plaintext[8:PAYLOAD_HEADER_SIZE]
    message = plaintext[PAYLOAD_HEADER_SIZE:]

    try:
        opens = curve.commit(value, scalar_from_bytes(blind)) == commitment
    except CurveError:
        opens = False
    if not opens:
        raise RangeProofError("Rewind failed: nonce does not match proof")

    min_value, max_value = verify(commitment, proof)
    return RewindResult(
        value=value,
        blind=blind,
        min_value=min_value,
        max_value=max_value,
        message=message,
    )
