"""
Range proof parameter selection.

Picks the decimal exponent and minimum bit width for each output's range
proof the way full-node wallets do, so proofs from this engine are not
distinguishable by their parameters.
"""

import logging
import secrets
from dataclasses import dataclass

from ringct.constants import (
    RANGE_PROOF_DEFAULT_MIN_BITS,
    RANGE_PROOF_MAX_BITS,
    RANGE_PROOF_MAX_EXPONENT,
)
from ringct.crypto.rangeproof import BIT_PROOF_SIZE, PAYLOAD_HEADER_SIZE
from ringct.errors import ErrorCode, ValidationError

logger = logging.getLogger(__name__)

# Header: version, exp, bits, min_value, payload length prefix
PROOF_HEADER_SIZE = 1 + 1 + 1 + 8 + 1


@dataclass(frozen=True, slots=True)
class RangeProofParams:
    min_value: int = 0
    exponent: int = 0
    min_bits: int = RANGE_PROOF_DEFAULT_MIN_BITS


def _rand(n: int) -> int:
    return secrets.randbelow(n) if n > 0 else 0


def select_range_proof_parameters(value: int) -> RangeProofParams:
    """
    Choose exponent and minimum bits for value.

    Zero gets a random exponent below 5 and 32 bits, widened by up to 4 bits
    one time in ten. Other values use an exponent between half and all of
    their trailing decimal zeros; wide mantissas raise the bit floor, which
    is then rounded up to a multiple of 4 below 63.
    """
    if value == 0:
        min_bits = RANGE_PROOF_DEFAULT_MIN_BITS
        exponent = _rand(5)
        if _rand(10) == 0:
            min_bits += _rand(5)
        return RangeProofParams(min_value=0, exponent=exponent, min_bits=min_bits)

    decimal_zeros = 0
    test = value
    while test % 10 == 0 and decimal_zeros < RANGE_PROOF_MAX_EXPONENT:
        decimal_zeros += 1
        test //= 10

    e_min = decimal_zeros // 2
    exponent = e_min + _rand(max(1, decimal_zeros - e_min))

    bits_required = (value // 10 ** exponent).bit_length()
    min_bits = RANGE_PROOF_DEFAULT_MIN_BITS
    if bits_required > min_bits:
        min_bits = bits_required
    while min_bits < 63 and min_bits % 4 != 0:
        min_bits += 1

    return RangeProofParams(min_value=0, exponent=exponent, min_bits=min_bits)


def standard_range_proof_params() -> RangeProofParams:
    return RangeProofParams(min_value=0, exponent=2, min_bits=RANGE_PROOF_DEFAULT_MIN_BITS)


def validate_range_proof_params(params: RangeProofParams) -> None:
    """
    Raises:
        ValidationError: exponent outside [0, 18], bits outside [0, 64] or a negative minimum
    """
    if not 0 <= params.exponent <= RANGE_PROOF_MAX_EXPONENT:
        raise ValidationError(
            f"Range proof exponent must be in [0, {RANGE_PROOF_MAX_EXPONENT}], got {params.exponent}",
            ErrorCode.INVALID_RANGE_PARAMS,
        )
    if not 0 <= params.min_bits <= RANGE_PROOF_MAX_BITS:
        raise ValidationError(
            f"Range proof min bits must be in [0, {RANGE_PROOF_MAX_BITS}], got {params.min_bits}",
            ErrorCode.INVALID_RANGE_PARAMS,
        )
    if params.min_value < 0:
        raise ValidationError(
            f"Range proof min value cannot be negative: {params.min_value}",
            ErrorCode.INVALID_RANGE_PARAMS,
        )
    if 0 < params.min_bits < 63 and params.min_bits % 4 != 0:
        logger.debug(f"min_bits {params.min_bits} is not a multiple of 4")


def estimate_proof_size(params: RangeProofParams, message_size: int = 0) -> int:
    """Serialized proof size in bytes when the mantissa fits in min_bits."""
    bits = max(params.min_bits, 1)
    return PROOF_HEADER_SIZE + PAYLOAD_HEADER_SIZE + message_size + bits * BIT_PROOF_SIZE
