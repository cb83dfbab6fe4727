"""
MLSAG (Multilayered Linkable Spontaneous Anonymous Group) signatures.

The public matrix has n_cols ring members, each a column of n_rows points.
Rows 0..n_rows-2 carry key images (spent outputs); the last row is the
commitment-balance row and carries none.

For column i and row r:
    L[i][r] = s[i][r] * G + c[i] * P[i][r]
    R[i][r] = s[i][r] * Hp(P[i][r]) + c[i] * I[r]      (key-image rows only)
    c[i+1]  = H(preimage || P[i][*] || L[i][*] || R[i][*])

The ring closes when the challenge after the last column equals c[0].
"""

import hashlib
import hmac
import logging
from typing import List, Sequence

from ringct.constants import CURVE_ORDER, BIG_ENDIAN
from ringct.crypto import curve
from ringct.crypto.curve import CurveError, scalar_from_bytes, scalar_to_bytes
from ringct.crypto.provider import MlsagSignature
from ringct.errors import RingSignatureError

logger = logging.getLogger(__name__)

DOMAIN_MLSAG = b"RingCT_MLSAG_v1"


def _challenge(
    preimage: bytes,
    column: Sequence[bytes],
    L: Sequence[bytes],
    R: Sequence[bytes],
) -> int:
    h = hashlib.sha256()
    h.update(DOMAIN_MLSAG)
    h.update(preimage)
    for row, pk in enumerate(column):
        h.update(pk)
        h.update(L[row])
        if row < len(R):
            h.update(R[row])
    return int.from_bytes(h.digest(), BIG_ENDIAN) % CURVE_ORDER


def _check_matrix(matrix: Sequence[Sequence[bytes]]) -> int:
    n_cols = len(matrix)
    if n_cols < 2:
        raise RingSignatureError("Ring must have at least 2 members")
    n_rows = len(matrix[0])
    if n_rows < 1:
        raise RingSignatureError("Ring columns must have at least 1 row")
    for i, column in enumerate(matrix):
        if len(column) != n_rows:
            raise RingSignatureError(f"Ring column {i} has {len(column)} rows, expected {n_rows}")
    return n_rows


def sign(
    preimage: bytes,
    matrix: Sequence[Sequence[bytes]],
    secret_index: int,
    secret_keys: Sequence[bytes],
) -> MlsagSignature:
    """
    Generate an MLSAG signature.

    Args:
        preimage: 32-byte message digest
        matrix: columns of public points (n_cols x n_rows)
        secret_index: column of the real signer
        secret_keys: one 32-byte secret per row

    Returns:
        MlsagSignature with key images for all rows but the last

    Raises:
        RingSignatureError: if parameters are inconsistent
    """
    n_cols = len(matrix)
    n_rows = _check_matrix(matrix)
    ds_rows = n_rows - 1

    if not 0 <= secret_index < n_cols:
        raise RingSignatureError(f"Invalid secret index {secret_index} for ring size {n_cols}")
    if len(secret_keys) != n_rows:
        raise RingSignatureError(f"Expected {n_rows} secret keys, got {len(secret_keys)}")

    xs = [scalar_from_bytes(sk) for sk in secret_keys]
    real = matrix[secret_index]
    for row, x in enumerate(xs):
        if x == 0 or curve.base_mul(x) != real[row]:
            raise RingSignatureError(f"Secret key doesn't match public key at row {row}")

    hp = [[curve.key_image_base(column[r]) for r in range(ds_rows)] for column in matrix]
    key_images = [curve.point_mul(xs[r], hp[secret_index][r]) for r in range(ds_rows)]

    c: List[int] = [0] * n_cols
    s: List[List[int]] = [[0] * n_rows for _ in range(n_cols)]

    alpha = [curve.scalar_random() for _ in range(n_rows)]
    L = [curve.base_mul(a) for a in alpha]
    R = [curve.point_mul(alpha[r], hp[secret_index][r]) for r in range(ds_rows)]
    c[(secret_index + 1) % n_cols] = _challenge(preimage, real, L, R)

    for j in range(1, n_cols):
        i = (secret_index + j) % n_cols
        column = matrix[i]
        L = []
        R = []
        for row in range(n_rows):
            s[i][row] = curve.scalar_random()
            L.append(curve.point_add(
                curve.base_mul(s[i][row]),
                curve.point_mul(c[i], column[row]),
            ))
            if row < ds_rows:
                R.append(curve.point_add(
                    curve.point_mul(s[i][row], hp[i][row]),
                    curve.point_mul(c[i], key_images[row]),
                ))
        c[(i + 1) % n_cols] = _challenge(preimage, column, L, R)

    # Close the ring: s_pi = alpha - c_pi * x
    for row in range(n_rows):
        s[secret_index][row] = (alpha[row] - c[secret_index] * xs[row]) % CURVE_ORDER

    return MlsagSignature(
        key_images=tuple(key_images),
        pc=scalar_to_bytes(c[0]),
        ps=tuple(scalar_to_bytes(s[i][r]) for i in range(n_cols) for r in range(n_rows)),
    )


def verify(
    preimage: bytes,
    matrix: Sequence[Sequence[bytes]],
    signature: MlsagSignature,
) -> bool:
    """
    Verify an MLSAG signature.

    Returns:
        True if the ring closes
    """
    try:
        n_cols = len(matrix)
        n_rows = _check_matrix(matrix)
        ds_rows = n_rows - 1

        if len(signature.ps) != n_cols * n_rows:
            logger.debug(f"Response count mismatch: {len(signature.ps)} != {n_cols * n_rows}")
            return False
        if len(signature.key_images) != ds_rows:
            logger.debug("Key image count mismatch")
            return False
        for ki in signature.key_images:
            if not curve.is_valid_point(ki):
                logger.debug("Invalid key image structure")
                return False

        c0 = scalar_from_bytes(signature.pc)
        c = c0
        for i, column in enumerate(matrix):
            L = []
            R = []
            for row in range(n_rows):
                s = scalar_from_bytes(signature.ps[i * n_rows + row])
                L.append(curve.point_add(curve.base_mul(s), curve.point_mul(c, column[row])))
                if row < ds_rows:
                    hp = curve.key_image_base(column[row])
                    R.append(curve.point_add(
                        curve.point_mul(s, hp),
                        curve.point_mul(c, signature.key_images[row]),
                    ))
            c = _challenge(preimage, column, L, R)

        if not hmac.compare_digest(scalar_to_bytes(c), signature.pc):
            logger.debug("Ring doesn't close")
            return False
        return True

    except (CurveError, RingSignatureError) as e:
        logger.warning(f"MLSAG verification error: {e}")
        return False
