"""
Default crypto provider: secp256k1 through libsecp256k1 (coincurve).

Point arithmetic, ECDH and ECDSA are delegated to libsecp256k1; range
proofs and MLSAG are the engine-native constructions in
ringct.crypto.rangeproof and ringct.crypto.mlsag.
"""

import logging
from typing import List, Sequence, Tuple

from coincurve import PrivateKey, PublicKey

from ringct.constants import CURVE_ORDER
from ringct.crypto import curve, mlsag, rangeproof
from ringct.crypto.curve import CurveError, scalar_from_bytes, scalar_to_bytes
from ringct.crypto.provider import CryptoProvider, MlsagSignature, RewindResult
from ringct.errors import CryptoVerificationError, InvalidKeyError

logger = logging.getLogger(__name__)


def _secret(name: str, secret: bytes) -> int:
    try:
        k = scalar_from_bytes(secret)
    except CurveError as e:
        raise InvalidKeyError(name, str(e)) from e
    if k == 0:
        raise InvalidKeyError(name, "must be non-zero")
    return k


class Secp256k1Provider(CryptoProvider):
    """libsecp256k1-backed provider."""

    @property
    def backend_name(self) -> str:
        return "secp256k1 (coincurve)"

    # ------------------------------------------------------------------
    # Scalars & points
    # ------------------------------------------------------------------

    def random_scalar(self) -> bytes:
        return scalar_to_bytes(curve.scalar_random())

    def derive_public_key(self, secret: bytes) -> bytes:
        return curve.base_mul(_secret("secret", secret))

    def point_add(self, a: bytes, b: bytes) -> bytes:
        return curve.point_add(a, b)

    def point_add_scalar(self, point: bytes, scalar: bytes) -> bytes:
        try:
            return PublicKey(point).add(scalar).format(compressed=True)
        except ValueError as e:
            raise CurveError(f"Tweak add failed: {e}") from e

    def point_multiply(self, point: bytes, scalar: bytes) -> bytes:
        return curve.point_mul(_secret("scalar", scalar), point)

    def private_add(self, a: bytes, b: bytes) -> bytes:
        return scalar_to_bytes(scalar_from_bytes(a) + scalar_from_bytes(b))

    def private_sub(self, a: bytes, b: bytes) -> bytes:
        return scalar_to_bytes(scalar_from_bytes(a) - scalar_from_bytes(b))

    def ecdh(self, pubkey: bytes, secret: bytes) -> bytes:
        # libsecp256k1's default ECDH hash is SHA256(compressed shared point)
        _secret("ECDH secret", secret)
        try:
            return PrivateKey(secret).ecdh(pubkey)
        except ValueError as e:
            raise InvalidKeyError("ECDH public key", str(e)) from e

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    def ecdsa_sign(self, msg_hash: bytes, secret: bytes) -> bytes:
        _secret("signing key", secret)
        return PrivateKey(secret).sign(msg_hash, hasher=None)

    def ecdsa_verify(self, msg_hash: bytes, signature: bytes, pubkey: bytes) -> bool:
        try:
            return PublicKey(pubkey).verify(signature, msg_hash, hasher=None)
        except ValueError as e:
            logger.debug(f"ECDSA verification error: {e}")
            return False

    def generate_key_image(self, pubkey: bytes, secret: bytes) -> bytes:
        return curve.point_mul(_secret("key image secret", secret), curve.key_image_base(pubkey))

    # ------------------------------------------------------------------
    # Pedersen commitments
    # ------------------------------------------------------------------

    def pedersen_commit(self, value: int, blind: bytes) -> bytes:
        return curve.commit(value, scalar_from_bytes(blind))

    def pedersen_blind_sum(self, blinds: Sequence[bytes], n_positive: int) -> bytes:
        total = 0
        for i, blind in enumerate(blinds):
            k = scalar_from_bytes(blind)
            total += k if i < n_positive else -k
        return scalar_to_bytes(total % CURVE_ORDER)

    def pedersen_verify_tally(self, positive: Sequence[bytes], negative: Sequence[bytes]) -> bool:
        return curve.points_equal_sum(positive, negative)

    # ------------------------------------------------------------------
    # Range proofs
    # ------------------------------------------------------------------

    def range_proof_sign(
        self,
        commitment: bytes,
        value: int,
        blind: bytes,
        nonce: bytes,
        message: bytes = b"",
        min_value: int = 0,
        exp: int = 0,
        min_bits: int = 0,
    ) -> bytes:
        return rangeproof.sign(commitment, value, blind, nonce, message, min_value, exp, min_bits)

    def range_proof_verify(self, commitment: bytes, proof: bytes) -> Tuple[int, int]:
        return rangeproof.verify(commitment, proof)

    def range_proof_rewind(self, nonce: bytes, commitment: bytes, proof: bytes) -> RewindResult:
        return rangeproof.rewind(nonce, commitment, proof)

    # ------------------------------------------------------------------
    # MLSAG
    # ------------------------------------------------------------------

    def prepare_mlsag(
        self,
        pubkeys: Sequence[bytes],
        in_commits: Sequence[bytes],
        out_commits: Sequence[bytes],
        in_blind: bytes,
        out_blinds: Sequence[bytes],
    ) -> Tuple[List[List[bytes]], bytes]:
        if len(pubkeys) != len(in_commits):
            raise CryptoVerificationError(
                "Ring pubkey and commitment counts differ",
                {"pubkeys": len(pubkeys), "commitments": len(in_commits)},
            )
        if not out_commits:
            raise CryptoVerificationError("MLSAG needs at least one output commitment")

        out_sum = curve.point_add(*out_commits)
        matrix = [
            [pk, curve.point_sub(commit, out_sum)]
            for pk, commit in zip(pubkeys, in_commits)
        ]
        blind_sum = self.pedersen_blind_sum([in_blind, *out_blinds], 1)
        return matrix, blind_sum

    def generate_mlsag(
        self,
        preimage: bytes,
        matrix: Sequence[Sequence[bytes]],
        secret_index: int,
        secret_keys: Sequence[bytes],
    ) -> MlsagSignature:
        return mlsag.sign(preimage, matrix, secret_index, secret_keys)

    def verify_mlsag(
        self,
        preimage: bytes,
        matrix: Sequence[Sequence[bytes]],
        signature: MlsagSignature,
    ) -> bool:
        return mlsag.verify(preimage, matrix, signature)
