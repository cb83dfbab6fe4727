"""
RingCT Crypto Primitives Provider Abstraction

All elliptic-curve, commitment, range-proof and ring-signature math goes
through this interface so the wallet engine never touches curve arithmetic
directly. The default backend (secp256k1 via libsecp256k1/coincurve) can be
replaced by any implementation of the same interface, e.g. one bound to
secp256k1-zkp for network byte-compatible proofs.

Usage:
    from ringct.crypto.provider import get_crypto_provider

    provider = get_crypto_provider()
    pubkey = provider.derive_public_key(secret)
    commitment = provider.pedersen_commit(value, blind)

Conventions:
    scalars: 32 bytes, big-endian, reduced modulo the group order
    points:  33 bytes, SEC1 compressed
"""

from __future__ import annotations
import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, List, Optional, Sequence, Tuple

from ringct.constants import HASH_SIZE

logger = logging.getLogger(__name__)


# ============================================================================
# BACKENDS
# ============================================================================

class CryptoBackend(Enum):
    """Available provider backends."""
    SECP256K1 = auto()      # libsecp256k1 via coincurve, engine-native proofs


# ============================================================================
# RESULT TYPES
# ============================================================================

@dataclass(frozen=True, slots=True)
class RewindResult:
    """Data recovered by rewinding a range proof with its nonce."""
    value: int
    blind: bytes
    min_value: int
    max_value: int
    message: bytes = b""


@dataclass(frozen=True, slots=True)
class MlsagSignature:
    """
    MLSAG signature.

    Components:
    - key_images: one per key-image row (all rows except the last)
    - pc: initial challenge c_0
    - ps: responses, column-major (ps[col * n_rows + row])

    Wire form (witness): pc || ps
    """
    key_images: Tuple[bytes, ...]
    pc: bytes
    ps: Tuple[bytes, ...]

    def to_bytes(self) -> bytes:
        return self.pc + b"".join(self.ps)

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        n_cols: int,
        n_rows: int,
        key_images: Sequence[bytes] = (),
    ) -> MlsagSignature:
        expected = HASH_SIZE * (1 + n_cols * n_rows)
        if len(data) < expected:
            raise ValueError(f"MLSAG data too short: {len(data)} < {expected}")
        ps = tuple(
            data[HASH_SIZE * (1 + i):HASH_SIZE * (2 + i)]
            for i in range(n_cols * n_rows)
        )
        return cls(key_images=tuple(key_images), pc=data[:HASH_SIZE], ps=ps)


# ============================================================================
# PROVIDER INTERFACE
# ============================================================================

class CryptoProvider(ABC):
    """
    Abstract base class for crypto primitives providers.

    Every operation is synchronous and works on fixed-size buffers.
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return backend identifier string."""
        pass

    # ========================================================================
    # HASHING
    # ========================================================================

    def sha256(self, data: bytes) -> bytes:
        return hashlib.sha256(data).digest()

    # ========================================================================
    # SCALARS & POINTS
    # ========================================================================

    @abstractmethod
    def random_scalar(self) -> bytes:
        """Uniform non-zero scalar from a CSPRNG."""
        pass

    @abstractmethod
    def derive_public_key(self, secret: bytes) -> bytes:
        """secret * G."""
        pass

    @abstractmethod
    def point_add(self, a: bytes, b: bytes) -> bytes:
        """a + b."""
        pass

    @abstractmethod
    def point_add_scalar(self, point: bytes, scalar: bytes) -> bytes:
        """point + scalar * G."""
        pass

    @abstractmethod
    def point_multiply(self, point: bytes, scalar: bytes) -> bytes:
        """scalar * point."""
        pass

    @abstractmethod
    def private_add(self, a: bytes, b: bytes) -> bytes:
        """(a + b) mod n."""
        pass

    @abstractmethod
    def private_sub(self, a: bytes, b: bytes) -> bytes:
        """(a - b) mod n."""
        pass

    @abstractmethod
    def ecdh(self, pubkey: bytes, secret: bytes) -> bytes:
        """
        Shared secret between a public key and a secret.

        Returns:
            SHA256 of the compressed shared point (32 bytes)
        """
        pass

    # ========================================================================
    # SIGNATURES
    # ========================================================================

    @abstractmethod
    def ecdsa_sign(self, msg_hash: bytes, secret: bytes) -> bytes:
        """DER-encoded ECDSA signature over a 32-byte hash."""
        pass

    @abstractmethod
    def ecdsa_verify(self, msg_hash: bytes, signature: bytes, pubkey: bytes) -> bool:
        pass

    @abstractmethod
    def generate_key_image(self, pubkey: bytes, secret: bytes) -> bytes:
        """Key image I = secret * Hp(pubkey)."""
        pass

    # ========================================================================
    # PEDERSEN COMMITMENTS
    # ========================================================================

    @abstractmethod
    def pedersen_commit(self, value: int, blind: bytes) -> bytes:
        """C = blind * G + value * H."""
        pass

    @abstractmethod
    def pedersen_blind_sum(self, blinds: Sequence[bytes], n_positive: int) -> bytes:
        """
        Signed blind sum.

        Args:
            blinds: blinding factors
            n_positive: how many leading blinds are added; the rest subtract

        Returns:
            sum(blinds[:n_positive]) - sum(blinds[n_positive:]) mod n
        """
        pass

    @abstractmethod
    def pedersen_verify_tally(
        self,
        positive: Sequence[bytes],
        negative: Sequence[bytes],
    ) -> bool:
        """True if sum(positive) == sum(negative) as curve points."""
        pass

    # ========================================================================
    # RANGE PROOFS
    # ========================================================================

    @abstractmethod
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
        """Prove commitment opens to value in [min_value, max_value]."""
        pass

    @abstractmethod
    def range_proof_verify(self, commitment: bytes, proof: bytes) -> Tuple[int, int]:
        """
        Verify a range proof.

        Returns:
            (min_value, max_value) proven for the commitment

        Raises:
            RangeProofError: if the proof is invalid
        """
        pass

    @abstractmethod
    def range_proof_rewind(self, nonce: bytes, commitment: bytes, proof: bytes) -> RewindResult:
        """
        Recover value and blind with the nonce used at signing.

        Raises:
            RangeProofError: wrong nonce or malformed proof
        """
        pass

    # ========================================================================
    # MLSAG
    # ========================================================================

    @abstractmethod
    def prepare_mlsag(
        self,
        pubkeys: Sequence[bytes],
        in_commits: Sequence[bytes],
        out_commits: Sequence[bytes],
        in_blind: bytes,
        out_blinds: Sequence[bytes],
    ) -> Tuple[List[List[bytes]], bytes]:
        """
        Build the 2-row public matrix and the corrected commitment secret.

        Column i is [pubkeys[i], in_commits[i] - sum(out_commits)].
        The blind sum is in_blind - sum(out_blinds); out_commits may contain
        zero-blind (fee) commitments whose blinds are passed as zero.

        Returns:
            (matrix as columns of rows, blind_sum)
        """
        pass

    @abstractmethod
    def generate_mlsag(
        self,
        preimage: bytes,
        matrix: Sequence[Sequence[bytes]],
        secret_index: int,
        secret_keys: Sequence[bytes],
    ) -> MlsagSignature:
        """Sign preimage with secret_keys (one per row) at column secret_index."""
        pass

    @abstractmethod
    def verify_mlsag(
        self,
        preimage: bytes,
        matrix: Sequence[Sequence[bytes]],
        signature: MlsagSignature,
    ) -> bool:
        pass


# ============================================================================
# PROVIDER FACTORY
# ============================================================================

_provider_cache: Dict[CryptoBackend, CryptoProvider] = {}


def get_crypto_provider(backend: Optional[CryptoBackend] = None) -> CryptoProvider:
    """
    Get a crypto provider instance.

    Providers are stateless, so one instance per backend is shared.
    """
    if backend is None:
        backend = CryptoBackend.SECP256K1

    if backend in _provider_cache:
        return _provider_cache[backend]

    if backend == CryptoBackend.SECP256K1:
        from ringct.crypto.secp256k1 import Secp256k1Provider
        provider = Secp256k1Provider()
    else:
        raise ValueError(f"Unknown crypto backend: {backend}")

    _provider_cache[backend] = provider
    logger.info(f"Initialized crypto provider: {provider.backend_name}")

    return provider
