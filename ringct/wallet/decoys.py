"""
Anonymity Set Builder

Each anonymous input signs over a ring of chain outputs: the real output at
a uniformly random position and ring_size - 1 decoys drawn from the node's
candidate pool. Within one transaction no decoy is used twice and no output
being spent appears as a decoy.
"""

import logging
import secrets
from dataclasses import dataclass
from typing import AbstractSet, Iterable, List, Sequence, Set, Tuple

from ringct.constants import MAX_DECOY_INDEX, MAX_RING_SIZE, MIN_RING_SIZE
from ringct.core.types import UTXO, AnonOutput
from ringct.crypto.curve import is_valid_point
from ringct.errors import InsufficientDecoysError, InvalidRingSizeError, ValidationError

logger = logging.getLogger(__name__)

_sysrand = secrets.SystemRandom()


@dataclass(frozen=True, slots=True)
class Ring:
    """Ring members in signing order; slot secret_index is the real output."""
    pubkeys: Tuple[bytes, ...]
    commitments: Tuple[bytes, ...]
    indices: Tuple[int, ...]
    secret_index: int

    @property
    def size(self) -> int:
        return len(self.pubkeys)

    @property
    def real_pubkey(self) -> bytes:
        return self.pubkeys[self.secret_index]


def validate_ring_size(ring_size: int) -> None:
    if not isinstance(ring_size, int) or not MIN_RING_SIZE <= ring_size <= MAX_RING_SIZE:
        raise InvalidRingSizeError(ring_size, MIN_RING_SIZE, MAX_RING_SIZE)


def validate_decoy_index(index: int) -> None:
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index <= MAX_DECOY_INDEX:
        raise ValidationError(f"Decoy index out of range: {index!r}", details={"index": index})


def random_secret_index(ring_size: int) -> int:
    """Uniform position of the real output, from the OS CSPRNG."""
    validate_ring_size(ring_size)
    return secrets.randbelow(ring_size)


def select_decoys(
    pool: Sequence[AnonOutput],
    count: int,
    used_indices: AbstractSet[int],
    real_pubkeys: Iterable[bytes],
) -> List[AnonOutput]:
    """
    Draw count decoys uniformly without replacement.

    Candidates the node repeats (same index or same key) count once, and
    candidates whose key or commitment is not a curve point are dropped.

    Args:
        pool: candidate outputs from the node
        count: decoys needed (ring_size - 1)
        used_indices: chain indices already placed in another ring
        real_pubkeys: keys of every output spent by the transaction

    Raises:
        ValidationError: if a candidate index is out of range
        InsufficientDecoysError: if fewer than count candidates remain
    """
    real = set(real_pubkeys)
    seen_indices: Set[int] = set()
    seen_pubkeys: Set[bytes] = set()
    available = []
    malformed = 0
    for candidate in pool:
        validate_decoy_index(candidate.index)
        if candidate.pubkey in real or candidate.index in used_indices:
            continue
        if candidate.index in seen_indices or candidate.pubkey in seen_pubkeys:
            continue
        seen_indices.add(candidate.index)
        seen_pubkeys.add(candidate.pubkey)
        if not (is_valid_point(candidate.pubkey) and is_valid_point(candidate.commitment)):
            malformed += 1
            continue
        available.append(candidate)

    if malformed:
        logger.warning(f"Dropped {malformed} decoy candidates with invalid points")

    if len(available) < count:
        logger.debug(
            f"Decoy pool exhausted: {len(pool)} candidates, {len(real)} real, "
            f"{len(used_indices)} already used"
        )
        raise InsufficientDecoysError(count, len(available))

    return _sysrand.sample(available, count)


def build_ring(
    real_pubkey: bytes,
    real_commitment: bytes,
    real_index: int,
    decoys: Sequence[AnonOutput],
    secret_index: int,
) -> Ring:
    """Place the real output at secret_index; decoys fill the other slots in order."""
    ring_size = len(decoys) + 1
    if not 0 <= secret_index < ring_size:
        raise ValidationError(f"Secret index {secret_index} outside ring of {ring_size}")

    pubkeys = []
    commitments = []
    indices = []
    remaining = iter(decoys)
    for slot in range(ring_size):
        if slot == secret_index:
            pubkeys.append(real_pubkey)
            commitments.append(real_commitment)
            indices.append(real_index)
        else:
            decoy = next(remaining)
            pubkeys.append(decoy.pubkey)
            commitments.append(decoy.commitment)
            indices.append(decoy.index)

    return Ring(
        pubkeys=tuple(pubkeys),
        commitments=tuple(commitments),
        indices=tuple(indices),
        secret_index=secret_index,
    )


def build_rings(
    utxos: Sequence[UTXO],
    pool: Sequence[AnonOutput],
    ring_size: int,
) -> List[Ring]:
    """
    One ring per spent output, sharing the used-index set across inputs.

    Raises:
        ValidationError: if a spent output has no chain index
        InsufficientDecoysError: if the pool cannot fill every ring
    """
    validate_ring_size(ring_size)
    real_pubkeys = [u.pubkey for u in utxos]
    used: Set[int] = set()
    for utxo in utxos:
        if utxo.ringct_index is None:
            raise ValidationError(f"UTXO {utxo.outpoint} missing ringct_index")
        used.add(utxo.ringct_index)

    rings = []
    for n, utxo in enumerate(utxos):
        secret_index = random_secret_index(ring_size)
        decoys = select_decoys(pool, ring_size - 1, used, real_pubkeys)
        used.update(d.index for d in decoys)
        rings.append(build_ring(utxo.pubkey, utxo.commitment, utxo.ringct_index, decoys, secret_index))
        logger.debug(f"Input {n}: ring of {ring_size}, indices {list(rings[-1].indices)}")

    return rings
