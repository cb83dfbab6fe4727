"""
RingCT Wallet Data Types

Key material, spendable outputs and decoy candidates.
All keys are secp256k1: 32-byte scalars, 33-byte compressed points.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from ringct.constants import (
    SECRET_KEY_SIZE,
    PUBLIC_KEY_SIZE,
    COMMITMENT_SIZE,
    BLIND_SIZE,
    KEY_IMAGE_SIZE,
)
from ringct.errors import InvalidKeyError, InvalidAmountError, ValidationError


def is_compressed_point(data: bytes) -> bool:
    """Check length and parity prefix of a compressed secp256k1 point."""
    return len(data) == PUBLIC_KEY_SIZE and data[0] in (0x02, 0x03)


def require_secret(name: str, data: bytes) -> None:
    if not isinstance(data, (bytes, bytearray)):
        raise InvalidKeyError(name, "must be bytes")
    if len(data) != SECRET_KEY_SIZE:
        raise InvalidKeyError(name, f"must be {SECRET_KEY_SIZE} bytes, got {len(data)}")


def require_point(name: str, data: bytes) -> None:
    if not isinstance(data, (bytes, bytearray)):
        raise InvalidKeyError(name, "must be bytes")
    if not is_compressed_point(data):
        raise InvalidKeyError(name, f"must be a {PUBLIC_KEY_SIZE}-byte compressed point")


@dataclass(frozen=True, slots=True)
class KeyPair:
    """
    Wallet key material.

    spend_secret authorizes spending, scan_secret discovers incoming outputs.
    """
    spend_secret: bytes
    scan_secret: bytes

    def __post_init__(self):
        require_secret("spend secret", self.spend_secret)
        require_secret("scan secret", self.scan_secret)

    def __repr__(self) -> str:
        return "KeyPair(<redacted>)"

    @property
    def address(self) -> str:
        """Stealth address of this key pair."""
        from ringct.wallet.stealth import address_from_keys
        return address_from_keys(self)


@dataclass(frozen=True, slots=True)
class Recipient:
    """Payment destination: stealth address and amount in satoshis."""
    address: str
    amount: int

    def __post_init__(self):
        if not isinstance(self.amount, int) or self.amount <= 0:
            raise InvalidAmountError(self.amount)
        if not self.address:
            raise ValidationError("Recipient address cannot be empty")


@dataclass(frozen=True, slots=True)
class UTXO:
    """
    Owned RingCT output.

    ringct_index is the chain-global anonymous output index, required when
    the output is placed in a ring.
    """
    txid: str
    vout: int
    amount: int
    commitment: bytes
    blind: bytes
    pubkey: bytes
    ephemeral_pubkey: bytes
    ringct_index: Optional[int] = None
    block_height: int = 0
    spendable: bool = True
    key_image: Optional[bytes] = None

    def __post_init__(self):
        if self.amount < 0:
            raise InvalidAmountError(self.amount)
        if len(self.commitment) != COMMITMENT_SIZE:
            raise InvalidKeyError("commitment", f"must be {COMMITMENT_SIZE} bytes")
        if len(self.blind) != BLIND_SIZE:
            raise InvalidKeyError("blind", f"must be {BLIND_SIZE} bytes")
        require_point("pubkey", self.pubkey)
        require_point("ephemeral pubkey", self.ephemeral_pubkey)
        if self.key_image is not None and len(self.key_image) != KEY_IMAGE_SIZE:
            raise InvalidKeyError("key image", f"must be {KEY_IMAGE_SIZE} bytes")

    @property
    def outpoint(self) -> str:
        return f"{self.txid}:{self.vout}"


@dataclass(frozen=True, slots=True)
class UTXOCT:
    """Owned CT (stealth) output, spent with ECDSA over a P2PKH script."""
    txid: str
    vout: int
    amount: int
    commitment: bytes
    blind: bytes
    script_pubkey: bytes
    pubkey: bytes
    ephemeral_pubkey: bytes
    block_height: int = 0
    spendable: bool = True

    def __post_init__(self):
        if self.amount < 0:
            raise InvalidAmountError(self.amount)
        if len(self.commitment) != COMMITMENT_SIZE:
            raise InvalidKeyError("commitment", f"must be {COMMITMENT_SIZE} bytes")
        if len(self.blind) != BLIND_SIZE:
            raise InvalidKeyError("blind", f"must be {BLIND_SIZE} bytes")

    @property
    def outpoint(self) -> str:
        return f"{self.txid}:{self.vout}"


@dataclass(frozen=True, slots=True)
class AnonOutput:
    """Chain output offered by the node as a ring member candidate."""
    pubkey: bytes
    commitment: bytes
    index: int
    txid: Optional[str] = None
    vout: Optional[int] = None

    @classmethod
    def from_rpc(cls, item: dict) -> AnonOutput:
        """
        Build from a getanonoutputs entry.

        The node reports the global index as "ringctindex"; older nodes use
        "index" or "global_index".
        """
        index = item.get("ringctindex")
        if index is None:
            index = item.get("index", item.get("global_index"))
        if index is None:
            raise ValidationError("Anon output missing ringctindex", details=item)
        try:
            pubkey = bytes.fromhex(item["pubkey"])
            commitment = bytes.fromhex(item["commitment"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed anon output at index {index}: {e}", details=item) from e
        return cls(
            pubkey=pubkey,
            commitment=commitment,
            index=index,
            txid=item.get("txid"),
            vout=item.get("vout"),
        )
