"""
Stealth Addresses

A stealth address publishes a scan key and a spend key. Senders derive a
fresh one-time destination key per output; only the holder of the scan
secret can recognise it and only the holder of the spend secret can spend it.

    sender:     shared = ECDH(scan_pk, e)          E = e*G
                dest   = spend_pk + shared*G
    recipient:  shared = ECDH(E, scan_secret)
                dest_secret = spend_secret + shared

Address payload (bech32, HRP "sv"):
    options(1) | scan_pk(33) | spend key count(1)=1 | spend_pk(33)
    | number of signatures(1) | prefix bits(1) | [prefix bitfield(4, BE)]
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from bech32 import CHARSET, bech32_hrp_expand, bech32_polymod, convertbits

from ringct.constants import (
    PUBLIC_KEY_SIZE,
    STEALTH_ADDRESS_HRP,
    STEALTH_ADDRESS_MAX_LENGTH,
    STEALTH_PREFIX_BITFIELD_SIZE,
)
from ringct.core.serialization import ByteReader
from ringct.core.types import KeyPair, is_compressed_point, require_point, require_secret
from ringct.crypto.provider import CryptoProvider, get_crypto_provider
from ringct.errors import (
    ChecksumError,
    ErrorCode,
    FormatError,
    InvalidKeyError,
    RingCTError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Veil addresses use the BIP-173 bech32 constant, not bech32m
BECH32_CONST = 1
CHECKSUM_LENGTH = 6
MIN_ADDRESS_LENGTH = 60


# ==============================================================================
# BECH32
# ==============================================================================

def _checksum(hrp: str, words: List[int]) -> List[int]:
    polymod = bech32_polymod(bech32_hrp_expand(hrp) + words + [0] * CHECKSUM_LENGTH) ^ BECH32_CONST
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(CHECKSUM_LENGTH)]


def _bech32_encode(hrp: str, payload: bytes) -> str:
    words = convertbits(payload, 8, 5, True)
    combined = words + _checksum(hrp, words)
    return hrp + "1" + "".join(CHARSET[d] for d in combined)


def _bech32_decode(address: str) -> Tuple[str, bytes]:
    """
    Decode a bech32 string of up to 122 characters.

    The reference decoder caps strings at 90 characters (BIP-173); a plain
    stealth address is 121.
    """
    if address.lower() != address and address.upper() != address:
        raise FormatError("Mixed case address", ErrorCode.INVALID_ADDRESS)
    address = address.lower()

    if len(address) > STEALTH_ADDRESS_MAX_LENGTH:
        raise FormatError(
            f"Address longer than {STEALTH_ADDRESS_MAX_LENGTH} characters",
            ErrorCode.INVALID_ADDRESS,
        )
    pos = address.rfind("1")
    if pos < 1 or pos + CHECKSUM_LENGTH + 1 > len(address):
        raise FormatError("Invalid bech32 separator position", ErrorCode.INVALID_ADDRESS)

    hrp = address[:pos]
    words = []
    for char in address[pos + 1:]:
        index = CHARSET.find(char)
        if index == -1:
            raise FormatError(f"Invalid bech32 character {char!r}", ErrorCode.INVALID_ADDRESS)
        words.append(index)

    if bech32_polymod(bech32_hrp_expand(hrp) + words) != BECH32_CONST:
        raise ChecksumError("Invalid bech32 checksum")

    payload = convertbits(words[:-CHECKSUM_LENGTH], 5, 8, False)
    if payload is None:
        raise FormatError("Invalid bech32 padding", ErrorCode.INVALID_ADDRESS)
    return hrp, bytes(payload)


# ==============================================================================
# ADDRESS ENCODING
# ==============================================================================

@dataclass(frozen=True, slots=True)
class StealthAddressInfo:
    """Decoded stealth address fields."""
    scan_pubkey: bytes
    spend_pubkey: bytes
    options: int = 0
    number_signatures: int = 0
    prefix_number_bits: int = 0
    prefix_bitfield: int = 0


def encode_stealth_address(
    scan_pubkey: bytes,
    spend_pubkey: bytes,
    options: int = 0,
    number_signatures: int = 0,
    prefix_number_bits: int = 0,
    prefix_bitfield: int = 0,
) -> str:
    """
    Encode scan and spend public keys as a bech32 stealth address.

    Raises:
        InvalidKeyError: if a key is not a 33-byte compressed point
        ValidationError: if an option byte is out of range
    """
    require_point("scan public key", scan_pubkey)
    require_point("spend public key", spend_pubkey)
    for name, value in (
        ("options", options),
        ("number_signatures", number_signatures),
        ("prefix_number_bits", prefix_number_bits),
    ):
        if not 0 <= value <= 0xFF:
            raise ValidationError(f"{name} must fit in one byte, got {value}", ErrorCode.INVALID_ADDRESS)
    if not 0 <= prefix_bitfield <= 0xFFFFFFFF:
        raise ValidationError("prefix_bitfield must fit in 32 bits", ErrorCode.INVALID_ADDRESS)

    payload = bytearray()
    payload.append(options)
    payload += scan_pubkey
    payload.append(1)
    payload += spend_pubkey
    payload.append(number_signatures)
    payload.append(prefix_number_bits)
    if prefix_number_bits > 0:
        payload += prefix_bitfield.to_bytes(STEALTH_PREFIX_BITFIELD_SIZE, "big")

    address = _bech32_encode(STEALTH_ADDRESS_HRP, bytes(payload))
    if len(address) > STEALTH_ADDRESS_MAX_LENGTH:
        raise ValidationError("Encoded address exceeds maximum length", ErrorCode.INVALID_ADDRESS)
    return address


def decode_stealth_address(address: str) -> StealthAddressInfo:
    """
    Decode a bech32 stealth address.

    Raises:
        FormatError: wrong prefix, bad checksum, bad length or malformed fields
    """
    if not isinstance(address, str) or not address:
        raise FormatError("Address must be a non-empty string", ErrorCode.INVALID_ADDRESS)

    hrp, payload = _bech32_decode(address)
    if hrp != STEALTH_ADDRESS_HRP:
        raise FormatError(
            f"Invalid stealth address prefix {hrp!r}, expected {STEALTH_ADDRESS_HRP!r}",
            ErrorCode.INVALID_ADDRESS,
        )

    try:
        reader = ByteReader(payload)
        options = reader.read_u8()
        scan_pubkey = reader.read_fixed_bytes(PUBLIC_KEY_SIZE)
        spend_count = reader.read_u8()
        if spend_count != 1:
            raise FormatError(f"Expected 1 spend key, address has {spend_count}", ErrorCode.INVALID_ADDRESS)
        spend_pubkey = reader.read_fixed_bytes(PUBLIC_KEY_SIZE)
        number_signatures = reader.read_u8()
        prefix_number_bits = reader.read_u8()
        prefix_bitfield = 0
        if prefix_number_bits > 0:
            prefix_bitfield = int.from_bytes(reader.read_fixed_bytes(STEALTH_PREFIX_BITFIELD_SIZE), "big")
    except FormatError as e:
        raise FormatError(f"Malformed stealth address: {e.message}", ErrorCode.INVALID_ADDRESS) from e

    if not reader.is_empty():
        raise FormatError("Trailing bytes in stealth address payload", ErrorCode.INVALID_ADDRESS)
    if not is_compressed_point(scan_pubkey):
        raise FormatError("Invalid scan public key in address", ErrorCode.INVALID_ADDRESS)
    if not is_compressed_point(spend_pubkey):
        raise FormatError("Invalid spend public key in address", ErrorCode.INVALID_ADDRESS)

    return StealthAddressInfo(
        scan_pubkey=scan_pubkey,
        spend_pubkey=spend_pubkey,
        options=options,
        number_signatures=number_signatures,
        prefix_number_bits=prefix_number_bits,
        prefix_bitfield=prefix_bitfield,
    )


@dataclass(frozen=True, slots=True)
class AddressValidation:
    valid: bool
    error: Optional[str] = None
    info: Optional[StealthAddressInfo] = None


def validate_address(address: str) -> AddressValidation:
    """Check an address and explain what is wrong with it."""
    if not isinstance(address, str):
        return AddressValidation(False, "Address must be a string")
    if not address:
        return AddressValidation(False, "Address cannot be empty")
    if not address.lower().startswith(STEALTH_ADDRESS_HRP + "1"):
        return AddressValidation(False, f'Invalid address prefix. Stealth addresses start with "{STEALTH_ADDRESS_HRP}1"')
    if len(address) < MIN_ADDRESS_LENGTH:
        return AddressValidation(False, "Address too short")
    try:
        info = decode_stealth_address(address)
    except RingCTError as e:
        return AddressValidation(False, f"Invalid address format: {e.message}")
    return AddressValidation(True, info=info)


def is_valid_stealth_address(address: str) -> bool:
    return validate_address(address).valid


# ==============================================================================
# ONE-TIME KEYS
# ==============================================================================

@dataclass(frozen=True, slots=True)
class EphemeralKeys:
    """Sender-side one-time key material for one output."""
    ephemeral_secret: bytes
    ephemeral_pubkey: bytes
    shared_secret: bytes
    destination_pubkey: bytes

    def __repr__(self) -> str:
        return f"EphemeralKeys(ephemeral_pubkey={self.ephemeral_pubkey.hex()}, destination_pubkey={self.destination_pubkey.hex()})"


def generate_ephemeral_keys(
    address: Union[str, StealthAddressInfo],
    provider: Optional[CryptoProvider] = None,
) -> EphemeralKeys:
    """Derive a fresh destination key for a payment to address."""
    provider = provider or get_crypto_provider()
    info = decode_stealth_address(address) if isinstance(address, str) else address

    ephemeral_secret = provider.random_scalar()
    ephemeral_pubkey = provider.derive_public_key(ephemeral_secret)
    shared_secret = provider.ecdh(info.scan_pubkey, ephemeral_secret)
    destination_pubkey = provider.point_add_scalar(info.spend_pubkey, shared_secret)

    return EphemeralKeys(
        ephemeral_secret=ephemeral_secret,
        ephemeral_pubkey=ephemeral_pubkey,
        shared_secret=shared_secret,
        destination_pubkey=destination_pubkey,
    )


def derive_destination_secret(
    spend_secret: bytes,
    scan_secret: bytes,
    ephemeral_pubkey: bytes,
    provider: Optional[CryptoProvider] = None,
) -> bytes:
    """
    Recipient side: secret key of a one-time destination.

    The output belongs to the wallet only if the public key of the returned
    secret equals the on-chain output key.
    """
    provider = provider or get_crypto_provider()
    require_secret("spend secret", spend_secret)
    require_secret("scan secret", scan_secret)
    require_point("ephemeral public key", ephemeral_pubkey)
    shared_secret = provider.ecdh(ephemeral_pubkey, scan_secret)
    return provider.private_add(spend_secret, shared_secret)


def derive_destination_pubkey(
    spend_pubkey: bytes,
    scan_secret: bytes,
    ephemeral_pubkey: bytes,
    provider: Optional[CryptoProvider] = None,
) -> bytes:
    """Watch-only side: destination key from the scan secret and spend public key."""
    provider = provider or get_crypto_provider()
    shared_secret = provider.ecdh(ephemeral_pubkey, scan_secret)
    return provider.point_add_scalar(spend_pubkey, shared_secret)


# ==============================================================================
# WALLETS
# ==============================================================================

@dataclass(frozen=True, slots=True)
class Wallet:
    """Key pair with its public keys and stealth address."""
    keys: KeyPair
    spend_pubkey: bytes
    scan_pubkey: bytes
    address: str

    @property
    def spend_secret_hex(self) -> str:
        return self.keys.spend_secret.hex()

    @property
    def scan_secret_hex(self) -> str:
        return self.keys.scan_secret.hex()

    def __repr__(self) -> str:
        return f"Wallet(address={self.address!r})"


def address_from_keys(keys: KeyPair, provider: Optional[CryptoProvider] = None) -> str:
    provider = provider or get_crypto_provider()
    return encode_stealth_address(
        provider.derive_public_key(keys.scan_secret),
        provider.derive_public_key(keys.spend_secret),
    )


def restore_wallet(
    spend_secret: Union[bytes, str],
    scan_secret: Union[bytes, str],
    provider: Optional[CryptoProvider] = None,
) -> Wallet:
    """
    Rebuild a wallet from its two secrets (bytes or hex).

    Raises:
        InvalidKeyError: if a secret is malformed or zero
    """
    provider = provider or get_crypto_provider()
    try:
        if isinstance(spend_secret, str):
            spend_secret = bytes.fromhex(spend_secret)
        if isinstance(scan_secret, str):
            scan_secret = bytes.fromhex(scan_secret)
    except ValueError as e:
        raise InvalidKeyError("secret", f"not valid hex: {e}") from e

    keys = KeyPair(spend_secret=bytes(spend_secret), scan_secret=bytes(scan_secret))
    spend_pubkey = provider.derive_public_key(keys.spend_secret)
    scan_pubkey = provider.derive_public_key(keys.scan_secret)

    return Wallet(
        keys=keys,
        spend_pubkey=spend_pubkey,
        scan_pubkey=scan_pubkey,
        address=encode_stealth_address(scan_pubkey, spend_pubkey),
    )


def create_wallet(provider: Optional[CryptoProvider] = None) -> Wallet:
    """Generate a fresh wallet."""
    provider = provider or get_crypto_provider()
    wallet = restore_wallet(provider.random_scalar(), provider.random_scalar(), provider)
    logger.info(f"Created wallet {wallet.address[:12]}...")
    return wallet
