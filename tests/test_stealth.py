"""
Stealth Address Tests
"""

import pytest

from ringct.core.types import KeyPair
from ringct.errors import ChecksumError, FormatError, InvalidKeyError, ValidationError
from ringct.wallet.stealth import (
    create_wallet,
    decode_stealth_address,
    derive_destination_pubkey,
    derive_destination_secret,
    encode_stealth_address,
    generate_ephemeral_keys,
    is_valid_stealth_address,
    restore_wallet,
    validate_address,
)


class TestAddressEncoding:
    """Tests for bech32 stealth address encoding."""

    def test_round_trip(self, provider):
        """Test decode(encode(scan, spend)) returns both keys."""
        scan_pk = provider.derive_public_key(provider.random_scalar())
        spend_pk = provider.derive_public_key(provider.random_scalar())
        address = encode_stealth_address(scan_pk, spend_pk)
        info = decode_stealth_address(address)
        assert info.scan_pubkey == scan_pk
        assert info.spend_pubkey == spend_pk
        assert info.prefix_number_bits == 0

    def test_format(self, address):
        assert address.startswith("sv1")
        assert address == address.lower()
        assert len(address) <= 122

    def test_uppercase_accepted(self, address):
        assert decode_stealth_address(address.upper()) == decode_stealth_address(address)

    def test_mixed_case_rejected(self, address):
        mixed = address[:5] + address[5:].upper()
        with pytest.raises(FormatError):
            decode_stealth_address(mixed)

    def test_bad_checksum(self, address):
        """Test a single changed character fails the checksum."""
        last = address[-1]
        replacement = "q" if last != "q" else "p"
        with pytest.raises(ChecksumError):
            decode_stealth_address(address[:-1] + replacement)

    def test_wrong_hrp(self, provider):
        from ringct.wallet.stealth import _bech32_encode
        pk = provider.derive_public_key(provider.random_scalar())
        payload = bytes([0]) + pk + bytes([1]) + pk + bytes([0, 0])
        with pytest.raises(FormatError):
            decode_stealth_address(_bech32_encode("bc", payload))

    def test_invalid_key(self):
        with pytest.raises(InvalidKeyError):
            encode_stealth_address(b"\x04" + bytes(32), b"\x02" + bytes(32))

    def test_prefix_bitfield_too_long(self, provider):
        """Test addresses with a prefix bitfield exceed the length limit."""
        pk = provider.derive_public_key(provider.random_scalar())
        with pytest.raises(ValidationError):
            encode_stealth_address(pk, pk, prefix_number_bits=8, prefix_bitfield=0xAB)

    def test_empty(self):
        with pytest.raises(FormatError):
            decode_stealth_address("")


class TestAddressValidation:
    """Tests for validate_address."""

    def test_valid(self, address):
        result = validate_address(address)
        assert result.valid
        assert result.info is not None
        assert is_valid_stealth_address(address)

    @pytest.mark.parametrize("bad,fragment", [
        ("", "empty"),
        ("bc1qxyz", "prefix"),
        ("sv1qqqq", "short"),
    ])
    def test_invalid(self, bad, fragment):
        result = validate_address(bad)
        assert not result.valid
        assert fragment in result.error.lower()

    def test_non_string(self):
        assert not validate_address(None).valid


class TestOneTimeKeys:
    """Tests for destination key derivation."""

    def test_sender_recipient_agree(self, keys, address, provider):
        """Test spend_pk + shared*G == (spend + shared)*G for both sides."""
        eph = generate_ephemeral_keys(address, provider)
        secret = derive_destination_secret(keys.spend_secret, keys.scan_secret, eph.ephemeral_pubkey, provider)
        assert provider.derive_public_key(secret) == eph.destination_pubkey

        spend_pk = provider.derive_public_key(keys.spend_secret)
        assert derive_destination_pubkey(spend_pk, keys.scan_secret, eph.ephemeral_pubkey, provider) == (
            eph.destination_pubkey
        )

    def test_fresh_per_output(self, address, provider):
        a = generate_ephemeral_keys(address, provider)
        b = generate_ephemeral_keys(address, provider)
        assert a.destination_pubkey != b.destination_pubkey

    def test_other_wallet_cannot_derive(self, other_keys, address, provider):
        eph = generate_ephemeral_keys(address, provider)
        secret = derive_destination_secret(
            other_keys.spend_secret, other_keys.scan_secret, eph.ephemeral_pubkey, provider
        )
        assert provider.derive_public_key(secret) != eph.destination_pubkey


class TestWallets:
    """Tests for wallet creation and restore."""

    def test_restore_from_hex(self, keys, address):
        wallet = restore_wallet(keys.spend_secret.hex(), keys.scan_secret.hex())
        assert wallet.address == address
        assert wallet.keys == keys
        assert wallet.spend_secret_hex == keys.spend_secret.hex()

    def test_restore_bad_hex(self):
        with pytest.raises(InvalidKeyError):
            restore_wallet("zz" * 32, "11" * 32)

    def test_create(self):
        wallet = create_wallet()
        assert is_valid_stealth_address(wallet.address)
        assert "secret" not in repr(wallet)

    def test_keypair_redacted(self, keys):
        assert keys.spend_secret.hex() not in repr(keys)

    def test_keypair_address(self, keys, address):
        assert keys.address == address

    def test_keypair_size(self):
        with pytest.raises(InvalidKeyError):
            KeyPair(spend_secret=b"\x01" * 31, scan_secret=b"\x01" * 32)
