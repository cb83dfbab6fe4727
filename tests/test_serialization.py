"""
RingCT Serialization Tests
"""

import pytest

from ringct.core.serialization import (
    ByteReader,
    ByteWriter,
    decode_leb128,
    decode_leb128_list,
    deserialize_varint,
    encode_leb128,
    encode_leb128_list,
    serialize_i32,
    serialize_u32,
    serialize_varint,
)
from ringct.errors import FormatError


class TestVarint:
    """Tests for compact-size varints."""

    @pytest.mark.parametrize("value,encoded", [
        (0, "00"),
        (0xFC, "fc"),
        (0xFD, "fdfd00"),
        (0xFFFF, "fdffff"),
        (0x10000, "fe00000100"),
        (0x100000000, "ff0000000001000000"),
    ])
    def test_boundaries(self, value, encoded):
        """Test width switches at each boundary."""
        assert serialize_varint(value).hex() == encoded
        assert deserialize_varint(bytes.fromhex(encoded)) == (value, len(encoded) // 2)

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            serialize_varint(-1)

    def test_truncated(self):
        """Test truncated varint raises FormatError."""
        with pytest.raises(FormatError):
            deserialize_varint(bytes([0xFD, 0x01]))
        with pytest.raises(FormatError):
            deserialize_varint(b"")


class TestLeb128:
    """Tests for LEB128 varints."""

    @pytest.mark.parametrize("value,encoded", [
        (0, "00"),
        (127, "7f"),
        (128, "8001"),
        (300, "ac02"),
        (16384, "808001"),
    ])
    def test_known_encodings(self, value, encoded):
        assert encode_leb128(value).hex() == encoded
        assert decode_leb128(bytes.fromhex(encoded)) == (value, len(encoded) // 2)

    def test_list(self):
        """Test ring index lists concatenate encodings."""
        indices = [5, 128, 70000, 0]
        data = encode_leb128_list(indices)
        assert data == b"".join(encode_leb128(i) for i in indices)
        assert decode_leb128_list(data) == indices

    def test_truncated(self):
        with pytest.raises(FormatError):
            decode_leb128(bytes([0x80]))

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            encode_leb128(-5)


class TestFixedWidth:
    """Tests for little-endian fixed-width integers."""

    def test_u32_little_endian(self):
        assert serialize_u32(1) == bytes([1, 0, 0, 0])

    def test_i32_negative(self):
        assert serialize_i32(-1) == bytes([0xFF] * 4)

    def test_u32_range(self):
        with pytest.raises(ValueError):
            serialize_u32(1 << 32)


class TestReaderWriter:
    """Tests for ByteReader/ByteWriter."""

    def test_sequential(self):
        """Test writer output reads back field by field."""
        data = (
            ByteWriter()
            .write_u8(7)
            .write_u32(0xDEADBEEF)
            .write_i32(-2)
            .write_u64(1 << 40)
            .write_bytes(b"abc")
            .write_stack([b"x", b"yz"])
            .write_raw(b"\x01\x02")
            .to_bytes()
        )
        r = ByteReader(data)
        assert r.read_u8() == 7
        assert r.read_u32() == 0xDEADBEEF
        assert r.read_i32() == -2
        assert r.read_u64() == 1 << 40
        assert r.read_bytes() == b"abc"
        assert r.read_stack() == [b"x", b"yz"]
        assert r.read_fixed_bytes(2) == b"\x01\x02"
        assert r.is_empty()

    def test_read_past_end(self):
        """Test every read is bounds checked."""
        r = ByteReader(b"\x05abc")
        with pytest.raises(FormatError):
            r.read_bytes()

    def test_remaining(self):
        r = ByteReader(b"\x00" * 10)
        r.read_u32()
        assert r.remaining() == 6
