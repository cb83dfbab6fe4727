"""
RingCT Serialization Utilities

Two integer encodings coexist on the wire:

- compact-size ("varint"): lengths and counts
- LEB128 base-128 continuation varint: ring member indices and the fee
  value inside a DATA output

All fixed-width integers are LITTLE-ENDIAN.
"""

from __future__ import annotations
from typing import List, Tuple

from ringct.constants import LITTLE_ENDIAN
from ringct.errors import FormatError


# ==============================================================================
# Fixed-width Integers (Little-Endian)
# ==============================================================================

def serialize_u8(value: int) -> bytes:
    """Serialize unsigned 8-bit integer."""
    if not 0 <= value <= 0xFF:
        raise ValueError(f"u8 value out of range: {value}")
    return bytes([value])


def serialize_u32(value: int) -> bytes:
    """Serialize unsigned 32-bit integer (little-endian)."""
    if not 0 <= value <= 0xFFFFFFFF:
        raise ValueError(f"u32 value out of range: {value}")
    return value.to_bytes(4, LITTLE_ENDIAN)


def serialize_i32(value: int) -> bytes:
    """Serialize signed 32-bit integer (little-endian)."""
    if not -0x80000000 <= value <= 0x7FFFFFFF:
        raise ValueError(f"i32 value out of range: {value}")
    return value.to_bytes(4, LITTLE_ENDIAN, signed=True)


def serialize_u64(value: int) -> bytes:
    """Serialize unsigned 64-bit integer (little-endian)."""
    if not 0 <= value <= 0xFFFFFFFFFFFFFFFF:
        raise ValueError(f"u64 value out of range: {value}")
    return value.to_bytes(8, LITTLE_ENDIAN)


# ==============================================================================
# Compact-size Varint (Bitcoin-style)
# ==============================================================================

def serialize_varint(value: int) -> bytes:
    """
    Serialize integer as compact-size varint.

    - 0x00-0xFC: 1 byte
    - 0xFD-0xFFFF: 0xFD + 2 bytes (little-endian)
    - 0x10000-0xFFFFFFFF: 0xFE + 4 bytes (little-endian)
    - 0x100000000+: 0xFF + 8 bytes (little-endian)
    """
    if value < 0:
        raise ValueError(f"Varint cannot be negative: {value}")

    if value <= 0xFC:
        return bytes([value])
    elif value <= 0xFFFF:
        return bytes([0xFD]) + value.to_bytes(2, LITTLE_ENDIAN)
    elif value <= 0xFFFFFFFF:
        return bytes([0xFE]) + value.to_bytes(4, LITTLE_ENDIAN)
    else:
        return bytes([0xFF]) + value.to_bytes(8, LITTLE_ENDIAN)


def deserialize_varint(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """
    Deserialize compact-size varint.
    Returns (value, bytes_consumed).
    """
    if offset >= len(data):
        raise FormatError("Unexpected end of data reading varint")

    first_byte = data[offset]
    if first_byte <= 0xFC:
        return first_byte, 1

    width = {0xFD: 2, 0xFE: 4, 0xFF: 8}[first_byte]
    if offset + 1 + width > len(data):
        raise FormatError("Unexpected end of data reading varint")
    return int.from_bytes(data[offset + 1:offset + 1 + width], LITTLE_ENDIAN), 1 + width


def serialize_bytes(data: bytes) -> bytes:
    """
    Serialize variable-length byte array with length prefix.
    Format: varint(length) || data
    """
    return serialize_varint(len(data)) + data


# ==============================================================================
# LEB128 Varint
# ==============================================================================

def encode_leb128(value: int) -> bytes:
    """Encode non-negative integer as LEB128 (7-bit groups, low group first)."""
    if value < 0:
        raise ValueError("Cannot encode negative value as LEB128")

    out = bytearray()
    while value > 0x7F:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value & 0x7F)
    return bytes(out)


def decode_leb128(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """
    Decode one LEB128 integer.
    Returns (value, bytes_consumed).
    """
    value = 0
    shift = 0
    pos = offset
    while True:
        if pos >= len(data):
            raise FormatError("Unexpected end of data reading LEB128 varint")
        byte = data[pos]
        value |= (byte & 0x7F) << shift
        pos += 1
        if not byte & 0x80:
            return value, pos - offset
        shift += 7
        if shift > 63:
            raise FormatError("LEB128 varint too long")


def encode_leb128_list(values: List[int]) -> bytes:
    """Concatenate LEB128 encodings of each value."""
    return b"".join(encode_leb128(v) for v in values)


def decode_leb128_list(data: bytes) -> List[int]:
    """Decode a concatenation of LEB128 integers."""
    values = []
    offset = 0
    while offset < len(data):
        value, size = decode_leb128(data, offset)
        values.append(value)
        offset += size
    return values


# ==============================================================================
# Sequential Reader / Writer
# ==============================================================================

class ByteReader:
    """
    Helper class for sequential deserialization.

    Every read is bounds checked; running past the end raises FormatError.
    """

    def __init__(self, data: bytes, offset: int = 0):
        self.data = data
        self.offset = offset

    def _take(self, size: int) -> bytes:
        if size < 0 or self.offset + size > len(self.data):
            raise FormatError(
                f"Unexpected end of data: need {size} bytes at offset {self.offset}, "
                f"have {len(self.data) - self.offset}"
            )
        value = self.data[self.offset:self.offset + size]
        self.offset += size
        return value

    def read_u8(self) -> int:
        return self._take(1)[0]

    def read_u32(self) -> int:
        return int.from_bytes(self._take(4), LITTLE_ENDIAN)

    def read_i32(self) -> int:
        return int.from_bytes(self._take(4), LITTLE_ENDIAN, signed=True)

    def read_u64(self) -> int:
        return int.from_bytes(self._take(8), LITTLE_ENDIAN)

    def read_varint(self) -> int:
        value, size = deserialize_varint(self.data, self.offset)
        self.offset += size
        return value

    def read_bytes(self) -> bytes:
        """Read variable-length byte array (varint-prefixed)."""
        return self._take(self.read_varint())

    def read_fixed_bytes(self, size: int) -> bytes:
        """Read fixed-length byte array."""
        return self._take(size)

    def read_stack(self) -> List[bytes]:
        """Read a count-prefixed list of varint-prefixed byte strings."""
        return [self.read_bytes() for _ in range(self.read_varint())]

    def remaining(self) -> int:
        """Return number of bytes remaining."""
        return len(self.data) - self.offset

    def is_empty(self) -> bool:
        """Check if all bytes have been read."""
        return self.offset >= len(self.data)


class ByteWriter:
    """
    Helper class for sequential serialization.
    """

    def __init__(self):
        self.buffer = bytearray()

    def write_u8(self, value: int) -> "ByteWriter":
        self.buffer.extend(serialize_u8(value))
        return self

    def write_u32(self, value: int) -> "ByteWriter":
        self.buffer.extend(serialize_u32(value))
        return self

    def write_i32(self, value: int) -> "ByteWriter":
        self.buffer.extend(serialize_i32(value))
        return self

    def write_u64(self, value: int) -> "ByteWriter":
        self.buffer.extend(serialize_u64(value))
        return self

    def write_varint(self, value: int) -> "ByteWriter":
        self.buffer.extend(serialize_varint(value))
        return self

    def write_bytes(self, data: bytes) -> "ByteWriter":
        """Write variable-length byte array (varint-prefixed)."""
        self.buffer.extend(serialize_bytes(data))
        return self

    def write_stack(self, items: List[bytes]) -> "ByteWriter":
        """Write a count-prefixed list of varint-prefixed byte strings."""
        self.write_varint(len(items))
        for item in items:
            self.write_bytes(item)
        return self

    def write_raw(self, data: bytes) -> "ByteWriter":
        """Write raw bytes without length prefix."""
        self.buffer.extend(data)
        return self

    def to_bytes(self) -> bytes:
        """Return the serialized bytes."""
        return bytes(self.buffer)

    def __len__(self) -> int:
        return len(self.buffer)
