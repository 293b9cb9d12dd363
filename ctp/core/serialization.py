"""
CTP Serialization Utilities

All multi-byte integers are LITTLE-ENDIAN unless noted.
Variable-length integers use the Bitcoin CompactSize encoding.
Readers are strict: truncated input and non-minimal varints raise.
"""

from __future__ import annotations
from typing import Tuple

from ctp.constants import LITTLE_ENDIAN, MAX_U32, MAX_U64
from ctp.errors import InvalidEncodingError


# ==============================================================================
# Integer Serialization (Little-Endian)
# ==============================================================================

def serialize_u8(value: int) -> bytes:
    """Serialize unsigned 8-bit integer."""
    if not 0 <= value <= 0xFF:
        raise ValueError(f"u8 value out of range: {value}")
    return bytes([value])


def serialize_u32(value: int) -> bytes:
    """Serialize unsigned 32-bit integer (little-endian)."""
    if not 0 <= value <= MAX_U32:
        raise ValueError(f"u32 value out of range: {value}")
    return value.to_bytes(4, LITTLE_ENDIAN)


def serialize_u64(value: int) -> bytes:
    """Serialize unsigned 64-bit integer (little-endian)."""
    if not 0 <= value <= MAX_U64:
        raise ValueError(f"u64 value out of range: {value}")
    return value.to_bytes(8, LITTLE_ENDIAN)


# ==============================================================================
# Varint Encoding (CompactSize)
# ==============================================================================

def serialize_varint(value: int) -> bytes:
    """
    Serialize integer as CompactSize.

    - 0x00-0xFC: 1 byte
    - 0xFD-0xFFFF: 0xFD + 2 bytes (little-endian)
    - 0x10000-0xFFFFFFFF: 0xFE + 4 bytes (little-endian)
    - 0x100000000+: 0xFF + 8 bytes (little-endian)
    """
    if value < 0:
        raise ValueError(f"Varint cannot be negative: {value}")
    if value > MAX_U64:
        raise ValueError(f"Varint too large: {value}")

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
    Deserialize CompactSize integer.
    Returns (value, bytes_consumed). Rejects non-minimal encodings.
    """
    if offset >= len(data):
        raise InvalidEncodingError("Truncated varint", {"offset": offset})

    first_byte = data[offset]
    if first_byte <= 0xFC:
        return first_byte, 1

    width = {0xFD: 2, 0xFE: 4, 0xFF: 8}[first_byte]
    end = offset + 1 + width
    if end > len(data):
        raise InvalidEncodingError("Truncated varint", {"offset": offset})

    value = int.from_bytes(data[offset + 1:end], LITTLE_ENDIAN)
    minimum = {2: 0xFD, 4: 0x10000, 8: 0x100000000}[width]
    if value < minimum:
        raise InvalidEncodingError("Non-minimal varint", {"offset": offset})
    return value, 1 + width


def varint_size(value: int) -> int:
    """Return the number of bytes needed to encode value as varint."""
    if value <= 0xFC:
        return 1
    elif value <= 0xFFFF:
        return 3
    elif value <= 0xFFFFFFFF:
        return 5
    else:
        return 9


def serialize_bytes(data: bytes) -> bytes:
    """
    Serialize variable-length byte array with length prefix.
    Format: varint(length) || data
    """
    return serialize_varint(len(data)) + data


class ByteReader:
    """
    Helper class for sequential deserialization.

    Every read checks bounds; running past the end raises
    InvalidEncodingError instead of returning a short slice.
    """

    def __init__(self, data: bytes):
        self.data = bytes(data)
        self.offset = 0

    def _take(self, size: int) -> bytes:
        end = self.offset + size
        if size < 0 or end > len(self.data):
            raise InvalidEncodingError(
                f"Truncated input: need {size} bytes at offset {self.offset}, "
                f"have {self.remaining()}",
                {"offset": self.offset, "needed": size},
            )
        value = self.data[self.offset:end]
        self.offset = end
        return value

    def read_u8(self) -> int:
        return self._take(1)[0]

    def read_u32(self) -> int:
        return int.from_bytes(self._take(4), LITTLE_ENDIAN)

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

    def remaining(self) -> int:
        """Return number of bytes remaining."""
        return len(self.data) - self.offset

    def is_empty(self) -> bool:
        """Check if all bytes have been read."""
        return self.offset >= len(self.data)

    def expect_end(self, what: str = "input") -> None:
        """Raise if unread bytes remain."""
        if not self.is_empty():
            raise InvalidEncodingError(
                f"Trailing bytes after {what}: {self.remaining()}",
                {"trailing": self.remaining()},
            )


class ByteWriter:
    """
    Helper class for sequential serialization.
    """

    def __init__(self):
        self._parts: list = []

    def write_u8(self, value: int) -> "ByteWriter":
        self._parts.append(serialize_u8(value))
        return self

    def write_u32(self, value: int) -> "ByteWriter":
        self._parts.append(serialize_u32(value))
        return self

    def write_u64(self, value: int) -> "ByteWriter":
        self._parts.append(serialize_u64(value))
        return self

    def write_varint(self, value: int) -> "ByteWriter":
        self._parts.append(serialize_varint(value))
        return self

    def write_bytes(self, data: bytes) -> "ByteWriter":
        """Write variable-length byte array (varint-prefixed)."""
        self._parts.append(serialize_bytes(data))
        return self

    def write_fixed_bytes(self, data: bytes) -> "ByteWriter":
        """Write raw bytes without a prefix."""
        self._parts.append(bytes(data))
        return self

    def to_bytes(self) -> bytes:
        return b"".join(self._parts)

    def __len__(self) -> int:
        return sum(len(p) for p in self._parts)
