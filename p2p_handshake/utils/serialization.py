"""
P2P Handshake - Serialization Utilities
=========================================
Bounded byte reader and the CompactSize variable-length integer.

CompactSize encoding:
- value < 0xFD: 1 byte holding the value
- 0xFD + uint16 LE
- 0xFE + uint32 LE
- 0xFF + uint64 LE
"""

import struct
from typing import Final

from p2p_handshake.errors import TruncatedMessageError, MalformedPayloadError


MAX_COMPACT_SIZE: Final[int] = 0xFFFFFFFFFFFFFFFF

# Marker byte -> (width of following integer, smallest canonical value)
_COMPACT_SIZE_MARKERS = {
    0xFD: (2, 0xFD),
    0xFE: (4, 0x10000),
    0xFF: (8, 0x100000000),
}


# ============================================================================
# BYTE READER
# ============================================================================

class ByteReader:
    """
    Sequential reader over a payload that never reads out of bounds.

    Every short read raises TruncatedMessageError.

    Examples:
        >>> reader = ByteReader(b"\\x01\\x00\\x00\\x00")
        >>> reader.read_struct("<i")
        1
        >>> reader.remaining
        0
    """

    def __init__(self, data: bytes):
        self._data = memoryview(bytes(data))
        self._offset = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    def read(self, size: int) -> bytes:
        if size < 0 or size > self.remaining:
            raise TruncatedMessageError(
                "failed to fill whole buffer",
                code="PAYLOAD_TRUNCATED",
                details={"wanted": size, "available": self.remaining}
            )
        chunk = self._data[self._offset:self._offset + size].tobytes()
        self._offset += size
        return chunk

    def read_struct(self, fmt: str):
        """Read a single value described by a struct format"""
        return struct.unpack(fmt, self.read(struct.calcsize(fmt)))[0]

    def read_compact_size(self) -> int:
        return read_compact_size(self)

    def read_var_bytes(self) -> bytes:
        """Read a CompactSize length prefix followed by that many bytes"""
        length = self.read_compact_size()
        if length > self.remaining:
            raise TruncatedMessageError(
                f"declared length {length} exceeds remaining {self.remaining} bytes",
                code="VAR_BYTES_OVERFLOW",
                details={"declared": length, "available": self.remaining}
            )
        return self.read(length)

    def read_var_str(self) -> str:
        raw = self.read_var_bytes()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedPayloadError(
                f"string is not valid UTF-8: {e}",
                code="INVALID_STRING"
            )


# ============================================================================
# COMPACT SIZE
# ============================================================================

def write_compact_size(value: int) -> bytes:
    """
    Encode an integer as CompactSize.

    Raises:
        ValueError: If value is negative or does not fit in 64 bits

    Examples:
        >>> write_compact_size(0xFC).hex()
        'fc'
        >>> write_compact_size(0xFD).hex()
        'fdfd00'
    """
    if value < 0 or value > MAX_COMPACT_SIZE:
        raise ValueError(f"Value out of range for CompactSize: {value}")

    if value < 0xFD:
        return struct.pack('<B', value)
    elif value <= 0xFFFF:
        return b'\xfd' + struct.pack('<H', value)
    elif value <= 0xFFFFFFFF:
        return b'\xfe' + struct.pack('<I', value)
    else:
        return b'\xff' + struct.pack('<Q', value)


def read_compact_size(reader: ByteReader) -> int:
    """
    Decode a CompactSize integer.

    Raises:
        TruncatedMessageError: If the marker announces more bytes than remain
        MalformedPayloadError: If the value is not minimally encoded
    """
    prefix = reader.read_struct('<B')
    if prefix < 0xFD:
        return prefix

    width, minimum = _COMPACT_SIZE_MARKERS[prefix]
    value = int.from_bytes(reader.read(width), 'little')
    if value < minimum:
        raise MalformedPayloadError(
            f"non-canonical CompactSize: {value} encoded with prefix {prefix:#x}",
            code="NON_CANONICAL_COMPACT_SIZE"
        )
    return value


def write_var_str(text: str) -> bytes:
    """Encode a string with its CompactSize length prefix"""
    raw = text.encode('utf-8')
    return write_compact_size(len(raw)) + raw


__all__ = [
    "MAX_COMPACT_SIZE",
    "ByteReader",
    "write_compact_size",
    "read_compact_size",
    "write_var_str",
]
