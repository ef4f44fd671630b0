"""
P2P Handshake - Utilities Package
===================================
Byte-level serialization helpers.
"""

from p2p_handshake.utils.serialization import (
    ByteReader,
    read_compact_size,
    write_compact_size,
    write_var_str,
)

__all__ = [
    "ByteReader",
    "read_compact_size",
    "write_compact_size",
    "write_var_str",
]
