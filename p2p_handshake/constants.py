"""
P2P Handshake - Protocol Constants
====================================
Immutable constants of the Bitcoin p2p wire protocol used by the handshake.

Security Level: HIGH
Last Updated: 2026-10-17
Version: 1.0.0

Source: https://developer.bitcoin.org/reference/p2p_networking.html
"""

from typing import Final


# ============================================================================
# PROTOCOL VERSION
# ============================================================================

# Highest protocol version announced in our own version message
PROTOCOL_VERSION: Final[int] = 70015

# Version messages carry the trailing relay flag from this version on (BIP 37)
RELAY_MIN_VERSION: Final[int] = 70001


# ============================================================================
# NETWORK MAGIC VALUES
# ============================================================================

MAINNET_MAGIC: Final[bytes] = bytes([0xF9, 0xBE, 0xB4, 0xD9])
TESTNET3_MAGIC: Final[bytes] = bytes([0x0B, 0x11, 0x09, 0x07])
SIGNET_MAGIC: Final[bytes] = bytes([0x0A, 0x03, 0xCF, 0x40])
REGTEST_MAGIC: Final[bytes] = bytes([0xFA, 0xBF, 0xB5, 0xDA])
NAMECOIN_MAGIC: Final[bytes] = bytes([0xF9, 0xBE, 0xB4, 0xFE])


# ============================================================================
# DEFAULT PORTS
# ============================================================================

MAINNET_PORT: Final[int] = 8333
TESTNET3_PORT: Final[int] = 18333
SIGNET_PORT: Final[int] = 38333
REGTEST_PORT: Final[int] = 18444
NAMECOIN_PORT: Final[int] = 8334


# ============================================================================
# WIRE LIMITS
# ============================================================================

# Maximum payload size accepted in a message header
MAX_PAYLOAD_SIZE: Final[int] = 32 * 1024 * 1024

# Longest user agent we are willing to announce (BIP 14 limit in Bitcoin Core)
MAX_USER_AGENT_LENGTH: Final[int] = 256

# Integer field ranges of the version payload
UINT64_MAX: Final[int] = 2**64 - 1
INT32_MIN: Final[int] = -2**31
INT32_MAX: Final[int] = 2**31 - 1


# ============================================================================
# HANDSHAKE DEFAULTS
# ============================================================================

DEFAULT_TIMEOUT_SECONDS: Final[float] = 10.0


__all__ = [
    "PROTOCOL_VERSION",
    "RELAY_MIN_VERSION",
    "MAINNET_MAGIC",
    "TESTNET3_MAGIC",
    "SIGNET_MAGIC",
    "REGTEST_MAGIC",
    "NAMECOIN_MAGIC",
    "MAINNET_PORT",
    "TESTNET3_PORT",
    "SIGNET_PORT",
    "REGTEST_PORT",
    "NAMECOIN_PORT",
    "MAX_PAYLOAD_SIZE",
    "MAX_USER_AGENT_LENGTH",
    "UINT64_MAX",
    "INT32_MIN",
    "INT32_MAX",
    "DEFAULT_TIMEOUT_SECONDS",
]
