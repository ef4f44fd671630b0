"""
P2P Handshake - Message Codec
===============================
Bitcoin p2p message envelope and the two handshake payloads.

Security Level: HIGH
Last Updated: 2026-10-17
Version: 1.0.0

Wire format (24-byte header, then payload):
- Magic bytes (4): Network identifier
- Command (12): ASCII name, NUL padded
- Payload length (4): uint32 LE
- Checksum (4): First 4 bytes of double-SHA256 of the payload

Source: https://developer.bitcoin.org/reference/p2p_networking.html
"""

from __future__ import annotations
from typing import Tuple
from dataclasses import dataclass, field
from enum import IntFlag
from ipaddress import IPv4Address, IPv6Address, ip_address
import struct
import hashlib
import time

from p2p_handshake.errors import (
    CodecError,
    InvalidCommandError,
    PayloadTooBigError,
    MagicMismatchError,
    ChecksumMismatchError,
    TruncatedMessageError,
    UnknownCommandError,
    OversizedPayloadError,
    MalformedPayloadError,
)
from p2p_handshake.constants import MAX_PAYLOAD_SIZE, RELAY_MIN_VERSION
from p2p_handshake.network.params import NetworkParams
from p2p_handshake.utils.serialization import ByteReader, write_var_str


# ============================================================================
# WIRE CONSTANTS
# ============================================================================

MAGIC_SIZE = 4
COMMAND_SIZE = 12
LENGTH_SIZE = 4
CHECKSUM_SIZE = 4
HEADER_SIZE = MAGIC_SIZE + COMMAND_SIZE + LENGTH_SIZE + CHECKSUM_SIZE

_HEADER_STRUCT = struct.Struct('<4s12sI4s')


class Command:
    """Command names used during the handshake"""
    VERSION = "version"
    VERACK = "verack"


class Services(IntFlag):
    """
    Services supported by a node (64-bit bitfield).

    Unknown bits are kept as-is.

    Source: https://en.bitcoin.it/wiki/Protocol_documentation#version
    """
    NODE_NONE = 0
    NODE_NETWORK = 1
    NODE_GETUTXO = 2
    NODE_BLOOM = 4
    NODE_WITNESS = 8
    NODE_XTHIN = 16
    NODE_COMPACT_FILTERS = 64
    NODE_NETWORK_LIMITED = 1024


# ============================================================================
# CHECKSUM / COMMAND HELPERS
# ============================================================================

def _is_command_text(raw: bytes) -> bool:
    return all(0x20 < byte < 0x7F for byte in raw)


def calculate_checksum(payload: bytes) -> bytes:
    """First 4 bytes of double-SHA256"""
    hash1 = hashlib.sha256(payload).digest()
    hash2 = hashlib.sha256(hash1).digest()
    return hash2[:CHECKSUM_SIZE]


def encode_command(command: str) -> bytes:
    """
    Encode a command name into the 12-byte field.

    Raises:
        InvalidCommandError: If the name is empty, not printable ASCII or
            longer than 12 bytes
    """
    raw = command.encode('ascii', errors='replace')
    if not raw or not _is_command_text(raw) or raw.decode('ascii') != command:
        raise InvalidCommandError(
            f"Command is not printable ASCII: {command!r}",
            code="INVALID_COMMAND"
        )

    if len(raw) > COMMAND_SIZE:
        raise InvalidCommandError(
            f"Command longer than {COMMAND_SIZE} bytes: {command!r}",
            code="INVALID_COMMAND",
            details={"length": len(raw)}
        )

    return raw.ljust(COMMAND_SIZE, b'\x00')


def parse_command(raw: bytes) -> str:
    """
    Decode the 12-byte command field.

    A valid command is printable ASCII followed only by NUL padding.

    Raises:
        UnknownCommandError: If the field is not a valid command encoding
    """
    name = raw.rstrip(b'\x00')
    if not name or not _is_command_text(name):
        raise UnknownCommandError(
            "command name unknown",
            code="UNKNOWN_COMMAND",
            details={"command": raw.hex()}
        )
    return name.decode('ascii')


# ============================================================================
# MESSAGE HEADER
# ============================================================================

@dataclass(frozen=True)
class MessageHeader:
    """
    Decoded 24-byte message header.

    Attributes:
        magic: Network magic
        command: Command name (without padding)
        length: Declared payload length
        checksum: Declared payload checksum
    """

    magic: bytes
    command: str
    length: int
    checksum: bytes

    def pack(self) -> bytes:
        return _HEADER_STRUCT.pack(
            self.magic,
            encode_command(self.command),
            self.length,
            self.checksum
        )

    @classmethod
    def unpack(cls, raw: bytes, expected_magic: bytes) -> MessageHeader:
        """
        Parse and validate a header.

        Checks, in order: magic, command text, declared length.

        Raises:
            TruncatedMessageError: Fewer than 24 bytes
            MagicMismatchError: Magic differs from expected network
            UnknownCommandError: Command field is not a valid command
            OversizedPayloadError: Declared length above the protocol limit
        """
        if len(raw) < HEADER_SIZE:
            raise TruncatedMessageError(
                "failed to fill whole buffer",
                code="HEADER_TRUNCATED",
                details={"wanted": HEADER_SIZE, "available": len(raw)}
            )

        magic, command_bytes, length, checksum = _HEADER_STRUCT.unpack(raw[:HEADER_SIZE])

        if magic != expected_magic:
            known = NetworkParams.from_magic(magic)
            network = known.name if known else "unknown network"
            raise MagicMismatchError(
                f"magic value mismatch: expected {expected_magic.hex()}, "
                f"got {magic.hex()} ({network})",
                code="MAGIC_MISMATCH",
                details={"expected": expected_magic.hex(), "received": magic.hex()}
            )

        command = parse_command(command_bytes)

        if length > MAX_PAYLOAD_SIZE:
            raise OversizedPayloadError(
                "payload too big",
                code="PAYLOAD_TOO_BIG",
                details={"length": length, "max": MAX_PAYLOAD_SIZE}
            )

        return cls(magic=magic, command=command, length=length, checksum=checksum)

    def verify(self, payload: bytes) -> None:
        """
        Check the payload against this header.

        Raises:
            TruncatedMessageError: Payload shorter than declared
            ChecksumMismatchError: Checksum differs
        """
        if len(payload) < self.length:
            raise TruncatedMessageError(
                "failed to fill whole buffer",
                code="PAYLOAD_TRUNCATED",
                details={"wanted": self.length, "available": len(payload)}
            )

        if calculate_checksum(payload[:self.length]) != self.checksum:
            raise ChecksumMismatchError(
                "checksum is invalid",
                code="CHECKSUM_MISMATCH",
                details={"command": self.command}
            )


# ============================================================================
# ENCODE / DECODE
# ============================================================================

def encode(command: str, payload: bytes, magic: bytes) -> bytes:
    """
    Encode a full message (header + payload).

    Args:
        command: Command name (<= 12 ASCII bytes)
        payload: Payload bytes
        magic: 4-byte network magic

    Returns:
        bytes: Wire encoding

    Raises:
        InvalidCommandError: If command is invalid
        PayloadTooBigError: If payload exceeds 32 MiB

    Examples:
        >>> data = encode("verack", b"", bytes.fromhex("f9beb4d9"))
        >>> len(data)
        24
    """
    if len(magic) != MAGIC_SIZE:
        raise CodecError(f"Magic must be {MAGIC_SIZE} bytes, got {len(magic)}")

    if len(payload) > MAX_PAYLOAD_SIZE:
        raise PayloadTooBigError(
            "payload too big",
            code="PAYLOAD_TOO_BIG",
            details={"length": len(payload), "max": MAX_PAYLOAD_SIZE}
        )

    header = MessageHeader(
        magic=magic,
        command=command,
        length=len(payload),
        checksum=calculate_checksum(payload)
    )
    return header.pack() + payload


def decode(buffer: bytes, magic: bytes) -> Tuple[str, bytes]:
    """
    Decode the message at the start of buffer.

    Returns:
        (command, payload)

    Raises:
        ProtocolError: MagicMismatch, UnknownCommand, Truncated, ChecksumMismatch,
            OversizedPayload
    """
    header = MessageHeader.unpack(buffer, magic)
    payload = bytes(buffer[HEADER_SIZE:HEADER_SIZE + header.length])
    header.verify(payload)
    return header.command, payload


@dataclass
class Message:
    """
    A framed p2p message.

    Attributes:
        command: Command name
        payload: Payload bytes
    """

    command: str
    payload: bytes = field(default=b'')

    def serialize(self, magic: bytes) -> bytes:
        return encode(self.command, self.payload, magic)

    @classmethod
    def deserialize(cls, data: bytes, magic: bytes) -> Message:
        command, payload = decode(data, magic)
        return cls(command=command, payload=payload)

    def __repr__(self) -> str:
        return f"Message(command={self.command}, size={len(self.payload)})"


# ============================================================================
# PAYLOADS
# ============================================================================

@dataclass(frozen=True)
class NetworkAddress:
    """
    Network address record used inside the version message (26 bytes).

    The port is the only big-endian field of the version payload.
    """

    services: Services
    ip: IPv6Address
    port: int

    SIZE = 26

    @classmethod
    def from_host(cls, services: int, host: str, port: int) -> NetworkAddress:
        """Build a record from a literal IPv4/IPv6 address (IPv4 is mapped)"""
        address = ip_address(host.split('%', 1)[0])
        if isinstance(address, IPv4Address):
            address = IPv6Address(f"::ffff:{address}")
        return cls(services=Services(services), ip=address, port=port)

    @property
    def host(self) -> str:
        mapped = self.ip.ipv4_mapped
        return str(mapped) if mapped else str(self.ip)

    def serialize(self) -> bytes:
        return (
            struct.pack('<Q', self.services)
            + self.ip.packed
            + struct.pack('>H', self.port)
        )

    @classmethod
    def read(cls, reader: ByteReader) -> NetworkAddress:
        services = Services(reader.read_struct('<Q'))
        ip = IPv6Address(reader.read(16))
        port = reader.read_struct('>H')
        return cls(services=services, ip=ip, port=port)


@dataclass(frozen=True)
class VersionMessage:
    """
    VERSION message payload.

    Attributes:
        version: Highest protocol version understood by the sender
        services: Sender services (bitfield)
        timestamp: Sender unix time
        receiver: Receiving node as seen by the sender
        sender: Sending node
        nonce: Random nonce used to detect connections to self
        user_agent: BIP 14 user agent
        start_height: Sender best block height
        relay: BIP 37 relay flag (only on the wire from version 70001)
    """

    version: int
    services: Services
    timestamp: int
    receiver: NetworkAddress
    sender: NetworkAddress
    nonce: int
    user_agent: str
    start_height: int
    relay: bool = True

    @property
    def has_relay_field(self) -> bool:
        return self.version >= RELAY_MIN_VERSION

    def serialize(self) -> bytes:
        try:
            data = (
                struct.pack('<iQq', self.version, self.services, self.timestamp)
                + self.receiver.serialize()
                + self.sender.serialize()
                + struct.pack('<Q', self.nonce)
                + write_var_str(self.user_agent)
                + struct.pack('<i', self.start_height)
            )
            if self.has_relay_field:
                data += struct.pack('<?', self.relay)
        except struct.error as e:
            raise CodecError(f"Version field out of range: {e}", code="VERSION_ENCODE")
        return data

    @classmethod
    def deserialize(cls, payload: bytes) -> VersionMessage:
        """
        Decode a VERSION payload.

        Raises:
            TruncatedMessageError: Payload ends early
            MalformedPayloadError: Invalid user agent or relay byte
        """
        reader = ByteReader(payload)

        version = reader.read_struct('<i')
        services = Services(reader.read_struct('<Q'))
        timestamp = reader.read_struct('<q')
        receiver = NetworkAddress.read(reader)
        sender = NetworkAddress.read(reader)
        nonce = reader.read_struct('<Q')
        user_agent = reader.read_var_str()
        start_height = reader.read_struct('<i')

        relay = True
        if version >= RELAY_MIN_VERSION and reader.remaining:
            flag = reader.read_struct('<B')
            if flag not in (0, 1):
                raise MalformedPayloadError(
                    f"Invalid relay encoding: {flag:#x}",
                    code="INVALID_RELAY"
                )
            relay = bool(flag)

        return cls(
            version=version,
            services=services,
            timestamp=timestamp,
            receiver=receiver,
            sender=sender,
            nonce=nonce,
            user_agent=user_agent,
            start_height=start_height,
            relay=relay
        )

    def to_message(self) -> Message:
        return Message(command=Command.VERSION, payload=self.serialize())


@dataclass(frozen=True)
class VerackMessage:
    """VERACK message (empty payload)"""

    def serialize(self) -> bytes:
        return b''

    @classmethod
    def deserialize(cls, payload: bytes) -> VerackMessage:
        if payload:
            raise MalformedPayloadError(
                f"verack payload must be empty, got {len(payload)} bytes",
                code="INVALID_VERACK"
            )
        return cls()

    def to_message(self) -> Message:
        return Message(command=Command.VERACK, payload=b'')


# ============================================================================
# MESSAGE FACTORY
# ============================================================================

class MessageFactory:
    """Factory for handshake messages"""

    @staticmethod
    def create_version(
        version: int,
        services: int,
        receiver: NetworkAddress,
        sender: NetworkAddress,
        nonce: int,
        user_agent: str,
        start_height: int,
        relay: bool = False
    ) -> Message:
        """Create VERSION message stamped with the current time"""
        version_msg = VersionMessage(
            version=version,
            services=Services(services),
            timestamp=int(time.time()),
            receiver=receiver,
            sender=sender,
            nonce=nonce,
            user_agent=user_agent,
            start_height=start_height,
            relay=relay
        )
        return version_msg.to_message()

    @staticmethod
    def create_verack() -> Message:
        return VerackMessage().to_message()


__all__ = [
    "HEADER_SIZE",
    "COMMAND_SIZE",
    "Command",
    "Services",
    "calculate_checksum",
    "encode_command",
    "parse_command",
    "MessageHeader",
    "encode",
    "decode",
    "Message",
    "NetworkAddress",
    "VersionMessage",
    "VerackMessage",
    "MessageFactory",
]
