"""
P2P Handshake - Pytest Configuration
======================================
Fixtures and scripted in-process peers for testing.

Last Updated: 2026-10-17
Version: 1.0.0
"""

import pytest
import asyncio
import logging
import secrets
import socket
import struct
import time
from typing import List, Optional

# Internal imports
from p2p_handshake.config import HandshakeSettings
from p2p_handshake.constants import MAINNET_MAGIC, TESTNET3_MAGIC
from p2p_handshake.logging_setup import ROOT_LOGGER_NAME
from p2p_handshake.network.message import (
    HEADER_SIZE,
    Command,
    MessageHeader,
    NetworkAddress,
    VersionMessage,
    encode,
)
from p2p_handshake.network.params import NetworkParams
from p2p_handshake.network.seed import PeerAddress


# ============================================================================
# FAKE PEER
# ============================================================================

# Behaviours understood by FakePeer
HANDSHAKE = "handshake"          # version + verack, then wait for close
NO_VERACK = "no_verack"          # version, read our verack, close
SILENT = "silent"                # read our version, never answer
BAD_MAGIC = "bad_magic"          # version framed with testnet3 magic
BAD_CHECKSUM = "bad_checksum"    # version with a corrupted checksum
GARBAGE_COMMAND = "garbage_command"  # command field holding 4 non-text bytes
WRONG_COMMAND = "wrong_command"  # ping instead of version
WRONG_ACK = "wrong_ack"          # version, then ping instead of verack
TRUNCATED = "truncated"          # 4 bytes, then close
CLOSE = "close"                  # read our version, close without answering
ECHO_NONCE = "echo_nonce"        # version carrying our own nonce

PEER_USER_AGENT = "/Satoshi:25.0.0/"
PEER_START_HEIGHT = 800000


def build_peer_version(nonce: Optional[int] = None, version: int = 70015) -> bytes:
    """Version payload as sent by a remote node"""
    return VersionMessage(
        version=version,
        services=1 | 8 | 1024,
        timestamp=int(time.time()),
        receiver=NetworkAddress.from_host(0, "127.0.0.1", 8333),
        sender=NetworkAddress.from_host(1 | 8 | 1024, "127.0.0.1", 8333),
        nonce=secrets.randbits(64) if nonce is None else nonce,
        user_agent=PEER_USER_AGENT,
        start_height=PEER_START_HEIGHT,
        relay=True
    ).serialize()


class FakePeer:
    """
    Scripted peer listening on 127.0.0.1.

    Example:
        async with FakePeer(HANDSHAKE) as peer:
            session = PeerSession(peer.address, params, deadline)
    """

    def __init__(self, behavior: str, magic: bytes = MAINNET_MAGIC):
        self.behavior = behavior
        self.magic = magic
        self.server: Optional[asyncio.AbstractServer] = None
        self.address: Optional[PeerAddress] = None
        self.received: List[str] = []
        self._writers: List[asyncio.StreamWriter] = []
        self._handlers: List[asyncio.Task] = []

    async def __aenter__(self) -> "FakePeer":
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        port = self.server.sockets[0].getsockname()[1]
        self.address = PeerAddress("127.0.0.1", port)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        # Sessions have closed their side by now; let handlers drain first
        if self._handlers:
            await asyncio.wait(self._handlers, timeout=1.0)
        for writer in self._writers:
            writer.close()
        self.server.close()
        await self.server.wait_closed()

    async def _read_message(self, reader: asyncio.StreamReader):
        header = MessageHeader.unpack(await reader.readexactly(HEADER_SIZE), self.magic)
        payload = await reader.readexactly(header.length)
        self.received.append(header.command)
        return header.command, payload

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self._writers.append(writer)
        self._handlers.append(asyncio.current_task())
        try:
            await self._script(reader, writer)
        except (ConnectionError, asyncio.IncompleteReadError):
            pass
        finally:
            writer.close()

    async def _script(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        behavior = self.behavior

        if behavior == TRUNCATED:
            await self._read_message(reader)
            writer.write(b"\xde\xad\xbe\xef")
            await writer.drain()
            return

        if behavior == GARBAGE_COMMAND:
            await self._read_message(reader)
            payload = build_peer_version()
            header = struct.pack(
                "<4s12sI4s",
                self.magic,
                b"\xde\xad\xbe\xef" + b"\x00" * 8,
                len(payload),
                b"\x00" * 4
            )
            writer.write(header + payload)
            await writer.drain()
            await reader.read()
            return

        _, their_version = await self._read_message(reader)

        if behavior == CLOSE:
            return

        if behavior == SILENT:
            await reader.read()
            return

        if behavior == WRONG_COMMAND:
            writer.write(encode("ping", b"\x00" * 8, self.magic))
            await writer.drain()
            await reader.read()
            return

        if behavior == BAD_MAGIC:
            writer.write(encode(Command.VERSION, build_peer_version(), TESTNET3_MAGIC))
            await writer.drain()
            await reader.read()
            return

        if behavior == BAD_CHECKSUM:
            data = bytearray(encode(Command.VERSION, build_peer_version(), self.magic))
            data[20] ^= 0xFF
            writer.write(bytes(data))
            await writer.drain()
            await reader.read()
            return

        nonce = None
        if behavior == ECHO_NONCE:
            nonce = VersionMessage.deserialize(their_version).nonce

        writer.write(encode(Command.VERSION, build_peer_version(nonce), self.magic))
        await writer.drain()

        if behavior == ECHO_NONCE:
            await reader.read()
            return

        if behavior == WRONG_ACK:
            await self._read_message(reader)
            writer.write(encode("ping", b"\x00" * 8, self.magic))
            await writer.drain()
            await reader.read()
            return

        if behavior == NO_VERACK:
            await self._read_message(reader)
            return

        # HANDSHAKE
        writer.write(encode(Command.VERACK, b"", self.magic))
        await writer.drain()
        await self._read_message(reader)
        await reader.read()


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers installed by setup_logging during a test"""
    yield
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(logging.NOTSET)


@pytest.fixture
def mainnet():
    """Mainnet parameters"""
    return NetworkParams.for_chain("mainnet")


@pytest.fixture
def test_config():
    """Test configuration"""
    return HandshakeSettings(chain="mainnet", timeout_seconds=5.0)


@pytest.fixture
def closed_port():
    """A localhost port nothing listens on"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class StaticResolver:
    """Resolver returning a fixed address list"""

    def __init__(self, addresses: List[PeerAddress]):
        self.addresses = list(addresses)
        self.calls: List[tuple] = []

    async def resolve(self, hostname: str, port: int) -> List[PeerAddress]:
        self.calls.append((hostname, port))
        return list(self.addresses)
