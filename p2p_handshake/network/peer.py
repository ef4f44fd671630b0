"""
P2P Handshake - Peer Session
==============================
One bounded handshake attempt against a single peer.

Security Level: HIGH
Last Updated: 2026-10-17
Version: 1.0.0

States:
    CONNECTING -> AWAITING_PEER_VERSION -> AWAITING_PEER_ACK -> SUCCEEDED | FAILED

Every connect, read and write is bounded by the time remaining until the
shared deadline. The session never retries and produces exactly one outcome.
"""

from __future__ import annotations
from typing import Awaitable, Callable, Optional, Tuple
from dataclasses import dataclass
from enum import Enum
import asyncio
import secrets

from p2p_handshake.network.message import (
    HEADER_SIZE,
    Command,
    Message,
    MessageFactory,
    MessageHeader,
    NetworkAddress,
    VerackMessage,
    VersionMessage,
)
from p2p_handshake.network.params import NetworkParams
from p2p_handshake.network.seed import PeerAddress
from p2p_handshake.errors import (
    FailureReason,
    InvalidConfigError,
    ProtocolViolation,
    PeerError,
    PeerConnectionError,
    PeerTimeoutError,
    ProtocolError,
    SelfConnectionError,
    TruncatedMessageError,
    UnexpectedCommandError,
)
from p2p_handshake.logging_setup import get_logger
from p2p_handshake.constants import (
    PROTOCOL_VERSION,
    MAX_USER_AGENT_LENGTH,
    UINT64_MAX,
    INT32_MIN,
    INT32_MAX,
)


logger = get_logger("network.peer")

Connector = Callable[
    [str, int],
    Awaitable[Tuple[asyncio.StreamReader, asyncio.StreamWriter]]
]

ACK_OMITTED_NOTE = "acknowledgment not exchanged"


# ============================================================================
# SESSION STATE / OUTCOME
# ============================================================================

class SessionState(Enum):
    """Handshake state machine"""
    CONNECTING = "connecting"
    AWAITING_PEER_VERSION = "awaiting_peer_version"
    AWAITING_PEER_ACK = "awaiting_peer_ack"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class OutcomeStatus(Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class HandshakeOutcome:
    """
    Terminal result of one session.

    Attributes:
        address: Peer the session talked to
        status: SUCCESS or FAILURE
        reason: Failure reason (None on success)
        violation: Protocol sub-reason for PROTOCOL_ERROR failures
        detail: Short human-readable reason
        ack_omitted: Success whose verack was never observed (stream closed)
        peer_version: Version message announced by the peer, if received
    """

    address: PeerAddress
    status: OutcomeStatus
    reason: Optional[FailureReason] = None
    violation: Optional[ProtocolViolation] = None
    detail: str = ""
    ack_omitted: bool = False
    peer_version: Optional[VersionMessage] = None

    @classmethod
    def success(
        cls,
        address: PeerAddress,
        ack_omitted: bool = False,
        peer_version: Optional[VersionMessage] = None
    ) -> HandshakeOutcome:
        return cls(
            address=address,
            status=OutcomeStatus.SUCCESS,
            detail=ACK_OMITTED_NOTE if ack_omitted else "",
            ack_omitted=ack_omitted,
            peer_version=peer_version
        )

    @classmethod
    def failure(
        cls,
        address: PeerAddress,
        error: PeerError,
        peer_version: Optional[VersionMessage] = None
    ) -> HandshakeOutcome:
        return cls(
            address=address,
            status=OutcomeStatus.FAILURE,
            reason=error.reason,
            violation=error.violation if isinstance(error, ProtocolError) else None,
            detail=error.message,
            peer_version=peer_version
        )

    @property
    def is_success(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    def describe(self) -> str:
        """One-line summary used for the per-peer log line"""
        if self.is_success:
            if self.ack_omitted:
                return f"Handshake succeeded with {self.address} ({ACK_OMITTED_NOTE})"
            return f"Handshake succeeded with {self.address}"
        return f"Handshake failed with {self.address}: {self.detail}"


# ============================================================================
# PEER SESSION
# ============================================================================

class PeerSession:
    """
    Drive the version/verack exchange with one peer.

    Attributes:
        address: Peer address
        params: Network parameters (magic)
        deadline: Absolute event-loop time after which no I/O is started
        state: Current state
        nonce: Nonce of our version message

    Examples:
        >>> loop = asyncio.get_running_loop()
        >>> session = PeerSession(PeerAddress("1.2.3.4", 8333), params, loop.time() + 10)
        >>> outcome = await session.run()
    """

    def __init__(
        self,
        address: PeerAddress,
        params: NetworkParams,
        deadline: float,
        services: int = 0,
        receiving_services: int = 0,
        protocol_version: int = PROTOCOL_VERSION,
        user_agent: str = "",
        start_height: int = 0,
        relay: bool = False,
        allow_missing_verack: bool = True,
        nonce: Optional[int] = None,
        connector: Optional[Connector] = None
    ):
        self.address = address
        self.params = params
        self.deadline = deadline
        self.state = SessionState.CONNECTING

        # Local version message fields
        self.services = int(services)
        self.receiving_services = int(receiving_services)
        self.protocol_version = protocol_version
        self.user_agent = user_agent
        self.start_height = start_height
        self.relay = relay
        self.nonce = secrets.randbits(64) if nonce is None else nonce
        self._validate_version_fields()

        self.allow_missing_verack = allow_missing_verack

        # Connection
        self._connector: Connector = connector or asyncio.open_connection
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None

        self.peer_version: Optional[VersionMessage] = None
        self._outcome: Optional[HandshakeOutcome] = None

    def _validate_version_fields(self):
        """
        Reject local version fields that cannot be encoded.

        Raises:
            InvalidConfigError: If a field is outside its wire range
        """
        ranges = {
            "services": (self.services, 0, UINT64_MAX),
            "receiving_services": (self.receiving_services, 0, UINT64_MAX),
            "protocol_version": (self.protocol_version, 0, INT32_MAX),
            "start_height": (self.start_height, INT32_MIN, INT32_MAX),
            "nonce": (self.nonce, 0, UINT64_MAX),
        }
        invalid = [
            name for name, (value, low, high) in ranges.items()
            if not low <= value <= high
        ]
        if len(self.user_agent.encode("utf-8")) > MAX_USER_AGENT_LENGTH:
            invalid.append("user_agent")

        if invalid:
            raise InvalidConfigError(
                "Version fields out of range: " + ", ".join(invalid),
                code="INVALID_VERSION_FIELDS",
                details={"fields": invalid}
            )

    # ========================================================================
    # ENTRY POINT
    # ========================================================================

    async def run(self) -> HandshakeOutcome:
        """
        Run the handshake to a terminal state.

        Per-peer errors never escape; they become a failed outcome.
        """
        if self._outcome is not None:
            return self._outcome

        try:
            ack_omitted = await self._perform_handshake()
        except PeerError as e:
            self.state = SessionState.FAILED
            logger.debug(
                f"Handshake with {self} failed in {e.code}: {e.message}",
                extra_data=e.to_dict()
            )
            outcome = HandshakeOutcome.failure(self.address, e, self.peer_version)
        else:
            self.state = SessionState.SUCCEEDED
            outcome = HandshakeOutcome.success(
                self.address,
                ack_omitted=ack_omitted,
                peer_version=self.peer_version
            )
        finally:
            await self._close()

        self._outcome = outcome
        return outcome

    async def _perform_handshake(self) -> bool:
        """
        Steps:
            1. Connect and send VERSION
            2. Receive VERSION, send VERACK
            3. Receive VERACK (or tolerate stream end)

        Returns:
            bool: True if the peer closed the stream instead of sending VERACK
        """
        self.state = SessionState.CONNECTING
        await self._connect()
        await self._send(self._build_version())

        self.state = SessionState.AWAITING_PEER_VERSION
        message = await self._receive()
        if message.command != Command.VERSION:
            raise UnexpectedCommandError(
                f"expected version, got {message.command}",
                code="HANDSHAKE_INVALID_VERSION",
                details={"command": message.command}
            )

        peer_version = VersionMessage.deserialize(message.payload)
        if peer_version.nonce and peer_version.nonce == self.nonce:
            raise SelfConnectionError(
                "connected to self",
                code="SELF_CONNECTION",
                details={"nonce": peer_version.nonce}
            )
        self.peer_version = peer_version

        logger.debug(
            f"Peer {self} version: {peer_version.version}, "
            f"height: {peer_version.start_height}, "
            f"agent: {peer_version.user_agent}"
        )

        await self._send(MessageFactory.create_verack())

        self.state = SessionState.AWAITING_PEER_ACK
        message = await self._receive(allow_eof=self.allow_missing_verack)
        if message is None:
            logger.info(f"VERACK message was not exchanged by peer {self}")
            return True

        if message.command != Command.VERACK:
            raise UnexpectedCommandError(
                f"expected verack, got {message.command}",
                code="HANDSHAKE_INVALID_VERACK",
                details={"command": message.command}
            )
        VerackMessage.deserialize(message.payload)
        return False

    # ========================================================================
    # DEADLINE
    # ========================================================================

    def remaining(self) -> float:
        """Seconds left until the shared deadline"""
        return self.deadline - asyncio.get_running_loop().time()

    def _check_deadline(self, operation: str) -> float:
        remaining = self.remaining()
        if remaining <= 0:
            raise PeerTimeoutError(
                f"deadline exceeded before {operation}",
                code="PEER_DEADLINE_EXCEEDED",
                details={"operation": operation}
            )
        return remaining

    async def _bounded(self, awaitable: Awaitable, operation: str):
        try:
            remaining = self._check_deadline(operation)
        except PeerTimeoutError:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise

        try:
            return await asyncio.wait_for(awaitable, timeout=remaining)
        except asyncio.TimeoutError:
            raise PeerTimeoutError(
                f"{operation} timed out",
                code="PEER_TIMEOUT",
                details={"operation": operation}
            )

    # ========================================================================
    # CONNECTION
    # ========================================================================

    async def _connect(self):
        try:
            self.reader, self.writer = await self._bounded(
                self._connector(self.address.host, self.address.port),
                "connect"
            )
        except OSError as e:
            raise PeerConnectionError(
                f"Failed to connect to peer: {e}",
                code="PEER_CONNECT_FAILED"
            )

        logger.debug(f"Connected to peer {self}")

    async def _close(self):
        if self.writer is None:
            return

        writer = self.writer
        self.reader = None
        self.writer = None

        writer.close()
        remaining = self.remaining()
        if remaining <= 0:
            return
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=remaining)
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"Error closing connection to {self}: {e!r}")

    def _endpoint(self, key: str, services: int) -> NetworkAddress:
        """Address record for our socket ("sockname") or the peer ("peername")"""
        info = self.writer.get_extra_info(key) if self.writer else None
        if key == "peername" and not info:
            info = (self.address.host, self.address.port)
        try:
            return NetworkAddress.from_host(services, info[0], info[1])
        except (TypeError, IndexError, ValueError):
            return NetworkAddress.from_host(services, "::", 0)

    def _build_version(self) -> Message:
        return MessageFactory.create_version(
            version=self.protocol_version,
            services=self.services,
            receiver=self._endpoint("peername", self.receiving_services),
            sender=self._endpoint("sockname", self.services),
            nonce=self.nonce,
            user_agent=self.user_agent,
            start_height=self.start_height,
            relay=self.relay
        )

    # ========================================================================
    # MESSAGE SEND/RECEIVE
    # ========================================================================

    async def _send(self, message: Message):
        data = message.serialize(self.params.magic)
        operation = f"send {message.command}"

        # Nothing goes on the socket once the deadline has passed
        self._check_deadline(operation)
        try:
            self.writer.write(data)
            await self._bounded(self.writer.drain(), operation)
        except OSError as e:
            raise PeerConnectionError(
                f"Failed to send message: {e}",
                code="PEER_SEND_FAILED"
            )

        logger.debug(f"Sent {message.command} to {self} ({len(data)} bytes)")

    async def _receive(self, allow_eof: bool = False) -> Optional[Message]:
        """
        Read one message.

        Returns:
            Message, or None when allow_eof is set and the peer closed the
            stream before sending a single byte

        Raises:
            TruncatedMessageError: Stream ended mid-message
            ProtocolError: Header or checksum invalid
        """
        raw_header = await self._read_exactly(HEADER_SIZE, "read header", allow_eof)
        if raw_header is None:
            return None

        header = MessageHeader.unpack(raw_header, self.params.magic)
        payload = await self._read_exactly(header.length, f"read {header.command} payload")
        header.verify(payload)

        logger.debug(
            f"Received {header.command} from {self} ({HEADER_SIZE + header.length} bytes)"
        )
        return Message(command=header.command, payload=payload)

    async def _read_exactly(
        self,
        size: int,
        operation: str,
        allow_eof: bool = False
    ) -> Optional[bytes]:
        try:
            return await self._bounded(self.reader.readexactly(size), operation)
        except asyncio.IncompleteReadError as e:
            if allow_eof and not e.partial:
                return None
            raise TruncatedMessageError(
                "failed to fill whole buffer",
                code="STREAM_TRUNCATED",
                details={"operation": operation, "wanted": size, "received": len(e.partial)}
            )
        except OSError as e:
            raise PeerConnectionError(
                f"Failed to receive message: {e}",
                code="PEER_RECV_FAILED"
            )

    def __str__(self) -> str:
        return str(self.address)

    def __repr__(self) -> str:
        return f"PeerSession({self.address}, state={self.state.value})"


__all__ = [
    "ACK_OMITTED_NOTE",
    "SessionState",
    "OutcomeStatus",
    "HandshakeOutcome",
    "PeerSession",
]
