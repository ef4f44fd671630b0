"""
P2P Handshake - Network Package
=================================
Wire codec, peer sessions, seed resolution and orchestration.
"""

from p2p_handshake.network.params import Chain, NetworkParams
from p2p_handshake.network.message import (
    Message,
    MessageHeader,
    MessageFactory,
    VersionMessage,
    VerackMessage,
    encode,
    decode,
)
from p2p_handshake.network.seed import PeerAddress, SeedResolver
from p2p_handshake.network.peer import HandshakeOutcome, PeerSession, SessionState
from p2p_handshake.network.orchestrator import AggregateResult, HandshakeOrchestrator

__all__ = [
    "Chain",
    "NetworkParams",
    "Message",
    "MessageHeader",
    "MessageFactory",
    "VersionMessage",
    "VerackMessage",
    "encode",
    "decode",
    "PeerAddress",
    "SeedResolver",
    "HandshakeOutcome",
    "PeerSession",
    "SessionState",
    "AggregateResult",
    "HandshakeOrchestrator",
]
