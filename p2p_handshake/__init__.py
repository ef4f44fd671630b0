"""
P2P Handshake - Bitcoin Peer Handshake Prober
===============================================
Resolves a DNS seed and performs the version/verack handshake with every
peer it returns, reporting success and failure counts.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__license__ = "MIT"

# Network (imported before config, which depends on network.params)
from p2p_handshake.network.orchestrator import AggregateResult, HandshakeOrchestrator
from p2p_handshake.network.peer import HandshakeOutcome, PeerSession
from p2p_handshake.network.seed import PeerAddress, SeedResolver
from p2p_handshake.network.params import Chain, NetworkParams

# Config
from p2p_handshake.config import HandshakeSettings, get_settings

# Errors
from p2p_handshake.errors import (
    FailureReason,
    ProtocolViolation,
    HandshakeException,
    ResolutionError,
)

__all__ = [
    # Version
    "__version__",

    # Network
    "AggregateResult",
    "HandshakeOrchestrator",
    "HandshakeOutcome",
    "PeerSession",
    "PeerAddress",
    "SeedResolver",
    "Chain",
    "NetworkParams",

    # Config
    "HandshakeSettings",
    "get_settings",

    # Errors
    "FailureReason",
    "ProtocolViolation",
    "HandshakeException",
    "ResolutionError",
]
