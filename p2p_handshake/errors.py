"""
P2P Handshake - Custom Exceptions
===================================
Closed exception hierarchy for the handshake probe.

Security Level: HIGH
Last Updated: 2026-10-17
Version: 1.0.0

Only ResolutionError aborts a run. Every PeerError is caught at the session
boundary and turned into a failed HandshakeOutcome carrying its reason.
"""

from enum import Enum
from typing import Optional


# ============================================================================
# FAILURE CLASSIFICATION
# ============================================================================

class FailureReason(Enum):
    """Why a single peer handshake failed"""
    CONNECT_ERROR = "connect_error"
    TIMEOUT = "timeout"
    PROTOCOL_ERROR = "protocol_error"
    UNEXPECTED_COMMAND = "unexpected_command"


class ProtocolViolation(Enum):
    """Sub-reason of a PROTOCOL_ERROR failure"""
    MAGIC_MISMATCH = "magic_mismatch"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    TRUNCATED = "truncated"
    UNKNOWN_COMMAND = "unknown_command"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    INVALID_PAYLOAD = "invalid_payload"
    SELF_CONNECTION = "self_connection"


# ============================================================================
# BASE EXCEPTION
# ============================================================================

class HandshakeException(Exception):
    """
    Base exception for the whole package.

    Attributes:
        message (str): Error message
        code (str): Error code (e.g. "PEER_CONNECT_FAILED")
        details (dict): Additional details
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Serialize exception for logging"""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            return f"[{self.code}] {self.message} | Details: {self.details}"
        return f"[{self.code}] {self.message}"


# ============================================================================
# CONFIGURATION ERRORS
# ============================================================================

class ConfigError(HandshakeException):
    """Configuration error"""
    pass


class InvalidConfigError(ConfigError):
    """Invalid configuration"""
    pass


# ============================================================================
# RESOLUTION ERRORS
# ============================================================================

class ResolutionError(HandshakeException):
    """Seed hostname could not be resolved (fatal for the run)"""
    pass


# ============================================================================
# ENCODING ERRORS
# ============================================================================

class CodecError(HandshakeException):
    """Local message could not be encoded"""
    pass


class InvalidCommandError(CodecError):
    """Command name longer than 12 bytes or not ASCII"""
    pass


class PayloadTooBigError(CodecError):
    """Outgoing payload exceeds the protocol maximum"""
    pass


# ============================================================================
# PER-PEER ERRORS
# ============================================================================

class PeerError(HandshakeException):
    """Failure attributed to a single peer"""
    reason: FailureReason = FailureReason.CONNECT_ERROR


class PeerConnectionError(PeerError):
    """Connection could not be established or was lost"""
    reason = FailureReason.CONNECT_ERROR


class PeerTimeoutError(PeerError):
    """The shared deadline expired during connect, read or write"""
    reason = FailureReason.TIMEOUT


class UnexpectedCommandError(PeerError):
    """Well-formed message received out of handshake sequence"""
    reason = FailureReason.UNEXPECTED_COMMAND


class ProtocolError(PeerError):
    """Peer sent bytes that violate the wire format"""
    reason = FailureReason.PROTOCOL_ERROR
    violation: ProtocolViolation = ProtocolViolation.INVALID_PAYLOAD


class MagicMismatchError(ProtocolError):
    violation = ProtocolViolation.MAGIC_MISMATCH


class ChecksumMismatchError(ProtocolError):
    violation = ProtocolViolation.CHECKSUM_MISMATCH


class TruncatedMessageError(ProtocolError):
    violation = ProtocolViolation.TRUNCATED


class UnknownCommandError(ProtocolError):
    violation = ProtocolViolation.UNKNOWN_COMMAND


class OversizedPayloadError(ProtocolError):
    violation = ProtocolViolation.PAYLOAD_TOO_LARGE


class MalformedPayloadError(ProtocolError):
    violation = ProtocolViolation.INVALID_PAYLOAD


class SelfConnectionError(ProtocolError):
    violation = ProtocolViolation.SELF_CONNECTION


# ============================================================================
# EXPORT ALL
# ============================================================================

__all__ = [
    # Classification
    "FailureReason",
    "ProtocolViolation",

    # Base
    "HandshakeException",

    # Config
    "ConfigError",
    "InvalidConfigError",

    # Resolution
    "ResolutionError",

    # Encoding
    "CodecError",
    "InvalidCommandError",
    "PayloadTooBigError",

    # Peer
    "PeerError",
    "PeerConnectionError",
    "PeerTimeoutError",
    "UnexpectedCommandError",
    "ProtocolError",
    "MagicMismatchError",
    "ChecksumMismatchError",
    "TruncatedMessageError",
    "UnknownCommandError",
    "OversizedPayloadError",
    "MalformedPayloadError",
    "SelfConnectionError",
]
