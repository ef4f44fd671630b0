"""
P2P Handshake - Configuration Management
==========================================
Centralized configuration with Pydantic Settings.
Supports environment variables, .env file, runtime overrides.

Last Updated: 2026-10-17
Version: 1.0.0

Features:
- Automatic type validation
- Environment variables with prefix P2P_HANDSHAKE_
- .env file support
"""

from pathlib import Path
from typing import Optional
from functools import lru_cache

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from p2p_handshake.constants import (
    PROTOCOL_VERSION,
    DEFAULT_TIMEOUT_SECONDS,
    MAX_USER_AGENT_LENGTH,
    UINT64_MAX,
    INT32_MIN,
    INT32_MAX,
)
from p2p_handshake.errors import InvalidConfigError
from p2p_handshake.network.params import Chain, NetworkParams
from p2p_handshake.version import get_user_agent


# ============================================================================
# MAIN CONFIGURATION CLASS
# ============================================================================

class HandshakeSettings(BaseSettings):
    """
    Handshake run configuration.

    Example:
        # From environment
        export P2P_HANDSHAKE_CHAIN=testnet3
        export P2P_HANDSHAKE_TIMEOUT_SECONDS=5

        # From code
        config = HandshakeSettings(chain="signet", max_concurrency=16)
    """

    model_config = SettingsConfigDict(
        env_prefix='P2P_HANDSHAKE_',
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
    )

    # ========================================================================
    # NETWORK
    # ========================================================================

    chain: str = Field(
        default=Chain.MAINNET.value,
        description="Network: mainnet, testnet3, signet, regtest, namecoin"
    )

    port: Optional[int] = Field(
        default=None,
        ge=1,
        le=65535,
        description="Peer port (network default if None)"
    )

    # ========================================================================
    # VERSION MESSAGE
    # ========================================================================

    services: int = Field(
        default=0,
        ge=0,
        le=UINT64_MAX,
        description="Services advertised in our version message (bitfield)"
    )

    receiving_services: int = Field(
        default=0,
        ge=0,
        le=UINT64_MAX,
        description="Services placed in the receiver address record"
    )

    protocol_version: int = Field(
        default=PROTOCOL_VERSION,
        ge=0,
        le=INT32_MAX,
        description="Protocol version announced to peers"
    )

    user_agent: str = Field(
        default_factory=get_user_agent,
        description="BIP 14 user agent"
    )

    start_height: int = Field(
        default=0,
        ge=INT32_MIN,
        le=INT32_MAX,
        description="Best block height announced to peers"
    )

    relay: bool = Field(
        default=False,
        description="BIP 37 relay flag"
    )

    # ========================================================================
    # HANDSHAKE POLICY
    # ========================================================================

    timeout_seconds: float = Field(
        default=DEFAULT_TIMEOUT_SECONDS,
        gt=0,
        description="Overall deadline for the whole run (seconds)"
    )

    max_concurrency: Optional[int] = Field(
        default=None,
        ge=1,
        description="Worker pool size (None = one task per peer)"
    )

    allow_missing_verack: bool = Field(
        default=True,
        description="Count a peer closing the stream instead of sending verack as success"
    )

    # ========================================================================
    # LOGGING
    # ========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )

    log_to_file: bool = Field(
        default=False,
        description="Also write a log file"
    )

    log_dir: Path = Field(
        default=Path("./logs"),
        description="Directory for log files"
    )

    log_format: str = Field(
        default="text",
        description="Log file format: json, text"
    )

    # ========================================================================
    # VALIDATORS
    # ========================================================================

    @field_validator('chain')
    @classmethod
    def validate_chain(cls, v: str) -> str:
        return Chain.from_name(v).value

    @field_validator('user_agent')
    @classmethod
    def validate_user_agent(cls, v: str) -> str:
        if len(v.encode('utf-8')) > MAX_USER_AGENT_LENGTH:
            raise ValueError(f"user_agent longer than {MAX_USER_AGENT_LENGTH} bytes")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log_level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        valid_formats = ['json', 'text']
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid log_format: {v}. Must be one of {valid_formats}")
        return v_lower

    # ========================================================================
    # HELPER METHODS
    # ========================================================================

    def network_params(self) -> NetworkParams:
        return NetworkParams.for_chain(self.chain)

    def effective_port(self) -> int:
        """Configured port, or the network default"""
        if self.port is not None:
            return self.port
        return self.network_params().default_port

    def __repr__(self) -> str:
        return (
            f"HandshakeSettings("
            f"chain={self.chain}, "
            f"port={self.effective_port()}, "
            f"timeout_seconds={self.timeout_seconds}, "
            f"max_concurrency={self.max_concurrency})"
        )


# ============================================================================
# SINGLETON INSTANCE
# ============================================================================

@lru_cache(maxsize=1)
def get_settings() -> HandshakeSettings:
    """
    Get the cached HandshakeSettings instance.

    Example:
        >>> config = get_settings()
        >>> config.chain
        'mainnet'
    """
    return HandshakeSettings()


def reload_settings() -> HandshakeSettings:
    """Reload settings after environment changes"""
    get_settings.cache_clear()
    return get_settings()


def override_settings(**kwargs) -> HandshakeSettings:
    """
    Build settings with explicit overrides (CLI options, tests).

    Example:
        >>> test_config = override_settings(chain="regtest", timeout_seconds=1)

    Raises:
        InvalidConfigError: If a value fails validation
    """
    try:
        return HandshakeSettings(**kwargs)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        )
        raise InvalidConfigError(
            f"Invalid configuration: {problems}",
            code="INVALID_CONFIG",
            details={"fields": [str(error["loc"][0]) for error in e.errors() if error["loc"]]}
        )


__all__ = [
    "HandshakeSettings",
    "get_settings",
    "reload_settings",
    "override_settings",
]
