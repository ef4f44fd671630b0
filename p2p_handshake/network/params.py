"""
P2P Handshake - Network Parameters
====================================
Closed set of supported networks and their magic values / default ports.

Source: https://en.bitcoin.it/wiki/Protocol_documentation#Message_structure
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from p2p_handshake.constants import (
    MAINNET_MAGIC,
    TESTNET3_MAGIC,
    SIGNET_MAGIC,
    REGTEST_MAGIC,
    NAMECOIN_MAGIC,
    MAINNET_PORT,
    TESTNET3_PORT,
    SIGNET_PORT,
    REGTEST_PORT,
    NAMECOIN_PORT,
)


class Chain(Enum):
    """Supported network variants"""
    MAINNET = "mainnet"
    TESTNET3 = "testnet3"
    SIGNET = "signet"
    REGTEST = "regtest"
    NAMECOIN = "namecoin"

    @classmethod
    def from_name(cls, name: str) -> Chain:
        """
        Parse a network name.

        Raises:
            ValueError: If the name is not a known network
        """
        key = name.strip().lower()
        key = _CHAIN_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            valid = [chain.value for chain in cls]
            raise ValueError(f"Unknown network: {name}. Must be one of {valid}")


_CHAIN_ALIASES: Dict[str, str] = {
    "main": "mainnet",
    "testnet": "testnet3",
    "test": "testnet3",
    "regnet": "regtest",
}


@dataclass(frozen=True)
class NetworkParams:
    """
    Immutable parameters of one network.

    Attributes:
        chain: Network variant
        magic: 4-byte message start value
        default_port: Default p2p port
    """

    chain: Chain
    magic: bytes
    default_port: int

    @property
    def name(self) -> str:
        return self.chain.value

    @classmethod
    def for_chain(cls, chain: Chain | str) -> NetworkParams:
        if isinstance(chain, str):
            chain = Chain.from_name(chain)
        return _PARAMS[chain]

    @classmethod
    def from_magic(cls, magic: bytes) -> Optional[NetworkParams]:
        """Identify the network a magic value belongs to (None if unknown)"""
        for params in _PARAMS.values():
            if params.magic == magic:
                return params
        return None

    @classmethod
    def all(cls) -> list[NetworkParams]:
        return list(_PARAMS.values())

    def __str__(self) -> str:
        return f"{self.name} (magic={self.magic.hex()}, port={self.default_port})"


_PARAMS: Dict[Chain, NetworkParams] = {
    Chain.MAINNET: NetworkParams(Chain.MAINNET, MAINNET_MAGIC, MAINNET_PORT),
    Chain.TESTNET3: NetworkParams(Chain.TESTNET3, TESTNET3_MAGIC, TESTNET3_PORT),
    Chain.SIGNET: NetworkParams(Chain.SIGNET, SIGNET_MAGIC, SIGNET_PORT),
    Chain.REGTEST: NetworkParams(Chain.REGTEST, REGTEST_MAGIC, REGTEST_PORT),
    Chain.NAMECOIN: NetworkParams(Chain.NAMECOIN, NAMECOIN_MAGIC, NAMECOIN_PORT),
}


__all__ = [
    "Chain",
    "NetworkParams",
]
