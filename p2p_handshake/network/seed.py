"""
P2P Handshake - DNS Seed Resolution
=====================================
Turns a seed hostname into candidate peer addresses.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List
import asyncio
import socket

from p2p_handshake.errors import ResolutionError
from p2p_handshake.logging_setup import get_logger


logger = get_logger("network.seed")


@dataclass(frozen=True)
class PeerAddress:
    """IP and port of one candidate peer"""

    host: str
    port: int

    def __str__(self) -> str:
        if ':' in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


class SeedResolver:
    """
    Resolve a DNS seed through the event loop's getaddrinfo.

    Examples:
        >>> resolver = SeedResolver()
        >>> peers = await resolver.resolve("seed.bitcoin.sipa.be", 8333)
    """

    def __init__(self, family: int = socket.AF_UNSPEC):
        self.family = family

    async def resolve(self, hostname: str, port: int) -> List[PeerAddress]:
        """
        Resolve hostname, pairing every address with port.

        Duplicate addresses are dropped; the result may be empty.

        Raises:
            ResolutionError: If the hostname cannot be resolved
        """
        loop = asyncio.get_running_loop()

        try:
            infos = await loop.getaddrinfo(
                hostname,
                port,
                family=self.family,
                type=socket.SOCK_STREAM
            )
        except (socket.gaierror, UnicodeError) as e:
            raise ResolutionError(
                f"Failed to resolve {hostname}: {e}",
                code="SEED_RESOLUTION_FAILED",
                details={"hostname": hostname}
            )

        peers: List[PeerAddress] = []
        seen = set()
        for _family, _type, _proto, _canonname, sockaddr in infos:
            address = PeerAddress(host=sockaddr[0], port=sockaddr[1])
            if address not in seen:
                seen.add(address)
                peers.append(address)

        logger.info(f"Resolved {hostname} to {len(peers)} peer addresses")
        return peers


__all__ = [
    "PeerAddress",
    "SeedResolver",
]
