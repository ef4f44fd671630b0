"""
P2P Handshake - Handshake Orchestrator
========================================
Runs one PeerSession per resolved address under a shared deadline.

Security Level: HIGH
Last Updated: 2026-10-17
Version: 1.0.0

Features:
- Single absolute deadline computed once per run
- One task per peer, or a fixed-size worker pool draining an address queue
- Outcomes tallied in completion order
- Waits for every session; sessions time themselves out
"""

from __future__ import annotations
from typing import Dict, List, Optional, Protocol, Sequence
from dataclasses import dataclass, field
import asyncio

from p2p_handshake.config import HandshakeSettings
from p2p_handshake.errors import FailureReason
from p2p_handshake.logging_setup import get_logger, PerformanceLogger
from p2p_handshake.network.params import NetworkParams
from p2p_handshake.network.peer import Connector, HandshakeOutcome, PeerSession
from p2p_handshake.network.seed import PeerAddress, SeedResolver


logger = get_logger("network.orchestrator")


class Resolver(Protocol):
    async def resolve(self, hostname: str, port: int) -> List[PeerAddress]:
        ...


# ============================================================================
# AGGREGATE RESULT
# ============================================================================

@dataclass
class AggregateResult:
    """
    Success/failure tallies of a run.

    Only the orchestrator mutates it, one outcome at a time.
    """

    success: int = 0
    failure: int = 0
    ack_omitted: int = 0
    failures_by_reason: Dict[FailureReason, int] = field(default_factory=dict)
    outcomes: List[HandshakeOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.success + self.failure

    def record(self, outcome: HandshakeOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.is_success:
            self.success += 1
            if outcome.ack_omitted:
                self.ack_omitted += 1
        else:
            self.failure += 1
            self.failures_by_reason[outcome.reason] = (
                self.failures_by_reason.get(outcome.reason, 0) + 1
            )

    def summary_lines(self) -> List[str]:
        return [
            f"Handshake Success Count: {self.success}",
            f"Handshake Failure Count: {self.failure}",
        ]


# ============================================================================
# ORCHESTRATOR
# ============================================================================

class HandshakeOrchestrator:
    """
    Resolve a seed and handshake with every address it returns.

    Attributes:
        settings: Run configuration
        params: Network parameters derived from settings
        resolver: Seed resolver
        result: Tallies of the last run

    Examples:
        >>> orchestrator = HandshakeOrchestrator(HandshakeSettings(timeout_seconds=5))
        >>> result = await orchestrator.run("seed.bitcoin.sipa.be")
        >>> result.success + result.failure
        25
    """

    def __init__(
        self,
        settings: HandshakeSettings,
        resolver: Optional[Resolver] = None,
        connector: Optional[Connector] = None
    ):
        self.settings = settings
        self.params: NetworkParams = settings.network_params()
        self.resolver: Resolver = resolver or SeedResolver()
        self.connector = connector
        self.result = AggregateResult()

    # ========================================================================
    # RUN
    # ========================================================================

    async def run(self, seed: str, deadline: Optional[float] = None) -> AggregateResult:
        """
        Resolve seed and handshake with all peers.

        Args:
            seed: DNS seed hostname
            deadline: Absolute event-loop time; computed from
                settings.timeout_seconds when omitted

        Raises:
            ResolutionError: If the seed cannot be resolved
        """
        loop = asyncio.get_running_loop()
        if deadline is None:
            deadline = loop.time() + self.settings.timeout_seconds

        addresses = await self.resolver.resolve(seed, self.settings.effective_port())
        return await self.handshake_all(addresses, deadline)

    async def handshake_all(
        self,
        addresses: Sequence[PeerAddress],
        deadline: float
    ) -> AggregateResult:
        """Run one session per address and wait for all of them"""
        self.result = AggregateResult()

        logger.info(
            f"Starting handshakes with {len(addresses)} peers on {self.params.name}",
            extra_data={"peers": len(addresses), "network": self.params.name}
        )

        with PerformanceLogger(logger, "handshake_all"):
            max_workers = self.settings.max_concurrency
            if max_workers is not None and max_workers < len(addresses):
                await self._run_worker_pool(addresses, deadline, max_workers)
            else:
                await self._run_unbounded(addresses, deadline)

        for line in self.result.summary_lines():
            logger.info(line)

        return self.result

    async def _run_unbounded(self, addresses: Sequence[PeerAddress], deadline: float):
        tasks = [
            asyncio.create_task(self._create_session(address, deadline).run())
            for address in addresses
        ]
        try:
            for completed in asyncio.as_completed(tasks):
                self._record(await completed)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_worker_pool(
        self,
        addresses: Sequence[PeerAddress],
        deadline: float,
        max_workers: int
    ):
        queue: asyncio.Queue = asyncio.Queue()
        for address in addresses:
            queue.put_nowait(address)

        async def worker():
            while True:
                try:
                    address = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                self._record(await self._create_session(address, deadline).run())

        workers = [asyncio.create_task(worker()) for _ in range(max_workers)]
        try:
            await asyncio.gather(*workers)
        finally:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _create_session(self, address: PeerAddress, deadline: float) -> PeerSession:
        settings = self.settings
        return PeerSession(
            address=address,
            params=self.params,
            deadline=deadline,
            services=settings.services,
            receiving_services=settings.receiving_services,
            protocol_version=settings.protocol_version,
            user_agent=settings.user_agent,
            start_height=settings.start_height,
            relay=settings.relay,
            allow_missing_verack=settings.allow_missing_verack,
            connector=self.connector
        )

    def _record(self, outcome: HandshakeOutcome):
        self.result.record(outcome)
        logger.info(
            outcome.describe(),
            extra_data={
                "peer": str(outcome.address),
                "status": outcome.status.value,
                "reason": outcome.reason.value if outcome.reason else None,
            }
        )


__all__ = [
    "AggregateResult",
    "HandshakeOrchestrator",
]
