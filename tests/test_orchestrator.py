"""
P2P Handshake - Orchestrator Tests
====================================
Multi-peer runs against scripted peers.
"""

import pytest
import asyncio
from contextlib import AsyncExitStack

from p2p_handshake.config import HandshakeSettings
from p2p_handshake.errors import FailureReason, ResolutionError
from p2p_handshake.network.orchestrator import AggregateResult, HandshakeOrchestrator
from p2p_handshake.network.peer import HandshakeOutcome
from p2p_handshake.network.seed import PeerAddress

from conftest import (
    FakePeer,
    StaticResolver,
    HANDSHAKE,
    NO_VERACK,
    SILENT,
    BAD_MAGIC,
    BAD_CHECKSUM,
    GARBAGE_COMMAND,
    WRONG_COMMAND,
    TRUNCATED,
)


def outcome_lines(caplog):
    return [
        record.getMessage()
        for record in caplog.records
        if record.name == "p2p_handshake.network.orchestrator"
        and record.getMessage().startswith(("Handshake succeeded", "Handshake failed"))
    ]


class CountingConnector:
    """Connector that records how many connects overlap, then refuses"""

    def __init__(self, delay: float = 0.05):
        self.delay = delay
        self.active = 0
        self.peak = 0
        self.calls = 0

    async def __call__(self, host, port):
        self.calls += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        raise ConnectionRefusedError("refused")


class TestSeedRun:
    """Test a full run from seed to summary"""

    @pytest.mark.asyncio
    async def test_twenty_five_peers(self, caplog, closed_port):
        """Test 6 successes and 19 failures out of 25 peers"""
        caplog.set_level("INFO", logger="p2p_handshake")

        plan = [
            (HANDSHAKE, 4),
            (NO_VERACK, 2),
            (BAD_MAGIC, 3),
            (BAD_CHECKSUM, 3),
            (GARBAGE_COMMAND, 3),
            (WRONG_COMMAND, 3),
            (TRUNCATED, 3),
        ]

        async with AsyncExitStack() as stack:
            addresses = []
            for behavior, count in plan:
                peer = await stack.enter_async_context(FakePeer(behavior))
                addresses.extend([peer.address] * count)
            addresses.extend([PeerAddress("127.0.0.1", closed_port)] * 4)

            resolver = StaticResolver(addresses)
            orchestrator = HandshakeOrchestrator(
                HandshakeSettings(timeout_seconds=5.0),
                resolver=resolver
            )
            result = await orchestrator.run("seed.example.org")

        assert resolver.calls == [("seed.example.org", 8333)]
        assert len(addresses) == 25

        assert result.success == 6
        assert result.failure == 19
        assert result.total == 25
        assert result.ack_omitted == 2
        assert result.failures_by_reason == {
            FailureReason.CONNECT_ERROR: 4,
            FailureReason.PROTOCOL_ERROR: 12,
            FailureReason.UNEXPECTED_COMMAND: 3,
        }

        assert len(outcome_lines(caplog)) == 25
        assert "Handshake Success Count: 6" in caplog.text
        assert "Handshake Failure Count: 19" in caplog.text

    @pytest.mark.asyncio
    async def test_resolution_error_propagates(self):
        """Test resolver failure aborts before any session"""
        class FailingResolver:
            async def resolve(self, hostname, port):
                raise ResolutionError(f"Failed to resolve {hostname}")

        connector = CountingConnector()
        orchestrator = HandshakeOrchestrator(
            HandshakeSettings(),
            resolver=FailingResolver(),
            connector=connector
        )

        with pytest.raises(ResolutionError):
            await orchestrator.run("nonexistent.invalid")

        assert connector.calls == 0

    @pytest.mark.asyncio
    async def test_no_peers(self):
        """Test seed returning nothing"""
        orchestrator = HandshakeOrchestrator(
            HandshakeSettings(),
            resolver=StaticResolver([])
        )

        result = await orchestrator.run("empty.example.org")

        assert result.summary_lines() == [
            "Handshake Success Count: 0",
            "Handshake Failure Count: 0",
        ]


class TestConcurrency:
    """Test scheduling of sessions"""

    @pytest.mark.asyncio
    async def test_unbounded_runs_all_at_once(self):
        """Test one concurrent session per peer"""
        connector = CountingConnector()
        orchestrator = HandshakeOrchestrator(HandshakeSettings(), connector=connector)
        addresses = [PeerAddress(f"192.0.2.{i}", 8333) for i in range(1, 9)]

        loop = asyncio.get_running_loop()
        result = await orchestrator.handshake_all(addresses, loop.time() + 5.0)

        assert connector.peak == 8
        assert result.failure == 8
        assert result.failures_by_reason == {FailureReason.CONNECT_ERROR: 8}

    @pytest.mark.asyncio
    async def test_worker_pool_bounds_concurrency(self):
        """Test max_concurrency limits overlapping sessions"""
        connector = CountingConnector()
        orchestrator = HandshakeOrchestrator(
            HandshakeSettings(max_concurrency=3),
            connector=connector
        )
        addresses = [PeerAddress(f"192.0.2.{i}", 8333) for i in range(1, 11)]

        loop = asyncio.get_running_loop()
        result = await orchestrator.handshake_all(addresses, loop.time() + 5.0)

        assert connector.calls == 10
        assert connector.peak <= 3
        assert result.total == 10

    @pytest.mark.asyncio
    async def test_worker_pool_handshakes(self):
        """Test pooled sessions against a real peer"""
        async with FakePeer(HANDSHAKE) as peer:
            orchestrator = HandshakeOrchestrator(HandshakeSettings(max_concurrency=2))
            loop = asyncio.get_running_loop()
            result = await orchestrator.handshake_all([peer.address] * 5, loop.time() + 5.0)

        assert result.success == 5
        assert result.failure == 0


class TestSharedDeadline:
    """Test every session draws on the same deadline"""

    @pytest.mark.asyncio
    async def test_silent_peers_all_time_out(self):
        """Test silent peers end at the shared deadline"""
        async with FakePeer(SILENT) as peer:
            orchestrator = HandshakeOrchestrator(HandshakeSettings(timeout_seconds=0.3))
            loop = asyncio.get_running_loop()
            started = loop.time()
            result = await orchestrator.handshake_all([peer.address] * 5, started + 0.3)
            elapsed = loop.time() - started

        assert result.failures_by_reason == {FailureReason.TIMEOUT: 5}
        assert elapsed < 2.0

    @pytest.mark.asyncio
    async def test_later_sessions_get_remaining_time(self):
        """Test queued sessions inherit the remaining time, not a fresh timeout"""
        async with FakePeer(SILENT) as peer:
            orchestrator = HandshakeOrchestrator(
                HandshakeSettings(timeout_seconds=0.3, max_concurrency=1)
            )
            loop = asyncio.get_running_loop()
            started = loop.time()
            result = await orchestrator.handshake_all([peer.address] * 3, started + 0.3)
            elapsed = loop.time() - started

        assert result.failures_by_reason == {FailureReason.TIMEOUT: 3}
        # Three fresh 0.3s timeouts would take at least 0.9s
        assert elapsed < 0.8


class TestAggregateResult:
    """Test tallies"""

    def test_record(self):
        """Test each outcome increments exactly one counter"""
        result = AggregateResult()
        address = PeerAddress("127.0.0.1", 8333)

        result.record(HandshakeOutcome.success(address))
        result.record(HandshakeOutcome.success(address, ack_omitted=True))

        assert result.success == 2
        assert result.failure == 0
        assert result.ack_omitted == 1
        assert len(result.outcomes) == 2
