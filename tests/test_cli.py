"""
P2P Handshake - CLI Tests
===========================
Command line behaviour and exit status.
"""

import pytest
from typer.testing import CliRunner

from p2p_handshake.cli.main import app
from p2p_handshake.errors import ResolutionError
from p2p_handshake.network.seed import PeerAddress, SeedResolver


runner = CliRunner()


class TestRunCommand:
    """Test the run command"""

    def test_resolution_failure_exits_non_zero(self, monkeypatch):
        """Test unresolvable seed aborts with status 1"""
        async def fail(self, hostname, port):
            raise ResolutionError(f"Failed to resolve {hostname}")

        monkeypatch.setattr(SeedResolver, "resolve", fail)

        result = runner.invoke(app, ["run", "nonexistent.invalid"])

        assert result.exit_code == 1
        assert "Failed to resolve nonexistent.invalid" in result.output

    def test_peer_failures_keep_zero_status(self, monkeypatch, closed_port):
        """Test failed handshakes are reported but do not change the exit status"""
        async def resolve(self, hostname, port):
            return [PeerAddress("127.0.0.1", port)]

        monkeypatch.setattr(SeedResolver, "resolve", resolve)

        result = runner.invoke(
            app,
            ["run", "seed.example.org", "--port", str(closed_port), "--timeout", "2"]
        )

        assert result.exit_code == 0
        assert result.output.count("Handshake Success Count: 0") == 1
        assert result.output.count("Handshake Failure Count: 1") == 1
        assert result.output.count("Handshake failed with") == 1

    def test_port_defaults_to_network(self, monkeypatch):
        """Test resolver receives the chain default port"""
        seen = []

        async def resolve(self, hostname, port):
            seen.append(port)
            return []

        monkeypatch.setattr(SeedResolver, "resolve", resolve)

        result = runner.invoke(app, ["run", "seed.example.org", "-c", "testnet"])

        assert result.exit_code == 0
        assert seen == [18333]

    @pytest.mark.parametrize("args", [
        ["--chain", "dogecoin"],
        ["--timeout", "0"],
        ["--max-concurrency", "0"],
    ])
    def test_invalid_configuration(self, args):
        """Test bad options exit with status 1"""
        result = runner.invoke(app, ["run", "seed.example.org", *args])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output


class TestInfoCommands:
    """Test informational commands"""

    def test_networks(self):
        """Test network table"""
        result = runner.invoke(app, ["networks"])

        assert result.exit_code == 0
        assert "mainnet" in result.output
        assert "f9beb4d9" in result.output
        assert "38333" in result.output

    def test_version(self):
        """Test version panel"""
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "1.0.0" in result.output
