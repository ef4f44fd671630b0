"""
P2P Handshake - Command Line Interface
========================================
CLI for probing the peers behind a DNS seed.

Security Level: MEDIUM
Last Updated: 2026-10-17
Version: 1.0.0

Commands:
- run: Resolve a seed and handshake with every peer
- networks: List supported networks
- version: Show package version
"""

import typer
from typing import Optional
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.markup import escape
import asyncio

from p2p_handshake.config import HandshakeSettings, override_settings
from p2p_handshake.errors import InvalidConfigError, ResolutionError
from p2p_handshake.logging_setup import setup_logging
from p2p_handshake.network.orchestrator import AggregateResult, HandshakeOrchestrator
from p2p_handshake.network.params import NetworkParams
from p2p_handshake.version import get_version_string


# ============================================================================
# CLI APP
# ============================================================================

app = typer.Typer(
    name="p2p-handshake",
    help="P2P Handshake - Bitcoin peer handshake prober",
    add_completion=False
)

console = Console()


# ============================================================================
# COMMANDS
# ============================================================================

@app.command("run")
def run(
    dns_seed: str = typer.Argument(
        ...,
        help="DNS seed hostname"
    ),
    chain: str = typer.Option(
        "mainnet",
        "--chain",
        "-c",
        help="Network (mainnet/testnet3/signet/regtest/namecoin)"
    ),
    port: Optional[int] = typer.Option(
        None,
        "--port",
        "-p",
        help="Peer port (network default if omitted)"
    ),
    services: int = typer.Option(
        0,
        "--services",
        "-s",
        help="Services advertised in our version message"
    ),
    receiving_services: int = typer.Option(
        0,
        "--receiving-services",
        "-r",
        help="Services placed in the receiver address"
    ),
    timeout: float = typer.Option(
        10.0,
        "--timeout",
        "-t",
        help="Overall deadline in seconds"
    ),
    max_concurrency: Optional[int] = typer.Option(
        None,
        "--max-concurrency",
        "-m",
        help="Worker pool size (one task per peer if omitted)"
    ),
    strict_verack: bool = typer.Option(
        False,
        "--strict-verack",
        help="Fail peers that close the stream instead of sending verack"
    ),
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        help="Log level"
    )
):
    """Handshake with every peer returned by DNS_SEED"""
    try:
        config = override_settings(
            chain=chain,
            port=port,
            services=services,
            receiving_services=receiving_services,
            timeout_seconds=timeout,
            max_concurrency=max_concurrency,
            allow_missing_verack=not strict_verack,
            log_level=log_level
        )
    except InvalidConfigError as e:
        console.print(f"[red]{escape(e.message)}[/red]")
        raise typer.Exit(1)

    setup_logging(
        log_level=config.log_level,
        log_to_file=config.log_to_file,
        log_dir=config.log_dir,
        log_format=config.log_format
    )

    # Per-peer lines and the summary reach stdout through the console log handler
    try:
        asyncio.run(_run(config, dns_seed))
    except ResolutionError as e:
        console.print(f"[red]{escape(e.message)}[/red]")
        raise typer.Exit(1)


async def _run(config: HandshakeSettings, dns_seed: str) -> AggregateResult:
    # Deadline starts before resolution so the whole run shares it
    loop = asyncio.get_running_loop()
    deadline = loop.time() + config.timeout_seconds

    orchestrator = HandshakeOrchestrator(config)
    return await orchestrator.run(dns_seed, deadline=deadline)


@app.command("networks")
def networks():
    """List supported networks"""
    table = Table(title="Supported Networks")
    table.add_column("Network", style="cyan")
    table.add_column("Magic", style="green")
    table.add_column("Default Port", justify="right", style="yellow")

    for params in NetworkParams.all():
        table.add_row(params.name, params.magic.hex(), str(params.default_port))

    console.print(table)


@app.command("version")
def version():
    """Show version"""
    console.print(Panel.fit(
        f"[cyan]{get_version_string()}[/cyan]",
        title="P2P Handshake",
        border_style="green"
    ))


if __name__ == "__main__":
    app()


# ============================================================================
# EXPORT
# ============================================================================

__all__ = [
    "app",
]
