#!/usr/bin/env python3
"""
Home Node CLI

Command-line interface for multicast node discovery.

Usage:
    homenode start                   # Start a node and keep broadcasting
    homenode status                  # Start a node, show its status, stop
    homenode config                  # Show the effective configuration
"""

import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.logging import RichHandler
from rich.markup import escape

from .config import Config, load_config, EXAMPLE_CONFIG
from .errors import (
    BindError, MulticastJoinError, DiscoveryTimeout, DiscoveryError,
    InvalidConfiguration,
)
from .node import DiscoveryNode

console = Console()


def setup_logging(verbose: bool = False, level: str = 'INFO'):
    """Configure logging with rich output."""
    level = logging.DEBUG if verbose else level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def report_discovery_error(error: DiscoveryError):
    """Print a discovery failure with a hint on how to fix it."""
    if isinstance(error, BindError):
        console.print(f"[red]✗ Port {error.port} unavailable:[/red] {escape(str(error.cause))}")
        console.print("[dim]Pick another port with --port, or stop the process using it.[/dim]")
    elif isinstance(error, MulticastJoinError):
        console.print(f"[red]✗ Multicast join rejected for {error.address}:[/red] {escape(str(error.cause))}")
        console.print("[dim]Check the address and that the network interface supports multicast.[/dim]")
    elif isinstance(error, DiscoveryTimeout):
        console.print(f"[red]✗ Socket not listening after {error.timeout}s[/red]")
        console.print("[dim]Raise the timeout with --timeout, or 0 to wait forever.[/dim]")
    else:
        console.print(f"[red]✗ Discovery failed: {escape(str(error))}[/red]")


def build_node(ctx) -> DiscoveryNode:
    """Create a node from the context config, exiting on bad values."""
    config = ctx.obj['config']
    try:
        return config.create_node()
    except InvalidConfiguration as e:
        console.print(f"[red]{e}[/red]")
        ctx.exit(2)


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False, path_type=Path),
              help='JSON config file')
@click.pass_context
def cli(ctx, verbose, config_path):
    """Home Node - multicast discovery for home-automation nodes."""
    ctx.ensure_object(dict)
    try:
        config = load_config(config_path)
    except (InvalidConfiguration, ValueError) as e:
        console.print(f"[red]Bad configuration: {e}[/red]")
        ctx.exit(2)

    setup_logging(verbose, config.log_level)
    ctx.obj['config'] = config


@cli.command()
@click.option('--name', help='Node name')
@click.option('--address', help='Multicast group address')
@click.option('--port', type=int, help='Broadcast UDP port')
@click.option('--timeout', type=float, help='Seconds to wait for the socket (0 = forever)')
@click.pass_context
def start(ctx, name, address, port, timeout):
    """Start a node and broadcast until interrupted."""
    config: Config = ctx.obj['config']

    if name:
        config.node_name = name
    if address:
        config.multicast_address = address
    if port is not None:
        config.broadcast_port = port
    if timeout is not None:
        config.listen_timeout = timeout

    node = build_node(ctx)

    async def run():
        try:
            await node.start()

            console.print(Panel.fit(
                f"[bold green]Home Node Broadcasting[/bold green]\n\n"
                f"Name: [cyan]{node.name}[/cyan]\n"
                f"Group: [yellow]{node.multicast_address}[/yellow]\n"
                f"Port: [yellow]{node.broadcast_port}[/yellow]",
                title="Node Info"
            ))
            console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")

            while True:
                await asyncio.sleep(1)
        finally:
            node.stop()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")
        console.print("[green]Node stopped[/green]")
    except DiscoveryError as e:
        report_discovery_error(e)
        ctx.exit(1)


@cli.command()
@click.pass_context
def status(ctx):
    """Show node status."""
    node = build_node(ctx)

    async def run():
        async with node:
            return node.get_stats()

    try:
        stats = asyncio.run(run())
    except DiscoveryError as e:
        report_discovery_error(e)
        ctx.exit(1)

    table = Table(title="Home Node Status")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="yellow")

    for key, value in stats.items():
        table.add_row(key, str(value))

    console.print(table)


@cli.command('config')
@click.option('--example', is_flag=True, help='Print an example config file')
@click.option('--save', 'save_path', type=click.Path(dir_okay=False, path_type=Path),
              help='Write the effective configuration to a file')
@click.pass_context
def show_config(ctx, example, save_path):
    """Show the effective configuration."""
    if example:
        console.print("Example configuration file (config.json):")
        console.print(EXAMPLE_CONFIG)
        return

    config: Config = ctx.obj['config']

    if save_path:
        config.save(save_path)
        console.print(f"[green]✓ Saved to: {save_path}[/green]")
        return

    console.print_json(data=config.to_dict())


if __name__ == '__main__':
    cli()
