"""
HomeSync CLI - Command line interface for the remote device bridge.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn

from .config import Config, DEFAULT_DATA_DIR, set_config
from .registry.host import JsonHostRegistry

console = Console()


def setup_logging(verbose: bool = False):
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        handlers=[logging.StreamHandler()]
    )


def run_async(coro):
    """Run an async function."""
    return asyncio.run(coro)


def load_config(ctx) -> Config:
    config = Config.load(ctx.obj["data_dir"])
    set_config(config)
    return config


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--data-dir', type=click.Path(), help='Data directory (default ~/.homesync)')
@click.pass_context
def main(ctx, verbose, data_dir):
    """HomeSync - bridge a remote device API into a local accessory registry"""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    ctx.obj['data_dir'] = Path(data_dir) if data_dir else DEFAULT_DATA_DIR
    setup_logging(verbose)


@main.command()
@click.option('--port', '-p', type=int, help='Listener port')
@click.option('--host', '-h', help='Listener address (default: first local IPv4)')
@click.pass_context
def run(ctx, port: Optional[int], host: Optional[str]):
    """Discover devices and start the push listener."""
    from .platform import Platform

    config = load_config(ctx)
    if port:
        config.listener.port = port
    if host:
        config.listener.host = host

    platform = Platform(config)
    if not platform.sync_enabled:
        console.print(f"[red]Invalid Remote API URL: {config.remote.url!r}[/red]")
        sys.exit(1)

    console.print(f"\n[bold blue]Starting HomeSync for {config.remote.display_name}[/bold blue]")
    console.print("   Press Ctrl+C to stop\n")

    try:
        run_async(platform.run_forever())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped[/dim]")


@main.command()
@click.pass_context
def discover(ctx):
    """Run a single discovery cycle against the remote API."""
    from .platform import Platform

    config = load_config(ctx)
    platform = Platform(config)
    if not platform.sync_enabled:
        console.print(f"[red]Invalid Remote API URL: {config.remote.url!r}[/red]")
        sys.exit(1)

    async def _cycle():
        try:
            platform.engine.restore_cached()
            return await platform.discover()
        finally:
            await platform.client.close()

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console
    ) as progress:
        task = progress.add_task(f"Discovering devices from {config.remote.display_name}...", total=None)
        result = run_async(_cycle())
        progress.update(task, description="Done!")

    if not result.ok:
        console.print(f"[red]Discovery failed: {result.error}[/red]")
        sys.exit(1)

    table = Table(title="Devices")
    table.add_column("UUID", style="cyan")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Change")
    table.add_column("Capabilities", style="dim")

    snapshot = platform.engine.snapshot()
    changes = {uuid: "added" for uuid in result.added}
    changes.update({uuid: "updated" for uuid in result.updated})
    for uuid, entry in snapshot.items():
        device = entry.get("device") or {}
        change = changes.get(uuid, "")
        if uuid in result.unsupported:
            change = "[yellow]unsupported[/yellow]"
        table.add_row(uuid, entry["display_identity"], device.get("type", ""), change, ", ".join(entry["capabilities"]))
    for uuid in result.retired:
        table.add_row(uuid, "", "", "[red]retired[/red]", "")

    console.print(table)


@main.command()
@click.pass_context
def devices(ctx):
    """List cached accessories."""
    config = load_config(ctx)
    host = JsonHostRegistry(config.accessories_path)
    handles = host.restore_cached()

    if not handles:
        console.print("[yellow]No accessories cached. Run 'homesync discover' first.[/yellow]")
        return

    table = Table(title="Cached Accessories")
    table.add_column("UUID", style="cyan")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Characteristics", style="dim")

    for handle in handles:
        device = handle.context.get("device") or {}
        characteristics = device.get("characteristics") or {}
        table.add_row(
            handle.uuid,
            handle.display_name,
            device.get("type", ""),
            ", ".join(f"{k}={v}" for k, v in characteristics.items()),
        )

    console.print(table)


@main.command()
@click.pass_context
def token(ctx):
    """Fetch an access token from the configured issuer."""
    from .errors import ConfigurationError
    from .remote.client import RemoteAPIClient

    config = load_config(ctx)
    if not config.auth.enabled:
        console.print("[yellow]Authentication is disabled in the configuration.[/yellow]")
        return

    try:
        client = RemoteAPIClient(config.remote, config.auth)
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    async def _fetch():
        try:
            return await client.fetch_token()
        finally:
            await client.close()

    result = run_async(_fetch())
    if not result.valid:
        console.print("[red]Token fetch failed, see log for details[/red]")
        sys.exit(1)

    console.print("[green]Token fetched[/green]")
    console.print(f"   Type:    {result.token_type}")
    console.print(f"   Scope:   {result.scope}")
    console.print(f"   Expires: {result.expires_at_epoch_ms}")


@main.command('config')
@click.pass_context
def show_config(ctx):
    """Show the effective configuration."""
    config = load_config(ctx)
    console.print(f"[dim]{config.config_path}[/dim]")
    console.print_json(json.dumps(config.to_dict(mask_secrets=True)))


if __name__ == "__main__":
    main()
