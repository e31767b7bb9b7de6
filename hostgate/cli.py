"""Command-line interface for hostgate."""

import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from hostgate.client import send_unlock_request
from hostgate.config import find_config_file, load_config
from hostgate.daemon import DEFAULT_SOCKET_PATH, EventLoop, HostsWatcher, UnlockServer
from hostgate.errors import ConfigError, ProtocolError
from hostgate.hosts import DEFAULT_HOSTS_PATH
from hostgate.models import Config, DynamicUsage, UnlockSuccess
from hostgate.policies import AccessState, DomainIndex
from hostgate.storage import DEFAULT_STATE_PATH, read_state_file

console = Console()


def _format_time(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def _format_minutes(delta_seconds: float) -> str:
    minutes = int(delta_seconds // 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h{minutes:02d}m" if hours else f"{minutes}m"


def _format_domain(domain: str, name: str, index: DomainIndex) -> str:
    owner = index.get_entry(domain)
    if owner != name:
        return f"{domain} [yellow](owned by {owner})[/yellow]"
    return domain


def _load_config_or_exit(ctx: click.Context) -> Config:
    try:
        return load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to config file (default: searches standard locations)",
)
@click.pass_context
def main(ctx: click.Context, config: Path | None) -> None:
    """hostgate - Time and usage limits for groups of domains."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config or find_config_file()


@main.command()
@click.option(
    "--hosts",
    type=click.Path(path_type=Path),
    default=DEFAULT_HOSTS_PATH,
    show_default=True,
    help="Hosts file to manage",
)
@click.option(
    "--state",
    type=click.Path(path_type=Path),
    default=DEFAULT_STATE_PATH,
    show_default=True,
    help="Where to persist lock state",
)
@click.option(
    "--socket",
    "socket_path",
    type=click.Path(path_type=Path),
    default=DEFAULT_SOCKET_PATH,
    show_default=True,
    help="Unix socket for unlock requests",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.pass_context
def start(
    ctx: click.Context,
    hosts: Path,
    state: Path,
    socket_path: Path,
    verbose: bool,
) -> None:
    """Run the hostgate daemon in the foreground.

    Entries are re-evaluated every `interval` seconds and the hosts file is
    rewritten to block locked entries. Stop with Ctrl+C or SIGTERM.

    Example:
        sudo hostgate start --config /etc/hostgate/hostgate.toml
    """
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    cfg = _load_config_or_exit(ctx)
    if ctx.obj.get("config_path"):
        console.print(f"[dim]Config: {ctx.obj['config_path']}[/dim]")

    access_state = AccessState.load(cfg, hosts, state)
    event_loop = EventLoop(cfg, access_state)

    server = UnlockServer(socket_path, event_loop.submit_unlock)
    watcher = HostsWatcher(hosts, event_loop.notify_hosts_modified)
    try:
        server.bind()
        watcher.start()
    except OSError as e:
        console.print(f"[red]Error: unable to start: {e}[/red]")
        server.close()
        sys.exit(1)

    console.print(f"[green]hostgate managing {hosts} ({len(cfg.entries)} entries)[/green]")
    console.print(f"[cyan]Unlock socket: {socket_path}[/cyan]")
    console.print(f"[cyan]Interval: {cfg.interval}s[/cyan]")
    console.print("[dim]Press Ctrl+C to stop[/dim]")

    server.start()
    try:
        asyncio.run(event_loop.run())
    except KeyboardInterrupt:
        # Interrupted before the loop installed its own handlers
        event_loop.handle_shutdown()
    finally:
        watcher.stop()
        server.close()

    console.print("[green]hostgate stopped[/green]")


@main.command()
@click.argument("name")
@click.option(
    "--socket",
    "socket_path",
    type=click.Path(path_type=Path),
    default=DEFAULT_SOCKET_PATH,
    show_default=True,
    help="Unix socket of the running daemon",
)
def unlock(name: str, socket_path: Path) -> None:
    """Ask the running daemon to unlock NAME."""
    try:
        response = send_unlock_request(socket_path, name)
    except OSError as e:
        console.print(f"[red]Unable to reach hostgate at {socket_path}: {e}[/red]")
        sys.exit(1)
    except ProtocolError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if isinstance(response, UnlockSuccess):
        console.print(f"[green]Unlocked '{name}'[/green]")
        if response.locked_at:
            console.print(f"  Last locked at {_format_time(response.locked_at)}")
        return

    console.print(f"[red]Unable to unlock '{name}': {response.cause}[/red]")
    if response.unlocked_at:
        console.print(f"  Last unlocked at {_format_time(response.unlocked_at)}")
    sys.exit(1)


@main.command()
@click.option(
    "--state",
    type=click.Path(path_type=Path),
    default=DEFAULT_STATE_PATH,
    show_default=True,
    help="Persisted lock state to report",
)
@click.pass_context
def check(ctx: click.Context, state: Path) -> None:
    """Validate the config and show every entry."""
    cfg = _load_config_or_exit(ctx)
    snapshot = read_state_file(state)
    index = DomainIndex(cfg)

    table = Table(title="Entries")
    table.add_column("Entry", style="cyan")
    table.add_column("Rule")
    table.add_column("Domains")
    table.add_column("State")
    table.add_column("Last Unlocked", style="dim")

    for name, entry in cfg.entries.items():
        restriction = entry.restriction
        if isinstance(restriction, DynamicUsage):
            rule = (
                f"period {_format_minutes(restriction.period.total_seconds())}, "
                f"cool time {_format_minutes(restriction.cool_time.total_seconds())}"
            )
        elif restriction.windows:
            rule = "unlock " + ", ".join(str(w) for w in restriction.windows)
        else:
            rule = "always locked"

        locked = snapshot.is_locked.get(name)
        if locked is None:
            state_str = "[dim]unknown[/dim]"
        elif locked:
            state_str = "[red]locked[/red]"
        else:
            state_str = "[green]unlocked[/green]"

        table.add_row(
            name,
            rule,
            "\n".join(_format_domain(domain, name, index) for domain in entry.domains),
            state_str,
            _format_time(snapshot.last_unlocked.get(name)),
        )

    console.print(table)
    if cfg.after_lock:
        console.print(f"[dim]after_lock: {cfg.after_lock}[/dim]")
    if cfg.after_unlock:
        console.print(f"[dim]after_unlock: {cfg.after_unlock}[/dim]")
    console.print(f"[green]Config OK: {len(cfg.entries)} entries, interval {cfg.interval}s[/green]")


if __name__ == "__main__":
    main()
