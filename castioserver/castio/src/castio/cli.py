"""Typer CLI entrypoint for castio.

Commands:
  start    — start the host server (background, or --foreground)
  stop     — stop the running server
  restart  — stop, then start
  status   — show server status
  service  — manage service instances (list / setup / enable / disable / remove / status)
"""

from __future__ import annotations

import asyncio
import json
import subprocess
import sys
import urllib.request
from pathlib import Path
from typing import Any, Optional

import click
import typer
from rich.console import Console
from rich.table import Table

from .config import Config, load_config, load_state
from .host import ServiceHost, load_bundles
from .process import is_running, read_pid, remove_pid, stop_server, write_pid
from .registry import ServiceRegistry
from .service_config import (
    SERVICES_DIR,
    ServiceInstanceConfig,
    delete_service_config,
    list_service_configs,
    load_service_config,
    save_service_config,
)
from .socket_server import ChannelServer

app = typer.Typer(
    name="castio",
    help="castio — broadcast graphics host with remote device services.",
    add_completion=False,
)
console = Console()


# ---------------------------------------------------------------------------
# start
# ---------------------------------------------------------------------------

@app.command()
def start(
    foreground: bool = typer.Option(
        False, "--foreground", "-f", help="Run in this terminal and log to stderr."
    ),
) -> None:
    """Start the castio server."""
    config = load_config()
    pid = read_pid()
    if pid and is_running(pid):
        console.print(f"[yellow]Server already running (PID {pid}).[/yellow]")
        return
    if foreground:
        from ._server_process import _main

        asyncio.run(_main(foreground=True))
        return
    _spawn(config)


def _spawn(config: Config) -> None:
    python = sys.executable
    if sys.platform == "win32" and python.lower().endswith("python.exe"):
        pythonw = str(Path(python).with_name("pythonw.exe"))
        if Path(pythonw).exists():
            python = pythonw
    cmd = [python, "-m", "castio._server_process"]
    if sys.platform == "win32":
        proc = subprocess.Popen(
            cmd,
            creationflags=(
                subprocess.DETACHED_PROCESS
                | subprocess.CREATE_NEW_PROCESS_GROUP
                | subprocess.CREATE_NO_WINDOW
            ),
            close_fds=True,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    else:
        proc = subprocess.Popen(
            cmd,
            start_new_session=True,
            close_fds=True,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    write_pid(proc.pid)
    console.print(
        f"[green]Server started[/green] (PID {proc.pid}). "
        f"HTTP: http://{config.http_host}:{config.http_port}/status  "
        f"channels: ws://{config.channel_host}:{config.channel_port}"
    )


# ---------------------------------------------------------------------------
# stop / restart
# ---------------------------------------------------------------------------

@app.command()
def stop() -> None:
    """Stop the running castio server."""
    pid = read_pid()
    if pid is None or not is_running(pid):
        console.print("[yellow]Server is not running.[/yellow]")
        remove_pid()
        return
    if stop_server():
        console.print(f"[green]Server stopped[/green] (was PID {pid}).")
    else:
        console.print("[red]Failed to stop server.[/red]")
        raise typer.Exit(1)


@app.command()
def restart() -> None:
    """Stop the server if it is running, then start it in the background."""
    ctx = click.get_current_context()
    ctx.invoke(stop)
    ctx.invoke(start, foreground=False)


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------

@app.command()
def status() -> None:
    """Show server status."""
    pid = read_pid()
    running = is_running(pid)
    state = load_state()
    config = load_config()

    table = Table(title="castio status", show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")

    table.add_row("Server running", "[green]yes[/green]" if running else "[red]no[/red]")
    table.add_row("PID", str(pid) if pid else "—")
    table.add_row("Started at", (state.started_at or "—") if running else "—")
    table.add_row(
        "Channel server",
        state.channel_url or f"ws://{config.channel_host}:{config.channel_port}",
    )
    table.add_row(
        "HTTP API",
        f"http://{config.http_host}:{config.http_port}/status" if running else "—",
    )
    table.add_row("Bundles", ", ".join(config.bundles) or "—")

    console.print(table)


# ---------------------------------------------------------------------------
# service: sub-app for managing service instances
# ---------------------------------------------------------------------------

service_app = typer.Typer(
    name="service",
    help="Manage service instances (Raspberry Pi proxies, …).",
    add_completion=False,
)
app.add_typer(service_app, name="service")


def _parse_settings(settings: list[str]) -> dict[str, Any]:
    """Turn ``key=value`` pairs into a dict; values are JSON when they parse."""
    parsed: dict[str, Any] = {}
    for item in settings:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--set")
        try:
            parsed[key] = json.loads(raw)
        except json.JSONDecodeError:
            parsed[key] = raw
    return parsed


def _check_config(service_type: str, settings: dict[str, Any]) -> Optional[str]:
    """Validate *settings* against the bundle's config model, offline."""
    config = load_config()
    registry = ServiceRegistry()
    load_bundles(ServiceHost(registry, ChannelServer()), config.bundles)
    result = asyncio.run(registry.validate_config(service_type, settings))
    return None if result.ok else result.error


@service_app.command("list")
def service_list() -> None:
    """List all configured service instances."""
    configs = list_service_configs()
    if not configs:
        console.print(
            "[dim]No services configured. "
            "Run [bold]castio service setup <name> <type>[/bold] to add one.[/dim]"
        )
        return

    table = Table(title="Service instances", show_header=True)
    table.add_column("Name", style="bold")
    table.add_column("Type")
    table.add_column("Enabled")
    table.add_column("Config")

    for cfg in configs:
        enabled_str = "[green]yes[/green]" if cfg.enabled else "[red]no[/red]"
        config_str = json.dumps(cfg.config) if cfg.config else "[dim]—[/dim]"
        table.add_row(cfg.name, cfg.service_type, enabled_str, config_str)

    console.print(table)


@service_app.command("setup")
def service_setup(
    name: str = typer.Argument(..., help="Instance name, e.g. 'raspberrypi-sample'"),
    service_type: str = typer.Argument("raspberrypi", help="Service type"),
    settings: list[str] = typer.Option(
        [],
        "--set",
        "-s",
        help="Config value as KEY=VALUE, e.g. --set namespace=/stage-left",
    ),
    enable: bool = typer.Option(True, "--enable/--no-enable", help="Enable on setup"),
) -> None:
    """Create or update a service instance.

    Saves ~/.castio/services/<name>.json; the running server picks it up on
    its next start.
    """
    existing = load_service_config(name)
    config = dict(existing.config) if existing and existing.service_type == service_type else {}
    config.update(_parse_settings(settings))

    error = _check_config(service_type, config)
    if error is not None:
        console.print(f"[red]Invalid config for '{name}': {error}[/red]")
        raise typer.Exit(1)

    save_service_config(
        ServiceInstanceConfig(name=name, service_type=service_type, enabled=enable, config=config)
    )
    console.print(
        f"[green]Service '{name}' configured.[/green] "
        f"({'[green]enabled[/green]' if enable else '[yellow]disabled[/yellow]'})"
    )
    console.print(f"  type   : [bold]{service_type}[/bold]")
    console.print(f"  config : {SERVICES_DIR / (name + '.json')}")
    console.print(
        "\nRestart castio to activate: [bold]castio restart[/bold]"
    )


def _set_enabled(name: str, enabled: bool) -> None:
    cfg = load_service_config(name)
    if cfg is None:
        console.print(
            f"[red]Service '{name}' not configured. "
            f"Run [bold]castio service setup {name}[/bold] first.[/red]"
        )
        raise typer.Exit(1)
    cfg.enabled = enabled
    save_service_config(cfg)


@service_app.command("enable")
def service_enable(name: str = typer.Argument(..., help="Instance name")) -> None:
    """Enable a configured service instance."""
    _set_enabled(name, True)
    console.print(f"[green]Service '{name}' enabled.[/green]")


@service_app.command("disable")
def service_disable(name: str = typer.Argument(..., help="Instance name")) -> None:
    """Disable a service instance without removing its configuration."""
    _set_enabled(name, False)
    console.print(f"[yellow]Service '{name}' disabled.[/yellow]")


@service_app.command("remove")
def service_remove(
    name: str = typer.Argument(..., help="Instance name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
) -> None:
    """Remove a service instance's configuration."""
    if not yes:
        typer.confirm(f"Remove configuration for service '{name}'?", abort=True)
    if delete_service_config(name):
        console.print(f"[green]Service '{name}' configuration removed.[/green]")
    else:
        console.print(f"[yellow]Service '{name}' was not configured.[/yellow]")


@service_app.command("status")
def service_status() -> None:
    """Show running service instances (queries the running server)."""
    config = load_config()
    url = f"http://{config.http_host}:{config.http_port}/services"
    try:
        with urllib.request.urlopen(url, timeout=3) as resp:  # noqa: S310
            data = json.loads(resp.read())
    except (OSError, ValueError) as exc:
        console.print(
            f"[red]Could not reach castio server at {url}: {exc}[/red]\n"
            "[dim]Is castio running? Try [bold]castio status[/bold].[/dim]"
        )
        raise typer.Exit(1) from exc

    instances: list[dict[str, Any]] = data.get("instances", [])
    if not instances:
        console.print("[dim]No service instances running.[/dim]")
        return

    table = Table(title="Service instances", show_header=True)
    table.add_column("Name", style="bold")
    table.add_column("Type")
    table.add_column("Running")
    table.add_column("Error")

    for inst in instances:
        table.add_row(
            inst.get("name", "?"),
            inst.get("service_type", "?"),
            "[green]yes[/green]" if inst.get("running") else "[red]no[/red]",
            inst.get("error") or "",
        )
    console.print(table)


if __name__ == "__main__":
    app()
