"""procwarden CLI - kill, list, monitor, graceful, kill-all.

The core returns typed results; this module owns the mapping to exit
codes (0 success, 1 failure, 2 usage error).
"""

import asyncio
import contextlib
import logging
import signal

import typer
from rich.console import Console

from procwarden.config import WardenSettings
from procwarden.exceptions import InvalidSignalError
from procwarden.models import parse_signal
from procwarden.supervisor import Supervisor

console = Console()

app = typer.Typer(
    name="procwarden",
    help="Find and terminate runaway test processes, safely across PID reuse.",
    no_args_is_help=True,
)


def _settings() -> WardenSettings:
    settings = WardenSettings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return settings


def _supervisor(quiet: bool = False) -> Supervisor:
    out = Console(quiet=True) if quiet else console
    return Supervisor.from_settings(_settings(), console=out)


def _signal(name: str) -> signal.Signals:
    try:
        return parse_signal(name)
    except InvalidSignalError as e:
        raise typer.BadParameter(str(e), param_hint="--signal") from e


@app.command("kill")
def kill(
    pid: int = typer.Argument(min=1, help="Process id to signal"),
    signal_name: str = typer.Option("SIGTERM", "--signal", "-s", help="SIGTERM, SIGKILL, SIGINT or SIGHUP"),
):
    """Send one signal to a process and verify it is gone."""
    sig = _signal(signal_name)
    ok = asyncio.run(_supervisor().kill(pid, sig))
    raise typer.Exit(0 if ok else 1)


@app.command("graceful")
def graceful(
    pid: int = typer.Argument(min=1, help="Process id to shut down"),
    timeout: int = typer.Option(5000, "--timeout", "-t", min=0, help="Grace period in milliseconds"),
):
    """SIGTERM, wait up to the timeout, then SIGKILL once."""
    ok = asyncio.run(_supervisor().graceful_shutdown(pid, timeout / 1000))
    raise typer.Exit(0 if ok else 1)


@app.command("kill-all")
def kill_all(
    signal_name: str = typer.Option("SIGTERM", "--signal", "-s", help="SIGTERM, SIGKILL, SIGINT or SIGHUP"),
):
    """Signal every target process, one at a time."""
    sig = _signal(signal_name)
    results = asyncio.run(_supervisor().kill_all_targets(sig))
    raise typer.Exit(0 if all(r.success for r in results) else 1)


@app.command("list")
def list_(
    tests_only: bool = typer.Option(False, "--tests-only", help="Only show target processes"),
):
    """List running processes."""
    asyncio.run(_supervisor().list_processes(targets_only=tests_only))


@app.command("monitor")
def monitor(
    interval: int = typer.Option(3000, "--interval", "-i", min=100, help="Milliseconds between snapshots"),
    tui: bool = typer.Option(False, "--tui", help="Open the live table view"),
):
    """Watch target processes until interrupted."""
    if tui:
        from procwarden.app import WardenApp

        WardenApp(_supervisor(quiet=True), interval=interval / 1000).run()
        return
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_supervisor().monitor(interval / 1000))


def main() -> None:
    """Entry point for the procwarden command."""
    app()


if __name__ == "__main__":
    main()
