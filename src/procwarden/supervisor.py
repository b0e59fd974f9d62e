"""Supervisor - the public entry point for process control."""

import logging
import os
import signal

from rich.console import Console
from rich.markup import escape

from procwarden.backends import select_backend
from procwarden.classifier import Classifier
from procwarden.config import WardenSettings
from procwarden.escalator import SignalEscalator
from procwarden.identity import IdentityVerifier
from procwarden.inspector import ProcessInspector
from procwarden.models import KillResult, MonitorSession, Outcome, ProcessRecord, ProcessRow, Stage
from procwarden.monitor import DEFAULT_INTERVAL, Monitor

_logger = logging.getLogger(__name__)

_OUTCOME_STYLE = {
    Outcome.TERMINATED: "green",
    Outcome.UNVERIFIABLE: "green",
    Outcome.NOT_FOUND: "yellow",
    Outcome.STILL_RUNNING: "yellow",
    Outcome.PERMISSION_DENIED: "bold red",
    Outcome.FAILED: "bold red",
}


def format_result(result: KillResult) -> str:
    """One-line, human-readable description of a kill result."""
    line = f"pid {result.pid}: {result.outcome.value}"
    if result.stage is not None and result.success:
        line += f" ({result.stage.value}, {result.signal.name})"
    if result.reason:
        line += f"; {result.reason}"
    return line


class Supervisor:
    """
    Orchestrates inspection, classification and termination.

    Holds no state between calls apart from the optional monitor. Every
    public operation reports what happened on the console and returns a
    typed result; none of them raise for OS-level failures.
    """

    def __init__(
        self,
        inspector: ProcessInspector,
        escalator: SignalEscalator,
        console: Console | None = None,
        graceful_timeout: float = 5.0,
        monitor_interval: float = DEFAULT_INTERVAL,
    ) -> None:
        self._inspector = inspector
        self._escalator = escalator
        self._console = console or Console()
        self._graceful_timeout = graceful_timeout
        self._monitor = Monitor(inspector, interval=monitor_interval)

    @classmethod
    def from_settings(cls, settings: WardenSettings | None = None, console: Console | None = None) -> "Supervisor":
        """Build a supervisor and all of its collaborators from settings."""
        settings = settings or WardenSettings()
        inspector = ProcessInspector(select_backend(settings.backend), Classifier(settings.target_patterns))
        verifier = IdentityVerifier(inspector, tolerance=settings.fingerprint_tolerance)
        escalator = SignalEscalator(
            inspector,
            verifier,
            settle_delay=settings.settle_delay,
            poll_interval=settings.poll_interval,
        )
        return cls(
            inspector,
            escalator,
            console=console,
            graceful_timeout=settings.graceful_timeout,
            monitor_interval=settings.monitor_interval,
        )

    @property
    def inspector(self) -> ProcessInspector:
        """The inspector used for every read of the process table."""
        return self._inspector

    @property
    def monitor_session(self) -> MonitorSession | None:
        """State of the console monitor, or None if it was never started."""
        return self._monitor.session

    async def kill(self, pid: int, sig: signal.Signals = signal.SIGTERM) -> bool:
        """Send one signal, verify once, and report. No escalation."""
        return (await self.kill_result(pid, sig)).success

    async def kill_result(
        self,
        pid: int,
        sig: signal.Signals = signal.SIGTERM,
        observed: ProcessRecord | None = None,
    ) -> KillResult:
        """Like ``kill``, but return the full result. ``observed`` pins the target's identity."""
        self._console.print(f"Sending {sig.name} to pid {pid}")
        result = await self._escalator.deliver(pid, sig, observed=observed)
        self._report(result)
        if result.outcome is Outcome.STILL_RUNNING and sig != signal.SIGKILL:
            self._console.print(f"[dim]Use SIGKILL or a graceful shutdown to force pid {pid} down[/dim]")
        return result

    async def graceful_shutdown(self, pid: int, timeout: float | None = None) -> bool:
        """SIGTERM, wait up to ``timeout`` seconds, then SIGKILL once."""
        return (await self.graceful_shutdown_result(pid, timeout)).success

    async def graceful_shutdown_result(
        self,
        pid: int,
        timeout: float | None = None,
        observed: ProcessRecord | None = None,
    ) -> KillResult:
        """Like ``graceful_shutdown``, but return the full result."""
        timeout = self._graceful_timeout if timeout is None else timeout
        self._console.print(f"Shutting down pid {pid} (timeout {timeout:g}s)")
        result = await self._escalator.shutdown(pid, timeout, observed=observed)
        self._report(result)
        if result.stage is None:
            return result
        if result.success and result.stage is Stage.FORCED:
            self._console.print(f"pid {pid} ignored SIGTERM and was killed by SIGKILL")
        elif result.success:
            self._console.print(f"pid {pid} exited during the graceful wait")
        elif result.outcome is Outcome.FAILED and result.stage is Stage.FORCED:
            self._console.print(f"[bold red]pid {pid} failed to terminate after forced signal[/bold red]")
        return result

    async def kill_all_targets(self, sig: signal.Signals = signal.SIGTERM) -> list[KillResult]:
        """
        Signal every target process, strictly one after another.

        Each pid is only signalled while it still belongs to the process that
        was listed; targets that exit or get replaced before their turn are
        skipped and count as terminated.
        """
        own_pid = os.getpid()
        targets = [r for r in await self._inspector.list_all() if r.is_target and r.pid != own_pid]
        if not targets:
            self._console.print("No target processes found")
            return []

        self._console.print(f"Found {len(targets)} target process(es):")
        for record in targets:
            self._console.print(f"   PID {record.pid}: {escape(record.command_line)}")

        results = []
        for record in targets:
            results.append(await self.kill_result(record.pid, sig, observed=record))
        return results

    async def list_processes(self, targets_only: bool = False) -> list[ProcessRow]:
        """Emit and return display rows for the current process table."""
        records = await self._inspector.list_all()
        rows = [ProcessRow.from_record(r) for r in records if r.is_target or not targets_only]
        if not rows:
            self._console.print("No target processes found" if targets_only else "No processes found")
            return rows
        for row in rows:
            marker = "[cyan]target[/cyan]" if row.classification == "target" else "[dim]other [/dim]"
            self._console.print(f"{marker} PID: {row.pid:<8} {escape(row.command)}")
        return rows

    async def monitor(self, interval: float | None = None) -> None:
        """Print target snapshots every ``interval`` seconds until cancelled."""
        if interval is not None:
            self._monitor.interval = interval
        self._console.print(f"Monitoring target processes every {self._monitor.interval:g}s (Ctrl+C to stop)")
        await self._monitor.run(self._print_snapshot)
        self._console.print("Stopped monitoring")

    def _print_snapshot(self, targets: list[ProcessRecord]) -> None:
        if not targets:
            self._console.print("No target processes running")
        else:
            self._console.print(f"Found {len(targets)} target process(es):")
            for record in targets:
                self._console.print(f"   PID {record.pid}: {escape(record.command_line)}")
        self._console.print("─" * 50)

    def _report(self, result: KillResult) -> None:
        style = _OUTCOME_STYLE[result.outcome]
        self._console.print(f"[{style}]{escape(format_result(result))}[/{style}]")
        _logger.info(format_result(result))
