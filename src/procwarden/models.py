"""Data models for procwarden."""

import asyncio
import signal
from dataclasses import dataclass, field
from enum import Enum

from procwarden.exceptions import InvalidSignalError

SUPPORTED_SIGNALS: dict[str, signal.Signals] = {
    "SIGTERM": signal.SIGTERM,
    "SIGKILL": signal.SIGKILL,
    "SIGINT": signal.SIGINT,
    "SIGHUP": signal.SIGHUP,
}


def parse_signal(name: str) -> signal.Signals:
    """Resolve a signal name such as ``SIGTERM``, ``term`` or ``Kill``."""
    key = name.strip().upper()
    if not key.startswith("SIG"):
        key = f"SIG{key}"
    try:
        return SUPPORTED_SIGNALS[key]
    except KeyError:
        choices = ", ".join(SUPPORTED_SIGNALS)
        raise InvalidSignalError(f"unsupported signal {name!r} (choose from {choices})") from None


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable observation of one OS process."""

    pid: int
    ppid: int
    command_line: str
    start_fingerprint: float | None  # Epoch seconds, None if undeterminable
    is_target: bool = False
    status: str = "?"
    is_zombie: bool = False

    @property
    def identity(self) -> tuple[int, float | None]:
        """Durable identity of the process: ``(pid, start_fingerprint)``."""
        return (self.pid, self.start_fingerprint)


@dataclass(slots=True, frozen=True)
class ProcessRow:
    """Display row derived from a ProcessRecord."""

    pid: int
    command: str
    classification: str

    @classmethod
    def from_record(cls, record: ProcessRecord) -> "ProcessRow":
        """Build the display row for a classified record."""
        return cls(
            pid=record.pid,
            command=record.command_line,
            classification="target" if record.is_target else "other",
        )


class EscalationState(Enum):
    """States of the signal escalation state machine."""

    IDLE = "idle"
    SIGNAL_SENT = "signal-sent"
    VERIFYING = "verifying"
    TERMINATED = "terminated"
    STILL_RUNNING = "still-running"
    FAILED = "failed"


class Stage(Enum):
    """Which kind of signal is in flight."""

    GRACEFUL = "graceful"
    FORCED = "forced"


class Outcome(Enum):
    """Resolved outcome of a kill or graceful shutdown."""

    TERMINATED = "terminated"
    NOT_FOUND = "not-found"
    PERMISSION_DENIED = "permission-denied"
    UNVERIFIABLE = "unverifiable"
    STILL_RUNNING = "still-running"
    FAILED = "failed"


@dataclass(slots=True)
class KillRequest:
    """In-flight termination request. Only the escalator mutates it."""

    pid: int
    signal: signal.Signals
    issued_at: float
    captured_fingerprint: float | None
    state: EscalationState = EscalationState.IDLE
    stage: Stage = Stage.GRACEFUL


@dataclass(slots=True, frozen=True)
class KillResult:
    """What happened to a kill or graceful shutdown request."""

    pid: int
    signal: signal.Signals
    outcome: Outcome
    stage: Stage | None = None
    reason: str = ""
    pid_reused: bool = False

    @property
    def success(self) -> bool:
        """True when the process is gone. Unverifiable identity counts as gone."""
        return self.outcome in (Outcome.TERMINATED, Outcome.UNVERIFIABLE)


@dataclass(slots=True)
class MonitorSession:
    """State of a running monitor loop."""

    interval: float
    task: "asyncio.Task[None] | None" = None
    last_snapshot: list[ProcessRecord] = field(default_factory=list)
    ticks: int = 0

    @property
    def is_running(self) -> bool:
        """True while the polling task is alive."""
        return self.task is not None and not self.task.done()
