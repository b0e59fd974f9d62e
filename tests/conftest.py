"""Shared fixtures - a scriptable in-memory process table."""

import dataclasses
import io

import pytest
from rich.console import Console

from procwarden.backends import ProcessBackend
from procwarden.classifier import Classifier
from procwarden.escalator import SignalEscalator
from procwarden.identity import IdentityVerifier
from procwarden.inspector import ProcessInspector
from procwarden.models import ProcessRecord
from procwarden.supervisor import Supervisor


def make_record(pid: int, command: str = "sleep 60", start: float | None = 1000.0, **kwargs) -> ProcessRecord:
    return ProcessRecord(pid=pid, ppid=kwargs.pop("ppid", 1), command_line=command, start_fingerprint=start, **kwargs)


class FakeBackend(ProcessBackend):
    """Process table held in a dict. No OS access."""

    name = "fake"

    def __init__(self, records: list[ProcessRecord] | None = None) -> None:
        self.table: dict[int, ProcessRecord] = {r.pid: r for r in records or []}
        self.unavailable = False
        self.queries: list[int] = []

    def add(self, record: ProcessRecord) -> None:
        self.table[record.pid] = record

    def remove(self, pid: int) -> None:
        self.table.pop(pid, None)

    def get(self, pid: int) -> ProcessRecord | None:
        self.queries.append(pid)
        if self.unavailable:
            raise OSError("process table unavailable")
        return self.table.get(pid)

    def list_all(self) -> list[ProcessRecord]:
        if self.unavailable:
            raise OSError("process table unavailable")
        return list(self.table.values())


class FakeClock:
    """Monotonic clock advanced only by FakeSleep."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FakeSleep:
    """Records sleeps and advances the fake clock instead of waiting."""

    def __init__(self, clock: FakeClock, events: list) -> None:
        self._clock = clock
        self._events = events
        self.calls: list[float] = []
        self.on_tick = None

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self._events.append(("sleep", seconds))
        self._clock.now += seconds
        if self.on_tick is not None:
            self.on_tick(self._clock.now)


class FakeKiller:
    """
    Stand-in for os.kill.

    ``effects`` maps a signal to what the process does on receipt: "exit",
    "ignore", "reuse" (exit and the pid is taken by a new process), or an
    exception instance to raise.
    """

    def __init__(self, backend: FakeBackend, events: list, effects: dict | None = None) -> None:
        self._backend = backend
        self._events = events
        self.effects = effects or {}
        self.sent: list[tuple[int, int]] = []

    def __call__(self, pid: int, sig: int) -> None:
        self.sent.append((pid, sig))
        self._events.append(("signal", sig))
        effect = self.effects.get(sig, "exit")
        if isinstance(effect, BaseException):
            raise effect
        if pid not in self._backend.table:
            raise ProcessLookupError(3, "No such process")
        if effect == "exit":
            self._backend.remove(pid)
        elif effect == "reuse":
            old = self._backend.table[pid]
            self._backend.add(dataclasses.replace(old, command_line="unrelated", start_fingerprint=old.start_fingerprint + 50))
        elif effect == "zombie":
            self._backend.add(dataclasses.replace(self._backend.table[pid], is_zombie=True, status="Z"))


class Harness:
    """Bundle of fakes wired into real procwarden components."""

    def __init__(self, records: list[ProcessRecord] | None = None) -> None:
        self.events: list = []
        self.backend = FakeBackend(records)
        self.clock = FakeClock()
        self.sleep = FakeSleep(self.clock, self.events)
        self.killer = FakeKiller(self.backend, self.events)
        self.inspector = ProcessInspector(self.backend, Classifier())
        self.verifier = IdentityVerifier(self.inspector)
        self.escalator = SignalEscalator(
            self.inspector,
            self.verifier,
            send_signal=self.killer,
            sleep=self.sleep,
            clock=self.clock,
        )
        self.output = io.StringIO()
        self.console = Console(file=self.output, width=200, color_system=None)
        self.supervisor = Supervisor(self.inspector, self.escalator, console=self.console)

    @property
    def printed(self) -> str:
        return self.output.getvalue()


@pytest.fixture
def harness():
    return Harness()


@pytest.fixture
def harness_factory():
    def _factory(records: list[ProcessRecord]) -> Harness:
        return Harness(records)

    return _factory
