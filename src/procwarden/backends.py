"""Platform backends that read the OS process table.

Each backend answers two questions synchronously: "what is process N" and
"what is running". They return ``None`` for processes that do not exist (or
whose entries cannot be parsed) and raise ``ToolUnavailableError`` when the
underlying tool cannot be used at all. Classification and error absorption
happen one layer up, in ``procwarden.inspector``.
"""

import logging
import os
import re
import subprocess
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

import psutil

from procwarden.exceptions import ToolUnavailableError
from procwarden.models import ProcessRecord

_logger = logging.getLogger(__name__)


class ProcessBackend(ABC):
    """Capability interface over one way of reading the process table."""

    name: str = "abstract"

    @abstractmethod
    def get(self, pid: int) -> ProcessRecord | None:
        """Return the record for ``pid``, or None if there is none."""

    @abstractmethod
    def list_all(self) -> list[ProcessRecord]:
        """Return records for every process, from a single bulk query."""


class PsutilBackend(ProcessBackend):
    """
    Backend built on psutil.

    The start fingerprint is psutil's ``create_time``, which is already
    converted to epoch seconds on every platform psutil supports.
    """

    name = "psutil"

    _ATTRS = ["pid", "ppid", "name", "cmdline", "create_time", "status"]

    def get(self, pid: int) -> ProcessRecord | None:
        try:
            proc = psutil.Process(pid)
            with proc.oneshot():
                info = proc.as_dict(attrs=self._ATTRS)
        except psutil.NoSuchProcess:
            return None
        return self._to_record(info)

    def list_all(self) -> list[ProcessRecord]:
        # process_iter drops processes that die mid-iteration; unreadable
        # attributes come back as None
        return [
            self._to_record(proc.info)
            for proc in psutil.process_iter(attrs=self._ATTRS, ad_value=None)
        ]

    @staticmethod
    def _to_record(info: dict) -> ProcessRecord:
        cmdline = info.get("cmdline") or []
        command_line = " ".join(cmdline) if cmdline else f"[{info.get('name') or '?'}]"
        status = info.get("status") or "?"
        return ProcessRecord(
            pid=info["pid"],
            ppid=info.get("ppid") or 0,
            command_line=command_line,
            start_fingerprint=info.get("create_time"),
            status=status,
            is_zombie=status == psutil.STATUS_ZOMBIE,
        )


class ProcBackend(ProcessBackend):
    """
    Backend reading a ``/proc``-style filesystem directly.

    Start time is field 22 of ``/proc/<pid>/stat``, counted in clock ticks
    since boot. It is converted to epoch seconds with ``btime`` from
    ``/proc/stat`` and the real ``SC_CLK_TCK`` of this host.
    """

    name = "proc"

    def __init__(self, root: str | os.PathLike = "/proc", clock_ticks: int | None = None) -> None:
        self._root = Path(root)
        self._clock_ticks = clock_ticks or os.sysconf("SC_CLK_TCK")
        self._boot_time: float | None = None

    @property
    def boot_time(self) -> float:
        """System boot time in epoch seconds, read once and cached."""
        if self._boot_time is None:
            try:
                with open(self._root / "stat") as f:
                    for line in f:
                        if line.startswith("btime "):
                            self._boot_time = float(line.split()[1])
                            break
            except OSError as e:
                raise ToolUnavailableError(f"cannot read {self._root / 'stat'}: {e}") from e
            if self._boot_time is None:
                raise ToolUnavailableError(f"no btime line in {self._root / 'stat'}")
        return self._boot_time

    def get(self, pid: int) -> ProcessRecord | None:
        proc_dir = self._root / str(pid)
        try:
            stat_text = (proc_dir / "stat").read_text()
            raw_cmdline = (proc_dir / "cmdline").read_bytes()
        except (FileNotFoundError, ProcessLookupError, NotADirectoryError):
            return None
        except PermissionError:
            _logger.debug("Permission denied reading %s", proc_dir)
            return None
        return self._parse(pid, stat_text, raw_cmdline)

    def list_all(self) -> list[ProcessRecord]:
        try:
            entries = [entry.name for entry in os.scandir(self._root) if entry.name.isdigit()]
        except OSError as e:
            raise ToolUnavailableError(f"cannot list {self._root}: {e}") from e
        records = []
        for name in entries:
            record = self.get(int(name))
            if record is not None:
                records.append(record)
        return records

    def _parse(self, pid: int, stat_text: str, raw_cmdline: bytes) -> ProcessRecord | None:
        # comm may itself contain spaces and parentheses; it ends at the last ')'
        open_paren = stat_text.find("(")
        close_paren = stat_text.rfind(")")
        if open_paren < 0 or close_paren < open_paren:
            return None
        comm = stat_text[open_paren + 1 : close_paren]
        fields = stat_text[close_paren + 1 :].split()
        try:
            state = fields[0]
            ppid = int(fields[1])
            start_ticks = int(fields[19])
        except (IndexError, ValueError):
            return None

        args = [a.decode(errors="replace") for a in raw_cmdline.split(b"\0") if a]
        command_line = " ".join(args) if args else f"[{comm}]"
        return ProcessRecord(
            pid=pid,
            ppid=ppid,
            command_line=command_line,
            start_fingerprint=self.boot_time + start_ticks / self._clock_ticks,
            status=state,
            is_zombie=state == "Z",
        )


# A start time such as "Tue Oct 14 10:22:01 2026" always contains one
# HH:MM:SS token, followed by the year.
_TIME_TOKEN = re.compile(r"^\d{1,2}:\d{2}:\d{2}$")
_YEAR_TOKEN = re.compile(r"^\d{4}$")
_TOKEN = re.compile(r"\S+")
_LSTART_FORMATS = (
    "%a %b %d %H:%M:%S %Y",
    "%a %d %b %H:%M:%S %Y",
    "%b %d %H:%M:%S %Y",
    "%d %b %H:%M:%S %Y",
)


def parse_ps_line(line: str) -> ProcessRecord | None:
    """
    Parse one line of ``ps -o pid=,ppid=,stat=,lstart=,args=`` output.

    The start-time column has a variable number of words across platforms,
    so its end is found by looking for the time-of-day token rather than by
    counting columns. Returns None for lines that do not fit.
    """
    tokens = list(_TOKEN.finditer(line))
    if len(tokens) < 6:
        return None
    try:
        pid = int(tokens[0].group())
        ppid = int(tokens[1].group())
    except ValueError:
        return None
    status = tokens[2].group()

    time_index = next(
        (i for i in range(3, len(tokens) - 1) if _TIME_TOKEN.match(tokens[i].group())),
        None,
    )
    if time_index is None or not _YEAR_TOKEN.match(tokens[time_index + 1].group()):
        return None
    year_index = time_index + 1

    start_text = " ".join(t.group() for t in tokens[3 : year_index + 1])
    start = None
    for fmt in _LSTART_FORMATS:
        try:
            start = datetime.strptime(start_text, fmt).timestamp()
            break
        except ValueError:
            continue
    if start is None:
        return None

    command_line = line[tokens[year_index + 1].start() :].rstrip() if year_index + 1 < len(tokens) else ""
    return ProcessRecord(
        pid=pid,
        ppid=ppid,
        command_line=command_line,
        start_fingerprint=start,
        status=status,
        is_zombie=status.startswith("Z"),
    )


class PsBackend(ProcessBackend):
    """Backend that parses the BSD-style ``ps`` listing."""

    name = "ps"

    _COLUMNS = "pid=,ppid=,stat=,lstart=,args="

    def __init__(self, executable: str = "ps", timeout: float = 5.0) -> None:
        self._executable = executable
        self._timeout = timeout

    def get(self, pid: int) -> ProcessRecord | None:
        output = self._run(["-p", str(pid)], allow_empty=True)
        for line in output.splitlines():
            record = parse_ps_line(line)
            if record is not None and record.pid == pid:
                return record
        return None

    def list_all(self) -> list[ProcessRecord]:
        output = self._run(["-A"], allow_empty=False)
        records = []
        for line in output.splitlines():
            record = parse_ps_line(line)
            if record is not None:
                records.append(record)
        return records

    def _run(self, selector: list[str], allow_empty: bool) -> str:
        cmd = [self._executable, *selector, "-o", self._COLUMNS]
        env = {**os.environ, "LC_ALL": "C"}
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                env=env,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ToolUnavailableError(f"cannot run {self._executable}: {e}") from e
        # ps exits 1 when a -p selection matches nothing
        if result.returncode != 0 and not (allow_empty and not result.stdout.strip()):
            raise ToolUnavailableError(
                f"{self._executable} exited with {result.returncode}: {result.stderr.strip()}"
            )
        return result.stdout


BACKENDS: dict[str, type[ProcessBackend]] = {
    PsutilBackend.name: PsutilBackend,
    ProcBackend.name: ProcBackend,
    PsBackend.name: PsBackend,
}


def select_backend(name: str = "auto") -> ProcessBackend:
    """Pick the process table backend. Called once, at startup."""
    if name == "auto":
        name = PsutilBackend.name
    try:
        backend_cls = BACKENDS[name]
    except KeyError:
        raise ValueError(f"unknown backend {name!r} (choose from auto, {', '.join(BACKENDS)})") from None
    _logger.debug("Using %s process backend", name)
    return backend_cls()
