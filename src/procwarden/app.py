"""procwarden - live Textual view of supervised processes."""

from datetime import datetime

from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Static

from procwarden.models import ProcessRecord
from procwarden.monitor import Monitor
from procwarden.supervisor import Supervisor, format_result


def format_started(fingerprint: float | None) -> str:
    """Format a start fingerprint as a local wall-clock time."""
    if fingerprint is None:
        return "?"
    return datetime.fromtimestamp(fingerprint).strftime("%H:%M:%S")


class StatusLine(Static):
    """Single line showing the last snapshot or action result."""

    DEFAULT_CSS = """
    StatusLine {
        height: 1;
        padding: 0 1;
        background: $surface;
    }
    """


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._records: dict[int, ProcessRecord] = {}

    @property
    def pids(self) -> set[int]:
        """Pids currently shown in the table."""
        return set(self._records)

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PID", key="pid", width=8)
        table.add_column("PPID", key="ppid", width=8)
        table.add_column("KIND", key="kind", width=7)
        table.add_column("STARTED", key="started", width=9)
        table.add_column("Command", key="command")

    def update_records(self, records: list[ProcessRecord]) -> None:
        """
        Update the table with a new snapshot.

        Rows are keyed by pid. A row whose pid now belongs to a process with
        a different start time is rewritten in place.
        """
        table = self.query_one("#process-table", DataTable)
        ordered = sorted(records, key=lambda r: r.pid)
        new_pids = {record.pid for record in ordered}

        for pid in self._records.keys() - new_pids:
            table.remove_row(str(pid))

        for record in ordered:
            row_key = str(record.pid)
            if record.pid in self._records:
                self._update_row(table, row_key, record)
            else:
                self._add_row(table, row_key, record)

        self._records = {record.pid: record for record in ordered}

    def selected_record(self) -> ProcessRecord | None:
        """Record behind the highlighted row, as it was when last displayed."""
        table = self.query_one("#process-table", DataTable)
        if table.row_count == 0:
            return None
        row = table.get_row_at(table.cursor_row)
        return self._records.get(int(row[0]))

    def _update_row(self, table: DataTable, row_key: str, record: ProcessRecord) -> None:
        table.update_cell(row_key, "ppid", str(record.ppid))
        table.update_cell(row_key, "kind", "target" if record.is_target else "other")
        table.update_cell(row_key, "started", format_started(record.start_fingerprint))
        table.update_cell(row_key, "command", record.command_line[:80])

    def _add_row(self, table: DataTable, row_key: str, record: ProcessRecord) -> None:
        table.add_row(
            str(record.pid),
            str(record.ppid),
            "target" if record.is_target else "other",
            format_started(record.start_fingerprint),
            record.command_line[:80],
            key=row_key,
        )


class WardenApp(App):
    """Live view of target processes with graceful shutdown on a key."""

    TITLE = "procwarden"
    SUB_TITLE = "Target Process Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("k", "shutdown", "Graceful kill"),
        ("a", "toggle_all", "All/targets"),
    ]

    def __init__(self, supervisor: Supervisor, interval: float = 3.0, targets_only: bool = True) -> None:
        """Initialize the WardenApp."""
        super().__init__()
        self._supervisor = supervisor
        self._monitor = Monitor(supervisor.inspector, interval=interval)
        self._targets_only = targets_only

    @property
    def targets_only(self) -> bool:
        """True while only target processes are shown."""
        return self._targets_only

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield StatusLine("Waiting for first snapshot...", id="status")
        yield ProcessTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the monitor when the app is mounted."""
        self._monitor.start(self._on_snapshot)

    async def on_unmount(self) -> None:
        """Stop the monitor when the app goes away."""
        await self._monitor.stop()

    async def _on_snapshot(self, targets: list[ProcessRecord]) -> None:
        """Show the monitor's targets, or the full table when toggled."""
        records = targets if self._targets_only else await self._supervisor.inspector.list_all()
        self.show_records(records)

    def show_records(self, records: list[ProcessRecord]) -> None:
        """Render a snapshot in the table and status line."""
        self.query_one(ProcessTable).update_records(records)
        kind = "target" if self._targets_only else "total"
        self.set_status(f"{len(records)} {kind} process(es)")

    def set_status(self, text: str) -> None:
        """Replace the status line text."""
        self.query_one("#status", StatusLine).update(text)

    def action_toggle_all(self) -> None:
        """Switch between target processes and every process."""
        self._targets_only = not self._targets_only
        self.notify("Showing targets only" if self._targets_only else "Showing all processes")

    def action_shutdown(self) -> None:
        """Gracefully shut down the highlighted process in a worker."""
        record = self.query_one(ProcessTable).selected_record()
        if record is None:
            self.notify("Nothing selected")
            return
        self.set_status(f"Shutting down pid {record.pid}...")
        self.run_worker(self._shutdown_record(record), exclusive=False)

    async def _shutdown_record(self, record: ProcessRecord) -> None:
        # the row may be seconds old; only the process it showed is signalled
        result = await self._supervisor.graceful_shutdown_result(record.pid, observed=record)
        self.set_status(format_result(result))

    async def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        await self._monitor.stop()
        self.exit()
