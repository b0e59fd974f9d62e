"""Periodic snapshots of target processes."""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

from procwarden.inspector import ProcessInspector
from procwarden.models import MonitorSession, ProcessRecord

_logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 3.0
MIN_INTERVAL = 0.1

SnapshotCallback = Callable[[list[ProcessRecord]], Awaitable[None] | None]


class Monitor:
    """
    Poll the process table for target processes until cancelled.

    Runs as an asyncio task on the caller's loop. Each tick lists every
    process, keeps the targets, stores them on the session and hands them
    to the callback. Cancelling the task is the only way to stop it, and it
    leaves nothing scheduled behind.
    """

    def __init__(self, inspector: ProcessInspector, interval: float = DEFAULT_INTERVAL) -> None:
        """
        Initialize the Monitor.

        Args:
            inspector: Where snapshots are read from.
            interval: Seconds between snapshots. Default 3.0s.
        """
        self._inspector = inspector
        self._interval = max(MIN_INTERVAL, interval)
        self._session: MonitorSession | None = None

    @property
    def interval(self) -> float:
        """Get the current interval."""
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        """Set the interval, applied from the next tick."""
        self._interval = max(MIN_INTERVAL, value)
        if self._session is not None:
            self._session.interval = self._interval

    @property
    def session(self) -> MonitorSession | None:
        return self._session

    @property
    def is_running(self) -> bool:
        """Check if the monitor task is running."""
        return self._session is not None and self._session.is_running

    async def snapshot(self) -> list[ProcessRecord]:
        """Take one snapshot of target processes."""
        records = await self._inspector.list_all()
        return [record for record in records if record.is_target]

    def start(self, on_snapshot: SnapshotCallback | None = None) -> MonitorSession:
        """Start polling in a background task. Idempotent while running."""
        if self.is_running:
            return self._session
        self._session = MonitorSession(interval=self._interval)
        self._session.task = asyncio.create_task(self._loop(self._session, on_snapshot), name="procwarden-monitor")
        return self._session

    async def stop(self) -> None:
        """Cancel the polling task and wait for it to finish."""
        session = self._session
        if session is None or session.task is None:
            return
        session.task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await session.task
        session.task = None

    async def run(self, on_snapshot: SnapshotCallback | None = None) -> MonitorSession:
        """Poll in the foreground until this coroutine is cancelled."""
        session = self.start(on_snapshot)
        try:
            await asyncio.shield(session.task)
        except asyncio.CancelledError:
            # cancellation is how a foreground run ends; consume it fully
            asyncio.current_task().uncancel()
        finally:
            await self.stop()
        return session

    async def _loop(self, session: MonitorSession, on_snapshot: SnapshotCallback | None) -> None:
        while True:
            targets = await self.snapshot()
            session.last_snapshot = targets
            session.ticks += 1
            if on_snapshot is not None:
                try:
                    result = on_snapshot(targets)
                    if asyncio.iscoroutine(result):
                        await result
                except Exception:
                    _logger.exception("Snapshot callback failed")
            await asyncio.sleep(session.interval)
