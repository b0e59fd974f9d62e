"""Process identity verification across PID reuse."""

import logging
from enum import Enum

from procwarden.inspector import ProcessInspector
from procwarden.models import ProcessRecord

_logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 0.1  # Seconds


class Identity(Enum):
    """How a live PID relates to a previously captured process."""

    SAME = "same"
    GONE = "gone"
    REUSED = "reused"
    UNVERIFIABLE = "unverifiable"


class IdentityVerifier:
    """
    Decide whether a PID still names the process observed earlier.

    A PID is only unique among live processes, so the durable identity is
    ``(pid, start_fingerprint)``. Sameness is asserted only on positive
    evidence: if either fingerprint is unknown the answer is "not the same".
    """

    def __init__(self, inspector: ProcessInspector, tolerance: float = DEFAULT_TOLERANCE) -> None:
        self._inspector = inspector
        self._tolerance = tolerance

    @property
    def tolerance(self) -> float:
        """Largest start-time difference still treated as the same process."""
        return self._tolerance

    def compare(self, record: ProcessRecord | None, captured_fingerprint: float | None) -> Identity:
        """Classify an already fetched ``record`` against ``captured_fingerprint``."""
        if record is None or record.is_zombie:
            return Identity.GONE
        if captured_fingerprint is None or record.start_fingerprint is None:
            _logger.debug("Cannot verify identity of pid %d: fingerprint unknown", record.pid)
            return Identity.UNVERIFIABLE
        if abs(record.start_fingerprint - captured_fingerprint) > self._tolerance:
            _logger.debug(
                "pid %d reused: started at %.3f, expected %.3f",
                record.pid,
                record.start_fingerprint,
                captured_fingerprint,
            )
            return Identity.REUSED
        return Identity.SAME

    async def check(self, pid: int, captured_fingerprint: float | None) -> Identity:
        """Classify the live occupant of ``pid`` against ``captured_fingerprint``."""
        return self.compare(await self._inspector.get_process_info(pid), captured_fingerprint)

    async def same_process(self, pid: int, captured_fingerprint: float | None) -> bool:
        """True only if ``pid`` is provably the process that was captured."""
        return await self.check(pid, captured_fingerprint) is Identity.SAME
