"""Asynchronous, failure-absorbing view of the OS process table."""

import asyncio
import dataclasses
import logging

from procwarden.backends import ProcessBackend, select_backend
from procwarden.classifier import Classifier
from procwarden.models import ProcessRecord

_logger = logging.getLogger(__name__)


class ProcessInspector:
    """
    Query the process table through one backend chosen at construction.

    Backend calls run in a worker thread so every query is a suspension
    point for the event loop. Any failure to reach or parse the process
    table is logged and degrades to "not found" or an empty listing; nothing
    raises out of this class.
    """

    def __init__(self, backend: ProcessBackend | None = None, classifier: Classifier | None = None) -> None:
        self._backend = backend or select_backend()
        self._classifier = classifier or Classifier()

    @property
    def backend(self) -> ProcessBackend:
        """The backend chosen at construction."""
        return self._backend

    @property
    def classifier(self) -> Classifier:
        """The classifier applied to every record."""
        return self._classifier

    async def get_process_info(self, pid: int) -> ProcessRecord | None:
        """Return the classified record for ``pid``, or None when it is not found."""
        if pid <= 0:
            return None
        try:
            record = await asyncio.to_thread(self._backend.get, pid)
        except Exception as e:
            _logger.warning("Process lookup for pid %d via %s failed: %s", pid, self._backend.name, e)
            return None
        if record is None:
            return None
        return self._classify(record)

    async def list_all(self) -> list[ProcessRecord]:
        """Return classified records for every process on the host."""
        try:
            records = await asyncio.to_thread(self._backend.list_all)
        except Exception as e:
            _logger.warning("Process listing via %s failed: %s", self._backend.name, e)
            return []
        return [self._classify(record) for record in records]

    def _classify(self, record: ProcessRecord) -> ProcessRecord:
        return dataclasses.replace(record, is_target=self._classifier.is_target(record.command_line))
