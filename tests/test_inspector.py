"""Tests for ProcessInspector."""

import os

import pytest

from conftest import FakeBackend, make_record
from procwarden.backends import ProcessBackend, PsutilBackend
from procwarden.classifier import Classifier
from procwarden.exceptions import ToolUnavailableError
from procwarden.inspector import ProcessInspector


class ExplodingBackend(ProcessBackend):
    name = "exploding"

    def __init__(self, error: Exception) -> None:
        self._error = error

    def get(self, pid):
        raise self._error

    def list_all(self):
        raise self._error


@pytest.mark.asyncio
async def test_get_process_info_classifies():
    backend = FakeBackend([make_record(10, "npm test"), make_record(11, "vim")])
    inspector = ProcessInspector(backend, Classifier())

    target = await inspector.get_process_info(10)
    other = await inspector.get_process_info(11)

    assert target.is_target is True
    assert other.is_target is False


@pytest.mark.asyncio
async def test_missing_pid_is_not_found():
    inspector = ProcessInspector(FakeBackend(), Classifier())

    assert await inspector.get_process_info(4242) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("pid", [0, -1, -4242])
async def test_non_positive_pid_never_reaches_backend(pid):
    backend = FakeBackend()
    inspector = ProcessInspector(backend, Classifier())

    assert await inspector.get_process_info(pid) is None
    assert backend.queries == []


@pytest.mark.asyncio
async def test_list_all_classifies_every_record():
    backend = FakeBackend([make_record(1, "/sbin/init"), make_record(2, "bun test"), make_record(3, "jest")])
    inspector = ProcessInspector(backend, Classifier())

    records = await inspector.list_all()

    assert {r.pid: r.is_target for r in records} == {1: False, 2: True, 3: True}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [ToolUnavailableError("ps missing"), OSError("EIO"), ValueError("garbled"), RuntimeError("boom")],
)
async def test_failures_degrade_to_empty_results(error):
    inspector = ProcessInspector(ExplodingBackend(error), Classifier())

    assert await inspector.get_process_info(10) is None
    assert await inspector.list_all() == []


@pytest.mark.asyncio
async def test_real_backend_sees_own_process():
    inspector = ProcessInspector(PsutilBackend(), Classifier())

    record = await inspector.get_process_info(os.getpid())

    assert record is not None
    assert record.pid == os.getpid()


def test_default_backend_is_selected_once():
    inspector = ProcessInspector()

    assert isinstance(inspector.backend, PsutilBackend)
    assert inspector.backend is inspector.backend
