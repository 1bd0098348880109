from __future__ import annotations

import time

import pytest

from quiz_runner.core.services.snapshot_store import InMemorySnapshotStore
from tests.fakes import FakeGateway, ManualClock, ManualScheduler, make_quiz


@pytest.fixture(scope="session")
def qapp():
    from PySide6.QtCore import QCoreApplication

    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def wait_until(qapp):
    from PySide6.QtCore import QCoreApplication, QEventLoop

    def _wait(predicate, timeout_ms: int = 3000) -> bool:
        deadline = time.monotonic() + timeout_ms / 1000
        while not predicate() and time.monotonic() < deadline:
            QCoreApplication.processEvents(QEventLoop.ProcessEventsFlag.AllEvents, 20)
            time.sleep(0.005)
        return predicate()

    return _wait


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def store() -> InMemorySnapshotStore:
    return InMemorySnapshotStore()


@pytest.fixture
def quiz():
    return make_quiz()


@pytest.fixture
def gateway(quiz) -> FakeGateway:
    return FakeGateway(quiz)
