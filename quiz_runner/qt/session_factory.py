"""Wires an AttemptSession to the Qt timer, network and settings adapters."""

from __future__ import annotations

from collections.abc import Iterable

from quiz_runner.constants.network_constants import DEFAULT_API_BASE_URL
from quiz_runner.core.models import Attempt
from quiz_runner.core.services.attempt_session import AttemptSession
from quiz_runner.core.services.snapshot_store import SnapshotStore
from quiz_runner.qt.clock import QtClock, QtScheduler
from quiz_runner.qt.gateway import QtAttemptGateway
from quiz_runner.qt.settings_store import QSettingsSnapshotStore


def create_attempt_session(
    quiz_id: str,
    learner_id: str,
    *,
    base_url: str = DEFAULT_API_BASE_URL,
    snapshot_store: SnapshotStore | None = None,
    attempt_history: Iterable[Attempt] = (),
) -> AttemptSession:
    """Build a session for the quiz view. Call from the Qt (GUI) thread."""
    return AttemptSession(
        quiz_id,
        learner_id,
        QtAttemptGateway(base_url),
        QtClock(),
        QtScheduler(),
        snapshot_store or QSettingsSnapshotStore(),
        attempt_history=attempt_history,
    )
