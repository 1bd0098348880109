"""Qt event-loop adapters for learner attempt sessions."""

from .clock import QtClock, QtScheduler
from .gateway import QtAttemptGateway, translate_response
from .session_factory import create_attempt_session
from .settings_store import QSettingsSnapshotStore

__all__ = [
    "QSettingsSnapshotStore",
    "QtAttemptGateway",
    "QtClock",
    "QtScheduler",
    "create_attempt_session",
    "translate_response",
]
