"""Snapshot persistence on top of QSettings."""

from __future__ import annotations

import logging

from PySide6.QtCore import QSettings

from quiz_runner.constants.about import APP_NAME
from quiz_runner.constants.quiz_constants import SETTINGS_PATH
from quiz_runner.core.services.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

_GROUP = "snapshots"


class QSettingsSnapshotStore(SnapshotStore):
    """Stores each snapshot document as one INI value under ``[snapshots]``.

    QSettings replaces a value as a whole, so concurrent saves resolve as
    last-write-wins. Pass ``path`` to pin the file (tests, portable installs);
    otherwise the per-user location Qt picks for the application is used.
    """

    def __init__(self, path: str | None = SETTINGS_PATH) -> None:
        if path:
            self._settings = QSettings(path, QSettings.Format.IniFormat)
        else:
            self._settings = QSettings(
                QSettings.Format.IniFormat,
                QSettings.Scope.UserScope,
                APP_NAME,
                "attempts",
            )
        logger.debug("Snapshot settings file: %s", self._settings.fileName())

    @property
    def file_name(self) -> str:
        return self._settings.fileName()

    def _read(self, key: str) -> str | None:
        value = self._settings.value(_settings_key(key))
        if value is None:
            return None
        return str(value)

    def _write(self, key: str, document: str) -> None:
        self._settings.setValue(_settings_key(key), document)
        self._sync()

    def _delete(self, key: str) -> None:
        self._settings.remove(_settings_key(key))
        self._sync()

    def _sync(self) -> None:
        self._settings.sync()
        if self._settings.status() != QSettings.Status.NoError:
            logger.warning("Could not write snapshot file %s: %s", self._settings.fileName(), self._settings.status())


def _settings_key(key: str) -> str:
    # "/" and "\" are group separators in QSettings
    return f"{_GROUP}/{key.replace('/', '_').replace(chr(92), '_')}"
