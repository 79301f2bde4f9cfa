"""Key-value persistence: the contract the core needs, and its backends."""
from __future__ import annotations

import base64
import binascii
import logging
from typing import Protocol

from PySide6.QtCore import QSettings

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> None: ...


class MemoryKeyValueStore:
    """In-process store, used by tests and as a throwaway default."""

    def __init__(self, initial: dict[str, bytes] | None = None) -> None:
        self._data: dict[str, bytes] = dict(initial or {})

    def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def keys(self) -> list[str]:
        return list(self._data)


class QSettingsKeyValueStore:
    """
    QSettings-backed store.

    Values are kept base64-encoded so every QSettings format round-trips them
    as plain strings.
    """

    def __init__(self, org_domain: str = "NavMap.org", app_name: str = "NavMap",
                 group: str = "store") -> None:
        self._settings = QSettings(org_domain, app_name)
        self._group = group

    def _key(self, key: str) -> str:
        return f"{self._group}/{key}" if self._group else key

    def get(self, key: str) -> bytes | None:
        v = self._settings.value(self._key(key), None)
        if v is None:
            return None
        try:
            return base64.b64decode(str(v), validate=True)
        except (binascii.Error, ValueError):
            logger.warning("Stored value for %s is not valid base64; ignoring", key)
            return None

    def set(self, key: str, value: bytes) -> None:
        self._settings.setValue(self._key(key), base64.b64encode(value).decode("ascii"))
        self._settings.sync()

    def remove(self, key: str) -> None:
        self._settings.remove(self._key(key))
