"""Compass lock - keeps the map rotation following the device heading."""
from __future__ import annotations

import json
import logging

from navmap.controllers.gesture_orchestrator import GestureOrchestrator
from navmap.core import geometry_utils
from navmap.core.viewport_transform import ViewportTransform
from navmap.sensors.compass import CompassReading
from navmap.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

LOCK_KEY = "compassLock"


class CompassLock:
    """
    Map-follows-heading lock.

    When locked, the delta between heading and map rotation is captured and
    every accepted heading sets ``rotation = heading - delta``. Readings with
    unacceptable accuracy pause the lock until the next acceptable one.
    Manual rotation gestures are disabled while locked.
    """

    def __init__(self,
                 viewport: ViewportTransform,
                 orchestrator: GestureOrchestrator | None = None,
                 store: KeyValueStore | None = None) -> None:
        self._viewport = viewport
        self._orchestrator = orchestrator
        self._store = store
        self._locked = False
        self._paused = False
        self._delta = 0.0
        self._load()
        self._sync_rotation_gesture()

    @property
    def is_locked(self) -> bool:
        return self._locked

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def map_heading_delta(self) -> float:
        return self._delta

    def toggle(self, heading: float) -> bool:
        """
        Lock at the current heading, or unlock.

        :param heading: Current smoothed heading in degrees
        :return: New lock state
        """
        if self._locked:
            self._locked = False
            self._paused = False
            logger.info("Compass lock disabled")
        else:
            if not geometry_utils.is_finite(heading):
                logger.warning("Cannot lock on non-finite heading: %r", heading)
                return self._locked
            self._delta = heading - self._viewport.rotation
            self._locked = True
            self._paused = False
            logger.info("Compass lock enabled - heading: %.1f, map: %.1f, delta: %.1f",
                        heading, self._viewport.rotation, self._delta)
        self._sync_rotation_gesture()
        self._save()
        return self._locked

    def handle_reading(self, reading: CompassReading) -> None:
        """Follow a compass reading while locked."""
        if not self._locked:
            return

        if not reading.accepted:
            if not self._paused:
                self._paused = True
                logger.info("Compass lock paused due to poor accuracy (%.1f)", reading.accuracy)
            return

        if self._paused:
            self._paused = False
            logger.info("Compass lock resumed")

        self._viewport.set_rotation(reading.smoothed_heading - self._delta)

    def reset(self) -> None:
        """Unlock and forget the captured delta."""
        self._locked = False
        self._paused = False
        self._delta = 0.0
        self._sync_rotation_gesture()
        self._save()

    def _sync_rotation_gesture(self) -> None:
        if self._orchestrator is not None:
            self._orchestrator.rotation_enabled = not self._locked

    def _save(self) -> None:
        if self._store is None:
            return
        payload = {"isCompassLocked": self._locked, "mapHeadingDelta": self._delta}
        self._store.set(LOCK_KEY, json.dumps(payload).encode("utf-8"))

    def _load(self) -> None:
        if self._store is None:
            return
        raw = self._store.get(LOCK_KEY)
        if raw is None:
            return
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable compass lock state: %s", e)
            return
        if not isinstance(data, dict):
            logger.warning("Ignoring compass lock state of type %s", type(data).__name__)
            return

        locked = data.get("isCompassLocked")
        delta = data.get("mapHeadingDelta")
        if isinstance(locked, bool):
            self._locked = locked
        if isinstance(delta, (int, float)) and not isinstance(delta, bool) and geometry_utils.is_finite(delta):
            self._delta = float(delta)
        logger.info("Loaded compass lock state: locked=%s, delta=%.1f", self._locked, self._delta)
