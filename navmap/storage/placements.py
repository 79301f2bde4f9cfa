"""
Placement models persisted in the key-value store.

- BeaconPlacementManager: beacons placed on the floor plan (key "placedBeacons")
- MeasurementManager: measurement rectangles (key "measurements")

All positions are normalized content coordinates, so placements survive
any viewport change. Loading skips malformed records individually.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable

from navmap.controllers.gestures import TapEvent
from navmap.core import geometry_utils
from navmap.core.viewport_state import NormalizedPoint
from navmap.storage import records
from navmap.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

BEACON_KEY = "placedBeacons"
MEASUREMENT_KEY = "measurements"

COLOR_PALETTE = (
    "#FF3B30", "#007AFF", "#34C759", "#FF9500", "#AF52DE", "#FF2D55", "#FFCC00",
    "#32ADE6", "#00C7BE", "#5856D6", "#A2845E", "#8E8E93", "#30B0C7",
)


@dataclass(frozen=True)
class BeaconInfo:
    name: str
    color: str


@dataclass(frozen=True)
class PlacedBeacon:
    name: str
    position: NormalizedPoint
    color: str

    def to_record(self) -> dict:
        return {"name": self.name, "x": self.position.x, "y": self.position.y, "color": self.color}

    @classmethod
    def from_record(cls, record: dict) -> PlacedBeacon | None:
        fields = records.typed_fields(record, {"name": str, "x": records.NUMBER,
                                               "y": records.NUMBER, "color": str})
        if fields is None:
            return None
        return cls(fields["name"], NormalizedPoint(fields["x"], fields["y"]), fields["color"])


@dataclass(frozen=True)
class Measurement:
    """A measurement rectangle centred on position; size is normalized (width, height)."""
    position: NormalizedPoint
    size: tuple[float, float]
    fill_color: str = COLOR_PALETTE[0]
    real_world_size: float | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "positionX": self.position.x,
            "positionY": self.position.y,
            "sizeWidth": self.size[0],
            "sizeHeight": self.size[1],
            "color": self.fill_color,
            "realWorldSize": self.real_world_size,
        }

    @classmethod
    def from_record(cls, record: dict) -> Measurement | None:
        fields = records.typed_fields(record, {
            "id": str, "positionX": records.NUMBER, "positionY": records.NUMBER,
            "sizeWidth": records.NUMBER, "sizeHeight": records.NUMBER, "color": str,
        })
        if fields is None:
            return None
        real_world_size = record.get("realWorldSize")
        if (isinstance(real_world_size, bool) or not isinstance(real_world_size, (int, float))
                or not geometry_utils.is_finite(real_world_size)):
            real_world_size = None
        return cls(
            position=NormalizedPoint(fields["positionX"], fields["positionY"]),
            size=(float(fields["sizeWidth"]), float(fields["sizeHeight"])),
            fill_color=fields["color"],
            real_world_size=real_world_size,
            id=fields["id"],
        )


def _load(store: KeyValueStore, key: str, factory: Callable[[dict], object | None]) -> list:
    loaded = []
    warnings: list[str] = []
    for index, record in enumerate(records.read_records(store, key, warnings=warnings, logger=logger)):
        item = factory(record)
        if item is None:
            logger.warning("Skipping malformed record %d under %s", index, key)
            continue
        loaded.append(item)
    if warnings:
        logger.warning("%d unreadable entries under %s were ignored", len(warnings), key)
    logger.info("Loaded %d records from %s", len(loaded), key)
    return loaded


class BeaconPlacementManager:
    """
    Available beacons, the armed beacon awaiting a tap, and placed beacons.

    Usage:
        manager = BeaconPlacementManager(store)
        manager.set_available(["14-jazzyWombat", "15-frostyIbis"])
        orchestrator.add_tap_callback(manager.handle_tap)
        manager.arm(manager.available[0])
    """

    def __init__(self, store: KeyValueStore, key: str = BEACON_KEY) -> None:
        self._store = store
        self._key = key
        self._available: list[BeaconInfo] = []
        self._armed: BeaconInfo | None = None
        self._placed: list[PlacedBeacon] = _load(store, key, PlacedBeacon.from_record)
        self._on_changed_callbacks: list[Callable[[list[PlacedBeacon]], None]] = []

    @property
    def available(self) -> list[BeaconInfo]:
        return list(self._available)

    @property
    def placed(self) -> list[PlacedBeacon]:
        return list(self._placed)

    @property
    def armed(self) -> BeaconInfo | None:
        return self._armed

    def set_available(self, names: Iterable[str]) -> None:
        """Assign palette colours to the available beacons and drop stale placements."""
        self._available = [
            BeaconInfo(name, COLOR_PALETTE[i % len(COLOR_PALETTE)]) for i, name in enumerate(names)
        ]
        self.cleanup_invalid_placements()

    def arm(self, beacon: BeaconInfo) -> None:
        self._armed = beacon
        logger.debug("Beacon armed: %s", beacon.name)

    def cancel_armed(self) -> None:
        self._armed = None

    def place(self, beacon: BeaconInfo, position: NormalizedPoint) -> PlacedBeacon:
        """Place a beacon, replacing any earlier placement of the same name."""
        placed = PlacedBeacon(beacon.name, position, beacon.color)
        self._placed = [p for p in self._placed if p.name != beacon.name]
        self._placed.append(placed)
        self._armed = None
        logger.info("Placed beacon %s at (%.3f, %.3f)", beacon.name, position.x, position.y)
        self._save()
        return placed

    def handle_tap(self, event: TapEvent) -> PlacedBeacon | None:
        """Place the armed beacon at a tap, if one is armed."""
        if self._armed is None:
            return None
        return self.place(self._armed, event.normalized_point)

    def clear_all(self) -> None:
        self._placed = []
        self._save()
        logger.info("Cleared all beacon placements.")

    def cleanup_invalid_placements(self) -> None:
        """Remove placements whose beacon is no longer available."""
        valid = {b.name for b in self._available}
        kept = [p for p in self._placed if p.name in valid]
        if len(kept) != len(self._placed):
            logger.info("Removing %d placements of unavailable beacons", len(self._placed) - len(kept))
        self._placed = kept
        self._save()

    def add_changed_callback(self, callback: Callable[[list[PlacedBeacon]], None]) -> None:
        self._on_changed_callbacks.append(callback)

    def _save(self) -> None:
        records.write_records(self._store, self._key, [p.to_record() for p in self._placed])
        for callback in self._on_changed_callbacks:
            try:
                callback(self.placed)
            except Exception as e:
                logger.exception(f"Error in placement callback: {e}")


class MeasurementManager:
    """Measurement rectangles and the create-by-tap mode."""

    def __init__(self, store: KeyValueStore, key: str = MEASUREMENT_KEY,
                 default_size: tuple[float, float] = (0.05, 0.05)) -> None:
        self._store = store
        self._key = key
        self._default_size = default_size
        self._creating = False
        self._measurements: list[Measurement] = _load(store, key, Measurement.from_record)

    @property
    def measurements(self) -> list[Measurement]:
        return list(self._measurements)

    @property
    def is_creating(self) -> bool:
        return self._creating

    def start_creating(self) -> None:
        self._creating = True

    def cancel_creating(self) -> None:
        self._creating = False

    def create(self, position: NormalizedPoint, size: tuple[float, float] | None = None) -> Measurement:
        measurement = Measurement(position=position, size=size or self._default_size)
        self._measurements.append(measurement)
        self._creating = False
        self._save()
        return measurement

    def handle_tap(self, event: TapEvent) -> Measurement | None:
        """Create a measurement at a tap while in create mode."""
        if not self._creating:
            return None
        return self.create(event.normalized_point)

    def update(self, measurement_id: str, *,
               position: NormalizedPoint | None = None,
               size: tuple[float, float] | None = None,
               real_world_size: float | None = None) -> Measurement | None:
        """
        Update fields of a measurement. Fields left as None are kept.

        :return: Updated measurement, or None if the id is unknown
        """
        for index, current in enumerate(self._measurements):
            if current.id != measurement_id:
                continue
            updated = replace(
                current,
                position=position if position is not None else current.position,
                size=size if size is not None else current.size,
                real_world_size=real_world_size if real_world_size is not None else current.real_world_size,
            )
            self._measurements[index] = updated
            self._save()
            return updated
        logger.warning("Unknown measurement id: %s", measurement_id)
        return None

    def clear_all(self) -> None:
        self._measurements = []
        self._save()

    def _save(self) -> None:
        records.write_records(self._store, self._key, [m.to_record() for m in self._measurements])
