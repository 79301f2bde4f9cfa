"""Beacon scanner - matches advertisements to target beacons and feeds the ranging estimator."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Protocol

from navmap.sensors.beacon_ranging import (
    AdvertisementPayload,
    BeaconRange,
    BeaconRangingEstimator,
    detect_slot_type,
)
from navmap.utils.log_util import log_io

logger = logging.getLogger(__name__)

_NUMERIC_PREFIX = re.compile(r"^\d+-")


class BluetoothState(str, Enum):
    POWERED_ON = "powered_on"
    POWERED_OFF = "powered_off"
    UNAUTHORIZED = "unauthorized"
    UNSUPPORTED = "unsupported"
    RESETTING = "resetting"
    UNKNOWN = "unknown"

    def __str__(self):
        return self.value


class BluetoothCentral(Protocol):
    """Bluetooth radio as seen by the scanner."""

    @property
    def state(self) -> BluetoothState: ...

    def start_scan(self) -> None: ...

    def stop_scan(self) -> None: ...


class MatchMethod(str, Enum):
    EXACT = "exact"
    PARTIAL = "partial"
    KEYWORD = "keyword"


@dataclass(frozen=True)
class ScanSample:
    """One advertisement as delivered by the Bluetooth layer."""
    peripheral_name: str | None
    rssi: int
    advertisement: AdvertisementPayload = field(default_factory=AdvertisementPayload)


def parse_beacon_whitelist(text: str) -> list[str]:
    """
    Parse a beacon whitelist: one name per line, blank lines and '#' comments skipped.

    :param text: Whitelist file content
    :return: Beacon names in file order, without duplicates
    """
    names: list[str] = []
    for line in text.splitlines():
        name = line.strip()
        if not name or name.startswith("#"):
            continue
        if name not in names:
            names.append(name)
    return names


def target_keyword(target: str) -> str:
    """Return the distinctive part of a target name, e.g. '14-jazzyWombat' -> 'jazzyWombat'."""
    return _NUMERIC_PREFIX.sub("", target)


def match_beacon_name(name: str | None, targets: Iterable[str]) -> tuple[str, MatchMethod] | None:
    """
    Match an advertised peripheral name against target beacon names.

    Exact matches win over partial ones (name contains target), which win
    over keyword matches (name contains the target without its numeric prefix).

    :return: (target name, match method) or None
    """
    if not name:
        return None
    targets = list(targets)
    for target in targets:
        if name == target:
            return target, MatchMethod.EXACT
    for target in targets:
        if target in name:
            return target, MatchMethod.PARTIAL
    for target in targets:
        keyword = target_keyword(target)
        if keyword and keyword in name:
            return target, MatchMethod.KEYWORD
    return None


class BeaconScanner:
    """
    Owns the scan lifecycle for a fixed set of target beacons.

    Responsible for:
    - Following the Bluetooth radio state (scan only while powered on).
    - Matching advertisements to targets and detecting their slot.
    - Feeding accepted samples to the ranging estimator.
    - Callbacks for range updates and availability changes.
    """

    def __init__(self,
                 central: BluetoothCentral,
                 targets: Iterable[str],
                 estimator: BeaconRangingEstimator | None = None) -> None:
        self._central = central
        self._targets = list(targets)
        self._estimator = estimator or BeaconRangingEstimator()
        self._scanning = False
        self._discovered: set[str] = set()
        self._ranges: dict[str, BeaconRange | None] = {t: None for t in self._targets}

        self._on_range_callbacks: list[Callable[[str, BeaconRange | None], None]] = []
        self._on_availability_callbacks: list[Callable[[bool], None]] = []

    @property
    def targets(self) -> list[str]:
        return list(self._targets)

    @property
    def estimator(self) -> BeaconRangingEstimator:
        return self._estimator

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    @property
    def available(self) -> bool:
        return self._central.state == BluetoothState.POWERED_ON

    @property
    def ranges(self) -> dict[str, BeaconRange | None]:
        """Latest range per target; None when the beacon has no current range."""
        return dict(self._ranges)

    @property
    def discovered_devices(self) -> set[str]:
        return set(self._discovered)

    @log_io()
    def start(self) -> bool:
        """
        Start scanning. All ranging state is reset.

        :return: False if the radio is not powered on
        """
        if not self.available:
            logger.warning("Bluetooth is not powered on. State: %s", self._central.state)
            return False

        self._discovered.clear()
        self._estimator.reset()
        for target in self._targets:
            self._ranges[target] = None

        logger.info("Starting beacon scan for %d beacons", len(self._targets))
        self._central.start_scan()
        self._scanning = True
        return True

    def stop(self) -> None:
        if self._scanning:
            self._central.stop_scan()
            self._scanning = False
            logger.info("Stopped beacon scanning")

    def handle_state_change(self, state: BluetoothState) -> None:
        """Follow a radio state change: start when powered on, stop otherwise."""
        logger.info("Bluetooth state: %s", state)
        if state == BluetoothState.POWERED_ON:
            self.start()
        elif state == BluetoothState.POWERED_OFF:
            self.stop()
        else:
            self._scanning = False
        self._notify_availability(state == BluetoothState.POWERED_ON)

    def handle_advertisement(self, sample: ScanSample) -> BeaconRange | None:
        """
        Process one advertisement.

        :param sample: Peripheral name, RSSI and advertisement payload
        :return: Updated range of the matched beacon, or None if not a target
        """
        name = sample.peripheral_name or "Unknown"
        if name not in self._discovered:
            self._discovered.add(name)
            logger.debug("Discovered device: %s RSSI: %s", name, sample.rssi)

        match = match_beacon_name(sample.peripheral_name, self._targets)
        if match is None:
            return None
        target, method = match

        slot_type = detect_slot_type(sample.advertisement)
        logger.debug("Target beacon %s found by %s match, slot %s", target, method.value, slot_type)
        result = self._estimator.ingest(target, sample.rssi, slot_type)
        if result is not None and result != self._ranges.get(target):
            self._ranges[target] = result
            self._notify_range(target, result)
        return result

    def handle_disconnect(self, peripheral_name: str | None) -> None:
        """Clear the reported range of a beacon that disconnected."""
        if not peripheral_name:
            return
        for target in self._targets:
            if target in peripheral_name or peripheral_name in target:
                self._ranges[target] = None
                self._estimator.reset(target)
                logger.info("Beacon %s disconnected", target)
                self._notify_range(target, None)
                break

    def add_range_callback(self, callback: Callable[[str, BeaconRange | None], None]) -> None:
        """
        Add a callback for range updates.

        Callback signature: callback(beacon_id: str, beacon_range: BeaconRange | None) -> None
        """
        self._on_range_callbacks.append(callback)

    def add_availability_callback(self, callback: Callable[[bool], None]) -> None:
        self._on_availability_callbacks.append(callback)

    def _notify_range(self, beacon_id: str, beacon_range: BeaconRange | None) -> None:
        for callback in self._on_range_callbacks:
            try:
                callback(beacon_id, beacon_range)
            except Exception as e:
                logger.exception(f"Error in range callback: {e}")

    def _notify_availability(self, available: bool) -> None:
        for callback in self._on_availability_callbacks:
            try:
                callback(available)
            except Exception as e:
                logger.exception(f"Error in availability callback: {e}")
