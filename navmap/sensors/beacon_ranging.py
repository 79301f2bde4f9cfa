"""
Beacon ranging - RSSI outlier rejection, slot detection and distance smoothing.

Distance model (log-distance, calibrated at 1 m):
    raw = base_distance * 2 ** ((calibrated_rssi_at_1m - rssi) / 10)
so every 10 dB of extra attenuation doubles the distance.
Slot 1 (Eddystone UID) frames are broadcast at a higher TX power and are
compensated before the same formula is applied.
"""
from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

import numpy as np

from navmap.core import geometry_utils

logger = logging.getLogger(__name__)

APPLE_COMPANY_ID = 0x004C
EDDYSTONE_SERVICE_UUID = "FEAA"
EDDYSTONE_UID_FRAME = 0x00
IBEACON_MIN_LENGTH = 23
EDDYSTONE_UID_MIN_LENGTH = 20
# RSSI values reported when no measurement is available
SENTINEL_RSSI = (0, 127)


class SlotType(str, Enum):
    SLOT0 = "slot0"      # iBeacon
    SLOT1 = "slot1"      # Eddystone UID
    UNKNOWN = "unknown"

    def __str__(self):
        return self.value

    @property
    def channel(self) -> SlotType:
        """Reading channel; unknown frames are computed as slot 0."""
        return SlotType.SLOT1 if self is SlotType.SLOT1 else SlotType.SLOT0


@dataclass(frozen=True)
class AdvertisementPayload:
    """
    Advertisement content relevant to slot detection.

    Attributes:
        manufacturer_data: Raw manufacturer data (company id little-endian first)
        service_data: Service UUID string -> service data bytes
    """
    manufacturer_data: bytes | None = None
    service_data: Mapping[str, bytes] = field(default_factory=dict)


@dataclass(frozen=True)
class RangingConfig:
    calibrated_rssi_at_1m: float = -80.0
    base_distance_m: float = 1.25
    slot1_tx_compensation_db: float = 12.0
    max_rssi_change: int = 25
    min_valid_rssi: int = -110
    max_valid_rssi: int = -20
    min_readings_for_outlier_detection: int = 2
    max_readings: int = 10
    smoothing_factor: float = 0.7
    min_distance_m: float = 0.1
    max_distance_m: float = 20.0
    reject_outliers: bool = True

    def __post_init__(self) -> None:
        if not 0 <= self.smoothing_factor < 1:
            raise ValueError(f"smoothing_factor must be in [0, 1), got {self.smoothing_factor}.")
        if self.max_readings < 1:
            raise ValueError(f"max_readings must be >= 1, got {self.max_readings}.")
        if self.min_distance_m <= 0 or self.min_distance_m > self.max_distance_m:
            raise ValueError(
                f"Invalid distance range: {self.min_distance_m}..{self.max_distance_m}.")
        if self.base_distance_m <= 0:
            raise ValueError(f"base_distance_m must be > 0, got {self.base_distance_m}.")


@dataclass(frozen=True)
class BeaconSample:
    beacon_id: str
    rssi: int
    slot_type: SlotType = SlotType.UNKNOWN


@dataclass(frozen=True)
class BeaconRange:
    """Latest range estimate of one beacon."""
    distance_meters: float
    rssi: int
    slot_type: SlotType = SlotType.SLOT0

    def __str__(self) -> str:
        return f"{self.distance_meters:.2f} m ({self.rssi} dBm, {self.slot_type})"


@dataclass
class SlotChannel:
    """Recent accepted readings of one slot."""
    readings: deque[int]
    last_valid_rssi: int | None = None


class BeaconRangingState:
    """Ranging state of one beacon: per-slot reading FIFOs and the smoothed distance."""

    def __init__(self, max_readings: int = 10) -> None:
        self.channels: dict[SlotType, SlotChannel] = {
            SlotType.SLOT0: SlotChannel(deque(maxlen=max_readings)),
            SlotType.SLOT1: SlotChannel(deque(maxlen=max_readings)),
        }
        self.last_smoothed_distance_meters: float | None = None
        self.last_range: BeaconRange | None = None

    @property
    def recent_rssi_readings(self) -> list[int]:
        """Accepted readings of the primary (slot 0) channel, oldest first."""
        return list(self.channels[SlotType.SLOT0].readings)

    @property
    def last_valid_rssi(self) -> int | None:
        return self.channels[SlotType.SLOT0].last_valid_rssi

    def average_rssi(self, slot: SlotType = SlotType.SLOT0) -> float | None:
        readings = self.channels[slot.channel].readings
        if not readings:
            return None
        return float(np.mean(readings))


def detect_slot_type(payload: AdvertisementPayload) -> SlotType:
    """
    Classify an advertisement as iBeacon (slot 0), Eddystone UID (slot 1) or unknown.

    :param payload: Advertisement payload
    :return: Detected SlotType
    """
    data = payload.manufacturer_data
    if data is not None and len(data) >= IBEACON_MIN_LENGTH:
        company_id = int.from_bytes(data[:2], "little")
        if company_id == APPLE_COMPANY_ID:
            return SlotType.SLOT0

    for uuid, service in payload.service_data.items():
        if _is_eddystone_uuid(uuid) and len(service) >= EDDYSTONE_UID_MIN_LENGTH:
            if service[0] == EDDYSTONE_UID_FRAME:
                return SlotType.SLOT1

    return SlotType.UNKNOWN


def _is_eddystone_uuid(uuid: str) -> bool:
    """Accept the 16-bit form ('FEAA') and the 128-bit Bluetooth base form ('0000FEAA-...')."""
    u = uuid.strip().upper()
    return u.startswith(EDDYSTONE_SERVICE_UUID) or u.startswith("0000" + EDDYSTONE_SERVICE_UUID + "-")


class BeaconRangingEstimator:
    """
    Estimates distance per beacon from a stream of RSSI samples.

    Each beacon id has independent state. Samples rejected as outliers
    do not touch the reading FIFOs or the smoothed distance, unless
    ``reject_outliers`` is disabled, in which case rejections are logged only.
    """

    def __init__(self, config: RangingConfig | None = None) -> None:
        self._config = config or RangingConfig()
        self._states: dict[str, BeaconRangingState] = {}

    @property
    def config(self) -> RangingConfig:
        return self._config

    @property
    def beacon_ids(self) -> list[str]:
        return list(self._states)

    def state(self, beacon_id: str) -> BeaconRangingState | None:
        return self._states.get(beacon_id)

    def range_of(self, beacon_id: str) -> BeaconRange | None:
        state = self._states.get(beacon_id)
        return state.last_range if state else None

    def ingest(self, beacon_id: str, rssi: int, slot_type: SlotType = SlotType.UNKNOWN) -> BeaconRange | None:
        """
        Process one RSSI sample.

        :param beacon_id: Beacon identifier
        :param rssi: Received signal strength in dBm
        :param slot_type: Advertisement slot the sample came from
        :return: Current range of the beacon (None until a sample is accepted)
        """
        state = self._states.setdefault(beacon_id, BeaconRangingState(self._config.max_readings))

        if rssi in SENTINEL_RSSI:
            logger.debug("%s: ignoring sentinel RSSI %s", beacon_id, rssi)
            return state.last_range

        channel = state.channels[slot_type.channel]
        reason = self._outlier_reason(channel, rssi)
        if reason is not None:
            if self._config.reject_outliers:
                logger.debug("%s: RSSI outlier rejected: %s", beacon_id, reason)
                return state.last_range
            logger.debug("%s: RSSI outlier kept (rejection disabled): %s", beacon_id, reason)

        raw = self.raw_distance(rssi, slot_type)
        if not geometry_utils.is_finite(raw):
            logger.warning("%s: dropping RSSI %s, distance not representable", beacon_id, rssi)
            return state.last_range

        channel.readings.append(rssi)
        channel.last_valid_rssi = rssi

        smoothed = self._smooth(state, raw)
        distance = geometry_utils.clamp(smoothed, self._config.min_distance_m, self._config.max_distance_m)

        state.last_range = BeaconRange(distance_meters=distance, rssi=rssi, slot_type=slot_type.channel)
        logger.debug("%s: %s RSSI=%s raw=%.2fm smoothed=%.2fm", beacon_id, slot_type, rssi, raw, distance)
        return state.last_range

    def ingest_sample(self, sample: BeaconSample) -> BeaconRange | None:
        return self.ingest(sample.beacon_id, sample.rssi, sample.slot_type)

    def raw_distance(self, rssi: float, slot_type: SlotType = SlotType.SLOT0) -> float:
        """
        Unsmoothed, unclamped distance for an RSSI reading.

        :param rssi: RSSI in dBm
        :param slot_type: Slot the reading came from
        :return: Distance in meters, inf when the reading is too weak to represent
        """
        if slot_type is SlotType.SLOT1:
            rssi = rssi - self._config.slot1_tx_compensation_db
        diff = self._config.calibrated_rssi_at_1m - rssi
        try:
            return self._config.base_distance_m * 2.0 ** (diff / 10.0)
        except OverflowError:
            return math.inf

    def reset(self, beacon_id: str | None = None) -> None:
        """Drop ranging state of one beacon, or of all beacons (scan restart)."""
        if beacon_id is None:
            self._states.clear()
            logger.debug("Ranging state cleared")
        else:
            self._states.pop(beacon_id, None)

    def _outlier_reason(self, channel: SlotChannel, rssi: int) -> str | None:
        cfg = self._config
        if len(channel.readings) < cfg.min_readings_for_outlier_detection or channel.last_valid_rssi is None:
            return None

        change = abs(rssi - channel.last_valid_rssi)
        if change > cfg.max_rssi_change:
            return f"{rssi} dBm (change {change} dB from {channel.last_valid_rssi})"
        if not cfg.min_valid_rssi <= rssi <= cfg.max_valid_rssi:
            return f"{rssi} dBm out of range {cfg.min_valid_rssi}..{cfg.max_valid_rssi}"
        return None

    def _smooth(self, state: BeaconRangingState, raw: float) -> float:
        if state.last_smoothed_distance_meters is None:
            state.last_smoothed_distance_meters = raw
            return raw
        alpha = self._config.smoothing_factor
        smoothed = alpha * state.last_smoothed_distance_meters + (1.0 - alpha) * raw
        state.last_smoothed_distance_meters = smoothed
        return smoothed
