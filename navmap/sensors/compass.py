"""Compass: heading source selection, availability and smoothing."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Protocol

from navmap import status
from navmap.sensors.heading_smoother import HeadingSmoother

logger = logging.getLogger(__name__)


class HeadingProvider(Protocol):
    """Heading hardware as seen by the compass."""

    def is_available(self) -> bool: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...


@dataclass(frozen=True)
class HeadingSample:
    """Raw heading delivered by the platform. A negative true heading means unknown."""
    magnetic_heading_deg: float
    accuracy_deg: float
    true_heading_deg: float | None = None


@dataclass(frozen=True)
class CompassReading:
    raw_heading: float
    smoothed_heading: float
    accuracy: float
    accuracy_warning: bool
    is_using_true_north: bool
    accepted: bool


def select_heading(sample: HeadingSample, has_location_fix: bool) -> tuple[float, bool]:
    """
    Prefer true north once a location fix exists, otherwise magnetic north.

    :return: (heading in degrees, True if the heading is true north)
    """
    true_heading = sample.true_heading_deg
    if has_location_fix and true_heading is not None and true_heading >= 0:
        return true_heading, True
    return sample.magnetic_heading_deg, False


class Compass:
    """
    Compass state owner.

    Hardware is reached only through the HeadingProvider passed at
    construction. Unavailable hardware is reported through `available` and
    the availability callbacks, never as an exception.
    """

    def __init__(self, provider: HeadingProvider, smoother: HeadingSmoother | None = None) -> None:
        self._provider = provider
        self._smoother = smoother or HeadingSmoother()
        self._available = True
        self._running = False
        self._has_location_fix = False
        self._raw_heading = 0.0
        self._accuracy = 0.0
        self._is_using_true_north = False

        self._on_reading_callbacks: list[Callable[[CompassReading], None]] = []
        self._on_availability_callbacks: list[Callable[[bool], None]] = []

    @property
    def smoother(self) -> HeadingSmoother:
        return self._smoother

    @property
    def available(self) -> bool:
        return self._available

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def smoothed_heading(self) -> float:
        return self._smoother.heading

    @property
    def raw_heading(self) -> float:
        return self._raw_heading

    @property
    def accuracy(self) -> float:
        return self._accuracy

    @property
    def accuracy_warning(self) -> bool:
        return self._smoother.accuracy_warning

    @property
    def is_using_true_north(self) -> bool:
        return self._is_using_true_north

    def start(self) -> bool:
        """
        Start heading updates. The smoother is reset.

        :return: False if the heading hardware is unavailable
        """
        if not self._provider.is_available():
            logger.warning("Heading not available on this device")
            self.mark_unavailable()
            return False

        self._smoother.reset()
        self._provider.start()
        self._running = True
        self._set_available(True)
        logger.info("Compass started")
        return True

    def stop(self) -> None:
        if self._running:
            self._provider.stop()
            self._running = False
            logger.info("Compass stopped")

    def on_location_fix(self) -> None:
        """Record that a location fix exists, so true north can be used."""
        if not self._has_location_fix:
            self._has_location_fix = True
            logger.info("Location fix acquired - true north now available")

    def handle_sample(self, sample: HeadingSample) -> CompassReading:
        """
        Process one heading sample from the provider.

        :param sample: Raw heading sample
        :return: Reading after smoothing (accepted=False when discarded)
        """
        heading, true_north = select_heading(sample, self._has_location_fix)
        result = self._smoother.ingest(heading, sample.accuracy_deg)

        if result.accepted:
            self._raw_heading = heading
            self._accuracy = sample.accuracy_deg
            self._is_using_true_north = true_north

        reading = CompassReading(
            raw_heading=heading,
            smoothed_heading=result.heading,
            accuracy=sample.accuracy_deg,
            accuracy_warning=result.accuracy_warning,
            is_using_true_north=true_north,
            accepted=result.accepted,
        )
        self._notify_reading(reading)
        return reading

    def handle_error(self, error: Exception) -> None:
        """Log a provider failure; the last heading is kept."""
        logger.error("Heading service error: %s", error)

    def mark_unavailable(self) -> None:
        """Report that heading hardware or permission is unavailable."""
        self._running = False
        self._set_available(False)

    @property
    def debug_info(self) -> str:
        return status.format_status_line(
            status.COMPASS_FIELDS,
            raw=self._raw_heading,
            smoothed=self.smoothed_heading,
            accuracy=self._accuracy,
            north=self._is_using_true_north,
        )

    def add_reading_callback(self, callback: Callable[[CompassReading], None]) -> None:
        """
        Add a callback for compass readings.

        Callback signature: callback(reading: CompassReading) -> None
        """
        self._on_reading_callbacks.append(callback)

    def add_availability_callback(self, callback: Callable[[bool], None]) -> None:
        """Callback signature: callback(available: bool) -> None"""
        self._on_availability_callbacks.append(callback)

    def _set_available(self, available: bool) -> None:
        if available == self._available:
            return
        self._available = available
        for callback in self._on_availability_callbacks:
            try:
                callback(available)
            except Exception as e:
                logger.exception(f"Error in availability callback: {e}")

    def _notify_reading(self, reading: CompassReading) -> None:
        for callback in self._on_reading_callbacks:
            try:
                callback(reading)
            except Exception as e:
                logger.exception(f"Error in compass callback: {e}")
