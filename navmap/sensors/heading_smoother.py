"""Circular low-pass filter for compass headings."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from navmap.core import geometry_utils

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HeadingConfig:
    """
    Heading filter parameters.

    Attributes:
        smoothing_factor: Fraction of the angular difference applied per sample
        max_accuracy_deg: Samples less accurate than this are rejected
        warning_accuracy_deg: Samples less accurate than this raise the warning flag
    """
    smoothing_factor: float = 0.15
    max_accuracy_deg: float = 25.0
    warning_accuracy_deg: float = 15.0

    def __post_init__(self) -> None:
        if not 0 < self.smoothing_factor <= 1:
            raise ValueError(f"smoothing_factor must be in (0, 1], got {self.smoothing_factor}.")
        if self.max_accuracy_deg < 0 or self.warning_accuracy_deg < 0:
            raise ValueError("Accuracy limits must be >= 0.")


@dataclass
class HeadingState:
    smoothed_heading_degrees: float = 0.0
    has_initial_sample: bool = False


@dataclass(frozen=True)
class HeadingResult:
    """
    Outcome of one ingested sample.

    ``heading`` is the smoothed heading after the sample (unchanged when rejected).
    """
    accepted: bool
    heading: float
    accuracy: float
    accuracy_warning: bool

    def __str__(self) -> str:
        status = "accepted" if self.accepted else "rejected"
        return f"Heading: {self.heading:.1f} ({status}, accuracy {self.accuracy:.1f})"


class HeadingSmoother:
    """
    Smooths raw headings on the unit circle.

    The difference between the new and smoothed heading is taken through
    atan2(sin, cos), so the filter always turns the short way across 0/360.
    """

    def __init__(self, config: HeadingConfig | None = None) -> None:
        self._config = config or HeadingConfig()
        self._state = HeadingState()
        self._accuracy_warning = False

    @property
    def config(self) -> HeadingConfig:
        return self._config

    @property
    def heading(self) -> float:
        """Current smoothed heading in degrees, [0, 360)."""
        return self._state.smoothed_heading_degrees

    @property
    def has_initial_sample(self) -> bool:
        return self._state.has_initial_sample

    @property
    def accuracy_warning(self) -> bool:
        """True when the last accepted sample was less accurate than the warning limit."""
        return self._accuracy_warning

    def is_acceptable(self, accuracy_degrees: float) -> bool:
        """Return True if a sample with this accuracy would be accepted."""
        return (geometry_utils.is_finite(accuracy_degrees)
                and 0 <= accuracy_degrees <= self._config.max_accuracy_deg)

    def ingest(self, raw_heading_degrees: float, accuracy_degrees: float) -> HeadingResult:
        """
        Filter one raw heading sample.

        :param raw_heading_degrees: Raw compass heading in degrees
        :param accuracy_degrees: Reported accuracy; negative means invalid
        :return: HeadingResult (accepted=False leaves the state unchanged)
        """
        if not self.is_acceptable(accuracy_degrees) or not geometry_utils.is_finite(raw_heading_degrees):
            logger.debug("Discarding heading %r with accuracy %r", raw_heading_degrees, accuracy_degrees)
            return HeadingResult(False, self.heading, accuracy_degrees, self._accuracy_warning)

        raw = geometry_utils.normalize_degrees(raw_heading_degrees)
        if not self._state.has_initial_sample:
            self._state = HeadingState(smoothed_heading_degrees=raw, has_initial_sample=True)
        else:
            self._state.smoothed_heading_degrees = self._smooth(raw)

        self._accuracy_warning = accuracy_degrees > self._config.warning_accuracy_deg
        return HeadingResult(True, self.heading, accuracy_degrees, self._accuracy_warning)

    def reset(self) -> None:
        """Forget the smoothed heading; the next sample initializes it directly."""
        self._state = HeadingState()
        self._accuracy_warning = False

    def _smooth(self, new_heading: float) -> float:
        current_rad = math.radians(self._state.smoothed_heading_degrees)
        new_rad = math.radians(new_heading)

        diff = new_rad - current_rad
        adjusted_diff = math.atan2(math.sin(diff), math.cos(diff))

        smoothed_rad = current_rad + self._config.smoothing_factor * adjusted_diff
        return geometry_utils.normalize_degrees(math.degrees(smoothed_rad))
