"""Gesture primitives delivered by the touch layer, and per-gesture session state."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto

from navmap.core import geometry_utils
from navmap.core.geometry_utils import Point
from navmap.core.viewport_state import NormalizedPoint


class GesturePhase(Enum):
    """Lifecycle phase reported with every gesture primitive."""
    BEGAN = auto()
    CHANGED = auto()
    ENDED = auto()
    CANCELLED = auto()


class GestureKind(Enum):
    """Enum for the recognised gesture kinds."""
    PAN = auto()
    PINCH = auto()
    ROTATION = auto()
    TAP = auto()


@dataclass(frozen=True)
class GestureEvent:
    """
    A parsed gesture primitive.

    Attributes:
        phase: Gesture lifecycle phase
        kind: Gesture kind
        location: Gesture location in screen coordinates
        translation: Pan translation since gesture begin
        scale_delta: Pinch scale since gesture begin (1.0 = unchanged)
        rotation_delta_degrees: Rotation since gesture begin
        touch_count: Number of touches involved
        touches: Individual touch locations, when available
    """
    phase: GesturePhase
    kind: GestureKind
    location: Point
    translation: Point | None = None
    scale_delta: float | None = None
    rotation_delta_degrees: float | None = None
    touch_count: int = 1
    touches: tuple[Point, ...] = ()

    @property
    def focal_point(self) -> Point:
        """Midpoint of the first two touches, or the gesture location."""
        if self.touch_count >= 2 and len(self.touches) >= 2:
            return geometry_utils.midpoint(self.touches[0], self.touches[1])
        return self.location


@dataclass
class GestureSession:
    """Ephemeral state of one active gesture, created on begin and dropped on end."""
    kind: GestureKind
    start_viewport_offset: tuple[float, float]
    start_focal_point: Point
    has_exceeded_tap_threshold: bool = False
    tap_suppressed: bool = False
    # last cumulative pinch scale / rotation applied
    baseline: float = 0.0


@dataclass(frozen=True)
class TapEvent:
    """A confirmed tap with its screen and content positions."""
    screen_point: Point
    normalized_point: NormalizedPoint
    container_size: tuple[float, float] = field(default=(0.0, 0.0))
