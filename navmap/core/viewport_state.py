"""Viewport state values separated from gesture and rendering concerns."""
from __future__ import annotations

from dataclasses import dataclass

from navmap.core import geometry_utils


@dataclass(frozen=True)
class ViewportConfig:
    """
    Bounds and defaults for a viewport.

    Attributes:
        min_scale: Smallest allowed zoom factor
        max_scale: Largest allowed zoom factor
        max_offset: Offset bound per axis at scale 1.0 (grows with scale)
        pan_threshold: Movement in screen units before a touch becomes a pan
        initial_scale: Scale restored by reset_transform()
        initial_rotation: Rotation in degrees restored by reset_transform()
    """
    min_scale: float = 0.5
    max_scale: float = 3.0
    max_offset: float = 500.0
    pan_threshold: float = 10.0
    initial_scale: float = 1.0
    initial_rotation: float = 0.0

    def __post_init__(self) -> None:
        if not geometry_utils.is_finite(self.min_scale, self.max_scale, self.max_offset,
                                        self.pan_threshold, self.initial_scale,
                                        self.initial_rotation):
            raise ValueError("Viewport configuration values must be finite.")
        if self.min_scale <= 0 or self.min_scale > self.max_scale:
            raise ValueError(
                f"Invalid scale range: min={self.min_scale}, max={self.max_scale}.")
        if self.max_offset < 0:
            raise ValueError(f"max_offset must be >= 0, got {self.max_offset}.")
        if self.pan_threshold < 0:
            raise ValueError(f"pan_threshold must be >= 0, got {self.pan_threshold}.")

    def clamp_scale(self, scale: float) -> float:
        """Clamp a scale to [min_scale, max_scale]."""
        return geometry_utils.clamp(scale, self.min_scale, self.max_scale)

    def offset_bound(self, scale: float) -> float:
        """Return the per-axis offset bound for the given scale."""
        return self.max_offset * scale


@dataclass(frozen=True)
class ViewportState:
    """Immutable snapshot of the viewport: zoom, pan and rotation."""
    scale: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0
    rotation_degrees: float = 0.0

    @property
    def offset(self) -> tuple[float, float]:
        return self.offset_x, self.offset_y

    def __str__(self) -> str:
        return (f"Scale: {self.scale:.2f}, Offset: ({self.offset_x:.1f}, {self.offset_y:.1f}), "
                f"Rotation: {self.rotation_degrees:.1f}")


@dataclass(frozen=True)
class NormalizedPoint:
    "Content-space position as a fraction of content size."
    x: float
    y: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "x", geometry_utils.clamp(self.x, 0.0, 1.0))
        object.__setattr__(self, "y", geometry_utils.clamp(self.y, 0.0, 1.0))

    def as_tuple(self) -> tuple[float, float]:
        return self.x, self.y
