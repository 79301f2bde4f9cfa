"""Core components layer - shared, view-independent functionality."""

from navmap.core.geometry_utils import (
    calculate_distance,
    calculate_norm,
    normalize_degrees,
    shortest_angle_difference,
)
from navmap.core.viewport_state import NormalizedPoint, ViewportConfig, ViewportState
from navmap.core.viewport_transform import ViewportTransform

__all__ = [
    "NormalizedPoint",
    "ViewportConfig",
    "ViewportState",
    "ViewportTransform",
    "calculate_distance",
    "calculate_norm",
    "normalize_degrees",
    "shortest_angle_difference",
]
