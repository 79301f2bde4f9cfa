"""Viewport transform: clamped zoom/pan/rotation and screen <-> content mapping."""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable

import numpy as np

from navmap.core import geometry_utils
from navmap.core.geometry_utils import Point, Size
from navmap.core.viewport_state import NormalizedPoint, ViewportConfig, ViewportState
from navmap.utils.log_util import log_io

logger = logging.getLogger(__name__)


class ViewportTransform:
    """
    Owns the viewport state and applies clamped updates.

    Responsible for:
    - Keeping scale, offset and rotation inside the configured bounds.
    - Rejecting non-finite updates (prior state is retained).
    - Converting between screen points and normalized content points.
    - Callbacks for viewport state changes.
    - Don't have concerns about UI.

    The forward render transform scales about the container centre, then
    rotates about the container centre, then translates by the offset.
    """

    def __init__(self, config: ViewportConfig | None = None) -> None:
        self._config = config or ViewportConfig()
        self._state = self._default_state()
        self._on_state_changed_callbacks: list[Callable[[ViewportState], None]] = []

    @property
    def config(self) -> ViewportConfig:
        return self._config

    @property
    def state(self) -> ViewportState:
        """Get current viewport state."""
        return self._state

    @property
    def scale(self) -> float:
        return self._state.scale

    @property
    def offset(self) -> tuple[float, float]:
        return self._state.offset

    @property
    def rotation(self) -> float:
        return self._state.rotation_degrees

    # ---------- mutators ----------

    def set_scale(self, candidate: float) -> float:
        """
        Set the zoom factor, clamped to [min_scale, max_scale].

        The current offset is clamped again against the new scale so that the
        offset bound still holds after zooming out.

        :param candidate: Requested scale
        :return: Stored scale
        """
        if not geometry_utils.is_finite(candidate):
            logger.warning("Rejected non-finite scale: %r (keeping %s)", candidate, self._state.scale)
            return self._state.scale

        scale = self._config.clamp_scale(candidate)
        offset_x, offset_y = self._clamp_offset(self._state.offset_x, self._state.offset_y, scale)
        self._update(replace(self._state, scale=scale, offset_x=offset_x, offset_y=offset_y))
        return scale

    def set_offset(self, x: float, y: float) -> tuple[float, float]:
        """
        Set the pan offset, each axis clamped to +/- max_offset * scale.

        :return: Stored offset (x, y)
        """
        if not geometry_utils.is_finite(x, y):
            logger.warning("Rejected non-finite offset: (%r, %r) (keeping %s)",
                           x, y, self._state.offset)
            return self._state.offset

        offset_x, offset_y = self._clamp_offset(x, y, self._state.scale)
        self._update(replace(self._state, offset_x=offset_x, offset_y=offset_y))
        return offset_x, offset_y

    def set_rotation(self, candidate: float) -> float:
        """
        Set the rotation, normalized to [0, 360) degrees.

        :return: Stored rotation in degrees
        """
        if not geometry_utils.is_finite(candidate):
            logger.warning("Rejected non-finite rotation: %r (keeping %s)",
                           candidate, self._state.rotation_degrees)
            return self._state.rotation_degrees

        rotation = geometry_utils.normalize_degrees(candidate)
        self._update(replace(self._state, rotation_degrees=rotation))
        return rotation

    def anchored_zoom(self, scale_ratio: float, focal_point: Point, container_size: Size) -> ViewportState:
        """
        Zoom by a ratio while keeping the content under focal_point fixed on screen.

        :param scale_ratio: Multiplicative change of the current scale
        :param focal_point: Screen point that must stay stationary
        :param container_size: Container size (width, height)
        :return: Resulting viewport state
        """
        if not geometry_utils.is_finite(scale_ratio, *focal_point, *container_size) or scale_ratio <= 0:
            logger.warning("Rejected anchored zoom: ratio=%r, focal=%r, container=%r",
                           scale_ratio, focal_point, container_size)
            return self._state

        old_scale = self._state.scale
        old_x, old_y = self._state.offset
        new_scale = self._config.clamp_scale(old_scale * scale_ratio)
        t = new_scale / old_scale

        center_x, center_y = geometry_utils.center_of(container_size)
        dx = focal_point[0] - center_x - old_x
        dy = focal_point[1] - center_y - old_y

        offset_x, offset_y = self._clamp_offset(old_x + (1 - t) * dx, old_y + (1 - t) * dy, new_scale)
        self._update(replace(self._state, scale=new_scale, offset_x=offset_x, offset_y=offset_y))

        logger.debug("Anchored zoom: ratio=%s, focal=%s, scale %s -> %s",
                     scale_ratio, focal_point, old_scale, new_scale)
        return self._state

    @log_io()
    def reset_transform(self) -> ViewportState:
        """Reset to the configured initial scale and rotation with zero offset."""
        self._update(self._default_state())
        return self._state

    @log_io()
    def fit_to_bounds(self, content_size: Size, container_size: Size) -> ViewportState:
        """
        Scale so the whole content fits the container; offset and rotation are cleared.

        :param content_size: Content size (width, height)
        :param container_size: Container size (width, height)
        """
        if content_size[0] <= 0 or content_size[1] <= 0:
            logger.warning("Cannot fit empty content size: %r", content_size)
            return self._state

        fit_scale = min(container_size[0] / content_size[0], container_size[1] / content_size[1])
        if not geometry_utils.is_finite(fit_scale):
            logger.warning("Rejected non-finite fit scale for content=%r, container=%r",
                           content_size, container_size)
            return self._state

        self._update(ViewportState(
            scale=self._config.clamp_scale(fit_scale),
            offset_x=0.0,
            offset_y=0.0,
            rotation_degrees=0.0,
        ))
        return self._state

    # ---------- coordinate mapping ----------

    def screen_to_normalized(self, screen_point: Point, container_size: Size) -> NormalizedPoint:
        """
        Convert a screen point to normalized content coordinates.

        The forward transform is undone in reverse order: translation,
        then rotation about the centre, then scale about the centre.

        :param screen_point: Point in screen (container) coordinates
        :param container_size: Container size (width, height)
        :return: Normalized point clamped to [0, 1] on both axes
        """
        width, height = container_size
        if width <= 0 or height <= 0:
            logger.warning("Cannot map point into empty container: %r", container_size)
            return NormalizedPoint(0.0, 0.0)

        center = geometry_utils.center_of(container_size)
        point = (screen_point[0] - self._state.offset_x, screen_point[1] - self._state.offset_y)
        point = geometry_utils.rotate_about(point, center, -self._state.rotation_degrees)
        point = geometry_utils.scale_about(point, center, 1.0 / self._state.scale)

        return NormalizedPoint(point[0] / width, point[1] / height)

    @staticmethod
    def normalized_to_screen(point: NormalizedPoint, container_size: Size) -> Point:
        """
        Convert a normalized point to container coordinates.

        No viewport transform is applied: the result is meant for content laid
        out inside the already-transformed container.
        """
        return point.x * container_size[0], point.y * container_size[1]

    def normalized_to_viewport(self, point: NormalizedPoint, container_size: Size) -> Point:
        """Project a normalized point through the full viewport onto the screen."""
        local = np.array([point.x * container_size[0], point.y * container_size[1], 1.0])
        projected = self.forward_matrix(container_size) @ local
        return float(projected[0]), float(projected[1])

    def forward_matrix(self, container_size: Size) -> np.ndarray:
        """
        Build the 3x3 affine matrix of the forward render transform.

        :param container_size: Container size (width, height)
        :return: Matrix mapping container coordinates to screen coordinates
        """
        cx, cy = geometry_utils.center_of(container_size)
        s = self._state.scale
        angle = np.radians(self._state.rotation_degrees)
        cos_a, sin_a = np.cos(angle), np.sin(angle)

        to_origin = np.array([[1.0, 0.0, -cx], [0.0, 1.0, -cy], [0.0, 0.0, 1.0]])
        scaling = np.diag([s, s, 1.0])
        rotation = np.array([[cos_a, -sin_a, 0.0], [sin_a, cos_a, 0.0], [0.0, 0.0, 1.0]])
        back = np.array([
            [1.0, 0.0, cx + self._state.offset_x],
            [0.0, 1.0, cy + self._state.offset_y],
            [0.0, 0.0, 1.0],
        ])
        return back @ rotation @ scaling @ to_origin

    # ---------- callbacks ----------

    def add_state_changed_callback(self, callback: Callable[[ViewportState], None]) -> None:
        """
        Add a callback for viewport state changes.

        Callback signature: callback(state: ViewportState) -> None
        """
        self._on_state_changed_callbacks.append(callback)

    def remove_state_changed_callback(self, callback: Callable[[ViewportState], None]) -> None:
        """Remove a callback for viewport state changes."""
        self._on_state_changed_callbacks.remove(callback)

    # ---------- internal ----------

    def _default_state(self) -> ViewportState:
        return ViewportState(
            scale=self._config.clamp_scale(self._config.initial_scale),
            offset_x=0.0,
            offset_y=0.0,
            rotation_degrees=geometry_utils.normalize_degrees(self._config.initial_rotation),
        )

    def _clamp_offset(self, x: float, y: float, scale: float) -> tuple[float, float]:
        bound = self._config.offset_bound(scale)
        return geometry_utils.clamp(x, -bound, bound), geometry_utils.clamp(y, -bound, bound)

    def _update(self, new_state: ViewportState) -> None:
        if new_state != self._state:
            self._state = new_state
            self._notify_state_changed()

    def _notify_state_changed(self) -> None:
        """Notify callbacks of viewport state changes."""
        for callback in self._on_state_changed_callbacks:
            try:
                callback(self._state)
            except Exception as e:
                logger.exception(f"Error in viewport callback: {e}")
