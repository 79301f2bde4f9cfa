"""Gesture orchestrator - turns phased gesture primitives into viewport updates."""
from __future__ import annotations

import logging
from typing import Callable

from navmap.controllers.gestures import (
    GestureEvent,
    GestureKind,
    GesturePhase,
    GestureSession,
    TapEvent,
)
from navmap.core import geometry_utils
from navmap.core.geometry_utils import Point, Size
from navmap.core.viewport_transform import ViewportTransform

logger = logging.getLogger(__name__)


class GestureOrchestrator:
    """
    Central coordinator between the touch layer and the viewport.

    This class consumes parsed gesture primitives and manages:
    - One session per gesture kind (pan, pinch and rotation may overlap)
    - Tap versus pan disambiguation by a movement threshold
    - Incremental application of cumulative pinch scale and rotation
    - Callbacks for confirmed taps

    Pinch ``scale_delta`` and rotation ``rotation_delta_degrees`` are
    cumulative since the gesture began; after each application the baseline
    is moved so successive updates compose.

    Usage:
        orchestrator = GestureOrchestrator(viewport, container_size=(400, 400))
        orchestrator.add_tap_callback(on_tap)
        orchestrator.handle(event)
    """

    def __init__(self,
                 viewport: ViewportTransform,
                 container_size: Size = (0.0, 0.0),
                 pan_threshold: float | None = None) -> None:
        self._viewport = viewport
        self._container_size: Size = container_size
        self._pan_threshold = viewport.config.pan_threshold if pan_threshold is None else pan_threshold
        if self._pan_threshold < 0:
            raise ValueError(f"pan_threshold must be >= 0, got {self._pan_threshold}.")

        self._sessions: dict[GestureKind, GestureSession] = {}
        self._rotation_enabled = True
        self._on_tap_callbacks: list[Callable[[TapEvent], None]] = []

    @property
    def viewport(self) -> ViewportTransform:
        return self._viewport

    @property
    def container_size(self) -> Size:
        return self._container_size

    def set_container_size(self, size: Size) -> None:
        """Update the container size used for anchoring and tap mapping."""
        self._container_size = size

    @property
    def pan_threshold(self) -> float:
        return self._pan_threshold

    @property
    def rotation_enabled(self) -> bool:
        return self._rotation_enabled

    @rotation_enabled.setter
    def rotation_enabled(self, enabled: bool) -> None:
        self._rotation_enabled = enabled
        logger.debug("Manual rotation %s", "enabled" if enabled else "disabled")

    def session(self, kind: GestureKind) -> GestureSession | None:
        """Return the active session for a gesture kind, if any."""
        return self._sessions.get(kind)

    @property
    def active_kinds(self) -> set[GestureKind]:
        return set(self._sessions)

    def handle(self, event: GestureEvent) -> None:
        """
        Dispatch a gesture primitive to the matching handler.

        :param event: Parsed gesture primitive
        """
        if event.kind is GestureKind.TAP:
            if event.phase is GesturePhase.ENDED:
                self.tap(event.location)
            return

        if event.phase is GesturePhase.CANCELLED:
            self.cancel(event.kind)
            return

        if event.kind is GestureKind.PAN:
            if event.phase is GesturePhase.BEGAN:
                self.begin_pan(event.location, touch_count=event.touch_count)
            elif event.phase is GesturePhase.CHANGED:
                self.update_pan(event.translation, event.location)
            else:
                self.end_pan(event.location, event.translation)
        elif event.kind is GestureKind.PINCH:
            if event.phase is GesturePhase.BEGAN:
                self.begin_zoom(event.focal_point)
            elif event.phase is GesturePhase.CHANGED:
                self.update_zoom(event.scale_delta, event.focal_point)
            else:
                self.end_zoom()
        elif event.kind is GestureKind.ROTATION:
            if event.phase is GesturePhase.BEGAN:
                self.begin_rotate(event.location)
            elif event.phase is GesturePhase.CHANGED:
                self.update_rotate(event.rotation_delta_degrees)
            else:
                self.end_rotate()

    # ---------- pan ----------

    def begin_pan(self, point: Point, touch_count: int = 1) -> None:
        """Capture the starting offset and point of a pan."""
        overlapping = GestureKind.PINCH in self._sessions or GestureKind.ROTATION in self._sessions
        self._sessions[GestureKind.PAN] = GestureSession(
            kind=GestureKind.PAN,
            start_viewport_offset=self._viewport.offset,
            start_focal_point=point,
            tap_suppressed=overlapping or touch_count > 1,
        )
        logger.debug("Pan began at %s", point)

    def update_pan(self, translation: Point | None, point: Point) -> None:
        """
        Apply a pan update once movement has reached the tap threshold.

        :param translation: Translation since pan start; derived from point when None
        :param point: Current touch location
        """
        session = self._sessions.get(GestureKind.PAN)
        if session is None:
            logger.debug("Pan update without an active pan session; ignored")
            return

        if translation is None:
            translation = (point[0] - session.start_focal_point[0],
                           point[1] - session.start_focal_point[1])
        if not geometry_utils.is_finite(*translation):
            logger.warning("Rejected non-finite pan translation: %r", translation)
            return

        if not session.has_exceeded_tap_threshold:
            if geometry_utils.calculate_norm(translation) >= self._pan_threshold:
                session.has_exceeded_tap_threshold = True
                logger.debug("Pan committed after %.1f units", geometry_utils.calculate_norm(translation))
            else:
                return

        start_x, start_y = session.start_viewport_offset
        self._viewport.set_offset(start_x + translation[0], start_y + translation[1])

    def end_pan(self, point: Point, translation: Point | None = None) -> None:
        """
        Finish a pan. A pan that never reached the threshold is reported as a tap.
        """
        session = self._sessions.get(GestureKind.PAN)
        if session is None:
            logger.debug("Pan end without an active pan session; ignored")
            return

        if translation is not None:
            self.update_pan(translation, point)
        del self._sessions[GestureKind.PAN]

        if not session.has_exceeded_tap_threshold and not session.tap_suppressed:
            self.tap(point)

    # ---------- zoom ----------

    def begin_zoom(self, focal_point: Point) -> None:
        """Start a pinch; any pending pan can no longer become a tap."""
        self._suppress_pending_tap()
        self._sessions[GestureKind.PINCH] = GestureSession(
            kind=GestureKind.PINCH,
            start_viewport_offset=self._viewport.offset,
            start_focal_point=focal_point,
            baseline=1.0,
        )
        logger.debug("Zoom began at %s", focal_point)

    def update_zoom(self, scale: float | None, focal_point: Point) -> None:
        """
        Apply the scale change since the previous update, anchored at focal_point.

        :param scale: Cumulative pinch scale since the pinch began
        :param focal_point: Current focal point between the fingers
        """
        session = self._sessions.get(GestureKind.PINCH)
        if session is None:
            logger.debug("Zoom update without an active pinch session; ignored")
            return
        if scale is None or not geometry_utils.is_finite(scale) or scale <= 0:
            logger.warning("Rejected invalid pinch scale: %r", scale)
            return

        ratio = scale / session.baseline
        session.baseline = scale
        before = self._viewport.offset
        self._viewport.anchored_zoom(ratio, focal_point, self._container_size)
        self._rebase_pan(before)

    def end_zoom(self) -> None:
        self._sessions.pop(GestureKind.PINCH, None)
        logger.debug("Zoom ended at scale %.3f", self._viewport.scale)

    # ---------- rotation ----------

    def begin_rotate(self, point: Point) -> None:
        """Start a rotation; any pending pan can no longer become a tap."""
        self._suppress_pending_tap()
        self._sessions[GestureKind.ROTATION] = GestureSession(
            kind=GestureKind.ROTATION,
            start_viewport_offset=self._viewport.offset,
            start_focal_point=point,
            baseline=0.0,
        )

    def update_rotate(self, rotation_degrees: float | None) -> None:
        """
        Apply the rotation change since the previous update.

        :param rotation_degrees: Cumulative rotation since the gesture began
        """
        session = self._sessions.get(GestureKind.ROTATION)
        if session is None:
            logger.debug("Rotation update without an active rotation session; ignored")
            return
        if rotation_degrees is None or not geometry_utils.is_finite(rotation_degrees):
            logger.warning("Rejected invalid rotation delta: %r", rotation_degrees)
            return

        delta = rotation_degrees - session.baseline
        session.baseline = rotation_degrees
        if not self._rotation_enabled:
            logger.debug("Manual rotation disabled; ignoring %.2f degrees", delta)
            return
        self._viewport.set_rotation(self._viewport.rotation + delta)

    def end_rotate(self) -> None:
        self._sessions.pop(GestureKind.ROTATION, None)
        logger.debug("Rotation ended at %.1f degrees", self._viewport.rotation)

    # ---------- tap / cancel ----------

    def tap(self, point: Point) -> TapEvent:
        """Report a tap at a screen point to all tap callbacks."""
        normalized = self._viewport.screen_to_normalized(point, self._container_size)
        event = TapEvent(screen_point=point, normalized_point=normalized,
                         container_size=self._container_size)
        logger.info("Tap at %s -> (%.3f, %.3f)", point, normalized.x, normalized.y)
        self._notify_tap(event)
        return event

    def cancel(self, kind: GestureKind) -> None:
        """Drop a gesture session. The state applied so far is kept; no tap is fired."""
        if self._sessions.pop(kind, None) is not None:
            logger.debug("%s gesture cancelled", kind.name)

    def cancel_all(self) -> None:
        """Drop every active gesture session."""
        self._sessions.clear()

    def add_tap_callback(self, callback: Callable[[TapEvent], None]) -> None:
        """
        Add a callback for confirmed taps.

        Callback signature: callback(event: TapEvent) -> None
        """
        self._on_tap_callbacks.append(callback)

    def remove_tap_callback(self, callback: Callable[[TapEvent], None]) -> None:
        self._on_tap_callbacks.remove(callback)

    # ---------- internal ----------

    def _suppress_pending_tap(self) -> None:
        pan = self._sessions.get(GestureKind.PAN)
        if pan is not None:
            pan.tap_suppressed = True

    def _rebase_pan(self, offset_before: tuple[float, float]) -> None:
        """Shift an active pan's start offset by an offset change made by another gesture."""
        pan = self._sessions.get(GestureKind.PAN)
        if pan is None:
            return
        after = self._viewport.offset
        start_x, start_y = pan.start_viewport_offset
        pan.start_viewport_offset = (start_x + after[0] - offset_before[0],
                                     start_y + after[1] - offset_before[1])

    def _notify_tap(self, event: TapEvent) -> None:
        """Notify callbacks of a tap."""
        for callback in self._on_tap_callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.exception(f"Error in tap callback: {e}")
