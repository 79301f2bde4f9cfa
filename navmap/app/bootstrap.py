"""
Application assembly.

Starts logging, loads settings, applies the logging policy and builds the
core objects from the typed settings sections.

Usage:
    ctx = start()
    try:
        ...
    finally:
        shutdown(ctx)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from navmap.app.app_settings_manager import AppSettingsManager
from navmap.app.logging_setup import LogSystem, apply_logging_policy
from navmap.controllers.compass_lock import CompassLock
from navmap.controllers.gesture_orchestrator import GestureOrchestrator
from navmap.core.geometry_utils import Size
from navmap.core.viewport_transform import ViewportTransform
from navmap.sensors.beacon_ranging import BeaconRangingEstimator
from navmap.sensors.beacon_scanner import BeaconScanner, BluetoothCentral
from navmap.sensors.compass import Compass, HeadingProvider
from navmap.sensors.heading_smoother import HeadingSmoother
from navmap.storage.kv_store import KeyValueStore, QSettingsKeyValueStore
from navmap.storage.placements import BeaconPlacementManager, MeasurementManager

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Everything one map screen needs, wired together."""
    settings: AppSettingsManager
    store: KeyValueStore
    viewport: ViewportTransform
    orchestrator: GestureOrchestrator
    compass_lock: CompassLock
    heading_smoother: HeadingSmoother
    ranging: BeaconRangingEstimator
    beacons: BeaconPlacementManager
    measurements: MeasurementManager
    compass: Compass | None = None
    scanner: BeaconScanner | None = None
    logs: LogSystem | None = None


def build_context(settings: AppSettingsManager,
                  *,
                  store: KeyValueStore | None = None,
                  container_size: Size = (0.0, 0.0),
                  heading_provider: HeadingProvider | None = None,
                  central: BluetoothCentral | None = None,
                  beacon_targets: Iterable[str] = ()) -> AppContext:
    """
    Build the core objects from settings.

    :param settings: Loaded application settings
    :param store: Persistence for placements and the compass lock (QSettings when None)
    :param container_size: Current size of the map container in points
    :param heading_provider: Platform heading source; no Compass is built without one
    :param central: Bluetooth central; no BeaconScanner is built without one
    :param beacon_targets: Whitelisted beacon names for the scanner
    :return: Wired AppContext
    """
    store = store if store is not None else QSettingsKeyValueStore()

    viewport = ViewportTransform(settings.viewport_config())
    orchestrator = GestureOrchestrator(viewport, container_size)
    compass_lock = CompassLock(viewport, orchestrator, store)
    heading_smoother = HeadingSmoother(settings.heading_config())
    ranging = BeaconRangingEstimator(settings.ranging_config())

    beacons = BeaconPlacementManager(store)
    measurements = MeasurementManager(store)
    # Each manager ignores taps unless it is armed.
    orchestrator.add_tap_callback(beacons.handle_tap)
    orchestrator.add_tap_callback(measurements.handle_tap)

    compass = None
    if heading_provider is not None:
        compass = Compass(heading_provider, heading_smoother)
        compass.add_reading_callback(compass_lock.handle_reading)

    scanner = None
    if central is not None:
        targets = list(beacon_targets)
        scanner = BeaconScanner(central, targets, ranging)
        if targets:
            beacons.set_available(targets)

    logger.info("Context built (run_mode=%s, viewport=%s)", settings.run_mode, viewport.config)
    return AppContext(
        settings=settings,
        store=store,
        viewport=viewport,
        orchestrator=orchestrator,
        compass_lock=compass_lock,
        heading_smoother=heading_smoother,
        ranging=ranging,
        beacons=beacons,
        measurements=measurements,
        compass=compass,
        scanner=scanner,
    )


def start(app_name: str = "navmap",
          *,
          settings: AppSettingsManager | None = None,
          log_dir: Path | None = None,
          **context_options) -> AppContext:
    """
    Start logging, load settings and build the context.

    Extra keyword arguments are passed to build_context.
    """
    logs = LogSystem(app_name, log_dir=log_dir)
    try:
        logger.info("App start")
        settings = settings or AppSettingsManager()
        apply_logging_policy(logs, settings)
        ctx = build_context(settings, **context_options)
    except Exception:
        logger.exception("Startup failed")
        logs.stop()
        raise
    ctx.logs = logs
    return ctx


def shutdown(ctx: AppContext) -> None:
    """Stop sensors and flush logging. Safe to call twice."""
    if ctx.compass is not None:
        ctx.compass.stop()
    if ctx.scanner is not None:
        ctx.scanner.stop()
    logger.info("App exit")
    if ctx.logs is not None:
        ctx.logs.stop()
