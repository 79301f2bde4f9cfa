import logging
from logging.handlers import QueueHandler
from pathlib import Path

import pytest
from PySide6.QtCore import QSettings

from navmap.app import bootstrap
from navmap.app.app_settings_manager import AppSettingsManager
from navmap.controllers.compass_lock import LOCK_KEY
from navmap.sensors.compass import HeadingSample
from navmap.sensors.beacon_scanner import BluetoothState
from navmap.storage.kv_store import MemoryKeyValueStore, QSettingsKeyValueStore
from navmap.storage.placements import BEACON_KEY


class FakeProvider:
    def __init__(self):
        self.stopped = 0

    def is_available(self):
        return True

    def start(self):
        pass

    def stop(self):
        self.stopped += 1


class FakeCentral:
    def __init__(self):
        self.state = BluetoothState.POWERED_ON
        self.scans_stopped = 0

    def start_scan(self):
        pass

    def stop_scan(self):
        self.scans_stopped += 1


@pytest.fixture(autouse=True)
def _isolate_logging():
    """Restore the root logger after each test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    for h in handlers:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(level)


@pytest.fixture
def tmp_settings(tmp_path: Path):
    QSettings.setDefaultFormat(QSettings.IniFormat)
    QSettings.setPath(QSettings.IniFormat, QSettings.UserScope, str(tmp_path))
    s = QSettings("NavMap.org", "NavMap")
    s.clear()
    yield s
    s.clear()


@pytest.fixture
def tmp_log_dir(tmp_path: Path):
    d = tmp_path / "logs"
    d.mkdir(parents=True, exist_ok=True)
    return d


def test_settings_reach_core_objects(tmp_settings, tmp_log_dir):
    tmp_settings.setValue("viewport/max_scale", "5")
    tmp_settings.setValue("viewport/pan_threshold", "20")
    tmp_settings.setValue("heading/smoothing_factor", "0.3")
    tmp_settings.setValue("beacon/reject_outliers", "false")
    tmp_settings.sync()

    ctx = bootstrap.start(log_dir=tmp_log_dir, store=MemoryKeyValueStore())
    try:
        assert ctx.viewport.config.max_scale == 5.0
        assert ctx.viewport.set_scale(4.5) == 4.5
        assert ctx.viewport.config.pan_threshold == 20.0
        assert ctx.heading_smoother.config.smoothing_factor == 0.3
        assert ctx.ranging.config.reject_outliers is False
        assert ctx.compass is None
        assert ctx.scanner is None
    finally:
        bootstrap.shutdown(ctx)


def test_default_store_is_qsettings(tmp_settings, tmp_log_dir):
    ctx = bootstrap.start(log_dir=tmp_log_dir)
    try:
        assert isinstance(ctx.store, QSettingsKeyValueStore)
    finally:
        bootstrap.shutdown(ctx)


@pytest.mark.parametrize("run_mode, level, console", [
    ("development", "INFO", logging.DEBUG),
    ("production", "WARNING", logging.WARNING),
])
def test_logging_policy_applied_and_stopped(tmp_settings, tmp_log_dir, run_mode, level, console):
    tmp_settings.setValue("general/run_mode", run_mode)
    tmp_settings.setValue("general/logging_level", level)
    tmp_settings.sync()

    ctx = bootstrap.start(log_dir=tmp_log_dir, store=MemoryKeyValueStore())
    logs = ctx.logs
    assert logs._console_handler.level == console
    assert logs._file_handler.level == logging.DEBUG
    assert logging.getLogger().level == logging.DEBUG

    bootstrap.shutdown(ctx)
    bootstrap.shutdown(ctx)

    assert not any(isinstance(h, QueueHandler) for h in logging.getLogger().handlers)
    text = logs.log_file.read_text(encoding="utf-8")
    assert "App start" in text
    assert "App exit" in text


def test_startup_failure_stops_logging(tmp_settings, tmp_log_dir, monkeypatch):
    def broken(settings, **options):
        raise RuntimeError("no map")

    monkeypatch.setattr(bootstrap, "build_context", broken)

    with pytest.raises(RuntimeError):
        bootstrap.start(log_dir=tmp_log_dir)

    assert not any(isinstance(h, QueueHandler) for h in logging.getLogger().handlers)
    assert "Startup failed" in (tmp_log_dir / "navmap.log").read_text(encoding="utf-8")


def test_compass_readings_drive_the_lock(tmp_settings):
    store = MemoryKeyValueStore()
    provider = FakeProvider()
    ctx = bootstrap.build_context(AppSettingsManager(), store=store, heading_provider=provider)

    assert ctx.compass.start()
    ctx.compass_lock.toggle(0.0)
    assert ctx.orchestrator.rotation_enabled is False

    ctx.compass.handle_sample(HeadingSample(magnetic_heading_deg=90.0, accuracy_deg=5.0))
    assert ctx.viewport.rotation == pytest.approx(90.0)
    assert store.get(LOCK_KEY) is not None

    bootstrap.shutdown(ctx)
    assert provider.stopped == 1


def test_taps_reach_placement_managers(tmp_settings):
    store = MemoryKeyValueStore()
    central = FakeCentral()
    ctx = bootstrap.build_context(AppSettingsManager(), store=store, container_size=(400.0, 400.0),
                                  central=central, beacon_targets=["14-jazzyWombat"])

    assert ctx.scanner.estimator is ctx.ranging
    assert [b.name for b in ctx.beacons.available] == ["14-jazzyWombat"]

    ctx.beacons.arm(ctx.beacons.available[0])
    ctx.orchestrator.tap((100.0, 200.0))
    assert ctx.beacons.placed[0].position.as_tuple() == pytest.approx((0.25, 0.5))
    assert store.get(BEACON_KEY) is not None

    ctx.measurements.start_creating()
    ctx.orchestrator.tap((200.0, 200.0))
    assert len(ctx.measurements.measurements) == 1
    assert len(ctx.beacons.placed) == 1

    ctx.scanner.start()
    bootstrap.shutdown(ctx)
    assert central.scans_stopped == 1
