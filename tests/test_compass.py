import json

import pytest

from navmap.controllers.compass_lock import LOCK_KEY, CompassLock
from navmap.controllers.gesture_orchestrator import GestureOrchestrator
from navmap.core.viewport_transform import ViewportTransform
from navmap.sensors.compass import Compass, HeadingSample, select_heading
from navmap.storage.kv_store import MemoryKeyValueStore


class FakeProvider:
    def __init__(self, available=True):
        self.available = available
        self.started = 0
        self.stopped = 0

    def is_available(self):
        return self.available

    def start(self):
        self.started += 1

    def stop(self):
        self.stopped += 1


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def compass(provider):
    c = Compass(provider)
    c.start()
    return c


def test_select_heading_prefers_true_north_with_fix():
    sample = HeadingSample(magnetic_heading_deg=100.0, accuracy_deg=5.0, true_heading_deg=104.0)
    assert select_heading(sample, has_location_fix=False) == (100.0, False)
    assert select_heading(sample, has_location_fix=True) == (104.0, True)

    no_true = HeadingSample(magnetic_heading_deg=100.0, accuracy_deg=5.0, true_heading_deg=-1.0)
    assert select_heading(no_true, has_location_fix=True) == (100.0, False)


def test_start_unavailable_provider_reports_unavailable():
    provider = FakeProvider(available=False)
    compass = Compass(provider)
    changes = []
    compass.add_availability_callback(changes.append)

    assert compass.start() is False
    assert not compass.available
    assert not compass.is_running
    assert provider.started == 0
    assert changes == [False]


def test_start_and_stop(compass, provider):
    assert compass.is_running
    assert provider.started == 1
    compass.stop()
    compass.stop()
    assert provider.stopped == 1


def test_handle_sample_notifies_readings(compass):
    readings = []
    compass.add_reading_callback(readings.append)

    compass.handle_sample(HeadingSample(90.0, 5.0))
    compass.on_location_fix()
    reading = compass.handle_sample(HeadingSample(90.0, 20.0, true_heading_deg=100.0))

    assert len(readings) == 2
    assert reading.accepted
    assert reading.is_using_true_north
    assert reading.accuracy_warning
    assert reading.smoothed_heading == pytest.approx(90.0 + 0.15 * 10.0)
    assert compass.is_using_true_north


def test_rejected_sample_keeps_last_values(compass):
    compass.handle_sample(HeadingSample(45.0, 5.0))
    reading = compass.handle_sample(HeadingSample(300.0, 40.0))

    assert not reading.accepted
    assert compass.raw_heading == 45.0
    assert compass.accuracy == 5.0
    assert compass.smoothed_heading == 45.0


def test_restart_resets_smoothing(compass):
    compass.handle_sample(HeadingSample(45.0, 5.0))
    compass.stop()
    compass.start()
    assert compass.handle_sample(HeadingSample(200.0, 5.0)).smoothed_heading == 200.0


def test_debug_info(compass):
    compass.handle_sample(HeadingSample(92.0, 5.0))
    assert compass.debug_info == "Raw: 92.0° | Smoothed: 92.0° | Accuracy: 5.0° | Magnetic North"


def test_handle_error_keeps_heading(compass, caplog):
    compass.handle_sample(HeadingSample(10.0, 5.0))
    compass.handle_error(RuntimeError("sensor glitch"))
    assert compass.smoothed_heading == 10.0
    assert "sensor glitch" in caplog.text


# ---------- compass lock ----------

def _accepted(compass, heading, accuracy=5.0):
    return compass.handle_sample(HeadingSample(heading, accuracy))


def test_lock_follows_heading_with_captured_delta(compass):
    viewport = ViewportTransform()
    viewport.set_rotation(30.0)
    orchestrator = GestureOrchestrator(viewport, (400.0, 400.0))
    lock = CompassLock(viewport, orchestrator)
    compass.add_reading_callback(lock.handle_reading)

    _accepted(compass, 100.0)
    assert lock.toggle(compass.smoothed_heading) is True
    assert lock.map_heading_delta == pytest.approx(70.0)
    assert orchestrator.rotation_enabled is False

    _accepted(compass, 120.0)
    assert viewport.rotation == pytest.approx(compass.smoothed_heading - 70.0)

    assert lock.toggle(compass.smoothed_heading) is False
    assert orchestrator.rotation_enabled is True
    rotation = viewport.rotation
    _accepted(compass, 200.0)
    assert viewport.rotation == rotation


def test_lock_pauses_on_poor_accuracy(compass):
    viewport = ViewportTransform()
    lock = CompassLock(viewport)
    compass.add_reading_callback(lock.handle_reading)

    _accepted(compass, 50.0)
    lock.toggle(50.0)

    compass.handle_sample(HeadingSample(180.0, 60.0))
    assert lock.is_paused
    assert viewport.rotation == 0.0

    _accepted(compass, 60.0)
    assert not lock.is_paused
    assert viewport.rotation == pytest.approx(compass.smoothed_heading - 50.0)


def test_lock_refuses_non_finite_heading():
    lock = CompassLock(ViewportTransform())
    assert lock.toggle(float("nan")) is False
    assert not lock.is_locked


def test_lock_state_is_persisted_and_restored():
    store = MemoryKeyValueStore()
    viewport = ViewportTransform()
    lock = CompassLock(viewport, store=store)
    lock.toggle(45.0)

    assert json.loads(store.get(LOCK_KEY)) == {"isCompassLocked": True, "mapHeadingDelta": 45.0}

    orchestrator = GestureOrchestrator(ViewportTransform())
    restored = CompassLock(ViewportTransform(), orchestrator, store)
    assert restored.is_locked
    assert restored.map_heading_delta == 45.0
    assert orchestrator.rotation_enabled is False

    restored.reset()
    assert json.loads(store.get(LOCK_KEY)) == {"isCompassLocked": False, "mapHeadingDelta": 0.0}


@pytest.mark.parametrize("raw", [b"not json", b"[1, 2]", b'{"isCompassLocked": "yes", "mapHeadingDelta": true}'])
def test_lock_ignores_bad_persisted_state(raw):
    lock = CompassLock(ViewportTransform(), store=MemoryKeyValueStore({LOCK_KEY: raw}))
    assert not lock.is_locked
    assert lock.map_heading_delta == 0.0
