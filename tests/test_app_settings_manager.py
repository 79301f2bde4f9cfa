from pathlib import Path

import pytest
from PySide6.QtCore import QSettings

from navmap.app.app_settings_manager import DEFAULTS, AppSettingsManager, RunMode
from navmap.core.viewport_state import ViewportConfig
from navmap.sensors.beacon_ranging import RangingConfig
from navmap.sensors.heading_smoother import HeadingConfig
from navmap.storage.kv_store import QSettingsKeyValueStore


@pytest.fixture
def tmp_settings(tmp_path: Path):
    """Point QSettings at an INI file in a temporary folder."""
    QSettings.setDefaultFormat(QSettings.IniFormat)
    QSettings.setPath(QSettings.IniFormat, QSettings.UserScope, str(tmp_path))
    s = QSettings("NavMap.org", "NavMap")
    s.clear()
    yield s
    s.clear()


def test_defaults_without_overrides(tmp_settings):
    mgr = AppSettingsManager()

    assert mgr.run_mode is RunMode.PRODUCTION
    assert not mgr.dev_mode
    assert mgr.logging_level == "INFO"
    assert mgr.viewport_config() == ViewportConfig()
    assert mgr.heading_config() == HeadingConfig()
    assert mgr.ranging_config() == RangingConfig()
    assert mgr.to_dict() == DEFAULTS


def test_overrides_are_applied_and_validated(tmp_settings):
    tmp_settings.setValue("general/run_mode", "Development")
    tmp_settings.setValue("general/logging_level", "debug")
    tmp_settings.setValue("viewport/max_scale", "5")
    tmp_settings.setValue("viewport/pan_threshold", "not a number")
    tmp_settings.setValue("heading/smoothing_factor", "0.3")
    tmp_settings.setValue("beacon/max_rssi_change", "30")
    tmp_settings.setValue("beacon/reject_outliers", "false")
    tmp_settings.sync()

    mgr = AppSettingsManager()

    assert mgr.run_mode is RunMode.DEVELOPMENT
    assert mgr.dev_mode
    assert mgr.logging_level == "DEBUG"
    assert mgr.viewport_config().max_scale == 5.0
    assert mgr.viewport_config().pan_threshold == 10.0
    assert mgr.heading_config().smoothing_factor == 0.3
    assert mgr.ranging_config().max_rssi_change == 30
    assert mgr.ranging_config().reject_outliers is False


def test_invalid_values_fall_back_to_defaults(tmp_settings):
    tmp_settings.setValue("general/run_mode", "chaos")
    tmp_settings.setValue("general/logging_level", "LOUD")
    tmp_settings.setValue("heading/smoothing_factor", "0")
    tmp_settings.setValue("beacon/smoothing_factor", "1.0")
    tmp_settings.sync()

    mgr = AppSettingsManager()

    assert mgr.run_mode is RunMode.PRODUCTION
    assert mgr.logging_level == "INFO"
    assert mgr.heading_config().smoothing_factor == 0.15
    assert mgr.ranging_config().smoothing_factor == 0.7


def test_inverted_scale_range_uses_defaults(tmp_settings):
    tmp_settings.setValue("viewport/min_scale", "4")
    tmp_settings.setValue("viewport/max_scale", "2")
    tmp_settings.sync()

    config = AppSettingsManager().viewport_config()
    assert (config.min_scale, config.max_scale) == (0.5, 3.0)


def test_setters_persist(tmp_settings):
    mgr = AppSettingsManager()
    mgr.set_run_mode(RunMode.VERBOSE)
    mgr.set_logging_level("warning")
    assert mgr.set_value("viewport", "max_offset", 800) == 800.0
    assert mgr.set_value("beacon", "smoothing_factor", 7) == 0.7

    reloaded = AppSettingsManager()
    assert reloaded.run_mode is RunMode.VERBOSE
    assert reloaded.logging_level == "WARNING"
    assert reloaded.viewport_config().max_offset == 800.0

    with pytest.raises(KeyError):
        mgr.set_value("viewport", "zoom_speed", 2)


def test_reset_section_and_all(tmp_settings):
    mgr = AppSettingsManager()
    mgr.set_value("viewport", "max_scale", 4.0)
    mgr.set_value("heading", "max_accuracy_deg", 40.0)

    mgr.reset_section("viewport")
    assert mgr.viewport_config().max_scale == 3.0
    assert mgr.heading_config().max_accuracy_deg == 40.0

    mgr.reset_all_to_default()
    assert mgr.heading_config().max_accuracy_deg == 25.0

    with pytest.raises(ValueError):
        mgr.reset_section("unknown")


def test_qsettings_key_value_store(tmp_settings):
    store = QSettingsKeyValueStore()
    assert store.get("placedBeacons") is None

    store.set("placedBeacons", b'[{"name": "a"}]')
    assert QSettingsKeyValueStore().get("placedBeacons") == b'[{"name": "a"}]'

    tmp_settings.setValue("store/broken", "***")
    assert store.get("broken") is None

    store.remove("placedBeacons")
    assert store.get("placedBeacons") is None
