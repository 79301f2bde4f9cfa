from __future__ import annotations
from dataclasses import dataclass, asdict, field
from enum import Enum
from typing import Any, Callable, Dict
from PySide6.QtCore import QSettings
import logging

from navmap.core.viewport_state import ViewportConfig
from navmap.sensors.beacon_ranging import RangingConfig
from navmap.sensors.heading_smoother import HeadingConfig

logger = logging.getLogger(__name__)


class RunMode(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    VERBOSE = "verbose"

    def __str__(self):
        return self.value
    def __repr__(self):
        return self.value


# ----------------------
# Defaults
# ----------------------
DEFAULTS: Dict[str, Any] = {
    "general": {
        "run_mode": RunMode.PRODUCTION.value,
        "logging_level": "INFO",  # "DEBUG", "INFO", "WARNING", "ERROR"
    },
    "viewport": {
        "min_scale": 0.5,
        "max_scale": 3.0,
        "max_offset": 500.0,
        "pan_threshold": 10.0,
        "initial_rotation_deg": 0.0,
    },
    "heading": {
        "smoothing_factor": 0.15,
        "max_accuracy_deg": 25.0,
        "warning_accuracy_deg": 15.0,
    },
    "beacon": {
        "calibrated_rssi_at_1m": -80.0,
        "base_distance_m": 1.25,
        "slot1_tx_compensation_db": 12.0,
        "max_rssi_change": 25,
        "smoothing_factor": 0.7,
        "reject_outliers": True,
    },
}

SECTIONS = tuple(DEFAULTS)

# ---------------------
# Data model
# ---------------------
@dataclass
class GeneralConfig:
    run_mode: RunMode = RunMode.PRODUCTION
    logging_level: str = "INFO"

@dataclass
class ViewportSettings:
    min_scale: float = 0.5
    max_scale: float = 3.0
    max_offset: float = 500.0
    pan_threshold: float = 10.0
    initial_rotation_deg: float = 0.0

@dataclass
class HeadingSettings:
    smoothing_factor: float = 0.15
    max_accuracy_deg: float = 25.0
    warning_accuracy_deg: float = 15.0

@dataclass
class BeaconSettings:
    calibrated_rssi_at_1m: float = -80.0
    base_distance_m: float = 1.25
    slot1_tx_compensation_db: float = 12.0
    max_rssi_change: int = 25
    smoothing_factor: float = 0.7
    reject_outliers: bool = True

@dataclass
class AppSettingsData:
    general: GeneralConfig = field(default_factory=GeneralConfig)
    viewport: ViewportSettings = field(default_factory=ViewportSettings)
    heading: HeadingSettings = field(default_factory=HeadingSettings)
    beacon: BeaconSettings = field(default_factory=BeaconSettings)

# ----------------------
# Validators
# ----------------------
def _truthy(s: str) -> bool:
    return s.strip().lower() in ("1", "true", "yes", "on")


def _validate_run_mode(v: Any) -> RunMode:
    if isinstance(v, RunMode):
        return v
    mode = str(v).strip().lower()
    try:
        return RunMode(mode)
    except ValueError:
        return RunMode(DEFAULTS["general"]["run_mode"])

def _validate_logging_level(v: str) -> str:
    v = str(v).upper()
    return v if v in ("DEBUG", "INFO", "WARNING", "ERROR") else "INFO"

def _float_in(lo: float, hi: float, *, lo_open: bool = False) -> Callable[[Any, float], float]:
    """Build a validator accepting floats in [lo, hi] (or (lo, hi] when lo_open)."""
    def validate(v: Any, default: float) -> float:
        try:
            f = float(v)
        except (TypeError, ValueError):
            return default
        if f != f:
            return default
        ok = (lo < f if lo_open else lo <= f) and f <= hi
        return f if ok else default
    return validate

def _int_in(lo: int, hi: int) -> Callable[[Any, int], int]:
    def validate(v: Any, default: int) -> int:
        try:
            i = int(float(v))
        except (TypeError, ValueError):
            return default
        return i if lo <= i <= hi else default
    return validate

def _validate_bool(v: Any, default: bool) -> bool:
    if isinstance(v, bool):
        return v
    if v is None:
        return default
    return _truthy(str(v))


VALIDATORS: Dict[str, Dict[str, Callable[[Any, Any], Any]]] = {
    "viewport": {
        "min_scale": _float_in(0.0, 100.0, lo_open=True),
        "max_scale": _float_in(0.0, 100.0, lo_open=True),
        "max_offset": _float_in(0.0, 100_000.0),
        "pan_threshold": _float_in(0.0, 200.0),
        "initial_rotation_deg": _float_in(-360.0, 360.0),
    },
    "heading": {
        "smoothing_factor": _float_in(0.0, 1.0, lo_open=True),
        "max_accuracy_deg": _float_in(0.0, 180.0),
        "warning_accuracy_deg": _float_in(0.0, 180.0),
    },
    "beacon": {
        "calibrated_rssi_at_1m": _float_in(-127.0, 0.0),
        "base_distance_m": _float_in(0.0, 100.0, lo_open=True),
        "slot1_tx_compensation_db": _float_in(-40.0, 40.0),
        "max_rssi_change": _int_in(1, 100),
        "smoothing_factor": _float_in(0.0, 0.99),
        "reject_outliers": _validate_bool,
    },
}


# ---------------------
# AppSettingManager
# ---------------------
class AppSettingsManager:
    """
    Application settings.
    Starts from the in-code DEFAULTS and applies QSettings overrides.
    Values are validated on load; out-of-range values fall back to the default.
    set_* persists to QSettings immediately.
    """
    def __init__(self, org_domain: str = "NavMap.org", app_name: str = "NavMap"):
        self._settings = QSettings(org_domain, app_name)
        self._data = self._load_effective()

    # Read
    @property
    def data(self) -> AppSettingsData:
        return self._data

    @property
    def run_mode(self) -> RunMode:
        return self._data.general.run_mode

    @property
    def dev_mode(self) -> bool:
        return self.run_mode is RunMode.DEVELOPMENT

    @property
    def logging_level(self) -> str:
        return self._data.general.logging_level

    def viewport_config(self) -> ViewportConfig:
        vw = self._data.viewport
        min_scale, max_scale = vw.min_scale, vw.max_scale
        if min_scale > max_scale:
            logger.warning("viewport min_scale %s > max_scale %s; using defaults", min_scale, max_scale)
            min_scale = DEFAULTS["viewport"]["min_scale"]
            max_scale = DEFAULTS["viewport"]["max_scale"]
        return ViewportConfig(
            min_scale=min_scale,
            max_scale=max_scale,
            max_offset=vw.max_offset,
            pan_threshold=vw.pan_threshold,
            initial_rotation=vw.initial_rotation_deg,
        )

    def heading_config(self) -> HeadingConfig:
        return HeadingConfig(**asdict(self._data.heading))

    def ranging_config(self) -> RangingConfig:
        return RangingConfig(**asdict(self._data.beacon))

    # Write
    def set_run_mode(self, v: str | RunMode) -> None:
        mode = _validate_run_mode(v)
        self._settings.setValue("general/run_mode", mode.value)
        self._data.general.run_mode = mode

    def set_logging_level(self, v: str) -> None:
        level = _validate_logging_level(v)
        self._settings.setValue("general/logging_level", level)
        self._data.general.logging_level = level

    def set_value(self, section: str, key: str, v: Any) -> Any:
        """
        Validate and persist a value of the viewport/heading/beacon sections.

        :return: the stored value (the current one if v is invalid)
        """
        validator = VALIDATORS.get(section, {}).get(key)
        if validator is None:
            raise KeyError(f"Unknown setting: {section}/{key}")
        model = getattr(self._data, section)
        value = validator(v, getattr(model, key))
        self._settings.setValue(f"{section}/{key}", value)
        setattr(model, key, value)
        return value

    # Reset
    def reset_all_to_default(self) -> None:
        for section in SECTIONS:
            self._settings.remove(section)
        self._data = self._load_effective()

    def reset_section(self, section: str) -> None:
        if section not in SECTIONS:
            raise ValueError(f"Invalid section: {section}")
        self._settings.remove(section)
        self._data = self._load_effective()

    def to_dict(self) -> dict[str, Any]:
        data = {section: asdict(getattr(self._data, section)) for section in SECTIONS}
        data["general"]["run_mode"] = self._data.general.run_mode.value
        return data

    # ---------- internal ---------------
    def _load_effective(self) -> AppSettingsData:
        """Merge QSettings overrides into DEFAULTS, validate and build the model."""
        merged = self._apply_qsettings_overrides(DEFAULTS)
        return self._make_model_from(merged)

    def _apply_qsettings_overrides(self, base: dict[str, Any]) -> dict[str, Any]:
        g = dict(base.get("general", {}))
        v = self._settings.value("general/run_mode", None)
        if v is not None:
            g["run_mode"] = _validate_run_mode(v).value
        v = self._settings.value("general/logging_level", None)
        if v is not None:
            g["logging_level"] = _validate_logging_level(v)

        merged: dict[str, Any] = {"general": g}
        for section, validators in VALIDATORS.items():
            values = dict(base.get(section, {}))
            for key, validate in validators.items():
                v = self._settings.value(f"{section}/{key}", None)
                if v is not None:
                    values[key] = validate(v, values[key])
            merged[section] = values
        return merged

    def _make_model_from(self, merged: dict[str, Any]) -> AppSettingsData:
        g = merged.get("general", {})
        return AppSettingsData(
            general=GeneralConfig(
                run_mode=_validate_run_mode(g.get("run_mode", DEFAULTS["general"]["run_mode"])),
                logging_level=_validate_logging_level(g.get("logging_level", DEFAULTS["general"]["logging_level"])),
            ),
            viewport=ViewportSettings(**merged["viewport"]),
            heading=HeadingSettings(**merged["heading"]),
            beacon=BeaconSettings(**merged["beacon"]),
        )
