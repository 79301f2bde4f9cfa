from __future__ import annotations

import faulthandler
import logging
import os
import queue
import sys
import traceback
from dataclasses import dataclass
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path

from navmap.app.app_settings_manager import AppSettingsManager, RunMode
from navmap.utils.log_util import level_from_name


@dataclass(frozen=True)
class LogPaths:
    log_file: Path
    crash_file: Path
    log_dir: Path


def _project_root_from_package() -> Path:
    # navmap/app/logging_setup.py -> parents[2] is the project root.
    return Path(__file__).resolve().parents[2]


def _app_base_dir() -> Path:
    """Executable directory when frozen, project root in development."""
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return _project_root_from_package()


def _find_writable_log_dir(app_name: str) -> Path:
    """
    First, app_base_dir/logs
    Second, user's home directory
    Finally, current directory
    """
    candidates = [
        _app_base_dir() / "logs",
        Path.home() / f".{app_name.lower()}" / "logs",
    ]
    for d in candidates:
        try:
            d.mkdir(parents=True, exist_ok=True)
            test = d / ".write_test"
            test.write_text("ok", encoding="utf-8")
            test.unlink(missing_ok=True)
            return d
        except OSError:
            continue
    d = Path.cwd() / "logs"
    d.mkdir(parents=True, exist_ok=True)
    return d


def setup_startup_logging(
        app_name: str,
        *,
        level_file: int = logging.DEBUG,
        level_console: int = logging.INFO,
        max_bytes: int = 2_000_000,
        backup_count: int = 5,
        log_dir: Path | None = None,
    ) -> LogPaths:
    """
    Startup logging setup.
    - Rotating file handler
    - uncaught exception logging
    - faulthandler (crash logging)
    """
    log_dir = log_dir or _find_writable_log_dir(app_name)
    log_file = log_dir / f"{app_name}.log"
    crash_file = log_dir / f"{app_name}.crash.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Prevent duplicate registration of handlers.
    if root.handlers:
        root.handlers.clear()

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    fh = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    fh.setLevel(level_file)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(level_console)
    ch.setFormatter(fmt)
    root.addHandler(ch)

    try:
        crash_file.parent.mkdir(parents=True, exist_ok=True)
        f = open(crash_file, "w", encoding="utf-8")
        faulthandler.enable(file=f)
        # Keep the file object alive for faulthandler.
        root._navmap_crash_fh = f
    except OSError as e:
        logging.warning("Crash log unavailable: %s", e)

    def _excepthook(exc_type, exc, tb):
        logging.critical(
            "Uncaught exception: \n%s",
            "".join(traceback.format_exception(exc_type, exc, tb)),
        )

    sys.excepthook = _excepthook

    logging.info("=================================================")
    logging.info("%s starting...", app_name)
    logging.info("frozen=%s", getattr(sys, "frozen", False))
    logging.info("sys.executable=%s", sys.executable)
    logging.info("cwd=%s", os.getcwd())
    logging.info("log_file=%s", log_file)
    logging.info("crash_file=%s", crash_file)
    logging.info("=================================================")

    return LogPaths(log_file=log_file, crash_file=crash_file, log_dir=log_dir)


def default_log_dir(app_name: str) -> Path:
    base = Path.home() / f".{app_name.lower()}" / "logs"
    base.mkdir(parents=True, exist_ok=True)
    return base


def build_config(app_name: str, level: str | None = None, log_dir: Path | None = None) -> dict:
    """Build a logging config dict."""
    level = level or os.getenv("NAVMAP_LOG_LEVEL", "INFO").upper()
    log_dir = log_dir or default_log_dir(app_name)
    log_file = str(log_dir / f"{app_name}.log")

    fmt = "%(asctime)s.%(msecs)03dZ %(levelname)s %(process)d %(threadName)s %(name)s %(message)s"
    datefmt = "%Y-%m-%dT%H:%M:%S"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {"format": fmt, "datefmt": datefmt},
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "standard", "level": "INFO"},
        },
        "root": {"level": level, "handlers": ["console"]},
        # written on the listener side of the queue
        "_file_settings": {
            "filename": log_file,
            "maxBytes": 1024 * 1024 * 5,
            "backupCount": int(os.getenv("NAVMAP_LOG_BACKUP_COUNT", 5)),
            "encoding": "utf-8",
            "format": fmt,
            "datefmt": datefmt,
        },
    }


class LogSystem:
    """
    Root logger -> QueueHandler -> QueueListener -> RotatingFileHandler,
    plus a console handler on the root logger.
    """
    def __init__(self, app_name: str, level: str | None = None, log_dir: Path | None = None):
        cfg = build_config(app_name, level, log_dir)
        fmt_cfg = cfg["formatters"]["standard"]
        formatter = logging.Formatter(fmt_cfg["format"], fmt_cfg["datefmt"])

        root = logging.getLogger()
        for h in list(root.handlers):
            root.removeHandler(h)
        root.setLevel(level_from_name(cfg["root"]["level"]))

        self._queue: queue.Queue = queue.Queue(-1)
        self._queue_handler = QueueHandler(self._queue)
        root.addHandler(self._queue_handler)

        self._console_handler = logging.StreamHandler()
        self._console_handler.setFormatter(formatter)
        self._console_handler.setLevel(level_from_name(cfg["handlers"]["console"]["level"]))
        root.addHandler(self._console_handler)

        file_settings = cfg["_file_settings"]
        self._file_handler = RotatingFileHandler(
            file_settings["filename"],
            maxBytes=file_settings["maxBytes"],
            backupCount=file_settings["backupCount"],
            encoding=file_settings["encoding"],
        )
        self._file_handler.setFormatter(logging.Formatter(file_settings["format"], file_settings["datefmt"]))
        self.log_file = Path(file_settings["filename"])

        self.listener = QueueListener(self._queue, self._file_handler, respect_handler_level=True)
        self.listener.start()
        self._stopped = False

    @classmethod
    def from_levels(cls,
                    app_name: str,
                    root_level: int,
                    console_level: int,
                    file_level: int = logging.DEBUG,
                    log_dir: Path | None = None) -> LogSystem:
        logs = cls(app_name, logging.getLevelName(root_level), log_dir)
        logs.apply_levels(root_level, console_level=console_level, file_level=file_level)
        return logs

    def apply_levels(self, root_level: int, console_level: int | None = None, file_level: int | None = None) -> None:
        """Update log levels after startup."""
        logging.getLogger().setLevel(root_level)
        if console_level is not None:
            self._console_handler.setLevel(console_level)
        if file_level is not None:
            self._file_handler.setLevel(file_level)

    def stop(self) -> None:
        """Flush the queue and detach every handler this system installed."""
        if self._stopped:
            return
        self._stopped = True
        self.listener.stop()
        root = logging.getLogger()
        for h in (self._queue_handler, self._console_handler):
            root.removeHandler(h)
            h.close()
        self._file_handler.flush()
        self._file_handler.close()


def apply_logging_policy(logs: LogSystem, settings: AppSettingsManager) -> None:
    """Switch log levels according to the run mode and the configured level."""
    mode = settings.run_mode
    if mode == RunMode.DEVELOPMENT or mode == RunMode.VERBOSE:
        console = logging.DEBUG
    else:
        console = level_from_name(settings.logging_level, logging.INFO)

    logs.apply_levels(root_level=logging.DEBUG, console_level=console, file_level=logging.DEBUG)
