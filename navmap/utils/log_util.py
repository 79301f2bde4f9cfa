import functools
import inspect
import logging
import time
from typing import Any, Callable


logger = logging.getLogger('navmap')

_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _safe_repr(x, maxlen=120):
    try:
        r = repr(x)
    except Exception:
        r = '<repr error>'
    if len(r) > maxlen:
        r = r[:maxlen] + '...'
    return r


def _format_call(signature: inspect.Signature, args: tuple, kwargs: dict, mask: tuple[str, ...]) -> str:
    """Render bound call arguments as name=value pairs, skipping self/cls."""
    try:
        bound = signature.bind(*args, **kwargs)
    except TypeError:
        return ", ".join(_safe_repr(a) for a in args)
    parts = []
    for name, value in bound.arguments.items():
        if name in ("self", "cls"):
            continue
        parts.append(f"{name}={'***' if name in mask else _safe_repr(value)}")
    return ", ".join(parts)


def log_io(level: int = logging.DEBUG, mask: tuple[str, ...] = (), slow_ms: float | None = None):
    """
    Log the arguments, result and elapsed time of a call.

    :param level: level for the call/return records.
    :param mask: argument names whose values are logged as ***.
    :param slow_ms: if given, calls slower than this are logged at WARNING.
    :return: decorator
    """
    def deco(func: Callable):
        qualname = f"{func.__module__}.{func.__qualname__}"
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            if logger.isEnabledFor(level):
                logger.log(level, "-> %s(%s)", qualname, _format_call(signature, args, kwargs, mask))

            t0 = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception:
                logger.exception("Exception in %s", qualname)
                raise
            dt = (time.perf_counter() - t0) * 1000.0

            if slow_ms is not None and dt > slow_ms:
                logger.warning("Slow call %s: %0.1f ms (limit %0.1f ms)", qualname, dt, slow_ms)
            if logger.isEnabledFor(level):
                logger.log(level, "<- %s [%0.1f ms] = %s", qualname, dt, _safe_repr(result))
            return result
        return wrapper
    return deco


def level_from_name(value: Any, default: int = logging.INFO) -> int:
    """
    Normalize a level name or number to a logging level.
    Unknown values fall back to default.
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        s = value.strip()
        if s.isdigit():
            return int(s)
        if s.upper() in _VALID_LEVELS:
            return getattr(logging, s.upper())
    return default
