"""Tolerant loading of JSON record lists from a key-value store."""
from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

from navmap.core import geometry_utils
from navmap.storage.kv_store import KeyValueStore

_log = logging.getLogger(__name__)

NUMBER = (int, float)


class RecordsError(RuntimeError):
    """Raised when strict record loading fails (dev/CI)."""


def _fail(
        msg: str,
        *,
        strict: bool,
        warnings: list[str],
        logger: Any = None,
        exc: Exception | None = None,
) -> None:
    """Record a warning and log it, or raise RecordsError when strict=True."""
    if strict:
        raise RecordsError(msg) from exc
    warnings.append(msg)
    (logger or _log).warning(msg)


def encode_records(records: list[Mapping[str, Any]]) -> bytes:
    """Serialize a list of records as UTF-8 JSON."""
    return json.dumps(list(records), ensure_ascii=False).encode("utf-8")


def write_records(store: KeyValueStore, key: str, records: list[Mapping[str, Any]]) -> None:
    store.set(key, encode_records(records))


def read_records(
        store: KeyValueStore,
        key: str,
        *,
        strict: bool = False,
        warnings: Optional[list[str]] = None,
        logger: Any = None,
) -> list[dict[str, Any]]:
    """
    Read a JSON list of records stored under key.

    Behavior:
    - missing key -> empty list (nothing saved yet)
    - strict=True: undecodable value, non-list or non-object entries -> raise RecordsError
    - strict=False: bad entries are skipped individually and a warning is recorded
    """
    warnings = warnings if warnings is not None else []
    raw = store.get(key)
    if raw is None:
        (logger or _log).debug("No saved records under %s", key)
        return []

    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        _fail(f"Failed to parse records under {key}: ({e})",
              strict=strict, warnings=warnings, logger=logger, exc=e)
        return []

    if not isinstance(data, list):
        _fail(f"Records under {key} must be a list, got {type(data).__name__}",
              strict=strict, warnings=warnings, logger=logger)
        return []

    records = []
    for index, item in enumerate(data):
        if isinstance(item, dict):
            records.append(item)
        else:
            _fail(f"Skipping record {index} under {key}: not an object",
                  strict=strict, warnings=warnings, logger=logger)
    return records


def typed_fields(record: Mapping[str, Any], schema: Mapping[str, type | tuple[type, ...]]) -> dict[str, Any] | None:
    """
    Extract fields of a record according to a schema of expected types.

    Booleans are not accepted as numbers, and numbers must be finite
    (json accepts NaN and Infinity).

    :return: Field values, or None if any field is missing or has the wrong type
    """
    out: dict[str, Any] = {}
    for name, expected in schema.items():
        if name not in record:
            return None
        value = record[name]
        if isinstance(value, bool) and expected is not bool:
            return None
        if not isinstance(value, expected):
            return None
        if isinstance(value, (int, float)) and not geometry_utils.is_finite(value):
            return None
        out[name] = value
    return out
