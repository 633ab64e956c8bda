"""Identifier validation and staging table naming."""

from __future__ import annotations

import re

from store_geocoder.common.errors import ConfigError
from store_geocoder.common.time_utils import utc_epoch_ms

_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9_]+$")
_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9_]")


def sanitize_id(value: str, label: str) -> str:
    if not isinstance(value, str) or not _SAFE_ID_RE.match(value):
        raise ConfigError(f"invalid {label}: {value}")
    return value


def build_temp_table_name(dataset: str, table: str, suffix: str | None = None) -> str:
    safe_dataset = sanitize_id(dataset, "dataset")
    safe_table = sanitize_id(table, "table")
    stamp = suffix or str(utc_epoch_ms())
    normalized = _UNSAFE_CHARS_RE.sub("_", str(stamp))
    return f"{safe_dataset}._tmp_{safe_table}_{normalized}"
