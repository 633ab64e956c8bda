"""Geocoded NDJSON export."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from store_geocoder.common.fs import write_ndjson
from store_geocoder.common.models import OutputRow


def write_output_ndjson(path: Path, rows: Iterable[OutputRow]) -> Path | None:
    """Write one row per line; an empty batch leaves no file behind."""
    serialized = [row.to_dict() for row in rows]
    if not serialized:
        return None
    write_ndjson(path, serialized)
    return path
