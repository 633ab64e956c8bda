"""Interpret normaliser results into geocode fields.

Normalisers disagree on where coordinates live (top level or under ``point``)
and what they are called. Each field is read through an ordered list of key
paths; the first path holding a finite number wins.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Sequence

from store_geocoder.common.coerce import as_int, as_number, as_str
from store_geocoder.common.constants import ERROR_POINT_MISSING
from store_geocoder.common.models import GeocodeFields

KeyPath = Sequence[str]

LAT_RULES: tuple[KeyPath, ...] = (
    ("point", "lat"),
    ("point", "latitude"),
    ("lat",),
    ("latitude",),
)
LNG_RULES: tuple[KeyPath, ...] = (
    ("point", "lng"),
    ("point", "lon"),
    ("point", "longitude"),
    ("lng",),
    ("lon",),
    ("longitude",),
)
LEVEL_RULES: tuple[KeyPath, ...] = (("level",),)
# Point precision must never fall back to the administrative level.
POINT_LEVEL_RULES: tuple[KeyPath, ...] = (
    ("point", "level"),
    ("pointLevel",),
)
ADDRESS_COMPONENTS = ("pref", "city", "town", "addr", "other")


def _lookup(result: Mapping[str, Any], path: KeyPath) -> Any:
    current: Any = result
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def first_match(
    result: Mapping[str, Any],
    rules: Sequence[KeyPath],
    coerce: Callable[[Any], Any] = as_number,
) -> Any:
    for path in rules:
        value = coerce(_lookup(result, path))
        if value is not None:
            return value
    return None


def normalized_address_from_result(result: Mapping[str, Any]) -> str | None:
    parts = []
    for key in ADDRESS_COMPONENTS:
        value = result.get(key)
        if isinstance(value, str) and value.strip():
            parts.append(value.strip())
    if parts:
        return "".join(parts)

    fallback = result.get("address")
    if isinstance(fallback, str) and fallback.strip():
        return fallback.strip()
    return None


def geocode_fields_from_result(result: Mapping[str, Any] | None) -> GeocodeFields:
    result = result if isinstance(result, Mapping) else {}
    fields = GeocodeFields(
        address_norm=normalized_address_from_result(result),
        point_lat=first_match(result, LAT_RULES),
        point_lng=first_match(result, LNG_RULES),
        level=first_match(result, LEVEL_RULES, as_int),
        point_level=first_match(result, POINT_LEVEL_RULES, as_int),
        pref=as_str(result.get("pref")),
        city=as_str(result.get("city")),
        town=as_str(result.get("town")),
        addr=as_str(result.get("addr")),
        other=as_str(result.get("other")),
    )
    if not fields.has_point:
        return fields.with_error(ERROR_POINT_MISSING)
    return fields
