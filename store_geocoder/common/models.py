"""Data models used across the pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Mapping

from store_geocoder.common.coerce import as_int, as_number, as_str
from store_geocoder.common.constants import OUTPUT_COLUMNS


@dataclass(frozen=True)
class GeocodeFields:
    """Geography resolved for one raw address; also the address cache entry."""

    address_norm: str | None = None
    point_lat: float | None = None
    point_lng: float | None = None
    level: int | None = None
    point_level: int | None = None
    geocode_error: str | None = None
    pref: str | None = None
    city: str | None = None
    town: str | None = None
    addr: str | None = None
    other: str | None = None

    @classmethod
    def failure(cls, message: str) -> "GeocodeFields":
        return cls(geocode_error=message)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "GeocodeFields":
        """Rebuild fields from a previously written row, re-coercing numeric columns."""
        return cls(
            address_norm=as_str(row.get("address_norm")),
            point_lat=as_number(row.get("point_lat")),
            point_lng=as_number(row.get("point_lng")),
            level=as_int(row.get("level")),
            point_level=as_int(row.get("point_level")),
            geocode_error=as_str(row.get("geocode_error")),
            pref=as_str(row.get("pref")),
            city=as_str(row.get("city")),
            town=as_str(row.get("town")),
            addr=as_str(row.get("addr")),
            other=as_str(row.get("other")),
        )

    @property
    def has_point(self) -> bool:
        return self.point_lat is not None and self.point_lng is not None

    def with_error(self, message: str | None) -> "GeocodeFields":
        return replace(self, geocode_error=message)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


GEOCODE_FIELD_NAMES = tuple(field.name for field in fields(GeocodeFields))


@dataclass(frozen=True)
class OutputRow:
    chain: str
    store_id: str
    address_raw: str | None
    geocode_engine: str
    engine_version: str | None
    geocoded_at: str
    geocode: GeocodeFields

    def to_dict(self) -> dict[str, Any]:
        flat = {
            "chain": self.chain,
            "store_id": self.store_id,
            "address_raw": self.address_raw,
            "geocode_engine": self.geocode_engine,
            "engine_version": self.engine_version,
            "geocoded_at": self.geocoded_at,
            **self.geocode.to_dict(),
        }
        return {column: flat[column] for column in OUTPUT_COLUMNS}
