"""Geocoding stage: one output row per canonical store snapshot."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Iterable, Mapping

from store_geocoder.common.constants import (
    DEFAULT_GEOCODE_ENGINE,
    ERROR_ADDRESS_MISSING,
    ERROR_GEOCODE_FAILED,
)
from store_geocoder.common.models import GeocodeFields, OutputRow
from store_geocoder.pipeline.address_cache import AddressCache, cache_key
from store_geocoder.pipeline.geocode_fields import geocode_fields_from_result
from store_geocoder.pipeline.reduce import pick_latest_by_store_id, snapshot_store_id

Normalize = Callable[[str], Mapping[str, Any]]
ProgressCallback = Callable[[dict[str, int]], None]

OUTCOME_SKIPPED = "skipped_store_id"
OUTCOME_MISSING_ADDRESS = "missing_address"
OUTCOME_CACHE_HIT = "cache_hit"
OUTCOME_GEOCODED = "geocoded"
OUTCOME_FAILED = "failed"


@dataclass
class GeocodeStats:
    processed: int = 0
    total: int = 0
    skipped_store_id: int = 0
    cache_hits: int = 0
    geocoded_new: int = 0
    geocode_errors: int = 0
    missing_address: int = 0

    def record(self, outcome: str, fields: GeocodeFields | None) -> None:
        self.processed += 1
        if outcome == OUTCOME_SKIPPED:
            self.skipped_store_id += 1
            return
        if outcome == OUTCOME_MISSING_ADDRESS:
            self.missing_address += 1
        elif outcome == OUTCOME_CACHE_HIT:
            self.cache_hits += 1
        elif outcome == OUTCOME_GEOCODED:
            self.geocoded_new += 1
        if fields is not None and fields.geocode_error is not None:
            self.geocode_errors += 1

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class GeocodeRun:
    rows: list[OutputRow] = field(default_factory=list)
    stats: GeocodeStats = field(default_factory=GeocodeStats)

    def row_dicts(self) -> list[dict[str, Any]]:
        return [row.to_dict() for row in self.rows]


class _GeocodeStage:
    def __init__(
        self,
        *,
        chain: str,
        normalize: Normalize,
        cache: AddressCache,
        geocode_engine: str,
        engine_version: str | None,
        geocoded_at: str,
        total: int,
        on_progress: ProgressCallback | None,
    ) -> None:
        self.chain = chain
        self.normalize = normalize
        self.cache = cache
        self.geocode_engine = geocode_engine
        self.engine_version = engine_version
        self.geocoded_at = geocoded_at
        self.on_progress = on_progress
        self.stats = GeocodeStats(total=total)
        self._stats_lock = threading.Lock()

    def _report(self, outcome: str, fields: GeocodeFields | None) -> None:
        with self._stats_lock:
            self.stats.record(outcome, fields)
            if self.on_progress is not None:
                self.on_progress(self.stats.to_dict())

    def _resolve(self, address_raw: str) -> tuple[GeocodeFields, str]:
        failed = False

        def compute(key: str) -> GeocodeFields:
            nonlocal failed
            try:
                result = self.normalize(key)
            except Exception as exc:
                failed = True
                return GeocodeFields.failure(str(exc) or ERROR_GEOCODE_FAILED)
            return geocode_fields_from_result(result)

        fields, computed = self.cache.resolve(address_raw, compute)
        if not computed:
            return fields, OUTCOME_CACHE_HIT
        return fields, OUTCOME_FAILED if failed else OUTCOME_GEOCODED

    def process(self, record: dict[str, Any]) -> OutputRow | None:
        store_id = snapshot_store_id(record)
        if not store_id:
            self._report(OUTCOME_SKIPPED, None)
            return None

        address_raw = cache_key(record.get("address_raw")) or None
        if address_raw is None:
            fields = GeocodeFields.failure(ERROR_ADDRESS_MISSING)
            outcome = OUTCOME_MISSING_ADDRESS
        else:
            fields, outcome = self._resolve(address_raw)

        row = OutputRow(
            chain=self.chain,
            store_id=store_id,
            address_raw=address_raw,
            geocode_engine=self.geocode_engine,
            engine_version=self.engine_version,
            geocoded_at=self.geocoded_at,
            geocode=fields,
        )
        self._report(outcome, fields)
        return row


def build_geocoded_rows(
    *,
    chain: str,
    scraped_rows: Iterable[dict[str, Any]],
    normalize: Normalize,
    geocoded_at: str,
    geocode_engine: str = DEFAULT_GEOCODE_ENGINE,
    engine_version: str | None = None,
    existing_rows: Iterable[Mapping[str, Any]] | None = None,
    cache: AddressCache | None = None,
    reuse_failures: bool = False,
    on_progress: ProgressCallback | None = None,
    max_workers: int = 1,
) -> GeocodeRun:
    """Reduce ``scraped_rows`` to the latest snapshot per store and geocode each.

    Record-level problems never raise: they end up in ``geocode_error``.
    Stores without an id are counted and left out of the output. With
    ``max_workers > 1`` records are processed on a thread pool and the output
    keeps input order.
    """
    if cache is None:
        cache = AddressCache.from_rows(existing_rows or [], reuse_failures=reuse_failures)
    latest = pick_latest_by_store_id(scraped_rows)

    stage = _GeocodeStage(
        chain=chain,
        normalize=normalize,
        cache=cache,
        geocode_engine=geocode_engine,
        engine_version=engine_version,
        geocoded_at=geocoded_at,
        total=len(latest),
        on_progress=on_progress,
    )

    if max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            results = list(pool.map(stage.process, latest))
    else:
        results = [stage.process(record) for record in latest]

    return GeocodeRun(rows=[row for row in results if row is not None], stats=stage.stats)
