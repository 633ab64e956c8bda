"""Content-addressed cache of geocode results keyed by raw address text."""

from __future__ import annotations

import threading
from typing import Any, Callable, Iterable, Mapping

from store_geocoder.common.constants import ERROR_POINT_MISSING
from store_geocoder.common.models import GeocodeFields


def cache_key(address_raw: object) -> str:
    if not isinstance(address_raw, str):
        return ""
    return address_raw.strip()


def _is_reusable(fields: GeocodeFields) -> bool:
    return fields.has_point or fields.geocode_error == ERROR_POINT_MISSING


class AddressCache:
    """Per-run lookup from raw address to :class:`GeocodeFields`.

    Keys are the raw address with surrounding whitespace trimmed and nothing
    else; two spellings of the same place are cached independently.
    """

    def __init__(self) -> None:
        self._entries: dict[str, GeocodeFields] = {}
        self._lock = threading.Lock()
        self._key_locks: dict[str, threading.Lock] = {}

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]], *, reuse_failures: bool = False) -> "AddressCache":
        """Seed from previously written output rows.

        Rows whose error came from the normaliser failing (rather than from a
        result without a point) are skipped unless ``reuse_failures`` is set,
        so those addresses are retried on the next run.
        """
        cache = cls()
        for row in rows:
            key = cache_key(row.get("address_raw"))
            if not key:
                continue
            fields = GeocodeFields.from_row(row)
            if not fields.has_point and fields.geocode_error is None:
                fields = fields.with_error(ERROR_POINT_MISSING)
            if not reuse_failures and not _is_reusable(fields):
                continue
            cache.put(key, fields)
        return cache

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, address_raw: object) -> bool:
        return self.get(address_raw) is not None

    def get(self, address_raw: object) -> GeocodeFields | None:
        key = cache_key(address_raw)
        if not key:
            return None
        with self._lock:
            return self._entries.get(key)

    def put(self, address_raw: str, fields: GeocodeFields) -> None:
        key = cache_key(address_raw)
        if not key:
            raise ValueError("address cache keys must be non-empty")
        with self._lock:
            self._entries[key] = fields

    def _key_lock(self, key: str) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def resolve(
        self,
        address_raw: str,
        compute: Callable[[str], GeocodeFields],
    ) -> tuple[GeocodeFields, bool]:
        """Return ``(fields, computed)``, calling ``compute`` only on a miss.

        Lookup, compute and store run under a per-address lock, so concurrent
        misses on one address compute it once and the others see a hit.
        """
        key = cache_key(address_raw)
        if not key:
            raise ValueError("address cache keys must be non-empty")
        with self._key_lock(key):
            cached = self.get(key)
            if cached is not None:
                return cached, False
            fields = compute(key)
            self.put(key, fields)
            return fields, True
