"""Collapse harvested snapshots to the latest one per store."""

from __future__ import annotations

from typing import Any, Iterable

from store_geocoder.common.time_utils import parse_epoch_ms


def snapshot_store_id(row: dict) -> str:
    value = row.get("store_id")
    if value is None:
        return ""
    return str(value).strip()


def pick_latest_by_store_id(rows: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Keep the latest ``scraped_at`` snapshot per ``store_id``.

    Ties go to the snapshot seen last. Snapshots without a store id cannot be
    deduplicated and are appended after the keyed ones in their original order.
    Unparsable timestamps lose to any parsable one, including pre-1970 values.
    """
    latest: dict[str, tuple[tuple[bool, int], dict]] = {}
    anonymous: list[dict] = []

    for row in rows:
        store_id = snapshot_store_id(row)
        if not store_id:
            anonymous.append(row)
            continue

        scraped_ms = parse_epoch_ms(row.get("scraped_at"))
        rank = (scraped_ms is not None, scraped_ms or 0)
        kept = latest.get(store_id)
        if kept is None or rank >= kept[0]:
            latest[store_id] = (rank, row)

    return [row for _rank, row in latest.values()] + anonymous
