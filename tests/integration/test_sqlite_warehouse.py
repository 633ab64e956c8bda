from pathlib import Path

import pytest

from store_geocoder.common.constants import OUTPUT_COLUMNS
from store_geocoder.common.errors import WarehouseError
from store_geocoder.common.fs import write_ndjson
from store_geocoder.warehouse.sqlite import SqliteWarehouse
from store_geocoder.warehouse.upsert import UpsertOptions, run_upsert_flow

SCHEMA = Path(__file__).resolve().parents[2] / "schemas" / "raw" / "stores_geocoded.json"


def _row(store_id, geocoded_at, address_raw="東京都千代田区永田町2-3-1", lat=35.675918):
    row = dict.fromkeys(OUTPUT_COLUMNS)
    row.update(
        chain="lawson",
        store_id=store_id,
        address_raw=address_raw,
        address_norm=address_raw,
        point_lat=lat,
        point_lng=139.743572,
        level=3,
        point_level=3,
        geocode_engine="geolonia/normalize-japanese-addresses",
        engine_version="test",
        geocoded_at=geocoded_at,
    )
    return row


@pytest.fixture()
def warehouse(tmp_path: Path):
    return SqliteWarehouse(tmp_path / "warehouse.sqlite", schema=SCHEMA)


def _upsert(warehouse, tmp_path: Path, rows, name, **overrides):
    source = tmp_path / f"{name}.ndjson"
    write_ndjson(source, rows)
    options = UpsertOptions(
        dataset="raw",
        table="stores_geocoded",
        source=str(source),
        schema=str(SCHEMA),
        temp_suffix=name,
        **overrides,
    )
    return run_upsert_flow(warehouse, options)


@pytest.mark.integration
def test_merge_inserts_and_is_idempotent(warehouse, tmp_path: Path):
    rows = [_row("L001", "2026-02-11T12:00:00.000Z"), _row("L002", "2026-02-11T12:00:00.000Z")]

    _upsert(warehouse, tmp_path, rows, "first")
    first = warehouse.fetch_rows("raw", "stores_geocoded")
    _upsert(warehouse, tmp_path, rows, "again")
    second = warehouse.fetch_rows("raw", "stores_geocoded")

    assert [row["store_id"] for row in first] == ["L001", "L002"]
    assert first == second
    assert list(first[0]) == list(OUTPUT_COLUMNS)


@pytest.mark.integration
def test_older_batch_never_overwrites_newer_rows(warehouse, tmp_path: Path):
    _upsert(warehouse, tmp_path, [_row("L001", "2026-02-12T00:00:00.000Z", lat=35.1)], "newer")
    _upsert(warehouse, tmp_path, [_row("L001", "2026-02-11T00:00:00.000Z", lat=35.9)], "older")

    rows = warehouse.fetch_rows("raw", "stores_geocoded")
    assert len(rows) == 1
    assert rows[0]["point_lat"] == 35.1
    assert rows[0]["geocoded_at"] == "2026-02-12T00:00:00.000Z"


@pytest.mark.integration
def test_newer_or_equal_batch_replaces_row(warehouse, tmp_path: Path):
    _upsert(warehouse, tmp_path, [_row("L001", "2026-02-11T00:00:00.000Z", lat=35.1)], "old")
    _upsert(warehouse, tmp_path, [_row("L001", "2026-02-11T00:00:00.000Z", lat=35.2)], "same")

    assert warehouse.fetch_rows("raw", "stores_geocoded")[0]["point_lat"] == 35.2

    _upsert(warehouse, tmp_path, [_row("L001", "2026-02-13T00:00:00.000Z", lat=35.3)], "new")

    assert warehouse.fetch_rows("raw", "stores_geocoded")[0]["point_lat"] == 35.3


@pytest.mark.integration
def test_batch_duplicates_resolve_by_timestamp_then_address(warehouse, tmp_path: Path):
    rows = [
        _row("L001", "2026-02-11T00:00:00.000Z", address_raw="B", lat=35.1),
        _row("L001", "2026-02-12T00:00:00.000Z", address_raw="A", lat=35.2),
        _row("L002", "2026-02-12T00:00:00.000Z", address_raw="A", lat=35.3),
        _row("L002", "2026-02-12T00:00:00.000Z", address_raw="C", lat=35.4),
    ]

    _upsert(warehouse, tmp_path, rows, "dupes")

    by_id = {row["store_id"]: row for row in warehouse.fetch_rows("raw", "stores_geocoded")}
    assert by_id["L001"]["point_lat"] == 35.2
    assert by_id["L002"]["address_raw"] == "C"
    assert by_id["L002"]["point_lat"] == 35.4


@pytest.mark.integration
def test_staging_table_is_dropped_unless_kept(warehouse, tmp_path: Path):
    result = _upsert(warehouse, tmp_path, [_row("L001", "2026-02-11T00:00:00.000Z")], "dropped")
    assert not warehouse.table_exists(result.staging_table)

    kept = _upsert(warehouse, tmp_path, [_row("L001", "2026-02-11T00:00:00.000Z")], "kept", keep_temp=True)
    assert warehouse.table_exists(kept.staging_table)
    assert kept.executed == ["load", "merge"]


@pytest.mark.integration
def test_missing_source_fails_the_load(warehouse, tmp_path: Path):
    options = UpsertOptions(
        dataset="raw",
        table="stores_geocoded",
        source=str(tmp_path / "missing.ndjson"),
        schema=str(SCHEMA),
        temp_suffix="missing",
    )

    with pytest.raises(WarehouseError, match="load failed"):
        run_upsert_flow(warehouse, options)

    assert not warehouse.table_exists("raw.stores_geocoded")


@pytest.mark.integration
def test_freshness_compares_instants_not_text(warehouse, tmp_path: Path):
    _upsert(warehouse, tmp_path, [_row("L001", "2026-02-11T12:00:00.000Z", lat=35.1)], "utc")
    # 20:00 at +09:00 is 11:00Z: older, although it sorts after the stored value as text.
    _upsert(warehouse, tmp_path, [_row("L001", "2026-02-11T20:00:00.000+09:00", lat=35.9)], "offset")

    rows = warehouse.fetch_rows("raw", "stores_geocoded")
    assert rows[0]["point_lat"] == 35.1
    assert rows[0]["geocoded_at"] == "2026-02-11T12:00:00.000Z"
