import pytest

from store_geocoder.common.constants import (
    DEFAULT_GEOCODE_ENGINE,
    ERROR_ADDRESS_MISSING,
    ERROR_GEOCODE_FAILED,
    ERROR_POINT_MISSING,
    OUTPUT_COLUMNS,
)
from store_geocoder.pipeline.address_cache import AddressCache
from store_geocoder.pipeline.geocode import build_geocoded_rows

NOW = "2026-02-11T12:00:00.000Z"
EXISTING_ROW = {
    "address_raw": "東京都千代田区1-1",
    "address_norm": "東京都千代田区1-1",
    "point_lat": 35.0,
    "point_lng": 139.0,
    "level": 8,
    "point_level": 8,
    "geocode_error": None,
    "pref": "東京都",
    "city": "千代田区",
    "town": None,
    "addr": "1-1",
    "other": None,
}


class CountingNormalizer:
    def __init__(self, result=None, error=None):
        self.calls: list[str] = []
        self.result = result if result is not None else {}
        self.error = error

    def __call__(self, address_raw):
        self.calls.append(address_raw)
        if self.error is not None:
            raise self.error
        return self.result


def _run(scraped_rows, normalize, **kwargs):
    kwargs.setdefault("existing_rows", [])
    return build_geocoded_rows(
        chain="lawson",
        scraped_rows=scraped_rows,
        normalize=normalize,
        geocoded_at=NOW,
        engine_version="test",
        **kwargs,
    )


def test_cache_hit_skips_geocoding_and_reproduces_fields():
    normalize = CountingNormalizer()
    run = _run(
        [{"store_id": "100", "address_raw": "東京都千代田区1-1", "scraped_at": "2026-02-11T00:00:00.000Z"}],
        normalize,
        existing_rows=[EXISTING_ROW],
    )

    assert normalize.calls == []
    assert len(run.rows) == 1
    row = run.rows[0].to_dict()
    assert row["point_lat"] == 35.0
    assert row["point_lng"] == 139.0
    assert row["address_norm"] == "東京都千代田区1-1"
    assert row["geocoded_at"] == NOW
    assert run.stats.cache_hits == 1
    assert run.stats.geocoded_new == 0


def test_missing_address_recorded_without_geocoding():
    normalize = CountingNormalizer()
    run = _run([{"store_id": "100", "address_raw": None, "scraped_at": "2026-02-11T00:00:00.000Z"}], normalize)

    row = run.rows[0].to_dict()
    assert normalize.calls == []
    assert row["geocode_error"] == ERROR_ADDRESS_MISSING
    assert row["point_lat"] is None
    assert row["point_lng"] is None
    assert run.stats.missing_address == 1
    assert run.stats.geocode_errors == 1


def test_blank_address_is_missing_too():
    run = _run([{"store_id": "1", "address_raw": "   "}], CountingNormalizer())

    assert run.rows[0].address_raw is None
    assert run.rows[0].geocode.geocode_error == ERROR_ADDRESS_MISSING


def test_records_without_store_id_are_skipped_and_counted():
    normalize = CountingNormalizer(result={"lat": 1, "lng": 2})
    run = _run(
        [
            {"store_id": "", "address_raw": "x"},
            {"address_raw": "y"},
            {"store_id": "1", "address_raw": "z"},
        ],
        normalize,
    )

    assert [row.store_id for row in run.rows] == ["1"]
    assert run.stats.skipped_store_id == 2
    assert run.stats.processed == 3
    assert normalize.calls == ["z"]


def test_new_geocode_populates_fields_and_cache_for_later_records():
    normalize = CountingNormalizer(
        result={"pref": "東京都", "city": "千代田区", "town": "丸の内一丁目", "addr": "1", "level": 3, "point": {"lat": 35.68, "lng": 139.76, "level": 3}}
    )
    run = _run(
        [
            {"store_id": "1", "address_raw": "東京都千代田区丸の内1-1"},
            {"store_id": "2", "address_raw": " 東京都千代田区丸の内1-1 "},
        ],
        normalize,
    )

    assert normalize.calls == ["東京都千代田区丸の内1-1"]
    first, second = (row.to_dict() for row in run.rows)
    assert first["address_norm"] == "東京都千代田区丸の内一丁目1"
    assert first["point_level"] == 3
    assert first["geocode_error"] is None
    assert second["point_lat"] == first["point_lat"]
    assert second["address_raw"] == "東京都千代田区丸の内1-1"
    assert run.stats.geocoded_new == 1
    assert run.stats.cache_hits == 1


def test_result_without_point_is_flagged():
    run = _run([{"store_id": "1", "address_raw": "どこか"}], CountingNormalizer(result={"level": 0}))

    assert run.rows[0].geocode.geocode_error == ERROR_POINT_MISSING
    assert run.stats.geocoded_new == 1
    assert run.stats.geocode_errors == 1


def test_capability_failure_is_folded_into_row_and_cached_for_the_run():
    normalize = CountingNormalizer(error=RuntimeError("backend unavailable"))
    run = _run(
        [
            {"store_id": "1", "address_raw": "bad"},
            {"store_id": "2", "address_raw": "bad"},
        ],
        normalize,
    )

    assert normalize.calls == ["bad"]
    assert [row.geocode.geocode_error for row in run.rows] == ["backend unavailable"] * 2
    assert all(row.geocode.point_lat is None for row in run.rows)
    assert run.stats.geocoded_new == 0
    assert run.stats.geocode_errors == 2


def test_failure_without_message_uses_fallback():
    run = _run([{"store_id": "1", "address_raw": "bad"}], CountingNormalizer(error=RuntimeError()))

    assert run.rows[0].geocode.geocode_error == ERROR_GEOCODE_FAILED


def test_progress_reported_after_every_record():
    seen = []
    _run(
        [
            {"store_id": "1", "address_raw": None},
            {"store_id": "", "address_raw": "x"},
            {"store_id": "2", "address_raw": "y"},
        ],
        CountingNormalizer(result={"lat": 1, "lng": 2}),
        on_progress=seen.append,
    )

    assert [progress["processed"] for progress in seen] == [1, 2, 3]
    assert all(progress["total"] == 3 for progress in seen)
    assert seen[-1] == {
        "processed": 3,
        "total": 3,
        "skipped_store_id": 1,
        "cache_hits": 0,
        "geocoded_new": 1,
        "geocode_errors": 1,
        "missing_address": 1,
    }


def test_output_rows_carry_run_metadata_and_exact_columns():
    run = _run([{"store_id": "1", "address_raw": "x"}], CountingNormalizer(result={"lat": 1, "lng": 2}))

    row = run.row_dicts()[0]
    assert tuple(row) == OUTPUT_COLUMNS
    assert row["chain"] == "lawson"
    assert row["geocode_engine"] == DEFAULT_GEOCODE_ENGINE
    assert row["engine_version"] == "test"


def test_reduction_runs_before_geocoding():
    normalize = CountingNormalizer(result={"lat": 1, "lng": 2})
    run = _run(
        [
            {"store_id": "1", "address_raw": "old", "scraped_at": "2026-02-10T00:00:00Z"},
            {"store_id": "1", "address_raw": "new", "scraped_at": "2026-02-11T00:00:00Z"},
        ],
        normalize,
    )

    assert normalize.calls == ["new"]
    assert [row.address_raw for row in run.rows] == ["new"]


def test_explicit_cache_is_written_through():
    cache = AddressCache()
    _run([{"store_id": "1", "address_raw": "x"}], CountingNormalizer(result={"lat": 1, "lng": 2}), cache=cache)

    assert cache.get("x").point_lat == 1.0


@pytest.mark.parametrize("workers", [1, 4])
def test_thread_pool_keeps_order_and_single_invocation_per_address(workers):
    normalize = CountingNormalizer(result={"lat": 1, "lng": 2})
    rows = [{"store_id": str(i), "address_raw": f"addr-{i % 3}"} for i in range(12)]

    run = _run(rows, normalize, max_workers=workers)

    assert [row.store_id for row in run.rows] == [str(i) for i in range(12)]
    assert sorted(normalize.calls) == ["addr-0", "addr-1", "addr-2"]
    assert run.stats.geocoded_new == 3
    assert run.stats.cache_hits == 9
