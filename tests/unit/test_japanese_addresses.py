from pathlib import Path
from urllib.parse import quote

import pytest

from store_geocoder.common.constants import DEFAULT_GEOCODE_ENGINE
from store_geocoder.common.errors import ConfigError, StageError
from store_geocoder.common.http import HttpRequestError
from store_geocoder.geocoder.base import create_normalizer
from store_geocoder.geocoder.japanese_addresses import (
    JapaneseAddressesNormalizer,
    kanji_to_int,
    prepare_address,
    town_spellings,
)
from store_geocoder.pipeline.geocode_fields import geocode_fields_from_result

API_DIR = Path(__file__).resolve().parents[1] / "fixtures" / "japanese-addresses" / "api" / "ja"


@pytest.fixture()
def normalizer():
    return JapaneseAddressesNormalizer(api_base=API_DIR.as_uri())


class FakeClient:
    def __init__(self, documents):
        self.documents = documents
        self.urls: list[str] = []

    def get_json(self, url, **_kwargs):
        self.urls.append(url)
        if url not in self.documents:
            raise HttpRequestError(f"HTTP 404 for {url}", status_code=404)
        return self.documents[url]


@pytest.mark.parametrize(
    ("text", "expected"),
    [("一", 1), ("九", 9), ("十", 10), ("十二", 12), ("二十", 20), ("三十五", 35), ("", None), ("百", None)],
)
def test_kanji_to_int(text, expected):
    assert kanji_to_int(text) == expected


def test_prepare_address_folds_width_and_hyphens():
    assert prepare_address("東京都 千代田区　丸の内１－９－２") == "東京都千代田区丸の内1-9-2"
    assert prepare_address("丸の内1‐9−2") == "丸の内1-9-2"


def test_town_spellings_cover_chome_forms():
    assert town_spellings("丸の内一丁目") == ["丸の内一丁目", "丸の内1丁目", "丸の内1-"]
    assert town_spellings("永田町") == ["永田町"]


def test_town_match_with_chome_digits(normalizer):
    result = normalizer("東京都千代田区丸の内1丁目9-2")

    assert result["pref"] == "東京都"
    assert result["city"] == "千代田区"
    assert result["town"] == "丸の内一丁目"
    assert result["addr"] == "9-2"
    assert result["level"] == 3
    assert result["point"] == {"lat": 35.68156, "lng": 139.767201, "level": 3}


def test_town_match_with_hyphenated_chome(normalizer):
    result = normalizer("東京都千代田区丸の内1-9-2")

    assert result["town"] == "丸の内一丁目"
    assert result["addr"] == "9-2"


def test_town_without_coordinates_has_no_point(normalizer):
    result = normalizer("東京都千代田区千代田1-1")

    assert result["town"] == "千代田"
    assert "point" not in result
    assert geocode_fields_from_result(result).geocode_error == "point is missing"


def test_prefecture_can_be_inferred_from_unique_city(normalizer):
    result = normalizer("千代田区永田町2-3-1")

    assert result["pref"] == "東京都"
    assert result["town"] == "永田町"
    assert result["addr"] == "2-3-1"


def test_unknown_city_stops_at_prefecture_level(normalizer):
    result = normalizer("東京都八王子市元本郷町3-24-1")

    assert result["level"] == 1
    assert result["city"] == ""
    assert result["other"] == "八王子市元本郷町3-24-1"


def test_unmatched_address_keeps_text_in_other(normalizer):
    result = normalizer("どこか知らない場所")

    assert result["level"] == 0
    assert result["other"] == "どこか知らない場所"


def test_missing_town_document_stops_at_city_level(normalizer):
    result = normalizer("東京都中央区銀座4-6-16")

    assert result["level"] == 2
    assert result["city"] == "中央区"
    assert result["other"] == "銀座4-6-16"


def test_http_documents_are_memoised_and_404_is_city_level():
    base = "https://example.test/api/ja"
    client = FakeClient({f"{base}.json": {"東京都": ["千代田区", "中央区"]}})
    normalizer = JapaneseAddressesNormalizer(api_base=base, client=client)

    first = normalizer("東京都中央区銀座4-6-16")
    second = normalizer("東京都中央区銀座5-1")

    assert first["level"] == 2
    assert second["level"] == 2
    assert client.urls == [
        f"{base}.json",
        f"{base}/{quote('東京都')}/{quote('中央区')}.json",
    ]


def test_http_errors_other_than_404_propagate():
    class FailingClient:
        def get_json(self, url, **_kwargs):
            raise HttpRequestError("HTTP 503", status_code=503)

    normalizer = JapaneseAddressesNormalizer(api_base="https://example.test/api/ja", client=FailingClient())

    with pytest.raises(HttpRequestError):
        normalizer("東京都千代田区永田町2-3-1")


def test_missing_prefecture_list_is_stage_error(tmp_path: Path):
    normalizer = JapaneseAddressesNormalizer(api_base=(tmp_path / "ja").as_uri())

    with pytest.raises(StageError, match="Prefecture list unavailable"):
        normalizer("東京都千代田区永田町2-3-1")


def test_create_normalizer_uses_engine_registry():
    normalizer = create_normalizer(DEFAULT_GEOCODE_ENGINE, japanese_addresses_api=API_DIR.as_uri())

    assert isinstance(normalizer, JapaneseAddressesNormalizer)
    with pytest.raises(ConfigError, match="Unknown geocode engine"):
        create_normalizer("unknown/engine")
