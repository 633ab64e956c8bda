"""Address normaliser backed by the Geolonia japanese-addresses static API.

The API publishes ``<base>.json`` (prefecture -> city names) and
``<base>/<pref>/<city>.json`` (towns with representative coordinates).
``<base>`` may be an ``http(s)://`` URL or a ``file://`` path to a local
checkout of the dataset.
"""

from __future__ import annotations

import json
import re
import threading
import unicodedata
from pathlib import Path
from typing import Any
from urllib.parse import quote, urlparse
from urllib.request import url2pathname

from store_geocoder.common.constants import DEFAULT_JAPANESE_ADDRESSES_API
from store_geocoder.common.errors import StageError
from store_geocoder.common.http import HttpClient, HttpRequestError

LEVEL_NONE = 0
LEVEL_PREF = 1
LEVEL_CITY = 2
LEVEL_TOWN = 3

_KANJI_DIGITS = {"一": 1, "二": 2, "三": 3, "四": 4, "五": 5, "六": 6, "七": 7, "八": 8, "九": 9}
_CHOME_RE = re.compile(r"^(.*?)([一二三四五六七八九十]+)丁目$")
_WHITESPACE_RE = re.compile(r"\s+")
_HYPHENS = str.maketrans({"‐": "-", "‑": "-", "–": "-", "—": "-", "−": "-"})


def kanji_to_int(text: str) -> int | None:
    if not text:
        return None
    if "十" not in text:
        return _KANJI_DIGITS.get(text) if len(text) == 1 else None
    tens, _, ones = text.partition("十")
    if (tens and tens not in _KANJI_DIGITS) or (ones and ones not in _KANJI_DIGITS):
        return None
    return (_KANJI_DIGITS[tens] if tens else 1) * 10 + (_KANJI_DIGITS[ones] if ones else 0)


def prepare_address(address: str) -> str:
    text = unicodedata.normalize("NFKC", address).translate(_HYPHENS)
    return _WHITESPACE_RE.sub("", text)


def town_spellings(town: str) -> list[str]:
    """Spellings of ``town`` as found in addresses, e.g. 一丁目 as ``1丁目`` or ``1-``."""
    spellings = [town]
    match = _CHOME_RE.match(town)
    if match:
        number = kanji_to_int(match.group(2))
        if number is not None:
            base = match.group(1)
            spellings.extend([f"{base}{number}丁目", f"{base}{number}-"])
    return spellings


def _longest_prefix(text: str, candidates: list[str]) -> str | None:
    best = None
    for candidate in candidates:
        if candidate and text.startswith(candidate) and (best is None or len(candidate) > len(best)):
            best = candidate
    return best


class JapaneseAddressesNormalizer:
    def __init__(self, api_base: str | None = None, client: HttpClient | None = None) -> None:
        self.api_base = (api_base or DEFAULT_JAPANESE_ADDRESSES_API).rstrip("/")
        self.client = client
        self._documents: dict[tuple[str, ...], Any] = {}
        self._lock = threading.Lock()

    def _is_file_api(self) -> bool:
        return urlparse(self.api_base).scheme == "file"

    def _read_file(self, parts: tuple[str, ...]) -> Any:
        root = Path(url2pathname(urlparse(self.api_base).path))
        if parts:
            path = root.joinpath(*parts[:-1], f"{parts[-1]}.json")
        else:
            path = root.with_name(f"{root.name}.json")
        try:
            with path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None

    def _fetch(self, parts: tuple[str, ...]) -> Any:
        if not parts:
            url = f"{self.api_base}.json"
        else:
            encoded = "/".join(quote(part) for part in parts)
            url = f"{self.api_base}/{encoded}.json"
        if self.client is None:
            self.client = HttpClient()
        try:
            return self.client.get_json(url)
        except HttpRequestError as exc:
            if exc.status_code == 404:
                return None
            raise

    def _document(self, *parts: str) -> Any:
        with self._lock:
            if parts in self._documents:
                return self._documents[parts]
        payload = self._read_file(parts) if self._is_file_api() else self._fetch(parts)
        with self._lock:
            self._documents[parts] = payload
        return payload

    def prefectures(self) -> dict[str, list[str]]:
        payload = self._document()
        if not isinstance(payload, dict):
            raise StageError(f"Prefecture list unavailable from {self.api_base}")
        return payload

    def towns(self, pref: str, city: str) -> list[dict]:
        payload = self._document(pref, city)
        if not isinstance(payload, list):
            return []
        return [town for town in payload if isinstance(town, dict) and town.get("town")]

    def _match_pref(self, text: str, prefectures: dict[str, list[str]]) -> str | None:
        pref = _longest_prefix(text, list(prefectures))
        if pref is not None:
            return pref
        # Addresses sometimes omit the prefecture; accept a city name that is unique nationwide.
        owners = {name for name, cities in prefectures.items() if _longest_prefix(text, list(cities))}
        if len(owners) == 1:
            return owners.pop()
        return None

    def __call__(self, address_raw: str) -> dict[str, Any]:
        text = prepare_address(address_raw)
        result: dict[str, Any] = {"pref": "", "city": "", "town": "", "addr": "", "other": "", "level": LEVEL_NONE}

        prefectures = self.prefectures()
        pref = self._match_pref(text, prefectures)
        if pref is None:
            result["other"] = text
            return result
        rest = text[len(pref):] if text.startswith(pref) else text
        result.update(pref=pref, level=LEVEL_PREF)

        city = _longest_prefix(rest, list(prefectures.get(pref, [])))
        if city is None:
            result["other"] = rest
            return result
        rest = rest[len(city):]
        result.update(city=city, level=LEVEL_CITY)

        best_town: dict | None = None
        best_spelling = ""
        for town in self.towns(pref, city):
            spelling = _longest_prefix(rest, town_spellings(town["town"]))
            if spelling is not None and len(spelling) > len(best_spelling):
                best_town, best_spelling = town, spelling
        if best_town is None:
            result["other"] = rest
            return result

        result.update(town=best_town["town"], addr=rest[len(best_spelling):].lstrip("-"), level=LEVEL_TOWN)
        lat, lng = best_town.get("lat"), best_town.get("lng")
        if lat is not None and lng is not None:
            result["point"] = {"lat": lat, "lng": lng, "level": LEVEL_TOWN}
        return result
