"""Geocoding capability interface and engine registry."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Protocol

from store_geocoder.common.constants import DEFAULT_GEOCODE_ENGINE
from store_geocoder.common.errors import ConfigError
from store_geocoder.common.http import HttpClient
from store_geocoder.geocoder.japanese_addresses import JapaneseAddressesNormalizer


class Normalizer(Protocol):
    def __call__(self, address_raw: str) -> Mapping[str, Any]:
        ...


def _japanese_addresses_factory(
    *,
    japanese_addresses_api: str | None = None,
    client: HttpClient | None = None,
) -> Normalizer:
    return JapaneseAddressesNormalizer(api_base=japanese_addresses_api, client=client)


ENGINES: dict[str, Callable[..., Normalizer]] = {
    DEFAULT_GEOCODE_ENGINE: _japanese_addresses_factory,
}


def create_normalizer(
    engine: str,
    *,
    japanese_addresses_api: str | None = None,
    client: HttpClient | None = None,
) -> Normalizer:
    factory = ENGINES.get(engine)
    if factory is None:
        known = ", ".join(sorted(ENGINES))
        raise ConfigError(f"Unknown geocode engine: {engine} (known: {known})")
    return factory(japanese_addresses_api=japanese_addresses_api, client=client)
