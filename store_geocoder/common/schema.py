"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

import re

from store_geocoder.common.errors import ConfigError

_CHAIN_ID_RE = re.compile(r"^[a-z0-9_]+$")


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_positive_number(value: object, ctx: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{ctx} must be a positive number")


def validate_pipeline_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    top_required = {"chains", "geocoder", "warehouse", "progress", "cache"}
    _assert_required_keys(cfg, top_required, "pipeline config")
    _assert_no_unknown_keys(cfg, top_required, "pipeline config", allow_unknown)

    chains = cfg["chains"]
    if not isinstance(chains, dict) or not chains:
        raise ConfigError("chains must be a non-empty mapping")
    for chain, chain_cfg in chains.items():
        if not _CHAIN_ID_RE.match(str(chain)):
            raise ConfigError(f"Invalid chain id: {chain}")
        _assert_required_keys(chain_cfg, {"file_prefix"}, f"chains.{chain}")

    geocoder_keys = {"engine", "japanese_addresses_api", "timeout_seconds", "max_attempts", "rate_per_sec"}
    _assert_required_keys(cfg["geocoder"], geocoder_keys, "geocoder")
    _assert_no_unknown_keys(cfg["geocoder"], geocoder_keys, "geocoder", allow_unknown)
    _assert_positive_number(cfg["geocoder"]["timeout_seconds"], "geocoder.timeout_seconds")
    _assert_positive_number(cfg["geocoder"]["max_attempts"], "geocoder.max_attempts")
    _assert_positive_number(cfg["geocoder"]["rate_per_sec"], "geocoder.rate_per_sec")

    warehouse_keys = {"dataset", "table", "schema", "location"}
    _assert_required_keys(cfg["warehouse"], warehouse_keys, "warehouse")
    _assert_no_unknown_keys(cfg["warehouse"], warehouse_keys, "warehouse", allow_unknown)

    _assert_required_keys(cfg["progress"], {"every"}, "progress")
    _assert_positive_number(cfg["progress"]["every"], "progress.every")

    _assert_required_keys(cfg["cache"], {"reuse_failures"}, "cache")
    if not isinstance(cfg["cache"]["reuse_failures"], bool):
        raise ConfigError("cache.reuse_failures must be a boolean")

    return cfg
