"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from store_geocoder.common.errors import ConfigError
from store_geocoder.common.fs import read_yaml
from store_geocoder.common.schema import validate_pipeline_config

CONFIG_FILENAME = "pipeline.yml"


@dataclass(frozen=True)
class PipelineConfig:
    chains: dict[str, dict]
    geocoder: dict
    warehouse: dict
    progress: dict
    cache: dict

    def file_prefix(self, chain: str) -> str:
        try:
            return self.chains[chain]["file_prefix"]
        except KeyError as exc:
            raise ConfigError(f"invalid --chain: {chain}") from exc


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    return _deep_merge(base, overlay)


def load_pipeline_config(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> PipelineConfig:
    overlay_path = None
    if overlay_config_dir is not None:
        overlay_path = overlay_config_dir / CONFIG_FILENAME
    cfg = _load_yaml_with_overlay(config_dir / CONFIG_FILENAME, overlay_path)
    cfg = validate_pipeline_config(cfg, allow_unknown=allow_unknown)
    return PipelineConfig(
        chains=cfg["chains"],
        geocoder=cfg["geocoder"],
        warehouse=cfg["warehouse"],
        progress=cfg["progress"],
        cache=cfg["cache"],
    )
