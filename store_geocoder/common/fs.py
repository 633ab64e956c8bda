"""Filesystem helpers."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, Mapping

import yaml

from store_geocoder.common.errors import ConfigError, InputError

NDJSON_SUFFIX = ".ndjson"


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def read_yaml(path: Path):
    try:
        with path.open("r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc


def write_json(path: Path, payload) -> None:
    ensure_dir(path.parent)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2, sort_keys=True)
        f.write("\n")


def read_json(path: Path):
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def split_input_specs(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in str(value).split(",") if part.strip()]


def resolve_input_files(spec: str | None, file_prefix: str) -> list[Path]:
    """Expand a comma-separated list of files and directories into NDJSON files.

    Directories contribute their ``*.ndjson`` entries whose name contains
    ``file_prefix``, sorted by name. Plain files are taken as given.
    """
    files: list[Path] = []
    for part in split_input_specs(spec):
        path = Path(part).resolve()
        if not path.exists():
            raise InputError(f"input not found: {part}")
        if path.is_file():
            files.append(path)
            continue
        if path.is_dir():
            names = sorted(
                child.name
                for child in path.iterdir()
                if child.is_file() and child.name.endswith(NDJSON_SUFFIX) and file_prefix in child.name
            )
            files.extend(path / name for name in names)
            continue
        raise InputError(f"unsupported input type: {part}")
    return files


def read_ndjson(path: Path) -> list[dict]:
    rows: list[dict] = []
    try:
        with path.open("r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    payload = json.loads(line)
                except json.JSONDecodeError as exc:
                    raise InputError(f"Malformed NDJSON at {path}:{line_no}: {exc.msg}") from exc
                if not isinstance(payload, dict):
                    raise InputError(f"Expected a JSON object at {path}:{line_no}")
                rows.append(payload)
    except UnicodeDecodeError as exc:
        raise InputError(f"Cannot decode {path} as UTF-8: {exc}") from exc
    except OSError as exc:
        raise InputError(f"Cannot read {path}: {exc}") from exc
    return rows


def read_ndjson_from_spec(spec: str | None, file_prefix: str) -> list[dict]:
    rows: list[dict] = []
    for path in resolve_input_files(spec, file_prefix):
        rows.extend(read_ndjson(path))
    return rows


def write_ndjson(path: Path, rows: Iterable[Mapping[str, object]]) -> int:
    ensure_dir(path.parent)
    count = 0
    with path.open("w", encoding="utf-8", newline="\n") as f:
        for row in rows:
            f.write(json.dumps(row, ensure_ascii=False))
            f.write("\n")
            count += 1
    return count
