"""Warehouse capability: load a staging table, merge it, drop it."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from store_geocoder.common.constants import KEY_COLUMNS, OUTPUT_COLUMNS

STEP_LOAD = "load"
STEP_MERGE = "merge"
STEP_DROP = "drop"

UPDATE_COLUMNS = tuple(column for column in OUTPUT_COLUMNS if column not in KEY_COLUMNS)


@dataclass(frozen=True)
class WarehouseCommand:
    step: str
    display: str
    payload: Any = None


class Warehouse(ABC):
    """Builds commands without side effects; only :meth:`execute` touches the warehouse."""

    @abstractmethod
    def build_load(self, staging_table: str, source: str, schema: str) -> WarehouseCommand:
        """Replace ``staging_table`` with the NDJSON rows at ``source``."""

    @abstractmethod
    def build_merge(self, dataset: str, table: str, staging_table: str) -> WarehouseCommand:
        """Merge ``staging_table`` into ``dataset.table`` keyed by chain and store id."""

    @abstractmethod
    def build_drop(self, staging_table: str) -> WarehouseCommand:
        """Delete ``staging_table``."""

    @abstractmethod
    def execute(self, command: WarehouseCommand) -> None:
        """Run ``command``; raise :class:`WarehouseError` on failure."""
