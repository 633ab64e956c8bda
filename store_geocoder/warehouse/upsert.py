"""Stage, merge and clean up a geocoded batch in the warehouse."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from store_geocoder.common.logging import log_event
from store_geocoder.warehouse.base import Warehouse, WarehouseCommand
from store_geocoder.warehouse.naming import build_temp_table_name, sanitize_id


@dataclass(frozen=True)
class UpsertOptions:
    dataset: str
    table: str
    source: str
    schema: str
    temp_suffix: str | None = None
    keep_temp: bool = False
    dry_run: bool = False


@dataclass
class UpsertResult:
    staging_table: str
    commands: list[WarehouseCommand] = field(default_factory=list)
    executed: list[str] = field(default_factory=list)


def plan_upsert(warehouse: Warehouse, options: UpsertOptions) -> UpsertResult:
    """Validate identifiers and build the commands without running anything."""
    dataset = sanitize_id(options.dataset, "dataset")
    table = sanitize_id(options.table, "table")
    staging_table = build_temp_table_name(dataset, table, options.temp_suffix)

    commands = [
        warehouse.build_load(staging_table, options.source, options.schema),
        warehouse.build_merge(dataset, table, staging_table),
    ]
    if not options.keep_temp:
        commands.append(warehouse.build_drop(staging_table))
    return UpsertResult(staging_table=staging_table, commands=commands)


def run_upsert_flow(
    warehouse: Warehouse,
    options: UpsertOptions,
    *,
    logger: logging.Logger | None = None,
    run_id: str | None = None,
) -> UpsertResult:
    """Run load, merge and drop in order, stopping at the first failure.

    A failed merge leaves the staging table in place for inspection. With
    ``dry_run`` every command is reported and none is executed.
    """
    result = plan_upsert(warehouse, options)
    for command in result.commands:
        if logger is not None:
            log_event(
                logger,
                f"[exec] {command.display}",
                run_id=run_id,
                stage="upsert",
                event="WAREHOUSE_EXEC",
                status="dry_run" if options.dry_run else "ok",
                step=command.step,
            )
        if options.dry_run:
            continue
        warehouse.execute(command)
        result.executed.append(command.step)
    return result
