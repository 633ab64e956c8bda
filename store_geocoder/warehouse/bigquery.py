"""BigQuery warehouse driven through the ``bq`` command-line tool."""

from __future__ import annotations

import shlex
import shutil
import subprocess

from store_geocoder.common.constants import OUTPUT_COLUMNS
from store_geocoder.common.errors import WarehouseError
from store_geocoder.warehouse.base import (
    STEP_DROP,
    STEP_LOAD,
    STEP_MERGE,
    UPDATE_COLUMNS,
    Warehouse,
    WarehouseCommand,
)


def build_merge_sql(project: str, dataset: str, table: str, temp_table: str) -> str:
    target = f"`{project}.{dataset}.{table}`"
    source = f"`{project}.{temp_table}`"
    set_clause = ",\n".join(f"  {column} = S.{column}" for column in UPDATE_COLUMNS)
    insert_columns = ", ".join(OUTPUT_COLUMNS)
    insert_values = ", ".join(f"S.{column}" for column in OUTPUT_COLUMNS)

    return f"""MERGE {target} AS T
USING (
  SELECT *
  FROM {source}
  QUALIFY ROW_NUMBER() OVER (
    PARTITION BY chain, store_id
    ORDER BY geocoded_at DESC, address_raw DESC
  ) = 1
) AS S
ON T.chain = S.chain AND T.store_id = S.store_id
WHEN MATCHED AND (T.geocoded_at IS NULL OR S.geocoded_at >= T.geocoded_at)
  THEN UPDATE SET
{set_clause}
WHEN NOT MATCHED THEN
  INSERT ({insert_columns})
  VALUES ({insert_values})"""


class BigQueryCliWarehouse(Warehouse):
    def __init__(self, project: str, *, location: str | None = None, bq_path: str = "bq") -> None:
        self.project = project
        self.location = location
        self.bq_path = bq_path

    def _base_args(self) -> list[str]:
        args = ["--project_id", self.project]
        if self.location:
            args.extend(["--location", self.location])
        return args

    def _command(self, step: str, args: list[str]) -> WarehouseCommand:
        argv = (self.bq_path, *args)
        return WarehouseCommand(step=step, display=shlex.join(argv), payload=argv)

    def build_load(self, staging_table: str, source: str, schema: str) -> WarehouseCommand:
        return self._command(
            STEP_LOAD,
            [
                *self._base_args(),
                "load",
                "--replace",
                "--source_format=NEWLINE_DELIMITED_JSON",
                f"{self.project}:{staging_table}",
                source,
                schema,
            ],
        )

    def build_merge(self, dataset: str, table: str, staging_table: str) -> WarehouseCommand:
        sql = build_merge_sql(self.project, dataset, table, staging_table)
        return self._command(STEP_MERGE, [*self._base_args(), "query", "--use_legacy_sql=false", sql])

    def build_drop(self, staging_table: str) -> WarehouseCommand:
        return self._command(STEP_DROP, [*self._base_args(), "rm", "-f", "-t", f"{self.project}:{staging_table}"])

    def execute(self, command: WarehouseCommand) -> None:
        executable = shutil.which(command.payload[0])
        if executable is None:
            raise WarehouseError(f"{command.payload[0]} CLI not found on PATH")
        try:
            subprocess.run([executable, *command.payload[1:]], check=True)
        except (subprocess.CalledProcessError, OSError) as exc:
            raise WarehouseError(f"bq {command.step} failed: {exc}") from exc
