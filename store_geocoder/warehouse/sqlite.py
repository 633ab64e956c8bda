"""SQLite warehouse for local runs and tests.

Mirrors the BigQuery flow: the staging table is replaced from an NDJSON file,
merged with an ``INSERT ... ON CONFLICT DO UPDATE ... WHERE`` guarded by
``geocoded_at``, then dropped. Timestamps are stored as ISO-8601 TEXT and
compared through ``julianday()`` so values with UTC offsets order by instant.
Dataset-qualified names become ``<dataset>__<table>`` tables.
"""

from __future__ import annotations

import sqlite3
from contextlib import closing
from pathlib import Path

from store_geocoder.common.constants import KEY_COLUMNS, OUTPUT_COLUMNS
from store_geocoder.common.errors import ConfigError, InputError, WarehouseError
from store_geocoder.common.fs import ensure_dir, read_json, read_ndjson
from store_geocoder.warehouse.base import (
    STEP_DROP,
    STEP_LOAD,
    STEP_MERGE,
    UPDATE_COLUMNS,
    Warehouse,
    WarehouseCommand,
)

SQLITE_TYPES = {
    "STRING": "TEXT",
    "TIMESTAMP": "TEXT",
    "FLOAT": "REAL",
    "FLOAT64": "REAL",
    "INTEGER": "INTEGER",
    "INT64": "INTEGER",
    "BOOLEAN": "INTEGER",
}


def sqlite_table_name(qualified: str) -> str:
    return qualified.replace(".", "__")


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def load_schema_columns(schema: str | Path) -> list[tuple[str, str, bool]]:
    """``(name, sqlite type, required)`` per column of a BigQuery JSON schema."""
    try:
        fields = read_json(Path(schema))
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Cannot read warehouse schema {schema}: {exc}") from exc
    if not isinstance(fields, list) or not fields:
        raise ConfigError(f"Warehouse schema {schema} must be a non-empty list of fields")
    columns = []
    for field in fields:
        field_type = str(field.get("type", "STRING")).upper()
        if field_type not in SQLITE_TYPES:
            raise ConfigError(f"Unsupported schema type {field_type} for {field.get('name')}")
        columns.append((field["name"], SQLITE_TYPES[field_type], field.get("mode") == "REQUIRED"))
    return columns


def _create_table_sql(table: str, columns: list[tuple[str, str, bool]], *, primary_key: bool) -> str:
    definitions = [
        f"  {_quote(name)} {sql_type}{' NOT NULL' if required else ''}" for name, sql_type, required in columns
    ]
    if primary_key:
        definitions.append(f"  PRIMARY KEY ({', '.join(KEY_COLUMNS)})")
    body = ",\n".join(definitions)
    exists = "IF NOT EXISTS " if primary_key else ""
    return f"CREATE TABLE {exists}{_quote(table)} (\n{body}\n)"


def build_sqlite_merge_sql(target: str, staging: str) -> str:
    columns = ", ".join(OUTPUT_COLUMNS)
    set_clause = ",\n".join(f"  {column} = excluded.{column}" for column in UPDATE_COLUMNS)
    return f"""INSERT INTO {_quote(target)} ({columns})
SELECT {columns}
FROM (
  SELECT *, ROW_NUMBER() OVER (
    PARTITION BY chain, store_id
    ORDER BY julianday(geocoded_at) DESC, address_raw DESC
  ) AS _rn
  FROM {_quote(staging)}
)
WHERE _rn = 1
ON CONFLICT ({', '.join(KEY_COLUMNS)}) DO UPDATE SET
{set_clause}
WHERE {_quote(target)}.geocoded_at IS NULL
  OR julianday(excluded.geocoded_at) >= julianday({_quote(target)}.geocoded_at)"""


class SqliteWarehouse(Warehouse):
    def __init__(self, path: str | Path, *, schema: str | Path) -> None:
        self.path = Path(path)
        self.schema = schema

    def _connect(self) -> sqlite3.Connection:
        ensure_dir(self.path.parent)
        return sqlite3.connect(self.path)

    def build_load(self, staging_table: str, source: str, schema: str) -> WarehouseCommand:
        table = sqlite_table_name(staging_table)
        columns = load_schema_columns(schema)
        names = [name for name, _type, _required in columns]
        statements = [
            f"DROP TABLE IF EXISTS {_quote(table)}",
            _create_table_sql(table, columns, primary_key=False),
        ]
        insert = (
            f"INSERT INTO {_quote(table)} ({', '.join(_quote(name) for name in names)}) "
            f"VALUES ({', '.join('?' for _ in names)})"
        )
        display = ";\n".join([*statements, f"{insert} -- rows from {source}"])
        return WarehouseCommand(
            step=STEP_LOAD,
            display=display,
            payload={"statements": statements, "insert": insert, "columns": names, "source": source},
        )

    def build_merge(self, dataset: str, table: str, staging_table: str) -> WarehouseCommand:
        target = sqlite_table_name(f"{dataset}.{table}")
        statements = [
            _create_table_sql(target, load_schema_columns(self.schema), primary_key=True),
            build_sqlite_merge_sql(target, sqlite_table_name(staging_table)),
        ]
        return WarehouseCommand(step=STEP_MERGE, display=";\n".join(statements), payload={"statements": statements})

    def build_drop(self, staging_table: str) -> WarehouseCommand:
        statement = f"DROP TABLE IF EXISTS {_quote(sqlite_table_name(staging_table))}"
        return WarehouseCommand(step=STEP_DROP, display=statement, payload={"statements": [statement]})

    def _source_rows(self, payload: dict) -> list[tuple]:
        source = payload["source"]
        if "://" in source:
            raise WarehouseError(f"SQLite warehouse only loads local files, got {source}")
        try:
            rows = read_ndjson(Path(source))
        except InputError as exc:
            raise WarehouseError(f"load failed: {exc}") from exc
        return [tuple(row.get(name) for name in payload["columns"]) for row in rows]

    def execute(self, command: WarehouseCommand) -> None:
        payload = command.payload
        values = self._source_rows(payload) if command.step == STEP_LOAD else None
        try:
            with closing(self._connect()) as conn:
                with conn:
                    for statement in payload["statements"]:
                        conn.execute(statement)
                    if values is not None:
                        conn.executemany(payload["insert"], values)
        except sqlite3.Error as exc:
            raise WarehouseError(f"sqlite {command.step} failed: {exc}") from exc

    def fetch_rows(self, dataset: str, table: str) -> list[dict]:
        """Rows of ``dataset.table`` ordered by key."""
        name = _quote(sqlite_table_name(f"{dataset}.{table}"))
        with closing(self._connect()) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute(f"SELECT * FROM {name} ORDER BY chain, store_id")
            return [dict(row) for row in cursor.fetchall()]

    def table_exists(self, qualified: str) -> bool:
        with closing(self._connect()) as conn:
            cursor = conn.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
                (sqlite_table_name(qualified),),
            )
            return cursor.fetchone() is not None
