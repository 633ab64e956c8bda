"""CLI entrypoint for the store geocoding pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from store_geocoder.common.config_loader import PipelineConfig, load_pipeline_config
from store_geocoder.common.constants import (
    COMMANDS,
    EXIT_CONFIG_ERROR,
    EXIT_HARD_FAIL,
    EXIT_SUCCESS,
    WAREHOUSE_BACKENDS,
)
from store_geocoder.common.errors import ConfigError, PipelineError
from store_geocoder.common.fs import read_ndjson_from_spec
from store_geocoder.common.http import HttpClient, RetryConfig, TimeoutConfig
from store_geocoder.common.ids import generate_run_id
from store_geocoder.common.logging import build_logger, close_logger, log_event
from store_geocoder.common.time_utils import utc_timestamp_iso
from store_geocoder.geocoder.base import create_normalizer
from store_geocoder.pipeline.export import write_output_ndjson
from store_geocoder.pipeline.geocode import build_geocoded_rows
from store_geocoder.pipeline.reports import ProgressReporter, write_geocode_summary
from store_geocoder.warehouse.base import Warehouse
from store_geocoder.warehouse.bigquery import BigQueryCliWarehouse
from store_geocoder.warehouse.naming import sanitize_id
from store_geocoder.warehouse.sqlite import SqliteWarehouse
from store_geocoder.warehouse.upsert import UpsertOptions, run_upsert_flow

EXISTING_FILE_PREFIX = "stores_"


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])

    geocode = parser.add_argument_group("geocode")
    geocode.add_argument("--chain", default=None)
    geocode.add_argument("--input", default=None)
    geocode.add_argument("--output", default=None)
    geocode.add_argument("--existing", default=None)
    geocode.add_argument("--engine-version", default=None)
    geocode.add_argument("--geocode-engine", default=None)
    geocode.add_argument("--japanese-addresses-api", default=None)
    geocode.add_argument("--workers", type=int, default=1)

    upsert = parser.add_argument_group("upsert")
    upsert.add_argument("--source", default=None)
    upsert.add_argument("--backend", default="bq", choices=WAREHOUSE_BACKENDS)
    upsert.add_argument("--project", default=None)
    upsert.add_argument("--dataset", default=None)
    upsert.add_argument("--table", default=None)
    upsert.add_argument("--schema", default=None)
    upsert.add_argument("--location", default=None)
    upsert.add_argument("--sqlite-path", default=None)
    upsert.add_argument("--temp-suffix", default=None)
    upsert.add_argument("--keep-temp", action="store_true")
    upsert.add_argument("--dry-run", action="store_true")
    return parser.parse_args(argv)


def validate_args(args: argparse.Namespace, cfg: PipelineConfig) -> None:
    if args.command == "geocode":
        if not args.chain:
            raise ConfigError("--chain is required")
        cfg.file_prefix(args.chain)
        if not args.input:
            raise ConfigError("--input is required")
        if not args.output:
            raise ConfigError("--output is required")
        if args.workers < 1:
            raise ConfigError("--workers must be at least 1")
        return

    if not args.source:
        raise ConfigError("--source is required")
    if args.backend == "bq" and not args.project:
        raise ConfigError("--project is required")
    if args.backend == "sqlite" and not args.sqlite_path:
        raise ConfigError("--sqlite-path is required for the sqlite backend")
    sanitize_id(args.dataset or cfg.warehouse["dataset"], "dataset")
    sanitize_id(args.table or cfg.warehouse["table"], "table")


def run_geocode(args: argparse.Namespace, cfg: PipelineConfig, logger: logging.Logger, run_id: str, data_dir: Path) -> None:
    chain = args.chain
    scraped_rows = read_ndjson_from_spec(args.input, cfg.file_prefix(chain))
    existing_rows = read_ndjson_from_spec(args.existing, EXISTING_FILE_PREFIX) if args.existing else []
    log_event(
        logger,
        f"loaded {len(scraped_rows)} snapshots and {len(existing_rows)} existing rows",
        run_id=run_id,
        stage="geocode",
        chain=chain,
        event="INPUT_LOADED",
        status="ok",
        total=len(scraped_rows),
    )

    geocoder_cfg = cfg.geocoder
    client = HttpClient(
        timeout=TimeoutConfig(read=float(geocoder_cfg["timeout_seconds"])),
        retry=RetryConfig(max_attempts=int(geocoder_cfg["max_attempts"])),
        rate_per_sec=float(geocoder_cfg["rate_per_sec"]),
    )
    engine = args.geocode_engine or geocoder_cfg["engine"]
    geocoded_at = utc_timestamp_iso()
    with client:
        normalize = create_normalizer(
            engine,
            japanese_addresses_api=args.japanese_addresses_api or geocoder_cfg["japanese_addresses_api"],
            client=client,
        )
        run = build_geocoded_rows(
            chain=chain,
            scraped_rows=scraped_rows,
            normalize=normalize,
            geocoded_at=geocoded_at,
            geocode_engine=engine,
            engine_version=args.engine_version,
            existing_rows=existing_rows,
            reuse_failures=cfg.cache["reuse_failures"],
            on_progress=ProgressReporter(logger, run_id=run_id, chain=chain, every=int(cfg.progress["every"])),
            max_workers=args.workers,
        )

    output_path = write_output_ndjson(Path(args.output), run.rows)
    log_event(
        logger,
        f"geocoded rows: {len(run.rows)} -> {output_path if output_path else 'no output (empty batch)'}",
        run_id=run_id,
        stage="geocode",
        chain=chain,
        event="OUTPUT_WRITTEN",
        status="ok",
        total=len(run.rows),
    )

    stats = run.stats.to_dict()
    write_geocode_summary(
        data_dir,
        run_id=run_id,
        chain=chain,
        stats=stats,
        output_path=output_path,
        geocoded_at=geocoded_at,
    )
    log_event(
        logger,
        "geocode summary",
        run_id=run_id,
        stage="geocode",
        chain=chain,
        event="GEOCODE_SUMMARY",
        status="partial" if stats["geocode_errors"] else "ok",
        processed=stats["processed"],
        total=stats["total"],
        cache_hits=stats["cache_hits"],
        geocoded_new=stats["geocoded_new"],
        geocode_errors=stats["geocode_errors"],
        skipped_store_id=stats["skipped_store_id"],
        missing_address=stats["missing_address"],
    )


def build_warehouse(args: argparse.Namespace, cfg: PipelineConfig) -> Warehouse:
    if args.backend == "sqlite":
        return SqliteWarehouse(args.sqlite_path, schema=args.schema or cfg.warehouse["schema"])
    return BigQueryCliWarehouse(args.project, location=args.location or cfg.warehouse.get("location"))


def run_upsert(args: argparse.Namespace, cfg: PipelineConfig, logger: logging.Logger, run_id: str) -> None:
    options = UpsertOptions(
        dataset=args.dataset or cfg.warehouse["dataset"],
        table=args.table or cfg.warehouse["table"],
        source=args.source,
        schema=args.schema or cfg.warehouse["schema"],
        temp_suffix=args.temp_suffix,
        keep_temp=args.keep_temp,
        dry_run=args.dry_run,
    )
    result = run_upsert_flow(build_warehouse(args, cfg), options, logger=logger, run_id=run_id)
    log_event(
        logger,
        f"upsert {'planned' if args.dry_run else 'completed'} via {result.staging_table}",
        run_id=run_id,
        stage="upsert",
        event="UPSERT_END",
        status="dry_run" if args.dry_run else "ok",
    )


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    data_dir = Path(args.data_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None

    try:
        cfg = load_pipeline_config(Path(args.config_dir), overlay_config_dir=overlay_config_dir)
        validate_args(args, cfg)
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    stage = args.command
    started = time.monotonic()
    log_event(logger, "stage start", run_id=run_id, stage=stage, chain=args.chain, event="STAGE_START", status="ok")
    try:
        if stage == "geocode":
            run_geocode(args, cfg, logger, run_id, data_dir)
        else:
            run_upsert(args, cfg, logger, run_id)
        log_event(
            logger,
            "stage end",
            run_id=run_id,
            stage=stage,
            chain=args.chain,
            event="STAGE_END",
            status="ok",
            duration_ms=int((time.monotonic() - started) * 1000),
        )
    except PipelineError as exc:
        log_event(
            logger,
            f"stage failed: {exc}",
            level=logging.ERROR,
            run_id=run_id,
            stage=stage,
            chain=args.chain,
            event="STAGE_FAIL",
            status="error",
            error_code=exc.error_code,
        )
        return EXIT_CONFIG_ERROR if isinstance(exc, ConfigError) else EXIT_HARD_FAIL
    except Exception:
        logger.exception(
            "unexpected failure",
            extra={"run_id": run_id, "stage": stage, "event": "STAGE_FAIL", "status": "error", "error_code": "UNEXPECTED_ERROR"},
        )
        return EXIT_HARD_FAIL
    finally:
        close_logger(logger)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    return run_command(args)


if __name__ == "__main__":
    raise SystemExit(main())
