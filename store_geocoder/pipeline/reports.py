"""Progress reporting and run summaries."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable

from store_geocoder.common.constants import DEFAULT_PROGRESS_EVERY
from store_geocoder.common.fs import write_json
from store_geocoder.common.logging import log_event


class ProgressReporter:
    """``on_progress`` callback that logs the first, last and every Nth record."""

    def __init__(
        self,
        logger: logging.Logger,
        *,
        run_id: str,
        chain: str,
        every: int = DEFAULT_PROGRESS_EVERY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.logger = logger
        self.run_id = run_id
        self.chain = chain
        self.every = every
        self.clock = clock
        self.started_at = clock()
        self.last_logged = 0

    def should_log(self, processed: int, total: int) -> bool:
        return processed == 1 or processed == total or processed - self.last_logged >= self.every

    def __call__(self, progress: dict[str, int]) -> None:
        processed = progress["processed"]
        total = progress["total"]
        if not self.should_log(processed, total):
            return
        self.last_logged = processed

        pct = f"{processed / total * 100:.1f}" if total > 0 else "100.0"
        elapsed_sec = int(self.clock() - self.started_at)
        log_event(
            self.logger,
            f"[progress] chain={self.chain} {processed}/{total} ({pct}%) elapsed={elapsed_sec}s "
            f"cache={progress['cache_hits']} new={progress['geocoded_new']} errors={progress['geocode_errors']}",
            run_id=self.run_id,
            stage="geocode",
            chain=self.chain,
            event="GEOCODE_PROGRESS",
            status="ok",
            processed=processed,
            total=total,
            cache_hits=progress["cache_hits"],
            geocoded_new=progress["geocoded_new"],
            geocode_errors=progress["geocode_errors"],
            duration_ms=elapsed_sec * 1000,
        )


def write_geocode_summary(
    data_dir: Path,
    *,
    run_id: str,
    chain: str,
    stats: dict[str, int],
    output_path: Path | None,
    geocoded_at: str,
) -> Path:
    summary_path = data_dir / "reports" / f"{chain}_geocode_summary.json"
    payload = {
        "run_id": run_id,
        "chain": chain,
        "geocoded_at": geocoded_at,
        "output": str(output_path) if output_path is not None else None,
        "rows_written": stats["processed"] - stats["skipped_store_id"],
        "status": "partial" if stats["geocode_errors"] else "success",
        "totals": stats,
    }
    write_json(summary_path, payload)
    return summary_path
