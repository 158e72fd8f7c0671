"""Batch processing: sequential runner, progress tracking and checkpoints."""

import asyncio
import json
import os
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Union
import polars as pl
from ..errors import CheckpointError
from ..logging_config import get_logger
from ..models import EnrichmentResult, LeadRecord, ProgressEvent, Stage, StageError

logger = get_logger(__name__)

CHECKPOINT_VERSION = 1

# Fields whose completion rate is reported at the end of a batch
TRACKED_FIELDS = ("phone", "email", "postal_code", "line_type", "carrier_name", "do_not_call", "age")


class Pipeline(Protocol):
    async def run(
        self,
        lead: LeadRecord,
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
    ) -> EnrichmentResult:
        ...


class CheckpointStore(Protocol):
    def save(self, results: Sequence[EnrichmentResult], progress: "BatchProgress") -> None:
        ...


@dataclass
class BatchProgress:
    """Aggregate progress of one batch, updated after every record."""

    total: int
    report_every: int = 50
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    with_phone: int = 0
    complete: int = 0
    field_counts: Dict[str, int] = field(default_factory=lambda: dict.fromkeys(TRACKED_FIELDS, 0))
    errored: List[Dict[str, Any]] = field(default_factory=list)
    results: List[EnrichmentResult] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def update(self, index: int, lead: str, result: EnrichmentResult, quiet: bool = False) -> None:
        """Count one finished record and keep its result."""
        self.results.append(result)
        self.processed += 1
        if result.errors:
            self.failed += 1
            self.errored.append(
                {
                    "index": index,
                    "lead": lead,
                    "stages": [error.stage.value for error in result.errors],
                }
            )
        else:
            self.succeeded += 1
        if result.has_phone:
            self.with_phone += 1
        if result.is_complete:
            self.complete += 1
        for name in TRACKED_FIELDS:
            if getattr(result, name) is not None:
                self.field_counts[name] += 1
        self.updated_at = time.time()

        if not quiet and self.processed % self.report_every == 0:
            self.report()

    def completion_rates(self) -> Dict[str, float]:
        if not self.processed:
            return {name: 0.0 for name in TRACKED_FIELDS}
        return {name: count / self.processed for name, count in self.field_counts.items()}

    def report(self) -> None:
        """Report current progress."""
        elapsed = time.time() - self.started_at
        rate = self.processed / elapsed if elapsed > 0 else 0

        progress_pct = (self.processed / self.total) * 100 if self.total else 100.0
        eta_seconds = (self.total - self.processed) / rate if rate > 0 else 0

        logger.info(
            f"Progress: {self.processed}/{self.total} "
            f"({progress_pct:.1f}%) - "
            f"With phone: {self.with_phone}, Complete: {self.complete}, Errors: {self.failed} - "
            f"Rate: {rate:.2f}/s - "
            f"ETA: {eta_seconds:.0f}s"
        )

    def final_report(self) -> None:
        """Report final statistics."""
        elapsed = time.time() - self.started_at
        avg_rate = self.processed / elapsed if elapsed > 0 else 0

        logger.info(
            f"Completed: {self.processed} leads in {elapsed:.1f}s "
            f"(avg {avg_rate:.2f}/s) - "
            f"With phone: {self.with_phone}, Complete: {self.complete}, Errors: {self.failed}"
        )
        for name, rate in self.completion_rates().items():
            logger.info(f"  {name}: {rate:.0%}")
        for record in self.errored[:20]:
            logger.info(f"  #{record['index']} {record['lead']}: errors in {', '.join(record['stages'])}")

    def metadata(self) -> Dict[str, Any]:
        return {
            "version": CHECKPOINT_VERSION,
            "total": self.total,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "with_phone": self.with_phone,
            "complete": self.complete,
            "field_counts": dict(self.field_counts),
            "errored": list(self.errored),
            "started_at": datetime.fromtimestamp(self.started_at, timezone.utc).isoformat(),
            "updated_at": datetime.fromtimestamp(self.updated_at, timezone.utc).isoformat(),
        }


class JsonCheckpointStore:
    """Writes the accumulated results as one JSON document.

    Each save replaces the file atomically, so a crash during a write leaves
    the previous checkpoint intact.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def save(self, results: Sequence[EnrichmentResult], progress: BatchProgress) -> None:
        document = {
            "metadata": progress.metadata(),
            "results": [result.to_dict() for result in results],
        }
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            raise CheckpointError(f"Failed to save checkpoint to {self.path}: {e}") from e
        logger.debug(f"Checkpoint saved to {self.path} ({len(results)} results)")

    def load(self) -> List[EnrichmentResult]:
        """Results of a previous run, or an empty list when there is none."""
        if not self.path.exists():
            return []
        try:
            with open(self.path, encoding="utf-8") as f:
                document = json.load(f)
            return [EnrichmentResult.from_dict(item) for item in document["results"]]
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise CheckpointError(f"Unreadable checkpoint {self.path}: {e}") from e


class BatchRunner:
    """Feeds leads through a pipeline one at a time, in input order.

    Results are flushed to the checkpoint store every ``flush_every`` records
    and once more when the batch ends, whether it completed or was cancelled.
    """

    def __init__(self, pipeline: Pipeline, store: CheckpointStore, flush_every: int = 5):
        if flush_every < 1:
            raise ValueError("flush_every must be at least 1")
        self.pipeline = pipeline
        self.store = store
        self.flush_every = flush_every
        self.progress: Optional[BatchProgress] = None

    async def run_batch(
        self,
        leads: Sequence[LeadRecord],
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
        cancel: Optional[asyncio.Event] = None,
        on_record: Optional[Callable[[int, EnrichmentResult], None]] = None,
        completed: Optional[Sequence[EnrichmentResult]] = None,
    ) -> List[EnrichmentResult]:
        """
        Enrich ``leads`` sequentially.

        Args:
            leads: All leads of the batch
            on_progress: Receives every stage event, tagged with the lead index
            cancel: Checked between records; the record in flight finishes
            on_record: Called with the index and result of each finished record
            completed: Results of a previous run; that many leads are skipped

        Returns:
            Results in input order, as far as the batch got

        Raises:
            CheckpointError: A checkpoint could not be written
        """
        leads = list(leads)
        progress = BatchProgress(total=len(leads))
        self.progress = progress

        for index, result in enumerate(list(completed or [])[: len(leads)]):
            progress.update(index, leads[index].display_name(), result, quiet=True)
        start = progress.processed
        unflushed = 0

        try:
            for index in range(start, len(leads)):
                if cancel is not None and cancel.is_set():
                    logger.warning(f"Batch cancelled after {progress.processed}/{len(leads)} leads")
                    break

                lead = leads[index]
                result = await self._run_one(index, lead, on_progress)
                progress.update(index, lead.display_name(), result)
                if on_record:
                    on_record(index, result)

                unflushed += 1
                if unflushed >= self.flush_every:
                    self._flush(progress)
                    unflushed = 0
        except asyncio.CancelledError:
            self._flush(progress)
            raise

        self._flush(progress)
        return progress.results

    async def _run_one(
        self,
        index: int,
        lead: LeadRecord,
        on_progress: Optional[Callable[[ProgressEvent], None]],
    ) -> EnrichmentResult:
        last_stage = Stage.NORMALIZE

        def forward(event: ProgressEvent) -> None:
            nonlocal last_stage
            last_stage = event.stage
            if on_progress:
                on_progress(replace(event, index=index))

        try:
            return await self.pipeline.run(lead, on_progress=forward)
        except Exception as e:
            logger.exception(f"Unexpected error enriching lead #{index} ({lead.display_name()})")
            result = EnrichmentResult()
            result.record_error(StageError(stage=last_stage, message=f"unexpected error: {e}"))
            return result

    def _flush(self, progress: BatchProgress) -> None:
        try:
            self.store.save(progress.results, progress)
        except CheckpointError as e:
            logger.error(f"{e}; aborting batch")
            raise


EXPORT_SCHEMA: Dict[str, Any] = {
    name: pl.Utf8 for name in EnrichmentResult.FIELDS
}
EXPORT_SCHEMA.update({"age": pl.Int64, "do_not_call": pl.Boolean, "errors": pl.Utf8, "skipped": pl.Utf8})


def results_frame(
    results: Sequence[EnrichmentResult],
    source: Optional[pl.DataFrame] = None,
) -> pl.DataFrame:
    """Flatten results into a DataFrame, optionally beside the input rows.

    Enriched columns whose names clash with input columns get an ``_enriched``
    suffix.
    """
    rows = []
    for result in results:
        row = result.to_dict()
        row["errors"] = "; ".join(
            f"{error['stage']}: {error['message']}" for error in row["errors"]
        ) or None
        row["skipped"] = "; ".join(f"{stage}: {reason}" for stage, reason in row["skipped"].items()) or None
        rows.append(row)
    results_df = pl.DataFrame(rows, schema=EXPORT_SCHEMA)

    if source is None:
        return results_df
    clashes = {name: f"{name}_enriched" for name in results_df.columns if name in source.columns}
    return pl.concat(
        [source.slice(0, len(results_df)), results_df.rename(clashes)],
        how="horizontal",
    )


def save_results(
    results: Sequence[EnrichmentResult],
    filepath: str,
    source: Optional[pl.DataFrame] = None,
) -> pl.DataFrame:
    """
    Export results to CSV or parquet.

    Args:
        results: Enrichment results in input order
        filepath: Output file path
        source: Input rows to place beside the results

    Returns:
        The exported DataFrame
    """
    df = results_frame(results, source)
    if filepath.endswith(".csv"):
        df.write_csv(filepath)
    elif filepath.endswith(".parquet"):
        df.write_parquet(filepath)
    else:
        raise ValueError(f"Unsupported file format: {filepath}")

    logger.debug(f"Results saved to {filepath}")
    return df
