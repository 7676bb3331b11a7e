"""
Force-regeneration sweep.

Clears the preview fields on matching records (plus a fresh marker value) in
bounded batches. Each batch is its own transaction; the live trigger sees the
cleared outputs on commit and queues the pipeline. A failed batch is logged
and reported, earlier batches stay committed, and the sweep can simply be run
again.
"""
import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import timedelta

from django.db import DatabaseError, transaction
from django.utils import timezone

from .models import MediaRecord

logger = logging.getLogger(__name__)

CLEARED_FIELDS = ["preview_clip_url", "preview_image_url", "force_regen_marker", "updated_at"]


@dataclass
class BatchResult:
    index: int
    size: int
    updated: int = 0
    error: str | None = None

    @property
    def skipped(self) -> int:
        return 0 if self.error else self.size - self.updated


@dataclass
class SweepReport:
    total: int = 0
    batches: list = field(default_factory=list)

    @property
    def updated(self) -> int:
        return sum(b.updated for b in self.batches)

    @property
    def skipped(self) -> int:
        return sum(b.skipped for b in self.batches)

    @property
    def failed_batches(self) -> list:
        return [b for b in self.batches if b.error]


def eligible_records(days: int | None = None, limit: int | None = None, now=None):
    qs = MediaRecord.objects.exclude(source_video_ref__isnull=True).exclude(source_video_ref="")
    if days:
        cutoff = (now or timezone.now()) - timedelta(days=days)
        qs = qs.filter(created_at__gte=cutoff)
    qs = qs.order_by("-created_at", "pk")
    if limit:
        qs = qs[:limit]
    return qs


def mark_for_regeneration(record: MediaRecord) -> None:
    record.preview_clip_url = None
    record.preview_image_url = None
    record.force_regen_marker = secrets.token_hex(8)


def commit_batch(records) -> int:
    """
    Clear previews on ``records`` in one transaction; returns how many were touched.

    Rows are re-read inside the transaction, so a record deleted or edited since
    the sweep listed it is seen as it is now.
    """
    wanted = [r.pk for r in records]
    updated = 0
    with transaction.atomic():
        fresh = MediaRecord.objects.select_for_update().in_bulk(wanted)
        for pk in wanted:
            record = fresh.get(pk)
            if record is None:
                logger.info("Skipping record %s: deleted since listing", pk)
                continue
            if not record.source_video_ref:
                logger.info("Skipping record %s: no source video", record.pk)
                continue
            mark_for_regeneration(record)
            record.save(update_fields=CLEARED_FIELDS)
            updated += 1
    return updated


def force_regenerate(records, batch_size: int = 100, commit=commit_batch, pause: float = 0, sleep=time.sleep) -> SweepReport:
    records = list(records)
    report = SweepReport(total=len(records))
    processed = 0

    for index, start in enumerate(range(0, len(records), batch_size), start=1):
        batch = records[start:start + batch_size]
        result = BatchResult(index=index, size=len(batch))
        logger.info("Batch %d: %d records", index, len(batch))
        try:
            result.updated = commit(batch)
        except DatabaseError as exc:
            result.error = str(exc)
            logger.error("Batch %d failed and was rolled back: %s", index, exc)
        else:
            logger.info("Batch %d committed: %d marked for regeneration", index, result.updated)
        report.batches.append(result)

        processed += len(batch)
        logger.info("Progress: %d/%d records", processed, report.total)
        if pause and processed < report.total:
            sleep(pause)

    logger.info(
        "Sweep finished: %d records, %d marked, %d skipped, %d failed batches",
        report.total, report.updated, report.skipped, len(report.failed_batches),
    )
    return report
