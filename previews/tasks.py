import logging

from celery import shared_task
from django.conf import settings
from django.core.cache import cache

from .alerts import dispatch
from .debounce import Reason
from .health import verify_and_alert
from .models import HealthAlert, MediaRecord
from .pipeline import AssetPipeline, GifPublished, Published
from .storage import get_blob_store

logger = logging.getLogger(__name__)


def _lock_key(record_id: str) -> str:
    return f"previews:regen-lock:{record_id}"


@shared_task(bind=True, max_retries=5, default_retry_delay=30, ignore_result=True)
def regenerate_previews(self, record_id: str, source_ref: str, reason: str):
    """
    Run the asset pipeline for one record change.

    ``source_ref`` is the source the change was decided on; if the record has
    moved on since, a newer change event owns the regeneration.
    """
    if not cache.add(_lock_key(record_id), self.request.id or "eager", settings.PREVIEW_LOCK_SECONDS):
        logger.info("Record %s is already regenerating; retrying later", record_id)
        raise self.retry()

    try:
        record = MediaRecord.objects.filter(pk=record_id).first()
        if record is None:
            logger.info("Record %s no longer exists; nothing to regenerate", record_id)
            return "missing"
        if record.source_video_ref != source_ref:
            logger.info("Record %s source changed since %s was queued; skipping", record_id, reason)
            return "superseded"
        if reason == Reason.OUTPUTS_MISSING.value and record.has_previews:
            logger.info("Record %s already has previews; skipping duplicate delivery", record_id)
            return "already-published"

        outcome = AssetPipeline(get_blob_store()).run(record)
    finally:
        cache.delete(_lock_key(record_id))

    if isinstance(outcome, Published):
        return "published"
    return f"failed:{outcome.stage.value}"


@shared_task(
    ignore_result=True,
    time_limit=settings.HEALTH_CHECK_TASK_TIME_LIMIT,
    soft_time_limit=settings.HEALTH_CHECK_TASK_TIME_LIMIT - 10,
)
def verify_record_page(record_id: str):
    verification, alert = verify_and_alert(record_id)
    if alert is not None:
        return f"alert:{alert.pk}"
    return "ok"


@shared_task(ignore_result=True)
def dispatch_health_alert(alert_id: str):
    alert = HealthAlert.objects.filter(pk=alert_id).first()
    if alert is None:
        logger.warning("Alert %s vanished before dispatch", alert_id)
        return "missing"
    return dispatch(alert).status


@shared_task(
    ignore_result=True,
    time_limit=settings.SHARE_GIF_TASK_TIME_LIMIT,
    soft_time_limit=settings.SHARE_GIF_TASK_TIME_LIMIT - 10,
)
def build_share_gif(record_id: str):
    record = MediaRecord.objects.filter(pk=record_id).first()
    if record is None:
        logger.info("Record %s no longer exists; no share GIF to build", record_id)
        return "missing"

    outcome = AssetPipeline(get_blob_store()).build_share_gif(record)
    if isinstance(outcome, GifPublished):
        return "published"
    return f"failed:{outcome.stage.value}"
