"""
Live regeneration trigger.

``pre_save`` stashes the stored row as the "before" snapshot; ``post_save``
runs the debouncer and queues work once the surrounding transaction commits,
so a rolled-back write never starts a pipeline run.
"""
import logging
from functools import partial

from django.db import transaction
from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver

from . import tasks
from .debounce import decide
from .models import HealthAlert, MediaRecord

logger = logging.getLogger(__name__)


@receiver(pre_save, sender=MediaRecord)
def capture_before(sender, instance, raw=False, **kwargs):
    if raw:
        return
    instance._before = (
        MediaRecord.objects.filter(pk=instance.pk)
        .only("source_video_ref", "preview_clip_url", "preview_image_url")
        .first()
    )


@receiver(post_save, sender=MediaRecord)
def on_record_write(sender, instance, created, raw=False, **kwargs):
    if raw:
        return
    before = getattr(instance, "_before", None)
    instance._before = None

    decision = decide(before, instance)
    if decision.required:
        logger.info("Record %s needs previews (%s)", instance.pk, decision.reason.value)
        transaction.on_commit(
            partial(tasks.regenerate_previews.delay, instance.pk, instance.source_video_ref, decision.reason.value)
        )

    if created:
        transaction.on_commit(partial(tasks.verify_record_page.delay, instance.pk))


@receiver(post_save, sender=HealthAlert)
def on_alert_created(sender, instance, created, raw=False, **kwargs):
    if raw or not created:
        return
    transaction.on_commit(partial(tasks.dispatch_health_alert.delay, str(instance.pk)))
