import uuid
from django.db import models


class MediaRecord(models.Model):
    id = models.CharField(primary_key=True, max_length=128, editable=False)  # assigned by the caller
    title = models.CharField(max_length=512, blank=True, default="")
    description = models.TextField(blank=True, default="")
    source_video_ref = models.CharField(max_length=1024, blank=True, null=True)  # blob key or storage URL

    # Owned by the preview pipeline: written together by the publish step, cleared together by sweeps.
    preview_clip_url = models.URLField(max_length=1024, blank=True, null=True)
    preview_image_url = models.URLField(max_length=1024, blank=True, null=True)
    last_regenerated_at = models.DateTimeField(blank=True, null=True)
    force_regen_marker = models.CharField(max_length=64, blank=True, null=True)

    # On-demand share GIF, built only when requested.
    share_gif_url = models.URLField(max_length=1024, blank=True, null=True)
    gif_ready = models.BooleanField(default=False)

    extra = models.JSONField(default=dict, blank=True)  # passthrough for page markup

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["created_at"], name="previews_record_created_idx")]

    def __str__(self):
        return f"MediaRecord({self.id})"

    @property
    def has_previews(self) -> bool:
        return bool(self.preview_clip_url and self.preview_image_url)


class HealthAlert(models.Model):
    class Source(models.TextChoices):
        MONITOR = "monitor"
        MANUAL_TEST = "manual-test"
        SYNTHETIC = "synthetic"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    record_id = models.CharField(max_length=128, db_index=True)
    target_url = models.URLField(max_length=1024)
    error = models.TextField(blank=True, default="")
    attempt_log = models.JSONField(default=list, blank=True)    # [{attempt, timestamp, success, error}]
    source = models.CharField(max_length=16, choices=Source.choices, default=Source.MONITOR)
    resolved = models.BooleanField(default=False)
    dispatched_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"HealthAlert({self.record_id}, {self.source})"
