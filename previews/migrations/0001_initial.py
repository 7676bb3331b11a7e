import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="MediaRecord",
            fields=[
                ("id", models.CharField(editable=False, max_length=128, primary_key=True, serialize=False)),
                ("title", models.CharField(blank=True, default="", max_length=512)),
                ("description", models.TextField(blank=True, default="")),
                ("source_video_ref", models.CharField(blank=True, max_length=1024, null=True)),
                ("preview_clip_url", models.URLField(blank=True, max_length=1024, null=True)),
                ("preview_image_url", models.URLField(blank=True, max_length=1024, null=True)),
                ("last_regenerated_at", models.DateTimeField(blank=True, null=True)),
                ("force_regen_marker", models.CharField(blank=True, max_length=64, null=True)),
                ("extra", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["created_at"], name="previews_record_created_idx")],
            },
        ),
        migrations.CreateModel(
            name="HealthAlert",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("record_id", models.CharField(db_index=True, max_length=128)),
                ("target_url", models.URLField(max_length=1024)),
                ("error", models.TextField(blank=True, default="")),
                ("attempt_log", models.JSONField(blank=True, default=list)),
                (
                    "source",
                    models.CharField(
                        choices=[("monitor", "Monitor"), ("manual-test", "Manual Test")],
                        default="monitor",
                        max_length=16,
                    ),
                ),
                ("resolved", models.BooleanField(default=False)),
                ("dispatched_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]
