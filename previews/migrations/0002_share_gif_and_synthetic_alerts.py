from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("previews", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="mediarecord",
            name="share_gif_url",
            field=models.URLField(blank=True, max_length=1024, null=True),
        ),
        migrations.AddField(
            model_name="mediarecord",
            name="gif_ready",
            field=models.BooleanField(default=False),
        ),
        migrations.AlterField(
            model_name="healthalert",
            name="source",
            field=models.CharField(
                choices=[("monitor", "Monitor"), ("manual-test", "Manual Test"), ("synthetic", "Synthetic")],
                default="monitor",
                max_length=16,
            ),
        ),
    ]
