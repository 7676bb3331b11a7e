from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from previews.sweep import eligible_records, force_regenerate


class Command(BaseCommand):
    help = (
        "Force preview regeneration: clear the preview fields on records that have a "
        "source video so the live trigger rebuilds them."
    )

    def add_arguments(self, parser):
        parser.add_argument("mode", nargs="?", choices=["test"], help="same as --test")
        parser.add_argument("--test", action="store_true", help=f"process at most {settings.SWEEP_TEST_LIMIT} records")
        parser.add_argument("--days", "-d", help="only records created within the last N days")
        parser.add_argument("--yes", "-y", action="store_true", help="skip the confirmation prompt")
        parser.add_argument("--batch-size", default=str(settings.SWEEP_BATCH_SIZE), help="records per transaction")

    def handle(self, *args, **opts):
        test_mode = opts["test"] or opts["mode"] == "test"
        days = _positive_int(opts["days"], "days") if opts["days"] is not None else None
        batch_size = _positive_int(opts["batch_size"], "batch-size")

        self.stdout.write("Preview regeneration")
        self.stdout.write(f"Format: 360x640, 2.5s, 10fps ({settings.PREVIEW_BACKGROUND} background)")
        if days:
            self.stdout.write(f"Time range: last {days} days")
        mode = f"TEST (max {settings.SWEEP_TEST_LIMIT} records)" if test_mode else "FULL"
        self.stdout.write(f"Mode: {mode}")

        records = list(eligible_records(days=days, limit=settings.SWEEP_TEST_LIMIT if test_mode else None))
        if not records:
            self.stdout.write(self.style.WARNING("No records with a source video found."))
            return

        self.stdout.write(f"Found {len(records)} records with a source video")
        for record in records[:5]:
            self.stdout.write(f"   - {record.title or 'Untitled'} ({record.pk}) - created {record.created_at:%Y-%m-%d}")
        if len(records) > 5:
            self.stdout.write(f"   ... and {len(records) - 5} more")

        if not test_mode and not opts["yes"] and len(records) > settings.SWEEP_CONFIRM_THRESHOLD:
            self.stdout.write(self.style.WARNING(f"This will regenerate {len(records)} previews."))
            answer = input("Continue? (yes/no): ")
            if answer.strip().lower() != "yes":
                self.stdout.write("Regeneration cancelled.")
                return

        report = force_regenerate(records, batch_size=batch_size, pause=settings.SWEEP_BATCH_PAUSE_SECONDS)

        for batch in report.batches:
            if batch.error:
                self.stdout.write(self.style.ERROR(f"Batch {batch.index}: failed ({batch.error})"))
            else:
                self.stdout.write(f"Batch {batch.index}: {batch.updated}/{batch.size} marked")

        self.stdout.write(f"Records processed: {report.total}")
        self.stdout.write(f"Marked for regeneration: {report.updated}")
        if report.skipped:
            self.stdout.write(f"Skipped (no video or deleted): {report.skipped}")
        if report.failed_batches:
            self.stdout.write(self.style.ERROR(
                f"{len(report.failed_batches)} batch(es) failed; re-run the sweep to retry them."
            ))
        else:
            self.stdout.write(self.style.SUCCESS("Regeneration queued."))


def _positive_int(raw, name: str) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise CommandError(f"Invalid {name} value. Must be a positive number.")
    if value <= 0:
        raise CommandError(f"Invalid {name} value. Must be a positive number.")
    return value
