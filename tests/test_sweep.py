from datetime import timedelta

import pytest
from django.db import DatabaseError
from django.utils import timezone

from previews.debounce import Reason
from previews.models import MediaRecord
from previews.sweep import commit_batch, eligible_records, force_regenerate

DONE = {"preview_clip_url": "https://b.test/c.mp4", "preview_image_url": "https://b.test/i.jpg"}


def test_batches_are_bounded_and_cover_every_record():
    sizes = []
    report = force_regenerate(range(250), batch_size=100, commit=lambda batch: sizes.append(len(batch)) or len(batch))

    assert sizes == [100, 100, 50]
    assert report.total == 250
    assert report.updated == 250
    assert report.failed_batches == []


def test_failed_batch_does_not_undo_earlier_batches():
    committed = []

    def commit(batch):
        if batch[0] == 100:
            raise DatabaseError("deadlock detected")
        committed.extend(batch)
        return len(batch)

    report = force_regenerate(list(range(250)), batch_size=100, commit=commit)

    assert committed == list(range(100)) + list(range(200, 250))
    assert [b.index for b in report.failed_batches] == [2]
    assert report.failed_batches[0].error == "deadlock detected"
    assert report.updated == 150


def test_pause_between_batches_only():
    sleeps = []
    force_regenerate(range(5), batch_size=2, commit=len, pause=0.5, sleep=sleeps.append)
    assert sleeps == [0.5, 0.5]


@pytest.mark.django_db
def test_eligible_records_filters_source_and_recency(make_record):
    make_record("new", source_video_ref="uploads/new.mp4")
    make_record("old", source_video_ref="uploads/old.mp4")
    make_record("novideo")
    make_record("blank", source_video_ref="")
    MediaRecord.objects.filter(pk="old").update(created_at=timezone.now() - timedelta(days=30))

    assert {r.pk for r in eligible_records()} == {"new", "old"}
    assert [r.pk for r in eligible_records(days=7)] == ["new"]
    assert len(eligible_records(limit=1)) == 1


@pytest.mark.django_db
def test_commit_batch_clears_outputs_and_stamps_fresh_marker(make_record):
    a = make_record("A", source_video_ref="uploads/a.mp4", **DONE)
    b = make_record("B", source_video_ref="uploads/b.mp4", **DONE)

    assert commit_batch([a, b]) == 2

    markers = set()
    for record in MediaRecord.objects.filter(pk__in=["A", "B"]):
        assert record.preview_clip_url is None
        assert record.preview_image_url is None
        assert record.source_video_ref
        markers.add(record.force_regen_marker)
    assert len(markers) == 2 and None not in markers


@pytest.mark.django_db
def test_sweep_triggers_outputs_missing_once_per_record(make_record, queued, django_capture_on_commit_callbacks):
    for i in range(3):
        make_record(f"R{i}", source_video_ref=f"uploads/{i}.mp4", **DONE)

    with django_capture_on_commit_callbacks(execute=True):
        report = force_regenerate(eligible_records(), batch_size=2)

    assert report.updated == 3
    calls = queued["regenerate"].call_args_list
    assert sorted(c.args[0] for c in calls) == ["R0", "R1", "R2"]
    assert {c.args[2] for c in calls} == {Reason.OUTPUTS_MISSING.value}


@pytest.mark.django_db
def test_rolled_back_batch_queues_nothing(make_record, queued, django_capture_on_commit_callbacks):
    record = make_record("R1", source_video_ref="uploads/1.mp4", **DONE)

    def failing_commit(batch):
        from django.db import transaction

        with transaction.atomic():
            commit_batch(batch)
            raise DatabaseError("constraint failed")

    with django_capture_on_commit_callbacks(execute=True):
        report = force_regenerate([record], batch_size=10, commit=failing_commit)

    assert len(report.failed_batches) == 1
    queued["regenerate"].assert_not_called()
    record.refresh_from_db()
    assert record.preview_clip_url == DONE["preview_clip_url"]


@pytest.mark.django_db
def test_record_deleted_after_listing_does_not_sink_its_batch(make_record, queued, django_capture_on_commit_callbacks):
    for i in range(3):
        make_record(f"R{i}", source_video_ref=f"uploads/{i}.mp4", **DONE)
    listed = list(eligible_records())
    MediaRecord.objects.filter(pk="R1").delete()

    with django_capture_on_commit_callbacks(execute=True):
        report = force_regenerate(listed, batch_size=10)

    assert report.failed_batches == []
    assert report.updated == 2
    assert report.skipped == 1
    survivors = MediaRecord.objects.filter(preview_clip_url__isnull=True, preview_image_url__isnull=True)
    assert sorted(r.pk for r in survivors) == ["R0", "R2"]
    assert sorted(c.args[0] for c in queued["regenerate"].call_args_list) == ["R0", "R2"]


@pytest.mark.django_db
def test_commit_batch_uses_current_source_ref(make_record, queued, django_capture_on_commit_callbacks):
    record = make_record("R1", source_video_ref="uploads/old.mp4", **DONE)
    MediaRecord.objects.filter(pk="R1").update(source_video_ref="uploads/new.mp4")

    with django_capture_on_commit_callbacks(execute=True):
        assert commit_batch([record]) == 1

    (call,) = queued["regenerate"].call_args_list
    assert call.args[1] == "uploads/new.mp4"
    assert MediaRecord.objects.get(pk="R1").source_video_ref == "uploads/new.mp4"
