from io import StringIO
from unittest import mock

import pytest
from django.core.management import CommandError, call_command

from previews.management.commands import regen_previews
from previews.models import MediaRecord

pytestmark = pytest.mark.django_db

DONE = {"preview_clip_url": "https://b.test/c.mp4", "preview_image_url": "https://b.test/i.jpg"}


@pytest.fixture(autouse=True)
def _fast(settings):
    settings.SWEEP_BATCH_PAUSE_SECONDS = 0
    settings.SWEEP_CONFIRM_THRESHOLD = 3


def run(*args):
    out = StringIO()
    call_command("regen_previews", *args, stdout=out)
    return out.getvalue()


def cleared():
    return MediaRecord.objects.filter(preview_clip_url__isnull=True, preview_image_url__isnull=True).count()


@pytest.mark.parametrize("value", ["0", "-3", "ten"])
def test_invalid_days_is_rejected(value):
    with pytest.raises(CommandError, match="positive number"):
        run("--days", value)


def test_test_mode_caps_at_ten(make_record):
    for i in range(12):
        make_record(f"R{i:02d}", source_video_ref=f"uploads/{i}.mp4", **DONE)

    output = run("--test")

    assert "TEST" in output
    assert cleared() == 10


def test_bare_test_argument_is_accepted(make_record):
    make_record("R1", source_video_ref="uploads/1.mp4", **DONE)
    run("test")
    assert cleared() == 1


def test_large_full_sweep_asks_for_confirmation(make_record):
    for i in range(5):
        make_record(f"R{i}", source_video_ref=f"uploads/{i}.mp4", **DONE)

    with mock.patch("builtins.input", return_value="no") as prompt:
        output = run()

    prompt.assert_called_once()
    assert "cancelled" in output
    assert cleared() == 0

    with mock.patch("builtins.input", return_value="yes"):
        run()
    assert cleared() == 5


def test_yes_flag_skips_prompt(make_record):
    for i in range(5):
        make_record(f"R{i}", source_video_ref=f"uploads/{i}.mp4", **DONE)
    with mock.patch("builtins.input", side_effect=AssertionError("prompted")):
        run("--yes", "--batch-size", "2")
    assert cleared() == 5


def test_nothing_to_do(make_record):
    make_record("R1")
    assert "No records" in run()


def test_failed_batches_are_reported(make_record, monkeypatch):
    make_record("R1", source_video_ref="uploads/1.mp4", **DONE)
    report = regen_previews.force_regenerate  # keep the real batching, fail the commit
    monkeypatch.setattr(
        regen_previews,
        "force_regenerate",
        lambda records, **kw: report(records, batch_size=kw["batch_size"], commit=_boom),
    )
    output = run()
    assert "failed" in output
    assert "re-run" in output


def _boom(batch):
    from django.db import DatabaseError

    raise DatabaseError("disk full")
