from pathlib import Path
from unittest import mock

import pytest
from botocore.exceptions import ClientError
from PIL import Image

from previews import runner, tasks
from previews.exceptions import ProcessFailed
from previews.models import MediaRecord
from previews.storage import public_url


class FakeBlobStore:
    """In-memory stand-in for BlobStore: downloads write placeholder bytes, uploads are recorded."""

    def __init__(self, missing=(), upload_error=None):
        self.missing = set(missing)
        self.upload_error = upload_error
        self.downloads = []
        self.uploads = []

    def download(self, key, local_path):
        if key in self.missing:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        Path(local_path).write_bytes(b"blob:" + key.encode())
        self.downloads.append((key, Path(local_path)))
        return Path(local_path)

    def upload(self, local_path, key, *, content_type, cache_control, access_token):
        if self.upload_error is not None:
            raise self.upload_error
        assert Path(local_path).exists()
        self.uploads.append({
            "key": key,
            "content_type": content_type,
            "cache_control": cache_control,
            "token": access_token,
        })
        return public_url(key, access_token, endpoint="https://blobs.test", bucket="media")


class FakeRunner:
    """Records ffmpeg invocations and writes plausible outputs; can fail a given step."""

    def __init__(self, fail_on=None, exit_code=1):
        self.fail_on = fail_on          # "clip" | "thumbnail" | "gif" | None
        self.exit_code = exit_code
        self.calls = []
        self.work_dirs = []

    def resolve(self, store):
        return "/opt/ffmpeg"

    def execute(self, binary, argv, *, log_path=None, timeout=None):
        if any("paletteuse" in a for a in argv):
            step = "gif"
        elif "-frames:v" in argv:
            step = "thumbnail"
        else:
            step = "clip"
        self.calls.append((binary, list(argv)))
        output = Path(argv[-1])
        self.work_dirs.append(output.parent)
        if self.fail_on == step:
            raise ProcessFailed(self.exit_code, "Error while opening encoder")
        if step == "clip":
            output.write_bytes(b"\x00\x00\x00\x18ftypmp42")
        elif step == "gif":
            output.write_bytes(b"GIF89a")
        else:
            Image.new("RGB", (360, 640), (255, 100, 0)).save(output, format="JPEG", quality=80)


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def queued(monkeypatch):
    """Replace the .delay of every trigger task with a mock."""
    mocks = {
        "regenerate": mock.Mock(),
        "verify": mock.Mock(),
        "dispatch": mock.Mock(),
        "share_gif": mock.Mock(),
    }
    monkeypatch.setattr(tasks.regenerate_previews, "delay", mocks["regenerate"])
    monkeypatch.setattr(tasks.verify_record_page, "delay", mocks["verify"])
    monkeypatch.setattr(tasks.dispatch_health_alert, "delay", mocks["dispatch"])
    monkeypatch.setattr(tasks.build_share_gif, "delay", mocks["share_gif"])
    return mocks


@pytest.fixture
def make_record(db):
    def _make(record_id="E1", **fields):
        fields.setdefault("title", f"Record {record_id}")
        return MediaRecord.objects.create(id=record_id, **fields)
    return _make


@pytest.fixture(autouse=True)
def _reset_ffmpeg_memo():
    runner.reset_ffmpeg_cache()
    yield
    runner.reset_ffmpeg_cache()
