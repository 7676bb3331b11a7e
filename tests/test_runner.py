import os
import sys

import pytest

from previews import runner
from previews.exceptions import ProcessFailed


def test_execute_passes_arguments_without_a_shell(tmp_path):
    target = tmp_path / "out file ünïcode; rm -rf x.txt"
    runner.execute(sys.executable, ["-c", "import sys; open(sys.argv[1], 'w').write('ok')", str(target)])
    assert target.read_text() == "ok"


def test_execute_raises_with_exit_code_and_stderr_tail(tmp_path):
    log = tmp_path / "step.log"
    script = "import sys; sys.stderr.write('x' * 10000 + 'boom'); sys.exit(3)"

    with pytest.raises(ProcessFailed) as excinfo:
        runner.execute(sys.executable, ["-c", script], log_path=log)

    assert excinfo.value.exit_code == 3
    assert excinfo.value.output_tail.endswith("boom")
    assert len(excinfo.value.output_tail) <= runner.OUTPUT_TAIL_CHARS


def test_execute_without_log_discards_output():
    with pytest.raises(ProcessFailed) as excinfo:
        runner.execute(sys.executable, ["-c", "import sys; print('noise'); sys.exit(2)"])
    assert excinfo.value.exit_code == 2
    assert excinfo.value.output_tail == ""


class CountingStore:
    def __init__(self):
        self.keys = []

    def download(self, key, local_path):
        self.keys.append(key)
        with open(local_path, "wb") as fh:
            fh.write(b"#!/bin/sh\nexit 0\n")


def test_ensure_ffmpeg_downloads_once_and_marks_executable(tmp_path, settings):
    settings.FFMPEG_PATH = ""
    settings.FFMPEG_BLOB_KEY = "bin/ffmpeg"
    settings.FFMPEG_CACHE_PATH = str(tmp_path / "cache" / "ffmpeg")
    store = CountingStore()

    first = runner.ensure_ffmpeg(store)
    second = runner.ensure_ffmpeg(store)

    assert first == second == settings.FFMPEG_CACHE_PATH
    assert store.keys == ["bin/ffmpeg"]
    assert os.access(first, os.X_OK)
    assert [p.name for p in (tmp_path / "cache").iterdir()] == ["ffmpeg"]


def test_ensure_ffmpeg_reuses_cached_binary_from_earlier_process(tmp_path, settings):
    cached = tmp_path / "ffmpeg"
    cached.write_bytes(b"#!/bin/sh\n")
    cached.chmod(0o755)
    settings.FFMPEG_PATH = ""
    settings.FFMPEG_CACHE_PATH = str(cached)
    store = CountingStore()

    assert runner.ensure_ffmpeg(store) == str(cached)
    assert store.keys == []


def test_ensure_ffmpeg_prefers_configured_binary(settings):
    settings.FFMPEG_PATH = sys.executable
    store = CountingStore()
    assert runner.ensure_ffmpeg(store) == sys.executable
    assert store.keys == []
