"""
External process runner for the transcoding binary.

Arguments always go through ``subprocess`` as a list; nothing is interpreted by
a shell. Child stdout is discarded and stderr is streamed to a log file, so a
chatty encoder never grows our memory.
"""
import logging
import os
import shutil
import subprocess
import tempfile
import threading
from pathlib import Path

from django.conf import settings

from .exceptions import ProcessFailed

logger = logging.getLogger(__name__)

OUTPUT_TAIL_CHARS = 4000

_ffmpeg_path: str | None = None
_ffmpeg_lock = threading.Lock()


def _tail(log_path: Path | None) -> str:
    if log_path is None or not log_path.exists():
        return ""
    with open(log_path, "rb") as fh:
        fh.seek(0, os.SEEK_END)
        size = fh.tell()
        fh.seek(max(0, size - OUTPUT_TAIL_CHARS))
        return fh.read().decode("utf-8", errors="ignore")


def execute(binary: str, argv: list[str], *, log_path=None, timeout: float | None = None) -> None:
    """
    Run ``binary`` with ``argv``. Raises ProcessFailed on a non-zero exit.

    When ``log_path`` is given the child's stderr is written there and its tail
    is attached to the failure; otherwise stderr is discarded.
    """
    cmd = [str(binary), *[str(a) for a in argv]]
    log_path = Path(log_path) if log_path else None
    logger.debug("exec %s", cmd)

    if log_path is not None:
        with open(log_path, "wb") as stderr:
            proc = subprocess.run(cmd, stdin=subprocess.DEVNULL, stdout=subprocess.DEVNULL, stderr=stderr, timeout=timeout)
    else:
        proc = subprocess.run(
            cmd, stdin=subprocess.DEVNULL, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, timeout=timeout
        )

    if proc.returncode != 0:
        raise ProcessFailed(proc.returncode, _tail(log_path))


def ensure_ffmpeg(store) -> str:
    """
    Return a path to a runnable ffmpeg binary.

    Uses FFMPEG_PATH when it exists; otherwise fetches FFMPEG_BLOB_KEY from the
    blob store into FFMPEG_CACHE_PATH once per process. Concurrent first calls
    from other processes may download it again; the rename makes that harmless.
    """
    global _ffmpeg_path
    if _ffmpeg_path is not None:
        return _ffmpeg_path

    with _ffmpeg_lock:
        if _ffmpeg_path is not None:
            return _ffmpeg_path

        configured = settings.FFMPEG_PATH
        if configured:
            resolved = shutil.which(configured) or (configured if Path(configured).exists() else None)
            if resolved:
                _ffmpeg_path = resolved
                return _ffmpeg_path
            logger.warning("FFMPEG_PATH=%s not found, falling back to cached binary", configured)

        cache_path = Path(settings.FFMPEG_CACHE_PATH)
        if not (cache_path.exists() and os.access(cache_path, os.X_OK)):
            cache_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".ffmpeg-", dir=cache_path.parent)
            os.close(fd)
            try:
                logger.info("Downloading ffmpeg from %s to %s", settings.FFMPEG_BLOB_KEY, cache_path)
                store.download(settings.FFMPEG_BLOB_KEY, tmp_name)
                os.chmod(tmp_name, 0o755)
                os.replace(tmp_name, cache_path)
            finally:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)

        _ffmpeg_path = str(cache_path)
        return _ffmpeg_path


def reset_ffmpeg_cache() -> None:
    """Forget the memoized binary path (tests, or after rotating the binary)."""
    global _ffmpeg_path
    _ffmpeg_path = None
