"""
Preview asset pipeline: fetch source + overlay, render a short vertical clip
and a thumbnail with ffmpeg, upload both, then publish the two URLs on the
record in a single update. The same scoped run also builds the on-demand
share GIF.
"""
import logging
import subprocess
import tempfile
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings
from django.db import DatabaseError
from django.db.models.functions import Now
from django.utils import timezone
from PIL import Image

from . import runner
from .exceptions import FetchError, PipelineError, ProcessFailed, PublishError, Stage, TranscodeError, UploadError
from .models import MediaRecord
from .storage import blob_key_from_ref

logger = logging.getLogger(__name__)

BLOB_ERRORS = (BotoCoreError, ClientError, S3UploadFailedError, OSError)


@dataclass(frozen=True)
class PreviewSpec:
    width: int = 360
    height: int = 640
    duration: str = "2.5"
    fps: int = 10
    codec: str = "libx264"
    crf: int = 28
    thumbnail_quality: int = 4      # ffmpeg -q:v 4 lands around 100-150 KB
    background: str = "video"       # "video": tinted source; "color": solid fill
    background_color: str = "0xff6400"
    tint_opacity: float = 0.1
    overlay_key: str = "overlays/logo.png"
    cache_control: str = "public,max-age=31536000"
    process_timeout: float | None = 90
    share_gif_timeout: float | None = 480

    @classmethod
    def from_settings(cls):
        return cls(
            codec=settings.PREVIEW_VIDEO_CODEC,
            background=settings.PREVIEW_BACKGROUND,
            background_color=settings.PREVIEW_BACKGROUND_COLOR,
            overlay_key=settings.PREVIEW_OVERLAY_KEY,
            cache_control=settings.PREVIEW_CACHE_CONTROL,
            process_timeout=settings.FFMPEG_TIMEOUT_SECONDS,
            share_gif_timeout=settings.SHARE_GIF_TIMEOUT_SECONDS,
        )


def filter_graph(spec: PreviewSpec) -> str:
    """Overlay (input 1) centred over either a solid colour or the scaled, tinted source (input 0)."""
    w, h = spec.width, spec.height
    logo = f"[1]scale='min({w},iw)':'min({h},ih)'[lg];"
    if spec.background == "color":
        bg = f"color={spec.background_color}:size={w}x{h}:rate={spec.fps}[bg];"
    else:
        bg = (
            f"[0:v]scale={w}:{h}:force_original_aspect_ratio=increase,crop={w}:{h},"
            f"fps={spec.fps},drawbox=color=black@{spec.tint_opacity}:t=fill[bg];"
        )
    return logo + bg + "[bg][lg]overlay=(W-w)/2:(H-h)/2"


def clip_args(spec: PreviewSpec, source, overlay, output) -> list[str]:
    return [
        "-ss", "0",
        "-t", spec.duration,            # cap input read
        "-i", str(source),
        "-i", str(overlay),
        "-t", spec.duration,            # cap output
        "-r", str(spec.fps),
        "-filter_complex", filter_graph(spec),
        "-c:v", spec.codec,
        "-preset", "veryfast",
        "-crf", str(spec.crf),
        "-pix_fmt", "yuv420p",
        "-an",
        "-y", str(output),
    ]


def thumbnail_args(spec: PreviewSpec, clip, output) -> list[str]:
    return ["-i", str(clip), "-frames:v", "1", "-q:v", str(spec.thumbnail_quality), "-y", str(output)]


def share_gif_graph(margin: int = 20) -> str:
    """Full-length source with the overlay in the bottom-right corner, palette built from the clip itself."""
    return (
        "[1]format=rgba,colorchannelmixer=aa=1[o];"
        f"[0][o]overlay=W-w-{margin}:H-h-{margin},split[a][b];"
        "[a]palettegen[p];[b][p]paletteuse"
    )


def share_gif_args(source, overlay, output) -> list[str]:
    return [
        "-i", str(source),
        "-i", str(overlay),
        "-filter_complex", share_gif_graph(),
        "-gifflags", "-transdiff",
        "-y", str(output),
    ]


def clip_key(record_id: str) -> str:
    return f"records/{record_id}/preview.mp4"


def image_key(record_id: str) -> str:
    return f"records/{record_id}/preview.jpg"


def share_gif_key(record_id: str) -> str:
    return f"records/{record_id}/share.gif"


@dataclass(frozen=True)
class Published:
    clip_url: str
    image_url: str


@dataclass(frozen=True)
class GifPublished:
    gif_url: str


@dataclass(frozen=True)
class Failed:
    stage: Stage
    cause: str


@dataclass
class PipelineRun:
    record_id: str
    started_at: datetime
    work_dir: Path | None = None
    outcome: Published | GifPublished | Failed | None = None
    timings: dict = field(default_factory=dict)


class AssetPipeline:
    def __init__(self, store, spec: PreviewSpec | None = None, *, execute=None, resolve_binary=None):
        self.store = store
        self.spec = spec or PreviewSpec.from_settings()
        self.execute = execute or runner.execute
        self.resolve_binary = resolve_binary or runner.ensure_ffmpeg

    def run(self, record: MediaRecord) -> Published | Failed:
        """
        Regenerate and publish previews for ``record``.

        Never raises for a stage failure: it returns Failed(stage, cause) and the
        record keeps whatever preview URLs it had before the run.
        """
        return self._scoped(record, "Preview run", self._run)

    def build_share_gif(self, record: MediaRecord) -> GifPublished | Failed:
        """Render the full-length share GIF for ``record`` and publish its URL; same failure contract as run()."""
        return self._scoped(record, "Share GIF build", self._run_share_gif)

    def _scoped(self, record: MediaRecord, label: str, body):
        run = PipelineRun(record_id=record.pk, started_at=timezone.now())
        logger.info("%s started for record %s", label, record.pk)
        try:
            with tempfile.TemporaryDirectory(prefix=f"prev-{record.pk}-", ignore_cleanup_errors=True) as work_dir:
                run.work_dir = Path(work_dir)
                run.outcome = body(record, run)
        except PipelineError as exc:
            logger.error("%s for record %s failed at %s: %s", label, record.pk, exc.stage.value, exc)
            run.outcome = Failed(stage=exc.stage, cause=str(exc))
        else:
            logger.info(
                "%s for record %s published in %.2fs (%s)",
                label,
                record.pk,
                sum(run.timings.values()),
                ", ".join(f"{k}={v:.2f}s" for k, v in run.timings.items()),
            )
        return run.outcome

    def _run(self, record: MediaRecord, run: PipelineRun) -> Published:
        source_ref = record.source_video_ref
        source_key = _source_key(record)

        work = run.work_dir
        source = work / "src.mp4"
        overlay = work / "overlay.png"
        clip = work / "preview.mp4"
        thumb = work / "preview.jpg"

        with _timed(run, "fetch"):
            self._fetch({source_key: source, self.spec.overlay_key: overlay})

        try:
            binary = self.resolve_binary(self.store)
        except BLOB_ERRORS as exc:
            raise FetchError(f"could not obtain ffmpeg: {exc}") from exc

        with _timed(run, "transcode"):
            self._transcode(binary, clip_args(self.spec, source, overlay, clip), work / "clip.log", Stage.TRANSCODE)
        with _timed(run, "thumbnail"):
            self._transcode(binary, thumbnail_args(self.spec, clip, thumb), work / "thumb.log", Stage.THUMBNAIL)
            _check_thumbnail(thumb)

        with _timed(run, "upload"):
            clip_url = self._upload(clip, clip_key(record.pk), "video/mp4")
            image_url = self._upload(thumb, image_key(record.pk), "image/jpeg")

        with _timed(run, "publish"):
            publish(record.pk, source_ref, clip_url, image_url)
        return Published(clip_url=clip_url, image_url=image_url)

    def _run_share_gif(self, record: MediaRecord, run: PipelineRun) -> GifPublished:
        source_ref = record.source_video_ref
        source_key = _source_key(record)

        work = run.work_dir
        source = work / "src.mp4"
        overlay = work / "overlay.png"
        gif = work / "share.gif"

        with _timed(run, "fetch"):
            self._fetch({source_key: source, self.spec.overlay_key: overlay})

        try:
            binary = self.resolve_binary(self.store)
        except BLOB_ERRORS as exc:
            raise FetchError(f"could not obtain ffmpeg: {exc}") from exc

        with _timed(run, "transcode"):
            self._transcode(
                binary, share_gif_args(source, overlay, gif), work / "gif.log", Stage.TRANSCODE,
                timeout=self.spec.share_gif_timeout,
            )

        with _timed(run, "upload"):
            gif_url = self._upload(gif, share_gif_key(record.pk), "image/gif")

        with _timed(run, "publish"):
            publish_share_gif(record.pk, source_ref, gif_url)
        return GifPublished(gif_url=gif_url)

    def _fetch(self, wanted: dict) -> None:
        pool = ThreadPoolExecutor(max_workers=len(wanted))
        futures = {pool.submit(self.store.download, key, dest): key for key, dest in wanted.items()}
        try:
            for fut in as_completed(futures):
                try:
                    fut.result()
                except BLOB_ERRORS as exc:
                    raise FetchError(f"download of {futures[fut]} failed: {exc}") from exc
        finally:
            # On failure the other download is abandoned, not awaited.
            pool.shutdown(wait=False, cancel_futures=True)

    def _transcode(self, binary: str, argv: list[str], log_path: Path, stage: Stage, timeout=None) -> None:
        try:
            self.execute(binary, argv, log_path=log_path, timeout=timeout or self.spec.process_timeout)
        except ProcessFailed as exc:
            detail = f": {exc.output_tail.strip()[-500:]}" if exc.output_tail.strip() else ""
            raise TranscodeError(f"ffmpeg exited with code {exc.exit_code}{detail}", stage=stage) from exc
        except subprocess.TimeoutExpired as exc:
            raise TranscodeError(f"ffmpeg timed out after {exc.timeout}s", stage=stage) from exc
        except OSError as exc:
            raise TranscodeError(f"could not start ffmpeg: {exc}", stage=stage) from exc

    def _upload(self, local_path: Path, key: str, content_type: str) -> str:
        try:
            return self.store.upload(
                local_path,
                key,
                content_type=content_type,
                cache_control=self.spec.cache_control,
                access_token=str(uuid.uuid4()),
            )
        except BLOB_ERRORS as exc:
            raise UploadError(f"upload of {key} failed: {exc}") from exc


def publish(record_id: str, source_ref: str, clip_url: str, image_url: str) -> None:
    """
    Set both preview URLs in one UPDATE, only if the record still points at the
    source this run rendered. Zero rows means it was deleted or re-uploaded mid-run.
    """
    _conditional_update(
        record_id, source_ref,
        preview_clip_url=clip_url,
        preview_image_url=image_url,
        last_regenerated_at=Now(),
    )


def publish_share_gif(record_id: str, source_ref: str, gif_url: str) -> None:
    _conditional_update(record_id, source_ref, share_gif_url=gif_url, gif_ready=True)


def _conditional_update(record_id: str, source_ref: str, **fields) -> None:
    try:
        updated = MediaRecord.objects.filter(pk=record_id, source_video_ref=source_ref).update(
            updated_at=Now(), **fields
        )
    except DatabaseError as exc:
        logger.error("Publish failed for record %s after upload; blobs left orphaned: %s", record_id, exc)
        raise PublishError(f"record update failed: {exc}") from exc
    if updated != 1:
        logger.error("Publish skipped for record %s: record gone or source changed during run", record_id)
        raise PublishError("record missing or source changed during run")


def _source_key(record: MediaRecord) -> str:
    key = blob_key_from_ref(record.source_video_ref or "")
    if not key:
        raise FetchError(f"record {record.pk} has no source video")
    return key


def _check_thumbnail(path: Path) -> None:
    try:
        with Image.open(path) as img:
            img.verify()
    except (OSError, SyntaxError) as exc:
        raise TranscodeError(f"thumbnail is not a readable image: {exc}", stage=Stage.THUMBNAIL) from exc


class _timed:
    def __init__(self, run: PipelineRun, name: str):
        self.run = run
        self.name = name

    def __enter__(self):
        self.start = time.monotonic()
        logger.debug("Record %s: %s started", self.run.record_id, self.name)
        return self

    def __exit__(self, exc_type, exc, tb):
        self.run.timings[self.name] = time.monotonic() - self.start
        return False
