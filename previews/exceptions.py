from enum import Enum


class Stage(str, Enum):
    FETCH = "fetch"
    TRANSCODE = "transcode"
    THUMBNAIL = "thumbnail"
    UPLOAD = "upload"
    PUBLISH = "publish"


class PipelineError(Exception):
    """A failure at one stage of a preview run; aborts the run."""

    stage = None

    def __init__(self, message: str, *, stage: Stage | None = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class FetchError(PipelineError):
    stage = Stage.FETCH


class TranscodeError(PipelineError):
    stage = Stage.TRANSCODE


class UploadError(PipelineError):
    stage = Stage.UPLOAD


class PublishError(PipelineError):
    stage = Stage.PUBLISH


class ProcessFailed(Exception):
    """Non-zero exit from an external binary."""

    def __init__(self, exit_code: int, output_tail: str = ""):
        self.exit_code = exit_code
        self.output_tail = output_tail
        super().__init__(f"process exited with code {exit_code}")


class DispatchError(Exception):
    pass
