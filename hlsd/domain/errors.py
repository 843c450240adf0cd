class TranscodeError(Exception):
    """Base class for failures that terminate a transcode job."""

    @property
    def kind(self) -> str:
        return type(self).__name__


class ProbeFailure(TranscodeError):
    """Duration, frame rate or geometry of the source could not be determined."""


class EncodeFailure(TranscodeError):
    """ffmpeg could not be started, exited non-zero, or its progress was unreadable."""


class IngestFailure(TranscodeError):
    """The content store rejected or failed to add the encoded output."""


class JobNotFoundError(KeyError):
    def __init__(self, job_id: str):
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"Job '{self.job_id}' not found"


class InvalidTransitionError(RuntimeError):
    """A registry write that the job lifecycle does not allow."""
