from typing import List
from pydantic import BaseModel
from .models import Rendition


class Event(BaseModel):
    """Base class for all domain events."""
    pass


class JobEvent(Event):
    job_id: str


class JobSubmitted(JobEvent):
    source_path: str


class JobEncodingStarted(JobEvent):
    total_frames: int
    ladder: List[Rendition]


class JobProgressUpdated(JobEvent):
    progress_percent: int


class JobCompleted(JobEvent):
    content_id: str
    length: int


class JobFailed(JobEvent):
    error_kind: str
    error_message: str
