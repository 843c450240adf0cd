from datetime import datetime
from pathlib import Path
from typing import Annotated, Literal, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Progress value reported for a job that has finished, successfully or not
TERMINAL_PROGRESS = -1


class Rendition(BaseModel):
    """One rung of the adaptive-bitrate ladder."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(gt=0)
    height: int = Field(gt=0)
    bitrate: str
    bufsize: str

    @field_validator("width", "height")
    @classmethod
    def round_up_to_even(cls, v: int) -> int:
        # libx264 rejects odd dimensions
        return v + (v % 2)

    @property
    def name(self) -> str:
        return f"{self.height}p"


class ProbingPhase(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["probing"] = "probing"


class EncodingPhase(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["encoding"] = "encoding"
    total_frames: int = Field(gt=0)
    length: int = Field(ge=0)
    progress: int = Field(default=0, ge=0, le=99)


class DonePhase(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["done"] = "done"
    content_id: str
    length: int = Field(ge=0)


class FailedPhase(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["failed"] = "failed"
    error_kind: str
    message: str


JobPhase = Annotated[
    Union[ProbingPhase, EncodingPhase, DonePhase, FailedPhase],
    Field(discriminator="kind"),
]


class Job(BaseModel):
    """Immutable snapshot of a transcode job. The registry swaps snapshots on every transition."""

    model_config = ConfigDict(frozen=True)

    id: str
    source_path: Path
    phase: JobPhase = Field(default_factory=ProbingPhase)
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_terminal(self) -> bool:
        return isinstance(self.phase, (DonePhase, FailedPhase))

    @property
    def total_frames(self) -> int:
        if isinstance(self.phase, EncodingPhase):
            return self.phase.total_frames
        return 0

    @property
    def current_progress(self) -> int:
        if self.is_terminal:
            return TERMINAL_PROGRESS
        if isinstance(self.phase, EncodingPhase):
            return self.phase.progress
        return 0


# Results of a status query


class NotFound(BaseModel):
    state: Literal["not_found"] = "not_found"


class InProgress(BaseModel):
    state: Literal["in_progress"] = "in_progress"
    percentage: int = Field(ge=0, le=99)


class Done(BaseModel):
    state: Literal["done"] = "done"
    content_id: str
    length: int


class Failed(BaseModel):
    state: Literal["failed"] = "failed"
    error_kind: str
    message: str


JobStatus = Union[NotFound, InProgress, Done, Failed]
