"""
In-memory job registry.

Single source of truth for the state of every transcode job in this process.
Every read and every read-modify-write happens under one lock, held only for
the duration of that lookup or update.

Lifecycle::

    Probing -> Encoding -> Done
        \\          \\
         `-> Failed  `-> Failed

Terminal jobs stay visible until a status query delivers them once.
"""
import logging
import threading
import uuid
from pathlib import Path
from typing import Dict, Optional, Tuple, Type
from hlsd.domain.errors import InvalidTransitionError, JobNotFoundError, TranscodeError
from hlsd.domain.models import (
    DonePhase,
    EncodingPhase,
    FailedPhase,
    Job,
    ProbingPhase,
    Done,
    Failed,
    InProgress,
    JobStatus,
    NotFound,
)
from hlsd.infrastructure.progress import progress_percentage

logger = logging.getLogger(__name__)


class JobRegistry:
    """Concurrent mapping from job id to job snapshot."""

    def __init__(self):
        # job_id -> Job
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def create(self, source_path: Path, job_id: Optional[str] = None) -> Job:
        """Registers a new job in the probing phase.

        Raises:
            ValueError: If job_id belongs to a job still in the registry
        """
        with self._lock:
            job_id = job_id or str(uuid.uuid4())
            if job_id in self._jobs:
                raise ValueError(f"Job ID '{job_id}' is already registered")
            job = Job(id=job_id, source_path=Path(source_path))
            self._jobs[job_id] = job
        logger.info(f"Job {job_id}: probing {source_path}")
        return job

    def get(self, job_id: str) -> Optional[Job]:
        """Snapshot of a job, without any side effect."""
        with self._lock:
            return self._jobs.get(job_id)

    def start_encoding(self, job_id: str, total_frames: int, length: int) -> Job:
        """Probing -> Encoding once the frame count is known."""
        phase = EncodingPhase(total_frames=total_frames, length=length)
        job = self._transition(job_id, phase, allowed_from=(ProbingPhase,))
        logger.info(f"Job {job_id}: encoding {total_frames} frames ({length}s)")
        return job

    def update_progress(self, job_id: str, frames: int) -> Optional[int]:
        """Records an encoded-frame count.

        Returns the new percentage, or None when it did not increase. Progress
        never moves backwards.
        """
        with self._lock:
            job = self._require(job_id)
            phase = job.phase
            if not isinstance(phase, EncodingPhase):
                raise InvalidTransitionError(f"Job {job_id} is not encoding (phase: {phase.kind})")
            percent = progress_percentage(frames, phase.total_frames)
            if percent <= phase.progress:
                return None
            new_phase = phase.model_copy(update={"progress": percent})
            self._jobs[job_id] = job.model_copy(update={"phase": new_phase})
        logger.debug(f"Job {job_id}: {percent}% ({frames}/{phase.total_frames} frames)")
        return percent

    def complete(self, job_id: str, content_id: str) -> Job:
        """Encoding -> Done."""
        with self._lock:
            job = self._require(job_id)
            if not isinstance(job.phase, EncodingPhase):
                raise InvalidTransitionError(f"Job {job_id} cannot complete from phase {job.phase.kind}")
            job = job.model_copy(update={"phase": DonePhase(content_id=content_id, length=job.phase.length)})
            self._jobs[job_id] = job
        logger.info(f"Job {job_id}: done, content {content_id}")
        return job

    def fail(self, job_id: str, error: TranscodeError) -> Job:
        """Probing/Encoding -> Failed. The first error recorded is final."""
        phase = FailedPhase(error_kind=error.kind, message=str(error))
        job = self._transition(job_id, phase, allowed_from=(ProbingPhase, EncodingPhase))
        logger.error(f"Job {job_id}: failed with {error.kind}: {error}")
        return job

    def query(self, job_id: str) -> JobStatus:
        """Current status of a job.

        Terminal results are delivered once: the job is removed as the result
        is produced, and later queries report NotFound.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return NotFound()

            phase = job.phase
            if isinstance(phase, DonePhase):
                status: JobStatus = Done(content_id=phase.content_id, length=phase.length)
            elif isinstance(phase, FailedPhase):
                status = Failed(error_kind=phase.error_kind, message=phase.message)
            else:
                return InProgress(percentage=job.current_progress)

            del self._jobs[job_id]
        logger.info(f"Job {job_id}: delivered final status ({status.state})")
        return status

    def _require(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def _transition(self, job_id: str, phase, allowed_from: Tuple[Type, ...]) -> Job:
        with self._lock:
            job = self._require(job_id)
            if not isinstance(job.phase, allowed_from):
                raise InvalidTransitionError(
                    f"Job {job_id}: {job.phase.kind} -> {phase.kind} is not allowed"
                )
            job = job.model_copy(update={"phase": phase})
            self._jobs[job_id] = job
            return job
