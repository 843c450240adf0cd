import math
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional, Type
from hlsd.config.models import AppConfig
from hlsd.domain.errors import EncodeFailure, IngestFailure, ProbeFailure, TranscodeError
from hlsd.domain.events import JobCompleted, JobEncodingStarted, JobFailed, JobProgressUpdated, JobSubmitted
from hlsd.domain.models import JobStatus
from hlsd.infrastructure.event_bus import EventBus
from hlsd.infrastructure.ffmpeg import FFmpegAdapter
from hlsd.infrastructure.ffprobe import FFprobeAdapter
from hlsd.infrastructure.housekeeping import remove_path
from hlsd.infrastructure.ipfs import IPFSStore
from hlsd.pipeline.ladder import plan_ladder
from hlsd.pipeline.registry import JobRegistry


logger = logging.getLogger(__name__)


@contextmanager
def failure_step(failure: Type[TranscodeError]) -> Iterator[None]:
    """Turns any non-taxonomy exception raised inside the block into `failure`."""
    try:
        yield
    except TranscodeError:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error during {failure.__name__}-guarded step")
        raise failure(f"Unexpected error: {e}") from e


def count_frames(duration: float, fps: float) -> int:
    """Expected number of frames; at least 1 so progress can always be computed."""
    return max(1, math.ceil(duration * fps))


class TranscodeOrchestrator:
    """Runs each submitted video through probe -> encode -> ingest on its own thread."""

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        ffprobe_adapter: FFprobeAdapter,
        ffmpeg_adapter: FFmpegAdapter,
        store: IPFSStore,
        registry: Optional[JobRegistry] = None,
    ):
        self.config = config
        self.event_bus = event_bus
        self.ffprobe_adapter = ffprobe_adapter
        self.ffmpeg_adapter = ffmpeg_adapter
        self.store = store
        self.registry = registry or JobRegistry()
        self._threads: Dict[str, threading.Thread] = {}
        self._threads_lock = threading.Lock()

    def submit(self, source_path: Path, remove_source: bool = True) -> str:
        """Starts a job for source_path and returns its id without waiting for any step.

        remove_source deletes the source once the job ends; it is meant for
        scratch copies of uploads, not for files owned by the caller.
        """
        source_path = Path(source_path)
        job = self.registry.create(source_path)
        self.event_bus.publish(JobSubmitted(job_id=job.id, source_path=str(source_path)))

        thread = threading.Thread(
            target=self._run_job,
            args=(job.id, source_path, remove_source),
            name=f"job-{job.id[:8]}",
            daemon=True,
        )
        with self._threads_lock:
            self._threads[job.id] = thread
        thread.start()
        return job.id

    def query(self, job_id: str) -> JobStatus:
        """Status of a job; a terminal status is returned only once."""
        return self.registry.query(job_id)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> bool:
        """Blocks until the job's thread finishes. Returns False on timeout."""
        with self._threads_lock:
            thread = self._threads.get(job_id)
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def add_thumbnail(self, path: Path) -> str:
        """Adds a single scratch image to the store and removes the scratch copy."""
        try:
            return self.store.add_file(path)
        finally:
            remove_path(Path(path))

    def _run_job(self, job_id: str, source: Path, remove_source: bool):
        output_dir = self.config.storage.output_dir(job_id)
        try:
            content_id = self._process(job_id, source, output_dir)
        except TranscodeError as e:
            self._record_failure(job_id, e)
        except Exception as e:
            logger.exception(f"Job {job_id}: unexpected error outside a pipeline step")
            job = self.registry.get(job_id)
            if job is not None and not job.is_terminal:
                self._record_failure(job_id, EncodeFailure(f"Unexpected error: {e}"))
        else:
            job = self.registry.complete(job_id, content_id)
            self.event_bus.publish(JobCompleted(job_id=job_id, content_id=content_id, length=job.phase.length))
        finally:
            if remove_source:
                remove_path(source)
            remove_path(output_dir)
            with self._threads_lock:
                self._threads.pop(job_id, None)

    def _process(self, job_id: str, source: Path, output_dir: Path) -> str:
        # 1. Probe; the frame count is known before ffmpeg ever starts
        with failure_step(ProbeFailure):
            duration = self.ffprobe_adapter.get_duration(source)
            fps = self.ffprobe_adapter.get_frame_rate(source)
            total_frames = count_frames(duration, fps)
            length = math.ceil(duration)
            self.registry.start_encoding(job_id, total_frames, length)

            # 2. Plan the ladder from the source geometry
            width, height = self.ffprobe_adapter.get_resolution(source)
            ladder = plan_ladder(height)
        logger.info(f"Job {job_id}: {width}x{height} source -> {', '.join(r.name for r in ladder)}")

        # 3. Encode
        with failure_step(EncodeFailure):
            self.event_bus.publish(JobEncodingStarted(job_id=job_id, total_frames=total_frames, ladder=ladder))
            output_dir.mkdir(parents=True)
            cmd = self.ffmpeg_adapter.build_command(source, output_dir, ladder)
            self.ffmpeg_adapter.run(cmd, on_frames=lambda frames: self._on_frames(job_id, frames))

        # 4. Ingest
        with failure_step(IngestFailure):
            return self.store.add_directory(output_dir)

    def _on_frames(self, job_id: str, frames: int):
        percent = self.registry.update_progress(job_id, frames)
        if percent is not None:
            self.event_bus.publish(JobProgressUpdated(job_id=job_id, progress_percent=percent))

    def _record_failure(self, job_id: str, error: TranscodeError):
        self.registry.fail(job_id, error)
        self.event_bus.publish(JobFailed(job_id=job_id, error_kind=error.kind, error_message=str(error)))
