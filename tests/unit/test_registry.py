import pytest
from pathlib import Path
from hlsd.domain.errors import (
    EncodeFailure,
    IngestFailure,
    InvalidTransitionError,
    JobNotFoundError,
    ProbeFailure,
)
from hlsd.domain.models import (
    TERMINAL_PROGRESS,
    Done,
    EncodingPhase,
    Failed,
    InProgress,
    NotFound,
    ProbingPhase,
)
from hlsd.pipeline.registry import JobRegistry


@pytest.fixture
def registry():
    return JobRegistry()


@pytest.fixture
def encoding_job(registry):
    job = registry.create(Path("in.mp4"))
    registry.start_encoding(job.id, total_frames=200, length=7)
    return job.id


def test_new_job_is_probing(registry):
    job = registry.create(Path("in.mp4"))

    assert isinstance(job.phase, ProbingPhase)
    assert job.total_frames == 0
    assert job.current_progress == 0
    assert registry.query(job.id) == InProgress(percentage=0)


def test_ids_are_unique(registry):
    ids = {registry.create(Path("in.mp4")).id for _ in range(50)}
    assert len(ids) == 50

    registry.create(Path("in.mp4"), job_id="fixed")
    with pytest.raises(ValueError):
        registry.create(Path("in.mp4"), job_id="fixed")


def test_delivered_jobs_leave_nothing_behind(registry):
    job = registry.create(Path("in.mp4"), job_id="fixed")
    registry.fail(job.id, ProbeFailure("bad"))
    registry.query(job.id)

    assert len(registry) == 0
    assert registry.create(Path("in.mp4"), job_id="fixed").id == "fixed"


def test_start_encoding_sets_denominator(registry, encoding_job):
    job = registry.get(encoding_job)

    assert isinstance(job.phase, EncodingPhase)
    assert job.total_frames == 200
    assert job.current_progress == 0


def test_progress_is_monotonic(registry, encoding_job):
    assert registry.update_progress(encoding_job, 100) == 50
    assert registry.update_progress(encoding_job, 60) is None
    assert registry.update_progress(encoding_job, 100) is None
    assert registry.get(encoding_job).current_progress == 50

    assert registry.update_progress(encoding_job, 150) == 75


def test_progress_stays_below_100_while_running(registry, encoding_job):
    assert registry.update_progress(encoding_job, 200) == 99
    assert registry.update_progress(encoding_job, 400) is None
    assert registry.query(encoding_job) == InProgress(percentage=99)


def test_in_progress_query_never_removes(registry, encoding_job):
    registry.update_progress(encoding_job, 20)
    for _ in range(3):
        assert registry.query(encoding_job) == InProgress(percentage=10)
    assert encoding_job in registry


def test_done_is_delivered_once(registry, encoding_job):
    registry.update_progress(encoding_job, 120)
    job = registry.complete(encoding_job, "QmDone")

    assert job.current_progress == TERMINAL_PROGRESS
    assert registry.query(encoding_job) == Done(content_id="QmDone", length=7)
    assert registry.query(encoding_job) == NotFound()
    assert encoding_job not in registry


def test_failure_is_delivered_once(registry, encoding_job):
    registry.fail(encoding_job, EncodeFailure("ffmpeg exited with code 1"))

    status = registry.query(encoding_job)
    assert status == Failed(error_kind="EncodeFailure", message="ffmpeg exited with code 1")
    assert registry.query(encoding_job) == NotFound()


def test_probing_job_can_fail(registry):
    job = registry.create(Path("corrupt.mp4"))
    registry.fail(job.id, ProbeFailure("moov atom not found"))

    assert registry.get(job.id).current_progress == TERMINAL_PROGRESS
    assert registry.query(job.id).error_kind == "ProbeFailure"


def test_first_error_is_final(registry, encoding_job):
    registry.fail(encoding_job, EncodeFailure("first"))

    with pytest.raises(InvalidTransitionError):
        registry.fail(encoding_job, IngestFailure("second"))
    assert registry.query(encoding_job).message == "first"


def test_terminal_job_cannot_change(registry, encoding_job):
    registry.complete(encoding_job, "QmDone")

    with pytest.raises(InvalidTransitionError):
        registry.fail(encoding_job, IngestFailure("late"))
    with pytest.raises(InvalidTransitionError):
        registry.update_progress(encoding_job, 10)
    with pytest.raises(InvalidTransitionError):
        registry.start_encoding(encoding_job, total_frames=10, length=1)
    assert registry.query(encoding_job) == Done(content_id="QmDone", length=7)


def test_phase_skips_are_rejected(registry):
    job = registry.create(Path("in.mp4"))

    with pytest.raises(InvalidTransitionError):
        registry.update_progress(job.id, 10)
    with pytest.raises(InvalidTransitionError):
        registry.complete(job.id, "QmTooEarly")


def test_unknown_job(registry):
    assert registry.query("missing") == NotFound()
    assert registry.get("missing") is None
    with pytest.raises(JobNotFoundError):
        registry.update_progress("missing", 1)
    with pytest.raises(JobNotFoundError):
        registry.fail("missing", ProbeFailure("x"))


def test_zero_total_frames_rejected(registry):
    job = registry.create(Path("in.mp4"))

    with pytest.raises(ValueError):
        registry.start_encoding(job.id, total_frames=0, length=0)
