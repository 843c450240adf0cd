import pytest
from unittest.mock import MagicMock, patch
from typer.testing import CliRunner
from hlsd.domain.models import Done, Failed
from hlsd.main import app

runner = CliRunner()


@pytest.fixture
def video(tmp_path):
    f = tmp_path / "clip.mp4"
    f.write_bytes(b"\x00")
    return f


@pytest.fixture
def mock_orchestrator():
    orchestrator = MagicMock()
    orchestrator.submit.return_value = "job-1"
    orchestrator.wait.return_value = True
    return orchestrator


def invoke(args, orchestrator):
    with patch("hlsd.main.build_orchestrator", return_value=orchestrator), \
         patch("hlsd.main.setup_logging"):
        return runner.invoke(app, args)


def test_transcode_prints_cid(video, tmp_path, mock_orchestrator):
    mock_orchestrator.query.return_value = Done(content_id="QmVideoFolder", length=30)

    result = invoke(["transcode", str(video), "--config", str(tmp_path / "none.yaml"),
                     "--temp-dir", str(tmp_path / "out")], mock_orchestrator)

    assert result.exit_code == 0
    assert "QmVideoFolder" in result.output
    mock_orchestrator.submit.assert_called_once_with(video, remove_source=False)
    mock_orchestrator.store.close.assert_called_once()


def test_transcode_reports_failure(video, tmp_path, mock_orchestrator):
    mock_orchestrator.query.return_value = Failed(error_kind="ProbeFailure", message="not a video")

    result = invoke(["transcode", str(video), "--config", str(tmp_path / "none.yaml"),
                     "--temp-dir", str(tmp_path / "out")], mock_orchestrator)

    assert result.exit_code == 1


def test_transcode_missing_file(tmp_path, mock_orchestrator):
    result = invoke(["transcode", str(tmp_path / "missing.mp4")], mock_orchestrator)

    assert result.exit_code == 1
    mock_orchestrator.submit.assert_not_called()


def test_invalid_config(video, tmp_path, mock_orchestrator):
    bad = tmp_path / "hlsd.yaml"
    bad.write_text("ffmpeg:\n  crf: 99\n")

    result = invoke(["transcode", str(video), "--config", str(bad)], mock_orchestrator)

    assert result.exit_code == 1
    mock_orchestrator.submit.assert_not_called()


def test_serve_prepares_scratch_and_runs_server(hlsd_yaml, tmp_path, mock_orchestrator):
    with patch("hlsd.main.uvicorn.run") as mock_run:
        result = invoke(["serve", "--config", str(hlsd_yaml), "--port", "9000"], mock_orchestrator)

    assert result.exit_code == 0
    assert (tmp_path / "videos" / "scratch").is_dir()
    _, kwargs = mock_run.call_args
    assert kwargs["port"] == 9000
    assert kwargs["host"] == "0.0.0.0"
    mock_orchestrator.store.close.assert_called_once()
