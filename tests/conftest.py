import pytest
import yaml
from pathlib import Path
from unittest.mock import MagicMock
from hlsd.config.models import AppConfig, StorageConfig
from hlsd.infrastructure.event_bus import EventBus
from hlsd.infrastructure.ffmpeg import FFmpegAdapter
from hlsd.pipeline.orchestrator import TranscodeOrchestrator


@pytest.fixture
def app_config(tmp_path):
    """Config whose scratch and output directories live under tmp_path."""
    return AppConfig(storage=StorageConfig(temp_dir=tmp_path / "work"))


@pytest.fixture
def source_file(tmp_path):
    """A scratch upload standing in for a real video."""
    scratch = tmp_path / "work" / "scratch"
    scratch.mkdir(parents=True)
    f = scratch / "upload.mp4"
    f.write_bytes(b"\x00" * 128)
    return f


@pytest.fixture
def fake_ffprobe():
    """ffprobe reporting a 30 second, 30 fps, 1920x1080 source."""
    probe = MagicMock()
    probe.get_duration.return_value = 30.0
    probe.get_frame_rate.return_value = 30.0
    probe.get_resolution.return_value = (1920, 1080)
    return probe


@pytest.fixture
def fake_store():
    store = MagicMock()
    store.add_directory.return_value = "QmVideoFolder"
    store.add_file.return_value = "QmThumbnail"
    return store


@pytest.fixture
def ffmpeg_adapter(app_config):
    """Real command builder; run() must be replaced by the test."""
    adapter = FFmpegAdapter(app_config.ffmpeg)
    adapter.run = MagicMock()
    return adapter


@pytest.fixture
def orchestrator(app_config, fake_ffprobe, ffmpeg_adapter, fake_store):
    return TranscodeOrchestrator(
        config=app_config,
        event_bus=EventBus(),
        ffprobe_adapter=fake_ffprobe,
        ffmpeg_adapter=ffmpeg_adapter,
        store=fake_store,
    )


@pytest.fixture
def hlsd_yaml(tmp_path):
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "hlsd.yaml"

    content = {
        'general': {'debug': True},
        'ffmpeg': {
            'ffmpeg_path': '/opt/ffmpeg/bin/ffmpeg',
            'segment_seconds': 4,
            'keyframe_interval': 96,
        },
        'storage': {'temp_dir': str(tmp_path / "videos")},
        'ipfs': {'host': 'http://ipfs.local:5001', 'pin': False},
        'server': {'port': 8080},
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file
