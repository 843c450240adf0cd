from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field

class GeneralConfig(BaseModel):
    debug: bool = False
    log_dir: Optional[Path] = None

class FFmpegConfig(BaseModel):
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    preset: str = "fast"
    crf: int = Field(default=20, ge=0, le=51)
    keyframe_interval: int = Field(default=48, gt=0)
    segment_seconds: int = Field(default=2, gt=0)
    audio_channels: int = Field(default=2, gt=0)

class StorageConfig(BaseModel):
    temp_dir: Path = Path("/tmp/hlsd")

    @property
    def scratch_dir(self) -> Path:
        """Where uploaded files wait for their job."""
        return self.temp_dir / "scratch"

    def output_dir(self, job_id: str) -> Path:
        return self.temp_dir / job_id

class IPFSConfig(BaseModel):
    host: str = "http://localhost:5001"
    pin: bool = True
    timeout_seconds: float = Field(default=300.0, gt=0)

class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default=10000, ge=1, le=65535)

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    ffmpeg: FFmpegConfig = Field(default_factory=FFmpegConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    ipfs: IPFSConfig = Field(default_factory=IPFSConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
