import subprocess
import json
import logging
from pathlib import Path
from typing import Dict, Any, Tuple
from hlsd.domain.errors import ProbeFailure

class FFprobeAdapter:
    """Wrapper around ffprobe to extract the duration, frame rate and geometry of a source."""

    def __init__(self, ffprobe_path: str = "ffprobe"):
        self.ffprobe_path = ffprobe_path
        self.logger = logging.getLogger(__name__)

    def _probe(self, file_path: Path, entries: str, video_stream: bool = False) -> Dict[str, Any]:
        """Executes ffprobe and parses JSON output."""
        cmd = [
            self.ffprobe_path,
            "-v", "error",
            "-print_format", "json",
        ]
        if video_stream:
            cmd.extend(["-select_streams", "v:0"])
        cmd.extend(["-show_entries", entries, str(file_path)])

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise ProbeFailure(f"Could not run ffprobe: {e}") from e
        if result.returncode != 0:
            raise ProbeFailure(f"ffprobe failed for {file_path}: {result.stderr.strip()}")

        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ProbeFailure(f"ffprobe returned invalid JSON for {file_path}: {e}") from e

    def _first_stream(self, data: Dict[str, Any], file_path: Path) -> Dict[str, Any]:
        streams = data.get("streams") or []
        if not streams:
            raise ProbeFailure(f"No video stream found in {file_path}")
        return streams[0]

    def get_duration(self, file_path: Path) -> float:
        """Duration of the container in seconds."""
        data = self._probe(file_path, "format=duration")
        raw = data.get("format", {}).get("duration")
        try:
            duration = float(raw)
        except (TypeError, ValueError):
            raise ProbeFailure(f"Unreadable duration {raw!r} for {file_path}")
        if duration <= 0:
            raise ProbeFailure(f"Non-positive duration {duration} for {file_path}")
        return duration

    def get_frame_rate(self, file_path: Path) -> float:
        """Frame rate of the first video stream (r_frame_rate, then avg_frame_rate)."""
        data = self._probe(file_path, "stream=r_frame_rate,avg_frame_rate", video_stream=True)
        stream = self._first_stream(data, file_path)

        for key in ("r_frame_rate", "avg_frame_rate"):
            fps = self._parse_rate(stream.get(key))
            if fps > 0:
                return fps
        raise ProbeFailure(f"Unreadable frame rate for {file_path}: {stream}")

    def get_resolution(self, file_path: Path) -> Tuple[int, int]:
        """(width, height) of the first video stream."""
        data = self._probe(file_path, "stream=width,height", video_stream=True)
        stream = self._first_stream(data, file_path)
        try:
            width, height = int(stream["width"]), int(stream["height"])
        except (KeyError, TypeError, ValueError):
            raise ProbeFailure(f"Unreadable geometry for {file_path}: {stream}")
        if width <= 0 or height <= 0:
            raise ProbeFailure(f"Invalid geometry {width}x{height} for {file_path}")
        return width, height

    @staticmethod
    def _parse_rate(rate: Any) -> float:
        """Parses '30000/1001' or '25' into frames per second; 0.0 when unusable."""
        if not rate:
            return 0.0
        rate = str(rate)
        try:
            if "/" in rate:
                num, den = map(float, rate.split("/"))
                return num / den if den != 0 else 0.0
            return float(rate)
        except ValueError:
            return 0.0
