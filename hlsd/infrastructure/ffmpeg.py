import subprocess
import logging
import threading
from collections import deque
from pathlib import Path
from typing import Callable, Deque, IO, List, Optional
from hlsd.config.models import FFmpegConfig
from hlsd.domain.errors import EncodeFailure
from hlsd.domain.models import Rendition
from hlsd.infrastructure.progress import CHUNK_SIZE, ProgressParser

MASTER_PLAYLIST = "master.m3u8"

# Number of ffmpeg diagnostic lines kept for error messages
STDERR_TAIL_LINES = 20


class FFmpegAdapter:
    """Builds the HLS ladder command for ffmpeg and runs it with progress tracking."""

    def __init__(self, config: Optional[FFmpegConfig] = None):
        self.config = config or FFmpegConfig()
        self.logger = logging.getLogger(__name__)

    # Command building

    def _build_filter(self, ladder: List[Rendition]) -> List[str]:
        """Splits the single input video into one scaled sub-stream per rendition."""
        count = len(ladder)
        split = f"[0:v]split={count}" + "".join(f"[v{i + 1}]" for i in range(count))
        scales = [
            f"[v{i + 1}]scale=w={r.width}:h={r.height}"
            f":force_original_aspect_ratio=increase:force_divisible_by=2[v{i + 1}out]"
            for i, r in enumerate(ladder)
        ]
        return ["-filter_complex", "; ".join([split] + scales)]

    def _build_video_params(self, ladder: List[Rendition]) -> List[str]:
        cfg = self.config
        params: List[str] = []
        for i, r in enumerate(ladder):
            params.extend([
                "-map", f"[v{i + 1}out]",
                f"-c:v:{i}", "libx264",
                f"-b:v:{i}", r.bitrate,
                f"-maxrate:v:{i}", r.bitrate,
                f"-minrate:v:{i}", r.bitrate,
                f"-bufsize:v:{i}", r.bufsize,
                "-preset", cfg.preset,
                "-crf", str(cfg.crf),
                "-g", str(cfg.keyframe_interval),
                "-sc_threshold", "0",
                "-keyint_min", str(cfg.keyframe_interval),
            ])
        return params

    def _build_audio_params(self, ladder: List[Rendition]) -> List[str]:
        """One AAC stream per rendition, all taken from the first source audio track."""
        params: List[str] = []
        for i in range(len(ladder)):
            params.extend(["-map", "a:0", f"-c:a:{i}", "aac", "-ac", str(self.config.audio_channels)])
        return params

    def _build_hls_params(self, output_dir: Path) -> List[str]:
        return [
            "-f", "hls",
            "-hls_time", str(self.config.segment_seconds),
            "-hls_playlist_type", "vod",
            "-hls_flags", "independent_segments",
            "-hls_segment_type", "mpegts",
            "-hls_segment_filename", str(output_dir / "stream_%v-data%02d.ts"),
            "-master_pl_name", MASTER_PLAYLIST,
        ]

    def _build_var_stream_map(self, ladder: List[Rendition]) -> List[str]:
        streams = " ".join(f"v:{i},a:{i},name:{r.name}" for i, r in enumerate(ladder))
        return ["-var_stream_map", streams]

    def build_command(self, source: Path, output_dir: Path, ladder: List[Rendition]) -> List[str]:
        """Constructs the full ffmpeg command line. Same inputs always give the same list."""
        if not ladder:
            raise ValueError("Cannot build an encode command for an empty ladder")

        cmd = [
            self.config.ffmpeg_path,
            "-y",
            "-i", str(source),
            "-loglevel", "error",
            "-progress", "pipe:1",
            "-nostats",
        ]
        cmd.extend(self._build_filter(ladder))
        cmd.extend(self._build_video_params(ladder))
        cmd.extend(self._build_audio_params(ladder))
        cmd.extend(self._build_hls_params(output_dir))
        cmd.extend(self._build_var_stream_map(ladder))
        cmd.append(str(output_dir / "stream_%v.m3u8"))
        return cmd

    # Execution

    def run(self, cmd: List[str], on_frames: Callable[[int], None]) -> None:
        """Runs ffmpeg, reporting each parsed frame count to on_frames.

        stdout (progress) and stderr (diagnostics) are drained by two threads so
        that ffmpeg never blocks on a full pipe.
        """
        self.logger.debug(" ".join(cmd))
        try:
            process = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, bufsize=0)
        except OSError as e:
            raise EncodeFailure(f"Could not start ffmpeg: {e}") from e

        parser = ProgressParser()
        stderr_tail: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        progress_errors: List[EncodeFailure] = []

        progress_thread = threading.Thread(
            target=self._drain_progress,
            args=(process.stdout, parser, on_frames, progress_errors),
            daemon=True,
        )
        stderr_thread = threading.Thread(
            target=self._drain_stderr,
            args=(process.stderr, stderr_tail),
            daemon=True,
        )
        progress_thread.start()
        stderr_thread.start()
        progress_thread.join()
        stderr_thread.join()

        returncode = process.wait()
        if returncode != 0:
            details = " | ".join(stderr_tail)
            raise EncodeFailure(f"ffmpeg exited with code {returncode}" + (f": {details}" if details else ""))
        if progress_errors:
            raise progress_errors[0]
        if not parser.finished:
            self.logger.warning(f"ffmpeg exited cleanly without progress=end (last frame: {parser.last_frame})")

    def _drain_progress(
        self,
        stream: IO[bytes],
        parser: ProgressParser,
        on_frames: Callable[[int], None],
        errors: List[EncodeFailure],
    ) -> None:
        try:
            for chunk in iter(lambda: stream.read(CHUNK_SIZE), b""):
                for frame in parser.feed(chunk):
                    on_frames(frame)
            for frame in parser.close():
                on_frames(frame)
        except EncodeFailure as e:
            errors.append(e)
        except OSError as e:
            self.logger.error(f"Error reading ffmpeg progress: {e}")
            errors.append(EncodeFailure(f"Error reading ffmpeg progress: {e}"))
        finally:
            stream.close()

    def _drain_stderr(self, stream: IO[bytes], tail: Deque[str]) -> None:
        try:
            for raw in stream:
                line = raw.decode("utf-8", errors="replace").rstrip()
                if line:
                    tail.append(line)
                    self.logger.error(f"ffmpeg: {line}")
        finally:
            stream.close()
