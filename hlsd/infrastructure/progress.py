"""Parsing of ffmpeg's ``-progress`` output.

ffmpeg re-emits a block of ``key=value`` lines for every progress tick::

    frame=120
    fps=59.94
    ...
    progress=continue

The stream is read in fixed-size chunks, so a line may be split across two
reads and the final read may carry NUL padding.
"""
import logging
from typing import List, Optional
from hlsd.domain.errors import EncodeFailure

logger = logging.getLogger(__name__)

# Size of a single read from ffmpeg's progress pipe
CHUNK_SIZE = 1 << 10

# Highest percentage reported while ffmpeg is still running
MAX_RUNNING_PERCENT = 99


def progress_percentage(frames: int, total_frames: int) -> int:
    """floor(frames * 100 / total_frames), clamped to [0, 99]."""
    if total_frames <= 0:
        raise ValueError(f"total_frames must be positive, got {total_frames}")
    percent = (frames * 100) // total_frames
    return max(0, min(MAX_RUNNING_PERCENT, percent))


class ProgressParser:
    """Incrementally extracts the cumulative frame counter from ffmpeg progress chunks."""

    def __init__(self):
        self._buffer = ""
        self.last_frame: Optional[int] = None
        self.finished = False
        self._last_error: Optional[str] = None

    def feed(self, chunk: bytes) -> List[int]:
        """Consumes one chunk; returns the frame counts of the lines it completed."""
        self._buffer += chunk.decode("utf-8", errors="replace").replace("\x00", "")
        *lines, self._buffer = self._buffer.split("\n")
        return self._parse_lines(lines)

    def close(self) -> List[int]:
        """Flushes the trailing partial line.

        Raises EncodeFailure if the most recent frame update could not be parsed
        and no later update recovered from it.
        """
        lines = [self._buffer] if self._buffer.strip() else []
        self._buffer = ""
        frames = self._parse_lines(lines)
        if self._last_error is not None:
            raise EncodeFailure(f"Unparseable ffmpeg progress until end of stream: {self._last_error}")
        return frames

    def _parse_lines(self, lines: List[str]) -> List[int]:
        frames = []
        for line in lines:
            key, sep, value = line.strip().partition("=")
            if not sep:
                continue
            key, value = key.strip(), value.strip()
            if key == "progress":
                self.finished = value == "end"
            elif key == "frame":
                try:
                    frame = int(value)
                    if frame < 0:
                        raise ValueError(f"negative frame count {frame}")
                except ValueError as e:
                    self._last_error = f"frame={value!r} ({e})"
                    logger.warning(f"Skipping malformed progress update: {self._last_error}")
                    continue
                self._last_error = None
                self.last_frame = frame
                frames.append(frame)
        return frames
