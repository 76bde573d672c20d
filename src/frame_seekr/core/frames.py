"""Frame index model: timestamps to frame numbers and frame file paths.

Frame 1 covers [0, interval), frame 2 covers [interval, 2 * interval), and so
on. Extraction writes files on exactly this grid, so both sides must go through
these functions.
"""

from __future__ import annotations

import math

from ..errors import InvalidRangeError
from ..models import FrameFormat, VideoRecord

FRAME_FILE_PREFIX = "frame_"


def frame_number_at(frame_interval: float, timestamp_ms: float) -> int:
    """Get the 1-based frame number covering a timestamp."""
    return math.floor(timestamp_ms / (frame_interval * 1000)) + 1


def frame_start_ms(frame_interval: float, frame_number: int) -> float:
    """Get the timestamp (ms) at which a frame begins."""
    return (frame_number - 1) * frame_interval * 1000


def frame_filename(frame_number: int, frame_format: FrameFormat | str) -> str:
    """Get the file name of a frame, e.g. ``frame_3.jpg``."""
    ext = frame_format.value if isinstance(frame_format, FrameFormat) else frame_format
    return f"{FRAME_FILE_PREFIX}{frame_number}.{ext}"


def frame_number(record: VideoRecord, timestamp_ms: float) -> int:
    """
    Get the frame number for a timestamp of an indexed video.

    No upper bound is applied: numbers past ``record.total_frames`` are
    returned as-is and resolve to files that do not exist.
    """
    return frame_number_at(record.frame_interval, timestamp_ms)


def frame_path(record: VideoRecord, number: int) -> str:
    """Get the path of a frame file of an indexed video."""
    return f"{record.output_directory}/{frame_filename(number, record.frame_format)}"


def frames_in_range(record: VideoRecord, start_ms: float, end_ms: float) -> list[str]:
    """
    Get the paths of every frame covering [start_ms, end_ms], in order.

    Always returns at least one path. Raises InvalidRangeError if end_ms is
    before start_ms.
    """
    if end_ms < start_ms:
        raise InvalidRangeError(
            f"Invalid range: end {end_ms}ms is before start {start_ms}ms",
            video_id=record.id,
        )

    start_frame = frame_number(record, start_ms)
    end_frame = frame_number(record, end_ms)
    return [frame_path(record, n) for n in range(start_frame, end_frame + 1)]
