"""Retrieval pipeline: best subtitle match to frame files and a clip descriptor."""

from __future__ import annotations

import asyncio
import logging
import os
import re

from ..context import SeekrContext
from ..models import ClipDescriptor, ClipFrame, MatchResult, VideoRecord

logger = logging.getLogger(__name__)


def format_timestamp(ms: int) -> str:
    """Format milliseconds as HH:MM:SS.mmm."""
    ms = int(ms)
    total_seconds, milliseconds = divmod(ms, 1000)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{milliseconds:03d}"


def parse_timestamp(timestamp: str | int | float) -> int:
    """
    Parse a timestamp to milliseconds.

    Supported formats:
    - 123.45 or "123.45" (seconds)
    - "1:23.45" (minutes:seconds)
    - "01:23:45.670" (hours:minutes:seconds)
    - "01:23:45,670" (SRT format)
    """
    if isinstance(timestamp, (int, float)):
        return round(float(timestamp) * 1000)

    timestamp = timestamp.strip()

    try:
        return round(float(timestamp) * 1000)
    except ValueError:
        pass

    timestamp = timestamp.replace(",", ".")

    match = re.fullmatch(r"(?:(\d+):)?(\d+):(\d+(?:\.\d+)?)", timestamp)
    if match:
        hours = int(match.group(1) or 0)
        minutes = int(match.group(2))
        seconds = float(match.group(3))
        return round((hours * 3600 + minutes * 60 + seconds) * 1000)

    raise ValueError(f"Invalid timestamp format: {timestamp}")


def build_clip_descriptor(
    video: VideoRecord,
    start_ms: int,
    end_ms: int,
    frames: list[str],
) -> ClipDescriptor:
    """Pair each frame path with the record's frame interval as its display time."""
    return ClipDescriptor(
        video_id=video.id,
        start=format_timestamp(start_ms),
        end=format_timestamp(end_ms),
        start_ms=start_ms,
        end_ms=end_ms,
        frames=[
            ClipFrame(file_path=path, display_duration_seconds=video.frame_interval)
            for path in frames
        ],
    )


async def find_best_match(
    ctx: SeekrContext,
    query: str,
    video_id: str | None = None,
) -> MatchResult | None:
    """
    Find the best subtitle match for a query and resolve it to frames.

    Returns None when nothing matches. The owning record is only needed for
    display, so a missing record falls back to the raw video id there; frame
    resolution still requires it and raises NotFoundError.
    """
    hits = await asyncio.to_thread(ctx.search.search, query, video_id=video_id, limit=1)
    if not hits:
        logger.info(f"No matches found for {query!r}")
        return None

    hit = hits[0]
    video = await asyncio.to_thread(ctx.store.get_video, hit.video_id)
    if video is None:
        logger.warning(f"Match in video {hit.video_id} has no metadata record")
    display_name = video.filename if video else hit.video_id

    logger.info(
        f"Best match in {display_name}: {format_timestamp(hit.start_time)} -> "
        f"{format_timestamp(hit.end_time)} \"{hit.subtitle_text}\""
    )

    # Raises NotFoundError when the record is missing
    frames = await asyncio.to_thread(
        ctx.store.get_frames_in_range, hit.video_id, hit.start_time, hit.end_time
    )

    return MatchResult(
        hit=hit,
        display_name=display_name,
        frames=frames,
        frame_directory=os.path.dirname(frames[0]),
        frame_files=[os.path.basename(frame) for frame in frames],
        clip=build_clip_descriptor(video, hit.start_time, hit.end_time, frames),
    )
