"""Clip generation from indexed frames, as animated GIFs rendered with Pillow."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from PIL import Image

from ..context import SeekrContext
from ..errors import NotFoundError
from ..models import ClipDescriptor, ClipResult
from .frames import frames_in_range
from .retrieval import build_clip_descriptor, parse_timestamp

logger = logging.getLogger(__name__)


def render_clip(descriptor: ClipDescriptor, output_path: str | Path, loop: bool = True) -> ClipResult:
    """
    Render a clip descriptor into an animated GIF.

    Frames missing on disk (a range past the end of the video) are skipped.
    Raises NotFoundError if none of the frames exist.
    """
    output_path = Path(output_path)
    images = []
    durations = []
    skipped = []

    for frame in descriptor.frames:
        path = Path(frame.file_path)
        if not path.exists():
            skipped.append(frame.file_path)
            continue
        with Image.open(path) as img:
            images.append(img.convert("RGB"))
        durations.append(round(frame.display_duration_seconds * 1000))

    if skipped:
        logger.warning(f"Skipped {len(skipped)} missing frames for video {descriptor.video_id}, first: {skipped[0]}")
    if not images:
        raise NotFoundError(
            f"No frame files found between {descriptor.start} and {descriptor.end}",
            video_id=descriptor.video_id,
        )

    save_kwargs = {"loop": 0} if loop else {}
    output_path.parent.mkdir(parents=True, exist_ok=True)
    images[0].save(
        output_path,
        format="GIF",
        save_all=True,
        append_images=images[1:],
        duration=durations,
        **save_kwargs,
    )

    return ClipResult(
        output_path=str(output_path),
        frame_count=len(images),
        skipped_frames=skipped,
        duration_seconds=sum(durations) / 1000,
        frame_interval=descriptor.frames[0].display_duration_seconds,
    )


async def create_clip(
    ctx: SeekrContext,
    video_id: str,
    start: str | int | float,
    end: str | int | float,
    output_path: str | Path | None = None,
    loop: bool = True,
) -> ClipResult:
    """
    Create a GIF from the indexed frames of a video between two timestamps.

    Args:
        ctx: Context holding the metadata store
        video_id: ID of the indexed video
        start: Start time (HH:MM:SS.mmm string, or seconds)
        end: End time (HH:MM:SS.mmm string, or seconds)
        output_path: Output file (default: clip_<start>-<end>.gif in the frame directory)
        loop: Loop the GIF forever

    The output file is never cleaned up by frame-seekr.
    """
    start_ms = parse_timestamp(start)
    end_ms = parse_timestamp(end)

    video = await asyncio.to_thread(ctx.store.get_video, video_id)
    if video is None:
        raise NotFoundError(f"Video not found: {video_id}", video_id=video_id)

    frames = frames_in_range(video, start_ms, end_ms)
    descriptor = build_clip_descriptor(video, start_ms, end_ms, frames)

    if output_path is None:
        output_path = Path(video.output_directory) / f"clip_{start_ms}-{end_ms}.gif"

    result = await asyncio.to_thread(render_clip, descriptor, output_path, loop)

    logger.info(f"Clip created: {result.output_path}")
    logger.info(f"Duration: {(end_ms - start_ms) / 1000:.2f}s, frames: {result.frame_count}")
    logger.info(f"Frame interval: {video.frame_interval}s")
    return result
