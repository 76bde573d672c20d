"""Media tool: probing, subtitle stream access and frame extraction.

Decoding goes through PyAV and frames are written with Pillow. Embedded
subtitle streams are converted to SRT by the ffmpeg command line tool.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Callable, Protocol

import av
from PIL import Image

from ..errors import ExternalToolError
from ..models import FrameExtraction, FrameFormat, SubtitleStream
from .frames import frame_filename, frame_start_ms

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]


class MediaTool(Protocol):
    """Capabilities the indexing pipeline needs from a media tool."""

    def probe_duration(self, video_path: str | Path) -> float: ...

    def list_subtitle_streams(self, video_path: str | Path) -> list[SubtitleStream]: ...

    def extract_embedded_subtitles(self, video_path: str | Path, stream_index: int) -> str: ...

    def extract_frames(
        self,
        video_path: str | Path,
        interval: float,
        quality: int,
        frame_format: FrameFormat,
        height: int | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> FrameExtraction: ...


def quality_to_percent(quality: int) -> int:
    """Map a qscale quality (1 best, 31 worst) to an encoder percentage."""
    return max(1, min(100, round((31 - quality) * 3.3)))


def scale_to_height(img: Image.Image, height: int | None) -> Image.Image:
    """Resize to a target height, keeping the aspect ratio."""
    if not height:
        return img
    orig_w, orig_h = img.size
    width = max(1, round(orig_w * height / orig_h))
    return img.resize((width, height), Image.Resampling.LANCZOS)


def save_frame(img: Image.Image, path: Path, frame_format: FrameFormat, quality: int) -> int:
    """Write one frame image and return its size in bytes."""
    percent = quality_to_percent(quality)
    if frame_format == FrameFormat.WEBP:
        img.save(path, format="WEBP", quality=percent, method=6)
    else:
        img.convert("RGB").save(path, format="JPEG", quality=percent)
    return path.stat().st_size


def stream_start_seconds(container, stream) -> float:
    """Get the timestamp (seconds) at which a video stream starts, 0 if unknown."""
    if stream.start_time is not None and stream.time_base is not None:
        return float(stream.start_time * stream.time_base)
    if container.start_time is not None:
        return container.start_time / av.time_base
    return 0.0


class PyAVMediaTool:
    """MediaTool backed by PyAV, Pillow and the ffmpeg binary."""

    def __init__(self, frames_dir: str | Path, ffmpeg_binary: str = "ffmpeg"):
        self.frames_dir = Path(frames_dir)
        self.ffmpeg_binary = ffmpeg_binary

    def probe_duration(self, video_path: str | Path) -> float:
        """Get the duration of a video in seconds."""
        try:
            with av.open(str(video_path)) as container:
                if container.duration is not None:
                    return container.duration / av.time_base
                for stream in container.streams.video:
                    if stream.duration is not None and stream.time_base is not None:
                        return float(stream.duration * stream.time_base)
        except (av.error.FFmpegError, OSError) as e:
            raise ExternalToolError(f"Failed to probe {video_path}: {e}") from e

        raise ExternalToolError(f"Could not determine duration of {video_path}")

    def list_subtitle_streams(self, video_path: str | Path) -> list[SubtitleStream]:
        """List embedded subtitle streams, numbered among subtitle streams only."""
        try:
            with av.open(str(video_path)) as container:
                streams = []
                for index, stream in enumerate(container.streams.subtitles):
                    metadata = stream.metadata or {}
                    streams.append(
                        SubtitleStream(
                            index=index,
                            codec=stream.codec_context.name,
                            language=metadata.get("language"),
                            title=metadata.get("title"),
                        )
                    )
                return streams
        except (av.error.FFmpegError, OSError) as e:
            raise ExternalToolError(f"Failed to read streams of {video_path}: {e}") from e

    def extract_embedded_subtitles(self, video_path: str | Path, stream_index: int) -> str:
        """Convert an embedded subtitle stream to SRT text."""
        cmd = [
            self.ffmpeg_binary,
            "-v", "error",
            "-i", str(video_path),
            "-map", f"0:s:{stream_index}",
            "-f", "srt",
            "pipe:1",
        ]

        try:
            result = subprocess.run(cmd, capture_output=True)
        except OSError as e:
            raise ExternalToolError(f"Failed to run {self.ffmpeg_binary}: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise ExternalToolError(
                f"Failed to extract subtitle stream {stream_index}: {stderr or f'exit code {result.returncode}'}"
            )

        return result.stdout.decode("utf-8", errors="replace")

    def _make_output_dir(self, video_path: Path) -> Path:
        """Create a fresh directory named after the video, suffixing on collision."""
        output_dir = self.frames_dir / video_path.stem
        suffix = 2
        while output_dir.exists() and any(output_dir.iterdir()):
            output_dir = self.frames_dir / f"{video_path.stem}-{suffix}"
            suffix += 1
        output_dir.mkdir(parents=True, exist_ok=True)
        return output_dir.resolve()

    def extract_frames(
        self,
        video_path: str | Path,
        interval: float,
        quality: int,
        frame_format: FrameFormat,
        height: int | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> FrameExtraction:
        """
        Extract frames on a fixed time grid.

        Frame N is the picture on screen at (N - 1) * interval seconds and is
        written as ``frame_N.<format>``. On failure, frames already written are
        left on disk.
        """
        video_path = Path(video_path)
        frame_format = FrameFormat(frame_format)
        output_dir = self._make_output_dir(video_path)

        frame_count = 0
        total_bytes = 0
        next_number = 1

        try:
            with av.open(str(video_path)) as container:
                if not container.streams.video:
                    raise ExternalToolError(f"No video stream in {video_path}")
                stream = container.streams.video[0]
                stream.thread_type = "AUTO"
                duration = container.duration / av.time_base if container.duration else None
                start = stream_start_seconds(container, stream)

                for frame in container.decode(stream):
                    if frame.time is None:
                        continue
                    # Grid is relative to the first timestamp, like the subtitle timeline
                    position = frame.time - start
                    frame_ms = position * 1000
                    if frame_ms < frame_start_ms(interval, next_number):
                        continue

                    img = scale_to_height(frame.to_image(), height)

                    # A decoded frame fills every grid slot it reaches
                    while frame_ms >= frame_start_ms(interval, next_number):
                        target = output_dir / frame_filename(next_number, frame_format)
                        total_bytes += save_frame(img, target, frame_format, quality)
                        frame_count = next_number
                        next_number += 1

                    if progress_callback and duration:
                        progress_callback(min(100.0, position / duration * 100), f"{frame_count} frames")

        except (av.error.FFmpegError, OSError) as e:
            logger.error(f"Frame extraction failed after {frame_count} frames in {output_dir}: {e}")
            raise ExternalToolError(f"Failed to extract frames from {video_path}: {e}") from e

        if frame_count == 0:
            raise ExternalToolError(f"No frames decoded from {video_path}")

        return FrameExtraction(
            output_dir=str(output_dir),
            frame_count=frame_count,
            total_bytes=total_bytes,
        )
