"""Indexing pipeline: subtitles, frames, metadata record and search documents.

Stages run strictly in order:

    acquire_subtitles -> preview_subtitles -> measure_duration ->
    extract_frames -> persist_record -> populate_search -> done

Nothing is rolled back. A failure during extraction leaves partially written
frames on disk and creates no record. A failure while populating search keeps
the record and the frames, and is reported as a partial result.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime
from pathlib import Path

from ..config import get_index_defaults
from ..context import SeekrContext
from ..errors import (
    FrameSeekrError,
    InvalidStreamIndexError,
    NoSubtitlesAvailableError,
    SubtitleParseError,
)
from ..models import (
    IndexRequest,
    IndexResult,
    IndexStage,
    IndexStatus,
    SubtitleEntry,
    SubtitleSource,
    VideoRecord,
)
from .media import ProgressCallback
from .subtitles import subtitle_format_for

logger = logging.getLogger(__name__)

PREVIEW_SIZE = 3


async def acquire_subtitles(ctx: SeekrContext, request: IndexRequest) -> list[SubtitleEntry]:
    """
    Get subtitle entries from the external file, or from an embedded stream.

    Entries keep the order the parser produced them in.
    """
    if request.subtitle_path:
        logger.info(f"Using external subtitle file: {request.subtitle_path}")
        path = Path(request.subtitle_path)
        try:
            content = await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")
        except OSError as e:
            raise SubtitleParseError(f"Failed to read subtitle file {path}: {e}") from e
        return ctx.parse_subtitles(content, subtitle_format_for(path))

    logger.info("Checking for embedded subtitles...")
    streams = await asyncio.to_thread(ctx.media.list_subtitle_streams, request.video_path)
    if not streams:
        raise NoSubtitlesAvailableError(
            f"No embedded subtitles found in {request.video_path}. Please provide a subtitle file."
        )

    for stream in streams:
        logger.info(f"{stream.index}: [{stream.language or 'unknown'}] {stream.title or ''} ({stream.codec})")

    stream_index = request.subtitle_stream
    if not 0 <= stream_index < len(streams):
        raise InvalidStreamIndexError(
            f"Invalid stream index: {stream_index}. Available streams: 0-{len(streams) - 1}"
        )

    logger.info(f"Extracting subtitle stream {stream_index}...")
    raw = await asyncio.to_thread(ctx.media.extract_embedded_subtitles, request.video_path, stream_index)
    return ctx.parse_subtitles(raw, "srt")


def make_index_request(
    video_path: str,
    subtitle_path: str | None = None,
    stream: int | None = None,
    interval: float | None = None,
    quality: int | None = None,
    frame_format: str | None = None,
    height: int | None = None,
) -> IndexRequest:
    """Build an IndexRequest, filling unset options from the configured defaults."""
    defaults = get_index_defaults()
    return IndexRequest(
        video_path=video_path,
        subtitle_path=subtitle_path,
        subtitle_stream=defaults["stream"] if stream is None else stream,
        frame_interval=defaults["interval"] if interval is None else interval,
        frame_quality=defaults["quality"] if quality is None else quality,
        frame_format=frame_format or defaults["format"],
        frame_height=defaults["height"] if height is None else height,
    )


def build_record(
    request: IndexRequest,
    duration_ms: int,
    output_directory: str,
    total_frames: int,
    total_subtitles: int,
    disk_space_used: int,
) -> VideoRecord:
    """Build a new record with a fresh id from the request settings and results."""
    external = bool(request.subtitle_path)
    now = datetime.now()
    return VideoRecord(
        id=str(uuid.uuid4()),
        path=request.video_path,
        filename=Path(request.video_path).name,
        duration=duration_ms,
        created_at=now,
        updated_at=now,
        frame_interval=request.frame_interval,
        frame_format=request.frame_format,
        frame_quality=request.frame_quality,
        frame_height=request.frame_height,
        subtitle_source=SubtitleSource.EXTERNAL if external else SubtitleSource.EMBEDDED,
        subtitle_stream=None if external else request.subtitle_stream,
        subtitle_path=request.subtitle_path if external else None,
        output_directory=output_directory,
        total_frames=total_frames,
        total_subtitles=total_subtitles,
        disk_space_used=disk_space_used,
    )


async def index_video(
    ctx: SeekrContext,
    request: IndexRequest,
    progress_callback: ProgressCallback | None = None,
) -> IndexResult:
    """
    Index one video: subtitles into search, frames onto disk, settings into the store.

    Args:
        ctx: Store, search index and media tool to work against
        request: Video path, subtitle source and frame settings
        progress_callback: Optional ``(percent, message)`` callback

    Returns:
        IndexResult, with status PARTIAL if search population stopped early

    Raises:
        FrameSeekrError subclasses, tagged with the stage that failed
    """
    def report(progress: float, message: str) -> None:
        if progress_callback:
            progress_callback(progress, message)

    logger.info(f"Processing video: {request.video_path}")
    stage = IndexStage.ACQUIRE_SUBTITLES
    video_id = None

    try:
        report(0, stage.value)
        entries = await acquire_subtitles(ctx, request)

        stage = IndexStage.PREVIEW_SUBTITLES
        preview = entries[:PREVIEW_SIZE]
        for entry in preview:
            logger.info(f"[{entry.start_ms} -> {entry.end_ms}] {entry.text}")
        logger.info(f"Total subtitles: {len(entries)}")

        stage = IndexStage.MEASURE_DURATION
        duration_ms = round(await asyncio.to_thread(ctx.media.probe_duration, request.video_path) * 1000)

        stage = IndexStage.EXTRACT_FRAMES
        logger.info("Extracting frames...")
        report(5, stage.value)

        def extraction_progress(progress: float, message: str) -> None:
            # Extraction spans 5-90% of the run
            report(5 + progress * 0.85, f"extract_frames: {message}")

        extraction = await asyncio.to_thread(
            ctx.media.extract_frames,
            request.video_path,
            request.frame_interval,
            request.frame_quality,
            request.frame_format,
            request.frame_height,
            extraction_progress,
        )

        stage = IndexStage.PERSIST_RECORD
        record = build_record(
            request,
            duration_ms=duration_ms,
            output_directory=extraction.output_dir,
            total_frames=extraction.frame_count,
            total_subtitles=len(entries),
            disk_space_used=extraction.total_bytes,
        )
        video_id = record.id
        await asyncio.to_thread(ctx.store.add_video, record)
        report(90, stage.value)

    except FrameSeekrError as e:
        e.stage = e.stage or stage.value
        e.video_id = e.video_id or video_id
        logger.error(f"Indexing {request.video_path} failed at {e.stage}: {e}")
        raise

    logger.info("Indexing subtitles...")
    indexed = 0
    status = IndexStatus.COMPLETE
    warning = None
    try:
        for entry in entries:
            await asyncio.to_thread(
                ctx.search.index_subtitle, video_id, entry.start_ms, entry.end_ms, entry.text
            )
            indexed += 1
    except FrameSeekrError as e:
        status = IndexStatus.PARTIAL
        warning = (
            f"Search population stopped after {indexed} of {len(entries)} subtitles: {e}. "
            f"Video {video_id} and its frames are kept; re-index subtitles to complete it."
        )
        logger.warning(warning)

    report(100, IndexStage.DONE.value)
    logger.info(f"Indexing complete! Video ID: {video_id}")
    logger.info(f"Duration: {duration_ms / 60000:.2f} minutes")
    logger.info(f"Frames extracted: {extraction.frame_count}")
    logger.info(f"Disk space used: {extraction.total_bytes / 1024 / 1024:.2f} MB")
    logger.info(f"Output directory: {extraction.output_dir}")

    return IndexResult(
        video_id=video_id,
        duration=duration_ms,
        total_frames=extraction.frame_count,
        disk_space_used=extraction.total_bytes,
        output_directory=extraction.output_dir,
        total_subtitles=len(entries),
        indexed_subtitles=indexed,
        status=status,
        warning=warning,
        preview=preview,
    )
