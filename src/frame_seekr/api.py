"""REST API routes for frame-seekr."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel, ValidationError

from . import __version__
from .context import SeekrContext
from .core.clip import create_clip
from .core.indexing import index_video, make_index_request
from .core.retrieval import find_best_match, parse_timestamp
from .errors import FrameSeekrError
from .models import FrameFormat, TimeRange

router = APIRouter()

FRAME_MIME_TYPES = {
    FrameFormat.JPG: "image/jpeg",
    FrameFormat.WEBP: "image/webp",
}


def get_context(request: Request) -> SeekrContext:
    """Get the context created by the app lifespan."""
    return request.app.state.context


Context = Annotated[SeekrContext, Depends(get_context)]


def _error(e: Exception) -> dict[str, Any]:
    if isinstance(e, FrameSeekrError):
        return e.to_dict()
    return {"success": False, "error": str(e), "error_type": "invalid_request"}


class IndexVideoRequest(BaseModel):
    """Request body for indexing a video."""
    video_path: str
    subtitle_path: str | None = None
    stream: int | None = None
    interval: float | None = None
    quality: int | None = None
    format: FrameFormat | None = None
    height: int | None = None


@router.get("/health")
async def health():
    """Health check and service info."""
    return {
        "name": "frame-seekr",
        "version": __version__,
        "status": "healthy",
        "endpoints": {
            "api": "/api",
            "mcp": "/mcp",
            "docs": "/docs",
        },
    }


@router.post("/videos/index")
async def api_index_video(body: IndexVideoRequest, ctx: Context):
    """
    Index a video file with its subtitles.

    Uses the external subtitle file if given, otherwise the embedded subtitle
    stream at index `stream`. Unset frame options fall back to the configured
    defaults. Blocks until indexing finishes.

    A `status` of `partial` means the video and its frames were saved but not
    every subtitle reached the search index.
    """
    try:
        request = make_index_request(
            body.video_path,
            subtitle_path=body.subtitle_path,
            stream=body.stream,
            interval=body.interval,
            quality=body.quality,
            frame_format=body.format.value if body.format else None,
            height=body.height,
        )
        result = await index_video(ctx, request)
    except (FrameSeekrError, ValidationError) as e:
        return _error(e)

    return {"success": True, **result.model_dump(mode="json")}


@router.get("/videos")
async def api_list_videos(ctx: Context):
    """List indexed videos, most recent first."""
    videos = ctx.store.list_videos()
    return {
        "success": True,
        "videos": [video.model_dump(mode="json") for video in videos],
        "count": len(videos),
    }


@router.get("/videos/{video_id}")
async def api_get_video(video_id: str, ctx: Context):
    """Get the metadata record of an indexed video."""
    video = ctx.store.get_video(video_id)
    if video is None:
        return {"success": False, "error": f"Video not found: {video_id}", "error_type": "not_found"}
    return {"success": True, "video": video.model_dump(mode="json")}


@router.delete("/videos/{video_id}")
async def api_delete_video(video_id: str, ctx: Context):
    """
    Delete the metadata record of a video.

    Frames on disk, generated clips and search documents are NOT removed.
    """
    ctx.store.delete_video(video_id)
    return {"success": True, "video_id": video_id}


@router.get("/videos/{video_id}/frames")
async def api_get_frames(
    video_id: str,
    ctx: Context,
    start: Annotated[str, Query(description="Start time (seconds or HH:MM:SS.mmm)")],
    end: Annotated[str, Query(description="End time (seconds or HH:MM:SS.mmm)")],
):
    """
    Get the frame files covering a time range.

    Paths past the end of the video are returned as computed and may not exist.
    """
    try:
        frames = ctx.store.get_frames_in_range(video_id, parse_timestamp(start), parse_timestamp(end))
    except (FrameSeekrError, ValueError) as e:
        return _error(e)
    return {"success": True, "video_id": video_id, "frames": frames, "count": len(frames)}


@router.get("/videos/{video_id}/frame")
async def api_get_frame(
    video_id: str,
    ctx: Context,
    timestamp: Annotated[str, Query(description="Timestamp (seconds or HH:MM:SS.mmm)")],
):
    """Get the image of the frame covering a timestamp."""
    try:
        path = Path(ctx.store.get_frame_path(video_id, parse_timestamp(timestamp)))
    except (FrameSeekrError, ValueError) as e:
        return _error(e)

    if not path.exists():
        return {
            "success": False,
            "error": f"Frame file not found: {path}",
            "error_type": "not_found",
            "video_id": video_id,
        }

    frame_format = FrameFormat(path.suffix.lstrip("."))
    return Response(content=path.read_bytes(), media_type=FRAME_MIME_TYPES[frame_format])


@router.post("/videos/{video_id}/clip")
async def api_create_clip(
    video_id: str,
    ctx: Context,
    start: Annotated[str, Query(description="Start time (HH:MM:SS.mmm or seconds)")],
    end: Annotated[str, Query(description="End time (HH:MM:SS.mmm or seconds)")],
    loop: Annotated[bool, Query(description="Loop the GIF")] = True,
):
    """Create a GIF from the indexed frames between two timestamps."""
    try:
        result = await create_clip(ctx, video_id, start, end, loop=loop)
    except (FrameSeekrError, ValueError) as e:
        return _error(e)
    return {"success": True, **result.model_dump(mode="json")}


@router.get("/search")
async def api_search(
    ctx: Context,
    q: Annotated[str, Query(description="Search query")],
    video_id: Annotated[str | None, Query(description="Filter by video ID")] = None,
    limit: Annotated[int, Query(description="Number of results", ge=1, le=1000)] = 20,
    offset: Annotated[int, Query(description="Results to skip", ge=0)] = 0,
    start: Annotated[int | None, Query(description="Earliest subtitle start (ms)")] = None,
    end: Annotated[int | None, Query(description="Latest subtitle end (ms)")] = None,
):
    """Search subtitle text, best match first."""
    time_range = TimeRange(start=start, end=end) if start is not None or end is not None else None
    try:
        hits = ctx.search.search(q, video_id=video_id, limit=limit, offset=offset, time_range=time_range)
    except FrameSeekrError as e:
        return _error(e)
    return {
        "success": True,
        "hits": [hit.model_dump(mode="json") for hit in hits],
        "count": len(hits),
    }


@router.get("/search/best")
async def api_best_match(
    ctx: Context,
    q: Annotated[str, Query(description="Search query")],
    video_id: Annotated[str | None, Query(description="Filter by video ID")] = None,
):
    """
    Find the best subtitle match and resolve it to frame files.

    Returns `match: null` when nothing matches. The `clip` part can be passed
    to the clip endpoint (`start`/`end`) to render a GIF of the scene.
    """
    try:
        match = await find_best_match(ctx, q, video_id)
    except FrameSeekrError as e:
        return _error(e)
    return {"success": True, "match": match.model_dump(mode="json") if match else None}
