"""MCP server for frame-seekr using FastMCP."""

from __future__ import annotations

from pathlib import Path

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.utilities.types import Image as McpImage
from mcp.server.transport_security import TransportSecuritySettings
from pydantic import ValidationError

from .context import SeekrContext
from .core.clip import create_clip
from .core.indexing import index_video, make_index_request
from .core.retrieval import find_best_match, parse_timestamp
from .errors import FrameSeekrError
from .models import TimeRange

# =============================================================================
# TOOL USAGE GUIDANCE FOR AI ASSISTANTS:
#
# To find a scene by what is said in it:
#   1. find_best_match  → Best subtitle hit with its frame files
#   2. frame_image      → Look at a frame from the match
#   3. create_clip      → GIF of the matched range
#
# To browse:
#   1. list_videos      → Indexed videos and their frame settings
#   2. search           → Ranked subtitle hits, optionally per video/time range
#
# Indexing decodes the whole video and is EXPENSIVE. Check list_videos before
# indexing the same file again; every run creates a new video ID.
# =============================================================================


def build_mcp(ctx: SeekrContext) -> FastMCP:
    """Create the FastMCP server with tools bound to a context."""
    # Disable DNS rebinding protection to allow any Host header (for Docker/reverse proxy)
    mcp = FastMCP(
        "frame-seekr",
        transport_security=TransportSecuritySettings(enable_dns_rebinding_protection=False),
    )

    @mcp.tool(name="frame_seekr_index_video")
    async def tool_index_video(
        video_path: str,
        subtitle_path: str | None = None,
        stream: int | None = None,
        interval: float | None = None,
        quality: int | None = None,
        format: str | None = None,
        height: int | None = None,
    ) -> dict:
        """
        Index a local video file so its scenes can be found by subtitle text.

        Extracts one frame every `interval` seconds and indexes every subtitle.
        Uses the external subtitle file if given, otherwise the embedded
        subtitle stream at index `stream` (0 = first subtitle stream).

        A `status` of `partial` means the video and frames were saved but not
        every subtitle made it into the search index.

        Args:
            video_path: Path to the video file
            subtitle_path: External .srt or .vtt file (optional)
            stream: Embedded subtitle stream index (default from config)
            interval: Seconds between frames (default from config)
            quality: Frame quality, 1 (best) to 31 (worst)
            format: Frame format, jpg or webp
            height: Scale frames to this height (optional)
        """
        try:
            request = make_index_request(
                video_path,
                subtitle_path=subtitle_path,
                stream=stream,
                interval=interval,
                quality=quality,
                frame_format=format,
                height=height,
            )
            result = await index_video(ctx, request)
        except FrameSeekrError as e:
            return e.to_dict()
        except ValidationError as e:
            return {"success": False, "error": str(e), "error_type": "invalid_request"}
        return {"success": True, **result.model_dump(mode="json")}

    @mcp.tool(name="frame_seekr_search")
    def tool_search(
        query: str,
        video_id: str | None = None,
        limit: int = 20,
        offset: int = 0,
        start: int | None = None,
        end: int | None = None,
    ) -> dict:
        """
        Search subtitle text across indexed videos, best match first.

        Args:
            query: Words to look for (the last word matches as a prefix)
            video_id: Only search this video (optional)
            limit: Maximum number of hits (default 20)
            offset: Hits to skip, for paging
            start: Only subtitles starting at or after this time in ms
            end: Only subtitles ending at or before this time in ms
        """
        time_range = TimeRange(start=start, end=end) if start is not None or end is not None else None
        try:
            hits = ctx.search.search(query, video_id=video_id, limit=limit, offset=offset, time_range=time_range)
        except FrameSeekrError as e:
            return e.to_dict()
        return {"success": True, "hits": [hit.model_dump(mode="json") for hit in hits], "count": len(hits)}

    @mcp.tool(name="frame_seekr_find_best_match")
    async def tool_find_best_match(query: str, video_id: str | None = None) -> dict:
        """
        Find the scene whose subtitle best matches a query.

        Returns the subtitle hit, the frame files covering it and a clip
        descriptor. `match` is null when nothing matches.

        Args:
            query: Words to look for
            video_id: Only search this video (optional)
        """
        try:
            match = await find_best_match(ctx, query, video_id)
        except FrameSeekrError as e:
            return e.to_dict()
        return {"success": True, "match": match.model_dump(mode="json") if match else None}

    @mcp.tool(name="frame_seekr_list_videos")
    def tool_list_videos() -> dict:
        """List indexed videos, most recent first."""
        videos = ctx.store.list_videos()
        return {
            "success": True,
            "videos": [video.model_dump(mode="json") for video in videos],
            "count": len(videos),
        }

    @mcp.tool(name="frame_seekr_get_video")
    def tool_get_video(video_id: str) -> dict:
        """
        Get the metadata record of an indexed video.

        Args:
            video_id: ID returned by index_video
        """
        video = ctx.store.get_video(video_id)
        if video is None:
            return {"success": False, "error": f"Video not found: {video_id}", "error_type": "not_found"}
        return {"success": True, "video": video.model_dump(mode="json")}

    @mcp.tool(name="frame_seekr_delete_video")
    def tool_delete_video(video_id: str) -> dict:
        """
        Delete the metadata record of a video.

        Frames on disk, clips and search documents are left in place.

        Args:
            video_id: ID of the video
        """
        ctx.store.delete_video(video_id)
        return {"success": True, "video_id": video_id}

    @mcp.tool(name="frame_seekr_get_frames")
    def tool_get_frames(video_id: str, start: str, end: str) -> dict:
        """
        Get the frame files covering a time range of an indexed video.

        Args:
            video_id: ID of the video
            start: Start time as seconds (e.g., '12.5') or HH:MM:SS.mmm
            end: End time as seconds or HH:MM:SS.mmm
        """
        try:
            frames = ctx.store.get_frames_in_range(video_id, parse_timestamp(start), parse_timestamp(end))
        except FrameSeekrError as e:
            return e.to_dict()
        except ValueError as e:
            return {"success": False, "error": str(e), "error_type": "invalid_request"}
        return {"success": True, "video_id": video_id, "frames": frames, "count": len(frames)}

    @mcp.tool(name="frame_seekr_frame_image")
    def tool_frame_image(video_id: str, timestamp: str):
        """
        Get the indexed frame covering a timestamp. Returns the image.

        Args:
            video_id: ID of the video
            timestamp: Timestamp as seconds (e.g., '123.45') or HH:MM:SS.mmm
        """
        try:
            path = Path(ctx.store.get_frame_path(video_id, parse_timestamp(timestamp)))
        except FrameSeekrError as e:
            return e.to_dict()
        except ValueError as e:
            return {"success": False, "error": str(e), "error_type": "invalid_request"}

        if not path.exists():
            return {"success": False, "error": f"Frame file not found: {path}", "error_type": "not_found"}

        # "jpg" -> "jpeg" for the MIME type
        image_format = "jpeg" if path.suffix == ".jpg" else path.suffix.lstrip(".")
        return McpImage(data=path.read_bytes(), format=image_format)

    @mcp.tool(name="frame_seekr_create_clip")
    async def tool_create_clip(
        video_id: str,
        start: str,
        end: str,
        output_path: str | None = None,
        loop: bool = True,
    ) -> dict:
        """
        Create a GIF from the indexed frames between two timestamps.

        Use the `clip.start` / `clip.end` of a find_best_match result to render
        the matched scene. Clips are written next to the frames by default.

        Args:
            video_id: ID of the video
            start: Start time as HH:MM:SS.mmm or seconds
            end: End time as HH:MM:SS.mmm or seconds
            output_path: Output file (optional)
            loop: Loop the GIF (default true)
        """
        try:
            result = await create_clip(ctx, video_id, start, end, output_path, loop)
        except FrameSeekrError as e:
            return e.to_dict()
        except ValueError as e:
            return {"success": False, "error": str(e), "error_type": "invalid_request"}
        return {"success": True, **result.model_dump(mode="json")}

    return mcp
