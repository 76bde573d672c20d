"""Error types for frame-seekr."""

from __future__ import annotations

from typing import Any


class FrameSeekrError(Exception):
    """Base error, carrying the video and pipeline stage it relates to."""

    code = "error"

    def __init__(self, message: str, *, video_id: str | None = None, stage: str | None = None):
        super().__init__(message)
        self.message = message
        self.video_id = video_id
        self.stage = stage

    def to_dict(self) -> dict[str, Any]:
        """Convert to the response shape used by the API and MCP tools."""
        return {
            "success": False,
            "error": self.message,
            "error_type": self.code,
            "video_id": self.video_id,
            "stage": self.stage,
        }


class NotFoundError(FrameSeekrError):
    """Unknown video id (or nothing on disk to resolve)."""

    code = "not_found"


class DuplicateIdError(FrameSeekrError):
    """Video id already present on insert."""

    code = "duplicate_id"


class InvalidRangeError(FrameSeekrError):
    """Range end lies before its start."""

    code = "invalid_range"


class InvalidStreamIndexError(FrameSeekrError):
    """Subtitle stream selection out of bounds."""

    code = "invalid_stream_index"


class NoSubtitlesAvailableError(FrameSeekrError):
    """No embedded subtitle stream and no external file given."""

    code = "no_subtitles_available"


class ExternalToolError(FrameSeekrError):
    """Media tool invocation failed or returned malformed output."""

    code = "external_tool_failure"


class SubtitleParseError(FrameSeekrError):
    """Subtitle text could not be read or parsed."""

    code = "parse_failure"


class SearchIndexError(FrameSeekrError):
    """Search backend request failed."""

    code = "search_index_failure"
