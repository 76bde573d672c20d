"""Data models for frame-seekr."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator

# Quality follows ffmpeg's qscale: 1 (best) to 31 (worst)
MIN_FRAME_QUALITY = 1
MAX_FRAME_QUALITY = 31


class FrameFormat(str, Enum):
    """Image format of extracted frames."""

    JPG = "jpg"
    WEBP = "webp"


class SubtitleSource(str, Enum):
    """Where the subtitles of an indexed video came from."""

    EMBEDDED = "embedded"
    EXTERNAL = "external"


class IndexStage(str, Enum):
    """Indexing pipeline stages, in execution order."""

    ACQUIRE_SUBTITLES = "acquire_subtitles"
    PREVIEW_SUBTITLES = "preview_subtitles"
    MEASURE_DURATION = "measure_duration"
    EXTRACT_FRAMES = "extract_frames"
    PERSIST_RECORD = "persist_record"
    POPULATE_SEARCH = "populate_search"
    DONE = "done"


class IndexStatus(str, Enum):
    """Outcome of an indexing run that produced a record."""

    COMPLETE = "complete"
    PARTIAL = "partial"


class FrameSettings(BaseModel):
    """Frame extraction settings shared by requests and records."""

    frame_interval: float = Field(gt=0, description="Seconds between extracted frames")
    frame_format: FrameFormat = FrameFormat.JPG
    frame_quality: int = Field(ge=MIN_FRAME_QUALITY, le=MAX_FRAME_QUALITY)
    frame_height: int | None = Field(default=None, gt=0)


class VideoRecord(FrameSettings):
    """Persisted settings and results for one indexed video."""

    id: str
    path: str
    filename: str
    duration: int = Field(ge=0, description="Duration in milliseconds")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    subtitle_source: SubtitleSource
    subtitle_stream: int | None = None
    subtitle_path: str | None = None

    output_directory: str
    total_frames: int = Field(ge=0)
    total_subtitles: int = Field(ge=0)
    disk_space_used: int = Field(ge=0)


class SubtitleEntry(BaseModel):
    """A single timed subtitle entry."""

    index: int
    start_ms: int = Field(ge=0)
    end_ms: int = Field(ge=0)
    text: str

    @model_validator(mode="after")
    def _check_order(self) -> SubtitleEntry:
        if self.start_ms > self.end_ms:
            raise ValueError(f"start_ms ({self.start_ms}) is after end_ms ({self.end_ms})")
        return self


class SubtitleStream(BaseModel):
    """An embedded subtitle stream, indexed among subtitle streams only."""

    index: int
    codec: str
    language: str | None = None
    title: str | None = None


class TimeRange(BaseModel):
    """Optional time window filter, in milliseconds."""

    start: int | None = None
    end: int | None = None


class SearchHit(BaseModel):
    """One ranked search result."""

    video_id: str
    start_time: int
    end_time: int
    subtitle_text: str
    score: float | None = None


class IndexRequest(FrameSettings):
    """Parameters for indexing one video."""

    video_path: str
    subtitle_path: str | None = None
    subtitle_stream: int = 0


class IndexResult(BaseModel):
    """Report from a finished indexing run."""

    video_id: str
    duration: int
    total_frames: int
    disk_space_used: int
    output_directory: str
    total_subtitles: int
    indexed_subtitles: int
    status: IndexStatus = IndexStatus.COMPLETE
    warning: str | None = None
    preview: list[SubtitleEntry] = Field(default_factory=list)


class ClipFrame(BaseModel):
    """A frame file and how long it stays on screen."""

    file_path: str
    display_duration_seconds: float


def _concat_quote(path: str) -> str:
    return path.replace("'", "'\\''")


class ClipDescriptor(BaseModel):
    """Resolved input for generating a clip from indexed frames."""

    video_id: str
    start: str
    end: str
    start_ms: int
    end_ms: int
    frames: list[ClipFrame] = Field(default_factory=list)

    def to_concat_script(self) -> str:
        """
        Render as an ffmpeg concat demuxer script.

        The last file is listed twice, since the demuxer ignores the duration
        of the final entry.
        """
        lines = []
        for frame in self.frames:
            lines.append(f"file '{_concat_quote(frame.file_path)}'")
            lines.append(f"duration {frame.display_duration_seconds}")
        if self.frames:
            lines.append(f"file '{_concat_quote(self.frames[-1].file_path)}'")
        return "\n".join(lines)


class MatchResult(BaseModel):
    """Best search match resolved to frames."""

    hit: SearchHit
    display_name: str
    frames: list[str]
    frame_directory: str
    frame_files: list[str]
    clip: ClipDescriptor


class FrameExtraction(BaseModel):
    """Result of extracting frames from a video."""

    output_dir: str
    frame_count: int
    total_bytes: int


class ClipResult(BaseModel):
    """A rendered clip."""

    output_path: str
    frame_count: int
    skipped_frames: list[str] = Field(default_factory=list)
    duration_seconds: float
    frame_interval: float
