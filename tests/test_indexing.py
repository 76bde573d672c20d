"""Tests for the indexing pipeline with a fake media tool."""

from __future__ import annotations

import httpx
import pytest

from conftest import SAMPLE_SRT
from frame_seekr.config import save_config
from frame_seekr.core import indexing
from frame_seekr.core import media as media_module
from frame_seekr.core.indexing import PREVIEW_SIZE, index_video, make_index_request
from frame_seekr.core.search import MeiliSearchIndex
from frame_seekr.errors import (
    ExternalToolError,
    InvalidStreamIndexError,
    NoSubtitlesAvailableError,
    SearchIndexError,
    SubtitleParseError,
)
from frame_seekr.models import FrameFormat, IndexRequest, IndexStatus, SubtitleSource, SubtitleStream


@pytest.fixture
def subtitle_file(tmp_path):
    path = tmp_path / "movie.srt"
    path.write_text(SAMPLE_SRT, encoding="utf-8")
    return path


def make_request(**overrides) -> IndexRequest:
    data = {
        "video_path": "/videos/movie.mp4",
        "frame_interval": 0.5,
        "frame_quality": 5,
    }
    data.update(overrides)
    return IndexRequest(**data)


class FlakySearch:
    """Wraps a search index and fails after a number of documents."""

    def __init__(self, inner, fail_after: int):
        self.inner = inner
        self.fail_after = fail_after
        self.indexed = 0

    def initialize(self):
        self.inner.initialize()

    def index_subtitle(self, video_id, start_time, end_time, text):
        if self.indexed >= self.fail_after:
            raise SearchIndexError("search backend unavailable")
        self.inner.index_subtitle(video_id, start_time, end_time, text)
        self.indexed += 1

    def search(self, *args, **kwargs):
        return self.inner.search(*args, **kwargs)


class TestIndexVideo:
    """Successful indexing runs."""

    @pytest.mark.asyncio
    async def test_external_subtitles(self, ctx, media, subtitle_file):
        """Test a run with an external subtitle file."""
        result = await index_video(ctx, make_request(subtitle_path=str(subtitle_file)))

        assert result.status == IndexStatus.COMPLETE
        assert result.warning is None
        assert result.total_subtitles == 4
        assert result.indexed_subtitles == 4
        assert result.duration == 10000
        assert result.total_frames == media.frame_count
        assert [e.text for e in result.preview] == ["hello world", "goodbye moon", "the quick brown fox"]
        assert not media.called("list_subtitle_streams")

        record = ctx.store.get_video(result.video_id)
        assert record.filename == "movie.mp4"
        assert record.subtitle_source == SubtitleSource.EXTERNAL
        assert record.subtitle_path == str(subtitle_file)
        assert record.subtitle_stream is None
        assert record.output_directory == result.output_directory
        assert record.total_frames == result.total_frames
        assert record.disk_space_used == result.disk_space_used > 0

        assert ctx.search.count(result.video_id) == 4
        hits = ctx.search.search("hello world", video_id=result.video_id)
        assert hits[0].start_time == 1000
        assert hits[0].end_time == 2500

    @pytest.mark.asyncio
    async def test_embedded_subtitles(self, ctx, media):
        """Test a run using the selected embedded stream."""
        media.streams = [
            SubtitleStream(index=0, codec="subrip", language="eng"),
            SubtitleStream(index=1, codec="subrip", language="jpn"),
        ]

        result = await index_video(ctx, make_request(subtitle_stream=1))

        assert ("extract_embedded_subtitles", "/videos/movie.mp4", 1) in media.calls
        record = ctx.store.get_video(result.video_id)
        assert record.subtitle_source == SubtitleSource.EMBEDDED
        assert record.subtitle_stream == 1
        assert record.subtitle_path is None

    @pytest.mark.asyncio
    async def test_frame_settings_passed_to_media_tool(self, ctx, media, subtitle_file):
        """Test frame settings reach extraction and the stored record."""
        request = make_request(
            subtitle_path=str(subtitle_file),
            frame_interval=0.25,
            frame_quality=3,
            frame_format=FrameFormat.WEBP,
            frame_height=360,
        )

        result = await index_video(ctx, request)

        assert ("extract_frames", "/videos/movie.mp4", 0.25, 3, FrameFormat.WEBP, 360) in media.calls
        record = ctx.store.get_video(result.video_id)
        assert record.frame_interval == 0.25
        assert record.frame_format == FrameFormat.WEBP
        assert record.frame_height == 360

    @pytest.mark.asyncio
    async def test_each_run_gets_new_id(self, ctx, subtitle_file):
        """Test indexing the same file twice creates two records."""
        first = await index_video(ctx, make_request(subtitle_path=str(subtitle_file)))
        second = await index_video(ctx, make_request(subtitle_path=str(subtitle_file)))

        assert first.video_id != second.video_id
        assert len(ctx.store.list_videos()) == 2

    @pytest.mark.asyncio
    async def test_progress_reported(self, ctx, subtitle_file):
        """Test progress goes from 0 to 100 without going backwards."""
        progress = []
        await index_video(ctx, make_request(subtitle_path=str(subtitle_file)), lambda p, m: progress.append(p))

        assert progress[0] == 0
        assert progress[-1] == 100
        assert progress == sorted(progress)

    def test_progress_callback_type_shared(self):
        """Test the pipeline uses the media tool's progress callback type."""
        assert indexing.ProgressCallback is media_module.ProgressCallback

    @pytest.mark.asyncio
    async def test_preview_limited(self, ctx, subtitle_file):
        """Test only the first entries are previewed."""
        result = await index_video(ctx, make_request(subtitle_path=str(subtitle_file)))
        assert len(result.preview) == PREVIEW_SIZE


class TestIndexFailures:
    """Failing indexing runs and their side effects."""

    @pytest.mark.asyncio
    async def test_no_subtitles_available(self, ctx, media):
        """Test no external file and no streams aborts before any side effect."""
        with pytest.raises(NoSubtitlesAvailableError) as exc_info:
            await index_video(ctx, make_request())

        assert exc_info.value.stage == "acquire_subtitles"
        assert exc_info.value.video_id is None
        assert not media.called("extract_frames")
        assert not media.called("probe_duration")
        assert ctx.store.list_videos() == []
        assert ctx.search.count() == 0

    @pytest.mark.asyncio
    async def test_invalid_stream_index(self, ctx, media):
        """Test an out-of-range stream selection."""
        media.streams = [SubtitleStream(index=0, codec="subrip")]

        with pytest.raises(InvalidStreamIndexError) as exc_info:
            await index_video(ctx, make_request(subtitle_stream=1))

        assert exc_info.value.stage == "acquire_subtitles"
        assert not media.called("extract_embedded_subtitles")
        assert ctx.store.list_videos() == []

    @pytest.mark.asyncio
    async def test_missing_subtitle_file(self, ctx, tmp_path):
        """Test an unreadable external file is a parse failure."""
        with pytest.raises(SubtitleParseError):
            await index_video(ctx, make_request(subtitle_path=str(tmp_path / "missing.srt")))
        assert ctx.store.list_videos() == []

    @pytest.mark.asyncio
    async def test_extraction_failure_creates_no_record(self, ctx, media, subtitle_file):
        """Test a media tool failure aborts before the record is stored."""
        media.extract_error = ExternalToolError("decoder crashed")

        with pytest.raises(ExternalToolError) as exc_info:
            await index_video(ctx, make_request(subtitle_path=str(subtitle_file)))

        assert exc_info.value.stage == "extract_frames"
        assert ctx.store.list_videos() == []
        assert ctx.search.count() == 0

    @pytest.mark.asyncio
    async def test_search_failure_is_partial(self, ctx, subtitle_file):
        """Test a search failure keeps the record and reports a partial result."""
        ctx.search = FlakySearch(ctx.search, fail_after=2)

        result = await index_video(ctx, make_request(subtitle_path=str(subtitle_file)))

        assert result.status == IndexStatus.PARTIAL
        assert result.indexed_subtitles == 2
        assert result.total_subtitles == 4
        assert "2 of 4" in result.warning
        assert ctx.store.get_video(result.video_id) is not None
        assert ctx.search.inner.count(result.video_id) == 2

    @pytest.mark.asyncio
    async def test_malformed_search_response_is_partial(self, ctx, subtitle_file):
        """Test a garbled search backend response keeps the record and reports a partial result."""
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>bad gateway</html>"))
        ctx.search = MeiliSearchIndex(
            "http://meili.test", client=httpx.Client(base_url="http://meili.test", transport=transport)
        )

        result = await index_video(ctx, make_request(subtitle_path=str(subtitle_file)))

        assert result.status == IndexStatus.PARTIAL
        assert result.indexed_subtitles == 0
        assert "0 of 4" in result.warning
        assert ctx.store.get_video(result.video_id) is not None


class TestMakeIndexRequest:
    """Request building with configured defaults."""

    def test_defaults(self):
        """Test built-in defaults when nothing is configured."""
        request = make_index_request("/videos/movie.mp4")

        assert request.frame_interval == 0.1
        assert request.frame_quality == 5
        assert request.frame_format == FrameFormat.JPG
        assert request.frame_height is None
        assert request.subtitle_stream == 0

    def test_config_file_defaults(self):
        """Test the index section of the config file overrides built-ins."""
        save_config({"index": {"interval": 1.0, "format": "webp"}})

        request = make_index_request("/videos/movie.mp4")

        assert request.frame_interval == 1.0
        assert request.frame_format == FrameFormat.WEBP
        assert request.frame_quality == 5

    def test_explicit_values_win(self):
        """Test explicit arguments override configured defaults."""
        save_config({"index": {"interval": 1.0}})

        request = make_index_request("/videos/movie.mp4", interval=0.25, quality=10, stream=2, height=720)

        assert request.frame_interval == 0.25
        assert request.frame_quality == 10
        assert request.subtitle_stream == 2
        assert request.frame_height == 720

    def test_invalid_values_rejected(self):
        """Test out-of-range frame settings fail validation."""
        with pytest.raises(ValueError):
            make_index_request("/videos/movie.mp4", quality=40)
        with pytest.raises(ValueError):
            make_index_request("/videos/movie.mp4", interval=0)
