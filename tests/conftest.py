"""Pytest configuration with isolated directories and fake collaborators."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import pytest
from PIL import Image

from frame_seekr.context import SeekrContext
from frame_seekr.core.frames import frame_filename
from frame_seekr.core.search import SqliteSearchIndex
from frame_seekr.core.store import MetadataStore
from frame_seekr.models import FrameExtraction, FrameFormat, SubtitleSource, SubtitleStream, VideoRecord

SAMPLE_SRT = """1
00:00:01,000 --> 00:00:02,500
hello world

2
00:00:03,000 --> 00:00:04,000
goodbye moon

3
00:00:05,000 --> 00:00:06,200
the quick brown fox

4
00:00:07,000 --> 00:00:08,000
jumps over the lazy dog
"""


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "asyncio: mark test as async")


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    """Point every configured directory at a temp location."""
    dirs = {
        "config": tmp_path / "config",
        "data": tmp_path / "data",
        "frames": tmp_path / "frames",
    }
    monkeypatch.setenv("FRAME_SEEKR_CONFIG_DIR", str(dirs["config"]))
    monkeypatch.setenv("FRAME_SEEKR_DATA_DIR", str(dirs["data"]))
    monkeypatch.setenv("FRAME_SEEKR_FRAMES_DIR", str(dirs["frames"]))
    return dirs


def make_record(video_id: str = "vid-1", output_directory: str = "/frames/sample", **overrides) -> VideoRecord:
    """Build a record with a 0.5s frame interval and 20 frames."""
    data = {
        "id": video_id,
        "path": "/videos/sample.mp4",
        "filename": "sample.mp4",
        "duration": 10000,
        "frame_interval": 0.5,
        "frame_format": FrameFormat.JPG,
        "frame_quality": 5,
        "frame_height": None,
        "subtitle_source": SubtitleSource.EXTERNAL,
        "subtitle_stream": None,
        "subtitle_path": "/videos/sample.srt",
        "output_directory": output_directory,
        "total_frames": 20,
        "total_subtitles": 4,
        "disk_space_used": 2048,
        "created_at": datetime(2024, 1, 1, 12, 0, 0),
        "updated_at": datetime(2024, 1, 1, 12, 0, 0),
    }
    data.update(overrides)
    return VideoRecord(**data)


def write_frames(directory: Path, count: int, frame_format: str = "jpg", size=(16, 12)) -> list[Path]:
    """Write `count` small solid-color frames named on the frame grid."""
    directory.mkdir(parents=True, exist_ok=True)
    paths = []
    for n in range(1, count + 1):
        path = directory / frame_filename(n, frame_format)
        color = ((n * 40) % 256, (n * 80) % 256, (n * 120) % 256)
        Image.new("RGB", size, color).save(path, format="JPEG" if frame_format == "jpg" else "WEBP")
        paths.append(path)
    return paths


class FakeMediaTool:
    """In-memory MediaTool that records calls and writes real frame files."""

    def __init__(
        self,
        frames_dir: Path,
        duration: float = 10.0,
        streams: list[SubtitleStream] | None = None,
        embedded_srt: str = SAMPLE_SRT,
        frame_count: int = 4,
        extract_error: Exception | None = None,
    ):
        self.frames_dir = Path(frames_dir)
        self.duration = duration
        self.streams = streams if streams is not None else []
        self.embedded_srt = embedded_srt
        self.frame_count = frame_count
        self.extract_error = extract_error
        self.calls: list[tuple] = []

    def probe_duration(self, video_path):
        self.calls.append(("probe_duration", str(video_path)))
        return self.duration

    def list_subtitle_streams(self, video_path):
        self.calls.append(("list_subtitle_streams", str(video_path)))
        return list(self.streams)

    def extract_embedded_subtitles(self, video_path, stream_index):
        self.calls.append(("extract_embedded_subtitles", str(video_path), stream_index))
        return self.embedded_srt

    def extract_frames(self, video_path, interval, quality, frame_format, height=None, progress_callback=None):
        self.calls.append(("extract_frames", str(video_path), interval, quality, frame_format, height))
        if self.extract_error:
            raise self.extract_error
        output_dir = self.frames_dir / Path(video_path).stem
        paths = write_frames(output_dir, self.frame_count, FrameFormat(frame_format).value)
        if progress_callback:
            progress_callback(100.0, f"{self.frame_count} frames")
        return FrameExtraction(
            output_dir=str(output_dir),
            frame_count=self.frame_count,
            total_bytes=sum(p.stat().st_size for p in paths),
        )

    def called(self, name: str) -> bool:
        return any(call[0] == name for call in self.calls)


@pytest.fixture
def store(tmp_path):
    return MetadataStore(tmp_path / "data" / "frame-seekr.db")


@pytest.fixture
def search_index(tmp_path):
    index = SqliteSearchIndex(tmp_path / "data" / "search.db")
    index.initialize()
    return index


@pytest.fixture
def media(tmp_path):
    return FakeMediaTool(tmp_path / "frames")


@pytest.fixture
def ctx(store, search_index, media):
    return SeekrContext(store=store, search=search_index, media=media)


@pytest.fixture
def sample_record():
    return make_record()


@pytest.fixture
def older_and_newer():
    """Two records created an hour apart."""
    older = make_record("older", created_at=datetime(2024, 1, 1, 12, 0, 0))
    newer = make_record("newer", created_at=datetime(2024, 1, 1, 12, 0, 0) + timedelta(hours=1))
    return older, newer
