"""Metadata store for indexed videos, backed by SQLite."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from ..errors import DuplicateIdError, NotFoundError
from ..models import VideoRecord
from .frames import frame_number, frame_path, frames_in_range

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id",
    "path",
    "filename",
    "duration",
    "created_at",
    "updated_at",
    "frame_interval",
    "frame_format",
    "frame_quality",
    "frame_height",
    "subtitle_source",
    "subtitle_stream",
    "subtitle_path",
    "output_directory",
    "total_frames",
    "total_subtitles",
    "disk_space_used",
)

# Fields never rewritten by update_video
_IMMUTABLE = ("id", "created_at")


class MetadataStore:
    """
    One row per indexed video.

    Deleting a video removes only its row. Frames on disk and search
    documents are left for the operator to clean up.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_tables()

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            cursor = conn.cursor()
            yield cursor
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"Metadata store error: {e}")
            raise
        finally:
            conn.close()

    def _initialize_tables(self) -> None:
        with self._cursor() as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS videos (
                    id TEXT PRIMARY KEY,
                    path TEXT NOT NULL,
                    filename TEXT NOT NULL,
                    duration INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,

                    -- Processing settings
                    frame_interval REAL NOT NULL,
                    frame_format TEXT NOT NULL,
                    frame_quality INTEGER NOT NULL,
                    frame_height INTEGER,
                    subtitle_source TEXT NOT NULL,
                    subtitle_stream INTEGER,
                    subtitle_path TEXT,

                    -- Results
                    output_directory TEXT NOT NULL,
                    total_frames INTEGER NOT NULL,
                    total_subtitles INTEGER NOT NULL,
                    disk_space_used INTEGER NOT NULL
                )
            """)
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_videos_created_at ON videos(created_at DESC)")

    @staticmethod
    def _to_row(video: VideoRecord) -> dict:
        row = video.model_dump(mode="json")
        row["created_at"] = video.created_at.isoformat()
        row["updated_at"] = video.updated_at.isoformat()
        return row

    @staticmethod
    def _from_row(row: sqlite3.Row) -> VideoRecord:
        data = dict(row)
        data["created_at"] = datetime.fromisoformat(data["created_at"])
        data["updated_at"] = datetime.fromisoformat(data["updated_at"])
        return VideoRecord(**data)

    def add_video(self, video: VideoRecord) -> None:
        """Insert a new record. Raises DuplicateIdError if the id exists."""
        columns = ", ".join(_COLUMNS)
        placeholders = ", ".join(f":{c}" for c in _COLUMNS)
        try:
            with self._cursor() as cursor:
                cursor.execute(
                    f"INSERT INTO videos ({columns}) VALUES ({placeholders})",
                    self._to_row(video),
                )
        except sqlite3.IntegrityError as e:
            raise DuplicateIdError(f"Video already exists: {video.id}", video_id=video.id) from e
        logger.info(f"Added video {video.id} ({video.filename})")

    def get_video(self, video_id: str) -> VideoRecord | None:
        """Get a record by id, or None if absent."""
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM videos WHERE id = ?", (video_id,))
            row = cursor.fetchone()
        return self._from_row(row) if row else None

    def update_video(self, video: VideoRecord) -> None:
        """
        Replace every mutable field of an existing record.

        The id and creation time are kept. Raises NotFoundError if the id
        does not exist.
        """
        assignments = ", ".join(f"{c} = :{c}" for c in _COLUMNS if c not in _IMMUTABLE)
        with self._cursor() as cursor:
            cursor.execute(f"UPDATE videos SET {assignments} WHERE id = :id", self._to_row(video))
            updated = cursor.rowcount
        if not updated:
            raise NotFoundError(f"Video not found: {video.id}", video_id=video.id)

    def delete_video(self, video_id: str) -> None:
        """Delete a record. Deleting an unknown id is a no-op."""
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM videos WHERE id = ?", (video_id,))

    def list_videos(self) -> list[VideoRecord]:
        """List all records, most recently created first."""
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM videos ORDER BY created_at DESC")
            rows = cursor.fetchall()
        return [self._from_row(row) for row in rows]

    def _require_video(self, video_id: str) -> VideoRecord:
        video = self.get_video(video_id)
        if video is None:
            raise NotFoundError(f"Video not found: {video_id}", video_id=video_id)
        return video

    def get_frame_path(self, video_id: str, timestamp_ms: float) -> str:
        """Get the frame file path covering a timestamp."""
        video = self._require_video(video_id)
        return frame_path(video, frame_number(video, timestamp_ms))

    def get_frames_in_range(self, video_id: str, start_ms: float, end_ms: float) -> list[str]:
        """
        Get frame file paths covering a time range.

        Paths are not checked against ``total_frames``: a range running past
        the end of the video yields trailing paths that do not exist on disk.
        """
        video = self._require_video(video_id)
        return frames_in_range(video, start_ms, end_ms)
