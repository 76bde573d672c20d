"""Full-text search over subtitle text.

Two backends share the SearchIndex interface: an embedded SQLite FTS5 index
(default) and a Meilisearch server reached over HTTP. Documents are keyed by
``<video_id>_<start_time>``, so indexing the same entry twice keeps one
document.
"""

from __future__ import annotations

import logging
import re
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Protocol

import httpx

from ..errors import SearchIndexError
from ..models import SearchHit, TimeRange

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20


def document_id(video_id: str, start_time: int) -> str:
    """Build the composite document id for a subtitle entry."""
    return f"{video_id}_{start_time}"


class SearchIndex(Protocol):
    """Capabilities the pipelines need from a search engine."""

    def initialize(self) -> None: ...

    def index_subtitle(self, video_id: str, start_time: int, end_time: int, text: str) -> None: ...

    def search(
        self,
        query: str,
        video_id: str | None = None,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
        time_range: TimeRange | None = None,
    ) -> list[SearchHit]: ...


def build_match_expression(query: str) -> str | None:
    """
    Turn free text into an FTS5 MATCH expression.

    Words are OR-ed so partial matches still rank; the last word also
    matches as a prefix. Returns None when the query has no words.
    """
    tokens = re.findall(r"\w+", query.lower())
    if not tokens:
        return None
    terms = [f'"{t}"' for t in tokens[:-1]]
    terms.append(f'"{tokens[-1]}"*')
    return " OR ".join(terms)


class SqliteSearchIndex:
    """Search index stored in a local SQLite database using FTS5."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        except sqlite3.Error as e:
            raise SearchIndexError(f"Cannot open search index {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            cursor = conn.cursor()
            yield cursor
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Search index error: {e}")
            raise SearchIndexError(f"Search index error: {e}") from e
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the document table, its FTS5 index and sync triggers if missing."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._cursor() as cursor:
            cursor.executescript("""
                CREATE TABLE IF NOT EXISTS subtitle_documents (
                    doc_id TEXT PRIMARY KEY,
                    video_id TEXT NOT NULL,
                    start_time INTEGER NOT NULL,
                    end_time INTEGER NOT NULL,
                    subtitle_text TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_subtitle_documents_video
                    ON subtitle_documents(video_id, start_time);

                CREATE VIRTUAL TABLE IF NOT EXISTS subtitle_fts USING fts5(
                    subtitle_text,
                    content='subtitle_documents',
                    content_rowid='rowid'
                );

                CREATE TRIGGER IF NOT EXISTS subtitle_documents_ai AFTER INSERT ON subtitle_documents BEGIN
                    INSERT INTO subtitle_fts(rowid, subtitle_text) VALUES (new.rowid, new.subtitle_text);
                END;
                CREATE TRIGGER IF NOT EXISTS subtitle_documents_ad AFTER DELETE ON subtitle_documents BEGIN
                    INSERT INTO subtitle_fts(subtitle_fts, rowid, subtitle_text)
                        VALUES ('delete', old.rowid, old.subtitle_text);
                END;
                CREATE TRIGGER IF NOT EXISTS subtitle_documents_au AFTER UPDATE ON subtitle_documents BEGIN
                    INSERT INTO subtitle_fts(subtitle_fts, rowid, subtitle_text)
                        VALUES ('delete', old.rowid, old.subtitle_text);
                    INSERT INTO subtitle_fts(rowid, subtitle_text) VALUES (new.rowid, new.subtitle_text);
                END;
            """)

    def index_subtitle(self, video_id: str, start_time: int, end_time: int, text: str) -> None:
        """Insert or replace the document for one subtitle entry."""
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO subtitle_documents (doc_id, video_id, start_time, end_time, subtitle_text)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(doc_id) DO UPDATE SET
                    end_time = excluded.end_time,
                    subtitle_text = excluded.subtitle_text
                """,
                (document_id(video_id, start_time), video_id, start_time, end_time, text),
            )

    def count(self, video_id: str | None = None) -> int:
        """Count stored documents, optionally for one video."""
        with self._cursor() as cursor:
            if video_id is None:
                cursor.execute("SELECT COUNT(*) FROM subtitle_documents")
            else:
                cursor.execute("SELECT COUNT(*) FROM subtitle_documents WHERE video_id = ?", (video_id,))
            return cursor.fetchone()[0]

    def search(
        self,
        query: str,
        video_id: str | None = None,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
        time_range: TimeRange | None = None,
    ) -> list[SearchHit]:
        """
        Search subtitle text, best match first.

        An empty query returns every document passing the filters, in time order.
        """
        filters: list[str] = []
        params: list[Any] = []

        if video_id:
            filters.append("d.video_id = ?")
            params.append(video_id)
        if time_range:
            if time_range.start is not None:
                filters.append("d.start_time >= ?")
                params.append(time_range.start)
            if time_range.end is not None:
                filters.append("d.end_time <= ?")
                params.append(time_range.end)

        expression = build_match_expression(query)
        if expression is None:
            where = f"WHERE {' AND '.join(filters)}" if filters else ""
            sql = f"""
                SELECT d.video_id, d.start_time, d.end_time, d.subtitle_text, NULL AS score
                FROM subtitle_documents d
                {where}
                ORDER BY d.video_id, d.start_time
                LIMIT ? OFFSET ?
            """
        else:
            where = f"WHERE {' AND '.join(filters)}" if filters else ""
            params.insert(0, expression)
            # bm25() is negative, lower is better
            sql = f"""
                SELECT d.video_id, d.start_time, d.end_time, d.subtitle_text, -m.rank AS score
                FROM (
                    SELECT rowid, bm25(subtitle_fts) AS rank
                    FROM subtitle_fts
                    WHERE subtitle_fts MATCH ?
                ) m
                JOIN subtitle_documents d ON d.rowid = m.rowid
                {where}
                ORDER BY m.rank, d.start_time
                LIMIT ? OFFSET ?
            """
        params.extend([limit, offset])

        with self._cursor() as cursor:
            cursor.execute(sql, params)
            rows = cursor.fetchall()

        return [
            SearchHit(
                video_id=row["video_id"],
                start_time=row["start_time"],
                end_time=row["end_time"],
                subtitle_text=row["subtitle_text"],
                score=row["score"],
            )
            for row in rows
        ]


def _normalize_hit(hit: dict[str, Any]) -> SearchHit:
    """Map a Meilisearch hit onto SearchHit, whichever score key it carries."""
    score = None
    for key in ("_rankingScore", "_score", "score"):
        if hit.get(key) is not None:
            score = float(hit[key])
            break
    return SearchHit(
        video_id=hit["videoId"],
        start_time=hit["startTime"],
        end_time=hit["endTime"],
        subtitle_text=hit["subtitleText"],
        score=score,
    )


class MeiliSearchIndex:
    """Search index hosted by a Meilisearch server."""

    def __init__(
        self,
        host: str,
        api_key: str | None = None,
        index_uid: str = "frames",
        client: httpx.Client | None = None,
        task_timeout: float = 30.0,
    ):
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.index_uid = index_uid
        self.task_timeout = task_timeout
        self.client = client or httpx.Client(base_url=host, headers=headers, timeout=30.0)

    def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        try:
            response = self.client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Meilisearch request {method} {path} failed: {e}")
            raise SearchIndexError(f"Meilisearch request failed: {e}") from e
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Meilisearch request {method} {path} returned malformed JSON: {e}")
            raise SearchIndexError(f"Meilisearch returned a malformed response: {e}") from e

    def _wait_for_task(self, task: dict[str, Any]) -> dict[str, Any]:
        """Poll a Meilisearch task until it leaves the queue."""
        task_uid = task.get("taskUid")
        if task_uid is None:
            return task
        deadline = time.monotonic() + self.task_timeout
        while True:
            status = self._request("GET", f"/tasks/{task_uid}")
            if status.get("status") in ("succeeded", "failed", "canceled"):
                return status
            if time.monotonic() > deadline:
                raise SearchIndexError(f"Meilisearch task {task_uid} did not finish in {self.task_timeout}s")
            time.sleep(0.1)

    def initialize(self) -> None:
        """Create the index (if missing) and apply search settings."""
        created = self._wait_for_task(
            self._request("POST", "/indexes", json={"uid": self.index_uid, "primaryKey": "id"})
        )
        error = created.get("error") or {}
        if created.get("status") == "failed" and error.get("code") != "index_already_exists":
            raise SearchIndexError(f"Failed to create index {self.index_uid}: {error.get('message')}")

        settings = self._wait_for_task(
            self._request(
                "PATCH",
                f"/indexes/{self.index_uid}/settings",
                json={
                    "searchableAttributes": ["subtitleText"],
                    "filterableAttributes": ["videoId", "startTime", "endTime"],
                    "sortableAttributes": ["startTime", "endTime"],
                },
            )
        )
        if settings.get("status") == "failed":
            message = (settings.get("error") or {}).get("message")
            raise SearchIndexError(f"Failed to update settings of {self.index_uid}: {message}")

    def index_subtitle(self, video_id: str, start_time: int, end_time: int, text: str) -> None:
        """Add or replace the document for one subtitle entry."""
        self._request(
            "POST",
            f"/indexes/{self.index_uid}/documents",
            json=[
                {
                    "id": document_id(video_id, start_time),
                    "videoId": video_id,
                    "startTime": start_time,
                    "endTime": end_time,
                    "subtitleText": text,
                }
            ],
        )

    def search(
        self,
        query: str,
        video_id: str | None = None,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
        time_range: TimeRange | None = None,
    ) -> list[SearchHit]:
        """Search subtitle text, best match first."""
        params: dict[str, Any] = {
            "q": query,
            "limit": limit,
            "offset": offset,
            "showRankingScore": True,
        }

        filters = []
        if video_id:
            escaped = video_id.replace('"', '\\"')
            filters.append(f'videoId = "{escaped}"')
        if time_range:
            if time_range.start is not None:
                filters.append(f"startTime >= {time_range.start}")
            if time_range.end is not None:
                filters.append(f"endTime <= {time_range.end}")
        if filters:
            params["filter"] = " AND ".join(filters)

        result = self._request("POST", f"/indexes/{self.index_uid}/search", json=params)
        return [_normalize_hit(hit) for hit in result.get("hits", [])]

    def close(self) -> None:
        self.client.close()
