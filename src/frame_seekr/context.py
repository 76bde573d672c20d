"""Explicit bundle of the collaborators every pipeline call works against."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable

from .config import (
    ensure_dirs,
    get_database_path,
    get_frames_dir,
    get_search_config,
    get_search_database_path,
)
from .core.media import MediaTool, PyAVMediaTool
from .core.search import MeiliSearchIndex, SearchIndex, SqliteSearchIndex
from .core.store import MetadataStore
from .core.subtitles import parse_subtitles
from .models import SubtitleEntry

logger = logging.getLogger(__name__)

SubtitleParser = Callable[[str, str], list[SubtitleEntry]]


@dataclass
class SeekrContext:
    """Store, search index, media tool and subtitle parser for one process."""

    store: MetadataStore
    search: SearchIndex
    media: MediaTool
    parse_subtitles: SubtitleParser = field(default=parse_subtitles)

    async def initialize(self) -> None:
        """Make sure the search index exists with its settings."""
        await asyncio.to_thread(self.search.initialize)


def create_search_index(config: dict | None = None) -> SearchIndex:
    """Build the search backend named in the search config."""
    config = config or get_search_config()
    backend = config["backend"]

    if backend == "meilisearch":
        logger.info(f"Using Meilisearch at {config['host']} (index {config['index']})")
        return MeiliSearchIndex(config["host"], config.get("api_key"), config["index"])
    if backend == "sqlite":
        return SqliteSearchIndex(get_search_database_path())

    raise ValueError(f"Unknown search backend: {backend}")


def create_context() -> SeekrContext:
    """Build a context from the configured directories and search backend."""
    ensure_dirs()
    return SeekrContext(
        store=MetadataStore(get_database_path()),
        search=create_search_index(),
        media=PyAVMediaTool(get_frames_dir()),
    )
