"""Core functionality for frame-seekr.

Pipelines live in ``core.indexing``, ``core.retrieval`` and ``core.clip``
and are imported from there.
"""

from .frames import frame_number, frame_path, frames_in_range
from .media import MediaTool, PyAVMediaTool
from .search import MeiliSearchIndex, SearchIndex, SqliteSearchIndex
from .store import MetadataStore
from .subtitles import parse_srt, parse_subtitles, parse_vtt

__all__ = [
    # Frame index model
    "frame_number",
    "frame_path",
    "frames_in_range",
    # Collaborators
    "MetadataStore",
    "SearchIndex",
    "SqliteSearchIndex",
    "MeiliSearchIndex",
    "MediaTool",
    "PyAVMediaTool",
    "parse_subtitles",
    "parse_srt",
    "parse_vtt",
]
