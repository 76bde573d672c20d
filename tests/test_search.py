"""Tests for the embedded SQLite search index."""

from __future__ import annotations

import pytest

from frame_seekr.core.search import SqliteSearchIndex, build_match_expression, document_id
from frame_seekr.errors import SearchIndexError
from frame_seekr.models import TimeRange


@pytest.fixture
def populated(search_index):
    """Two videos with a few subtitles each."""
    search_index.index_subtitle("v1", 1000, 2500, "hello world")
    search_index.index_subtitle("v1", 3000, 4000, "goodbye moon")
    search_index.index_subtitle("v1", 5000, 6000, "hello again")
    search_index.index_subtitle("v2", 1000, 2000, "hello there world")
    search_index.index_subtitle("v2", 8000, 9000, "nothing to see")
    return search_index


def test_document_id():
    """Test composite document ids."""
    assert document_id("abc", 1500) == "abc_1500"


def test_build_match_expression():
    """Test free text becomes quoted OR terms with a trailing prefix."""
    assert build_match_expression("Hello, World") == '"hello" OR "world"*'
    assert build_match_expression("hel") == '"hel"*'


def test_build_match_expression_no_words():
    """Test punctuation-only queries have no expression."""
    assert build_match_expression("  ?! ") is None
    assert build_match_expression("") is None


def test_search_hello_world_scenario(search_index):
    """Test a single indexed subtitle is found by its own text."""
    search_index.index_subtitle("v1", 1000, 2500, "hello world")

    hits = search_index.search("hello world")

    assert len(hits) == 1
    hit = hits[0]
    assert hit.video_id == "v1"
    assert hit.start_time == 1000
    assert hit.end_time == 2500
    assert hit.subtitle_text == "hello world"
    assert hit.score is not None


def test_search_best_hit_only(search_index):
    """Test limit=1 returns the single matching document for a one-word query."""
    search_index.index_subtitle("v1", 1000, 3000, "hello world")

    hits = search_index.search("hello", limit=1)

    assert [(h.video_id, h.start_time, h.end_time) for h in hits] == [("v1", 1000, 3000)]
    assert search_index.search("unrelated", limit=1) == []


def test_search_unrelated_query(populated):
    """Test a query sharing no words returns nothing."""
    assert populated.search("xylophone") == []


def test_search_best_match_first(populated):
    """Test the entry matching every word ranks above partial matches."""
    hits = populated.search("goodbye moon")
    assert hits[0].subtitle_text == "goodbye moon"


def test_search_prefix_on_last_word(populated):
    """Test the last query word matches as a prefix."""
    hits = populated.search("goodb")
    assert [h.subtitle_text for h in hits] == ["goodbye moon"]


def test_search_case_insensitive(populated):
    """Test matching ignores case."""
    assert len(populated.search("HELLO")) == 3


def test_search_filter_by_video(populated):
    """Test the video filter."""
    hits = populated.search("hello", video_id="v2")
    assert [h.video_id for h in hits] == ["v2"]


def test_search_filter_by_time_range(populated):
    """Test start/end filters bound subtitle times."""
    hits = populated.search("hello", video_id="v1", time_range=TimeRange(start=4000))
    assert [h.start_time for h in hits] == [5000]

    hits = populated.search("hello", video_id="v1", time_range=TimeRange(end=3000))
    assert [h.start_time for h in hits] == [1000]


def test_search_limit_and_offset(populated):
    """Test paging through hits."""
    all_hits = populated.search("hello")
    first = populated.search("hello", limit=1)
    second = populated.search("hello", limit=1, offset=1)

    assert len(all_hits) == 3
    assert first == all_hits[:1]
    assert second == all_hits[1:2]


def test_search_empty_query_lists_in_time_order(populated):
    """Test an empty query returns filtered documents in time order."""
    hits = populated.search("", video_id="v1")
    assert [h.start_time for h in hits] == [1000, 3000, 5000]
    assert all(h.score is None for h in hits)


def test_index_same_entry_twice_keeps_one_document(search_index):
    """Test re-indexing an entry replaces its document."""
    search_index.index_subtitle("v1", 1000, 2500, "hello world")
    search_index.index_subtitle("v1", 1000, 2600, "hello there")

    assert search_index.count("v1") == 1
    assert search_index.search("world") == []
    hits = search_index.search("there")
    assert hits[0].end_time == 2600


def test_count(populated):
    """Test document counts overall and per video."""
    assert populated.count() == 5
    assert populated.count("v2") == 2
    assert populated.count("missing") == 0


def test_initialize_is_repeatable(search_index):
    """Test initializing an existing index keeps its documents."""
    search_index.index_subtitle("v1", 0, 500, "still here")
    search_index.initialize()
    assert search_index.count() == 1


def test_uninitialized_index_raises(tmp_path):
    """Test searching before initialize raises SearchIndexError."""
    index = SqliteSearchIndex(tmp_path / "empty.db")
    with pytest.raises(SearchIndexError):
        index.search("hello")
