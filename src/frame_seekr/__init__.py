"""Searchable video frame indexes built from subtitles."""

__version__ = "0.1.0"
