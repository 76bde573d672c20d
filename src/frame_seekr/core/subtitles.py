"""Subtitle parsing for SRT and WebVTT text."""

from __future__ import annotations

import re
from pathlib import Path

from pydantic import ValidationError

from ..errors import SubtitleParseError
from ..models import SubtitleEntry

SUBTITLE_FORMATS = ("srt", "vtt")

_SRT_TIME = re.compile(
    r'(\d{2}):(\d{2}):(\d{2})[,.](\d{3})\s*-->\s*(\d{2}):(\d{2}):(\d{2})[,.](\d{3})'
)
_VTT_TIME = re.compile(
    r'(\d{2}):(\d{2}):(\d{2})[.](\d{3})\s*-->\s*(\d{2}):(\d{2}):(\d{2})[.](\d{3})'
)
_VTT_SHORT_TIME = re.compile(
    r'(\d{2}):(\d{2})[.](\d{3})\s*-->\s*(\d{2}):(\d{2})[.](\d{3})'
)


def _to_ms(hours: str, minutes: str, seconds: str, millis: str) -> int:
    return int(hours) * 3600000 + int(minutes) * 60000 + int(seconds) * 1000 + int(millis)


def _make_entry(index: int, start_ms: int, end_ms: int, text: str) -> SubtitleEntry:
    try:
        return SubtitleEntry(index=index, start_ms=start_ms, end_ms=end_ms, text=text)
    except ValidationError as e:
        raise SubtitleParseError(f"Malformed subtitle entry {index}: {e}") from e


def _split_blocks(content: str) -> list[str]:
    content = content.replace("\r\n", "\n").replace("\r", "\n").lstrip("\ufeff")
    return re.split(r'\n\n+', content.strip())


def parse_srt(content: str) -> list[SubtitleEntry]:
    """Parse SRT subtitle format."""
    entries = []

    for block in _split_blocks(content):
        lines = block.strip().split('\n')
        if len(lines) < 3:
            continue

        # Parse index
        try:
            index = int(lines[0])
        except ValueError:
            continue

        # Parse timestamp: 00:00:01,000 --> 00:00:05,500
        time_match = _SRT_TIME.match(lines[1])
        if not time_match:
            continue

        h1, m1, s1, ms1, h2, m2, s2, ms2 = time_match.groups()
        text = '\n'.join(lines[2:]).strip()

        entries.append(_make_entry(index, _to_ms(h1, m1, s1, ms1), _to_ms(h2, m2, s2, ms2), text))

    return entries


def parse_vtt(content: str) -> list[SubtitleEntry]:
    """Parse WebVTT subtitle format."""
    entries = []

    index = 0
    for block in _split_blocks(content):
        lines = block.strip().split('\n')

        # Find timestamp line (skips the WEBVTT header, NOTE and STYLE blocks)
        time_line = None
        text_start = 0
        for i, line in enumerate(lines):
            if '-->' in line:
                time_line = line
                text_start = i + 1
                break

        if not time_line:
            continue

        time_match = _VTT_TIME.match(time_line)
        if time_match:
            h1, m1, s1, ms1, h2, m2, s2, ms2 = time_match.groups()
        else:
            # Shorter format: 00:00.000
            time_match = _VTT_SHORT_TIME.match(time_line)
            if not time_match:
                continue
            m1, s1, ms1, m2, s2, ms2 = time_match.groups()
            h1 = h2 = "0"

        # Remove tags like <c>, </c>, <00:00:01.000>
        text_lines = []
        for line in lines[text_start:]:
            clean_line = re.sub(r'<[^>]+>', '', line)
            if clean_line.strip():
                text_lines.append(clean_line.strip())

        text = '\n'.join(text_lines)
        if not text:
            continue

        index += 1
        entries.append(_make_entry(index, _to_ms(h1, m1, s1, ms1), _to_ms(h2, m2, s2, ms2), text))

    return entries


def parse_subtitles(content: str, subtitle_format: str = "srt") -> list[SubtitleEntry]:
    """
    Parse subtitle text into entries, in file order.

    Raises SubtitleParseError if the text is non-empty but yields no entries.
    """
    subtitle_format = subtitle_format.lower().lstrip(".")
    if subtitle_format not in SUBTITLE_FORMATS:
        raise SubtitleParseError(f"Unsupported subtitle format: {subtitle_format}")

    parser = parse_vtt if subtitle_format == "vtt" else parse_srt
    entries = parser(content)

    if not entries and content.strip():
        raise SubtitleParseError(f"No {subtitle_format.upper()} entries found in subtitle text")
    return entries


def subtitle_format_for(path: str | Path) -> str:
    """Pick the subtitle format from a file suffix, defaulting to SRT."""
    return "vtt" if Path(path).suffix.lower() == ".vtt" else "srt"
