"""
Utility functions for ytm-stream.

This module provides small helpers used across the application:
    - Video ID validation (before any network request is made)
    - Video ID extraction from the various YouTube URL shapes
    - Human-readable byte sizes for CLI output

Usage:
    from ytm_stream.utils import (
        is_valid_video_id,
        extract_video_id,
        format_bytes
    )
"""

import re


# Exactly 11 URL-safe base64 characters
VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")

# Tried in order; the first match wins
VIDEO_URL_PATTERNS = (
    re.compile(
        r"(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/|youtube\.com/embed/"
        r"|youtube\.com/shorts/)([A-Za-z0-9_-]{11})"
    ),
    VIDEO_ID_PATTERN,
)

BYTE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


def is_valid_video_id(video_id: object) -> bool:
    """
    Check whether a value is a well-formed video ID.

    Args:
        video_id: Any value; only strings can be valid.

    Returns:
        True if video_id is a string of exactly 11 characters from
        [A-Za-z0-9_-], False otherwise.

    Examples:
        is_valid_video_id("dQw4w9WgXcQ")   # True
        is_valid_video_id("dQw4w9WgXc")    # False (10 chars)
        is_valid_video_id("dQw4w9WgXc!")   # False
        is_valid_video_id(None)            # False
    """
    return isinstance(video_id, str) and VIDEO_ID_PATTERN.match(video_id) is not None


def extract_video_id(value: str) -> str | None:
    """
    Extract a video ID from a YouTube/YouTube Music URL or a bare ID.

    Args:
        value: A URL such as "https://music.youtube.com/watch?v=dQw4w9WgXcQ",
               "https://youtu.be/dQw4w9WgXcQ", an embed URL, or the ID itself.

    Returns:
        The 11-character video ID, or None if nothing matched.
    """
    if not isinstance(value, str):
        return None

    value = value.strip()
    for pattern in VIDEO_URL_PATTERNS:
        match = pattern.search(value)
        if match:
            return match.group(1) if pattern.groups else match.group(0)
    return None


def format_bytes(size: int | None) -> str:
    """
    Format a byte count for display.

    Examples:
        format_bytes(0)        # "0 Bytes"
        format_bytes(1536)     # "1.5 KB"
        format_bytes(None)     # "unknown"
    """
    if size is None:
        return "unknown"
    if size <= 0:
        return "0 Bytes"

    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(BYTE_UNITS) - 1:
        value /= 1024
        unit += 1

    return f"{round(value, 2):g} {BYTE_UNITS[unit]}"
