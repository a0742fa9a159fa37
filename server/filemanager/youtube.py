"""File Manager - YouTube link entries

A YouTube video is stored in a folder as a small JSON document, so it is
listed, permission-checked, renamed and deleted like any other file.
"""

import re
from typing import Optional

from .models import utc_now

VIDEO_ID_LENGTH = 11

_VIDEO_ID_PATTERN = re.compile(r"^.*(youtu\.be/|v/|u/\w/|embed/|shorts/|watch\?v=|&v=)([^#&?/]*).*")
_UNSAFE_TITLE_CHARS = re.compile(r"[^a-zA-Z0-9\s\-_]")


def extract_video_id(url: str) -> Optional[str]:
    """'https://youtu.be/dQw4w9WgXcQ' -> 'dQw4w9WgXcQ'; None when no 11-character id is found."""
    match = _VIDEO_ID_PATTERN.match(url or "")
    if match and len(match.group(2)) == VIDEO_ID_LENGTH:
        return match.group(2)
    return None


def thumbnail_url(video_id: str) -> str:
    return f"https://img.youtube.com/vi/{video_id}/maxresdefault.jpg"


def video_document(video_id: str, url: str, title: str) -> dict:
    now = utc_now()
    return {
        "id": video_id,
        "url": url,
        "title": title,
        "thumbnail": thumbnail_url(video_id),
        "type": "youtube",
        "created": now,
        "modified": now,
    }


def video_file_stem(title: str) -> str:
    """Title with everything but letters, digits, spaces, '-' and '_' removed."""
    return _UNSAFE_TITLE_CHARS.sub("", title).strip() or "video"
