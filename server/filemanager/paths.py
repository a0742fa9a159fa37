"""File Manager - Folder Path Helpers

Folder paths are '/'-separated strings relative to the uploads root.
The root itself is the empty string.
"""

from typing import Optional

ROOT = ""
ROOT_ALIAS = "__root__"  # URL stand-in for the root in /permissions/{path}
SEPARATOR = "/"

INVALID_NAME_CHARS = frozenset('<>:"/\\|?*')


def normalize_path(path: Optional[str]) -> str:
    """Canonical form used as the permission-table key.

    Leading/trailing separators and whitespace are dropped and backslashes
    become '/'. '..', '.' and empty interior segments ('a//b') are rejected
    so the result is the same key the filesystem resolves to.
    """
    if path is None:
        return ROOT
    path = path.strip().replace("\\", SEPARATOR).strip(SEPARATOR)
    if path in (ROOT, ROOT_ALIAS):
        return ROOT
    segments = path.split(SEPARATOR)
    if any(segment in ("..", ".") for segment in segments):
        raise ValueError(f"Path may not contain '..' or '.': {path!r}")
    if any(not segment.strip() for segment in segments):
        raise ValueError(f"Path may not contain empty segments: {path!r}")
    return path


def ancestor_paths(path: str) -> list[str]:
    """Every strict non-root prefix of path, shallowest first.

    ancestor_paths("a/b/c") == ["a", "a/b"]
    """
    segments = [segment for segment in path.split(SEPARATOR) if segment]
    ancestors = []
    current = []
    for segment in segments[:-1]:
        current.append(segment)
        ancestors.append(SEPARATOR.join(current))
    return ancestors


def view_check_paths(path: str) -> list[str]:
    """Paths whose view permission must all pass for path to be visible."""
    return [path] + ancestor_paths(path)


def child_path(current: str, name: str) -> str:
    return f"{current}{SEPARATOR}{name}" if current else name


def parent_path(path: str) -> str:
    if SEPARATOR not in path:
        return ROOT
    return path.rsplit(SEPARATOR, 1)[0]


def base_name(path: str) -> str:
    return path.rsplit(SEPARATOR, 1)[-1]


def is_within(path: str, folder: str) -> bool:
    """True if path is folder itself or lies beneath it."""
    if folder == ROOT:
        return True
    return path == folder or path.startswith(folder + SEPARATOR)


def validate_entry_name(name: str) -> str:
    """Single file/folder name: non-empty, no separators or reserved characters."""
    name = (name or "").strip()
    if not name:
        raise ValueError("Name is required")
    if name in (".", ".."):
        raise ValueError(f"'{name}' is not a valid name")
    if any(ch in INVALID_NAME_CHARS for ch in name):
        raise ValueError("Name contains invalid characters")
    return name
