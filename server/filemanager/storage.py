"""File Manager - Folder Tree on Disk

All paths handled here are relative folder paths (see paths.py) under a
single uploads root. Anything that would resolve outside the root raises
ValueError.
"""

import json
import mimetypes
import os
import shutil
import time
from datetime import datetime, timezone
from typing import BinaryIO, Optional

from .logging_config import get_logger
from .paths import child_path, normalize_path, parent_path

logger = get_logger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024


class UploadTooLarge(Exception):
    """The incoming stream went past the byte limit; nothing was kept."""


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def unique_filename(original_name: str) -> str:
    """'report.pdf' -> 'report-1712345678901.pdf'"""
    name, ext = os.path.splitext(original_name)
    return f"{name}-{int(time.time() * 1000)}{ext}"


class FileStorage:

    def __init__(self, root: str):
        self.root = os.path.abspath(root)
        os.makedirs(self.root, exist_ok=True)

    def resolve(self, rel_path: str) -> str:
        rel_path = normalize_path(rel_path)
        full = os.path.abspath(os.path.join(self.root, *[p for p in rel_path.split("/") if p]))
        if full != self.root and not full.startswith(self.root + os.sep):
            raise ValueError(f"Path escapes uploads root: {rel_path!r}")
        return full

    def exists(self, rel_path: str) -> bool:
        return os.path.exists(self.resolve(rel_path))

    def is_dir(self, rel_path: str) -> bool:
        return os.path.isdir(self.resolve(rel_path))

    def is_file(self, rel_path: str) -> bool:
        return os.path.isfile(self.resolve(rel_path))

    # --- Reading ---

    def folder_size(self, full_path: str) -> int:
        total = 0
        for dirpath, _dirnames, filenames in os.walk(full_path):
            for filename in filenames:
                try:
                    total += os.path.getsize(os.path.join(dirpath, filename))
                except OSError as e:
                    logger.warning("Could not stat %s: %s", filename, e)
        return total

    def entry_info(self, folder_full: str, name: str) -> dict:
        full = os.path.join(folder_full, name)
        stats = os.stat(full)
        if os.path.isdir(full):
            entry_type = "folder"
            size = self.folder_size(full)
        else:
            entry_type = mimetypes.guess_type(name)[0] or "unknown"
            size = stats.st_size
        return {
            "name": name,
            "type": entry_type,
            "size": size,
            "created": _iso(stats.st_ctime),
            "modified": _iso(stats.st_mtime),
        }

    def list_entries(self, rel_path: str) -> list[dict]:
        """Raw listing in name order. Raises FileNotFoundError / NotADirectoryError."""
        full = self.resolve(rel_path)
        if not os.path.exists(full):
            raise FileNotFoundError(rel_path)
        if not os.path.isdir(full):
            raise NotADirectoryError(rel_path)
        entries = []
        for name in sorted(os.listdir(full)):
            try:
                entries.append(self.entry_info(full, name))
            except OSError as e:
                logger.error("Error getting file info for %s: %s", name, e)
        return entries

    # --- Writing ---

    def create_folder(self, parent: str, name: str) -> str:
        rel = child_path(normalize_path(parent), name)
        full = self.resolve(rel)
        if os.path.exists(full):
            raise FileExistsError(rel)
        os.makedirs(full)
        return rel

    def save_upload(self, folder: str, original_name: str, source: BinaryIO,
                    max_bytes: Optional[int] = None) -> str:
        """Write source under folder with a timestamped name. Returns the new relative path.

        Raises UploadTooLarge once more than max_bytes have been read; the
        partial file is removed.
        """
        folder = normalize_path(folder)
        folder_full = self.resolve(folder)
        os.makedirs(folder_full, exist_ok=True)
        rel = child_path(folder, unique_filename(original_name))
        full = self.resolve(rel)
        written = 0
        try:
            with open(full, "wb") as f:
                while True:
                    chunk = source.read(COPY_CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if max_bytes is not None and written > max_bytes:
                        raise UploadTooLarge(f"{original_name} exceeds {max_bytes} bytes")
                    f.write(chunk)
        except Exception:
            if os.path.exists(full):
                os.remove(full)
            raise
        return rel

    def write_json(self, folder: str, filename: str, document: dict) -> str:
        """Store document as folder/filename. Returns the new relative path."""
        rel = child_path(normalize_path(folder), filename)
        full = self.resolve(rel)
        if os.path.exists(full):
            raise FileExistsError(rel)
        with open(full, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
        return rel

    def delete(self, rel_path: str) -> bool:
        """Remove a file or a whole folder. Returns True if it was a folder."""
        full = self.resolve(rel_path)
        if not os.path.exists(full):
            raise FileNotFoundError(rel_path)
        if os.path.isdir(full):
            shutil.rmtree(full)
            return True
        os.remove(full)
        return False

    def rename(self, rel_path: str, new_name: str) -> str:
        """Rename in place (same parent). Returns the new relative path."""
        rel_path = normalize_path(rel_path)
        full = self.resolve(rel_path)
        if not os.path.exists(full):
            raise FileNotFoundError(rel_path)
        new_rel = child_path(parent_path(rel_path), new_name)
        new_full = self.resolve(new_rel)
        if os.path.exists(new_full):
            raise FileExistsError(new_rel)
        os.rename(full, new_full)
        return new_rel
