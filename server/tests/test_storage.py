"""Tests for the on-disk folder tree."""
import sys
import os
import io
import json

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from filemanager.storage import FileStorage, UploadTooLarge


class TestSaveUpload:

    def test_saves_with_timestamped_name(self, tmp_path):
        storage = FileStorage(str(tmp_path))
        rel = storage.save_upload("", "report.pdf", io.BytesIO(b"data"))
        assert rel.startswith("report-") and rel.endswith(".pdf")
        assert (tmp_path / rel).read_bytes() == b"data"

    def test_limit_enforced_while_copying(self, tmp_path):
        storage = FileStorage(str(tmp_path))
        with pytest.raises(UploadTooLarge):
            storage.save_upload("", "big.bin", io.BytesIO(b"x" * 10), max_bytes=4)
        assert os.listdir(tmp_path) == []

    def test_exact_limit_allowed(self, tmp_path):
        storage = FileStorage(str(tmp_path))
        rel = storage.save_upload("", "ok.bin", io.BytesIO(b"x" * 4), max_bytes=4)
        assert (tmp_path / rel).stat().st_size == 4


class TestPaths:

    def test_escape_rejected(self, tmp_path):
        storage = FileStorage(str(tmp_path / "root"))
        with pytest.raises(ValueError):
            storage.resolve("../outside")

    def test_double_separator_rejected(self, tmp_path):
        storage = FileStorage(str(tmp_path))
        with pytest.raises(ValueError):
            storage.resolve("a//b")

    def test_is_file(self, tmp_path):
        storage = FileStorage(str(tmp_path))
        storage.create_folder("", "docs")
        rel = storage.save_upload("docs", "a.txt", io.BytesIO(b"1"))
        assert storage.is_file(rel) is True
        assert storage.is_file("docs") is False


class TestWriteJson:

    def test_writes_document(self, tmp_path):
        storage = FileStorage(str(tmp_path))
        rel = storage.write_json("", "video.json", {"id": "abc"})
        with open(tmp_path / rel, encoding="utf-8") as f:
            assert json.load(f) == {"id": "abc"}

    def test_existing_name_rejected(self, tmp_path):
        storage = FileStorage(str(tmp_path))
        storage.write_json("", "video.json", {})
        with pytest.raises(FileExistsError):
            storage.write_json("", "video.json", {})
