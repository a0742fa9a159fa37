"""Tests for the JSON repositories.

Covers:
- Permission upsert/find/delete round-trip and exact-path lookup
- Upsert keeps id/createdAt of an existing record
- Records follow folder renames and deletes
- Persistence across reload, rollback on failed transaction
- Legacy single branchId folded into branchIds
"""
import sys
import os
import json

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from filemanager.models import ActionRestrictions, Branch, PermissionRecord, TriState, User
from filemanager.repositories import (
    JsonStore,
    PermissionRepository,
    UserRepository,
    open_stores,
)


def _record(path, roles=None, branches=None):
    return PermissionRecord(
        id="",
        folder_path=path,
        role_restrictions=roles or {},
        branch_restrictions=branches or {},
    )


def _deny(*actions):
    return ActionRestrictions(**{a: TriState.DENY for a in actions})


class TestPermissionRoundTrip:

    def test_upsert_then_find(self, tmp_path):
        repo = open_stores(str(tmp_path)).permissions
        saved = repo.upsert(_record(
            "reports",
            roles={"user": ActionRestrictions(view=TriState.ALLOW, upload=TriState.DENY)},
            branches={"b1": _deny("delete")},
        ))
        found = repo.find_by_path("reports")
        assert found is not None
        assert found.id == saved.id
        assert found.role_restrictions == saved.role_restrictions
        assert found.branch_restrictions == saved.branch_restrictions
        assert found.to_dict()["roleRestrictions"] == {"user": {"view": True, "upload": False}}

    def test_delete_then_find(self, tmp_path):
        repo = open_stores(str(tmp_path)).permissions
        repo.upsert(_record("reports"))
        assert repo.delete_by_path("reports") is True
        assert repo.find_by_path("reports") is None
        assert repo.delete_by_path("reports") is False

    def test_root_record(self, tmp_path):
        repo = open_stores(str(tmp_path)).permissions
        repo.upsert(_record("", roles={"user": _deny("upload")}))
        assert repo.find_by_path("").role_denies("user", "upload") is True

    def test_exact_match_only(self, tmp_path):
        repo = open_stores(str(tmp_path)).permissions
        repo.upsert(_record("reports"))
        assert repo.find_by_path("reports/2024") is None
        assert repo.find_by_path("report") is None

    def test_upsert_replaces_and_keeps_identity(self, tmp_path):
        repo = open_stores(str(tmp_path)).permissions
        first = repo.upsert(_record("reports", roles={"user": _deny("upload")}))
        second = repo.upsert(_record("reports", roles={"user": _deny("view")}))
        assert second.id == first.id
        assert second.created_at == first.created_at
        assert len(repo.list()) == 1
        found = repo.find_by_path("reports")
        assert found.role_denies("user", "view") is True
        assert found.role_denies("user", "upload") is False


class TestPermissionTreeMaintenance:

    def test_rename_moves_subtree(self, tmp_path):
        repo = open_stores(str(tmp_path)).permissions
        for path in ("docs", "docs/a", "docs/a/b", "docs2", "other"):
            repo.upsert(_record(path))
        assert repo.rename_path("docs", "archive") == 3
        paths = sorted(r.folder_path for r in repo.list())
        assert paths == ["archive", "archive/a", "archive/a/b", "docs2", "other"]

    def test_delete_subtree(self, tmp_path):
        repo = open_stores(str(tmp_path)).permissions
        for path in ("docs", "docs/a", "docs2"):
            repo.upsert(_record(path))
        assert repo.delete_subtree("docs") == 2
        assert [r.folder_path for r in repo.list()] == ["docs2"]

    def test_delete_subtree_never_clears_root(self, tmp_path):
        repo = open_stores(str(tmp_path)).permissions
        repo.upsert(_record(""))
        repo.upsert(_record("docs"))
        assert repo.delete_subtree("") == 0
        assert len(repo.list()) == 2


class TestPersistence:

    def test_survives_reload(self, tmp_path):
        stores = open_stores(str(tmp_path))
        stores.permissions.upsert(_record("reports", roles={"user": _deny("upload")}))
        stores.branches.add(Branch(id="", name="North"))

        reopened = open_stores(str(tmp_path))
        assert reopened.permissions.find_by_path("reports").role_denies("user", "upload")
        assert [b.name for b in reopened.branches.list()] == ["North"]

    def test_persisted_shape(self, tmp_path):
        stores = open_stores(str(tmp_path))
        stores.permissions.upsert(_record("reports", branches={"b1": _deny("view")}))
        with open(tmp_path / "permissions.json", encoding="utf-8") as f:
            rows = json.load(f)
        assert set(rows[0]) == {"id", "folderPath", "roleRestrictions", "branchRestrictions",
                                "createdAt", "updatedAt"}
        assert rows[0]["branchRestrictions"] == {"b1": {"view": False}}

    def test_reload_replaces_snapshot(self, tmp_path):
        stores = open_stores(str(tmp_path))
        stores.permissions.upsert(_record("reports"))
        with open(tmp_path / "permissions.json", "w", encoding="utf-8") as f:
            json.dump([], f)
        stores.reload()
        assert stores.permissions.find_by_path("reports") is None

    def test_failed_transaction_rolls_back(self, tmp_path):
        store = JsonStore(str(tmp_path / "x.json"), [])
        with pytest.raises(RuntimeError):
            with store.transaction() as rows:
                rows.append({"a": 1})
                raise RuntimeError("boom")
        assert store.data == []
        assert not os.path.exists(tmp_path / "x.json")


class TestUsers:

    def test_legacy_branch_id_folded(self, tmp_path):
        path = tmp_path / "users.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump([{"id": "7", "username": "old", "role": "user",
                        "branchId": "b1", "branchIds": ["b2"]}], f)
        repo = UserRepository(JsonStore(str(path), []))
        user = repo.find_by_id("7")
        assert user.branch_ids == frozenset({"b1", "b2"})
        assert "branchId" not in user.to_dict()

    def test_username_lookup_case_insensitive(self, tmp_path):
        repo = open_stores(str(tmp_path)).users
        repo.add(User(id="", username="Alice", role="user"))
        assert repo.find_by_username("alice").username == "Alice"

    def test_duplicate_username_rejected(self, tmp_path):
        repo = open_stores(str(tmp_path)).users
        repo.add(User(id="", username="alice", role="user"))
        with pytest.raises(ValueError):
            repo.add(User(id="", username="ALICE", role="admin"))

    def test_remove_branch_from_members(self, tmp_path):
        repo = open_stores(str(tmp_path)).users
        user = repo.add(User(id="", username="alice", role="user",
                             branch_ids=frozenset({"b1", "b2"})))
        repo.remove_branch("b1")
        assert repo.find_by_id(user.id).branch_ids == frozenset({"b2"})


class TestFileMetadataAndOrder:

    def test_metadata_follows_rename_and_delete(self, tmp_path):
        stores = open_stores(str(tmp_path))
        stores.file_metadata.record_upload("docs/a.pdf", "alice")
        stores.file_metadata.rename("docs", "archive")
        assert stores.file_metadata.get("docs/a.pdf") is None
        assert stores.file_metadata.get("archive/a.pdf")["uploadedBy"] == "alice"
        stores.file_metadata.delete_subtree("archive")
        assert stores.file_metadata.get("archive/a.pdf") is None

    def test_order_entry_rename_and_remove(self, tmp_path):
        stores = open_stores(str(tmp_path))
        stores.folder_order.set("", ["b", "a"])
        stores.folder_order.rename_entry("", "a", "z")
        assert stores.folder_order.get("") == ["b", "z"]
        stores.folder_order.remove_entry("", "b")
        assert stores.folder_order.get("") == ["z"]
