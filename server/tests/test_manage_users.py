"""Tests for the manage_users.py CLI against a temporary DATA_DIR."""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "scripts"))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import manage_users
from filemanager.auth import verify_password
from filemanager.models import Branch
from filemanager.repositories import open_stores


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    return str(tmp_path)


class TestManageUsers:

    def test_create_and_list(self, data_dir, capsys):
        manage_users.main(["create-user", "--username", "alice", "--password", "pw123", "--role", "admin"])
        manage_users.main(["list-users"])
        out = capsys.readouterr().out
        assert "Created user 'alice' (admin)" in out
        assert "alice" in out.splitlines()[-1]

        user = open_stores(data_dir).users.find_by_username("alice")
        assert user.role == "admin"
        assert verify_password("pw123", user.password_hash)

    def test_duplicate_exits(self, data_dir):
        manage_users.main(["create-user", "--username", "alice", "--password", "pw123"])
        with pytest.raises(SystemExit):
            manage_users.main(["create-user", "--username", "alice", "--password", "pw123"])

    def test_set_role(self, data_dir):
        manage_users.main(["create-user", "--username", "alice", "--password", "pw123"])
        manage_users.main(["set-role", "--username", "alice", "--role", "systemAdmin"])
        assert open_stores(data_dir).users.find_by_username("alice").is_system_admin

    def test_add_branch_requires_existing_branch(self, data_dir):
        manage_users.main(["create-user", "--username", "alice", "--password", "pw123"])
        with pytest.raises(SystemExit):
            manage_users.main(["add-branch", "--username", "alice", "--branch", "nope"])

        branch = open_stores(data_dir).branches.add(Branch(id="", name="North"))
        manage_users.main(["add-branch", "--username", "alice", "--branch", branch.id])
        assert open_stores(data_dir).users.find_by_username("alice").branch_ids == {branch.id}

    def test_unknown_user_exits(self, data_dir):
        with pytest.raises(SystemExit):
            manage_users.main(["reset-password", "--username", "ghost", "--password", "x"])
