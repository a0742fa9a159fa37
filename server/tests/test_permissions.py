"""Tests for the permission decision engine.

Covers:
- systemAdmin: always allowed, any path/action/company
- admin: allowed iff the company check (when given) passes
- user: record lookup, role restrictions, branch restrictions (OR semantics)
- View inheritance down the folder tree; other actions not inherited
- Unknown actions are programming errors (ValueError)
"""
import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from filemanager.models import PermissionRecord, User, ACTIONS
from filemanager.permissions import PermissionEngine


# --- Fixtures ---

class _Users:
    def __init__(self, *users):
        self._by_id = {u.id: u for u in users}

    def find_by_id(self, user_id):
        return self._by_id.get(user_id)


class _Permissions:
    def __init__(self, *records):
        self._by_path = {r.folder_path: r for r in records}

    def find_by_path(self, folder_path):
        return self._by_path.get(folder_path)


def _make_user(user_id="u1", role="user", branches=(), companies=()) -> User:
    return User(
        id=user_id,
        username=user_id,
        role=role,
        branch_ids=frozenset(branches),
        company_ids=frozenset(companies),
    )


def _record(path, roles=None, branches=None) -> PermissionRecord:
    return PermissionRecord.from_dict({
        "id": f"rec-{path or 'root'}",
        "folderPath": path,
        "roleRestrictions": roles or {},
        "branchRestrictions": branches or {},
    })


def _engine(users, records=()) -> PermissionEngine:
    return PermissionEngine(_Users(*users), _Permissions(*records))


PATHS = ["", "reports", "reports/2024", "a/b/c"]
COMPANIES = [None, "c1", "c2"]


# --- Privileged roles ---

class TestSystemAdmin:

    def test_always_allowed(self):
        admin = _make_user("sa", role="systemAdmin")
        deny_all = {"user": {a: False for a in ACTIONS}, "systemAdmin": {a: False for a in ACTIONS}}
        engine = _engine([admin], [_record(p, roles=deny_all) for p in PATHS])
        for path in PATHS:
            for action in ACTIONS:
                for company_id in COMPANIES:
                    assert engine.can_perform("sa", path, action, company_id) is True

    def test_company_membership_not_required(self):
        admin = _make_user("sa", role="systemAdmin", companies=())
        engine = _engine([admin])
        assert engine.can_view("sa", "x/y", company_id="not-a-member") is True


class TestAdmin:

    def test_ignores_folder_restrictions(self):
        admin = _make_user("ad", role="admin")
        deny_all = {"admin": {a: False for a in ACTIONS}, "user": {a: False for a in ACTIONS}}
        engine = _engine([admin], [_record(p, roles=deny_all) for p in PATHS])
        for path in PATHS:
            for action in ACTIONS:
                assert engine.can_perform("ad", path, action) is True

    def test_allowed_iff_company_member(self):
        admin = _make_user("ad", role="admin", companies=["c1"])
        engine = _engine([admin])
        for path in PATHS:
            for action in ACTIONS:
                assert engine.can_perform("ad", path, action, "c1") is True
                assert engine.can_perform("ad", path, action, "c2") is False
                assert engine.can_perform("ad", path, action) is True


# --- Ordinary users: single path ---

class TestUserDecisions:

    def test_no_record_allows(self):
        engine = _engine([_make_user()])
        for action in ACTIONS:
            assert engine.can_perform("u1", "anything", action) is True

    def test_unconfigured_root_is_viewable(self):
        engine = _engine([_make_user()])
        assert engine.can_view("u1", "") is True

    def test_role_restriction_denies(self):
        engine = _engine([_make_user()], [_record("docs", roles={"user": {"upload": False}})])
        assert engine.can_perform("u1", "docs", "upload") is False
        assert engine.can_perform("u1", "docs", "view") is True
        assert engine.can_perform("u1", "docs", "delete") is True

    def test_explicit_true_and_null_do_not_deny(self):
        engine = _engine([_make_user()],
                         [_record("docs", roles={"user": {"upload": True, "delete": None}})])
        assert engine.can_perform("u1", "docs", "upload") is True
        assert engine.can_perform("u1", "docs", "delete") is True

    def test_restriction_for_other_role_ignored(self):
        engine = _engine([_make_user()], [_record("docs", roles={"admin": {"view": False}})])
        assert engine.can_perform("u1", "docs", "view") is True

    def test_default_folder_record(self):
        """Folder created by an admin: users may view but not upload/delete/rename."""
        default = {"user": {"view": True, "upload": False, "delete": False, "rename": False}}
        engine = _engine([_make_user()], [_record("reports", roles=default)])
        assert engine.can_perform("u1", "reports", "upload") is False
        assert engine.can_perform("u1", "reports", "view") is True
        assert engine.can_perform("u1", "reports", "delete") is False
        assert engine.can_perform("u1", "reports", "rename") is False

    def test_role_gate_beats_branch_allow(self):
        user = _make_user(branches=["b1"])
        engine = _engine([user], [_record(
            "docs",
            roles={"user": {"upload": False}},
            branches={"b1": {"upload": True}},
        )])
        assert engine.can_perform("u1", "docs", "upload") is False

    def test_lookup_is_exact_not_prefix(self):
        engine = _engine([_make_user()], [_record("docs", roles={"user": {"upload": False}})])
        assert engine.can_perform("u1", "docs2", "upload") is True
        assert engine.can_perform("u1", "doc", "upload") is True


# --- Branch semantics ---

class TestBranchOrSemantics:
    """Branch restrictions are OR'ed across the user's branches that carry an entry.

    This is unusual (most systems AND required restrictions). It is kept on
    purpose; changing it must be a deliberate edit to these tests.
    """

    def test_unrestricted_branch_keeps_access(self):
        user = _make_user(branches=["B1", "B2"])
        engine = _engine([user], [_record("P", branches={"B1": {"upload": False}})])
        assert engine.can_perform("u1", "P", "upload") is True

    def test_all_restricted_branches_deny(self):
        user = _make_user(branches=["B1", "B2"])
        engine = _engine([user], [_record(
            "P", branches={"B1": {"upload": False}, "B2": {"upload": False}},
        )])
        assert engine.can_perform("u1", "P", "upload") is False

    def test_one_allowing_branch_is_enough(self):
        user = _make_user(branches=["B1", "B2"])
        engine = _engine([user], [_record(
            "P", branches={"B1": {"upload": False}, "B2": {"upload": True}},
        )])
        assert engine.can_perform("u1", "P", "upload") is True

    def test_entry_without_flag_for_action_allows(self):
        user = _make_user(branches=["B1"])
        engine = _engine([user], [_record("P", branches={"B1": {"view": False}})])
        assert engine.can_perform("u1", "P", "upload") is True
        assert engine.can_perform("u1", "P", "view") is False

    def test_single_restricted_branch_denies(self):
        user = _make_user(branches=["B1"])
        engine = _engine([user], [_record("P", branches={"B1": {"delete": False}})])
        assert engine.can_perform("u1", "P", "delete") is False

    def test_user_without_branches_unaffected(self):
        user = _make_user(branches=[])
        engine = _engine([user], [_record("P", branches={"B1": {"upload": False}})])
        assert engine.can_perform("u1", "P", "upload") is True

    def test_branch_entries_for_other_branches_ignored(self):
        user = _make_user(branches=["B3"])
        engine = _engine([user], [_record(
            "P", branches={"B1": {"upload": False}, "B2": {"upload": False}},
        )])
        assert engine.can_perform("u1", "P", "upload") is True


# --- Inheritance ---

class TestViewInheritance:

    def test_parent_view_denial_hides_descendants(self):
        engine = _engine([_make_user()], [
            _record("P", roles={"user": {"view": False}}),
            _record("P/child", roles={"user": {"view": True}}),
        ])
        assert engine.can_view("u1", "P") is False
        assert engine.can_view("u1", "P/child") is False
        assert engine.can_view("u1", "P/child/grandchild") is False

    def test_sibling_unaffected(self):
        engine = _engine([_make_user()], [_record("P", roles={"user": {"view": False}})])
        assert engine.can_view("u1", "Q") is True
        assert engine.can_view("u1", "PQ/child") is True

    def test_root_view_denial_hides_everything(self):
        engine = _engine([_make_user()], [_record("", roles={"user": {"view": False}})])
        # Root is not among ancestor paths: only the root itself is affected
        assert engine.can_view("u1", "") is False
        assert engine.can_view("u1", "docs") is True

    def test_branch_view_denial_inherits(self):
        user = _make_user(branches=["B1"])
        engine = _engine([user], [_record("P", branches={"B1": {"view": False}})])
        assert engine.can_view("u1", "P/child") is False

    def test_upload_not_inherited(self):
        engine = _engine([_make_user()], [_record("P", roles={"user": {"upload": False}})])
        assert engine.can_perform("u1", "P", "upload") is False
        assert engine.can_perform("u1", "P/child", "upload") is True

    @pytest.mark.parametrize("action", ["upload", "delete", "rename"])
    def test_non_view_actions_not_inherited(self, action):
        engine = _engine([_make_user()], [_record("P", roles={"user": {action: False}})])
        assert engine.can_perform("u1", "P/child", action) is True

    def test_double_separator_path(self):
        engine = _engine([_make_user()], [_record("a", roles={"user": {"view": False}})])
        assert engine.can_view("u1", "a//b") is False


# --- Company scope for users ---

class TestUserCompanyScope:

    def test_non_member_denied_before_records(self):
        user = _make_user(companies=["c1"])
        engine = _engine([user])
        assert engine.can_perform("u1", "docs", "view", "c2") is False
        assert engine.can_perform("u1", "docs", "view", "c1") is True

    def test_company_check_skipped_without_company(self):
        user = _make_user(companies=[])
        engine = _engine([user])
        assert engine.can_perform("u1", "docs", "view") is True


# --- Input errors ---

class TestInvalidAction:

    def test_unknown_action_raises(self):
        engine = _engine([_make_user()])
        with pytest.raises(ValueError):
            engine.can_perform("u1", "docs", "download")

    def test_unknown_action_raises_even_for_unknown_user(self):
        engine = _engine([])
        with pytest.raises(ValueError):
            engine.can_perform("ghost", "docs", "chmod")
