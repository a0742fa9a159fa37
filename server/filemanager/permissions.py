"""File Manager - Permission Decision Engine

Decides whether a user may view/upload/delete/rename inside a folder.

Resolution order for one (user, path, action):
  1. unknown user                      -> deny
  2. companyId given, not systemAdmin  -> must be a member of that company
  3. systemAdmin / admin               -> allow
  4. no record for the exact path      -> allow
  5. role restriction denies action    -> deny
  6. branches with an explicit entry   -> allow if ANY of them does not deny
  7.                                   -> allow

Only 'view' is inherited: a folder is visible only if view passes on the
folder and on every ancestor. Other actions are checked on the exact path.
"""

from typing import Optional, Protocol

from .logging_config import get_logger
from .models import PermissionRecord, User, validate_action
from .paths import view_check_paths

logger = get_logger(__name__)


class UserLookup(Protocol):
    def find_by_id(self, user_id: str) -> Optional[User]: ...


class PermissionLookup(Protocol):
    def find_by_path(self, folder_path: str) -> Optional[PermissionRecord]: ...


def _branches_allow(user: User, record: PermissionRecord, action: str) -> bool:
    """OR across the user's branches that carry an explicit entry on this record.

    Branches without an entry do not vote. With no voting branch the check passes.
    """
    voting = [record.branch_restrictions[b] for b in sorted(user.branch_ids)
              if b in record.branch_restrictions]
    if not voting:
        return True
    return any(not restrictions.denies(action) for restrictions in voting)


class PermissionEngine:
    """Stateless decisions over injected user and permission lookups."""

    def __init__(self, users: UserLookup, permissions: PermissionLookup):
        self.users = users
        self.permissions = permissions

    def can_perform(self, user_id: str, folder_path: str, action: str,
                    company_id: Optional[str] = None) -> bool:
        """Decide one action on one exact folder path. Never raises for a denial.

        Raises ValueError only for an action outside view/upload/delete/rename.
        """
        validate_action(action)

        try:
            user = self.users.find_by_id(user_id) if user_id else None
        except ValueError as e:
            logger.error("Malformed user record - denying: %s", e,
                         extra={"user_id": user_id, "path": folder_path, "action": action})
            return False
        if user is None:
            logger.warning("Permission check for unknown user - denying",
                           extra={"user_id": user_id, "path": folder_path, "action": action})
            return False

        if company_id is not None and not user.is_system_admin:
            if company_id not in user.company_ids:
                return False

        if user.is_privileged:
            return True

        try:
            record = self.permissions.find_by_path(folder_path)
        except ValueError as e:
            logger.error("Malformed permission record - denying: %s", e,
                         extra={"path": folder_path, "action": action})
            return False

        if record is None:
            return True

        if record.role_denies(user.role, action):
            return False

        return _branches_allow(user, record, action)

    def can_view(self, user_id: str, folder_path: str,
                 company_id: Optional[str] = None) -> bool:
        """View on folder_path AND on every ancestor of it."""
        return all(
            self.can_perform(user_id, path, "view", company_id)
            for path in view_check_paths(folder_path)
        )
