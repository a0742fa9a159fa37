"""File Manager - Domain Records

Immutable dataclasses for users, branches, companies and folder permission
records, plus their JSON (camelCase) representations. Records are loaded from
the JSON stores once per lookup and never mutated; updates build a new record.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


ROLE_SYSTEM_ADMIN = "systemAdmin"
ROLE_ADMIN = "admin"
ROLE_USER = "user"

# Highest privilege first
ROLES = (ROLE_SYSTEM_ADMIN, ROLE_ADMIN, ROLE_USER)
PRIVILEGED_ROLES = frozenset({ROLE_SYSTEM_ADMIN, ROLE_ADMIN})

ACTIONS = ("view", "upload", "delete", "rename")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def validate_action(action: str) -> str:
    if action not in ACTIONS:
        raise ValueError(f"Unknown action '{action}' (expected one of: {', '.join(ACTIONS)})")
    return action


class TriState(Enum):
    """Per-action restriction value. Only DENY restricts anything."""
    ALLOW = "allow"
    DENY = "deny"
    UNSET = "unset"

    @classmethod
    def from_json(cls, value) -> "TriState":
        # bool is checked by identity: 0/1 are not accepted as flags
        if value is True:
            return cls.ALLOW
        if value is False:
            return cls.DENY
        if value is None:
            return cls.UNSET
        raise ValueError(f"Restriction value must be true, false or null, got {value!r}")

    def to_json(self) -> Optional[bool]:
        if self is TriState.ALLOW:
            return True
        if self is TriState.DENY:
            return False
        return None


@dataclass(frozen=True)
class ActionRestrictions:
    """view/upload/delete/rename flags for one role or one branch."""
    view: TriState = TriState.UNSET
    upload: TriState = TriState.UNSET
    delete: TriState = TriState.UNSET
    rename: TriState = TriState.UNSET

    def get(self, action: str) -> TriState:
        return getattr(self, validate_action(action))

    def denies(self, action: str) -> bool:
        return self.get(action) is TriState.DENY

    @classmethod
    def from_dict(cls, data) -> "ActionRestrictions":
        """Parse a persisted flag map. Unknown keys are ignored; bad values raise ValueError."""
        if not isinstance(data, dict):
            raise ValueError(f"Restriction entry must be an object, got {type(data).__name__}")
        return cls(**{action: TriState.from_json(data.get(action)) for action in ACTIONS})

    def to_dict(self) -> dict:
        """Only explicitly configured actions are written; absence means unset."""
        return {
            action: self.get(action).to_json()
            for action in ACTIONS
            if self.get(action) is not TriState.UNSET
        }


def _parse_restriction_map(data) -> dict[str, ActionRestrictions]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Restriction map must be an object, got {type(data).__name__}")
    return {str(key): ActionRestrictions.from_dict(value) for key, value in data.items()}


def _id_list(data: dict, key: str) -> list:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise ValueError(f"{key} must be a list, got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class User:
    id: str
    username: str
    role: str
    branch_ids: frozenset = frozenset()
    company_ids: frozenset = frozenset()
    password_hash: str = ""
    created_at: Optional[str] = None

    @property
    def is_system_admin(self) -> bool:
        return self.role == ROLE_SYSTEM_ADMIN

    @property
    def is_privileged(self) -> bool:
        """systemAdmin or admin: bypasses folder-level restrictions."""
        return self.role in PRIVILEGED_ROLES

    @classmethod
    def from_dict(cls, data: dict) -> "User":
        branch_ids = set(_id_list(data, "branchIds"))
        # Older user files carry a single branchId next to (or instead of) branchIds
        if data.get("branchId"):
            branch_ids.add(data["branchId"])
        return cls(
            id=str(data["id"]),
            username=data["username"],
            role=data.get("role", ROLE_USER),
            branch_ids=frozenset(str(b) for b in branch_ids),
            company_ids=frozenset(str(c) for c in _id_list(data, "companyIds")),
            password_hash=data.get("passwordHash", ""),
            created_at=data.get("createdAt"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "passwordHash": self.password_hash,
            "role": self.role,
            "branchIds": sorted(self.branch_ids),
            "companyIds": sorted(self.company_ids),
            "createdAt": self.created_at,
        }

    def to_public_dict(self) -> dict:
        data = self.to_dict()
        data.pop("passwordHash")
        return data


@dataclass(frozen=True)
class Branch:
    id: str
    name: str
    location: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Branch":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            location=data.get("location"),
            created_at=data.get("createdAt"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class Company:
    id: str
    name: str
    logo: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Company":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            logo=data.get("logo"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "logo": self.logo,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class PermissionRecord:
    """Restriction configuration for exactly one folder path ("" is the root)."""
    id: str
    folder_path: str
    role_restrictions: dict = field(default_factory=dict)    # role -> ActionRestrictions
    branch_restrictions: dict = field(default_factory=dict)  # branchId -> ActionRestrictions
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def role_denies(self, role: str, action: str) -> bool:
        restrictions = self.role_restrictions.get(role)
        return restrictions is not None and restrictions.denies(action)

    def with_path(self, folder_path: str) -> "PermissionRecord":
        return replace(self, folder_path=folder_path, updated_at=utc_now())

    @classmethod
    def from_dict(cls, data: dict) -> "PermissionRecord":
        """Raises ValueError (or KeyError) if the stored maps cannot be interpreted."""
        return cls(
            id=str(data["id"]),
            folder_path=data.get("folderPath", ""),
            role_restrictions=_parse_restriction_map(data.get("roleRestrictions")),
            branch_restrictions=_parse_restriction_map(data.get("branchRestrictions")),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "folderPath": self.folder_path,
            "roleRestrictions": {k: v.to_dict() for k, v in self.role_restrictions.items()},
            "branchRestrictions": {k: v.to_dict() for k, v in self.branch_restrictions.items()},
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


# Applied to every non-root folder an admin creates
DEFAULT_FOLDER_ROLE_RESTRICTIONS = {
    ROLE_USER: ActionRestrictions(
        view=TriState.ALLOW,
        upload=TriState.DENY,
        delete=TriState.DENY,
        rename=TriState.DENY,
    ),
}
