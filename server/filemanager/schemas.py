"""Input validation schemas for the File Manager API."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .models import ROLES, ActionRestrictions
from .paths import normalize_path, validate_entry_name
from .youtube import extract_video_id


# === Shared Validators ===

def validate_role(value: str) -> str:
    if value not in ROLES:
        raise ValueError(f"role must be one of: {', '.join(ROLES)}")
    return value


def validate_folder_path(value: Optional[str]) -> str:
    return normalize_path(value)


def clean_ids(values: list[str]) -> list[str]:
    return sorted({v.strip() for v in values if v and v.strip()})


# === Auth ===

class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=200)


# === Users ===

class UserCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=4, max_length=200)
    role: str = Field("user", description="One of: systemAdmin, admin, user")
    branchIds: list[str] = Field(default_factory=list)
    companyIds: list[str] = Field(default_factory=list)

    @field_validator("username")
    @classmethod
    def strip_username(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("username must not be blank")
        return v

    @field_validator("role")
    @classmethod
    def check_role(cls, v):
        return validate_role(v)

    @field_validator("branchIds", "companyIds")
    @classmethod
    def normalise_ids(cls, v):
        return clean_ids(v)


class UserUpdate(BaseModel):
    password: Optional[str] = Field(None, min_length=4, max_length=200)
    role: Optional[str] = None
    branchIds: Optional[list[str]] = None
    companyIds: Optional[list[str]] = None

    @field_validator("role")
    @classmethod
    def check_role(cls, v):
        return validate_role(v) if v is not None else v

    @field_validator("branchIds", "companyIds")
    @classmethod
    def normalise_ids(cls, v):
        return clean_ids(v) if v is not None else v


# === Branches & Companies ===

class BranchCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    location: Optional[str] = Field(None, max_length=255)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class CompanyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    logo: Optional[str] = Field(None, max_length=1000)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class CompanyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    logo: Optional[str] = Field(None, max_length=1000)


# === Folders & Files ===

class FolderCreate(BaseModel):
    folderName: str = Field(..., min_length=1, max_length=255)
    folderPath: Optional[str] = Field("", max_length=2000)

    @field_validator("folderName")
    @classmethod
    def check_name(cls, v):
        return validate_entry_name(v)

    @field_validator("folderPath")
    @classmethod
    def check_path(cls, v):
        return validate_folder_path(v)


class RenameRequest(BaseModel):
    newName: str = Field(..., min_length=1, max_length=255)

    @field_validator("newName")
    @classmethod
    def check_name(cls, v):
        return validate_entry_name(v)


class FolderOrderUpdate(BaseModel):
    folderPath: Optional[str] = Field("", max_length=2000)
    order: list[str] = Field(..., max_length=10000)

    @field_validator("folderPath")
    @classmethod
    def check_path(cls, v):
        return validate_folder_path(v)


# === Permissions ===

class PermissionUpsert(BaseModel):
    """roleRestrictions / branchRestrictions: key -> {view, upload, delete, rename}.

    Each flag is true (allow), false (deny) or absent/null (not restricted).
    """
    folderPath: Optional[str] = Field("", max_length=2000)
    roleRestrictions: dict[str, dict[str, Optional[bool]]] = Field(default_factory=dict)
    branchRestrictions: dict[str, dict[str, Optional[bool]]] = Field(default_factory=dict)

    @field_validator("folderPath")
    @classmethod
    def check_path(cls, v):
        return validate_folder_path(v)

    @field_validator("roleRestrictions")
    @classmethod
    def check_roles(cls, v):
        for role in v:
            validate_role(role)
        return v

    def parsed_role_restrictions(self) -> dict[str, ActionRestrictions]:
        return {k: ActionRestrictions.from_dict(v) for k, v in self.roleRestrictions.items()}

    def parsed_branch_restrictions(self) -> dict[str, ActionRestrictions]:
        return {k: ActionRestrictions.from_dict(v) for k, v in self.branchRestrictions.items()}


# === YouTube links ===

class YouTubeCreate(BaseModel):
    url: str = Field(..., min_length=1, max_length=2000)
    title: str = Field(..., min_length=1, max_length=255)
    folderPath: Optional[str] = Field("", max_length=2000)

    @field_validator("url")
    @classmethod
    def check_url(cls, v):
        v = v.strip()
        if extract_video_id(v) is None:
            raise ValueError("Invalid YouTube URL")
        return v

    @field_validator("title")
    @classmethod
    def strip_title(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v

    @field_validator("folderPath")
    @classmethod
    def check_path(cls, v):
        return validate_folder_path(v)
