"""File Manager - Admin API

User, branch and company management plus folder permission records.
Users/branches/permissions: admin or systemAdmin; admins only see and assign
users and companies they share. Companies and logos: systemAdmin only (read
access is scoped to the caller's own companies).
"""

import os
from dataclasses import replace

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from starlette.responses import FileResponse

from .audit import log_audit
from .auth import hash_password
from .dependencies import AppState, get_app_state, get_current_user, require_role
from .guards import require_company_access
from .logging_config import get_logger
from .models import (
    ROLE_ADMIN,
    ROLE_SYSTEM_ADMIN,
    Branch,
    Company,
    PermissionRecord,
    User,
    utc_now,
)
from .paths import ROOT, base_name, normalize_path, validate_entry_name
from .schemas import (
    BranchCreate,
    CompanyCreate,
    CompanyUpdate,
    PermissionUpsert,
    UserCreate,
    UserUpdate,
)
from .storage import UploadTooLarge

logger = get_logger(__name__)

admin_router = APIRouter(tags=["admin"])

LOGO_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp"})
LOGO_MAX_BYTES = 5 * 1024 * 1024


def ok(data=None, message: str = None) -> dict:
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


# ==========================================================================
# Internal helpers
# ==========================================================================

def _check_role_assignment(actor: User, target_role: str, existing: User = None) -> None:
    """Only a systemAdmin may create, modify or grant systemAdmin accounts."""
    if actor.is_system_admin:
        return
    if target_role == ROLE_SYSTEM_ADMIN or (existing and existing.is_system_admin):
        raise HTTPException(403, "Only a systemAdmin can manage systemAdmin accounts")


def _visible_to(actor: User, target: User) -> bool:
    """systemAdmin sees everyone; others see users sharing a company or in none yet."""
    if actor.is_system_admin:
        return True
    return not target.company_ids or bool(target.company_ids & actor.company_ids)


def _check_company_assignment(actor: User, company_ids, existing: User = None) -> None:
    """Non-systemAdmins may only add or remove companies they belong to themselves."""
    if actor.is_system_admin or company_ids is None:
        return
    current = existing.company_ids if existing else frozenset()
    if frozenset(company_ids) - actor.company_ids != current - actor.company_ids:
        raise HTTPException(403, "You can only assign companies you belong to")


def _check_self_update(actor: User, existing: User, body) -> None:
    """An admin cannot change their own role or memberships."""
    if actor.is_system_admin or existing.id != actor.id:
        return
    if (
        (body.role is not None and body.role != existing.role)
        or (body.branchIds is not None and frozenset(body.branchIds) != existing.branch_ids)
        or (body.companyIds is not None and frozenset(body.companyIds) != existing.company_ids)
    ):
        raise HTTPException(403, "You cannot change your own role or memberships")


def _check_memberships_exist(state: AppState, branch_ids, company_ids) -> None:
    for branch_id in branch_ids or []:
        if state.stores.branches.find_by_id(branch_id) is None:
            raise HTTPException(404, f"Branch '{branch_id}' not found")
    for company_id in company_ids or []:
        if state.stores.companies.find_by_id(company_id) is None:
            raise HTTPException(404, f"Company '{company_id}' not found")


def _permission_path(folder_path: str) -> str:
    try:
        return normalize_path(folder_path)
    except ValueError as e:
        raise HTTPException(400, str(e))


# ==========================================================================
# Users
# ==========================================================================

@admin_router.get("/users")
def list_users(
    user: User = Depends(require_role(ROLE_ADMIN)),
    state: AppState = Depends(get_app_state),
):
    return ok([u.to_public_dict() for u in state.stores.users.list() if _visible_to(user, u)])


@admin_router.post("/users")
def create_user(
    body: UserCreate,
    user: User = Depends(require_role(ROLE_ADMIN)),
    state: AppState = Depends(get_app_state),
):
    _check_role_assignment(user, body.role)
    _check_company_assignment(user, body.companyIds)
    _check_memberships_exist(state, body.branchIds, body.companyIds)
    try:
        created = state.stores.users.add(User(
            id="",
            username=body.username,
            role=body.role,
            branch_ids=frozenset(body.branchIds),
            company_ids=frozenset(body.companyIds),
            password_hash=hash_password(body.password),
        ))
    except ValueError as e:
        raise HTTPException(409, str(e))

    logger.info("User created", extra={"by": user.username, "username": created.username,
                                       "role": created.role})
    log_audit(state.audit, user, "create", "user", created.id, created.username)
    return ok(created.to_public_dict(), "User created")


@admin_router.put("/users/{user_id}")
def update_user(
    user_id: str,
    body: UserUpdate,
    user: User = Depends(require_role(ROLE_ADMIN)),
    state: AppState = Depends(get_app_state),
):
    existing = state.stores.users.find_by_id(user_id)
    if existing is None or not _visible_to(user, existing):
        raise HTTPException(404, "User not found")
    _check_self_update(user, existing, body)
    _check_role_assignment(user, body.role or existing.role, existing)
    _check_company_assignment(user, body.companyIds, existing)
    _check_memberships_exist(state, body.branchIds, body.companyIds)

    updated = existing
    if body.role is not None:
        updated = replace(updated, role=body.role)
    if body.branchIds is not None:
        updated = replace(updated, branch_ids=frozenset(body.branchIds))
    if body.companyIds is not None:
        updated = replace(updated, company_ids=frozenset(body.companyIds))
    if body.password:
        updated = replace(updated, password_hash=hash_password(body.password))

    state.stores.users.update(updated)
    log_audit(state.audit, user, "update", "user", updated.id, updated.username)
    return ok(updated.to_public_dict(), "User updated")


@admin_router.delete("/users/{user_id}")
def delete_user(
    user_id: str,
    user: User = Depends(require_role(ROLE_ADMIN)),
    state: AppState = Depends(get_app_state),
):
    existing = state.stores.users.find_by_id(user_id)
    if existing is None or not _visible_to(user, existing):
        raise HTTPException(404, "User not found")
    if existing.id == user.id:
        raise HTTPException(400, "You cannot delete your own account")
    _check_role_assignment(user, existing.role, existing)

    state.stores.users.delete(user_id)
    log_audit(state.audit, user, "delete", "user", user_id, existing.username)
    return ok(message="User deleted")


# ==========================================================================
# Branches
# ==========================================================================

@admin_router.get("/branches")
def list_branches(
    user: User = Depends(get_current_user),
    state: AppState = Depends(get_app_state),
):
    return ok([b.to_dict() for b in state.stores.branches.list()])


@admin_router.post("/branches")
def create_branch(
    body: BranchCreate,
    user: User = Depends(require_role(ROLE_ADMIN)),
    state: AppState = Depends(get_app_state),
):
    branch = state.stores.branches.add(Branch(id="", name=body.name, location=body.location))
    log_audit(state.audit, user, "create", "branch", branch.id, branch.name)
    return ok(branch.to_dict(), "Branch created")


@admin_router.delete("/branches/{branch_id}")
def delete_branch(
    branch_id: str,
    user: User = Depends(require_role(ROLE_ADMIN)),
    state: AppState = Depends(get_app_state),
):
    if not state.stores.branches.delete(branch_id):
        raise HTTPException(404, "Branch not found")
    state.stores.users.remove_branch(branch_id)
    log_audit(state.audit, user, "delete", "branch", branch_id)
    return ok(message="Branch deleted")


# ==========================================================================
# Companies
# ==========================================================================

@admin_router.get("/companies")
def list_companies(
    user: User = Depends(get_current_user),
    state: AppState = Depends(get_app_state),
):
    """systemAdmin sees every company; others see their memberships."""
    companies = state.stores.companies.list()
    if not user.is_system_admin:
        companies = [c for c in companies if c.id in user.company_ids]
    return ok([c.to_dict() for c in companies])


@admin_router.post("/companies/logo")
async def upload_company_logo(
    logo: UploadFile = File(...),
    user: User = Depends(require_role(ROLE_SYSTEM_ADMIN)),
    state: AppState = Depends(get_app_state),
):
    """Store an image and return the URL to put in a company's `logo` field."""
    try:
        original_name = validate_entry_name(base_name((logo.filename or "").replace("\\", "/")))
    except ValueError as e:
        raise HTTPException(400, str(e))
    if os.path.splitext(original_name)[1].lower() not in LOGO_EXTENSIONS:
        raise HTTPException(400, f"Logo must be one of: {', '.join(sorted(LOGO_EXTENSIONS))}")

    try:
        rel_path = state.logos.save_upload(ROOT, original_name, logo.file, LOGO_MAX_BYTES)
    except UploadTooLarge:
        raise HTTPException(413, "Logo exceeds 5 MB limit")
    finally:
        await logo.close()

    logo_url = f"/companies/logos/{rel_path}"
    log_audit(state.audit, user, "upload", "logo", rel_path, original_name)
    return ok({"logoUrl": logo_url, "filename": rel_path}, "Logo uploaded")


@admin_router.get("/companies/logos/{filename}")
def get_company_logo(
    filename: str,
    user: User = Depends(get_current_user),
    state: AppState = Depends(get_app_state),
):
    try:
        filename = validate_entry_name(filename)
    except ValueError as e:
        raise HTTPException(400, str(e))
    if not state.logos.is_file(filename):
        raise HTTPException(404, "Logo not found")
    return FileResponse(state.logos.resolve(filename), content_disposition_type="inline")


@admin_router.get("/companies/{company_id}")
def get_company(
    company_id: str,
    user: User = Depends(get_current_user),
    state: AppState = Depends(get_app_state),
):
    company = require_company_access(user, company_id, state.stores.companies)
    return ok(company.to_dict())


@admin_router.post("/companies")
def create_company(
    body: CompanyCreate,
    user: User = Depends(require_role(ROLE_SYSTEM_ADMIN)),
    state: AppState = Depends(get_app_state),
):
    now = utc_now()
    company = state.stores.companies.add(Company(
        id="", name=body.name, logo=body.logo, created_at=now, updated_at=now,
    ))
    log_audit(state.audit, user, "create", "company", company.id, company.name)
    return ok(company.to_dict(), "Company created")


@admin_router.put("/companies/{company_id}")
def update_company(
    company_id: str,
    body: CompanyUpdate,
    user: User = Depends(require_role(ROLE_SYSTEM_ADMIN)),
    state: AppState = Depends(get_app_state),
):
    company = state.stores.companies.find_by_id(company_id)
    if company is None:
        raise HTTPException(404, "Company not found")
    company = replace(
        company,
        name=body.name.strip() if body.name else company.name,
        logo=body.logo if body.logo is not None else company.logo,
        updated_at=utc_now(),
    )
    state.stores.companies.update(company)
    log_audit(state.audit, user, "update", "company", company.id, company.name)
    return ok(company.to_dict(), "Company updated")


@admin_router.delete("/companies/{company_id}")
def delete_company(
    company_id: str,
    user: User = Depends(require_role(ROLE_SYSTEM_ADMIN)),
    state: AppState = Depends(get_app_state),
):
    if not state.stores.companies.delete(company_id):
        raise HTTPException(404, "Company not found")
    state.stores.users.remove_company(company_id)
    log_audit(state.audit, user, "delete", "company", company_id)
    return ok(message="Company deleted")


# ==========================================================================
# Permission records
# ==========================================================================

@admin_router.get("/permissions")
def list_permissions(
    user: User = Depends(require_role(ROLE_ADMIN)),
    state: AppState = Depends(get_app_state),
):
    return ok([r.to_dict() for r in state.stores.permissions.list()])


@admin_router.get("/permissions/{folder_path:path}")
def get_permission(
    folder_path: str,
    user: User = Depends(require_role(ROLE_ADMIN)),
    state: AppState = Depends(get_app_state),
):
    """'__root__' addresses the root folder."""
    path = _permission_path(folder_path)
    try:
        record = state.stores.permissions.find_by_path(path)
    except ValueError as e:
        logger.error("Malformed permission record: %s", e, extra={"path": path})
        raise HTTPException(500, "Stored permission record is malformed")
    if record is None:
        raise HTTPException(404, f"No permission record for '{path or '/'}'")
    return ok(record.to_dict())


@admin_router.post("/permissions")
def upsert_permission(
    body: PermissionUpsert,
    user: User = Depends(require_role(ROLE_ADMIN)),
    state: AppState = Depends(get_app_state),
):
    try:
        role_restrictions = body.parsed_role_restrictions()
        branch_restrictions = body.parsed_branch_restrictions()
    except ValueError as e:
        raise HTTPException(400, str(e))

    record = state.stores.permissions.upsert(PermissionRecord(
        id="",
        folder_path=body.folderPath,
        role_restrictions=role_restrictions,
        branch_restrictions=branch_restrictions,
    ))
    log_audit(state.audit, user, "update", "permission", record.folder_path)
    return ok(record.to_dict(), "Permissions saved")


@admin_router.delete("/permissions/{folder_path:path}")
def delete_permission(
    folder_path: str,
    user: User = Depends(require_role(ROLE_ADMIN)),
    state: AppState = Depends(get_app_state),
):
    path = _permission_path(folder_path)
    if not state.stores.permissions.delete_by_path(path):
        raise HTTPException(404, f"No permission record for '{path or '/'}'")
    log_audit(state.audit, user, "delete", "permission", path)
    return ok(message="Permissions removed")
