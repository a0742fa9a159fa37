"""File Manager - FastAPI Dependency Chain

Dependency chain:
  get_app_state -> get_current_user -> require_role / resolve_company
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Query, Request

from .audit import AuditLog
from .auth import AUTH_COOKIE, decode_token
from .config import Settings
from .guards import require_company_access
from .logging_config import get_logger
from .models import ROLES, User
from .permissions import PermissionEngine
from .repositories import Stores
from .storage import FileStorage

logger = get_logger(__name__)


@dataclass
class AppState:
    """Everything a request handler needs. Built once by create_app()."""
    settings: Settings
    stores: Stores
    storage: FileStorage
    engine: PermissionEngine
    audit: AuditLog
    logos: FileStorage


def get_app_state(request: Request) -> AppState:
    return request.app.state.file_manager


# --- Layer 1: Authenticate ---

def _extract_token(request: Request) -> Optional[str]:
    token = request.cookies.get(AUTH_COOKIE)
    if token:
        return token
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    return None


def get_current_user(request: Request, state: AppState = Depends(get_app_state)) -> User:
    """Resolve the session token to a stored user. Any failure is a 401."""
    token = _extract_token(request)
    if not token:
        raise HTTPException(401, "Unauthorized")

    claims = decode_token(token, state.settings)
    if not claims or not claims.get("sub"):
        raise HTTPException(401, "Unauthorized")

    # Role and memberships always come from the store, never from the token
    try:
        user = state.stores.users.find_by_id(str(claims["sub"]))
    except ValueError as e:
        logger.error("Malformed user store - rejecting session: %s", e)
        raise HTTPException(401, "Unauthorized")
    if user is None:
        logger.warning("Token for deleted user", extra={"user_id": claims.get("sub")})
        raise HTTPException(401, "Unauthorized")
    request.state.user = user
    return user


# --- Layer 2: Role gates ---

def require_role(minimum: str):
    """Dependency factory: user must hold `minimum` or a more privileged role."""
    allowed = ROLES[:ROLES.index(minimum) + 1]

    def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise HTTPException(403, "Forbidden")
        return user

    return dependency


# --- Layer 3: Tenant scope ---

def resolve_company(
    companyId: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
    state: AppState = Depends(get_app_state),
) -> Optional[str]:
    """Run the Company Boundary Guard when a companyId is supplied."""
    if companyId is None:
        return None
    require_company_access(user, companyId, state.stores.companies)
    return companyId
