"""File Manager - REST API

Auth, folder browsing and file operations. Admin routes live in admin.py.

Every folder/file operation for an ordinary user goes through the
PermissionEngine: list -> inherited view + per-entry filter,
upload and YouTube links -> 'upload' on the target folder, delete/rename ->
the action on the parent folder of the target, file contents (/uploads) ->
inherited view on the folder holding the file.
"""

from typing import Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import FileResponse, JSONResponse, Response

from .admin import admin_router, ok
from .audit import AuditLog, log_audit
from .auth import AUTH_COOKIE, authenticate, create_token, ensure_default_admin
from .config import Settings, get_settings
from .dependencies import (
    AppState,
    get_app_state,
    get_current_user,
    require_role,
    resolve_company,
)
from .listing import build_listing
from .logging_config import get_logger
from .models import (
    DEFAULT_FOLDER_ROLE_RESTRICTIONS,
    ROLE_ADMIN,
    PermissionRecord,
    User,
)
from .paths import base_name, child_path, normalize_path, parent_path
from .permissions import PermissionEngine
from .repositories import Stores, open_stores
from .schemas import FolderCreate, FolderOrderUpdate, LoginRequest, RenameRequest, YouTubeCreate
from .storage import FileStorage, UploadTooLarge, unique_filename
from .youtube import extract_video_id, video_document, video_file_stem

logger = get_logger(__name__)


def _path_or_400(raw: Optional[str]) -> str:
    try:
        return normalize_path(raw)
    except ValueError as e:
        raise HTTPException(400, str(e))


def _require_action(state: AppState, user: User, folder_path: str, action: str,
                    company_id: Optional[str]) -> None:
    if not state.engine.can_perform(user.id, folder_path, action, company_id):
        logger.info("Permission denied", extra={
            "user": user.username, "path": folder_path, "action": action, "company_id": company_id,
        })
        raise HTTPException(403, f"You do not have permission to {action} in this folder")


# ============================================================================
# AUTH
# ============================================================================

def login(body: LoginRequest, response: Response, state: AppState = Depends(get_app_state)):
    user = authenticate(state.stores.users, body.username, body.password)
    if user is None:
        logger.info("Login failed", extra={"username": body.username})
        raise HTTPException(401, "Invalid credentials")

    token = create_token(user, state.settings)
    response.set_cookie(
        AUTH_COOKIE, token,
        httponly=True,
        secure=state.settings.cookie_secure,
        samesite="none" if state.settings.cookie_secure else "lax",
        max_age=state.settings.jwt_expires_days * 24 * 60 * 60,
    )
    logger.info("Login", extra={"user": user.username, "role": user.role})
    return {
        "success": True,
        "data": {"id": user.id, "username": user.username, "role": user.role},
        "token": token,
    }


def logout(response: Response):
    response.delete_cookie(AUTH_COOKIE)
    return ok(message="Logged out")


def me(user: User = Depends(get_current_user), state: AppState = Depends(get_app_state)):
    """Profile plus branch and company names for the UI."""
    branches = [state.stores.branches.find_by_id(b) for b in sorted(user.branch_ids)]
    companies = [state.stores.companies.find_by_id(c) for c in sorted(user.company_ids)]
    return ok({
        **user.to_public_dict(),
        "branches": [b.to_dict() for b in branches if b is not None],
        "companies": [c.to_dict() for c in companies if c is not None],
    })


# ============================================================================
# FOLDERS
# ============================================================================

def _list_folder(raw_path: Optional[str], user: User, state: AppState,
                 company_id: Optional[str]) -> dict:
    path = _path_or_400(raw_path)

    if not user.is_privileged and not state.engine.can_view(user.id, path, company_id):
        raise HTTPException(403, "You do not have permission to view this folder")

    try:
        raw_entries = state.storage.list_entries(path)
    except FileNotFoundError:
        raise HTTPException(404, "Folder not found")
    except NotADirectoryError:
        raise HTTPException(400, "Path is not a directory")

    entries = []
    for entry in raw_entries:
        metadata = state.stores.file_metadata.get(child_path(path, entry["name"]))
        entries.append({**entry, **metadata} if metadata else entry)

    listing = build_listing(entries, path, user, state.engine,
                            state.stores.folder_order.get(path), company_id)
    body = ok(listing["items"])
    body["path"] = listing["path"]
    body["permissions"] = listing["permissions"]
    return body


def list_root_folder(
    user: User = Depends(get_current_user),
    company_id: Optional[str] = Depends(resolve_company),
    state: AppState = Depends(get_app_state),
):
    return _list_folder("", user, state, company_id)


def list_folder(
    folder_path: str,
    user: User = Depends(get_current_user),
    company_id: Optional[str] = Depends(resolve_company),
    state: AppState = Depends(get_app_state),
):
    return _list_folder(folder_path, user, state, company_id)


def create_folder(
    body: FolderCreate,
    user: User = Depends(require_role(ROLE_ADMIN)),
    company_id: Optional[str] = Depends(resolve_company),
    state: AppState = Depends(get_app_state),
):
    """Create a folder and give it the default 'user: view only' record."""
    if not state.storage.is_dir(body.folderPath):
        raise HTTPException(404, "Parent folder not found")
    try:
        new_path = state.storage.create_folder(body.folderPath, body.folderName)
    except FileExistsError:
        raise HTTPException(400, "Folder already exists")

    state.stores.permissions.upsert(PermissionRecord(
        id="",
        folder_path=new_path,
        role_restrictions=dict(DEFAULT_FOLDER_ROLE_RESTRICTIONS),
    ))
    logger.info("Folder created", extra={"user": user.username, "path": new_path})
    log_audit(state.audit, user, "create", "folder", new_path)
    return ok({"path": new_path}, "Folder created successfully")


def update_folder_order(
    body: FolderOrderUpdate,
    user: User = Depends(require_role(ROLE_ADMIN)),
    state: AppState = Depends(get_app_state),
):
    if not state.storage.is_dir(body.folderPath):
        raise HTTPException(404, "Folder not found")
    state.stores.folder_order.set(body.folderPath, list(dict.fromkeys(body.order)))
    return ok(message="Order saved")


# ============================================================================
# FILES
# ============================================================================

async def upload_file(
    file: UploadFile = File(...),
    folderPath: str = Form(""),
    user: User = Depends(get_current_user),
    company_id: Optional[str] = Depends(resolve_company),
    state: AppState = Depends(get_app_state),
):
    folder = _path_or_400(folderPath)
    _require_action(state, user, folder, "upload", company_id)

    if not state.storage.is_dir(folder):
        raise HTTPException(404, "Folder not found")
    if not file.filename:
        raise HTTPException(400, "No file uploaded")

    max_bytes = state.settings.max_upload_mb * 1024 * 1024
    if file.size is not None and file.size > max_bytes:
        raise HTTPException(413, f"File exceeds {state.settings.max_upload_mb} MB limit")

    original_name = base_name(file.filename.replace("\\", "/"))
    try:
        rel_path = state.storage.save_upload(folder, original_name, file.file, max_bytes)
    except UploadTooLarge:
        raise HTTPException(413, f"File exceeds {state.settings.max_upload_mb} MB limit")
    finally:
        await file.close()

    metadata = state.stores.file_metadata.record_upload(rel_path, user.username)
    logger.info("File uploaded", extra={"user": user.username, "path": rel_path})
    log_audit(state.audit, user, "upload", "file", rel_path, original_name)
    return ok({
        "originalname": original_name,
        "filename": base_name(rel_path),
        "path": rel_path,
        "size": file.size,
        **metadata,
    }, "File uploaded successfully")


def delete_entry(
    file_path: str,
    user: User = Depends(get_current_user),
    company_id: Optional[str] = Depends(resolve_company),
    state: AppState = Depends(get_app_state),
):
    path = _path_or_400(file_path)
    if not path:
        raise HTTPException(400, "The root folder cannot be deleted")
    parent = parent_path(path)
    _require_action(state, user, parent, "delete", company_id)

    try:
        was_folder = state.storage.delete(path)
    except FileNotFoundError:
        raise HTTPException(404, "File or folder not found")

    if was_folder:
        state.stores.permissions.delete_subtree(path)
    state.stores.file_metadata.delete_subtree(path)
    state.stores.folder_order.delete_subtree(path)
    state.stores.folder_order.remove_entry(parent, base_name(path))

    logger.info("Deleted", extra={"user": user.username, "path": path, "folder": was_folder})
    log_audit(state.audit, user, "delete", "folder" if was_folder else "file", path)
    return ok(message="File or folder deleted successfully")


def rename_entry(
    file_path: str,
    body: RenameRequest,
    user: User = Depends(get_current_user),
    company_id: Optional[str] = Depends(resolve_company),
    state: AppState = Depends(get_app_state),
):
    path = _path_or_400(file_path)
    if not path:
        raise HTTPException(400, "The root folder cannot be renamed")
    parent = parent_path(path)
    _require_action(state, user, parent, "rename", company_id)

    was_folder = state.storage.is_dir(path)
    try:
        new_path = state.storage.rename(path, body.newName)
    except FileNotFoundError:
        raise HTTPException(404, "File or folder not found")
    except FileExistsError:
        raise HTTPException(400, "A file or folder with this name already exists")

    if was_folder:
        state.stores.permissions.rename_path(path, new_path)
    state.stores.file_metadata.rename(path, new_path)
    state.stores.folder_order.rename(path, new_path)
    state.stores.folder_order.rename_entry(parent, base_name(path), body.newName)

    logger.info("Renamed", extra={"user": user.username, "old": path, "new": new_path})
    log_audit(state.audit, user, "rename", "folder" if was_folder else "file", path, new_path)
    return ok({"oldPath": path, "newPath": new_path}, "File or folder renamed successfully")


def add_youtube_video(
    body: YouTubeCreate,
    user: User = Depends(get_current_user),
    company_id: Optional[str] = Depends(resolve_company),
    state: AppState = Depends(get_app_state),
):
    """Store a YouTube link as a JSON entry in the folder (needs 'upload' there)."""
    _require_action(state, user, body.folderPath, "upload", company_id)
    if not state.storage.is_dir(body.folderPath):
        raise HTTPException(404, "Folder not found")

    video = video_document(extract_video_id(body.url), body.url, body.title)
    filename = unique_filename(f"{video_file_stem(body.title)}.json")
    try:
        rel_path = state.storage.write_json(body.folderPath, filename, video)
    except FileExistsError:
        raise HTTPException(409, "A file with this name already exists")

    state.stores.file_metadata.record_upload(rel_path, user.username)
    logger.info("YouTube video added", extra={"user": user.username, "path": rel_path,
                                              "video_id": video["id"]})
    log_audit(state.audit, user, "create", "youtube", rel_path, body.url)
    return ok({"video": video, "filename": filename, "path": rel_path},
              "YouTube video added successfully")


def serve_upload(
    file_path: str,
    user: User = Depends(get_current_user),
    company_id: Optional[str] = Depends(resolve_company),
    state: AppState = Depends(get_app_state),
):
    """File contents, for anyone who can view the folder holding the file."""
    path = _path_or_400(file_path)
    if not path:
        raise HTTPException(404, "File not found")
    if not state.engine.can_view(user.id, parent_path(path), company_id):
        raise HTTPException(403, "You do not have permission to view this file")
    if not state.storage.is_file(path):
        raise HTTPException(404, "File not found")
    return FileResponse(state.storage.resolve(path), filename=base_name(path),
                        content_disposition_type="inline")


def health():
    return {"status": "healthy"}


# ============================================================================
# APP
# ============================================================================

def _error_response(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code,
                        content={"success": False, "message": message},
                        headers=headers)


def create_app(settings: Settings = None, stores: Stores = None) -> FastAPI:
    """Build the app around one data directory and one uploads root."""
    settings = settings or get_settings()
    stores = stores or open_stores(settings.data_dir)
    ensure_default_admin(stores.users, settings)

    app = FastAPI(title="File Manager API", version="1.0.0")
    app.state.file_manager = AppState(
        settings=settings,
        stores=stores,
        storage=FileStorage(settings.uploads_dir),
        engine=PermissionEngine(stores.users, stores.permissions),
        audit=AuditLog(settings.data_file("audit.log")),
        logos=FileStorage(settings.data_file("logos")),
    )

    logger.info("API startup", extra={
        "data_dir": settings.data_dir,
        "uploads_dir": settings.uploads_dir,
        "cors_origins": settings.cors_origins[:50] if settings.cors_origins else "NOT SET",
    })

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.debug("Request", extra={"method": request.method, "path": request.url.path})
        response = await call_next(request)
        logger.debug("Response", extra={
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
        })
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return _error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return _error_response(422, message)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return _error_response(500, "Internal server error")

    app.add_api_route("/auth/login", login, methods=["POST"])
    app.add_api_route("/auth/logout", logout, methods=["POST"])
    app.add_api_route("/auth/me", me, methods=["GET"])

    app.add_api_route("/folders", list_root_folder, methods=["GET"])
    app.add_api_route("/folders", create_folder, methods=["POST"])
    app.add_api_route("/folders/order", update_folder_order, methods=["POST"])
    app.add_api_route("/folders/{folder_path:path}", list_folder, methods=["GET"])

    app.add_api_route("/files", upload_file, methods=["POST"])
    app.add_api_route("/files/{file_path:path}", delete_entry, methods=["DELETE"])
    app.add_api_route("/files/{file_path:path}", rename_entry, methods=["PUT"])
    app.add_api_route("/uploads/{file_path:path}", serve_upload, methods=["GET"])
    app.add_api_route("/youtube", add_youtube_video, methods=["POST"])

    app.add_api_route("/health", health, methods=["GET"])

    app.include_router(admin_router)
    return app
