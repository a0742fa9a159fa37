"""File Manager - Folder Listing Filter

Turns a raw directory listing into what the current user may see, and
computes the view/upload/delete/rename affordances shown in the UI.
"""

from typing import Optional

from .models import User
from .paths import child_path
from .permissions import PermissionEngine

ALL_ALLOWED = {"canView": True, "canUpload": True, "canDelete": True, "canRename": True}


def apply_display_order(entries: list[dict], order: list[str]) -> list[dict]:
    """Entries named in order come first, in that order; the rest keep their position."""
    if not order:
        return list(entries)
    rank = {name: i for i, name in enumerate(order)}
    ranked = sorted((e for e in entries if e["name"] in rank), key=lambda e: rank[e["name"]])
    rest = [e for e in entries if e["name"] not in rank]
    return ranked + rest


def filter_visible(entries: list[dict], current_path: str, user: User,
                   engine: PermissionEngine, company_id: Optional[str] = None) -> list[dict]:
    """Keep the entries whose own path passes the inherited view check.

    Entry dicts are returned as-is (same objects, metadata untouched).
    """
    if user.is_privileged:
        return list(entries)
    return [
        entry for entry in entries
        if engine.can_view(user.id, child_path(current_path, entry["name"]), company_id)
    ]


def compute_folder_permissions(path: str, user: User, engine: PermissionEngine,
                               company_id: Optional[str] = None) -> dict:
    if user.is_privileged:
        return dict(ALL_ALLOWED)
    return {
        "canView": engine.can_view(user.id, path, company_id),
        "canUpload": engine.can_perform(user.id, path, "upload", company_id),
        "canDelete": engine.can_perform(user.id, path, "delete", company_id),
        "canRename": engine.can_perform(user.id, path, "rename", company_id),
    }


def build_listing(entries: list[dict], current_path: str, user: User,
                  engine: PermissionEngine, order: list[str],
                  company_id: Optional[str] = None) -> dict:
    """Order -> filter -> per-entry permissions -> serializable payload."""
    ordered = apply_display_order(entries, order)
    visible = filter_visible(ordered, current_path, user, engine, company_id)
    items = [
        {
            **entry,
            "path": child_path(current_path, entry["name"]),
            "permissions": compute_folder_permissions(
                child_path(current_path, entry["name"]), user, engine, company_id
            ),
        }
        for entry in visible
    ]
    return {
        "path": current_path,
        "items": items,
        "permissions": compute_folder_permissions(current_path, user, engine, company_id),
    }
