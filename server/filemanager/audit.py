"""File Manager - Audit Logging

Appends one JSON line per successful write operation (folder, file,
permission, user, branch, company) to audit.log in the data directory.
"""

import json
import os
import threading
from typing import Optional

from .logging_config import get_logger
from .models import User, utc_now

logger = get_logger(__name__)


class AuditLog:

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def append(self, entry: dict) -> None:
        with self._lock:
            os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry) + "\n")


def log_audit(
    audit: AuditLog,
    user: User,
    operation: str,
    entity_type: str,
    entity_id: Optional[str] = None,
    detail: Optional[str] = None,
) -> None:
    """Record a write operation.

    Parameters:
        audit: AuditLog for the data directory
        user: The authenticated user performing the operation
        operation: One of 'create', 'update', 'delete', 'upload', 'rename'
        entity_type: One of 'folder', 'file', 'permission', 'user', 'branch', 'company'
        entity_id: Path or record id of the entity
        detail: Optional free-text context (truncated to 500 chars)
    """
    try:
        audit.append({
            "at": utc_now(),
            "userId": user.id,
            "username": user.username,
            "operation": operation,
            "entityType": entity_type,
            "entityId": entity_id,
            "detail": detail[:500] if detail else None,
        })
    except Exception as e:
        # Audit failure must never break the main operation
        logger.error("Failed to write audit log: %s", e, exc_info=True)
