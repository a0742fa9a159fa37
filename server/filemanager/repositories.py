"""File Manager - JSON Repositories

Each repository wraps one JSON file. The file is loaded once into memory
(and again on reload()), reads are served from that snapshot, and every
mutation rewrites the whole file via a temp file + atomic replace.

Concurrent writers are last-writer-wins; a per-store lock only keeps one
process from interleaving its own writes.
"""

import copy
import json
import os
import tempfile
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any, Generator, Optional

from .logging_config import get_logger
from .models import Branch, Company, PermissionRecord, User, utc_now
from .paths import is_within

logger = get_logger(__name__)


def new_id() -> str:
    return uuid.uuid4().hex


class JsonStore:
    """In-memory snapshot of one JSON document, persisted on every write."""

    def __init__(self, path: str, default: Any):
        self.path = path
        self._default = default
        self._lock = threading.Lock()
        self._data = self._read()

    def _read(self) -> Any:
        if not os.path.exists(self.path):
            return copy.deepcopy(self._default)
        with open(self.path, "r", encoding="utf-8") as f:
            try:
                return json.load(f)
            except json.JSONDecodeError as e:
                logger.error("Corrupt JSON store %s: %s", self.path, e)
                raise

    def _write(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def reload(self) -> None:
        """Replace the snapshot wholesale with the file contents."""
        with self._lock:
            self._data = self._read()

    @property
    def data(self) -> Any:
        return self._data

    @contextmanager
    def transaction(self) -> Generator[Any, None, None]:
        """Yield the mutable document; save on success, restore on error."""
        with self._lock:
            before = copy.deepcopy(self._data)
            try:
                yield self._data
                self._write()
            except Exception:
                self._data = before
                raise


def _rows(store: JsonStore, kind: str) -> list:
    """Rows of a list store. Anything that is not a list of objects raises ValueError."""
    rows = store.data
    if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
        raise ValueError(f"Malformed {kind} store: {store.path}")
    return rows


def _parse(factory, row: dict, kind: str):
    """Build a record from a row; missing or mistyped fields raise ValueError."""
    try:
        return factory(row)
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"Malformed {kind} row {row.get('id')!r}: {e!r}") from e


def _rekey(key: str, old_prefix: str, new_prefix: str) -> str:
    if key == old_prefix:
        return new_prefix
    return new_prefix + key[len(old_prefix):]


# ============================================================================
# IDENTITY
# ============================================================================

class UserRepository:

    def __init__(self, store: JsonStore):
        self.store = store

    def list(self) -> list[User]:
        return [_parse(User.from_dict, row, "user") for row in _rows(self.store, "user")]

    def find_by_id(self, user_id: str) -> Optional[User]:
        for row in _rows(self.store, "user"):
            if str(row.get("id")) == str(user_id):
                return _parse(User.from_dict, row, "user")
        return None

    def find_by_username(self, username: str) -> Optional[User]:
        wanted = str(username or "").lower()
        for row in _rows(self.store, "user"):
            if str(row.get("username", "")).lower() == wanted:
                return _parse(User.from_dict, row, "user")
        return None

    def add(self, user: User) -> User:
        if self.find_by_username(user.username):
            raise ValueError(f"Username '{user.username}' already exists")
        user = replace(user, id=user.id or new_id(), created_at=user.created_at or utc_now())
        with self.store.transaction() as rows:
            rows.append(user.to_dict())
        return user

    def update(self, user: User) -> bool:
        with self.store.transaction() as rows:
            for i, row in enumerate(rows):
                if str(row.get("id")) == user.id:
                    rows[i] = user.to_dict()
                    return True
        return False

    def delete(self, user_id: str) -> bool:
        with self.store.transaction() as rows:
            for i, row in enumerate(rows):
                if str(row.get("id")) == str(user_id):
                    del rows[i]
                    return True
        return False

    def remove_branch(self, branch_id: str) -> None:
        """Drop a deleted branch from every user's memberships."""
        for user in self.list():
            if branch_id in user.branch_ids:
                self.update(replace(user, branch_ids=user.branch_ids - {branch_id}))

    def remove_company(self, company_id: str) -> None:
        for user in self.list():
            if company_id in user.company_ids:
                self.update(replace(user, company_ids=user.company_ids - {company_id}))


class _DirectoryRepository:
    """Shared list-of-records behaviour for branches and companies."""
    record_type = None

    def __init__(self, store: JsonStore):
        self.store = store

    def list(self):
        kind = self.record_type.__name__.lower()
        return [_parse(self.record_type.from_dict, row, kind) for row in _rows(self.store, kind)]

    def find_by_id(self, record_id: str):
        kind = self.record_type.__name__.lower()
        for row in _rows(self.store, kind):
            if str(row.get("id")) == str(record_id):
                return _parse(self.record_type.from_dict, row, kind)
        return None

    def add(self, record):
        record = replace(record, id=record.id or new_id(), created_at=record.created_at or utc_now())
        with self.store.transaction() as rows:
            rows.append(record.to_dict())
        return record

    def update(self, record) -> bool:
        with self.store.transaction() as rows:
            for i, row in enumerate(rows):
                if str(row.get("id")) == record.id:
                    rows[i] = record.to_dict()
                    return True
        return False

    def delete(self, record_id: str) -> bool:
        with self.store.transaction() as rows:
            for i, row in enumerate(rows):
                if str(row.get("id")) == str(record_id):
                    del rows[i]
                    return True
        return False


class BranchRepository(_DirectoryRepository):
    record_type = Branch


class CompanyRepository(_DirectoryRepository):
    record_type = Company


# ============================================================================
# PERMISSIONS
# ============================================================================

class PermissionRepository:
    """Flat table of PermissionRecords keyed by exact folder path."""

    def __init__(self, store: JsonStore):
        self.store = store

    def _find_raw(self, folder_path: str) -> Optional[dict]:
        for row in _rows(self.store, "permission"):
            if row.get("folderPath", "") == folder_path:
                return row
        return None

    def find_by_path(self, folder_path: str) -> Optional[PermissionRecord]:
        """Exact-match lookup. Raises ValueError if the stored record is malformed."""
        row = self._find_raw(folder_path)
        if row is None:
            return None
        return _parse(PermissionRecord.from_dict, row, "permission")

    def list(self) -> list[PermissionRecord]:
        return [_parse(PermissionRecord.from_dict, row, "permission")
                for row in _rows(self.store, "permission")]

    def upsert(self, record: PermissionRecord) -> PermissionRecord:
        """Insert or replace the record for record.folder_path.

        An existing record keeps its id and createdAt; updatedAt is bumped.
        """
        now = utc_now()
        with self.store.transaction() as rows:
            for i, row in enumerate(rows):
                if row.get("folderPath", "") == record.folder_path:
                    record = replace(
                        record,
                        id=str(row.get("id") or record.id or new_id()),
                        created_at=row.get("createdAt") or now,
                        updated_at=now,
                    )
                    rows[i] = record.to_dict()
                    break
            else:
                record = replace(record, id=record.id or new_id(), created_at=now, updated_at=now)
                rows.append(record.to_dict())
        logger.info("Permission record saved", extra={"folder_path": record.folder_path})
        return record

    def delete_by_path(self, folder_path: str) -> bool:
        with self.store.transaction() as rows:
            for i, row in enumerate(rows):
                if row.get("folderPath", "") == folder_path:
                    del rows[i]
                    return True
        return False

    def rename_path(self, old_path: str, new_path: str) -> int:
        """Move the record at old_path, and every record beneath it, under new_path."""
        moved = 0
        with self.store.transaction() as rows:
            for row in rows:
                path = row.get("folderPath", "")
                if old_path and is_within(path, old_path):
                    row["folderPath"] = _rekey(path, old_path, new_path)
                    row["updatedAt"] = utc_now()
                    moved += 1
        return moved

    def delete_subtree(self, folder_path: str) -> int:
        """Remove the record at folder_path and every record beneath it."""
        if not folder_path:
            return 0
        with self.store.transaction() as rows:
            keep = [row for row in rows if not is_within(row.get("folderPath", ""), folder_path)]
            removed = len(rows) - len(keep)
            rows[:] = keep
        return removed


# ============================================================================
# FILE METADATA & DISPLAY ORDER
# ============================================================================

class _PathKeyedRepository:
    """JSON object keyed by relative path, following renames and deletes."""

    def __init__(self, store: JsonStore):
        self.store = store

    def get(self, path: str):
        return self.store.data.get(path)

    def set(self, path: str, value) -> None:
        with self.store.transaction() as data:
            data[path] = value

    def rename(self, old_path: str, new_path: str) -> None:
        with self.store.transaction() as data:
            for key in [k for k in data if is_within(k, old_path)]:
                data[_rekey(key, old_path, new_path)] = data.pop(key)

    def delete_subtree(self, path: str) -> None:
        with self.store.transaction() as data:
            for key in [k for k in data if is_within(k, path)]:
                del data[key]


class FileMetadataRepository(_PathKeyedRepository):
    """Uploader and upload time per file path."""

    def record_upload(self, path: str, username: str) -> dict:
        metadata = {"uploadedBy": username, "uploadedAt": utc_now()}
        self.set(path, metadata)
        return metadata


class FolderOrderRepository(_PathKeyedRepository):
    """Custom display order (list of entry names) per folder path."""

    def get(self, path: str) -> list[str]:
        return list(self.store.data.get(path) or [])

    def rename_entry(self, folder: str, old_name: str, new_name: str) -> None:
        order = self.get(folder)
        if old_name in order:
            self.set(folder, [new_name if n == old_name else n for n in order])

    def remove_entry(self, folder: str, name: str) -> None:
        order = self.get(folder)
        if name in order:
            self.set(folder, [n for n in order if n != name])


# ============================================================================
# WIRING
# ============================================================================

@dataclass
class Stores:
    """All repositories for one data directory. Owned by the host process."""
    users: UserRepository
    branches: BranchRepository
    companies: CompanyRepository
    permissions: PermissionRepository
    file_metadata: FileMetadataRepository
    folder_order: FolderOrderRepository

    def reload(self) -> None:
        for repo in (self.users, self.branches, self.companies, self.permissions,
                     self.file_metadata, self.folder_order):
            repo.store.reload()


def open_stores(data_dir: str) -> Stores:
    """Load every JSON store from data_dir (missing files start empty)."""
    os.makedirs(data_dir, exist_ok=True)

    def path(name):
        return os.path.join(data_dir, name)

    stores = Stores(
        users=UserRepository(JsonStore(path("users.json"), [])),
        branches=BranchRepository(JsonStore(path("branches.json"), [])),
        companies=CompanyRepository(JsonStore(path("companies.json"), [])),
        permissions=PermissionRepository(JsonStore(path("permissions.json"), [])),
        file_metadata=FileMetadataRepository(JsonStore(path("file_metadata.json"), {})),
        folder_order=FolderOrderRepository(JsonStore(path("folder_order.json"), {})),
    )
    logger.info("JSON stores loaded", extra={
        "data_dir": data_dir,
        "users": len(stores.users.store.data),
        "permission_records": len(stores.permissions.store.data),
    })
    return stores
