"""Row-scoped JSON tables.

Created: 2026-09-30

A deliberately small stand-in for the hosted database the dashboard talks
to: each table is one JSON file holding a list of rows, mirrored by an
in-memory index. Every row carries an ``owner_id`` and access follows the
same policy the database enforces with row-level security:

- a caller reads and writes only rows it owns;
- ``admin`` and ``manager`` callers see and write every row.

Writes go to a temp file that is renamed over the table file, and the
in-memory index only changes once the rename succeeded, so a failed write
leaves both the file and the index as they were.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

ELEVATED_ROLES = frozenset({"admin", "manager"})
KNOWN_ROLES = frozenset({"user"}) | ELEVATED_ROLES

Row = dict[str, Any]


class StorageError(Exception):
    """A table could not be read or written."""


class PermissionDeniedError(StorageError):
    """The caller may not modify the row."""


class RecordNotFoundError(StorageError):
    """No visible row matches."""


@dataclass(frozen=True)
class Caller:
    """Authenticated identity a table operation runs as."""

    user_id: str
    role: str = "user"

    def __post_init__(self) -> None:
        if self.role not in KNOWN_ROLES:
            object.__setattr__(self, "role", "user")

    @property
    def elevated(self) -> bool:
        return self.role in ELEVATED_ROLES

    def can_access(self, row: Row) -> bool:
        return self.elevated or row.get("owner_id") == self.user_id


def _matches(row: Row, filters: dict[str, Any]) -> bool:
    return all(row.get(k) == v for k, v in filters.items())


class RecordTable:
    """File-backed table with per-row owner scoping."""

    def __init__(self, name: str, path: Path):
        self.name = name
        self.path = path
        self._rows: dict[str, Row] = {}
        self._lock = threading.Lock()
        self._load()

    # ------------------------------------------------------------------
    # File I/O
    # ------------------------------------------------------------------

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            raise StorageError(f"Cannot load table {self.name} from {self.path}: {exc}") from exc
        for row in data:
            self._rows[row["id"]] = row
        logger.debug("Loaded %d rows into %s", len(self._rows), self.name)

    def _commit(self, rows: dict[str, Row]) -> None:
        """Persist *rows* atomically, then make them the live index."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        try:
            temp_path.write_text(
                json.dumps(list(rows.values()), indent=2, ensure_ascii=False), encoding="utf-8"
            )
            temp_path.replace(self.path)
        except (OSError, TypeError) as exc:
            if temp_path.exists():
                temp_path.unlink()
            raise StorageError(f"Cannot write table {self.name}: {exc}") from exc
        self._rows = rows

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def select(self, caller: Caller, **filters: Any) -> list[Row]:
        with self._lock:
            return [
                copy.deepcopy(row)
                for row in self._rows.values()
                if caller.can_access(row) and _matches(row, filters)
            ]

    def get(self, caller: Caller, row_id: str) -> Row | None:
        with self._lock:
            row = self._rows.get(row_id)
            if row is None or not caller.can_access(row):
                return None
            return copy.deepcopy(row)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _check_owner(self, caller: Caller, row: Row) -> None:
        if not caller.can_access(row):
            raise PermissionDeniedError(
                f"{caller.user_id} may not write {self.name} rows owned by {row.get('owner_id')}"
            )

    def insert(self, caller: Caller, row: Row) -> Row:
        new = dict(row)
        new.setdefault("id", str(uuid.uuid4()))
        new.setdefault("owner_id", caller.user_id)
        self._check_owner(caller, new)
        with self._lock:
            if new["id"] in self._rows:
                raise StorageError(f"Duplicate id {new['id']} in {self.name}")
            rows = dict(self._rows)
            rows[new["id"]] = new
            self._commit(rows)
        return copy.deepcopy(new)

    def upsert(self, caller: Caller, row: Row, on_conflict: tuple[str, ...]) -> Row:
        """Insert *row*, or overwrite the row sharing its ``on_conflict`` columns.

        The existing row keeps its ``id``; every other supplied column is
        replaced.
        """
        new = dict(row)
        new.setdefault("owner_id", caller.user_id)
        self._check_owner(caller, new)
        key = {col: new.get(col) for col in on_conflict}
        with self._lock:
            existing = [r for r in self._rows.values() if _matches(r, key)]
            rows = dict(self._rows)
            if existing:
                current = existing[0]
                self._check_owner(caller, current)
                merged = {**current, **new, "id": current["id"]}
                for extra in existing[1:]:
                    rows.pop(extra["id"], None)
            else:
                merged = {**new}
                merged.setdefault("id", str(uuid.uuid4()))
            rows[merged["id"]] = merged
            self._commit(rows)
        return copy.deepcopy(merged)

    def update(self, caller: Caller, row_id: str, changes: Row) -> Row:
        with self._lock:
            current = self._rows.get(row_id)
            if current is None or not caller.can_access(current):
                raise RecordNotFoundError(f"No {self.name} row {row_id}")
            updated = {**current, **changes, "id": row_id, "owner_id": current["owner_id"]}
            rows = dict(self._rows)
            rows[row_id] = updated
            self._commit(rows)
        return copy.deepcopy(updated)

    def delete(self, caller: Caller, row_id: str) -> bool:
        with self._lock:
            current = self._rows.get(row_id)
            if current is None or not caller.can_access(current):
                return False
            rows = dict(self._rows)
            del rows[row_id]
            self._commit(rows)
        return True

    def delete_where(self, caller: Caller, **filters: Any) -> int:
        with self._lock:
            doomed = [
                k for k, r in self._rows.items() if caller.can_access(r) and _matches(r, filters)
            ]
            if not doomed:
                return 0
            rows = {k: v for k, v in self._rows.items() if k not in doomed}
            self._commit(rows)
        return len(doomed)

    def pop_where(self, caller: Caller, **filters: Any) -> list[Row]:
        """Remove and return the visible rows matching *filters* in one step."""
        with self._lock:
            taken = [
                r for r in self._rows.values() if caller.can_access(r) and _matches(r, filters)
            ]
            if taken:
                taken_ids = {r["id"] for r in taken}
                rows = {k: v for k, v in self._rows.items() if k not in taken_ids}
                self._commit(rows)
        return taken

    def purge(self, predicate) -> int:
        """Drop rows for which *predicate(row)* is true, ignoring ownership.

        Used for housekeeping such as dropping expired state rows. Callers pass
        predicates that do not depend on the requesting user.
        """
        with self._lock:
            doomed = [k for k, r in self._rows.items() if predicate(r)]
            if not doomed:
                return 0
            rows = {k: v for k, v in self._rows.items() if k not in doomed}
            self._commit(rows)
        return len(doomed)
