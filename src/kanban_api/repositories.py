from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from threading import RLock
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .errors import NotFoundError, ValidationError
from .models import TERMINAL_COLUMN, TaskColumn, TaskEntity, UserEntity
from .settings import Settings

logger = logging.getLogger(__name__)

TASK_FIELDS = ("title", "description", "due_date", "column", "done_at")
# Ids are stored as signed 64-bit integers; anything outside cannot exist.
MAX_TASK_ID = 2**63 - 1
TASK_NOT_FOUND = "Task not found or not authorized"
EMAIL_TAKEN = "Email has already been taken"

# Computes the changes to apply to a stored task from its current state.
TaskMutation = Callable[[TaskEntity], Dict[str, Any]]


def _owner_id(owner: UserEntity) -> int:
    if owner is None:
        raise TypeError("owner is required for task operations")
    return int(owner["id"])


def _coerce_column(value: Any) -> str:
    if value is None:
        raise ValidationError("Column can't be blank")
    try:
        return TaskColumn(value).value
    except ValueError:
        allowed = ", ".join(c.value for c in TaskColumn)
        raise ValidationError(f"Column is not included in the list ({allowed})") from None


def _storable_id(task_id: int) -> bool:
    return 1 <= task_id <= MAX_TASK_ID


def _clean_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Keep only writable task fields and validate the ones that were given."""
    cleaned = {k: v for k, v in fields.items() if k in TASK_FIELDS}
    if "column" in cleaned:
        cleaned["column"] = _coerce_column(cleaned["column"])
    if "title" in cleaned:
        title = cleaned["title"]
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("Title can't be blank")
        cleaned["title"] = title.strip()
    return cleaned


def _resolve_done_at(
    previous_column: Optional[str],
    previous_done_at: Optional[datetime],
    changes: Mapping[str, Any],
    now: datetime,
) -> Optional[datetime]:
    """
    Completion timestamp after applying ``changes``.

    A supplied ``done_at`` (even None) wins. Otherwise only a move into or out
    of the done column changes it: entering stamps it if unset, leaving clears it.
    """
    if "done_at" in changes:
        return changes["done_at"]
    done = TERMINAL_COLUMN.value
    column = changes.get("column", previous_column)
    if column == done and previous_column != done:
        return previous_done_at or now
    if previous_column == done and column != done:
        return None
    return previous_done_at


# PUBLIC_INTERFACE
class UserRepository(ABC):
    """Abstract storage contract for user records."""

    @abstractmethod
    def add(self, name: str, email: str, password_digest: str) -> UserEntity:
        """Insert a user. Raises ValidationError if the email is already taken."""

    @abstractmethod
    def get(self, user_id: int) -> Optional[UserEntity]:
        """Return a user by id, or None if not found."""

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[UserEntity]:
        """Return a user by (normalized) email, or None if not found."""

    @abstractmethod
    def delete(self, user_id: int) -> bool:
        """Delete a user and every task they own. Return False if the user did not exist."""

    @abstractmethod
    def count(self) -> int:
        """Number of stored users."""


# PUBLIC_INTERFACE
class TaskRepository(ABC):
    """
    Task storage scoped to an owning user.

    Every public operation takes the authenticated owner and only ever touches
    that owner's tasks. A task owned by somebody else is indistinguishable from
    a task that does not exist: both raise NotFoundError.

    Backends implement the ``_select*``/``_insert``/``_modify``/``_remove``
    primitives, each of which filters by owner id and runs atomically.
    """

    def _now(self) -> datetime:
        return datetime.now()

    # PUBLIC_INTERFACE
    def list(self, owner: UserEntity) -> List[TaskEntity]:
        """Return the owner's tasks in insertion order."""
        return self._select_all(_owner_id(owner))

    # PUBLIC_INTERFACE
    def create(self, owner: UserEntity, fields: Mapping[str, Any]) -> TaskEntity:
        """Create a task owned by ``owner``. Column defaults to 'todo'."""
        owner_id = _owner_id(owner)
        cleaned = _clean_fields(fields)
        if "title" not in cleaned:
            raise ValidationError("Title can't be blank")
        now = self._now()
        column = cleaned.get("column", TaskColumn.TODO.value)
        values: Dict[str, Any] = {
            "title": cleaned["title"],
            "description": cleaned.get("description"),
            "due_date": cleaned.get("due_date"),
            "column": column,
            "done_at": _resolve_done_at(None, None, {**cleaned, "column": column}, now),
            "created_at": now,
            "updated_at": now,
        }
        task = self._insert(owner_id, values)
        logger.debug("Created task %s for user %s", task["id"], owner_id)
        return task

    # PUBLIC_INTERFACE
    def get(self, owner: UserEntity, task_id: int) -> TaskEntity:
        owner_id = _owner_id(owner)
        task = self._select(owner_id, task_id) if _storable_id(task_id) else None
        if task is None:
            raise NotFoundError(TASK_NOT_FOUND)
        return task

    # PUBLIC_INTERFACE
    def update(self, owner: UserEntity, task_id: int, fields: Mapping[str, Any]) -> TaskEntity:
        """Apply a partial update; fields that are not given are left unchanged."""
        owner_id = _owner_id(owner)
        cleaned = _clean_fields(fields)

        def mutate(current: TaskEntity) -> Dict[str, Any]:
            now = self._now()
            changes = dict(cleaned)
            changes["done_at"] = _resolve_done_at(current["column"], current["done_at"], cleaned, now)
            changes["updated_at"] = now
            return changes

        task = self._modify(owner_id, task_id, mutate) if _storable_id(task_id) else None
        if task is None:
            raise NotFoundError(TASK_NOT_FOUND)
        logger.debug("Updated task %s for user %s", task_id, owner_id)
        return task

    # PUBLIC_INTERFACE
    def delete(self, owner: UserEntity, task_id: int) -> None:
        owner_id = _owner_id(owner)
        if not (_storable_id(task_id) and self._remove(owner_id, task_id)):
            raise NotFoundError(TASK_NOT_FOUND)
        logger.debug("Deleted task %s for user %s", task_id, owner_id)

    @abstractmethod
    def _select_all(self, owner_id: int) -> List[TaskEntity]:
        """All tasks of ``owner_id`` ordered by id."""

    @abstractmethod
    def _select(self, owner_id: int, task_id: int) -> Optional[TaskEntity]:
        """The task with ``task_id`` if it belongs to ``owner_id``."""

    @abstractmethod
    def _insert(self, owner_id: int, values: Dict[str, Any]) -> TaskEntity:
        """Store a new task and return it with its allocated id."""

    @abstractmethod
    def _modify(self, owner_id: int, task_id: int, mutate: TaskMutation) -> Optional[TaskEntity]:
        """Atomically read the owner's task, apply ``mutate(current)`` and return the result."""

    @abstractmethod
    def _remove(self, owner_id: int, task_id: int) -> bool:
        """Delete the owner's task. Return False if no such task."""


class _MemoryTables:
    """State shared by the in-memory user and task repositories."""

    def __init__(self) -> None:
        self.lock = RLock()
        self.users: Dict[int, UserEntity] = {}
        self.tasks: Dict[int, TaskEntity] = {}
        self.next_user_id = 1
        self.next_task_id = 1


class InMemoryUserRepository(UserRepository):
    """
    Thread-safe in-memory user store suitable for testing and default runtime.
    """

    def __init__(self, tables: _MemoryTables) -> None:
        self._t = tables

    def add(self, name: str, email: str, password_digest: str) -> UserEntity:
        with self._t.lock:
            if any(u["email"] == email for u in self._t.users.values()):
                raise ValidationError(EMAIL_TAKEN)
            user: UserEntity = {
                "id": self._t.next_user_id,
                "name": name,
                "email": email,
                "password_digest": password_digest,
                "created_at": datetime.now(),
            }
            self._t.next_user_id += 1
            self._t.users[user["id"]] = user
            return user.copy()

    def get(self, user_id: int) -> Optional[UserEntity]:
        with self._t.lock:
            user = self._t.users.get(user_id)
            return None if user is None else user.copy()

    def get_by_email(self, email: str) -> Optional[UserEntity]:
        with self._t.lock:
            for user in self._t.users.values():
                if user["email"] == email:
                    return user.copy()
            return None

    def delete(self, user_id: int) -> bool:
        with self._t.lock:
            if self._t.users.pop(user_id, None) is None:
                return False
            owned = [tid for tid, t in self._t.tasks.items() if t["user_id"] == user_id]
            for tid in owned:
                del self._t.tasks[tid]
            return True

    def count(self) -> int:
        with self._t.lock:
            return len(self._t.users)


class InMemoryTaskRepository(TaskRepository):
    """
    Thread-safe in-memory task store.
    """

    def __init__(self, tables: _MemoryTables) -> None:
        self._t = tables

    def _select_all(self, owner_id: int) -> List[TaskEntity]:
        with self._t.lock:
            owned = [t for t in self._t.tasks.values() if t["user_id"] == owner_id]
            # Return copies to avoid external mutation
            return [t.copy() for t in sorted(owned, key=lambda t: t["id"])]

    def _select(self, owner_id: int, task_id: int) -> Optional[TaskEntity]:
        with self._t.lock:
            task = self._t.tasks.get(task_id)
            if task is None or task["user_id"] != owner_id:
                return None
            return task.copy()

    def _insert(self, owner_id: int, values: Dict[str, Any]) -> TaskEntity:
        with self._t.lock:
            task: TaskEntity = {"id": self._t.next_task_id, "user_id": owner_id, **values}  # type: ignore[typeddict-item]
            self._t.next_task_id += 1
            self._t.tasks[task["id"]] = task
            return task.copy()

    def _modify(self, owner_id: int, task_id: int, mutate: TaskMutation) -> Optional[TaskEntity]:
        with self._t.lock:
            existing = self._t.tasks.get(task_id)
            if existing is None or existing["user_id"] != owner_id:
                return None
            updated = existing.copy()
            updated.update(mutate(existing.copy()))  # type: ignore[typeddict-item]
            self._t.tasks[task_id] = updated
            return updated.copy()

    def _remove(self, owner_id: int, task_id: int) -> bool:
        with self._t.lock:
            existing = self._t.tasks.get(task_id)
            if existing is None or existing["user_id"] != owner_id:
                return False
            del self._t.tasks[task_id]
            return True


def create_memory_repositories() -> Tuple[UserRepository, TaskRepository]:
    tables = _MemoryTables()
    return InMemoryUserRepository(tables), InMemoryTaskRepository(tables)


# PUBLIC_INTERFACE
def get_repositories(settings: Settings) -> Tuple[UserRepository, TaskRepository]:
    """
    Factory returning the user and task repositories for the configured backend.
    - memory: in-memory repositories sharing one set of tables
    - sqlite: SQLite repositories sharing one database file
    """
    if settings.persistence_backend == "sqlite":
        from .db import create_sqlite_repositories

        logger.info("Using SQLite persistence at %s", settings.sqlite_db_path)
        return create_sqlite_repositories(settings.sqlite_db_path)
    logger.info("Using in-memory persistence")
    return create_memory_repositories()
