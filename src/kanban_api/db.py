from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Generator, List, Optional, Tuple

from .errors import ValidationError
from .models import TaskEntity, UserEntity
from .repositories import EMAIL_TAKEN, TaskMutation, TaskRepository, UserRepository


@dataclass(frozen=True)
class _UserCols:
    table: str = "users"
    id: str = "id"
    name: str = "name"
    email: str = "email"
    password_digest: str = "password_digest"
    created_at: str = "created_at"


@dataclass(frozen=True)
class _TaskCols:
    table: str = "tasks"
    id: str = "id"
    user_id: str = "user_id"
    title: str = "title"
    description: str = "description"
    due_date: str = "due_date"
    column: str = '"column"'  # reserved word
    done_at: str = "done_at"
    created_at: str = "created_at"
    updated_at: str = "updated_at"


_U = _UserCols()
_T = _TaskCols()

# Task fields stored as ISO8601 text.
_DATETIME_FIELDS = ("due_date", "done_at", "created_at", "updated_at")


def _parse_dt(s: Optional[str]) -> Optional[datetime]:
    if s is None:
        return None
    return datetime.fromisoformat(s)


def _format_dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class _SQLiteDatabase:
    """
    Connection factory and schema owner shared by the SQLite repositories.
    """

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    @contextmanager
    def connect(self, immediate: bool = False) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path, detect_types=sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            if immediate:
                # Take the write lock up front so read-modify-write is atomic
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self.connect() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_U.table} (
                    {_U.id} INTEGER PRIMARY KEY AUTOINCREMENT,
                    {_U.name} TEXT NOT NULL,
                    {_U.email} TEXT NOT NULL UNIQUE,
                    {_U.password_digest} TEXT NOT NULL,
                    {_U.created_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_T.table} (
                    {_T.id} INTEGER PRIMARY KEY AUTOINCREMENT,
                    {_T.user_id} INTEGER NOT NULL REFERENCES {_U.table}({_U.id}) ON DELETE CASCADE,
                    {_T.title} TEXT NOT NULL,
                    {_T.description} TEXT NULL,
                    {_T.due_date} TEXT NULL,
                    {_T.column} TEXT NOT NULL,
                    {_T.done_at} TEXT NULL,
                    {_T.created_at} TEXT NOT NULL,
                    {_T.updated_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_T.table}_user_id ON {_T.table}({_T.user_id})"
            )


class SQLiteUserRepository(UserRepository):
    """
    SQLite user store. Email uniqueness is enforced by a UNIQUE constraint.
    """

    def __init__(self, database: _SQLiteDatabase) -> None:
        self._db = database

    def _row_to_entity(self, row: sqlite3.Row) -> UserEntity:
        return {
            "id": int(row[_U.id]),
            "name": str(row[_U.name]),
            "email": str(row[_U.email]),
            "password_digest": str(row[_U.password_digest]),
            "created_at": _parse_dt(row[_U.created_at]),  # type: ignore
        }  # type: ignore

    def add(self, name: str, email: str, password_digest: str) -> UserEntity:
        now = datetime.now().isoformat()
        try:
            with self._db.connect() as conn:
                cur = conn.execute(
                    f"""
                    INSERT INTO {_U.table} ({_U.name}, {_U.email}, {_U.password_digest}, {_U.created_at})
                    VALUES (?, ?, ?, ?)
                    """,
                    (name, email, password_digest, now),
                )
                row = conn.execute(
                    f"SELECT * FROM {_U.table} WHERE {_U.id} = ?", (cur.lastrowid,)
                ).fetchone()
                assert row is not None
                return self._row_to_entity(row)
        except sqlite3.IntegrityError as e:
            raise ValidationError(EMAIL_TAKEN) from e

    def get(self, user_id: int) -> Optional[UserEntity]:
        with self._db.connect() as conn:
            row = conn.execute(f"SELECT * FROM {_U.table} WHERE {_U.id} = ?", (user_id,)).fetchone()
            return self._row_to_entity(row) if row else None

    def get_by_email(self, email: str) -> Optional[UserEntity]:
        with self._db.connect() as conn:
            row = conn.execute(f"SELECT * FROM {_U.table} WHERE {_U.email} = ?", (email,)).fetchone()
            return self._row_to_entity(row) if row else None

    def delete(self, user_id: int) -> bool:
        with self._db.connect() as conn:
            cur = conn.execute(f"DELETE FROM {_U.table} WHERE {_U.id} = ?", (user_id,))
            return cur.rowcount > 0

    def count(self) -> int:
        with self._db.connect() as conn:
            row = conn.execute(f"SELECT COUNT(*) AS cnt FROM {_U.table}").fetchone()
            return int(row["cnt"]) if row else 0


class SQLiteTaskRepository(TaskRepository):
    """
    SQLite task store. Every statement carries the owner predicate.
    """

    def __init__(self, database: _SQLiteDatabase) -> None:
        self._db = database

    def _row_to_entity(self, row: sqlite3.Row) -> TaskEntity:
        return {
            "id": int(row["id"]),
            "user_id": int(row["user_id"]),
            "title": str(row["title"]),
            "description": row["description"],
            "due_date": _parse_dt(row["due_date"]),
            "column": str(row["column"]),
            "done_at": _parse_dt(row["done_at"]),
            "created_at": _parse_dt(row["created_at"]),  # type: ignore
            "updated_at": _parse_dt(row["updated_at"]),  # type: ignore
        }  # type: ignore

    def _fetch(self, conn: sqlite3.Connection, owner_id: int, task_id: int) -> Optional[sqlite3.Row]:
        return conn.execute(
            f"SELECT * FROM {_T.table} WHERE {_T.id} = ? AND {_T.user_id} = ?",
            (task_id, owner_id),
        ).fetchone()

    def _select_all(self, owner_id: int) -> List[TaskEntity]:
        with self._db.connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM {_T.table} WHERE {_T.user_id} = ? ORDER BY {_T.id} ASC",
                (owner_id,),
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]

    def _select(self, owner_id: int, task_id: int) -> Optional[TaskEntity]:
        with self._db.connect() as conn:
            row = self._fetch(conn, owner_id, task_id)
            return self._row_to_entity(row) if row else None

    def _insert(self, owner_id: int, values: Dict[str, Any]) -> TaskEntity:
        with self._db.connect() as conn:
            cur = conn.execute(
                f"""
                INSERT INTO {_T.table} ({_T.user_id}, {_T.title}, {_T.description}, {_T.due_date},
                    {_T.column}, {_T.done_at}, {_T.created_at}, {_T.updated_at})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    owner_id,
                    values["title"],
                    values["description"],
                    _format_dt(values["due_date"]),
                    values["column"],
                    _format_dt(values["done_at"]),
                    _format_dt(values["created_at"]),
                    _format_dt(values["updated_at"]),
                ),
            )
            row = self._fetch(conn, owner_id, int(cur.lastrowid))
            assert row is not None
            return self._row_to_entity(row)

    def _modify(self, owner_id: int, task_id: int, mutate: TaskMutation) -> Optional[TaskEntity]:
        with self._db.connect(immediate=True) as conn:
            row = self._fetch(conn, owner_id, task_id)
            if not row:
                return None
            changes = mutate(self._row_to_entity(row))
            if changes:
                columns = [getattr(_T, name) for name in changes]
                params: List[Any] = [
                    _format_dt(value) if name in _DATETIME_FIELDS else value
                    for name, value in changes.items()
                ]
                assignments = ", ".join(f"{col} = ?" for col in columns)
                conn.execute(
                    f"UPDATE {_T.table} SET {assignments} WHERE {_T.id} = ? AND {_T.user_id} = ?",
                    [*params, task_id, owner_id],
                )
            row2 = self._fetch(conn, owner_id, task_id)
            assert row2 is not None
            return self._row_to_entity(row2)

    def _remove(self, owner_id: int, task_id: int) -> bool:
        with self._db.connect() as conn:
            cur = conn.execute(
                f"DELETE FROM {_T.table} WHERE {_T.id} = ? AND {_T.user_id} = ?",
                (task_id, owner_id),
            )
            return cur.rowcount > 0


def create_sqlite_repositories(db_path: str) -> Tuple[UserRepository, TaskRepository]:
    database = _SQLiteDatabase(db_path)
    return SQLiteUserRepository(database), SQLiteTaskRepository(database)
