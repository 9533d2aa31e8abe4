from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional, TypedDict


# PUBLIC_INTERFACE
class TaskColumn(str, Enum):
    """Workflow columns of the board, in display order."""

    TODO = "todo"
    DOING = "doing"
    TEST = "test"
    DONE = "done"


TERMINAL_COLUMN = TaskColumn.DONE


# PUBLIC_INTERFACE
class UserEntity(TypedDict):
    """
    Stored user record.

    Fields:
    - id: Unique integer identifier, allocated by the store
    - name: Display name (non-empty)
    - email: Login email, lower-cased and unique across users
    - password_digest: bcrypt digest of the password; never leaves the server
    - created_at: Creation timestamp
    """

    id: int
    name: str
    email: str
    password_digest: str
    created_at: datetime


# PUBLIC_INTERFACE
class TaskEntity(TypedDict):
    """
    Stored task record. Every task belongs to exactly one user.

    Fields:
    - id: Unique integer identifier
    - user_id: Identifier of the owning user
    - title: Short title (1..200 chars, trimmed on input via schemas)
    - description: Optional detailed description
    - due_date: Optional due datetime
    - column: One of the TaskColumn values
    - done_at: Completion timestamp, set while the task sits in the done column
    - created_at: Creation timestamp
    - updated_at: Last update timestamp
    """

    id: int
    user_id: int
    title: str
    description: Optional[str]
    due_date: Optional[datetime]
    column: str
    done_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


def public_user(user: UserEntity) -> dict:
    """Return the user fields that may be sent to clients."""
    return {"id": user["id"], "name": user["name"], "email": user["email"]}
