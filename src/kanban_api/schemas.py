from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import TaskColumn

# Shared type for incoming timestamps which can be a date, datetime, or ISO8601 string
DateTimeInput = Union[date, datetime, str]


def _parse_datetime(value: Optional[DateTimeInput]) -> Optional[datetime]:
    """
    Internal helper to normalize timestamp input into a datetime (naive allowed).
    - If value is a string, attempt to parse via datetime.fromisoformat; if time is missing, set to 00:00.
    - If value is a date (not datetime), convert to datetime at 00:00.
    - If value is a datetime, return as-is.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, 0, 0, 0)

    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        try:
            return datetime.fromisoformat(s)
        except ValueError:
            try:
                d = date.fromisoformat(s)
                return datetime(d.year, d.month, d.day, 0, 0, 0)
            except ValueError as e:
                raise ValueError(
                    "Invalid date format. Use ISO8601 date or datetime string (e.g., '2025-01-31' or '2025-01-31T13:45:00')."
                ) from e

    raise ValueError("Invalid type for date; expected date, datetime, or ISO8601 string.")


# ---------------------------------------------------------------------------
# Users and login
# ---------------------------------------------------------------------------


# PUBLIC_INTERFACE
class UserCreate(BaseModel):
    """
    Registration fields. Presence, uniqueness and password strength are checked
    by the credential store so that all problems are reported together.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"name": "Alice", "email": "a@x.com", "password": "Passw0rd!"}
        }
    )

    name: str = Field(default="", description="Display name")
    email: str = Field(default="", description="Login email, unique across users")
    password: str = Field(default="", description="Plaintext password; only its digest is stored")


class UserRegistration(BaseModel):
    user: UserCreate


# PUBLIC_INTERFACE
class UserOut(BaseModel):
    """User as returned by the API. The password digest is never included."""

    id: int = Field(..., description="Unique identifier of the user")
    name: str
    email: str


class UserResponse(BaseModel):
    user: UserOut


class UserCreatedResponse(BaseModel):
    message: str
    user: UserOut


# PUBLIC_INTERFACE
class LoginRequest(BaseModel):
    """Credentials posted to /login."""

    model_config = ConfigDict(
        json_schema_extra={"example": {"email": "a@x.com", "password": "Passw0rd!"}}
    )

    email: str = Field(default="")
    password: str = Field(default="")


class LoginResponse(BaseModel):
    message: str
    token: str = Field(..., description="Bearer token to send as 'Authorization: Bearer <token>'")
    user: UserOut


class ErrorResponse(BaseModel):
    error: str


class ErrorListResponse(BaseModel):
    errors: List[str]


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


# PUBLIC_INTERFACE
class TaskCreate(BaseModel):
    """
    Schema for creating a new task.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Write spec",
                "description": "First draft",
                "due_date": "2025-02-01",
                "column": "todo",
            }
        }
    )

    title: str = Field(..., description="Short title for the task", min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    due_date: Optional[datetime] = Field(
        default=None,
        description="Due date/time. Accepts ISO8601 date or datetime; dates are set to 00:00",
    )
    column: TaskColumn = Field(default=TaskColumn.TODO, description="Board column")
    done_at: Optional[datetime] = Field(default=None, description="Completion timestamp")

    @field_validator("title", mode="before")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """
        Strip whitespace and enforce 1..200 length.
        """
        if not isinstance(v, str):
            raise ValueError("title must be a string")
        s = v.strip()
        if not (1 <= len(s) <= 200):
            raise ValueError("title length must be between 1 and 200 characters")
        return s

    @field_validator("due_date", "done_at", mode="before")
    @classmethod
    def parse_timestamps(cls, v: Optional[DateTimeInput]) -> Optional[datetime]:
        return _parse_datetime(v)


# PUBLIC_INTERFACE
class TaskUpdate(BaseModel):
    """
    Schema for updating an existing task.
    All fields are optional; only provided fields will be updated.
    """

    model_config = ConfigDict(
        json_schema_extra={"example": {"column": "doing"}}
    )

    title: Optional[str] = Field(default=None, description="Short title for the task", min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    due_date: Optional[datetime] = Field(default=None, description="Due date/time")
    column: Optional[TaskColumn] = Field(default=None, description="Board column")
    done_at: Optional[datetime] = Field(default=None, description="Completion timestamp")

    @field_validator("title", mode="before")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        """
        If title is provided, strip whitespace and enforce 1..200 length.
        """
        if v is None:
            return v
        if not isinstance(v, str):
            raise ValueError("title must be a string")
        s = v.strip()
        if not (1 <= len(s) <= 200):
            raise ValueError("title length must be between 1 and 200 characters")
        return s

    @field_validator("due_date", "done_at", mode="before")
    @classmethod
    def parse_timestamps(cls, v: Optional[DateTimeInput]) -> Optional[datetime]:
        return _parse_datetime(v)


class TaskPayload(BaseModel):
    task: TaskCreate


class TaskPatch(BaseModel):
    task: TaskUpdate


# PUBLIC_INTERFACE
class TaskOut(BaseModel):
    """
    Schema returned by the API for a task.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 7,
                "user_id": 1,
                "title": "Write spec",
                "description": "First draft",
                "due_date": "2025-02-01T00:00:00",
                "column": "doing",
                "done_at": None,
                "created_at": "2025-01-25T10:15:30.123456",
                "updated_at": "2025-01-26T09:00:00.000001",
            }
        }
    )

    id: int = Field(..., description="Unique identifier of the task")
    user_id: int = Field(..., description="Identifier of the owning user")
    title: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    column: TaskColumn
    done_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
