"""
Python client for the Kanban API.

Mirrors the web client's session behavior:

- at most one bearer token is kept in a TokenStore (memory or a JSON file);
- protected calls attach it as ``Authorization: Bearer <token>`` and are not
  sent at all when no token is stored (MissingTokenError);
- any 401 response discards the token, raises SessionExpiredError with the
  server's message and sends the user to the login view through the
  ``navigate`` callback. There is no silent refresh.

Usage:
    client = TaskBoardClient("http://localhost:8000", token_store=FileTokenStore("~/.kanban.json"))
    client.login("a@x.com", "Passw0rd!")
    board = Board()
    board.refresh(client)
"""
from __future__ import annotations

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import httpx

from .models import TaskColumn

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
LOGIN_VIEW = "/login"
MISSING_TOKEN_MESSAGE = "Unauthorized. No token found."
UNAUTHORIZED_MESSAGE = "Your session has expired. Please log in again."
UNPARSEABLE_MESSAGE = "Unable to parse server response."

Navigator = Callable[[str], None]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ClientError(Exception):
    """Base class for client-side failures."""


class MissingTokenError(ClientError):
    """A protected call was attempted while logged out; nothing was sent."""

    def __init__(self, message: str = MISSING_TOKEN_MESSAGE) -> None:
        self.message = message
        super().__init__(message)


class ApiError(ClientError):
    """The server answered with a non-success status."""

    def __init__(self, status_code: int, message: str, payload: Any = None) -> None:
        self.status_code = status_code
        self.message = message
        self.payload = payload
        super().__init__(f"{status_code}: {message}")


class SessionExpiredError(ApiError):
    """The server rejected the request with 401; the stored token has been discarded."""

    def __init__(self, message: str, payload: Any = None) -> None:
        super().__init__(401, message, payload)


def extract_error_message(payload: Any) -> Optional[str]:
    """First entry of ``errors``, else ``error``, else ``message``."""
    if not isinstance(payload, dict):
        return None
    errors = payload.get("errors")
    if isinstance(errors, list) and errors:
        return str(errors[0])
    for key in ("error", "message"):
        value = payload.get(key)
        if value:
            return str(value)
    return None


# ---------------------------------------------------------------------------
# Token storage
# ---------------------------------------------------------------------------


# PUBLIC_INTERFACE
class TokenStore(ABC):
    """Holds at most one token. No token means logged out."""

    @abstractmethod
    def get(self) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, token: str) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class MemoryTokenStore(TokenStore):
    def __init__(self, token: Optional[str] = None) -> None:
        self._token = token

    def get(self) -> Optional[str]:
        return self._token

    def set(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class FileTokenStore(TokenStore):
    """
    Persists the token in a JSON file under the ``"token"`` key. Other keys in
    the file are preserved.
    """

    def __init__(self, path: str) -> None:
        self._path = os.path.expanduser(path)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, Any]:
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable token file %s", self._path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        os.makedirs(os.path.dirname(self._path) or ".", exist_ok=True)
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(data, f)

    def get(self) -> Optional[str]:
        with self._lock:
            token = self._read().get(TOKEN_KEY)
            return token if isinstance(token, str) and token else None

    def set(self, token: str) -> None:
        with self._lock:
            data = self._read()
            data[TOKEN_KEY] = token
            self._write(data)

    def clear(self) -> None:
        with self._lock:
            data = self._read()
            if data.pop(TOKEN_KEY, None) is not None:
                self._write(data)


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


# PUBLIC_INTERFACE
class TaskBoardClient:
    """
    Session-aware client for the Kanban API.

    ``http`` may be any ``httpx.Client`` (FastAPI's TestClient included); when
    omitted one is created for ``base_url``.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        api_root: str = "/api/v1",
        token_store: Optional[TokenStore] = None,
        http: Optional[httpx.Client] = None,
        navigate: Optional[Navigator] = None,
        timeout: float = 10.0,
    ) -> None:
        self._api_root = api_root.rstrip("/")
        self._tokens = token_store or MemoryTokenStore()
        self._http = http or httpx.Client(base_url=base_url, timeout=timeout)
        self._navigate = navigate

    @property
    def token_store(self) -> TokenStore:
        return self._tokens

    @property
    def is_authenticated(self) -> bool:
        return self._tokens.get() is not None

    def close(self) -> None:
        self._http.close()

    def _url(self, path: str) -> str:
        return f"{self._api_root}{path}"

    def _handle_unauthorized(self, payload: Any) -> SessionExpiredError:
        self._tokens.clear()
        message = extract_error_message(payload) or UNAUTHORIZED_MESSAGE
        logger.info("Session ended by server: %s", message)
        if self._navigate is not None:
            self._navigate(LOGIN_VIEW)
        return SessionExpiredError(message, payload)

    def _request(self, method: str, path: str, json_body: Any = None, authenticated: bool = True) -> Any:
        headers: Dict[str, str] = {}
        if authenticated:
            token = self._tokens.get()
            if not token:
                raise MissingTokenError()
            headers["Authorization"] = f"Bearer {token}"

        response = self._http.request(method, self._url(path), json=json_body, headers=headers)

        if response.status_code == 204 or not response.content:
            payload: Any = None
        else:
            try:
                payload = response.json()
            except ValueError:
                payload = {"message": UNPARSEABLE_MESSAGE}

        if response.status_code == 401:
            raise self._handle_unauthorized(payload)
        if response.is_error:
            message = extract_error_message(payload) or f"Request failed with status {response.status_code}."
            raise ApiError(response.status_code, message, payload)
        return payload

    # --- Session ---------------------------------------------------------

    # PUBLIC_INTERFACE
    def register(self, name: str, email: str, password: str) -> Dict[str, Any]:
        payload = self._request(
            "POST",
            "/users",
            {"user": {"name": name, "email": email, "password": password}},
            authenticated=False,
        )
        return payload["user"]

    # PUBLIC_INTERFACE
    def login(self, email: str, password: str) -> Dict[str, Any]:
        """Log in and store the returned token. Returns the user."""
        payload = self._request("POST", "/login", {"email": email, "password": password}, authenticated=False)
        token = payload.get("token") if isinstance(payload, dict) else None
        if not token:
            raise ApiError(200, "Login succeeded but no token was returned.", payload)
        self._tokens.set(token)
        return payload.get("user", {})

    # PUBLIC_INTERFACE
    def logout(self) -> None:
        self._tokens.clear()

    # --- Tasks -----------------------------------------------------------

    # PUBLIC_INTERFACE
    def list_tasks(self) -> List[Dict[str, Any]]:
        payload = self._request("GET", "/tasks")
        if not isinstance(payload, list):
            raise ApiError(200, "Unexpected response from the server.", payload)
        return payload

    # PUBLIC_INTERFACE
    def create_task(
        self,
        title: str,
        description: Optional[str] = None,
        due_date: Optional[str] = None,
        column: str = TaskColumn.TODO.value,
        done_at: Optional[str] = None,
    ) -> Dict[str, Any]:
        task: Dict[str, Any] = {"title": title, "description": description, "due_date": due_date, "column": column}
        if done_at is not None:
            task["done_at"] = done_at
        return self._request("POST", "/tasks", {"task": task})

    # PUBLIC_INTERFACE
    def get_task(self, task_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/tasks/{task_id}")

    # PUBLIC_INTERFACE
    def update_task(self, task_id: int, **fields: Any) -> Dict[str, Any]:
        """Send only the given fields (PATCH)."""
        return self._request("PATCH", f"/tasks/{task_id}", {"task": fields})

    # PUBLIC_INTERFACE
    def move_task(self, task_id: int, column: str) -> Dict[str, Any]:
        return self.update_task(task_id, column=TaskColumn(column).value)

    # PUBLIC_INTERFACE
    def delete_task(self, task_id: int) -> None:
        self._request("DELETE", f"/tasks/{task_id}")


# ---------------------------------------------------------------------------
# Board view state
# ---------------------------------------------------------------------------


# PUBLIC_INTERFACE
class Board:
    """
    Tasks grouped by column.

    Each refresh takes a sequence number before its request is sent; a response
    whose sequence is not newer than the last applied one is dropped, so a slow
    stale listing can never overwrite a newer one.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._issued = 0
        self._applied = 0
        self.columns: Dict[str, List[Dict[str, Any]]] = {c.value: [] for c in TaskColumn}

    def next_sequence(self) -> int:
        with self._lock:
            self._issued += 1
            return self._issued

    @property
    def last_applied(self) -> int:
        return self._applied

    def apply(self, sequence: int, tasks: List[Dict[str, Any]]) -> bool:
        """Replace the board with ``tasks`` unless ``sequence`` is stale."""
        with self._lock:
            if sequence <= self._applied:
                logger.debug("Dropping stale board response %s (applied %s)", sequence, self._applied)
                return False
            self._applied = sequence
            columns: Dict[str, List[Dict[str, Any]]] = {c.value: [] for c in TaskColumn}
            for task in tasks:
                columns.setdefault(task.get("column") or TaskColumn.TODO.value, []).append(task)
            self.columns = columns
            return True

    def refresh(self, client: TaskBoardClient) -> bool:
        sequence = self.next_sequence()
        try:
            tasks = client.list_tasks()
        except SessionExpiredError:
            self.clear()
            raise
        return self.apply(sequence, tasks)

    def tasks(self) -> List[Dict[str, Any]]:
        return [t for column in self.columns.values() for t in column]

    def upsert(self, task: Dict[str, Any]) -> None:
        """Place a created or updated task in its column."""
        with self._lock:
            self._discard(task["id"])
            self.columns.setdefault(task["column"], []).append(task)
            self.columns[task["column"]].sort(key=lambda t: t["id"])

    def remove(self, task_id: int) -> None:
        with self._lock:
            self._discard(task_id)

    def clear(self) -> None:
        with self._lock:
            self.columns = {c.value: [] for c in TaskColumn}

    def _discard(self, task_id: int) -> None:
        for column in self.columns.values():
            column[:] = [t for t in column if t["id"] != task_id]
