from __future__ import annotations

from enum import Enum
from typing import Iterable, List, Union


class AppError(Exception):
    """Base class for errors that are reported to API callers."""


# PUBLIC_INTERFACE
class ValidationError(AppError):
    """
    Client-fixable input problem. Carries one or more human-readable messages
    and is reported as HTTP 422 ``{"errors": [...]}``.
    """

    def __init__(self, messages: Union[str, Iterable[str]]) -> None:
        if isinstance(messages, str):
            messages = [messages]
        self.messages: List[str] = list(messages)
        super().__init__("; ".join(self.messages))


class AuthFailure(str, Enum):
    MISSING_TOKEN = "missing_token"
    MALFORMED = "malformed"
    EXPIRED = "expired"
    UNKNOWN_USER = "unknown_user"


# PUBLIC_INTERFACE
class AuthError(AppError):
    """
    Authentication failure. The reason is kept for logging and tests only;
    every reason is reported to callers as the same HTTP 401 response.
    """

    def __init__(self, reason: AuthFailure) -> None:
        self.reason = reason
        super().__init__(reason.value)


# PUBLIC_INTERFACE
class NotFoundError(AppError):
    """
    Resource is absent, or exists but is not owned by the caller. The two cases
    are reported identically (HTTP 404).
    """

    def __init__(self, message: str = "Not found") -> None:
        self.message = message
        super().__init__(message)
