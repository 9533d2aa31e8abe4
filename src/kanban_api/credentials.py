from __future__ import annotations

import logging
import re
from typing import List, Optional

from .errors import ValidationError
from .models import UserEntity
from .repositories import UserRepository
from .security import PasswordHasher

logger = logging.getLogger(__name__)

# At least 8 characters with one lowercase letter, one uppercase letter and one digit.
PASSWORD_PATTERN = re.compile(r"\A(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{8,}\Z", re.DOTALL)
PASSWORD_POLICY_MESSAGE = (
    "Password must include at least one uppercase letter, one lowercase letter, "
    "and one number (min 8 characters)"
)


def normalize_email(email: str) -> str:
    """Emails are compared case-insensitively; they are stored lower-cased."""
    return (email or "").strip().lower()


def password_problems(password: str) -> List[str]:
    if not password:
        return ["Password can't be blank"]
    if not PASSWORD_PATTERN.match(password):
        return [PASSWORD_POLICY_MESSAGE]
    return []


# PUBLIC_INTERFACE
class CredentialStore:
    """
    Owns user records: registration with validation, lookups and password checks.
    """

    def __init__(self, users: UserRepository, hasher: PasswordHasher) -> None:
        self._users = users
        self._hasher = hasher

    # PUBLIC_INTERFACE
    def register(self, name: str, email: str, password: str) -> UserEntity:
        """
        Create a user and return it.

        Raises:
            ValidationError: listing every problem found (blank name, blank or
            taken email, weak password). Nothing is stored in that case.
        """
        name = (name or "").strip()
        email = normalize_email(email)

        errors: List[str] = []
        if not name:
            errors.append("Name can't be blank")
        if not email:
            errors.append("Email can't be blank")
        elif self._users.get_by_email(email) is not None:
            errors.append("Email has already been taken")
        errors.extend(password_problems(password))
        if errors:
            raise ValidationError(errors)

        # The store's unique constraint still guards against a concurrent insert
        user = self._users.add(name, email, self._hasher.hash(password))
        logger.info("Registered user %s", user["id"])
        return user

    # PUBLIC_INTERFACE
    def find_by_email(self, email: str) -> Optional[UserEntity]:
        return self._users.get_by_email(normalize_email(email))

    # PUBLIC_INTERFACE
    def find_by_id(self, user_id: int) -> Optional[UserEntity]:
        return self._users.get(user_id)

    # PUBLIC_INTERFACE
    def verify_password(self, user: UserEntity, candidate: str) -> bool:
        return self._hasher.verify(candidate or "", user["password_digest"])

    # PUBLIC_INTERFACE
    def authenticate(self, email: str, password: str) -> Optional[UserEntity]:
        """Return the user when email and password match, else None."""
        user = self.find_by_email(email)
        if user is None or not self.verify_password(user, password):
            return None
        return user

    def delete_user(self, user_id: int) -> bool:
        """Remove a user together with all of their tasks."""
        deleted = self._users.delete(user_id)
        if deleted:
            logger.info("Deleted user %s and their tasks", user_id)
        return deleted
