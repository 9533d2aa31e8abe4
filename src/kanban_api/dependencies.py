from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request

from .auth import RequestAuthenticator
from .credentials import CredentialStore
from .models import UserEntity
from .repositories import TaskRepository, get_repositories
from .security import PasswordHasher, TokenService
from .settings import Settings


@dataclass(frozen=True)
class Services:
    """Everything a request handler needs, built once per application."""

    settings: Settings
    credentials: CredentialStore
    tokens: TokenService
    tasks: TaskRepository
    authenticator: RequestAuthenticator


# PUBLIC_INTERFACE
def build_services(settings: Settings, tokens: Optional[TokenService] = None) -> Services:
    """
    Wire repositories, hashing, tokens and the authenticator from ``settings``.

    ``tokens`` may be supplied to share a TokenService (for instance one with a
    controlled clock) instead of building one from the settings.
    """
    users, tasks = get_repositories(settings)
    credentials = CredentialStore(users, PasswordHasher(rounds=settings.password_hash_rounds))
    tokens = tokens or TokenService.from_settings(settings)
    return Services(
        settings=settings,
        credentials=credentials,
        tokens=tokens,
        tasks=tasks,
        authenticator=RequestAuthenticator(tokens, credentials),
    )


# --- Service Dependency ---
def get_services(request: Request) -> Services:
    return request.app.state.services


# --- Auth Dependency ---
def get_current_user(
    authorization: Optional[str] = Header(default=None),
    services: Services = Depends(get_services),
) -> UserEntity:
    """Authenticated user of the current request; raises AuthError (401) otherwise."""
    return services.authenticator.authenticate(authorization)
