import os
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

# Keep module-level app construction cheap and deterministic
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")

from kanban_api.main import create_app  # noqa: E402
from kanban_api.security import TokenService  # noqa: E402
from kanban_api.settings import Settings  # noqa: E402

API = "/api/v1"
STRONG_PASSWORD = "Passw0rd!"


class FakeClock:
    """Settable clock shared by the token service under test."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_settings(**overrides) -> Settings:
    values = dict(
        persistence_backend="memory",
        sqlite_db_path="",
        cors_allow_origins=["*"],
        secret_key="test-secret",
        password_hash_rounds=4,
        log_level="WARNING",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def tokens(settings, clock):
    return TokenService.from_settings(settings, clock=clock)


@pytest.fixture
def app(settings, tokens):
    return create_app(settings, tokens=tokens)


@pytest.fixture
def client(app):
    return TestClient(app)


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def register(client, name="Alice", email="a@x.com", password=STRONG_PASSWORD):
    return client.post(f"{API}/users", json={"user": {"name": name, "email": email, "password": password}})


def login(client, email="a@x.com", password=STRONG_PASSWORD):
    return client.post(f"{API}/login", json={"email": email, "password": password})


def signed_in(client, name, email):
    """Register and log in a user; return (user, headers)."""
    res = register(client, name=name, email=email)
    assert res.status_code == 201
    res = login(client, email=email)
    assert res.status_code == 200
    body = res.json()
    return body["user"], auth_headers(body["token"])


@pytest.fixture
def alice(client):
    return signed_in(client, "Alice", "a@x.com")


@pytest.fixture
def bob(client):
    return signed_in(client, "Bob", "b@x.com")
