import json
import logging

from fastapi.testclient import TestClient

from conftest import make_settings
from kanban_api.generate_openapi import generate_openapi
from kanban_api.main import create_app


class TestHealth:
    def test_health_check(self, client):
        res = client.get("/")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert data["backend"] in ("memory", "sqlite")

    def test_sqlite_backend_end_to_end(self, tmp_path):
        settings = make_settings(persistence_backend="sqlite", sqlite_db_path=str(tmp_path / "db" / "kanban.db"))
        client = TestClient(create_app(settings))
        assert client.get("/").json()["backend"] == "sqlite"

        payload = {"user": {"name": "Alice", "email": "a@x.com", "password": "Passw0rd!"}}
        assert client.post("/api/v1/users", json=payload).status_code == 201
        token = client.post("/api/v1/login", json={"email": "a@x.com", "password": "Passw0rd!"}).json()["token"]
        headers = {"Authorization": f"Bearer {token}"}
        created = client.post("/api/v1/tasks", json={"task": {"title": "Persisted"}}, headers=headers)
        assert created.status_code == 201

        # A second app on the same file sees the same data
        again = TestClient(create_app(settings))
        res = again.get("/api/v1/tasks", headers=headers)
        assert res.status_code == 200
        assert [t["title"] for t in res.json()] == ["Persisted"]

        # Ids past the 64-bit range are simply absent
        res = again.get("/api/v1/tasks/9223372036854775808", headers=headers)
        assert res.status_code == 404
        assert res.json() == {"error": "Task not found or not authorized"}


class TestOpenAPI:
    def test_generate_openapi_writes_schema(self, tmp_path):
        out = generate_openapi(str(tmp_path / "interfaces" / "openapi.json"))
        schema = json.loads(open(out, encoding="utf-8").read())
        assert "/api/v1/tasks" in schema["paths"]
        assert "/api/v1/login" in schema["paths"]
        assert {t["name"] for t in schema["tags"]} >= {"health", "auth", "users", "tasks"}


class TestLogging:
    def test_create_app_leaves_root_logger_alone(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        create_app(make_settings(log_level="DEBUG"))
        assert root.handlers == handlers
        assert root.level == level
