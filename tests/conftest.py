import importlib.util
import pathlib
from datetime import datetime

import pytest

from drawlab.core.config import Config
from drawlab.core.database import DatabaseManager


def load_app_module():
    app_path = pathlib.Path(__file__).resolve().parents[1] / "app.py"
    spec = importlib.util.spec_from_file_location("app_main", app_path)
    app_module = importlib.util.module_from_spec(spec)
    assert spec and spec.loader
    spec.loader.exec_module(app_module)
    return app_module


def make_config(tmp_path, **overrides):
    # テスト用に一時DBへ向ける
    attrs = {
        "DATABASE_URL": f"sqlite:///{tmp_path / 'test.db'}",
        "SECRET_KEY": "test-secret",
        "ADMIN_PASSWORD": "adminpass",
        "DEBUG": False,
        "TESTING": True,
        "AI_API_KEY": "test-key",
        "UPLOAD_FOLDER": str(tmp_path / "uploads"),
        "RESET_TOKEN_IN_RESPONSE": True,
    }
    attrs.update(overrides)
    return type("SandboxConfig", (Config,), attrs)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeHttp:
    """Stands in for requests.Session in the evaluator and the API client"""

    def __init__(self, response=None, error=None):
        self.response = response or FakeResponse()
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response


def completion(content):
    return FakeResponse(200, {"choices": [{"message": {"content": content}}]})


class Clock:
    def __init__(self, now=None):
        self.now = now or datetime(2025, 1, 15, 12, 0, 0)

    def __call__(self):
        return self.now


@pytest.fixture()
def config(tmp_path):
    return make_config(tmp_path)


@pytest.fixture()
def app(config):
    return load_app_module().create_app(config)


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def db(tmp_path):
    manager = DatabaseManager({"DATABASE_TYPE": "sqlite", "DATABASE": str(tmp_path / "unit.db")})
    manager.init_database()
    return manager


@pytest.fixture()
def register(client):
    def _register(email="student@example.com", password="secret123", branch="cst", **extra):
        body = {"action": "register", "email": email, "password": password, "branch": branch}
        body.update(extra)
        return client.post("/functions/student-auth", json=body)
    return _register


@pytest.fixture()
def admin_token(client):
    resp = client.post("/functions/admin-api", json={"action": "login", "password": "adminpass"})
    assert resp.status_code == 200
    return resp.get_json()["adminToken"]
