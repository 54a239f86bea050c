import os

os.environ.setdefault("JWT_SECRET", "incubus-test-secret-with-enough-entropy")
os.environ["INCUBUS_ENV"] = "test"
os.environ["INCUBUS_CACHE_ENABLED"] = "false"
os.environ["INCUBUS_RATE_LIMIT_ENABLED"] = "false"
os.environ["INCUBUS_AUDIT_ENABLED"] = "false"
os.environ["INCUBUS_AUTO_CREATE_TABLES"] = "true"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from incubus.app import create_app  # noqa: E402
from incubus.application.dto.auth import AuthenticatedPrincipal  # noqa: E402
from incubus.core.config import get_settings  # noqa: E402
from incubus.core.database import DatabaseManager  # noqa: E402

get_settings.cache_clear()


def make_principal(user_id: int = 1, **overrides) -> AuthenticatedPrincipal:
    values = {
        "user_id": user_id,
        "email": f"user{user_id}@example.com",
        "name": f"User {user_id}",
        "role": "user",
        "roles": ("user",),
    }
    values.update(overrides)
    return AuthenticatedPrincipal(**values)


@pytest.fixture
def app():
    application = create_app()
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app):
    # No context manager: the lifespan (database, bootstrap) stays off for route tests.
    return TestClient(app)


@pytest.fixture
async def database(tmp_path, monkeypatch):
    monkeypatch.setenv("INCUBUS_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'incubus.db'}")
    get_settings.cache_clear()
    await DatabaseManager.initialize()
    yield
    await DatabaseManager.close()
    monkeypatch.delenv("INCUBUS_DATABASE_URL")
    get_settings.cache_clear()
