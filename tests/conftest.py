import os
import sys
import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session, create_engine
from sqlalchemy.pool import StaticPool

ROOT_DIR = os.path.dirname(os.path.dirname(__file__))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# main reads its settings at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("APP_ENV", "test")

from config import Settings, get_settings  # noqa: E402
from main import app, get_session  # noqa: E402


TEST_SECRET = "test-secret"

test_settings = Settings(
    database_url="sqlite://",
    jwt_secret=TEST_SECRET,
    app_env="test",
    smtp_host=None,
)

test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
DBSession = Session


@pytest.fixture
def settings():
    return test_settings


@pytest.fixture(scope="function")
def client():
    """Return a TestClient wired to a fresh in-memory database for each test."""
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)

    def override_get_session():
        with DBSession(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_settings] = lambda: test_settings

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def db_session(client):
    """A Session on the same in-memory database the client uses."""
    with DBSession(test_engine) as session:
        yield session


@pytest.fixture
def sent_mail(monkeypatch):
    """Capture password reset mails instead of talking to SMTP."""
    import main

    outbox = []

    def fake_send(settings, to_address, token):
        outbox.append({"to": to_address, "token": token})
        return True

    monkeypatch.setattr(main, "send_password_reset_email", fake_send)
    return outbox


@pytest.fixture
def auth_helpers(client):
    """
    Common auth utilities shared across test modules.
    Provides register/login helpers and a token helper.
    """

    def register_user(email: str, password: str, name: str = "Test User"):
        return client.post(
            "/api/auth/register",
            json={"name": name, "email": email, "password": password},
        )

    def login_user(email: str, password: str):
        return client.post("/api/auth/login", json={"email": email, "password": password})

    def get_token(email: str, password: str) -> str:
        res_reg = register_user(email, password)
        assert res_reg.status_code in (201, 400)
        res_login = login_user(email, password)
        assert res_login.status_code == 200
        data = res_login.json()
        assert "token" in data
        return data["token"]

    def auth_headers(token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}

    return {
        "register_user": register_user,
        "login_user": login_user,
        "get_token": get_token,
        "auth_headers": auth_headers,
    }
