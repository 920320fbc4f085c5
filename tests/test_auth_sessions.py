"""Tests for registration, login and cookie-borne sessions."""
from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Iterator
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import delete, select

# Ensure the database URL and JWT secret are available before importing application modules.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///./test_auth_sessions.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from swachhmap.config import get_settings  # noqa: E402
from swachhmap.database import Base, SessionLocal, engine  # noqa: E402
from swachhmap.main import app  # noqa: E402
from swachhmap.models import Report, Review, User  # noqa: E402
from swachhmap.services.auth_service import Identity, issue_session, session_from_token  # noqa: E402


@pytest.fixture(scope="module", autouse=True)
def _create_schema() -> Iterator[None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_database() -> Iterator[None]:
    with SessionLocal() as session:
        session.execute(delete(Review))
        session.execute(delete(Report))
        session.execute(delete(User))
        session.commit()
    yield


@pytest.fixture
def client() -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


def _register(client: TestClient, username: str, email: str | None = None, password: str = "swachh-pass"):
    return client.post(
        "/auth/register",
        json={"username": username, "email": email or f"{username}@example.com", "password": password},
    )


def test_register_sets_session_cookie(client):
    response = _register(client, "ravi")

    assert response.status_code == 201
    body = response.json()
    assert body["user"]["username"] == "ravi"
    assert body["user"]["email"] == "ravi@example.com"
    assert body["user"]["is_admin"] is False
    assert body["expires_at"]

    set_cookie = response.headers["set-cookie"].lower()
    assert set_cookie.startswith("token=")
    assert "httponly" in set_cookie
    assert "samesite=lax" in set_cookie
    assert "path=/" in set_cookie
    assert f"max-age={7 * 24 * 60 * 60}" in set_cookie

    me = client.get("/auth/me")
    assert me.status_code == 200
    assert me.json()["username"] == "ravi"


def test_register_rejects_duplicate_username_or_email(client):
    assert _register(client, "asha").status_code == 201

    same_name = _register(client, "asha", email="other@example.com")
    assert same_name.status_code == 409
    assert same_name.json() == {"error": "User already exists."}

    same_email = _register(client, "asha2", email="ASHA@example.com")
    assert same_email.status_code == 409

    with SessionLocal() as session:
        assert len(session.scalars(select(User)).all()) == 1


def test_register_validates_payload(client):
    response = client.post("/auth/register", json={"username": "kiran", "email": "not-an-email", "password": "pw"})

    assert response.status_code == 400
    assert "error" in response.json()


def test_login_by_email_or_username(client):
    _register(client, "meena", password="correct-horse")

    with TestClient(app) as fresh:
        by_email = fresh.post("/auth/login", json={"email": "meena@example.com", "password": "correct-horse"})
        assert by_email.status_code == 200
        assert by_email.json()["user"]["username"] == "meena"
        assert fresh.get("/auth/me").status_code == 200

    with TestClient(app) as fresh:
        by_username = fresh.post("/auth/login", json={"username": "meena", "password": "correct-horse"})
        assert by_username.status_code == 200


def test_login_rejects_wrong_password(client):
    _register(client, "vikram", password="correct-horse")

    with TestClient(app) as fresh:
        response = fresh.post("/auth/login", json={"username": "vikram", "password": "wrong-horse"})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid credentials."}
        assert fresh.get("/auth/me").status_code == 401


def test_login_requires_identifier(client):
    response = client.post("/auth/login", json={"password": "anything"})

    assert response.status_code == 400
    assert response.json() == {"error": "Email/username and password required."}


def test_me_requires_session(client):
    response = client.get("/auth/me")

    assert response.status_code == 401
    assert response.json() == {"error": "Authentication required"}


def test_admin_emails_are_provisioned_at_registration(client, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAILS", "ops@example.com, Chief@Example.com")
    get_settings.cache_clear()
    try:
        admin = _register(client, "chief", email="chief@example.com")
    finally:
        monkeypatch.delenv("ADMIN_EMAILS")
        get_settings.cache_clear()

    assert admin.status_code == 201
    assert admin.json()["user"]["is_admin"] is True
    assert client.get("/auth/me").json()["is_admin"] is True


def test_session_from_token_round_trip():
    identity = Identity(user_id=uuid4(), username="leela", email="leela@example.com", is_admin=True)
    session = issue_session(identity)

    assert session_from_token(session.token) == identity
    assert session.expires_at - datetime.now(timezone.utc) > timedelta(days=6)


def test_session_from_token_treats_bad_tokens_as_anonymous():
    identity = Identity(user_id=uuid4(), username="leela", email="leela@example.com")
    token = issue_session(identity).token

    assert session_from_token(None) is None
    assert session_from_token("") is None
    assert session_from_token("not-a-jwt") is None
    other = issue_session(Identity(user_id=uuid4(), username="mallory", email="m@example.com", is_admin=True)).token
    header, _, signature = token.split(".")
    other_claims = other.split(".")[1]
    assert session_from_token(f"{header}.{other_claims}.{signature}") is None

    expired = issue_session(identity, now=datetime.now(timezone.utc) - timedelta(days=8)).token
    assert session_from_token(expired) is None

    forged = jwt.encode({"sub": str(identity.user_id), "username": "leela"}, "another-key", algorithm="HS256")
    assert session_from_token(forged) is None
