"""Credential checks and cookie-borne session tokens."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from uuid import UUID

from fastapi import Depends, HTTPException, Request, Response, status
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session as OrmSession

from ..config import get_settings
from ..models import User
from ..schemas import LoginRequest, RegisterRequest
from ..security.secrets import MissingSecretError, require_secret

logger = logging.getLogger(__name__)

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


@dataclass(frozen=True)
class Identity:
    """Claims carried by a session token."""

    user_id: UUID
    username: str
    email: str
    is_admin: bool = False

    @property
    def label(self) -> str:
        return self.email or self.username


@dataclass(frozen=True)
class Session:
    token: str
    identity: Identity
    expires_at: datetime


@lru_cache(maxsize=1)
def _get_jwt_secret() -> str:
    try:
        return require_secret("JWT_SECRET_KEY")
    except MissingSecretError as exc:
        raise RuntimeError(str(exc)) from exc


def hash_password(password: str) -> str:
    """Hash a plain-text password using bcrypt."""

    return _pwd_context.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    """Verify that ``password`` matches ``hashed_password``."""

    try:
        return _pwd_context.verify(password, hashed_password)
    except Exception:  # pragma: no cover - passlib internal errors are rare
        logger.exception("Password verification failed due to an unexpected error")
        return False


def identity_for(user: User) -> Identity:
    return Identity(
        user_id=user.id,
        username=user.username,
        email=user.email,
        is_admin=bool(user.is_admin),
    )


def issue_session(identity: Identity, *, now: datetime | None = None) -> Session:
    """Sign a token for ``identity`` that expires after the configured lifetime."""

    settings = get_settings()
    issued_at = now or datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(days=settings.session_ttl_days)
    payload = {
        "sub": str(identity.user_id),
        "username": identity.username,
        "email": identity.email,
        "is_admin": identity.is_admin,
        "iat": issued_at,
        "exp": expires_at,
    }
    token = jwt.encode(payload, _get_jwt_secret(), algorithm=settings.jwt_algorithm)
    return Session(token=token, identity=identity, expires_at=expires_at)


def session_from_token(token: str | None) -> Identity | None:
    """Return the identity bound to ``token`` or ``None`` for anonymous callers."""

    if not token:
        return None
    try:
        payload = jwt.decode(token, _get_jwt_secret(), algorithms=[get_settings().jwt_algorithm])
    except JWTError:
        return None

    subject = payload.get("sub")
    username = payload.get("username")
    if not subject or not isinstance(username, str):
        return None
    try:
        user_id = UUID(str(subject))
    except ValueError:
        return None

    return Identity(
        user_id=user_id,
        username=username,
        email=str(payload.get("email") or ""),
        is_admin=payload.get("is_admin") is True,
    )


def set_session_cookie(response: Response, session: Session, *, secure: bool = False) -> None:
    settings = get_settings()
    response.set_cookie(
        settings.session_cookie_name,
        session.token,
        max_age=settings.session_ttl_days * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
        secure=secure,
        path="/",
    )


def register_user(db: OrmSession, payload: RegisterRequest) -> Session:
    """Persist a new user and open a session for it."""

    email = str(payload.email).lower()
    existing = db.scalar(select(User).where(or_(User.username == payload.username, User.email == email)))
    if existing is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists.")

    user = User(
        username=payload.username,
        email=email,
        hashed_password=hash_password(payload.password),
        is_admin=email in get_settings().admin_email_set,
    )

    try:
        db.add(user)
        db.commit()
        db.refresh(user)
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists.") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to register user")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Registration failed.") from exc

    logger.info("Registered user %s (admin=%s)", user.username, user.is_admin)
    return issue_session(identity_for(user))


def authenticate(db: OrmSession, credentials: LoginRequest) -> Session:
    """Check ``credentials`` and open a session, raising 401 on mismatch."""

    if credentials.email:
        statement = select(User).where(User.email == str(credentials.email).lower())
    else:
        statement = select(User).where(User.username == credentials.username)

    user = db.scalar(statement)
    if user is None or not verify_password(credentials.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials.")

    return issue_session(identity_for(user))


async def get_optional_identity(request: Request) -> Identity | None:
    """Resolve the caller from the session cookie; anonymous callers yield ``None``."""

    return session_from_token(request.cookies.get(get_settings().session_cookie_name))


async def get_current_identity(identity: Identity | None = Depends(get_optional_identity)) -> Identity:
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return identity


__all__ = [
    "Identity",
    "Session",
    "hash_password",
    "verify_password",
    "identity_for",
    "issue_session",
    "session_from_token",
    "set_session_cookie",
    "register_user",
    "authenticate",
    "get_optional_identity",
    "get_current_identity",
]
