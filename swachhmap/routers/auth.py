"""Authentication routes; sessions travel in an HTTP-only cookie."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from ..database import get_session
from ..schemas import AuthResponse, IdentityResponse, LoginRequest, RegisterRequest
from ..services import Identity, authenticate, get_current_identity, register_user, set_session_cookie
from ..services.auth_service import Session as AuthSession

router = APIRouter(prefix="/auth", tags=["auth"])


def _to_identity_response(identity: Identity) -> IdentityResponse:
    return IdentityResponse(
        id=identity.user_id,
        username=identity.username,
        email=identity.email,
        is_admin=identity.is_admin,
    )


def _open_session(request: Request, response: Response, session: AuthSession) -> AuthResponse:
    set_session_cookie(response, session, secure=request.url.scheme == "https")
    return AuthResponse(user=_to_identity_response(session.identity), expires_at=session.expires_at)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register_endpoint(
    payload: RegisterRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_session),
) -> AuthResponse:
    return _open_session(request, response, register_user(db, payload))


@router.post("/login", response_model=AuthResponse)
async def login_endpoint(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_session),
) -> AuthResponse:
    return _open_session(request, response, authenticate(db, payload))


@router.get("/me", response_model=IdentityResponse)
async def me_endpoint(identity: Identity = Depends(get_current_identity)) -> IdentityResponse:
    return _to_identity_response(identity)


__all__ = ["router"]
