"""Authentication endpoints: identity login, me, logout.

Login is delegated to an external identity provider (Google). On callback
the verified email is resolved to a user through the identity directory and
a session JWT is set in the `access_token` cookie.
"""

import logging
import secrets

from fastapi import APIRouter, Cookie, Depends, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse, RedirectResponse
from typing import Optional
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..deps import Settings, get_current_user, get_settings
from ..errors import DependencyError, DirectoryError
from ..models import User
from ..security import create_access_token
from ..services import identity_directory
from ..services.google_login_client import build_login_url, fetch_login_email
from ..telemetry import set_user_context, clear_user_context


logger = logging.getLogger(__name__)


router = APIRouter(
    prefix="/auth",
    tags=["Authentication"],
    responses={
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
    }
)

LOGIN_STATE_COOKIE = "login_state"
LOGIN_STATE_MAX_AGE = 600
SUPPORTED_LOGIN_PROVIDERS = {"google"}


def _auth_failure() -> JSONResponse:
    response = JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"detail": "authentication failed"})
    response.delete_cookie(LOGIN_STATE_COOKIE)
    return response


def _require_login_provider(provider: str, settings: Settings) -> None:
    if provider not in SUPPORTED_LOGIN_PROVIDERS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown login provider: {provider}")
    if not settings.GOOGLE_CLIENT_ID or not settings.GOOGLE_CLIENT_SECRET:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google login not configured. Missing GOOGLE_CLIENT_ID or GOOGLE_CLIENT_SECRET."
        )


@router.get("/failure", summary="Login failure")
def auth_failure():
    return _auth_failure()


@router.get("/me", response_model=schemas.UserOut, summary="Get current user")
def get_me(current_user: User = Depends(get_current_user)):
    set_user_context(str(current_user.id), current_user.email)
    return schemas.UserOut.model_validate(current_user)


@router.post("/logout", summary="Logout")
def logout(response: Response):
    response.delete_cookie("access_token")
    clear_user_context()
    return {"detail": "Logged out"}


@router.get("/{provider}", summary="Start identity login")
async def login(provider: str, settings: Settings = Depends(get_settings)):
    """Redirect to the identity provider's consent screen."""
    _require_login_provider(provider, settings)

    login_state = secrets.token_urlsafe(16)
    response = RedirectResponse(
        url=build_login_url(
            login_state,
            client_id=settings.GOOGLE_CLIENT_ID,
            redirect_uri=settings.GOOGLE_REDIRECT_URI,
        )
    )
    response.set_cookie(
        LOGIN_STATE_COOKIE,
        login_state,
        max_age=LOGIN_STATE_MAX_AGE,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
    )
    return response


@router.get("/{provider}/callback", response_model=schemas.LoginResponse, summary="Complete identity login")
async def login_callback(
    provider: str,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    login_state: Optional[str] = Cookie(default=None, alias=LOGIN_STATE_COOKIE),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Resolve the provider's identity to a user and start a session."""
    _require_login_provider(provider, settings)

    if error or not code:
        logger.warning(f"[AUTH] Login callback without code (error={error})")
        return _auth_failure()

    if not state or not login_state or not secrets.compare_digest(state, login_state):
        logger.warning("[AUTH] Login state mismatch")
        return _auth_failure()

    try:
        email = await fetch_login_email(
            code,
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            redirect_uri=settings.GOOGLE_REDIRECT_URI,
            timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS,
        )
        user = identity_directory.resolve(db, email)
    except (DependencyError, DirectoryError) as e:
        logger.error(f"[AUTH] Login failed: {e.message}")
        return _auth_failure()

    set_user_context(str(user.id), user.email)
    logger.info(f"[AUTH] User {user.id} logged in via {provider}")

    body = schemas.LoginResponse(success=True, user=schemas.UserOut.model_validate(user))
    response = JSONResponse(content=body.model_dump(mode="json"))
    response.set_cookie(
        "access_token",
        f"Bearer {create_access_token(user.email)}",
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="none" if settings.COOKIE_SECURE else "lax",
        domain=settings.COOKIE_DOMAIN,
    )
    response.delete_cookie(LOGIN_STATE_COOKIE)
    return response
