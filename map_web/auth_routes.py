"""
FastAPI routes for authentication.

Prefix: /api

Login, session status, self-registration, logout and the per-account
allowed-pages lookup used by the canvas to filter its page list.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from map_core.auth.models import Identity
from map_core.auth.service import AuthService
from map_core.utils.exceptions import AccountExistsError, AuthNotConfiguredError, StoreError
from .auth_middleware import current_identity


router = APIRouter(prefix="/api", tags=["auth"])


class LoginRequest(BaseModel):
    password: str = ""
    login: Optional[str] = None


class RegisterRequest(BaseModel):
    login: str = ""
    password: str = ""


def _auth(request: Request) -> AuthService:
    return request.app.state.auth_service


def _set_session_cookie(request: Request, response: Response, token: str) -> None:
    """Attach the session token as an HttpOnly cookie."""
    settings = request.app.state.settings
    response.set_cookie(
        key=settings.auth.cookie_name,
        value=token,
        max_age=settings.auth.token_ttl_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.app.is_production,
        samesite="lax",
        path="/",
    )


@router.post("/auth")
async def login(body: LoginRequest, request: Request) -> Any:
    """
    Log in with the shared admin/user password, or with login + password
    for a registered account.

    Response:
        { "ok": true, "role": "admin" | "user" }
    """
    auth = _auth(request)
    try:
        token = auth.login(body.password, login=body.login)
    except AuthNotConfiguredError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Not configured",
        )
    except StoreError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Service unavailable",
        )
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid login or password",
        )
    identity = auth.identify(token)
    response = JSONResponse({"ok": True, "role": identity.role if identity else None})
    _set_session_cookie(request, response, token)
    return response


@router.get("/auth")
async def session_status(
    request: Request,
    identity: Optional[Identity] = Depends(current_identity),
) -> Dict[str, Any]:
    """Whether the caller has a valid session and whether a password gate is configured."""
    return {
        "ok": identity is not None,
        "usePassword": _auth(request).uses_password,
        "role": identity.role if identity else None,
        "accountId": identity.account_id if identity else None,
    }


@router.post("/auth/register")
async def register(body: RegisterRequest, request: Request) -> Dict[str, Any]:
    """
    Create an account (login + password). New accounts may access "/" only.
    """
    try:
        _auth(request).register(body.login, body.password)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except AccountExistsError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Login is already taken")
    except StoreError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Service unavailable",
        )
    return {"ok": True}


@router.get("/auth/logout")
async def logout(request: Request) -> Response:
    """Drop the session cookie; the token itself simply expires."""
    response = RedirectResponse(url="/login", status_code=status.HTTP_302_FOUND)
    response.delete_cookie(request.app.state.settings.auth.cookie_name, path="/")
    return response


@router.get("/account/allowed-pages")
async def account_allowed_pages(
    request: Request,
    identity: Optional[Identity] = Depends(current_identity),
) -> Dict[str, Any]:
    """
    Allowed pages of the logged-in account.

    404 for sessions not tied to an account (admin, shared password).
    """
    if identity is None or identity.role != "user" or not identity.account_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not an account session")
    try:
        account = request.app.state.store.get_account(identity.account_id)
    except StoreError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Service unavailable",
        )
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    return {"allowedPages": account.allowed_pages}
