"""
Auth "middleware" helpers.

PathPolicyMiddleware evaluates the path policy on every HTTP request:
- Reads the session token from the cookie (or Authorization: Bearer)
- Verifies it and asks PathPolicy for a decision
- Browsers get a 302 to /login?returnUrl=... (plus forbidden=1 when
  authenticated but not permitted); other clients get 401/403 JSON

Route-level dependencies (current_identity, require_admin) reuse the same
token extraction.
"""

from __future__ import annotations

import json
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from starlette.types import ASGIApp, Receive, Scope, Send

from map_core.auth.models import Identity
from map_core.auth.service import AuthService
from map_core.policy.engine import Decision, PathPolicy, login_redirect
from map_core.policy.paths import is_exempt
from map_core.utils.logger import get_logger

logger = get_logger(__name__)


def _extract_token(request: Request) -> Optional[str]:
    # Prefer cookie for browser flows
    token = request.cookies.get(request.app.state.settings.auth.cookie_name)
    if token:
        return token
    return _bearer_token(request.headers.get("authorization"))


def _bearer_token(auth_header: Optional[str]) -> Optional[str]:
    if auth_header and auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    return None


async def current_identity(request: Request) -> Optional[Identity]:
    """Identity of the caller, or None without a valid session."""
    auth: AuthService = request.app.state.auth_service
    return auth.identify(_extract_token(request))


async def require_login(identity: Optional[Identity] = Depends(current_identity)) -> Identity:
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return identity


async def require_admin(identity: Optional[Identity] = Depends(current_identity)) -> Identity:
    if identity is None or not identity.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin only",
        )
    return identity


class PathPolicyMiddleware:
    """Raw ASGI middleware; avoids BaseHTTPMiddleware request stream wrapping."""

    def __init__(self, app: ASGIApp, auth: AuthService, policy: PathPolicy, cookie_name: str):
        self.app = app
        self.auth = auth
        self.policy = policy
        self.cookie_name = cookie_name

    def _token(self, scope: Scope) -> Optional[str]:
        request = Request(scope)
        token = request.cookies.get(self.cookie_name)
        if token:
            return token
        return _bearer_token(request.headers.get("authorization"))

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return
        path = scope.get("path") or "/"
        if is_exempt(path):
            await self.app(scope, receive, send)
            return

        identity = self.auth.identify(self._token(scope))
        decision = await run_in_threadpool(self.policy.decide, identity, path)
        if decision == Decision.ALLOWED:
            await self.app(scope, receive, send)
            return

        logger.info(
            "Request blocked",
            path=path,
            decision=decision.value,
            role=identity.role if identity else None,
        )
        accept = Request(scope).headers.get("accept", "")
        if accept.strip().startswith("text/html"):
            location = login_redirect(path, decision).encode("latin-1")
            await send({
                "type": "http.response.start",
                "status": 302,
                "headers": [[b"location", location]],
            })
            await send({"type": "http.response.body", "body": b""})
            return

        if decision == Decision.FORBIDDEN:
            code, detail = 403, "Forbidden"
        else:
            code, detail = 401, "Not authenticated"
        await send({
            "type": "http.response.start",
            "status": code,
            "headers": [[b"content-type", b"application/json"]],
        })
        await send({
            "type": "http.response.body",
            "body": json.dumps({"detail": detail, "redirect": login_redirect(path, decision)}).encode(),
        })
