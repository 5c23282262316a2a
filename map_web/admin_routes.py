"""
Admin surface: accounts and page allow-lists. Admin only.

Changes are picked up by the path policy once its 60s cache entries age out.
"""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel

from map_core.auth.models import Account, Identity
from map_core.auth.store import clean_pages
from map_core.utils.exceptions import StoreError
from .auth_middleware import require_admin


router = APIRouter(prefix="/api/admin", tags=["admin"])

DEFAULT_PAGES = ["/"]


class PagesRequest(BaseModel):
    pages: Any = None


class AccountPublic(BaseModel):
    id: str
    login: str
    allowed_pages: List[str]
    created_at: str


def _account_to_public(account: Account) -> AccountPublic:
    return AccountPublic(
        id=account.id,
        login=account.login,
        allowed_pages=account.allowed_pages,
        created_at=account.created_at.isoformat(),
    )


def _unavailable(e: StoreError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Store unavailable: {e}",
    )


def _requested_pages(body: PagesRequest) -> List[str]:
    pages = clean_pages(body.pages)
    return DEFAULT_PAGES[:] if pages is None else pages


@router.get("/accounts")
async def list_accounts(
    request: Request, _: Identity = Depends(require_admin)
) -> Dict[str, List[AccountPublic]]:
    """All accounts, newest first."""
    try:
        accounts = request.app.state.store.list_accounts()
    except StoreError as e:
        raise _unavailable(e)
    return {"accounts": [_account_to_public(a) for a in accounts]}


@router.get("/accounts/{account_id}/pages")
async def get_account_pages(
    account_id: str, request: Request, _: Identity = Depends(require_admin)
) -> Dict[str, Any]:
    try:
        account = request.app.state.store.get_account(account_id)
    except StoreError as e:
        raise _unavailable(e)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    return {"pages": account.allowed_pages}


@router.post("/accounts/{account_id}/pages")
async def set_account_pages(
    account_id: str,
    body: PagesRequest,
    request: Request,
    _: Identity = Depends(require_admin),
) -> Dict[str, Any]:
    """
    Replace an account's allow-list.

    Request:
        { "pages": ["/", "/projects"] }   (missing or not a list -> ["/"])
    """
    pages = _requested_pages(body)
    try:
        updated = request.app.state.store.set_account_pages(account_id, pages)
    except StoreError as e:
        raise _unavailable(e)
    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    return {"ok": True, "pages": pages}


@router.get("/pages")
async def get_user_pages(request: Request, _: Identity = Depends(require_admin)) -> Dict[str, Any]:
    """Allow-list shared by password (non-account) user sessions."""
    state = request.app.state
    try:
        pages = state.store.get_config_pages(state.settings.policy.global_pages_key)
    except StoreError:
        pages = None
    return {"pages": DEFAULT_PAGES[:] if pages is None else pages}


@router.post("/pages")
async def set_user_pages(
    body: PagesRequest, request: Request, _: Identity = Depends(require_admin)
) -> Dict[str, Any]:
    state = request.app.state
    pages = _requested_pages(body)
    try:
        state.store.set_config_pages(state.settings.policy.global_pages_key, pages)
    except StoreError as e:
        raise _unavailable(e)
    return {"ok": True, "pages": pages}
