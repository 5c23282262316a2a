"""
Path-based authorization.

    no identity          -> DENIED     (login redirect with returnUrl)
    admin                -> ALLOWED
    user on admin path   -> FORBIDDEN  (login redirect with forbidden=1)
    user, no account     -> global allow-list, default ["/"] if the store is down or empty
    user with account    -> the account's allow-list; store failure is DENIED

Allow-lists are cached for 60s, globally or per account id. The account path
fails closed on purpose: an account's permissions must be authoritative,
whereas the shared list has a safe default.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, List, Optional
from urllib.parse import urlencode

from map_core.auth.models import Identity
from map_core.auth.store import AccountStore
from map_core.utils.config import PolicySettings
from map_core.utils.exceptions import StoreError
from map_core.utils.logger import get_logger

from .cache import TTLCache
from .paths import is_exempt, matches_any

logger = get_logger(__name__)

LOGIN_PATH = "/login"
GLOBAL_CACHE_KEY = "__global__"


class Decision(str, Enum):
    ALLOWED = "allowed"
    DENIED = "denied"
    FORBIDDEN = "forbidden"


class _AccountMissing(Exception):
    pass


class PathPolicy:
    def __init__(
        self,
        store: AccountStore,
        settings: Optional[PolicySettings] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.store = store
        self.settings = settings or PolicySettings()
        self.global_cache: TTLCache[List[str]] = TTLCache(self.settings.cache_ttl_seconds, clock)
        self.account_cache: TTLCache[List[str]] = TTLCache(self.settings.cache_ttl_seconds, clock)

    def is_admin_only(self, path: str) -> bool:
        return matches_any(path, self.settings.admin_only_paths)

    def global_pages(self) -> List[str]:
        """Shared user allow-list, falling back to the configured default."""
        cached = self.global_cache.get(GLOBAL_CACHE_KEY)
        if cached is not None:
            return cached
        try:
            pages = self.store.get_config_pages(self.settings.global_pages_key)
        except StoreError as e:
            logger.warning("Global allow-list unavailable, using default", error=str(e))
            return list(self.settings.default_user_pages)
        if pages is None:
            pages = list(self.settings.default_user_pages)
        self.global_cache.put(GLOBAL_CACHE_KEY, pages)
        return pages

    def account_pages(self, account_id: str) -> List[str]:
        """
        Allow-list of one account.

        Raises:
            StoreError: store unreachable
            _AccountMissing: no such account
        """
        def fetch() -> List[str]:
            account = self.store.get_account(account_id)
            if account is None:
                raise _AccountMissing(account_id)
            return list(account.allowed_pages)

        return self.account_cache.get_or_fetch(account_id, fetch)

    def decide(self, identity: Optional[Identity], path: str) -> Decision:
        if is_exempt(path):
            return Decision.ALLOWED
        if identity is None:
            return Decision.DENIED
        if identity.is_admin:
            return Decision.ALLOWED
        if self.is_admin_only(path):
            return Decision.FORBIDDEN

        try:
            if identity.account_id:
                pages = self.account_pages(identity.account_id)
            else:
                pages = self.global_pages()
        except _AccountMissing:
            logger.warning("Session references a missing account", account_id=identity.account_id)
            return Decision.DENIED
        except StoreError as e:
            logger.error(
                "Account allow-list unavailable, denying",
                account_id=identity.account_id,
                error=str(e),
            )
            return Decision.DENIED
        except Exception:
            logger.exception("Allow-list resolution failed, denying", path=path)
            return Decision.DENIED

        return Decision.ALLOWED if matches_any(path, pages) else Decision.FORBIDDEN


def login_redirect(path: str, decision: Decision) -> str:
    """Login URL that brings the user back to path afterwards."""
    params = {"returnUrl": path}
    if decision == Decision.FORBIDDEN:
        params["forbidden"] = "1"
    return f"{LOGIN_PATH}?{urlencode(params)}"
