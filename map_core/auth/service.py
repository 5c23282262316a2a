"""
Authentication service layer.

Login is tiered, first match wins:
    1. login + password against a stored account (bcrypt)  -> user session tied to the account
    2. password equal to the admin password                 -> admin session
    3. password equal to the shared user password           -> user session without account

Sessions are stateless signed tokens (see tokens.py); logging out only means
the client drops its cookie.
"""

from __future__ import annotations

import hmac
from typing import Optional

import bcrypt

from map_core.utils.config import AuthSettings
from map_core.utils.exceptions import AuthNotConfiguredError
from map_core.utils.logger import get_logger

from .models import Account, Identity
from .store import AccountStore
from .tokens import TokenAuthority

logger = get_logger(__name__)

MIN_LOGIN_LEN = 2
MAX_LOGIN_LEN = 64
MIN_PASSWORD_LEN = 6
DEFAULT_ALLOWED_PAGES = ["/"]


def hash_password(password: str, rounds: int = 10) -> str:
    """Hash a password with bcrypt."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def _same_secret(given: str, expected: str) -> bool:
    return bool(expected) and hmac.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


class AuthService:
    """Credential checks and session issuing on top of a TokenAuthority."""

    def __init__(self, tokens: TokenAuthority, store: AccountStore, settings: AuthSettings):
        self.tokens = tokens
        self.store = store
        self.settings = settings

    @property
    def uses_password(self) -> bool:
        return bool(self.settings.admin_password or self.settings.user_password)

    def authenticate(self, password: str, login: Optional[str] = None) -> Optional[Identity]:
        """Return the identity the credentials grant, or None if they match nothing."""
        if login:
            account = self.store.get_account_by_login(login.strip().lower())
            if account and verify_password(password, account.password_hash):
                return Identity(role="user", account_id=account.id)
            return None
        if _same_secret(password, self.settings.admin_password):
            return Identity(role="admin")
        if _same_secret(password, self.settings.user_password):
            return Identity(role="user")
        return None

    def login(self, password: str, login: Optional[str] = None) -> Optional[str]:
        """
        Check credentials and issue a session token.

        Returns None for bad credentials.

        Raises:
            AuthNotConfiguredError: no signing secret, or no way to log in at all
        """
        if not self.tokens.configured:
            raise AuthNotConfiguredError("No session secret configured")
        if not login and not self.uses_password:
            raise AuthNotConfiguredError("No login password configured")

        identity = self.authenticate(password, login)
        if identity is None:
            logger.info("Login rejected", with_login=bool(login))
            return None

        token = self.tokens.issue(identity.role, identity.account_id)
        if not token:
            raise AuthNotConfiguredError("No session secret configured")
        logger.info("Login succeeded", role=identity.role, account_id=identity.account_id)
        return token

    def register(self, login: str, password: str) -> Account:
        """
        Self-registration.

        - Login is trimmed and lowercased, 2-64 characters, unique.
        - Password is at least 6 characters and stored only as a bcrypt hash.
        - New accounts may see "/" only until an admin widens the list.

        Raises:
            ValueError: invalid login or password
            AccountExistsError: login already taken
        """
        login = (login or "").strip().lower()
        if not MIN_LOGIN_LEN <= len(login) <= MAX_LOGIN_LEN:
            raise ValueError(f"Login must be between {MIN_LOGIN_LEN} and {MAX_LOGIN_LEN} characters")
        if len(password or "") < MIN_PASSWORD_LEN:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LEN} characters")

        account = Account(
            login=login,
            password_hash=hash_password(password, rounds=self.settings.bcrypt_rounds),
            allowed_pages=list(DEFAULT_ALLOWED_PAGES),
        )
        self.store.create_account(account)
        logger.info("Account registered", account_id=account.id, login=login)
        return account

    def identify(self, token: Optional[str]) -> Optional[Identity]:
        return self.tokens.verify(token)
