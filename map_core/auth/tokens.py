"""
Stateless signed session tokens.

Format: base64url(payload) + "." + base64url(HMAC-SHA256(secret, payload))
with unpadded base64url and a colon-delimited payload:

    admin:<expires_ms>
    user:<expires_ms>
    user:<account_id>:<expires_ms>

Signing uses itsdangerous (HMAC) with the raw secret as key, so tokens stay
readable by any implementation of the same format.

A token is valid iff the signature matches under the current secret and
now < expires. There is no revocation list; expiry is the only invalidation.
"""

from __future__ import annotations

import hashlib
import time
from typing import Callable, Optional

from itsdangerous import BadData, Signer
from itsdangerous.encoding import base64_decode, base64_encode

from map_core.utils.logger import get_logger

from .models import Identity

logger = get_logger(__name__)

TOKEN_TTL_DAYS = 7
ROLES = ("admin", "user")


def now_ms() -> int:
    return int(time.time() * 1000)


def b64url_encode(raw: bytes) -> str:
    return base64_encode(raw).decode("ascii")


def b64url_decode(value: str) -> bytes:
    """Unpadded base64url decode; rejects foreign characters and non-canonical input."""
    try:
        raw = base64_decode(value)
    except BadData as e:
        raise ValueError(str(e))
    if b64url_encode(raw) != value:
        raise ValueError("Non-canonical base64url")
    return raw


class TokenAuthority:
    """Issues and verifies session tokens; holds only the immutable secret."""

    def __init__(
        self,
        secret: str,
        ttl_days: int = TOKEN_TTL_DAYS,
        clock: Optional[Callable[[], int]] = None,
    ):
        self._secret = secret or ""
        self._signer = Signer(self._secret, key_derivation="none", digest_method=hashlib.sha256)
        self.ttl_ms = ttl_days * 24 * 60 * 60 * 1000
        self._clock = clock or now_ms

    @property
    def configured(self) -> bool:
        return bool(self._secret)

    def issue(self, role: str, account_id: Optional[str] = None) -> Optional[str]:
        """
        Issue a token for role (and account_id, for account-backed user sessions).

        Returns None when no secret is configured.
        """
        if not self.configured:
            logger.error("Cannot issue session token: no secret configured")
            return None
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role!r}")

        expires = self._clock() + self.ttl_ms
        if role == "user" and account_id:
            if ":" in account_id:
                raise ValueError("Account id must not contain ':'")
            payload = f"user:{account_id}:{expires}"
        else:
            payload = f"{role}:{expires}"

        raw = payload.encode("utf-8")
        signature = self._signer.get_signature(raw).decode("ascii")
        return f"{b64url_encode(raw)}.{signature}"

    def verify(self, token: Optional[str]) -> Optional[Identity]:
        """Return the token's identity, or None if malformed, expired or forged."""
        if not token or not self.configured:
            return None
        parts = token.split(".")
        if len(parts) != 2:
            return None
        payload_b64, signature = parts

        try:
            raw = b64url_decode(payload_b64)
            payload = raw.decode("utf-8")
            # the signature segment must be canonical too, not just decode to the digest
            b64url_decode(signature)
        except ValueError:
            return None

        fields = payload.split(":")
        try:
            expires = int(fields[-1])
        except ValueError:
            return None
        if self._clock() >= expires:
            return None

        if not self._signer.verify_signature(raw, signature):
            return None

        if len(fields) == 3:
            if fields[0] != "user" or not fields[1]:
                return None
            return Identity(role="user", account_id=fields[1])
        if len(fields) == 2 and fields[0] in ROLES:
            return Identity(role=fields[0])
        return None
