"""
Auth models.

Identity is what a verified session token resolves to; Account is the
persisted login record owned by the account store.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["admin", "user"]


class Identity(BaseModel):
    """Who a request belongs to, reconstructed from a session token."""

    model_config = ConfigDict(frozen=True)

    role: Role
    account_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class Account(BaseModel):
    """Persisted account (login + bcrypt hash + page allow-list)."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    login: str
    password_hash: str
    allowed_pages: List[str] = Field(default_factory=lambda: ["/"])
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
