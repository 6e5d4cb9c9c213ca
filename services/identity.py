from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class Identity:
    """The authenticated principal attached to a request."""

    account_id: str
    email: str
    role: str
    profile: Optional[Any] = None

    @classmethod
    def from_account(cls, account, profile=None) -> "Identity":
        return cls(account_id=account.id, email=account.email, role=account.role, profile=profile)
