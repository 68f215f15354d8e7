"""
Caller identity and credential models.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import Request


class Role(str, Enum):
    """Closed set of account roles."""
    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    @classmethod
    def parse(cls, value: str) -> "Role":
        """Parse a stored role; raises ValueError for anything outside the set."""
        return cls(value)


@dataclass(frozen=True)
class Identity:
    """Verified caller for the duration of one request."""
    id: str
    email: str
    role: Role
    auth_method: str = "session"

    @property
    def is_admin(self) -> bool:
        return self.role in (Role.ADMIN, Role.SUPER_ADMIN)


@dataclass(frozen=True)
class Credentials:
    """Raw credentials presented with a request."""
    bearer_token: Optional[str] = None
    session_cookie: Optional[str] = None
    api_key: Optional[str] = None

    @property
    def session_token(self) -> Optional[str]:
        """Bearer header wins over the session cookie."""
        return self.bearer_token or self.session_cookie

    @property
    def is_empty(self) -> bool:
        return not (self.session_token or self.api_key)

    @classmethod
    def from_request(cls, request: Request) -> "Credentials":
        bearer_token = None
        authorization = request.headers.get("Authorization")
        if authorization and authorization.startswith("Bearer "):
            bearer_token = authorization[7:].strip() or None

        session_cookie = request.cookies.get("session") or None
        api_key = (request.headers.get("X-API-Key") or "").strip() or None

        return cls(
            bearer_token=bearer_token,
            session_cookie=session_cookie,
            api_key=api_key,
        )
