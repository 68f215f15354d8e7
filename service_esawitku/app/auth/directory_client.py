"""
User directory client for the identity provider.

Used only when a token does not carry the profile claims needed to provision
a local account.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from shared.errors import ExternalServiceError
from shared.logging import get_logger
from shared.retry import RetryConfig, retry_on_exception


@dataclass(frozen=True)
class DirectoryUser:
    subject: str
    email: str
    name: Optional[str] = None


class UserDirectoryClient:
    """Client for the identity provider's user API."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        *,
        http_timeout: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.logger = get_logger("esawitku.auth.directory")
        self._client = http_client or httpx.AsyncClient(timeout=http_timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def get_user(self, subject: str) -> DirectoryUser:
        """Fetch the user's primary email and display name."""
        try:
            payload = await self._fetch_user(subject)
        except httpx.HTTPError as e:
            self.logger.error("User directory unavailable", subject=subject, error=str(e))
            raise ExternalServiceError("user_directory", "lookup failed", details={"error": str(e)})

        email = _primary_email(payload)
        if not email:
            raise ExternalServiceError("user_directory", "user has no email address", details={"subject": subject})

        name = payload.get("first_name") or payload.get("name")
        return DirectoryUser(subject=subject, email=email, name=name or None)

    @retry_on_exception((httpx.TransportError,), config=RetryConfig(max_attempts=3, base_delay=0.2))
    async def _fetch_user(self, subject: str) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        response = await self._client.get(f"{self.base_url}/users/{subject}", headers=headers)
        response.raise_for_status()
        return response.json()


def _primary_email(payload: Dict[str, Any]) -> Optional[str]:
    email = payload.get("email")
    if isinstance(email, str) and email:
        return email

    addresses = payload.get("email_addresses")
    if isinstance(addresses, list) and addresses:
        first = addresses[0]
        if isinstance(first, dict):
            return first.get("email_address")
    return None
