"""
JSON Web Key Set (JWKS) token verification for the identity provider.
"""

from __future__ import annotations

import asyncio
import fnmatch
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import httpx
from jose import JWTError, jwt

from shared.errors import AuthenticationError, ExternalServiceError
from shared.logging import get_logger


@dataclass(frozen=True)
class VerifiedToken:
    """Claims of a token whose signature and lifetime have been checked."""

    subject: str
    email: Optional[str]
    name: Optional[str]
    claims: Dict[str, Any]


class JWKSTokenVerifier:
    """Validates provider-issued JWTs against a remote JWKS endpoint."""

    def __init__(
        self,
        jwks_url: str,
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
        *,
        authorized_parties: Optional[List[str]] = None,
        refresh_interval: int = 300,
        http_timeout: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.jwks_url = jwks_url
        self.audience = audience
        self.issuer = issuer
        self.authorized_parties = list(authorized_parties or [])
        self.refresh_interval = refresh_interval
        self.logger = get_logger("esawitku.auth.jwks")

        self._keys: Optional[Iterable[Dict[str, Any]]] = None
        self._last_refresh: float = 0.0
        self._lock = asyncio.Lock()
        self._client = http_client or httpx.AsyncClient(timeout=http_timeout)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def warmup(self) -> None:
        """Eagerly load JWKS metadata so the first request does not pay the cost."""
        try:
            await self._refresh_keys(force=True)
        except Exception as exc:
            self.logger.warning("JWKS warmup failed", error=str(exc))

    async def check_health(self) -> str:
        """Return 'ok' if the JWKS endpoint responds correctly, otherwise 'error'."""
        try:
            await self._refresh_keys(force=False)
            return "ok"
        except Exception as exc:
            self.logger.error("JWKS health check failed", error=str(exc))
            return "error"

    async def verify(self, token: str) -> VerifiedToken:
        """Verify a token and return its subject and profile claims."""
        claims = await self._validate_token(token)

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise AuthenticationError("Token missing subject claim")

        self._check_authorized_party(claims)

        email = claims.get("email")
        name = claims.get("name") or claims.get("given_name")
        return VerifiedToken(
            subject=subject,
            email=email if isinstance(email, str) and email else None,
            name=name if isinstance(name, str) and name else None,
            claims=claims,
        )

    async def _validate_token(self, token: str) -> Dict[str, Any]:
        """Validate the JWT and return its claims."""
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise AuthenticationError("Malformed token", details={"error": str(exc)}) from exc

        kid = header.get("kid")
        if not isinstance(kid, str):
            raise AuthenticationError("Token header missing key id (kid)")

        try:
            key_data = await self._get_key(kid)
        except ExternalServiceError:
            raise
        except Exception as exc:
            self.logger.error("JWKS fetch failed", error=str(exc))
            raise ExternalServiceError("identity_provider", "Signing keys unavailable") from exc

        if not key_data:
            raise AuthenticationError("Signing key not found for token", details={"kid": kid})

        algorithms = [key_data.get("alg", "RS256")]
        options: Dict[str, Any] = {"verify_aud": self.audience is not None}

        try:
            return jwt.decode(
                token,
                key_data,
                algorithms=algorithms,
                audience=self.audience,
                issuer=self.issuer,
                options=options,
            )
        except JWTError as exc:
            raise AuthenticationError("Token validation failed", details={"error": str(exc)}) from exc

    def _check_authorized_party(self, claims: Dict[str, Any]) -> None:
        """Match the azp claim against the configured origin patterns."""
        if not self.authorized_parties:
            return
        azp = claims.get("azp")
        if not isinstance(azp, str) or not any(
            fnmatch.fnmatch(azp, pattern) for pattern in self.authorized_parties
        ):
            raise AuthenticationError("Token issued for an unauthorized party", details={"azp": azp})

    async def _get_key(self, kid: str) -> Optional[Dict[str, Any]]:
        """Fetch the JWKS and return the key matching the provided kid."""
        await self._refresh_keys(force=False)
        for key in self._keys or []:
            if key.get("kid") == kid:
                return key

        # Key might be rotated; refresh once more eagerly.
        await self._refresh_keys(force=True)
        for key in self._keys or []:
            if key.get("kid") == kid:
                return key
        return None

    async def _refresh_keys(self, *, force: bool) -> None:
        """Refresh the JWKS if the cache is stale."""
        now = time.time()
        if not force and self._keys is not None and (now - self._last_refresh) < self.refresh_interval:
            return

        async with self._lock:
            if not force and self._keys is not None and (time.time() - self._last_refresh) < self.refresh_interval:
                return

            response = await self._client.get(self.jwks_url)
            response.raise_for_status()
            payload = response.json()
            keys = payload.get("keys")
            if not isinstance(keys, list):
                raise ExternalServiceError("identity_provider", "JWKS response missing 'keys' array")

            self._keys = keys
            self._last_refresh = time.time()
