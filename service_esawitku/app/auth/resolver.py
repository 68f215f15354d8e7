"""
Identity resolution for the request gate.

Turns the credentials presented with a request into a verified Identity,
provisioning a local account the first time a valid subject is seen.
"""

from typing import Iterable, List, Optional, Sequence

from shared.errors import AuthenticationError
from shared.logging import get_logger

from ..domain.identity import Credentials, Identity, Role
from ..models import UserRecord
from .directory_client import UserDirectoryClient
from .jwks import JWKSTokenVerifier, VerifiedToken

SESSION = "session"
API_KEY = "api_key"
SUPPORTED_SCHEMES = (SESSION, API_KEY)


class IdentityResolver:
    """Resolve credentials to an Identity or raise AuthenticationError."""

    def __init__(
        self,
        token_verifier: JWKSTokenVerifier,
        directory: UserDirectoryClient,
        users,
        *,
        super_admin_emails: Iterable[str] = (),
        scheme_order: Sequence[str] = SUPPORTED_SCHEMES,
    ):
        unknown = [scheme for scheme in scheme_order if scheme not in SUPPORTED_SCHEMES]
        if unknown or not scheme_order:
            raise ValueError(f"Unsupported auth scheme order: {list(scheme_order)}")

        self.token_verifier = token_verifier
        self.directory = directory
        self.users = users
        self.super_admin_emails = {email.lower() for email in super_admin_emails}
        self.scheme_order: List[str] = list(scheme_order)
        self.logger = get_logger("esawitku.auth.resolver")

    async def resolve(self, credentials: Credentials) -> Identity:
        """Try each configured scheme in order; the first success wins.

        A failing scheme falls through to the next one that has a credential.
        The last failure is the one reported.
        """
        if credentials.is_empty:
            raise AuthenticationError("Authentication required")

        failure: Optional[AuthenticationError] = None
        for scheme in self.scheme_order:
            try:
                if scheme == SESSION and credentials.session_token:
                    return await self._resolve_session(credentials.session_token)
                if scheme == API_KEY and credentials.api_key:
                    return await self._resolve_api_key(credentials.api_key)
            except AuthenticationError as e:
                self.logger.info("Credential rejected", scheme=scheme, reason=e.message)
                failure = e

        raise failure or AuthenticationError("Authentication required")

    async def _resolve_session(self, token: str) -> Identity:
        verified = await self.token_verifier.verify(token)

        user = await self.users.get_user(verified.subject)
        if user is None:
            user = await self._provision(verified)

        return self._to_identity(user, SESSION)

    async def _resolve_api_key(self, api_key: str) -> Identity:
        user = await self.users.get_user_by_api_key(api_key)
        if user is None:
            raise AuthenticationError("Invalid API key")
        return self._to_identity(user, API_KEY)

    async def _provision(self, verified: VerifiedToken) -> UserRecord:
        """Create the local account for a first-time subject.

        A concurrent request may insert the same subject first; the insert
        then reports a conflict and the existing row is used.
        """
        email = verified.email
        name = verified.name
        if not email:
            directory_user = await self.directory.get_user(verified.subject)
            email = directory_user.email
            name = name or directory_user.name

        role = Role.SUPER_ADMIN if await self._is_super_admin(email) else Role.USER
        display_name = name or email

        created = await self.users.create_user(verified.subject, display_name, email, role.value)
        if created is not None:
            self.logger.info("Provisioned new user", user_id=verified.subject, role=role.value)
            return created

        existing = await self.users.get_user(verified.subject)
        if existing is None:
            raise AuthenticationError("User could not be provisioned")
        return existing

    async def _is_super_admin(self, email: str) -> bool:
        if email.lower() in self.super_admin_emails:
            return True
        return await self.users.is_super_admin_email(email)

    def _to_identity(self, user: UserRecord, auth_method: str) -> Identity:
        if not user.is_active:
            raise AuthenticationError("Account is deactivated")
        try:
            role = Role.parse(user.role)
        except ValueError:
            self.logger.error("Stored user has an unknown role", user_id=user.id, role=user.role)
            raise AuthenticationError("Account has an invalid role")
        return Identity(id=user.id, email=user.email, role=role, auth_method=auth_method)
