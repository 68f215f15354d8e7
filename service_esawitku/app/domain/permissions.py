"""
Role-based permission checks.

Permissions are coarse capability strings. Ownership of plantations and
records is not checked here; repositories filter every query by the caller's
id instead.
"""

from typing import AbstractSet, FrozenSet, Iterable

from shared.errors import AuthorizationError
from shared.logging import get_logger

from .identity import Identity, Role

READ = "read"
MANAGE_USERS = "users:manage"
VERIFY_PAYMENTS = "payments:verify"


class PermissionSet:
    """Effective permissions of one identity."""

    def __init__(self, permissions: Iterable[str] = (), wildcard: bool = False):
        self.permissions: FrozenSet[str] = frozenset(permissions)
        self.wildcard = wildcard

    def __contains__(self, permission: object) -> bool:
        return self.wildcard or permission in self.permissions

    def missing(self, required: Iterable[str]) -> FrozenSet[str]:
        return frozenset(p for p in required if p not in self)

    def __repr__(self) -> str:
        if self.wildcard:
            return "PermissionSet(*)"
        return f"PermissionSet({sorted(self.permissions)})"


def permissions_for(role: Role) -> PermissionSet:
    """Derive the permission set for a role.

    Every Role member has its own branch; adding a role without extending
    this function makes every authorization fail for it.
    """
    if role is Role.SUPER_ADMIN:
        return PermissionSet(wildcard=True)
    if role is Role.ADMIN:
        return PermissionSet(wildcard=True)
    if role is Role.USER:
        return PermissionSet({READ})
    raise AuthorizationError("Unrecognised role", details={"role": str(role)})


class PermissionChecker:
    """Allow a request only if every required permission is granted."""

    def __init__(self):
        self.logger = get_logger("esawitku.permissions")

    def authorize(self, identity: Identity, required: AbstractSet[str]) -> None:
        granted = permissions_for(identity.role)
        missing = granted.missing(required)
        if missing:
            self.logger.warning(
                "Authorization denied",
                user_id=identity.id,
                role=identity.role.value,
                missing=sorted(missing),
            )
            raise AuthorizationError(
                "Insufficient permissions",
                details={"missing": sorted(missing)},
            )
