"""
Profile and user administration.
"""

from typing import List

from shared.errors import AuthorizationError, BusinessRuleError, NotFoundError
from shared.logging import get_logger

from ..models import UpdateProfileRequest, UpdateUserRoleRequest, UserListItem, UserProfile
from .identity import Identity, Role


class AccountService:

    def __init__(self, repository):
        self.repository = repository
        self.logger = get_logger("esawitku.accounts")

    async def get_profile(self, identity: Identity) -> UserProfile:
        profile = await self.repository.get_profile(identity.id)
        if profile is None:
            raise NotFoundError("User not found")
        return profile

    async def update_profile(self, identity: Identity, request: UpdateProfileRequest):
        """Returns (before, after)."""
        before = await self.get_profile(identity)
        if not await self.repository.update_name(identity.id, request.name):
            raise NotFoundError("User not found")
        return before, await self.get_profile(identity)

    async def list_users(self) -> List[UserListItem]:
        return await self.repository.list_users()

    async def change_role(self, identity: Identity, user_id: str, request: UpdateUserRoleRequest):
        """Change another user's role. Returns (old_role, new_role)."""
        if user_id == identity.id:
            raise BusinessRuleError("You cannot change your own role")

        target = await self.repository.get_user(user_id)
        if target is None:
            raise NotFoundError("User not found")

        if target.role == Role.SUPER_ADMIN.value and identity.role is not Role.SUPER_ADMIN:
            raise AuthorizationError("Only a super admin can change a super admin's role")

        if not await self.repository.update_role(user_id, request.role):
            raise NotFoundError("User not found")

        self.logger.info(
            "User role changed",
            target_user_id=user_id,
            old_role=target.role,
            new_role=request.role,
            changed_by=identity.id,
        )
        return target.role, request.role
