"""
User, API key and subscription-assignment queries.
"""

import hashlib
from typing import List, Optional

from shared.logging import get_logger

from ..models import UserListItem, UserProfile, UserRecord
from .postgres import Database

USER_COLUMNS = "id, name, email, role, is_active, paket_id, created_at"


def hash_api_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


class UserRepository:
    """Local user directory."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = get_logger("esawitku.persistence.users")

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        async with self.database.connection() as conn:
            row = await conn.fetchrow(f"SELECT {USER_COLUMNS} FROM users WHERE id = $1", user_id)
        return UserRecord.model_validate(dict(row)) if row else None

    async def is_super_admin_email(self, email: str) -> bool:
        async with self.database.connection() as conn:
            found = await conn.fetchval(
                "SELECT 1 FROM super_admin_config WHERE lower(email) = lower($1)", email
            )
        return found is not None

    async def create_user(self, user_id: str, name: str, email: str, role: str) -> Optional[UserRecord]:
        """Insert a user on the free package with an active subscription.

        Returns None when a row for user_id already exists.
        """
        async with self.database.transaction() as conn:
            free_paket_id = await conn.fetchval(
                "SELECT id FROM paket WHERE nama = 'Free' ORDER BY id LIMIT 1"
            )
            row = await conn.fetchrow(
                f"""
                INSERT INTO users (id, name, email, role, paket_id)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (id) DO NOTHING
                RETURNING {USER_COLUMNS}
                """,
                user_id, name, email, role, free_paket_id
            )
            if row is None:
                return None

            if free_paket_id is not None:
                await conn.execute(
                    """
                    INSERT INTO subscriptions (user_id, paket_id, start_date, is_active)
                    VALUES ($1, $2, NOW(), TRUE)
                    """,
                    user_id, free_paket_id
                )

        self.logger.info("User provisioned", user_id=user_id, role=role)
        return UserRecord.model_validate(dict(row))

    async def get_user_by_api_key(self, api_key: str) -> Optional[UserRecord]:
        """Resolve an active, unexpired API key and mark it used."""
        async with self.database.connection() as conn:
            row = await conn.fetchrow(
                """
                UPDATE api_keys k
                SET last_used_at = NOW()
                FROM users u
                WHERE k.user_id = u.id
                  AND k.key_hash = $1
                  AND k.is_active
                  AND (k.expires_at IS NULL OR k.expires_at > NOW())
                RETURNING u.id, u.name, u.email, u.role, u.is_active, u.paket_id, u.created_at
                """,
                hash_api_key(api_key)
            )
        return UserRecord.model_validate(dict(row)) if row else None

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        async with self.database.connection() as conn:
            row = await conn.fetchrow(
                """
                SELECT
                    u.id, u.name, u.email, u.role,
                    p.nama AS paket_name,
                    p.harga AS paket_harga,
                    p.max_kebun,
                    p.fitur_ekspor,
                    (SELECT COUNT(*)::int FROM kebun k WHERE k.user_id = u.id) AS kebun_count,
                    u.created_at
                FROM users u
                LEFT JOIN paket p ON u.paket_id = p.id
                WHERE u.id = $1
                """,
                user_id
            )
        return UserProfile.model_validate(dict(row)) if row else None

    async def update_name(self, user_id: str, name: str) -> bool:
        async with self.database.connection() as conn:
            result = await conn.execute("UPDATE users SET name = $2 WHERE id = $1", user_id, name)
        return result == "UPDATE 1"

    async def list_users(self) -> List[UserListItem]:
        async with self.database.connection() as conn:
            rows = await conn.fetch(
                """
                SELECT u.id, u.name, u.email, u.role, u.is_active,
                       p.nama AS paket_name, u.created_at
                FROM users u
                LEFT JOIN paket p ON u.paket_id = p.id
                ORDER BY u.created_at DESC
                """
            )
        return [UserListItem.model_validate(dict(row)) for row in rows]

    async def update_role(self, user_id: str, role: str) -> bool:
        async with self.database.connection() as conn:
            result = await conn.execute("UPDATE users SET role = $2 WHERE id = $1", user_id, role)
        return result == "UPDATE 1"
