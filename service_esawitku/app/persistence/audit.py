"""
Append-only audit log table.
"""

from typing import TYPE_CHECKING

from .postgres import Database

if TYPE_CHECKING:
    from ..audit.recorder import AuditEntry


class AuditRepository:

    def __init__(self, database: Database):
        self.database = database

    async def append(self, entry: "AuditEntry") -> None:
        async with self.database.connection() as conn:
            await conn.execute(
                """
                INSERT INTO audit_logs
                    (user_id, action, resource, resource_id, old_values, new_values,
                     ip_address, user_agent, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                """,
                entry.user_id,
                entry.action,
                entry.resource,
                entry.resource_id,
                entry.old_values,
                entry.new_values,
                entry.ip_address,
                entry.user_agent,
                entry.created_at,
            )
