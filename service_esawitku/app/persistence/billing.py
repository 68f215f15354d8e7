"""
Package catalogue, payment method and payment queries.
"""

from typing import List, Optional

from shared.logging import get_logger

from ..models import Paket, Payment, PaymentMethod, PaymentStatus
from .postgres import Database

PAKET_COLUMNS = "id, nama, harga, max_kebun, fitur_ekspor, created_at"

PAYMENT_SELECT = """
    SELECT p.id, p.user_id, u.name AS user_name, p.paket_id, pk.nama AS paket_nama,
           p.amount, p.payment_method, p.payment_status, p.payment_proof_url,
           p.admin_notes, p.verified_by, p.created_at, p.verified_at
    FROM payments p
    JOIN users u ON p.user_id = u.id
    JOIN paket pk ON p.paket_id = pk.id
"""


class BillingRepository:
    """Packages, subscriptions and manually verified payments."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = get_logger("esawitku.persistence.billing")

    async def list_packages(self) -> List[Paket]:
        async with self.database.connection() as conn:
            rows = await conn.fetch(f"SELECT {PAKET_COLUMNS} FROM paket ORDER BY harga ASC, id ASC")
        return [Paket.model_validate(dict(row)) for row in rows]

    async def get_package(self, paket_id: int) -> Optional[Paket]:
        async with self.database.connection() as conn:
            row = await conn.fetchrow(f"SELECT {PAKET_COLUMNS} FROM paket WHERE id = $1", paket_id)
        return Paket.model_validate(dict(row)) if row else None

    async def get_user_package(self, user_id: str) -> Optional[Paket]:
        async with self.database.connection() as conn:
            row = await conn.fetchrow(
                """
                SELECT p.id, p.nama, p.harga, p.max_kebun, p.fitur_ekspor, p.created_at
                FROM users u
                JOIN paket p ON u.paket_id = p.id
                WHERE u.id = $1
                """,
                user_id
            )
        return Paket.model_validate(dict(row)) if row else None

    async def list_payment_methods(self) -> List[PaymentMethod]:
        async with self.database.connection() as conn:
            rows = await conn.fetch(
                """
                SELECT id, bank_name, account_number, account_holder, qr_code_url, is_active
                FROM payment_methods
                WHERE is_active
                ORDER BY id
                """
            )
        return [PaymentMethod.model_validate(dict(row)) for row in rows]

    async def create_payment(
        self,
        user_id: str,
        paket_id: int,
        amount: float,
        payment_method: str,
        payment_proof_url: Optional[str],
    ) -> Payment:
        async with self.database.connection() as conn:
            payment_id = await conn.fetchval(
                """
                INSERT INTO payments (user_id, paket_id, amount, payment_method, payment_status, payment_proof_url)
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING id
                """,
                user_id, paket_id, amount, payment_method, PaymentStatus.PENDING.value, payment_proof_url
            )
            row = await conn.fetchrow(PAYMENT_SELECT + " WHERE p.id = $1", payment_id)
        return Payment.model_validate(dict(row))

    async def get_payment(self, payment_id: int) -> Optional[Payment]:
        async with self.database.connection() as conn:
            row = await conn.fetchrow(PAYMENT_SELECT + " WHERE p.id = $1", payment_id)
        return Payment.model_validate(dict(row)) if row else None

    async def list_payments(self, user_id: Optional[str] = None) -> List[Payment]:
        """All payments when user_id is None, otherwise only that user's."""
        async with self.database.connection() as conn:
            rows = await conn.fetch(
                PAYMENT_SELECT
                + " WHERE ($1::varchar IS NULL OR p.user_id = $1)"
                + " ORDER BY p.created_at DESC",
                user_id
            )
        return [Payment.model_validate(dict(row)) for row in rows]

    async def settle_payment(
        self,
        payment_id: int,
        status: PaymentStatus,
        admin_notes: Optional[str],
        verified_by: str,
    ) -> Optional[Payment]:
        """Move a pending payment to verified or rejected.

        The update only matches a pending row, so two concurrent settlements
        cannot both succeed. Returns None when nothing was pending. Verifying
        swaps the user's active subscription and package in the same
        transaction.
        """
        async with self.database.transaction() as conn:
            settled = await conn.fetchrow(
                """
                UPDATE payments
                SET payment_status = $2,
                    admin_notes = $3,
                    verified_by = $4,
                    verified_at = NOW()
                WHERE id = $1 AND payment_status = 'pending'
                RETURNING user_id, paket_id
                """,
                payment_id, status.value, admin_notes, verified_by
            )
            if settled is None:
                return None

            if status is PaymentStatus.VERIFIED:
                await conn.execute(
                    "UPDATE subscriptions SET is_active = FALSE WHERE user_id = $1 AND is_active",
                    settled["user_id"]
                )
                await conn.execute(
                    """
                    INSERT INTO subscriptions (user_id, paket_id, start_date, is_active)
                    VALUES ($1, $2, NOW(), TRUE)
                    """,
                    settled["user_id"], settled["paket_id"]
                )
                await conn.execute(
                    "UPDATE users SET paket_id = $2 WHERE id = $1",
                    settled["user_id"], settled["paket_id"]
                )

            row = await conn.fetchrow(PAYMENT_SELECT + " WHERE p.id = $1", payment_id)

        self.logger.info(
            "Payment settled",
            payment_id=payment_id,
            status=status.value,
            verified_by=verified_by,
        )
        return Payment.model_validate(dict(row))
