"""
Plantation (kebun), harvest (panen) and fertilizer (pupuk) queries.

Every statement is filtered by the owning user's id; a row owned by somebody
else behaves exactly like a missing row.
"""

from datetime import date
from typing import List, Optional

from ..models import Kebun, KebunListItem, KebunQuota, Panen, Pupuk
from .postgres import Database

KEBUN_COLUMNS = "id, user_id, nama, luas_ha, jumlah_pohon, lokasi, created_at"

PANEN_SELECT = """
    SELECT p.id, p.kebun_id, k.nama AS kebun_nama, p.tanggal, p.berat_kg,
           p.harga_per_kg, p.total_pendapatan, p.created_at
    FROM panen p
    JOIN kebun k ON p.kebun_id = k.id
"""

PUPUK_SELECT = """
    SELECT p.id, p.kebun_id, k.nama AS kebun_nama, p.tanggal, p.jenis_pupuk,
           p.biaya, p.created_at
    FROM pupuk p
    JOIN kebun k ON p.kebun_id = k.id
"""


class PlantationRepository:
    """Owner-scoped access to plantations and their records."""

    def __init__(self, database: Database):
        self.database = database

    # ------------------------------------------------------------ kebun

    async def get_kebun_quota(self, user_id: str) -> Optional[KebunQuota]:
        async with self.database.connection() as conn:
            row = await conn.fetchrow(
                """
                SELECT COALESCE(p.max_kebun, 0) AS max_kebun,
                       (SELECT COUNT(*)::int FROM kebun k WHERE k.user_id = u.id) AS current_count
                FROM users u
                LEFT JOIN paket p ON u.paket_id = p.id
                WHERE u.id = $1
                """,
                user_id
            )
        return KebunQuota.model_validate(dict(row)) if row else None

    async def create_kebun(
        self, user_id: str, nama: str, luas_ha: float, jumlah_pohon: int, lokasi: Optional[str]
    ) -> Kebun:
        async with self.database.connection() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO kebun (user_id, nama, luas_ha, jumlah_pohon, lokasi)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING {KEBUN_COLUMNS}
                """,
                user_id, nama, luas_ha, jumlah_pohon, lokasi
            )
        return Kebun.model_validate(dict(row))

    async def get_kebun(self, user_id: str, kebun_id: int) -> Optional[Kebun]:
        async with self.database.connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {KEBUN_COLUMNS} FROM kebun WHERE id = $1 AND user_id = $2",
                kebun_id, user_id
            )
        return Kebun.model_validate(dict(row)) if row else None

    async def list_kebun(self, user_id: str) -> List[KebunListItem]:
        async with self.database.connection() as conn:
            rows = await conn.fetch(
                """
                SELECT k.id, k.nama, k.luas_ha, k.jumlah_pohon, k.lokasi,
                       COUNT(p.id)::int AS total_panen,
                       COALESCE(SUM(p.total_pendapatan), 0) AS total_pendapatan,
                       k.created_at
                FROM kebun k
                LEFT JOIN panen p ON p.kebun_id = k.id
                WHERE k.user_id = $1
                GROUP BY k.id
                ORDER BY k.created_at DESC
                """,
                user_id
            )
        return [KebunListItem.model_validate(dict(row)) for row in rows]

    async def update_kebun(
        self, user_id: str, kebun_id: int, nama: str, luas_ha: float, jumlah_pohon: int, lokasi: Optional[str]
    ) -> Optional[Kebun]:
        async with self.database.connection() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE kebun
                SET nama = $3, luas_ha = $4, jumlah_pohon = $5, lokasi = $6
                WHERE id = $1 AND user_id = $2
                RETURNING {KEBUN_COLUMNS}
                """,
                kebun_id, user_id, nama, luas_ha, jumlah_pohon, lokasi
            )
        return Kebun.model_validate(dict(row)) if row else None

    async def delete_kebun(self, user_id: str, kebun_id: int) -> bool:
        async with self.database.connection() as conn:
            deleted = await conn.fetchval(
                "DELETE FROM kebun WHERE id = $1 AND user_id = $2 RETURNING id",
                kebun_id, user_id
            )
        return deleted is not None

    # ------------------------------------------------------------ panen

    async def create_panen(
        self,
        user_id: str,
        kebun_id: int,
        tanggal: date,
        berat_kg: float,
        harga_per_kg: float,
        total_pendapatan: float,
    ) -> Optional[Panen]:
        """Insert a harvest; None when the plantation is not the user's."""
        async with self.database.connection() as conn:
            row = await conn.fetchrow(
                """
                WITH owned AS (
                    SELECT id, nama FROM kebun WHERE id = $1 AND user_id = $2
                ), inserted AS (
                    INSERT INTO panen (kebun_id, tanggal, berat_kg, harga_per_kg, total_pendapatan)
                    SELECT id, $3, $4, $5, $6 FROM owned
                    RETURNING id, kebun_id, tanggal, berat_kg, harga_per_kg, total_pendapatan, created_at
                )
                SELECT i.id, i.kebun_id, o.nama AS kebun_nama, i.tanggal, i.berat_kg,
                       i.harga_per_kg, i.total_pendapatan, i.created_at
                FROM inserted i JOIN owned o ON o.id = i.kebun_id
                """,
                kebun_id, user_id, tanggal, berat_kg, harga_per_kg, total_pendapatan
            )
        return Panen.model_validate(dict(row)) if row else None

    async def get_panen(self, user_id: str, panen_id: int) -> Optional[Panen]:
        async with self.database.connection() as conn:
            row = await conn.fetchrow(
                PANEN_SELECT + " WHERE p.id = $1 AND k.user_id = $2",
                panen_id, user_id
            )
        return Panen.model_validate(dict(row)) if row else None

    async def list_panen(self, user_id: str, kebun_id: Optional[int] = None) -> List[Panen]:
        async with self.database.connection() as conn:
            rows = await conn.fetch(
                PANEN_SELECT
                + " WHERE k.user_id = $1 AND ($2::int IS NULL OR p.kebun_id = $2)"
                + " ORDER BY p.tanggal DESC, p.id DESC",
                user_id, kebun_id
            )
        return [Panen.model_validate(dict(row)) for row in rows]

    async def delete_panen(self, user_id: str, panen_id: int) -> bool:
        async with self.database.connection() as conn:
            deleted = await conn.fetchval(
                """
                DELETE FROM panen
                WHERE id = $1
                  AND kebun_id IN (SELECT id FROM kebun WHERE user_id = $2)
                RETURNING id
                """,
                panen_id, user_id
            )
        return deleted is not None

    # ------------------------------------------------------------ pupuk

    async def create_pupuk(
        self, user_id: str, kebun_id: int, tanggal: date, jenis_pupuk: str, biaya: float
    ) -> Optional[Pupuk]:
        """Insert a fertilizer record; None when the plantation is not the user's."""
        async with self.database.connection() as conn:
            row = await conn.fetchrow(
                """
                WITH owned AS (
                    SELECT id, nama FROM kebun WHERE id = $1 AND user_id = $2
                ), inserted AS (
                    INSERT INTO pupuk (kebun_id, tanggal, jenis_pupuk, biaya)
                    SELECT id, $3, $4, $5 FROM owned
                    RETURNING id, kebun_id, tanggal, jenis_pupuk, biaya, created_at
                )
                SELECT i.id, i.kebun_id, o.nama AS kebun_nama, i.tanggal, i.jenis_pupuk,
                       i.biaya, i.created_at
                FROM inserted i JOIN owned o ON o.id = i.kebun_id
                """,
                kebun_id, user_id, tanggal, jenis_pupuk, biaya
            )
        return Pupuk.model_validate(dict(row)) if row else None

    async def get_pupuk(self, user_id: str, pupuk_id: int) -> Optional[Pupuk]:
        async with self.database.connection() as conn:
            row = await conn.fetchrow(
                PUPUK_SELECT + " WHERE p.id = $1 AND k.user_id = $2",
                pupuk_id, user_id
            )
        return Pupuk.model_validate(dict(row)) if row else None

    async def list_pupuk(self, user_id: str, kebun_id: Optional[int] = None) -> List[Pupuk]:
        async with self.database.connection() as conn:
            rows = await conn.fetch(
                PUPUK_SELECT
                + " WHERE k.user_id = $1 AND ($2::int IS NULL OR p.kebun_id = $2)"
                + " ORDER BY p.tanggal DESC, p.id DESC",
                user_id, kebun_id
            )
        return [Pupuk.model_validate(dict(row)) for row in rows]

    async def delete_pupuk(self, user_id: str, pupuk_id: int) -> bool:
        async with self.database.connection() as conn:
            deleted = await conn.fetchval(
                """
                DELETE FROM pupuk
                WHERE id = $1
                  AND kebun_id IN (SELECT id FROM kebun WHERE user_id = $2)
                RETURNING id
                """,
                pupuk_id, user_id
            )
        return deleted is not None
