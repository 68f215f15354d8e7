"""
Dashboard and monthly report aggregates.
"""

from typing import List

from ..models import DashboardStats, MonthlyReport, RecentPanenItem
from .postgres import Database


class ReportRepository:

    def __init__(self, database: Database):
        self.database = database

    async def dashboard(self, user_id: str) -> DashboardStats:
        async with self.database.connection() as conn:
            # Separate subqueries; joining panen and pupuk directly multiplies rows.
            totals = await conn.fetchrow(
                """
                SELECT
                    (SELECT COUNT(*)::int FROM kebun WHERE user_id = $1) AS total_kebun,
                    (SELECT COALESCE(SUM(luas_ha), 0) FROM kebun WHERE user_id = $1) AS total_luas_ha,
                    (SELECT COALESCE(SUM(jumlah_pohon), 0)::int FROM kebun WHERE user_id = $1) AS total_pohon,
                    (SELECT COUNT(*)::int FROM panen p JOIN kebun k ON p.kebun_id = k.id
                        WHERE k.user_id = $1) AS total_panen,
                    (SELECT COALESCE(SUM(p.total_pendapatan), 0) FROM panen p JOIN kebun k ON p.kebun_id = k.id
                        WHERE k.user_id = $1) AS total_pendapatan,
                    (SELECT COALESCE(SUM(pu.biaya), 0) FROM pupuk pu JOIN kebun k ON pu.kebun_id = k.id
                        WHERE k.user_id = $1) AS total_biaya_pupuk
                """,
                user_id
            )
            recent = await conn.fetch(
                """
                SELECT p.id, k.nama AS kebun_nama, p.tanggal, p.berat_kg, p.total_pendapatan
                FROM panen p
                JOIN kebun k ON p.kebun_id = k.id
                WHERE k.user_id = $1
                ORDER BY p.tanggal DESC, p.id DESC
                LIMIT 5
                """,
                user_id
            )

        stats = DashboardStats.model_validate(dict(totals))
        stats.recent_panen = [RecentPanenItem.model_validate(dict(row)) for row in recent]
        return stats

    async def monthly(self, user_id: str) -> List[MonthlyReport]:
        """Last twelve months that have any harvest or fertilizer activity."""
        async with self.database.connection() as conn:
            rows = await conn.fetch(
                """
                WITH panen_monthly AS (
                    SELECT TO_CHAR(p.tanggal, 'YYYY-MM') AS month,
                           COUNT(p.id)::int AS total_panen,
                           SUM(p.berat_kg) AS total_berat_kg,
                           SUM(p.total_pendapatan) AS total_pendapatan
                    FROM panen p
                    JOIN kebun k ON p.kebun_id = k.id
                    WHERE k.user_id = $1
                    GROUP BY 1
                ), pupuk_monthly AS (
                    SELECT TO_CHAR(pu.tanggal, 'YYYY-MM') AS month,
                           SUM(pu.biaya) AS total_biaya_pupuk
                    FROM pupuk pu
                    JOIN kebun k ON pu.kebun_id = k.id
                    WHERE k.user_id = $1
                    GROUP BY 1
                )
                SELECT COALESCE(pm.month, pum.month) AS month,
                       COALESCE(pm.total_panen, 0) AS total_panen,
                       COALESCE(pm.total_berat_kg, 0) AS total_berat_kg,
                       COALESCE(pm.total_pendapatan, 0) AS total_pendapatan,
                       COALESCE(pum.total_biaya_pupuk, 0) AS total_biaya_pupuk,
                       COALESCE(pm.total_pendapatan, 0) - COALESCE(pum.total_biaya_pupuk, 0) AS net_income
                FROM panen_monthly pm
                FULL OUTER JOIN pupuk_monthly pum ON pm.month = pum.month
                ORDER BY month DESC
                LIMIT 12
                """,
                user_id
            )
        return [MonthlyReport.model_validate(dict(row)) for row in rows]
