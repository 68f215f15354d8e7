"""
Unit tests for the asyncpg repositories against a mocked connection.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_esawitku.app.audit.recorder import AuditEntry
from service_esawitku.app.models import PaymentStatus
from service_esawitku.app.persistence import (
    AuditRepository,
    BillingRepository,
    Database,
    PlantationRepository,
    UserRepository,
    hash_api_key,
)
from shared.errors import ServiceError

NOW = datetime(2024, 5, 1, tzinfo=timezone.utc)


class FakeDatabase:
    """Database double yielding one mocked connection."""

    def __init__(self):
        self.conn = AsyncMock()
        self.transactions = 0

    @asynccontextmanager
    async def connection(self):
        yield self.conn

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        yield self.conn


@pytest.fixture
def database():
    return FakeDatabase()


class TestUserRepository:

    @pytest.mark.asyncio
    async def test_create_user_conflict_returns_none(self, database):
        database.conn.fetchval.return_value = 1
        database.conn.fetchrow.return_value = None

        created = await UserRepository(database).create_user("user_1", "Budi", "budi@esawitku.test", "user")

        assert created is None
        assert database.transactions == 1
        sql = database.conn.fetchrow.await_args.args[0]
        assert "ON CONFLICT (id) DO NOTHING" in sql
        database.conn.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_create_user_assigns_free_subscription(self, database):
        database.conn.fetchval.return_value = 1
        database.conn.fetchrow.return_value = {
            "id": "user_1", "name": "Budi", "email": "budi@esawitku.test", "role": "user",
            "is_active": True, "paket_id": 1, "created_at": NOW,
        }

        created = await UserRepository(database).create_user("user_1", "Budi", "budi@esawitku.test", "user")

        assert created.paket_id == 1
        sql, user_id, paket_id = database.conn.execute.await_args.args
        assert "INSERT INTO subscriptions" in sql
        assert (user_id, paket_id) == ("user_1", 1)

    @pytest.mark.asyncio
    async def test_api_key_lookup_uses_hash(self, database):
        database.conn.fetchrow.return_value = None

        assert await UserRepository(database).get_user_by_api_key("esk_live_123") is None

        args = database.conn.fetchrow.await_args.args
        assert args[1] == hash_api_key("esk_live_123")
        assert "esk_live_123" not in args
        assert len(args[1]) == 64

    @pytest.mark.asyncio
    async def test_update_role_reports_missing_row(self, database):
        database.conn.execute.return_value = "UPDATE 0"

        assert await UserRepository(database).update_role("ghost", "admin") is False


class TestPlantationRepository:

    @pytest.mark.asyncio
    async def test_queries_are_filtered_by_owner(self, database):
        database.conn.fetchrow.return_value = None
        database.conn.fetch.return_value = []
        database.conn.fetchval.return_value = None
        repository = PlantationRepository(database)

        assert await repository.get_kebun("owner", 5) is None
        assert await repository.get_panen("owner", 6) is None
        assert await repository.list_pupuk("owner") == []
        assert await repository.delete_kebun("owner", 5) is False

        for call in database.conn.fetchrow.await_args_list + database.conn.fetch.await_args_list:
            assert "user_id = $2" in call.args[0] or "user_id = $1" in call.args[0]
            assert "owner" in call.args[1:]

    @pytest.mark.asyncio
    async def test_create_panen_on_foreign_kebun(self, database):
        database.conn.fetchrow.return_value = None

        panen = await PlantationRepository(database).create_panen(
            "other", 5, date(2024, 5, 1), 100, 2000, 200000
        )

        assert panen is None
        assert database.conn.fetchrow.await_args.args[1:] == (5, "other", date(2024, 5, 1), 100, 2000, 200000)

    @pytest.mark.asyncio
    async def test_create_kebun_maps_row(self, database):
        database.conn.fetchrow.return_value = {
            "id": 9, "user_id": "owner", "nama": "Blok A", "luas_ha": 2.5,
            "jumlah_pohon": 300, "lokasi": None, "created_at": NOW,
        }

        kebun = await PlantationRepository(database).create_kebun("owner", "Blok A", 2.5, 300, None)

        assert kebun.to_json()["luasHa"] == 2.5
        assert kebun.to_json()["jumlahPohon"] == 300


class TestBillingRepository:

    @pytest.mark.asyncio
    async def test_settle_only_pending(self, database):
        database.conn.fetchrow.return_value = None

        settled = await BillingRepository(database).settle_payment(1, PaymentStatus.VERIFIED, None, "admin")

        assert settled is None
        assert "payment_status = 'pending'" in database.conn.fetchrow.await_args.args[0]
        database.conn.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_settle_verified_swaps_subscription(self, database):
        payment_row = {
            "id": 1, "user_id": "farmer", "user_name": "Budi", "paket_id": 2, "paket_nama": "Premium",
            "amount": 299000, "payment_method": "bri", "payment_status": "verified",
            "payment_proof_url": None, "admin_notes": None, "verified_by": "admin",
            "created_at": NOW, "verified_at": NOW,
        }
        database.conn.fetchrow.side_effect = [{"user_id": "farmer", "paket_id": 2}, payment_row]

        settled = await BillingRepository(database).settle_payment(1, PaymentStatus.VERIFIED, None, "admin")

        assert settled.payment_status is PaymentStatus.VERIFIED
        statements = [call.args[0] for call in database.conn.execute.await_args_list]
        assert len(statements) == 3
        assert "is_active = FALSE" in statements[0]
        assert "INSERT INTO subscriptions" in statements[1]
        assert "UPDATE users SET paket_id" in statements[2]
        assert database.transactions == 1

    @pytest.mark.asyncio
    async def test_settle_rejected_leaves_subscription(self, database):
        payment_row = {
            "id": 1, "user_id": "farmer", "paket_id": 2, "amount": 299000, "payment_method": "bri",
            "payment_status": "rejected", "created_at": NOW,
        }
        database.conn.fetchrow.side_effect = [{"user_id": "farmer", "paket_id": 2}, payment_row]

        settled = await BillingRepository(database).settle_payment(1, PaymentStatus.REJECTED, "blurry", "admin")

        assert settled.payment_status is PaymentStatus.REJECTED
        database.conn.execute.assert_not_awaited()


class TestAuditRepository:

    @pytest.mark.asyncio
    async def test_append(self, database):
        entry = AuditEntry(
            action="kebun.update", resource="kebun", user_id="owner", resource_id="9",
            old_values={"nama": "A"}, new_values={"nama": "B"}, ip_address="10.0.0.1",
        )

        await AuditRepository(database).append(entry)

        args = database.conn.execute.await_args.args
        assert "INSERT INTO audit_logs" in args[0]
        assert args[1:6] == ("owner", "kebun.update", "kebun", "9", {"nama": "A"})


class TestDatabase:

    @pytest.mark.asyncio
    async def test_start_failure_raises_service_error(self):
        with patch("service_esawitku.app.persistence.postgres.asyncpg.create_pool",
                   new=AsyncMock(side_effect=OSError("connection refused"))):
            with pytest.raises(ServiceError):
                await Database("postgresql://nowhere/db").start()

    @pytest.mark.asyncio
    async def test_connection_before_start(self):
        with pytest.raises(ServiceError):
            async with Database("postgresql://nowhere/db").connection():
                pass

    @pytest.mark.asyncio
    async def test_health_check_false_when_not_started(self):
        assert await Database("postgresql://nowhere/db").health_check() is False

    @pytest.mark.asyncio
    async def test_start_creates_schema(self):
        conn = AsyncMock()
        pool = MagicMock()
        pool.acquire.return_value.__aenter__ = AsyncMock(return_value=conn)
        pool.acquire.return_value.__aexit__ = AsyncMock(return_value=False)
        pool.close = AsyncMock()

        with patch("service_esawitku.app.persistence.postgres.asyncpg.create_pool", new=AsyncMock(return_value=pool)):
            database = Database("postgresql://localhost/esawitku")
            await database.start()

        statements = [call.args[0] for call in conn.execute.await_args_list]
        assert any("CREATE TABLE IF NOT EXISTS kebun" in sql for sql in statements)
        assert any("ON CONFLICT (nama) DO NOTHING" in sql for sql in statements)

        await database.stop()
        pool.close.assert_awaited_once()
