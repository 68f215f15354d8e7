"""
PostgreSQL connection pool and schema for the eSawitKu service.
"""

import json
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import asyncpg

from shared.errors import ServiceError
from shared.logging import get_logger

SCHEMA = """
CREATE TABLE IF NOT EXISTS paket (
    id SERIAL PRIMARY KEY,
    nama VARCHAR(100) NOT NULL UNIQUE,
    harga NUMERIC(14, 2) NOT NULL DEFAULT 0,
    max_kebun INTEGER NOT NULL DEFAULT 1,
    fitur_ekspor BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS users (
    id VARCHAR(255) PRIMARY KEY,
    name VARCHAR(255) NOT NULL,
    email VARCHAR(255) NOT NULL,
    role VARCHAR(20) NOT NULL DEFAULT 'user',
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    paket_id INTEGER REFERENCES paket(id),
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS super_admin_config (
    email VARCHAR(255) PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS api_keys (
    id SERIAL PRIMARY KEY,
    user_id VARCHAR(255) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    key_hash CHAR(64) NOT NULL UNIQUE,
    name VARCHAR(100),
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    expires_at TIMESTAMP WITH TIME ZONE,
    last_used_at TIMESTAMP WITH TIME ZONE,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS subscriptions (
    id SERIAL PRIMARY KEY,
    user_id VARCHAR(255) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    paket_id INTEGER NOT NULL REFERENCES paket(id),
    start_date TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
    is_active BOOLEAN NOT NULL DEFAULT TRUE
);

CREATE TABLE IF NOT EXISTS payment_methods (
    id SERIAL PRIMARY KEY,
    bank_name VARCHAR(100) NOT NULL,
    account_number VARCHAR(100) NOT NULL,
    account_holder VARCHAR(255) NOT NULL,
    qr_code_url TEXT,
    is_active BOOLEAN NOT NULL DEFAULT TRUE
);

CREATE TABLE IF NOT EXISTS payments (
    id SERIAL PRIMARY KEY,
    user_id VARCHAR(255) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    paket_id INTEGER NOT NULL REFERENCES paket(id),
    amount NUMERIC(14, 2) NOT NULL,
    payment_method VARCHAR(20) NOT NULL,
    payment_status VARCHAR(20) NOT NULL DEFAULT 'pending',
    payment_proof_url TEXT,
    admin_notes TEXT,
    verified_by VARCHAR(255),
    verified_at TIMESTAMP WITH TIME ZONE,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS kebun (
    id SERIAL PRIMARY KEY,
    user_id VARCHAR(255) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    nama VARCHAR(100) NOT NULL,
    luas_ha DOUBLE PRECISION NOT NULL,
    jumlah_pohon INTEGER NOT NULL,
    lokasi VARCHAR(255),
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS panen (
    id SERIAL PRIMARY KEY,
    kebun_id INTEGER NOT NULL REFERENCES kebun(id) ON DELETE CASCADE,
    tanggal DATE NOT NULL,
    berat_kg DOUBLE PRECISION NOT NULL,
    harga_per_kg DOUBLE PRECISION NOT NULL,
    total_pendapatan DOUBLE PRECISION NOT NULL,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS pupuk (
    id SERIAL PRIMARY KEY,
    kebun_id INTEGER NOT NULL REFERENCES kebun(id) ON DELETE CASCADE,
    tanggal DATE NOT NULL,
    jenis_pupuk VARCHAR(100) NOT NULL,
    biaya DOUBLE PRECISION NOT NULL,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS audit_logs (
    id BIGSERIAL PRIMARY KEY,
    user_id VARCHAR(255),
    action VARCHAR(255) NOT NULL,
    resource VARCHAR(100) NOT NULL,
    resource_id VARCHAR(255),
    old_values JSONB,
    new_values JSONB,
    ip_address VARCHAR(64),
    user_agent TEXT,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_kebun_user ON kebun(user_id);
CREATE INDEX IF NOT EXISTS idx_panen_kebun ON panen(kebun_id, tanggal DESC);
CREATE INDEX IF NOT EXISTS idx_pupuk_kebun ON pupuk(kebun_id, tanggal DESC);
CREATE INDEX IF NOT EXISTS idx_payments_user ON payments(user_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_subscriptions_user ON subscriptions(user_id) WHERE is_active;
CREATE INDEX IF NOT EXISTS idx_audit_logs_user ON audit_logs(user_id, created_at DESC);
"""

SEED_PACKAGES = """
INSERT INTO paket (nama, harga, max_kebun, fitur_ekspor) VALUES
    ('Free', 0, 1, FALSE),
    ('Premium', 299000, 5, TRUE),
    ('Enterprise', 599000, 50, TRUE)
ON CONFLICT (nama) DO NOTHING
"""


async def _init_connection(conn: asyncpg.Connection) -> None:
    """Decode JSONB columns to Python objects."""
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


class Database:
    """Owns the asyncpg pool for the lifetime of the service."""

    def __init__(self, dsn: str, *, min_size: int = 2, max_size: int = 10, command_timeout: float = 30):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("esawitku.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self) -> None:
        """Open the pool and make sure the schema exists."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout,
                init=_init_connection,
            )
            async with self.pool.acquire() as conn:
                await conn.execute(SCHEMA)
                await conn.execute(SEED_PACKAGES)

            self.logger.info("PostgreSQL pool started")

        except Exception as e:
            self.logger.error("Failed to start PostgreSQL pool", error=str(e))
            raise ServiceError("Database unavailable", details={"error": str(e)})

    async def stop(self) -> None:
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL pool stopped")

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[asyncpg.Connection]:
        if self.pool is None:
            raise ServiceError("Database pool is not started")
        async with self.pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    async def health_check(self) -> bool:
        try:
            async with self.connection() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception:
            return False
