"""DDL for the backing store tables and the status-refresh procedure."""

import asyncpg

from DSC_Storage.dsc_shared.errors import ConnectionPoolError

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS storage_providers(
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    name TEXT NOT NULL,
    location TEXT NOT NULL,
    reputation_score INTEGER DEFAULT 0 CHECK ( reputation_score BETWEEN 0 AND 100 ),
    total_storage_gb NUMERIC NOT NULL,
    available_storage_gb NUMERIC NOT NULL,
    price_per_gb NUMERIC(38, 18) NOT NULL CHECK ( price_per_gb >= 0 ),
    uptime_percentage NUMERIC DEFAULT 100,
    last_online TIMESTAMPTZ DEFAULT NOW(),
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS storage_deals(
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL,
    file_cid TEXT NOT NULL,
    file_name TEXT NOT NULL,
    file_size BIGINT NOT NULL CHECK ( file_size >= 0 ),
    file_type TEXT DEFAULT NULL,

    total_cost NUMERIC(38, 18) NOT NULL CHECK ( total_cost >= 0 ),
    price_per_gb NUMERIC(38, 18) NOT NULL DEFAULT 0.0001,
    deal_duration INTEGER NOT NULL DEFAULT 30,
    status VARCHAR(9) NOT NULL DEFAULT 'pending'
        CHECK ( status IN ('pending' , 'active' , 'completed' , 'failed' , 'expired') ),

    storage_provider_id UUID DEFAULT NULL REFERENCES storage_providers(id) ON DELETE SET NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    expires_at TIMESTAMPTZ NOT NULL,
    last_verified TIMESTAMPTZ DEFAULT NULL,

    CONSTRAINT chk_expiry_after_creation CHECK ( expires_at > created_at )
);

CREATE INDEX IF NOT EXISTS idx_deals_user_created
    ON storage_deals (user_id , created_at DESC);
CREATE INDEX IF NOT EXISTS idx_deals_status_expiry
    ON storage_deals (status , expires_at);

CREATE TABLE IF NOT EXISTS user_wallets(
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL UNIQUE,
    dsc_balance NUMERIC(38, 18) NOT NULL DEFAULT 0,
    total_earned NUMERIC(38, 18) NOT NULL DEFAULT 0,
    total_spent NUMERIC(38, 18) NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS file_retrievals(
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL,
    deal_id UUID NOT NULL REFERENCES storage_deals(id) ON DELETE CASCADE,
    retrieval_cost NUMERIC(38, 18) DEFAULT 0,
    status VARCHAR(16) NOT NULL DEFAULT 'pending',
    started_at TIMESTAMPTZ DEFAULT NOW(),
    completed_at TIMESTAMPTZ DEFAULT NULL
);

CREATE TABLE IF NOT EXISTS network_stats(
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    total_nodes INTEGER NOT NULL DEFAULT 0,
    active_deals INTEGER NOT NULL DEFAULT 0,
    total_storage_used_gb NUMERIC NOT NULL DEFAULT 0,
    network_health_score NUMERIC NOT NULL DEFAULT 0,
    avg_response_time_ms INTEGER NOT NULL DEFAULT 0,
    recorded_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE OR REPLACE FUNCTION refresh_deal_statuses()
RETURNS TABLE(deals_activated INTEGER, deals_expired INTEGER)
LANGUAGE plpgsql AS $$
DECLARE
    n_activated INTEGER;
    n_expired INTEGER;
BEGIN
    UPDATE storage_deals
    SET status = 'active'
    WHERE status = 'pending'
      AND expires_at > NOW()
      AND created_at < NOW() - INTERVAL '1 minute';
    GET DIAGNOSTICS n_activated = ROW_COUNT;

    UPDATE storage_deals
    SET status = 'expired'
    WHERE status IN ('pending', 'active')
      AND expires_at <= NOW();
    GET DIAGNOSTICS n_expired = ROW_COUNT;

    RETURN QUERY SELECT n_activated, n_expired;
END;
$$;
"""

TRUNCATE_SQL = """
TRUNCATE file_retrievals, storage_deals, user_wallets, network_stats, storage_providers
"""


async def apply_schema(pool: asyncpg.Pool) -> None:
    """Create any missing tables, indexes and procedures. Safe to rerun."""
    try:
        async with pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)
    except asyncpg.PostgresError as e:
        raise ConnectionPoolError(f"Failed to apply schema: {e}")
