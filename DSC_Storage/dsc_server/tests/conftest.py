import asyncio
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
import asyncpg

from DSC_Storage.dsc_server.deal_store import DealStore
from DSC_Storage.dsc_server.network_stats import NetworkStatsReader
from DSC_Storage.dsc_server.provider_directory import ProviderDirectory
from DSC_Storage.dsc_server import config
from DSC_Storage.dsc_server.schema import TRUNCATE_SQL, apply_schema
from DSC_Storage.dsc_server.wallet_ledger import WalletLedger
from DSC_Storage.dsc_shared.types import FileDescriptor

TEST_DSN = os.environ.get("DSC_TEST_DSN", config.PG_TEST_DSN)


# ─── PostgreSQL fixtures (needs Docker) ───

@pytest_asyncio.fixture
async def pool():
    """Per-test pool on a clean schema; skips when PostgreSQL is unreachable."""
    try:
        p = await asyncpg.create_pool(TEST_DSN, min_size=1, max_size=10)
    except (OSError, asyncio.TimeoutError, asyncpg.PostgresError) as e:
        pytest.skip(f"PostgreSQL not available: {e}")

    await apply_schema(p)
    async with p.acquire() as conn:
        await conn.execute(TRUNCATE_SQL)
    yield p
    await p.close()


@pytest.fixture
def deal_store(pool) -> DealStore:
    return DealStore(pool)


@pytest.fixture
def ledger(pool) -> WalletLedger:
    return WalletLedger(pool)


@pytest.fixture
def providers(pool) -> ProviderDirectory:
    return ProviderDirectory(pool)


@pytest.fixture
def stats_reader(pool) -> NetworkStatsReader:
    return NetworkStatsReader(pool)


async def insert_provider(pool, name="Node", reputation=80, price="0.0002"):
    async with pool.acquire() as conn:
        return await conn.fetchval(
            """
            INSERT INTO storage_providers
                (name, location, reputation_score, total_storage_gb,
                 available_storage_gb, price_per_gb, uptime_percentage)
            VALUES ($1, 'us-east', $2, 1000, 400, $3, 99.9)
            RETURNING id
            """,
            name,
            reputation,
            Decimal(price),
        )


async def insert_deal(deal_store, user_id, name="file.txt", created_at=None, duration=timedelta(days=30)):
    created_at = created_at or datetime.now(timezone.utc)
    return await deal_store.insert_deal(
        user_id,
        f"Qm{uuid4().hex[:26]}",
        FileDescriptor(name, 4096, "text/plain"),
        Decimal("0.000000381469726563"),
        Decimal("0.0001"),
        created_at,
        created_at + duration,
    )
