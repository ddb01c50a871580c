from decimal import Decimal
from uuid import uuid4

import pytest

from DSC_Storage.dsc_server.tests.conftest import insert_provider

pytestmark = pytest.mark.asyncio


# ── Providers ──

async def test_providers_sorted_by_reputation(providers, pool):
    await insert_provider(pool, "Mid", 60)
    await insert_provider(pool, "Top", 95)
    await insert_provider(pool, "Low", 10)

    listed = await providers.list_providers()
    assert [p.name for p in listed] == ["Top", "Mid", "Low"]


async def test_provider_fields(providers, pool):
    provider_id = await insert_provider(pool, "Node", 80, "0.00015")
    provider = await providers.get_provider(provider_id)
    assert provider.price_per_gb == Decimal("0.00015")
    assert provider.available_storage_gb == 400
    assert provider.reputation_score == 80


async def test_get_missing_provider(providers):
    assert await providers.get_provider(uuid4()) is None


async def test_empty_directory(providers):
    assert await providers.list_providers() == []


# ── Network stats ──

async def test_no_stats_returns_none(stats_reader):
    assert await stats_reader.fetch_latest() is None


async def test_latest_stats_row(stats_reader, pool):
    async with pool.acquire() as conn:
        await conn.execute(
            """
            INSERT INTO network_stats
                (total_nodes, active_deals, total_storage_used_gb,
                 network_health_score, avg_response_time_ms, recorded_at)
            VALUES (10, 100, 50, 90, 120, NOW() - INTERVAL '1 hour'),
                   (12, 140, 64.5, 95.5, 80, NOW())
            """
        )

    stats = await stats_reader.fetch_latest()
    assert stats.total_nodes == 12
    assert stats.active_deals == 140
    assert stats.total_storage_used_gb == Decimal("64.5")
    assert stats.avg_response_time_ms == 80
