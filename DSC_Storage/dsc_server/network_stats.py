from typing import Optional

import asyncpg

from DSC_Storage.dsc_shared import errors
from DSC_Storage.dsc_shared.types import NetworkStats


class NetworkStatsReader:
    pool: asyncpg.Pool

    def __init__(self , p : asyncpg.Pool):
        self.pool = p

    async def fetch_latest(self) -> Optional[NetworkStats]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT total_nodes, active_deals, total_storage_used_gb,
                           network_health_score, avg_response_time_ms, recorded_at
                    FROM network_stats
                    ORDER BY recorded_at DESC NULLS LAST
                    LIMIT 1
                    """
                )
        except asyncpg.PostgresError as e:
            raise errors.FetchError(f"fetch_latest failed: {e}")

        if row is None:
            return None

        return NetworkStats(
            total_nodes=row["total_nodes"],
            active_deals=row["active_deals"],
            total_storage_used_gb=row["total_storage_used_gb"],
            network_health_score=row["network_health_score"],
            avg_response_time_ms=row["avg_response_time_ms"],
            recorded_at=row["recorded_at"],
        )
