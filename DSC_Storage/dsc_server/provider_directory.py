from typing import Optional
from uuid import UUID

import asyncpg

from DSC_Storage.dsc_shared import errors
from DSC_Storage.dsc_shared.types import StorageProvider

PROVIDER_COLUMNS = """
    id, name, location, reputation_score, total_storage_gb,
    available_storage_gb, price_per_gb, uptime_percentage
"""


def _row_to_provider(row) -> StorageProvider:
    return StorageProvider(
        id=row["id"],
        name=row["name"],
        location=row["location"],
        reputation_score=row["reputation_score"] or 0,
        total_storage_gb=row["total_storage_gb"],
        available_storage_gb=row["available_storage_gb"],
        price_per_gb=row["price_per_gb"],
        uptime_percentage=row["uptime_percentage"],
    )


class ProviderDirectory:
    """Read-only view over storage_providers. Capacity is never reserved."""

    pool: asyncpg.Pool

    def __init__(self , p : asyncpg.Pool):
        self.pool = p

    async def list_providers(self) -> list[StorageProvider]:
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {PROVIDER_COLUMNS}
                    FROM storage_providers
                    ORDER BY reputation_score DESC NULLS LAST
                    """
                )
                return [_row_to_provider(row) for row in rows]
        except asyncpg.PostgresError as e:
            raise errors.FetchError(f"list_providers failed: {e}")

    async def get_provider(self, provider_id: UUID) -> Optional[StorageProvider]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {PROVIDER_COLUMNS} FROM storage_providers WHERE id = $1",
                    provider_id,
                )
                return _row_to_provider(row) if row else None
        except asyncpg.PostgresError as e:
            raise errors.FetchError(f"get_provider failed: {e}")
