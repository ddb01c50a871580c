import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import asyncpg

from DSC_Storage.dsc_shared import config, errors
from DSC_Storage.dsc_shared.types import (
    FileDescriptor, FileRetrieval, StatusRefreshResult, StorageDeal,
)

logger = logging.getLogger(__name__)

DEAL_COLUMNS = """
    id, user_id, file_cid, file_name, file_size, file_type, total_cost,
    price_per_gb, status, created_at, expires_at, deal_duration,
    storage_provider_id, last_verified
"""


def _row_to_deal(row) -> StorageDeal:
    return StorageDeal(
        id=row["id"],
        user_id=row["user_id"],
        file_cid=row["file_cid"],
        file_name=row["file_name"],
        file_size=row["file_size"],
        file_type=row["file_type"],
        total_cost=row["total_cost"],
        price_per_gb=row["price_per_gb"],
        status=row["status"],
        created_at=row["created_at"],
        expires_at=row["expires_at"],
        deal_duration=row["deal_duration"],
        storage_provider_id=row["storage_provider_id"],
        last_verified=row["last_verified"],
    )


class DealStore:
    pool: asyncpg.Pool

    def __init__(self , p : asyncpg.Pool):
        self.pool = p

    async def list_deals(self, user_id: UUID) -> list[StorageDeal]:
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {DEAL_COLUMNS}
                    FROM storage_deals
                    WHERE user_id = $1
                    ORDER BY created_at DESC
                    """,
                    user_id,
                )
                return [_row_to_deal(row) for row in rows]
        except asyncpg.PostgresError as e:
            raise errors.FetchError(f"list_deals failed: {e}")

    async def get_deal(self, deal_id: UUID) -> Optional[StorageDeal]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {DEAL_COLUMNS} FROM storage_deals WHERE id = $1",
                    deal_id,
                )
                return _row_to_deal(row) if row else None
        except asyncpg.PostgresError as e:
            raise errors.FetchError(f"get_deal failed: {e}")

    async def insert_deal(
        self,
        user_id: UUID,
        file_cid: str,
        file: FileDescriptor,
        total_cost: Decimal,
        price_per_gb: Decimal,
        created_at: datetime,
        expires_at: datetime,
        provider_id: Optional[UUID] = None,
        deal_duration: int = config.DEAL_DURATION_DAYS,
    ) -> StorageDeal:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO storage_deals
                        (user_id, file_cid, file_name, file_size, file_type,
                         total_cost, price_per_gb, deal_duration,
                         storage_provider_id, created_at, expires_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                    RETURNING {DEAL_COLUMNS}
                    """,
                    user_id,
                    file_cid,
                    file.name,
                    file.size,
                    file.mime_type,
                    total_cost,
                    price_per_gb,
                    deal_duration,
                    provider_id,
                    created_at,
                    expires_at,
                )
        except asyncpg.PostgresError as e:
            raise errors.RemoteWriteError(f"insert_deal failed: {e}")

        deal = _row_to_deal(row)
        logger.info("Inserted pending deal %s for %s (%s bytes)", deal.id, file.name, file.size)
        return deal

    async def update_status(self, deal_id: UUID, status: str) -> Optional[StorageDeal]:
        if status not in config.VALID_STATUSES:
            raise errors.ValidationError(f"Invalid deal status: {status}")

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE storage_deals
                    SET status = $2
                    WHERE id = $1
                    RETURNING {DEAL_COLUMNS}
                    """,
                    deal_id,
                    status,
                )
                return _row_to_deal(row) if row else None
        except asyncpg.PostgresError as e:
            raise errors.RemoteWriteError(f"update_status failed: {e}")

    async def mark_verified(self, deal_id: UUID) -> bool:
        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute(
                    "UPDATE storage_deals SET last_verified = NOW() WHERE id = $1",
                    deal_id,
                )
                # result is "UPDATE N" string
                return int(result.split()[-1]) == 1
        except asyncpg.PostgresError as e:
            raise errors.RemoteWriteError(f"mark_verified failed: {e}")

    async def delete_deal(self, deal_id: UUID, user_id: UUID) -> bool:
        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM storage_deals WHERE id = $1 AND user_id = $2",
                    deal_id,
                    user_id,
                )
                return int(result.split()[-1]) == 1
        except asyncpg.PostgresError as e:
            raise errors.RemoteWriteError(f"delete_deal failed: {e}")

    async def insert_retrieval(
        self,
        user_id: UUID,
        deal_id: UUID,
        retrieval_cost: Decimal,
    ) -> FileRetrieval:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO file_retrievals (user_id, deal_id, retrieval_cost)
                    VALUES ($1, $2, $3)
                    RETURNING id, user_id, deal_id, retrieval_cost, status,
                              started_at, completed_at
                    """,
                    user_id,
                    deal_id,
                    retrieval_cost,
                )
        except asyncpg.PostgresError as e:
            raise errors.RemoteWriteError(f"insert_retrieval failed: {e}")

        return FileRetrieval(
            id=row["id"],
            user_id=row["user_id"],
            deal_id=row["deal_id"],
            retrieval_cost=row["retrieval_cost"],
            status=row["status"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
        )

    async def refresh_statuses(self) -> StatusRefreshResult:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT deals_activated, deals_expired FROM refresh_deal_statuses()"
                )
        except asyncpg.PostgresError as e:
            raise errors.RemoteWriteError(f"refresh_statuses failed: {e}")

        return StatusRefreshResult(
            deals_activated=row["deals_activated"],
            deals_expired=row["deals_expired"],
        )
