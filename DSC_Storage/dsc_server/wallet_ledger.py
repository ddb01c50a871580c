"""
Wallet ledger for one user's DSC balance.

Debits and credits are relative updates executed by the database, so two
debits issued back to back both land (no read-modify-write on a cached
balance). There is no lower bound on the balance: it may go negative.
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID

import asyncpg

from DSC_Storage.dsc_shared import config, errors
from DSC_Storage.dsc_shared.types import UserWallet

logger = logging.getLogger(__name__)

WALLET_COLUMNS = "id, user_id, dsc_balance, total_earned, total_spent"


def _row_to_wallet(row) -> UserWallet:
    return UserWallet(
        id=row["id"],
        user_id=row["user_id"],
        dsc_balance=row["dsc_balance"],
        total_earned=row["total_earned"],
        total_spent=row["total_spent"],
    )


class WalletLedger:
    pool: asyncpg.Pool

    def __init__(self , p : asyncpg.Pool):
        self.pool = p

    async def get_wallet(self, user_id: UUID) -> Optional[UserWallet]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {WALLET_COLUMNS} FROM user_wallets WHERE user_id = $1",
                    user_id,
                )
                return _row_to_wallet(row) if row else None
        except asyncpg.PostgresError as e:
            raise errors.FetchError(f"get_wallet failed: {e}")

    async def ensure_wallet(
        self,
        user_id: UUID,
        initial_balance: Decimal = config.INITIAL_WALLET_BALANCE,
    ) -> UserWallet:
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        """
                        INSERT INTO user_wallets (user_id, dsc_balance)
                        VALUES ($1, $2)
                        ON CONFLICT (user_id) DO NOTHING
                        """,
                        user_id,
                        initial_balance,
                    )
                    row = await conn.fetchrow(
                        f"SELECT {WALLET_COLUMNS} FROM user_wallets WHERE user_id = $1",
                        user_id,
                    )
                    return _row_to_wallet(row)
        except asyncpg.PostgresError as e:
            raise errors.RemoteWriteError(f"ensure_wallet failed: {e}")

    async def debit(self, user_id: UUID, amount: Decimal) -> UserWallet:
        if amount < 0:
            raise errors.ValidationError(f"Debit amount must be non-negative: {amount}")

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE user_wallets
                    SET dsc_balance = dsc_balance - $2,
                        total_spent = total_spent + $2,
                        updated_at = NOW()
                    WHERE user_id = $1
                    RETURNING {WALLET_COLUMNS}
                    """,
                    user_id,
                    amount,
                )
        except asyncpg.PostgresError as e:
            raise errors.RemoteWriteError(f"debit failed: {e}")

        if row is None:
            raise errors.WalletNotFoundError(user_id)

        wallet = _row_to_wallet(row)
        if wallet.dsc_balance < 0:
            logger.warning("Wallet %s overdrawn: balance %s", user_id, wallet.dsc_balance)
        return wallet

    async def credit(self, user_id: UUID, amount: Decimal) -> UserWallet:
        if amount < 0:
            raise errors.ValidationError(f"Credit amount must be non-negative: {amount}")

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE user_wallets
                    SET dsc_balance = dsc_balance + $2,
                        total_earned = total_earned + $2,
                        updated_at = NOW()
                    WHERE user_id = $1
                    RETURNING {WALLET_COLUMNS}
                    """,
                    user_id,
                    amount,
                )
        except asyncpg.PostgresError as e:
            raise errors.RemoteWriteError(f"credit failed: {e}")

        if row is None:
            raise errors.WalletNotFoundError(user_id)
        return _row_to_wallet(row)
