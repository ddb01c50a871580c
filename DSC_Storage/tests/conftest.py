"""In-memory stand-ins for the PostgreSQL-backed stores.

They mirror the stores' contracts (same method names, same return types,
same error classes) so session behaviour can be tested without Docker.
"""

import dataclasses
import random
import uuid
from decimal import Decimal
from typing import Optional
from uuid import UUID

import pytest
import fakeredis

from DSC_Storage.dsc_local.backup_settings import BackupSettingsStore
from DSC_Storage.dsc_local.share_links import ShareLinkRegistry
from DSC_Storage.dsc_shared import config, errors
from DSC_Storage.dsc_shared.deal_status import utcnow
from DSC_Storage.dsc_shared.pacing import NoPacing
from DSC_Storage.dsc_shared.types import (
    FileDescriptor, FileRetrieval, NetworkStats, StatusRefreshResult,
    StorageDeal, StorageProvider, UserWallet,
)
from DSC_Storage.session import StorageSession
from DSC_Storage.settlement import MockSettlement


class MemoryDealStore:
    def __init__(self):
        self.deals: dict[UUID, StorageDeal] = {}
        self.retrievals: list[FileRetrieval] = []
        self.fail_list = False
        self.fail_delete = False
        self.fail_retrieval = False
        self.status_updates: list[tuple[UUID, str]] = []

    async def list_deals(self, user_id):
        if self.fail_list:
            raise errors.FetchError("list_deals failed: connection reset")
        deals = [dataclasses.replace(d) for d in self.deals.values() if d.user_id == user_id]
        return sorted(deals, key=lambda d: d.created_at, reverse=True)

    async def get_deal(self, deal_id):
        deal = self.deals.get(deal_id)
        return dataclasses.replace(deal) if deal else None

    async def insert_deal(self, user_id, file_cid, file: FileDescriptor, total_cost, price_per_gb,
                          created_at, expires_at, provider_id=None, deal_duration=30):
        deal = StorageDeal(
            id=uuid.uuid4(),
            user_id=user_id,
            file_cid=file_cid,
            file_name=file.name,
            file_size=file.size,
            file_type=file.mime_type,
            total_cost=total_cost,
            price_per_gb=price_per_gb,
            status="pending",
            created_at=created_at,
            expires_at=expires_at,
            deal_duration=deal_duration,
            storage_provider_id=provider_id,
        )
        self.deals[deal.id] = deal
        return dataclasses.replace(deal)

    async def update_status(self, deal_id, status):
        if status not in config.VALID_STATUSES:
            raise errors.ValidationError(f"Invalid deal status: {status}")
        self.status_updates.append((deal_id, status))
        deal = self.deals.get(deal_id)
        if deal is None:
            return None
        deal.status = status
        return dataclasses.replace(deal)

    async def mark_verified(self, deal_id):
        deal = self.deals.get(deal_id)
        if deal is None:
            return False
        deal.last_verified = utcnow()
        return True

    async def delete_deal(self, deal_id, user_id):
        if self.fail_delete:
            raise errors.RemoteWriteError("delete_deal failed: connection reset")
        deal = self.deals.get(deal_id)
        if deal is None or deal.user_id != user_id:
            return False
        del self.deals[deal_id]
        return True

    async def insert_retrieval(self, user_id, deal_id, retrieval_cost):
        if self.fail_retrieval:
            raise errors.RemoteWriteError("insert_retrieval failed: connection reset")
        record = FileRetrieval(
            id=uuid.uuid4(),
            user_id=user_id,
            deal_id=deal_id,
            retrieval_cost=retrieval_cost,
            status="pending",
            started_at=utcnow(),
        )
        self.retrievals.append(record)
        return record

    async def refresh_statuses(self):
        now = utcnow()
        expired = 0
        for deal in self.deals.values():
            if deal.status in ("pending", "active") and deal.expires_at <= now:
                deal.status = "expired"
                expired += 1
        return StatusRefreshResult(deals_activated=0, deals_expired=expired)


class MemoryLedger:
    """Applies debits relative to the stored balance, like the SQL ledger."""

    def __init__(self):
        self.wallets: dict[UUID, UserWallet] = {}
        self.debits: list[Decimal] = []
        self.fail_debit = False

    async def get_wallet(self, user_id):
        wallet = self.wallets.get(user_id)
        return dataclasses.replace(wallet) if wallet else None

    async def ensure_wallet(self, user_id, initial_balance=config.INITIAL_WALLET_BALANCE):
        if user_id not in self.wallets:
            self.wallets[user_id] = UserWallet(
                id=uuid.uuid4(),
                user_id=user_id,
                dsc_balance=Decimal(initial_balance),
                total_earned=Decimal("0"),
                total_spent=Decimal("0"),
            )
        return dataclasses.replace(self.wallets[user_id])

    async def debit(self, user_id, amount):
        if self.fail_debit:
            raise errors.RemoteWriteError("debit failed: connection reset")
        wallet = self.wallets.get(user_id)
        if wallet is None:
            raise errors.WalletNotFoundError(user_id)
        wallet.dsc_balance -= amount
        wallet.total_spent += amount
        self.debits.append(amount)
        return dataclasses.replace(wallet)


class MemoryProviders:
    def __init__(self, providers=None):
        self.providers = providers or []
        self.fail = False

    async def list_providers(self):
        if self.fail:
            raise errors.FetchError("list_providers failed: connection reset")
        return sorted(self.providers, key=lambda p: p.reputation_score, reverse=True)

    async def get_provider(self, provider_id):
        return next((p for p in self.providers if p.id == provider_id), None)


class MemoryStats:
    def __init__(self, stats: Optional[NetworkStats] = None):
        self.stats = stats

    async def fetch_latest(self):
        return self.stats


def make_provider(name="Node A", price="0.0002", reputation=90) -> StorageProvider:
    return StorageProvider(
        id=uuid.uuid4(),
        name=name,
        location="us-east",
        reputation_score=reputation,
        total_storage_gb=Decimal("1000"),
        available_storage_gb=Decimal("750"),
        price_per_gb=Decimal(price),
        uptime_percentage=Decimal("99.5"),
    )


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def settle_client():
    r = fakeredis.FakeRedis()
    yield r
    r.flushdb()
    r.close()


@pytest.fixture
def local_client():
    r = fakeredis.FakeRedis()
    yield r
    r.flushdb()
    r.close()


@pytest.fixture
def settlement(settle_client):
    return MockSettlement(settle_client, delay=0, retrieve_delay=0, rng=random.Random(7))


@pytest.fixture
def deal_store():
    return MemoryDealStore()


@pytest.fixture
def ledger():
    return MemoryLedger()


@pytest.fixture
def provider_directory():
    return MemoryProviders([
        make_provider("Budget Node", "0.00005", 70),
        make_provider("Premium Node", "0.0003", 98),
    ])


@pytest.fixture
def stats_reader():
    return MemoryStats(NetworkStats(
        total_nodes=42,
        active_deals=1200,
        total_storage_used_gb=Decimal("5120.5"),
        network_health_score=Decimal("97.2"),
        avg_response_time_ms=85,
    ))


@pytest.fixture
def make_session(deal_store, ledger, provider_directory, stats_reader, settlement, local_client):
    def _make(user_id, **overrides):
        kwargs = dict(
            deal_store=deal_store,
            ledger=ledger,
            provider_directory=provider_directory,
            stats_reader=stats_reader,
            settlement=settlement,
            share_links=ShareLinkRegistry(local_client),
            backup_settings=BackupSettingsStore(local_client),
            pacing=NoPacing(),
            background_activation=False,
        )
        kwargs.update(overrides)
        return StorageSession(user_id, **kwargs)
    return _make
