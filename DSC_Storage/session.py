"""
StorageSession: client-side state for one user of the storage marketplace.

Setup     → connect PostgreSQL pool + local Redis, build stores
Load      → deals (newest first), providers (by reputation), wallet, network stats
Create    → price → insert pending deal → debit wallet → activation (background)
Batch     → create one file at a time, admitted through a PacingPolicy
Retrieve  → derived status must be active/completed → record retrieval → debit fee
Delete    → remove remotely and locally, whatever the deal's status
Backup    → load / save backup preferences in local Redis

The session owns the in-memory mirror; callers only see snapshots.
Every failing command is logged and reported as a Notification before the
error propagates; the mirror keeps its last known good state.
"""

import asyncio
import dataclasses
import logging
import random
import string
from typing import Callable, Optional
from uuid import UUID

import asyncpg
import redis

from DSC_Storage.activation import ActivationOutcome, DealActivationSequencer
from DSC_Storage.dsc_local.backup_settings import BackupSettingsStore
from DSC_Storage.dsc_local.connection import create_local_client, create_settlement_client
from DSC_Storage.dsc_local.share_links import ShareLinkRegistry
from DSC_Storage.dsc_server.db import close_pool, create_pool
from DSC_Storage.dsc_server.deal_store import DealStore
from DSC_Storage.dsc_server.network_stats import NetworkStatsReader
from DSC_Storage.dsc_server.provider_directory import ProviderDirectory
from DSC_Storage.dsc_server.wallet_ledger import WalletLedger
from DSC_Storage.dsc_shared import config, errors
from DSC_Storage.dsc_shared.deal_status import derive_status, utcnow
from DSC_Storage.dsc_shared.pacing import FixedPacing, PacingPolicy, run_paced
from DSC_Storage.dsc_shared.pricing import calculate_cost, expiry_for, resolve_price
from DSC_Storage.dsc_shared.types import (
    BackupSettings, FileDescriptor, FileRetrieval, NetworkStats, Notification, RetrievedContent,
    ShareLink, StatusRefreshResult, StorageDeal, StorageProvider, UserWallet,
)
from DSC_Storage.settlement import SettlementBackend, create_settlement_backend

logger = logging.getLogger(__name__)

_CID_ALPHABET = string.ascii_lowercase + string.digits

_FAILURES = (errors.StorageMarketError, errors.ServerDatabaseError)


def mock_cid(rng: random.Random = random) -> str:
    """Opaque content address in the familiar ``Qm...`` shape."""
    return "Qm" + "".join(rng.choice(_CID_ALPHABET) for _ in range(26))


class StorageSession:
    """Deal lifecycle and wallet reconciliation for one user."""

    def __init__(
        self,
        user_id: Optional[UUID],
        *,
        deal_store=None,
        ledger=None,
        provider_directory=None,
        stats_reader=None,
        settlement: Optional[SettlementBackend] = None,
        share_links: Optional[ShareLinkRegistry] = None,
        backup_settings: Optional[BackupSettingsStore] = None,
        pool: Optional[asyncpg.Pool] = None,
        local_client: Optional[redis.Redis] = None,
        pacing: Optional[PacingPolicy] = None,
        activate_on_failure: bool = config.ACTIVATE_ON_SETTLEMENT_FAILURE,
        background_activation: bool = True,
        on_notify: Optional[Callable[[Notification], None]] = None,
    ):
        self.user_id = user_id

        self._pool = pool
        self._local_client = local_client
        self._settlement_client = None
        self._owns_pool = False

        self.deal_store = deal_store
        self.ledger = ledger
        self.provider_directory = provider_directory
        self.stats_reader = stats_reader
        self.settlement = settlement
        self.share_links = share_links
        self.backup_settings = backup_settings
        self.pacing = pacing or FixedPacing()
        self.activate_on_failure = activate_on_failure
        self.background_activation = background_activation
        self.sequencer: Optional[DealActivationSequencer] = None

        self._on_notify = on_notify
        self._notifications: list[Notification] = []
        self._activations: list[asyncio.Task] = []

        self._deals: list[StorageDeal] = []
        self._providers: list[StorageProvider] = []
        self._wallet: Optional[UserWallet] = None
        self._network_stats: Optional[NetworkStats] = None
        self.loading = False

        self._build_sequencer()

    def _build_sequencer(self) -> None:
        if self.deal_store is not None and self.settlement is not None:
            self.sequencer = DealActivationSequencer(
                self.deal_store,
                self.settlement,
                activate_on_failure=self.activate_on_failure,
            )

    async def setup(self) -> None:
        """Connect to PostgreSQL and local Redis for anything not injected."""
        if self._pool is None and None in (
            self.deal_store, self.ledger, self.provider_directory, self.stats_reader,
        ):
            self._pool = await create_pool()
            self._owns_pool = True

        if self.deal_store is None:
            self.deal_store = DealStore(self._pool)
        if self.ledger is None:
            self.ledger = WalletLedger(self._pool)
        if self.provider_directory is None:
            self.provider_directory = ProviderDirectory(self._pool)
        if self.stats_reader is None:
            self.stats_reader = NetworkStatsReader(self._pool)

        if self._local_client is None and (self.share_links is None or self.backup_settings is None):
            self._local_client = create_local_client()
        if self.share_links is None:
            self.share_links = ShareLinkRegistry(self._local_client)
        if self.backup_settings is None:
            self.backup_settings = BackupSettingsStore(self._local_client)
        if self.settlement is None:
            if config.SETTLEMENT_BACKEND == "mock":
                self._settlement_client = create_settlement_client()
            self.settlement = create_settlement_backend(
                config.SETTLEMENT_BACKEND, client=self._settlement_client,
            )

        self._build_sequencer()

    # ─── Snapshots ───

    @property
    def deals(self) -> tuple[StorageDeal, ...]:
        return tuple(dataclasses.replace(d) for d in self._deals)

    @property
    def providers(self) -> tuple[StorageProvider, ...]:
        return tuple(dataclasses.replace(p) for p in self._providers)

    @property
    def wallet(self) -> Optional[UserWallet]:
        return dataclasses.replace(self._wallet) if self._wallet else None

    @property
    def network_stats(self) -> Optional[NetworkStats]:
        return dataclasses.replace(self._network_stats) if self._network_stats else None

    @property
    def notifications(self) -> tuple[Notification, ...]:
        return tuple(self._notifications)

    def find_deal(self, deal_id: UUID) -> Optional[StorageDeal]:
        for deal in self._deals:
            if deal.id == deal_id:
                return dataclasses.replace(deal)
        return None

    # ─── Notifications ───

    def _notify(self, title: str, description: str, variant: str = "default") -> None:
        note = Notification(title=title, description=description, variant=variant)
        self._notifications.append(note)
        if self._on_notify:
            self._on_notify(note)

    def _fail(self, description: str, error: Exception) -> None:
        logger.error("%s: %s", description, error)
        self._notify("Error", description, variant="destructive")

    def _require_user(self, operation: str) -> UUID:
        if self.user_id is None:
            raise errors.NotAuthenticatedError(operation)
        return self.user_id

    # ─── Load ───

    async def refresh_deals(self) -> list[StorageDeal]:
        """Re-read the user's deals. Raises FetchError; state is kept on failure."""
        user_id = self._require_user("list_deals")
        deals = await self.deal_store.list_deals(user_id)
        self._deals = deals
        return list(deals)

    async def load(self) -> bool:
        """Fetch deals, providers, wallet and network stats in one pass.

        Returns False (after reporting) when any read fails; nothing is
        replaced in that case.
        """
        self.loading = True
        try:
            deals = []
            wallet = self._wallet
            if self.user_id is not None:
                deals = await self.deal_store.list_deals(self.user_id)
            providers = await self.provider_directory.list_providers()
            if self.user_id is not None:
                wallet = await self.ledger.get_wallet(self.user_id)
            stats = await self.stats_reader.fetch_latest()
        except _FAILURES as e:
            self._fail("Failed to fetch storage data", e)
            return False
        finally:
            self.loading = False

        self._deals = deals
        self._providers = providers
        self._wallet = wallet
        self._network_stats = stats
        return True

    async def open_wallet(self, initial_balance=config.INITIAL_WALLET_BALANCE) -> UserWallet:
        """Create the user's wallet row if it does not exist yet."""
        user_id = self._require_user("open_wallet")
        try:
            self._wallet = await self.ledger.ensure_wallet(user_id, initial_balance)
        except _FAILURES as e:
            self._fail("Failed to open wallet", e)
            raise
        return dataclasses.replace(self._wallet)

    # ─── Deal Lifecycle ───

    async def create_deal(
        self,
        file: FileDescriptor,
        provider_id: Optional[UUID] = None,
    ) -> StorageDeal:
        """Insert a pending deal for ``file``, debit its cost and start activation.

        Returns the inserted (pending) record. If the debit fails the
        inserted row is deleted again and the error propagates.
        """
        try:
            user_id = self._require_user("create_deal")
            if file.size < 0:
                raise errors.ValidationError(f"Invalid file size for {file.name}: {file.size}")

            price = resolve_price(self._providers, provider_id)
            cost = calculate_cost(file.size, price)
            created_at = utcnow()

            deal = await self.deal_store.insert_deal(
                user_id,
                mock_cid(),
                file,
                cost,
                price,
                created_at,
                expiry_for(created_at),
                provider_id=provider_id,
                deal_duration=config.DEAL_DURATION_DAYS,
            )

            if self._wallet is not None:
                try:
                    self._wallet = await self.ledger.debit(user_id, cost)
                except _FAILURES:
                    # Compensate: the deal must not outlive an unpaid debit
                    await self.deal_store.delete_deal(deal.id, user_id)
                    logger.warning("Rolled back deal %s after failed debit", deal.id)
                    raise
            else:
                logger.warning("No wallet loaded for %s; deal %s not debited", user_id, deal.id)

        except _FAILURES as e:
            self._fail("Failed to create storage deal", e)
            raise

        self._deals.insert(0, deal)
        self._notify("Storage Deal Created", f"File {file.name} uploaded successfully")

        if self.background_activation:
            self._activations.append(asyncio.create_task(self._run_activation(deal)))
        else:
            await self._run_activation(deal)

        return dataclasses.replace(deal)

    async def _run_activation(self, deal: StorageDeal) -> Optional[ActivationOutcome]:
        try:
            outcome = await self.sequencer.activate(deal)
        except _FAILURES as e:
            self._fail(f"Failed to activate deal for {deal.file_name}", e)
            return None

        self._replace_deal(outcome.deal)
        if outcome.settled:
            self._notify("Deal Activated", f"{deal.file_name} is now stored on the network")
        else:
            self._notify(
                "Settlement Failed",
                f"Contract call failed for {deal.file_name}; deal is {outcome.deal.status}",
                variant="destructive",
            )
        return outcome

    def _replace_deal(self, updated: StorageDeal) -> None:
        for i, deal in enumerate(self._deals):
            if deal.id == updated.id:
                self._deals[i] = updated
                return

    async def wait_for_activations(self) -> list[Optional[ActivationOutcome]]:
        """Await every activation started so far."""
        pending, self._activations = self._activations, []
        if not pending:
            return []
        return list(await asyncio.gather(*pending))

    def detach_activations(self) -> list[asyncio.Task]:
        """Hand running activations to a longer-lived owner."""
        pending, self._activations = self._activations, []
        return pending

    async def create_batch(
        self,
        files: list[FileDescriptor],
        provider: Optional[StorageProvider] = None,
    ) -> list[StorageDeal]:
        """Create one deal per file, in order, never two at once."""
        provider_id = provider.id if provider else None
        return await run_paced(
            files,
            lambda f: self.create_deal(f, provider_id),
            self.pacing,
        )

    async def delete_deal(self, deal_id: UUID) -> bool:
        """Remove a deal whatever its status. Reports failures, returns False."""
        try:
            user_id = self._require_user("delete_deal")
            removed = await self.deal_store.delete_deal(deal_id, user_id)
        except _FAILURES as e:
            self._fail("Failed to delete storage deal", e)
            return False

        if removed:
            self._deals = [d for d in self._deals if d.id != deal_id]
            self._notify("Deal Deleted", "Storage deal has been removed")
        else:
            logger.info("Deal %s not found for %s; nothing deleted", deal_id, user_id)
        return removed

    async def _lookup_deal(self, deal_id: UUID) -> StorageDeal:
        deal = self.find_deal(deal_id)
        if deal is None:
            deal = await self.deal_store.get_deal(deal_id)
        if deal is None or deal.user_id != self.user_id:
            raise errors.DealNotFoundError(deal_id)
        return deal

    async def retrieve(self, deal_id: UUID) -> FileRetrieval:
        """Record a retrieval of an active/completed, unexpired deal and charge the fee."""
        try:
            user_id = self._require_user("retrieve")
            deal = await self._lookup_deal(deal_id)

            status = derive_status(deal)
            if status not in config.RETRIEVABLE_STATUSES:
                raise errors.DealNotRetrievableError(deal_id, status)

            record = await self.deal_store.insert_retrieval(user_id, deal_id, config.RETRIEVAL_FEE)
            if self._wallet is not None:
                self._wallet = await self.ledger.debit(user_id, config.RETRIEVAL_FEE)
        except _FAILURES as e:
            self._fail("Failed to retrieve file", e)
            raise

        self._notify("File Retrieved", "File retrieval initiated successfully")
        return record

    async def retrieve_content(self, deal_id: UUID) -> RetrievedContent:
        """Retrieve a deal and resolve its content through the settlement backend."""
        await self.retrieve(deal_id)
        deal = await self._lookup_deal(deal_id)
        try:
            return await self.settlement.retrieve_content(deal.file_cid, deal.file_name)
        except _FAILURES as e:
            self._fail("Failed to download file", e)
            raise

    async def verify_deal(self, deal_id: UUID) -> bool:
        try:
            deal = await self._lookup_deal(deal_id)
            verified = await self.settlement.verify_storage(str(deal.id))
            if verified:
                await self.deal_store.mark_verified(deal.id)
        except _FAILURES as e:
            self._fail("Failed to verify storage", e)
            raise
        return verified

    async def refresh_statuses(self) -> StatusRefreshResult:
        """Run the server-side status refresh, then reload the deal list."""
        try:
            result = await self.deal_store.refresh_statuses()
            if self.user_id is not None:
                self._deals = await self.deal_store.list_deals(self.user_id)
        except _FAILURES as e:
            self._fail("Failed to refresh deal statuses", e)
            raise
        return result

    # ─── Sharing ───

    async def create_share_link(self, deal_id: Optional[UUID], **options) -> ShareLink:
        try:
            if deal_id is None:
                raise errors.ValidationError("No file selected to share")
            deal = await self._lookup_deal(deal_id)
            link = self.share_links.create(deal, **options)
        except _FAILURES as e:
            self._fail("Failed to generate share link", e)
            raise

        self._notify("Share Link Generated", "Secure share link created successfully")
        return link

    # ─── Backup Settings ───

    def load_backup_settings(self) -> BackupSettings:
        try:
            return self.backup_settings.load()
        except _FAILURES as e:
            self._fail("Failed to load backup settings", e)
            raise

    def save_backup_settings(self, settings: BackupSettings) -> BackupSettings:
        try:
            self.backup_settings.save(settings)
        except _FAILURES as e:
            self._fail("Failed to save backup settings", e)
            raise

        self._notify("Settings Saved", "Your backup settings have been updated successfully")
        return settings

    # ─── Teardown ───

    async def teardown(self) -> None:
        await self.wait_for_activations()
        if self.settlement is not None:
            await self.settlement.close()
        for client in (self._local_client, self._settlement_client):
            if client is not None:
                client.close()
        if self._owns_pool:
            await close_pool()
