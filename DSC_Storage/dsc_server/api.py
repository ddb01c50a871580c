"""
FastAPI endpoints for the DSC storage marketplace.

The current user is carried in the X-User-Id header. Each request builds a
StorageSession over the shared pool, so pricing, wallet debits and status
checks follow exactly the same path as the interactive client. Decimal
amounts are serialized as strings.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel, Field

from DSC_Storage.dsc_local.connection import create_settlement_client
from DSC_Storage.dsc_server import db
from DSC_Storage.dsc_server.deal_store import DealStore
from DSC_Storage.dsc_server.network_stats import NetworkStatsReader
from DSC_Storage.dsc_server.provider_directory import ProviderDirectory
from DSC_Storage.dsc_server.schema import apply_schema
from DSC_Storage.dsc_server.wallet_ledger import WalletLedger
from DSC_Storage.dsc_shared import errors
from DSC_Storage.dsc_shared.deal_status import derive_status
from DSC_Storage.dsc_shared.types import FileDescriptor, StorageDeal
from DSC_Storage.session import StorageSession
from DSC_Storage.settlement import SettlementBackend, create_settlement_backend

logger = logging.getLogger(__name__)

settlement: Optional[SettlementBackend] = None
_activation_tasks: set[asyncio.Task] = set()


# ── Pydantic request/response models ──


class FileIn(BaseModel):
    name: str = Field(..., min_length=1)
    size: int = Field(..., ge=0)
    mime_type: Optional[str] = None


class CreateDealRequest(BaseModel):
    file: FileIn
    provider_id: Optional[UUID] = None


class BatchRequest(BaseModel):
    files: list[FileIn] = Field(..., min_length=1)
    provider_id: Optional[UUID] = None


class DealOut(BaseModel):
    id: UUID
    file_cid: str
    file_name: str
    file_size: int
    file_type: Optional[str]
    total_cost: Decimal
    status: str
    effective_status: str
    created_at: datetime
    expires_at: datetime
    storage_provider_id: Optional[UUID]


class DealsResponse(BaseModel):
    deals: list[DealOut]


class RetrievalOut(BaseModel):
    id: UUID
    deal_id: UUID
    retrieval_cost: Decimal
    status: str


class ProviderOut(BaseModel):
    id: UUID
    name: str
    location: str
    reputation_score: int
    total_storage_gb: Decimal
    available_storage_gb: Decimal
    price_per_gb: Decimal
    uptime_percentage: Optional[Decimal]


class ProvidersResponse(BaseModel):
    providers: list[ProviderOut]


class WalletOut(BaseModel):
    dsc_balance: Decimal
    total_earned: Decimal
    total_spent: Decimal


class StatsOut(BaseModel):
    total_nodes: int
    active_deals: int
    total_storage_used_gb: Decimal
    network_health_score: Decimal
    avg_response_time_ms: int


class RefreshResponse(BaseModel):
    deals_activated: int
    deals_expired: int


class DeleteResponse(BaseModel):
    deleted: bool


class HealthResponse(BaseModel):
    status: str
    db_connected: bool


# ── App lifecycle ──


@asynccontextmanager
async def lifespan(app: FastAPI):
    global settlement
    pool = await db.create_pool()
    await apply_schema(pool)
    if settlement is None:
        settlement = create_settlement_backend(client=create_settlement_client())
    yield
    if _activation_tasks:
        await asyncio.gather(*_activation_tasks)
    await settlement.close()
    await db.close_pool()


app = FastAPI(title="DSC Storage Marketplace", version="1.0.0", lifespan=lifespan)


def _require_pool():
    try:
        return db.get_pool()
    except errors.ConnectionPoolError:
        raise HTTPException(status_code=503, detail="Database pool not initialized")


def _require_user(x_user_id: Optional[UUID]) -> UUID:
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="User not authenticated")
    return x_user_id


def _session(user_id: Optional[UUID]) -> StorageSession:
    pool = _require_pool()
    if settlement is None:
        raise HTTPException(status_code=503, detail="Settlement backend not initialized")
    return StorageSession(
        user_id,
        deal_store=DealStore(pool),
        ledger=WalletLedger(pool),
        provider_directory=ProviderDirectory(pool),
        stats_reader=NetworkStatsReader(pool),
        settlement=settlement,
    )


def _keep_activations(session: StorageSession) -> None:
    for task in session.detach_activations():
        _activation_tasks.add(task)
        task.add_done_callback(_activation_tasks.discard)


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, errors.NotAuthenticatedError):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, errors.DealNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, errors.DealNotRetrievableError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, errors.ValidationError):
        return HTTPException(status_code=422, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def _deal_out(deal: StorageDeal) -> DealOut:
    return DealOut(
        id=deal.id,
        file_cid=deal.file_cid,
        file_name=deal.file_name,
        file_size=deal.file_size,
        file_type=deal.file_type,
        total_cost=deal.total_cost,
        status=deal.status,
        effective_status=derive_status(deal),
        created_at=deal.created_at,
        expires_at=deal.expires_at,
        storage_provider_id=deal.storage_provider_id,
    )


async def _loaded_session(user_id: UUID) -> StorageSession:
    session = _session(user_id)
    if not await session.load():
        raise HTTPException(status_code=500, detail="Failed to fetch storage data")
    return session


# ── Deals ──


@app.get("/v1/deals", response_model=DealsResponse)
async def list_deals(x_user_id: Optional[UUID] = Header(default=None)):
    session = _session(_require_user(x_user_id))
    try:
        deals = await session.refresh_deals()
    except (errors.StorageMarketError, errors.ServerDatabaseError) as e:
        raise _http_error(e)
    return DealsResponse(deals=[_deal_out(d) for d in deals])


@app.post("/v1/deals", response_model=DealOut)
async def create_deal(req: CreateDealRequest, x_user_id: Optional[UUID] = Header(default=None)):
    session = await _loaded_session(_require_user(x_user_id))
    file = FileDescriptor(name=req.file.name, size=req.file.size, mime_type=req.file.mime_type)
    try:
        deal = await session.create_deal(file, req.provider_id)
    except (errors.StorageMarketError, errors.ServerDatabaseError) as e:
        raise _http_error(e)
    finally:
        _keep_activations(session)
    return _deal_out(deal)


@app.post("/v1/deals/batch", response_model=DealsResponse)
async def create_batch(req: BatchRequest, x_user_id: Optional[UUID] = Header(default=None)):
    session = await _loaded_session(_require_user(x_user_id))
    provider = next((p for p in session.providers if p.id == req.provider_id), None)
    files = [FileDescriptor(name=f.name, size=f.size, mime_type=f.mime_type) for f in req.files]
    try:
        deals = await session.create_batch(files, provider)
    except (errors.StorageMarketError, errors.ServerDatabaseError) as e:
        raise _http_error(e)
    finally:
        _keep_activations(session)
    return DealsResponse(deals=[_deal_out(d) for d in deals])


@app.delete("/v1/deals/{deal_id}", response_model=DeleteResponse)
async def delete_deal(deal_id: UUID, x_user_id: Optional[UUID] = Header(default=None)):
    session = _session(_require_user(x_user_id))
    deleted = await session.delete_deal(deal_id)
    if not deleted and any(n.variant == "destructive" for n in session.notifications):
        raise HTTPException(status_code=500, detail="Failed to delete storage deal")
    return DeleteResponse(deleted=deleted)


@app.post("/v1/deals/{deal_id}/retrieve", response_model=RetrievalOut)
async def retrieve(deal_id: UUID, x_user_id: Optional[UUID] = Header(default=None)):
    session = await _loaded_session(_require_user(x_user_id))
    try:
        record = await session.retrieve(deal_id)
    except (errors.StorageMarketError, errors.ServerDatabaseError) as e:
        raise _http_error(e)
    return RetrievalOut(
        id=record.id,
        deal_id=record.deal_id,
        retrieval_cost=record.retrieval_cost,
        status=record.status,
    )


@app.post("/v1/admin/refresh-statuses", response_model=RefreshResponse)
async def refresh_statuses():
    session = _session(None)
    try:
        result = await session.refresh_statuses()
    except (errors.StorageMarketError, errors.ServerDatabaseError) as e:
        raise _http_error(e)
    return RefreshResponse(
        deals_activated=result.deals_activated,
        deals_expired=result.deals_expired,
    )


# ── Directory / wallet / stats ──


@app.get("/v1/providers", response_model=ProvidersResponse)
async def list_providers():
    directory = ProviderDirectory(_require_pool())
    try:
        providers = await directory.list_providers()
    except errors.ServerDatabaseError as e:
        raise _http_error(e)
    return ProvidersResponse(providers=[
        ProviderOut(
            id=p.id,
            name=p.name,
            location=p.location,
            reputation_score=p.reputation_score,
            total_storage_gb=p.total_storage_gb,
            available_storage_gb=p.available_storage_gb,
            price_per_gb=p.price_per_gb,
            uptime_percentage=p.uptime_percentage,
        )
        for p in providers
    ])


@app.get("/v1/wallet", response_model=WalletOut)
async def get_wallet(x_user_id: Optional[UUID] = Header(default=None)):
    ledger = WalletLedger(_require_pool())
    user_id = _require_user(x_user_id)
    try:
        wallet = await ledger.get_wallet(user_id)
    except errors.ServerDatabaseError as e:
        raise _http_error(e)
    if wallet is None:
        raise HTTPException(status_code=404, detail=f"No wallet for user {user_id}")
    return WalletOut(
        dsc_balance=wallet.dsc_balance,
        total_earned=wallet.total_earned,
        total_spent=wallet.total_spent,
    )


@app.get("/v1/network/stats", response_model=StatsOut)
async def network_stats():
    reader = NetworkStatsReader(_require_pool())
    try:
        stats = await reader.fetch_latest()
    except errors.ServerDatabaseError as e:
        raise _http_error(e)
    if stats is None:
        raise HTTPException(status_code=404, detail="No network stats recorded")
    return StatsOut(
        total_nodes=stats.total_nodes,
        active_deals=stats.active_deals,
        total_storage_used_gb=stats.total_storage_used_gb,
        network_health_score=stats.network_health_score,
        avg_response_time_ms=stats.avg_response_time_ms,
    )


@app.get("/v1/health", response_model=HealthResponse)
async def health():
    connected = await db.health_check()
    return HealthResponse(
        status="ok" if connected else "degraded",
        db_connected=connected,
    )
