"""
Settlement backends: the stand-in for storage-deal smart contract calls.

One interface, two implementations selected once at startup:

    MockSettlement  → simulated confirmation delay, pseudo-random outcomes,
                      contract-side deal ledger kept in local Redis
    LiveSettlement  → JSON-RPC calls to a settlement node over HTTP

Callers hold a SettlementBackend and never branch on which one it is.
"""

import asyncio
import base64
import itertools
import json
import logging
import random
import string
import time
from decimal import Decimal
from typing import Optional

import httpx
import redis

from DSC_Storage.dsc_shared import config, errors
from DSC_Storage.dsc_shared.types import (
    ProviderCredibility, RetrievedContent, SettlementDeal,
)

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits

IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}
VIDEO_EXTENSIONS = {"mp4", "avi", "mov"}
MOCK_IMAGE_URL = "https://picsum.photos/800/600"
MOCK_VIDEO_URL = "https://sample-videos.com/zip/10/mp4/SampleVideo_360x240_1mb.mp4"


def _extension(file_name: str) -> str:
    if "." not in file_name:
        return ""
    return file_name.rsplit(".", 1)[-1].lower()


class SettlementBackend:
    """Contract operations used by the deal lifecycle."""

    async def create_deal(
        self,
        file_cid: str,
        file_size: int,
        deal_duration: int,
        provider_address: str,
        replication_factor: int,
        deal_cost: Decimal,
    ) -> str:
        raise NotImplementedError

    async def verify_storage(self, deal_id: str) -> bool:
        raise NotImplementedError

    async def retrieve_content(self, file_cid: str, file_name: str) -> RetrievedContent:
        raise NotImplementedError

    async def get_deal_history(self, client_address: Optional[str] = None) -> list[SettlementDeal]:
        raise NotImplementedError

    async def get_provider_credibility(self, provider_address: str) -> ProviderCredibility:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class MockSettlement(SettlementBackend):
    def __init__(
        self,
        client: redis.Redis,
        delay: float = config.MOCK_SETTLE_DELAY,
        retrieve_delay: float = config.MOCK_RETRIEVE_DELAY,
        failure_rate: float = 0.0,
        rng: Optional[random.Random] = None,
    ):
        self.db: redis.Redis = client
        self.delay = delay
        self.retrieve_delay = retrieve_delay
        self.failure_rate = failure_rate
        self.rng = rng or random.Random()

    def _deal_key(self, deal_id: str) -> str:
        return f"{config.SETTLE_KEY_PREFIX}:{deal_id}"

    def _new_deal_id(self) -> str:
        suffix = "".join(self.rng.choice(_ID_ALPHABET) for _ in range(9))
        return f"deal-{int(time.time() * 1000)}-{suffix}"

    def _serialize_deal(self, deal: SettlementDeal) -> str:
        return json.dumps({
            "deal_id": deal.deal_id,
            "client_address": deal.client_address,
            "provider_address": deal.provider_address,
            "file_cid": deal.file_cid,
            "file_size": deal.file_size,
            "deal_cost": str(deal.deal_cost),
            "deal_duration": deal.deal_duration,
            "collateral": str(deal.collateral),
            "retrieval_price": str(deal.retrieval_price),
            "replication_factor": deal.replication_factor,
            "verified": deal.verified,
            "timestamp": deal.timestamp,
            "status": deal.status,
        })

    def _deserialize_deal(self, raw: bytes) -> SettlementDeal:
        d = json.loads(raw)
        for name in ("deal_cost", "collateral", "retrieval_price"):
            d[name] = Decimal(d[name])
        return SettlementDeal(**d)

    async def create_deal(
        self,
        file_cid: str,
        file_size: int,
        deal_duration: int,
        provider_address: str,
        replication_factor: int,
        deal_cost: Decimal,
    ) -> str:
        # Simulated block confirmation
        await asyncio.sleep(self.delay)

        if self.failure_rate > 0 and self.rng.random() < self.failure_rate:
            raise errors.SettlementError(f"mock settlement rejected deal for {file_cid}")

        deal = SettlementDeal(
            deal_id=self._new_deal_id(),
            client_address=config.MOCK_CLIENT_ADDRESS,
            provider_address=provider_address,
            file_cid=file_cid,
            file_size=file_size,
            deal_cost=deal_cost,
            deal_duration=deal_duration,
            collateral=deal_cost * config.COLLATERAL_RATIO,
            retrieval_price=deal_cost * config.RETRIEVAL_PRICE_RATIO,
            replication_factor=replication_factor,
            verified=False,
            timestamp=int(time.time() * 1000),
            status="pending",
        )

        try:
            pipe = self.db.pipeline(transaction=True)
            pipe.set(self._deal_key(deal.deal_id), self._serialize_deal(deal))
            pipe.zadd(config.SETTLE_IDX_KEY, {deal.deal_id: deal.timestamp})
            pipe.execute()
        except redis.exceptions.RedisError as e:
            raise errors.SettlementError(f"mock settlement ledger unavailable: {e}")

        return deal.deal_id

    async def verify_storage(self, deal_id: str) -> bool:
        return self.rng.random() > (1 - config.MOCK_VERIFY_SUCCESS_RATE)

    async def retrieve_content(self, file_cid: str, file_name: str) -> RetrievedContent:
        logger.info("Retrieving file: %s (CID: %s)", file_name, file_cid)
        await asyncio.sleep(self.retrieve_delay)

        ext = _extension(file_name)
        if ext in IMAGE_EXTENSIONS:
            return RetrievedContent(url=MOCK_IMAGE_URL, mime_type=f"image/{'jpeg' if ext == 'jpg' else ext}")
        if ext in VIDEO_EXTENSIONS:
            return RetrievedContent(url=MOCK_VIDEO_URL, mime_type="video/mp4")

        if ext == "pdf":
            content, mime = "Mock PDF content", "application/pdf"
        elif ext == "txt":
            content = f"This is a mock text file: {file_name}\n\nContent retrieved from decentralized storage."
            mime = "text/plain"
        elif ext == "json":
            content = json.dumps({"message": f"Mock JSON content for {file_name}", "timestamp": int(time.time())}, indent=2)
            mime = "application/json"
        else:
            content = f"Mock content for {file_name}\nFile type: {ext or 'unknown'}"
            mime = "text/plain"

        encoded = base64.b64encode(content.encode("utf-8")).decode("ascii")
        return RetrievedContent(url=f"data:{mime};base64,{encoded}", mime_type=mime)

    async def get_deal_history(self, client_address: Optional[str] = None) -> list[SettlementDeal]:
        try:
            deal_ids = self.db.zrange(config.SETTLE_IDX_KEY, 0, -1)
            deals = []
            for deal_id in deal_ids:
                raw = self.db.get(self._deal_key(deal_id.decode()))
                if raw is None:
                    continue
                deal = self._deserialize_deal(raw)
                if client_address is None or deal.client_address == client_address:
                    deals.append(deal)
            return deals
        except redis.exceptions.RedisError as e:
            raise errors.SettlementError(f"mock settlement ledger unavailable: {e}")

    async def get_provider_credibility(self, provider_address: str) -> ProviderCredibility:
        return ProviderCredibility(
            reputation=750 + self.rng.randrange(250),
            total_deals=self.rng.randrange(1000) + 100,
            success_rate=0.95 + self.rng.random() * 0.05,
            total_storage=self.rng.randrange(1000) + 100,
            slashing_history=self.rng.randrange(5),
            verified=self.rng.random() > 0.3,
        )


class LiveSettlement(SettlementBackend):
    """JSON-RPC client for a settlement node."""

    def __init__(
        self,
        rpc_url: str = config.SETTLEMENT_RPC_URL,
        contract_address: str = config.SETTLEMENT_CONTRACT,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.contract_address = contract_address
        self._client = http_client or httpx.AsyncClient(timeout=config.SETTLEMENT_TIMEOUT)
        self._ids = itertools.count(1)

    async def _call(self, method: str, params: list):
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": [self.contract_address, *params],
        }
        try:
            resp = await self._client.post(self.rpc_url, json=payload)
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise errors.SettlementError(f"{method} failed: {e}")

        if body.get("error"):
            raise errors.SettlementError(f"{method} failed: {body['error']}")
        return body.get("result")

    async def create_deal(
        self,
        file_cid: str,
        file_size: int,
        deal_duration: int,
        provider_address: str,
        replication_factor: int,
        deal_cost: Decimal,
    ) -> str:
        result = await self._call(
            "dsc_createStorageDeal",
            [file_cid, file_size, deal_duration, provider_address, replication_factor, str(deal_cost)],
        )
        return str(result) if result else f"deal-{int(time.time() * 1000)}"

    async def verify_storage(self, deal_id: str) -> bool:
        try:
            return bool(await self._call("dsc_verifyStorage", [deal_id]))
        except errors.SettlementError as e:
            logger.error("Failed to verify storage: %s", e)
            return False

    async def retrieve_content(self, file_cid: str, file_name: str) -> RetrievedContent:
        result = await self._call("dsc_retrieveFile", [file_cid, file_name])
        try:
            return RetrievedContent(url=result["url"], mime_type=result["mime_type"])
        except (KeyError, TypeError) as e:
            raise errors.SettlementError(f"dsc_retrieveFile returned a malformed result: {e!r}")

    async def get_deal_history(self, client_address: Optional[str] = None) -> list[SettlementDeal]:
        result = await self._call("dsc_getDealHistory", [client_address])
        deals = []
        try:
            for d in result or []:
                for name in ("deal_cost", "collateral", "retrieval_price"):
                    d[name] = Decimal(str(d[name]))
                deals.append(SettlementDeal(**d))
        except (KeyError, TypeError, ArithmeticError) as e:
            raise errors.SettlementError(f"dsc_getDealHistory returned a malformed result: {e!r}")
        return deals

    async def get_provider_credibility(self, provider_address: str) -> ProviderCredibility:
        result = await self._call("dsc_getProviderCredibility", [provider_address])
        try:
            return ProviderCredibility(**result)
        except TypeError as e:
            raise errors.SettlementError(f"dsc_getProviderCredibility returned a malformed result: {e!r}")

    async def close(self) -> None:
        await self._client.aclose()


def create_settlement_backend(
    kind: str = config.SETTLEMENT_BACKEND,
    client: Optional[redis.Redis] = None,
    **kwargs,
) -> SettlementBackend:
    """Build the backend chosen for this process."""
    if kind == "mock":
        if client is None:
            raise errors.ValidationError("MockSettlement needs a local Redis client")
        return MockSettlement(client, **kwargs)
    if kind == "live":
        return LiveSettlement(**kwargs)
    raise errors.ValidationError(f"Unknown settlement backend: {kind}")
