import hashlib
import secrets
import string
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

import redis

from DSC_Storage.dsc_shared import config, errors
from DSC_Storage.dsc_shared.deal_status import derive_status, effective_status, utcnow
from DSC_Storage.dsc_shared.types import ShareLink, StorageDeal

_SHARE_ALPHABET = string.ascii_lowercase + string.digits


def _to_ms(ts: datetime) -> int:
    return int(ts.timestamp() * 1000)


def _from_ms(ms: bytes | int) -> datetime:
    return datetime.fromtimestamp(int(ms) / 1000, tz=timezone.utc)


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


class ShareLinkRegistry:
    def __init__(self, client: redis.Redis):
        self.db: redis.Redis = client

    def _link_key(self, link_id: str) -> str:
        return f"{config.SHARE_KEY_PREFIX}:{link_id}"

    def _new_share_id(self) -> str:
        return "".join(secrets.choice(_SHARE_ALPHABET) for _ in range(config.SHARE_ID_LENGTH))

    def _serialize_link(self, link: ShareLink) -> dict:
        mapping = {
            "id": link.id,
            "deal_id": link.deal_id,
            "file_name": link.file_name,
            "file_cid": link.file_cid,
            "share_url": link.share_url,
            "expires_at": str(_to_ms(link.expires_at)),
            "access_count": str(link.access_count),
            "allow_download": "1" if link.allow_download else "0",
            "created_at": str(_to_ms(link.created_at)),
        }
        if link.max_access is not None:
            mapping["max_access"] = str(link.max_access)
        if link.password_hash is not None:
            mapping["password_hash"] = link.password_hash
        if link.deal_status is not None:
            mapping["deal_status"] = link.deal_status
        if link.deal_expires_at is not None:
            mapping["deal_expires_at"] = str(_to_ms(link.deal_expires_at))
        return mapping

    def _deserialize_link(self, data: dict[bytes, bytes]) -> ShareLink:
        max_access = data.get(b"max_access")
        password_hash = data.get(b"password_hash")
        deal_status = data.get(b"deal_status")
        deal_expires_at = data.get(b"deal_expires_at")
        return ShareLink(
            id=data[b"id"].decode(),
            deal_id=data[b"deal_id"].decode(),
            file_name=data[b"file_name"].decode(),
            file_cid=data[b"file_cid"].decode(),
            share_url=data[b"share_url"].decode(),
            expires_at=_from_ms(data[b"expires_at"]),
            access_count=int(data[b"access_count"]),
            allow_download=data[b"allow_download"] == b"1",
            created_at=_from_ms(data[b"created_at"]),
            max_access=int(max_access) if max_access is not None else None,
            password_hash=password_hash.decode() if password_hash is not None else None,
            deal_status=deal_status.decode() if deal_status is not None else None,
            deal_expires_at=_from_ms(deal_expires_at) if deal_expires_at is not None else None,
        )

    def _check_available(self, link: ShareLink, now: datetime) -> None:
        if link.expires_at < now:
            raise errors.ShareLinkUnavailableError(link.id, "expired")
        if link.max_access is not None and link.access_count >= link.max_access:
            raise errors.ShareLinkUnavailableError(link.id, "access limit reached")
        if link.deal_status is not None and link.deal_expires_at is not None:
            status = effective_status(link.deal_status, link.deal_expires_at, now)
            if status in ("expired", "failed"):
                raise errors.ShareLinkUnavailableError(link.id, f"deal {status}")

    # ─── Write Operations ───

    def create(
        self,
        deal: Optional[StorageDeal],
        expiry_days: int = config.SHARE_DEFAULT_EXPIRY_DAYS,
        max_access: Optional[int] = None,
        password: Optional[str] = None,
        allow_download: bool = True,
        now: Optional[datetime] = None,
    ) -> ShareLink:
        if deal is None:
            raise errors.ValidationError("No file selected to share")
        if expiry_days <= 0:
            raise errors.ValidationError(f"Share expiry must be positive: {expiry_days}")
        if max_access is not None and max_access <= 0:
            raise errors.ValidationError(f"max_access must be positive: {max_access}")

        if now is None:
            now = utcnow()

        status = derive_status(deal, now)
        if status in ("expired", "failed"):
            raise errors.ValidationError(f"Cannot share deal {deal.id}: {status}")

        share_id = self._new_share_id()
        link = ShareLink(
            id=f"share-{int(time.time() * 1000)}-{share_id}",
            deal_id=str(deal.id),
            file_name=deal.file_name,
            file_cid=deal.file_cid,
            share_url=f"{config.SHARE_BASE_URL}/{share_id}",
            expires_at=now + timedelta(days=expiry_days),
            access_count=0,
            allow_download=allow_download,
            created_at=now,
            max_access=max_access,
            password_hash=hash_password(password) if password else None,
            deal_status=deal.status,
            deal_expires_at=deal.expires_at,
        )

        try:
            pipe = self.db.pipeline(transaction=True)
            pipe.hset(self._link_key(link.id), mapping=self._serialize_link(link))
            pipe.zadd(config.SHARE_IDX_KEY, {link.id: _to_ms(now)})
            pipe.execute()
        except redis.exceptions.ConnectionError:
            raise errors.LocalStoreUnavailableError("create_share_link")

        return link

    def revoke(self, link_id: str) -> bool:
        try:
            pipe = self.db.pipeline(transaction=True)
            pipe.delete(self._link_key(link_id))
            pipe.zrem(config.SHARE_IDX_KEY, link_id)
            deleted, _ = pipe.execute()
            return bool(deleted)
        except redis.exceptions.ConnectionError:
            raise errors.LocalStoreUnavailableError("revoke_share_link")

    def access(
        self,
        link_id: str,
        password: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ShareLink:
        """Open a shared link, counting the access.

        Rejects expired links, exhausted links, links whose deal has expired
        or failed since sharing, and wrong passwords.
        """
        if now is None:
            now = utcnow()
        key = self._link_key(link_id)

        try:
            for attempt in range(config.SHARE_OPTIMISTIC_LOCK_RETRIES):
                with self.db.pipeline(transaction=True) as pipe:
                    try:
                        pipe.watch(key)
                        data = pipe.hgetall(key)
                        if not data:
                            raise errors.ShareLinkNotFoundError(link_id)

                        link = self._deserialize_link(data)
                        self._check_available(link, now)
                        if link.password_hash is not None:
                            if password is None or hash_password(password) != link.password_hash:
                                raise errors.ShareLinkUnavailableError(link_id, "invalid password")

                        pipe.multi()
                        pipe.hincrby(key, "access_count", 1)
                        pipe.execute()
                    except redis.WatchError:
                        continue

                link.access_count += 1
                return link

            raise errors.ConcurrencyError("access_share_link")
        except redis.exceptions.ConnectionError:
            raise errors.LocalStoreUnavailableError("access_share_link")

    # ─── Query Operations ───

    def get(self, link_id: str) -> Optional[ShareLink]:
        try:
            data = self.db.hgetall(self._link_key(link_id))
            if not data:
                return None
            return self._deserialize_link(data)
        except redis.exceptions.ConnectionError:
            raise errors.LocalStoreUnavailableError("get_share_link")

    def list_links(self) -> list[ShareLink]:
        try:
            link_ids = self.db.zrevrange(config.SHARE_IDX_KEY, 0, -1)
            if not link_ids:
                return []

            pipe = self.db.pipeline(transaction=False)
            for link_id in link_ids:
                pipe.hgetall(self._link_key(link_id.decode()))
            results = pipe.execute()

            return [self._deserialize_link(data) for data in results if data]
        except redis.exceptions.ConnectionError:
            raise errors.LocalStoreUnavailableError("list_share_links")
