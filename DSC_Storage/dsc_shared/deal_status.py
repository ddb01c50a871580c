"""
Read-time deal status derivation.

The stored status of a deal is never rewritten here; callers that restrict
actions must derive the effective status at every read site.

Decision tree:
    stored == failed                → failed
    expires_at < now                → expired
    otherwise                       → stored status
"""

from datetime import datetime, timezone
from typing import Optional

from DSC_Storage.dsc_shared import config
from DSC_Storage.dsc_shared.types import StorageDeal


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def effective_status(stored: str, expires_at: datetime, now: Optional[datetime] = None) -> str:
    if now is None:
        now = utcnow()

    if stored == "failed":
        return "failed"
    if expires_at < now:
        return "expired"
    return stored


def derive_status(deal: StorageDeal, now: Optional[datetime] = None) -> str:
    """Return the effective status of ``deal`` at ``now``."""
    return effective_status(deal.status, deal.expires_at, now)


def is_retrievable(deal: StorageDeal, now: Optional[datetime] = None) -> bool:
    return derive_status(deal, now) in config.RETRIEVABLE_STATUSES


def is_expired(deal: StorageDeal, now: Optional[datetime] = None) -> bool:
    return derive_status(deal, now) == "expired"
