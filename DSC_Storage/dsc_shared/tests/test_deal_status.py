from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from DSC_Storage.dsc_shared.deal_status import derive_status, effective_status, is_expired, is_retrievable
from DSC_Storage.dsc_shared.types import StorageDeal

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _deal(status: str, expires_in: timedelta) -> StorageDeal:
    created = NOW - timedelta(days=1)
    return StorageDeal(
        id=uuid4(),
        user_id=uuid4(),
        file_cid="QmTestCid",
        file_name="report.pdf",
        file_size=1024,
        file_type="application/pdf",
        total_cost=Decimal("0.000000095367431641"),
        price_per_gb=Decimal("0.0001"),
        status=status,
        created_at=created,
        expires_at=NOW + expires_in,
        deal_duration=30,
    )


@pytest.mark.parametrize("status", ["pending", "active", "completed"])
def test_unexpired_deal_keeps_stored_status(status):
    assert derive_status(_deal(status, timedelta(days=5)), NOW) == status


@pytest.mark.parametrize("status", ["pending", "active", "completed", "expired"])
def test_past_expiry_derives_expired(status):
    assert derive_status(_deal(status, timedelta(seconds=-1)), NOW) == "expired"


def test_failed_wins_over_expiry():
    assert derive_status(_deal("failed", timedelta(days=-3)), NOW) == "failed"
    assert derive_status(_deal("failed", timedelta(days=3)), NOW) == "failed"


def test_expiry_boundary_is_not_expired():
    # expires_at == now is still the stored status
    assert derive_status(_deal("active", timedelta(0)), NOW) == "active"


def test_derivation_never_mutates_stored_status():
    deal = _deal("active", timedelta(days=-1))
    derive_status(deal, NOW)
    assert deal.status == "active"


def test_is_retrievable():
    assert is_retrievable(_deal("active", timedelta(days=1)), NOW)
    assert is_retrievable(_deal("completed", timedelta(days=1)), NOW)
    assert not is_retrievable(_deal("pending", timedelta(days=1)), NOW)
    assert not is_retrievable(_deal("active", timedelta(days=-1)), NOW)


def test_is_expired():
    assert is_expired(_deal("active", timedelta(minutes=-5)), NOW)
    assert not is_expired(_deal("failed", timedelta(minutes=-5)), NOW)


@pytest.mark.parametrize("stored, offset, expected", [
    ("active", timedelta(hours=1), "active"),
    ("active", timedelta(hours=-1), "expired"),
    ("failed", timedelta(hours=1), "failed"),
    ("failed", timedelta(hours=-1), "failed"),
])
def test_effective_status_from_bare_fields(stored, offset, expected):
    assert effective_status(stored, NOW + offset, NOW) == expected
