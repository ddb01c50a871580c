from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
import fakeredis

from DSC_Storage.dsc_local.backup_settings import BackupSettingsStore
from DSC_Storage.dsc_local.share_links import ShareLinkRegistry
from DSC_Storage.dsc_shared.types import StorageDeal


@pytest.fixture
def local_client():
    r = fakeredis.FakeRedis()
    yield r
    r.flushdb()
    r.close()


@pytest.fixture
def share_links(local_client):
    return ShareLinkRegistry(local_client)


@pytest.fixture
def backup_store(local_client):
    return BackupSettingsStore(local_client)


def make_deal(status="active", expires_in=timedelta(days=30)) -> StorageDeal:
    now = datetime.now(timezone.utc)
    return StorageDeal(
        id=uuid4(),
        user_id=uuid4(),
        file_cid="QmSharedCid0123456789abcdefgh",
        file_name="holiday.png",
        file_size=2048,
        file_type="image/png",
        total_cost=Decimal("0.000000190734863281"),
        price_per_gb=Decimal("0.0001"),
        status=status,
        created_at=now - timedelta(days=1),
        expires_at=now + expires_in,
        deal_duration=30,
    )


@pytest.fixture
def active_deal():
    return make_deal()
