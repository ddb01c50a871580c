from datetime import timedelta
from decimal import Decimal

import pytest
import redis

from DSC_Storage.activation import DealActivationSequencer
from DSC_Storage.dsc_shared import errors
from DSC_Storage.dsc_shared.deal_status import utcnow
from DSC_Storage.dsc_shared.types import FileDescriptor
from DSC_Storage.settlement import MockSettlement

pytestmark = pytest.mark.asyncio


async def _pending_deal(deal_store, user_id):
    now = utcnow()
    return await deal_store.insert_deal(
        user_id, "QmActivation", FileDescriptor("a.bin", 1024), Decimal("0.1"),
        Decimal("0.0001"), now, now + timedelta(days=30),
    )


async def test_activation_success_marks_active(deal_store, settlement, user_id):
    deal = await _pending_deal(deal_store, user_id)
    outcome = await DealActivationSequencer(deal_store, settlement).activate(deal)

    assert outcome.settled
    assert outcome.settlement_deal_id.startswith("deal-")
    assert outcome.deal.status == "active"
    assert deal_store.deals[deal.id].status == "active"


async def test_settlement_failure_still_activates_by_default(deal_store, settle_client, user_id):
    failing = MockSettlement(settle_client, delay=0, failure_rate=1.0)
    deal = await _pending_deal(deal_store, user_id)
    outcome = await DealActivationSequencer(deal_store, failing).activate(deal)

    assert not outcome.settled
    assert outcome.error
    assert outcome.deal.status == "active"


async def test_settlement_failure_marks_failed_when_configured(deal_store, settle_client, user_id):
    failing = MockSettlement(settle_client, delay=0, failure_rate=1.0)
    deal = await _pending_deal(deal_store, user_id)
    sequencer = DealActivationSequencer(deal_store, failing, activate_on_failure=False)
    outcome = await sequencer.activate(deal)

    assert outcome.deal.status == "failed"
    assert deal_store.deals[deal.id].status == "failed"


async def test_activation_of_deleted_deal_raises(deal_store, settlement, user_id):
    deal = await _pending_deal(deal_store, user_id)
    await deal_store.delete_deal(deal.id, user_id)
    with pytest.raises(errors.DealNotFoundError):
        await DealActivationSequencer(deal_store, settlement).activate(deal)


async def test_activation_passes_duration_in_seconds(deal_store, settlement, user_id):
    deal = await _pending_deal(deal_store, user_id)
    await DealActivationSequencer(deal_store, settlement, replication_factor=5).activate(deal)
    entry = (await settlement.get_deal_history())[0]
    assert entry.deal_duration == 30 * 86400
    assert entry.replication_factor == 5
    assert entry.deal_cost == Decimal("0.1")


class _TimingOutLedger:
    """Redis client stand-in whose transactions time out."""

    def pipeline(self, transaction=True):
        raise redis.exceptions.TimeoutError("Timeout reading from socket")


@pytest.mark.parametrize("error", [redis.exceptions.TimeoutError, redis.exceptions.ResponseError])
async def test_any_ledger_error_becomes_settlement_error(error):
    class _Broken:
        def pipeline(self, transaction=True):
            raise error("ledger down")

    backend = MockSettlement(_Broken(), delay=0)
    with pytest.raises(errors.SettlementError):
        await backend.create_deal("QmCid", 1, 86400, "", 3, Decimal("0"))


async def test_ledger_timeout_still_activates(deal_store, user_id):
    deal = await _pending_deal(deal_store, user_id)
    backend = MockSettlement(_TimingOutLedger(), delay=0)
    outcome = await DealActivationSequencer(deal_store, backend).activate(deal)

    assert not outcome.settled
    assert "Timeout" in outcome.error
    assert deal_store.deals[deal.id].status == "active"


async def test_session_reports_ledger_timeout(make_session, user_id, deal_store):
    session = make_session(user_id, settlement=MockSettlement(_TimingOutLedger(), delay=0))

    deal = await session.create_deal(FileDescriptor("a.txt", 5))

    assert deal_store.deals[deal.id].status == "active"
    assert [n.title for n in session.notifications] == ["Storage Deal Created", "Settlement Failed"]
