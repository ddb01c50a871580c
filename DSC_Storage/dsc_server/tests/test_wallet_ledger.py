import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest

from DSC_Storage.dsc_shared import errors

pytestmark = pytest.mark.asyncio


async def test_get_missing_wallet_returns_none(ledger):
    assert await ledger.get_wallet(uuid4()) is None


async def test_ensure_wallet_creates_once(ledger):
    user = uuid4()
    first = await ledger.ensure_wallet(user, Decimal("10"))
    second = await ledger.ensure_wallet(user, Decimal("999"))
    assert first.id == second.id
    assert second.dsc_balance == Decimal("10")


async def test_debit_reduces_balance(ledger):
    user = uuid4()
    await ledger.ensure_wallet(user, Decimal("10"))
    wallet = await ledger.debit(user, Decimal("0.0001"))
    assert wallet.dsc_balance == Decimal("9.9999")
    assert wallet.total_spent == Decimal("0.0001")


async def test_sequential_debits_accumulate(ledger):
    user = uuid4()
    await ledger.ensure_wallet(user, Decimal("10"))
    await ledger.debit(user, Decimal("1.5"))
    wallet = await ledger.debit(user, Decimal("2.25"))
    assert wallet.dsc_balance == Decimal("6.25")
    assert wallet.total_spent == Decimal("3.75")


async def test_concurrent_debits_do_not_lose_updates(ledger):
    user = uuid4()
    await ledger.ensure_wallet(user, Decimal("10"))

    await asyncio.gather(*(ledger.debit(user, Decimal("0.1")) for _ in range(20)))

    wallet = await ledger.get_wallet(user)
    assert wallet.dsc_balance == Decimal("8")
    assert wallet.total_spent == Decimal("2")


async def test_debit_may_overdraw(ledger):
    user = uuid4()
    await ledger.ensure_wallet(user, Decimal("1"))
    wallet = await ledger.debit(user, Decimal("3"))
    assert wallet.dsc_balance == Decimal("-2")


async def test_debit_missing_wallet(ledger):
    with pytest.raises(errors.WalletNotFoundError):
        await ledger.debit(uuid4(), Decimal("1"))


async def test_debit_negative_amount(ledger):
    with pytest.raises(errors.ValidationError):
        await ledger.debit(uuid4(), Decimal("-1"))


async def test_credit(ledger):
    user = uuid4()
    await ledger.ensure_wallet(user, Decimal("0"))
    wallet = await ledger.credit(user, Decimal("4"))
    assert wallet.dsc_balance == Decimal("4")
    assert wallet.total_earned == Decimal("4")
