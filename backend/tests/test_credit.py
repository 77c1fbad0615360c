import asyncio
from decimal import Decimal

import pytest

from creditshop.core.errors import AccountNotFound, InsufficientCredit, ValidationError
from creditshop.models.enums import LedgerEntryType
from creditshop.repos.ledger_repo import LedgerRepo
from creditshop.repos.tier_repo import TierRepo
from creditshop.services.credit import CreditService


async def test_get_or_create_is_idempotent(session):
    svc = CreditService(session)
    a = await svc.get_or_create("Uabc", "Nok")
    b = await svc.get_or_create("Uabc", "Someone else")
    await session.commit()
    assert a.id == b.id
    assert b.display_name == "Nok"
    assert b.balance == Decimal("0")
    assert b.credit_limit == Decimal("0")


async def test_debit_within_credit_limit(session, make_account):
    acc = await make_account(balance="0", credit_limit="50")
    svc = CreditService(session)

    entry = await svc.apply_delta(acc.id, Decimal("-30"), LedgerEntryType.purchase)
    await session.commit()

    assert entry.balance_before == Decimal("0")
    assert entry.balance_after == Decimal("-30")
    assert (await svc.get(acc.id)).balance == Decimal("-30")


async def test_debit_below_floor_is_rejected_and_writes_nothing(session, make_account):
    acc = await make_account(balance="-30", credit_limit="50")
    svc = CreditService(session)

    with pytest.raises(InsufficientCredit) as exc:
        await svc.apply_delta(acc.id, Decimal("-30"), LedgerEntryType.purchase)
    await session.commit()

    assert exc.value.balance == Decimal("-30")
    assert exc.value.credit_limit == Decimal("50")
    assert (await svc.get(acc.id)).balance == Decimal("-30")
    assert await LedgerRepo(session).all_for_account(acc.id) == []


async def test_forced_debit_skips_floor(session, make_account):
    acc = await make_account(balance="0", credit_limit="0")
    entry = await CreditService(session).apply_delta(
        acc.id, Decimal("-99"), LedgerEntryType.purchase, enforce_floor=False
    )
    await session.commit()
    assert entry.balance_after == Decimal("-99")


async def test_sign_rules(session, make_account):
    acc = await make_account()
    svc = CreditService(session)
    with pytest.raises(ValidationError):
        await svc.apply_delta(acc.id, Decimal("10"), LedgerEntryType.purchase)
    with pytest.raises(ValidationError):
        await svc.apply_delta(acc.id, Decimal("-10"), LedgerEntryType.topup)
    with pytest.raises(ValidationError):
        await svc.apply_delta(acc.id, Decimal("0"), LedgerEntryType.refund)
    # Adjustments go either way.
    await svc.apply_delta(acc.id, Decimal("-5"), LedgerEntryType.adjustment, enforce_floor=False)
    await svc.apply_delta(acc.id, Decimal("8"), LedgerEntryType.adjustment)
    await session.commit()
    assert (await svc.get(acc.id)).balance == Decimal("3")


async def test_unknown_account(session):
    with pytest.raises(AccountNotFound):
        await CreditService(session).apply_delta(999, Decimal("10"), LedgerEntryType.topup)


async def test_concurrent_debits_never_breach_floor(session_maker, make_account):
    acc = await make_account(balance="0", credit_limit="50")

    async def debit():
        async with session_maker() as s:
            try:
                await CreditService(s).apply_delta(acc.id, Decimal("-20"), LedgerEntryType.purchase)
                await s.commit()
                return True
            except InsufficientCredit:
                await s.rollback()
                return False

    results = await asyncio.gather(*[debit() for _ in range(6)])

    assert results.count(True) == 2
    async with session_maker() as s:
        assert (await CreditService(s).get(acc.id)).balance == Decimal("-40")
        assert len(await LedgerRepo(s).all_for_account(acc.id)) == 2


async def test_ledger_reconstructs_balance(session, make_account):
    acc = await make_account(credit_limit="100")
    svc = CreditService(session)
    await svc.apply_delta(acc.id, Decimal("50"), LedgerEntryType.topup)
    await svc.apply_delta(acc.id, Decimal("-70"), LedgerEntryType.purchase)
    await svc.raise_credit_limit(acc.id, Decimal("25"))
    await svc.apply_delta(acc.id, Decimal("20"), LedgerEntryType.refund)
    await svc.apply_delta(acc.id, Decimal("-12.50"), LedgerEntryType.adjustment)
    await session.commit()

    entries = await LedgerRepo(session).all_for_account(acc.id)
    running = Decimal("0")
    for e in entries:
        assert e.balance_before == running
        assert e.balance_after == e.balance_before + e.amount
        running = e.balance_after

    account = await svc.get(acc.id)
    assert running == account.balance == Decimal("-12.50")
    assert await LedgerRepo(session).sum_amounts(acc.id) == account.balance


async def test_raise_and_set_credit_limit_are_recorded(session, make_account):
    acc = await make_account(balance="10", credit_limit="20")
    svc = CreditService(session)

    entry = await svc.raise_credit_limit(acc.id, Decimal("30"), reason="admin raise")
    await session.commit()
    assert entry.type == LedgerEntryType.adjustment.value
    assert entry.amount == Decimal("0")
    assert entry.meta == {"credit_limit_before": "20.00", "credit_limit_after": "50.00"}
    assert (await svc.get(acc.id)).credit_limit == Decimal("50")

    await svc.set_credit_limit(acc.id, Decimal("5"))
    await session.commit()
    assert (await svc.get(acc.id)).credit_limit == Decimal("5")

    with pytest.raises(ValidationError):
        await svc.raise_credit_limit(acc.id, Decimal("0"))
    with pytest.raises(ValidationError):
        await svc.set_credit_limit(acc.id, Decimal("-1"))


@pytest.mark.parametrize(
    "spend, expected_limit, raised",
    [
        ("99", "0", False),
        ("100", "50", True),
        ("150", "50", True),
        ("200", "200", True),
        ("500", "200", True),
    ],
)
async def test_default_tiers(session, make_account, spend, expected_limit, raised):
    acc = await make_account()
    result = await CreditService(session).record_spend(acc.id, Decimal(spend))
    await session.commit()
    assert result.lifetime_spend == Decimal(spend)
    assert result.credit_limit == Decimal(expected_limit)
    assert result.credit_limit_raised is raised


async def test_tiers_never_lower_a_limit(session, make_account):
    acc = await make_account(credit_limit="500")
    result = await CreditService(session).record_spend(acc.id, Decimal("250"))
    await session.commit()
    assert result.credit_limit == Decimal("500")
    assert result.credit_limit_raised is False


async def test_tier_rows_override_configured_tiers(session, make_account):
    await TierRepo(session).create(min_spend=Decimal("10"), credit_limit_grant=Decimal("15"))
    await session.commit()
    acc = await make_account()

    result = await CreditService(session).record_spend(acc.id, Decimal("10"))
    await session.commit()
    assert result.credit_limit == Decimal("15")


async def test_spend_accumulates_across_purchases(session, make_account):
    acc = await make_account()
    svc = CreditService(session)
    first = await svc.record_spend(acc.id, Decimal("60"))
    second = await svc.record_spend(acc.id, Decimal("60"))
    await session.commit()
    assert first.credit_limit_raised is False
    assert second.lifetime_spend == Decimal("120")
    assert second.credit_limit == Decimal("50")
