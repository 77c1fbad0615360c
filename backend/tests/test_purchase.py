import asyncio
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from creditshop.core.errors import InsufficientCredit, OutOfStock, ProductNotFound, StorageError
from creditshop.models.enums import JobType, LedgerEntryType, StockStatus
from creditshop.repos.account_repo import AccountRepo
from creditshop.repos.job_repo import JobRepo
from creditshop.repos.ledger_repo import LedgerRepo
from creditshop.repos.product_repo import ProductRepo
from creditshop.repos.stock_repo import StockRepo
from creditshop.services.credit import CreditService
from creditshop.services.purchase import DEFAULT_DISCLOSURE, PurchaseService, render_payload


def test_render_payload_fills_known_keys_and_blanks_unknown():
    payload = {"user": "a@b.c", "pass": "pw", "pin": "1234"}
    template = "email: {user}\npass: {pass}\npin: {pin}\nscreen: {screen}"
    assert render_payload(payload, template) == "email: a@b.c\npass: pw\npin: 1234\nscreen: "


def test_render_payload_default_template():
    assert render_payload({"user": "x"}, None) == DEFAULT_DISCLOSURE


async def test_buy_then_refused_at_credit_floor(session, make_account, make_product):
    acc = await make_account(credit_limit="50")
    product = await make_product(price="30", units=2)
    svc = PurchaseService(session)

    outcome = await svc.buy(acc.id, "nf7")
    assert outcome.price == Decimal("30.00")
    assert outcome.balance_before == Decimal("0.00")
    assert outcome.balance_after == Decimal("-30.00")
    assert outcome.disclosure.startswith("user: acc0@mail.test")
    assert (await ProductRepo(session).get(product.id)).stock == 1

    with pytest.raises(InsufficientCredit) as exc:
        await svc.buy(acc.id, "nf7")
    assert exc.value.required == Decimal("30.00")
    assert exc.value.balance == Decimal("-30.00")
    assert exc.value.credit_limit == Decimal("50.00")

    units = await StockRepo(session).list_for_product(product.id)
    assert [u.status for u in units] == [StockStatus.sold.value, StockStatus.available.value]
    assert (await ProductRepo(session).get(product.id)).stock == 1
    entries = await LedgerRepo(session).all_for_account(acc.id)
    assert [e.type for e in entries] == [LedgerEntryType.purchase.value]


async def test_buy_by_numeric_id_and_shortcode_case(session, make_account, make_product):
    acc = await make_account(balance="100")
    product = await make_product(units=2)
    svc = PurchaseService(session)

    first = await svc.buy(acc.id, str(product.id))
    second = await svc.buy(acc.id, "NF7")
    assert first.product_id == second.product_id == product.id
    assert second.balance_after == Decimal("40.00")


async def test_purchase_records_sale_and_queues_disclosure(session, make_account, make_product):
    acc = await make_account(balance="30")
    product = await make_product(units=1)

    outcome = await PurchaseService(session).buy(acc.id, "nf7")

    unit = await StockRepo(session).get(outcome.stock_item_id)
    assert unit.status == StockStatus.sold.value
    assert unit.sold_to_account_id == acc.id

    [entry] = await LedgerRepo(session).all_for_account(acc.id)
    assert entry.id == outcome.ledger_entry_id
    assert entry.product_id == product.id
    assert entry.stock_item_id == unit.id

    [job] = await JobRepo(session).list_by_type(JobType.push_message.value)
    assert job.payload["to"] == acc.line_user_id
    assert job.payload["messages"] == [{"type": "text", "text": outcome.disclosure}]


async def test_out_of_stock_writes_nothing(session, make_account, make_product):
    acc = await make_account(balance="100")
    await make_product(units=0)

    with pytest.raises(OutOfStock):
        await PurchaseService(session).buy(acc.id, "nf7")

    assert await LedgerRepo(session).all_for_account(acc.id) == []
    assert await JobRepo(session).list_by_type(JobType.push_message.value) == []


async def test_unknown_or_inactive_product(session, make_account, make_product):
    acc = await make_account(balance="100")
    await make_product(code="off", active=False)

    with pytest.raises(ProductNotFound):
        await PurchaseService(session).buy(acc.id, "nope")
    with pytest.raises(ProductNotFound):
        await PurchaseService(session).buy(acc.id, "off")


async def test_gift_skips_credit_floor(session, make_account, make_product):
    acc = await make_account()
    await make_product(price="30", units=1)

    outcome = await PurchaseService(session).gift(acc.id, "nf7", admin_label="Ops")

    assert outcome.forced is True
    assert outcome.balance_after == Decimal("-30.00")
    [entry] = await LedgerRepo(session).all_for_account(acc.id)
    assert entry.meta == {"forced": True}
    assert "แอดมินส่งให้: Ops" in entry.description


async def test_gift_still_needs_stock(session, make_account, make_product):
    acc = await make_account()
    await make_product(units=0)
    with pytest.raises(OutOfStock):
        await PurchaseService(session).gift(acc.id, "nf7")


async def test_purchase_raises_tier_limit(session, make_account, make_product):
    acc = await make_account(balance="500")
    await make_product(price="150", units=1)

    outcome = await PurchaseService(session).buy(acc.id, "nf7")

    assert outcome.spend.lifetime_spend == Decimal("150.00")
    assert outcome.spend.credit_limit_raised is True
    assert outcome.spend.credit_limit == Decimal("50.00")


async def test_concurrent_buyers_single_unit(session_maker, make_account, make_product):
    await make_product(units=1)
    accounts = [await make_account(line_user_id=f"U{i:04d}", balance="100") for i in range(5)]

    async def buy(account_id):
        async with session_maker() as s:
            try:
                return await PurchaseService(s).buy(account_id, "nf7")
            except OutOfStock:
                return None

    results = await asyncio.gather(*[buy(a.id) for a in accounts])
    assert len([r for r in results if r is not None]) == 1


def db_down(*args, **kwargs):
    raise OperationalError("UPDATE users", {}, Exception("database is locked"))


async def assert_nothing_applied(session_maker, account_id, product_id, balance):
    async with session_maker() as s:
        assert (await AccountRepo(s).get(account_id)).balance == Decimal(balance)
        units = await StockRepo(s).list_for_product(product_id)
        assert [u.status for u in units] == [StockStatus.available.value]
        assert (await ProductRepo(s).get(product_id)).stock == 1
        assert await LedgerRepo(s).all_for_account(account_id) == []
        assert await JobRepo(s).list_by_type(JobType.push_message.value) == []


async def test_storage_error_mid_purchase_rolls_everything_back(session, session_maker, make_account, make_product, monkeypatch):
    acc = await make_account(balance="100")
    product = await make_product(units=1)

    async def spend_fails(self, account_id, amount):
        db_down()

    monkeypatch.setattr(CreditService, "record_spend", spend_fails)

    with pytest.raises(StorageError):
        await PurchaseService(session).buy(acc.id, "nf7")

    await assert_nothing_applied(session_maker, acc.id, product.id, "100.00")


async def test_failed_commit_is_logged_critical(session, session_maker, make_account, make_product, monkeypatch, caplog):
    acc = await make_account(balance="100")
    product = await make_product(units=1)

    async def commit_fails():
        db_down()

    monkeypatch.setattr(session, "commit", commit_fails)

    with caplog.at_level("CRITICAL", logger="creditshop.services.purchase"):
        with pytest.raises(StorageError):
            await PurchaseService(session).buy(acc.id, "nf7")

    [record] = [r for r in caplog.records if r.levelname == "CRITICAL"]
    assert "manual reconciliation needed" in record.getMessage()
    assert f"account={acc.id}" in record.getMessage()
    await assert_nothing_applied(session_maker, acc.id, product.id, "100.00")
