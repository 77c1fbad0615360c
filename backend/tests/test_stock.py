import asyncio

import pytest

from creditshop.core.errors import AlreadyProcessed, StockExhausted, ValidationError
from creditshop.models.enums import StockStatus
from creditshop.repos.product_repo import ProductRepo
from creditshop.repos.stock_repo import StockRepo
from creditshop.services.stock import StockService


async def test_bulk_load_uses_retail_multiplier(session, make_product):
    product = await make_product(units=0, retail_multiplier=3)
    units = await StockService(session).bulk_load(product.id, [{"user": "a", "pass": "b"}])
    await session.commit()

    assert len(units) == 3
    assert (await ProductRepo(session).get(product.id)).stock == 3


async def test_bulk_load_rejects_bad_records(session, make_product):
    product = await make_product(units=0)
    with pytest.raises(ValidationError):
        await StockService(session).bulk_load(product.id, [])
    with pytest.raises(ValidationError):
        await StockService(session).bulk_load(product.id, [{}])


async def test_claim_release_and_sell(session, make_product, make_account):
    product = await make_product(units=1)
    acc = await make_account()
    svc = StockService(session)

    unit = await svc.claim_one(product.id)
    assert unit.status == StockStatus.reserved.value
    assert (await ProductRepo(session).get(product.id)).stock == 0

    await svc.release(unit.id)
    assert (await StockRepo(session).get(unit.id)).status == StockStatus.available.value
    assert (await ProductRepo(session).get(product.id)).stock == 1

    unit = await svc.claim_one(product.id)
    sold = await svc.confirm_sale(unit, acc.id)
    await session.commit()
    assert sold.status == StockStatus.sold.value
    assert sold.sold_to_account_id == acc.id
    assert sold.sold_at is not None

    with pytest.raises(AlreadyProcessed):
        await svc.release(unit.id)
    with pytest.raises(StockExhausted):
        await svc.claim_one(product.id)


async def test_claims_lowest_id_first(session, make_product):
    product = await make_product(units=3)
    ids = [u.id for u in await StockRepo(session).list_for_product(product.id)]
    unit = await StockService(session).claim_one(product.id)
    assert unit.id == min(ids)


async def test_concurrent_claims_hand_out_each_unit_once(session_maker, make_product):
    product = await make_product(units=3)

    async def claim():
        async with session_maker() as s:
            try:
                unit = await StockService(s).claim_one(product.id)
                await s.commit()
                return unit.id
            except StockExhausted:
                await s.rollback()
                return None

    results = await asyncio.gather(*[claim() for _ in range(8)])
    won = [r for r in results if r is not None]

    assert len(won) == 3
    assert len(set(won)) == 3


async def test_sold_units_are_immutable(session, make_product, make_account):
    product = await make_product(units=2)
    acc = await make_account()
    svc = StockService(session)
    unit = await svc.claim_one(product.id)
    await svc.confirm_sale(unit, acc.id)
    await session.commit()

    with pytest.raises(AlreadyProcessed):
        await svc.update_unit(unit.id, payload={"user": "x"})
    with pytest.raises(AlreadyProcessed):
        await svc.remove_unit(unit.id)


async def test_update_unit_payload_and_status(session, make_product):
    product = await make_product(units=1)
    svc = StockService(session)
    unit = (await StockRepo(session).list_for_product(product.id))[0]

    updated = await svc.update_unit(unit.id, payload={"user": "new", "pass": "secret"})
    assert svc.payload_of(updated) == {"user": "new", "pass": "secret"}

    with pytest.raises(ValidationError):
        await svc.update_unit(unit.id, status=StockStatus.sold.value)

    updated = await svc.update_unit(unit.id, status=StockStatus.reserved.value)
    await session.commit()
    assert updated.status == StockStatus.reserved.value
    assert (await ProductRepo(session).get(product.id)).stock == 0


async def test_payload_is_sealed_when_key_configured(session, make_product, monkeypatch):
    from cryptography.fernet import Fernet

    from creditshop.core.config import settings

    monkeypatch.setattr(settings, "FERNET_KEY", Fernet.generate_key().decode())
    product = await make_product(units=0)
    svc = StockService(session)
    [unit] = await svc.bulk_load(product.id, [{"user": "alice", "pass": "pw"}], duplicate_factor=1)
    await session.commit()

    stored = (await StockRepo(session).get(unit.id)).payload
    assert set(stored) == {"_sealed"}
    assert "alice" not in stored["_sealed"]
    assert svc.payload_of(unit) == {"user": "alice", "pass": "pw"}


async def test_recount_all(session, make_product):
    a = await make_product(name="A", code="a1", units=2)
    b = await make_product(name="B", code="b1", units=0)
    counts = await StockService(session).recount_all()
    assert counts == {a.id: 2, b.id: 0}
