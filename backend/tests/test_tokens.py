import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from creditshop.core.errors import TokenExpired, TokenNotFound, ValidationError
from creditshop.repos.account_repo import AccountRepo
from creditshop.repos.token_repo import TokenRepo
from creditshop.services.tokens import TokenService


async def test_generate_issues_uppercase_code(session):
    token = await TokenService(session).generate("100", limit_bonus="50", days_valid=7)

    assert len(token.code) == 8
    assert token.code == token.code.upper()
    assert token.credit_amount == Decimal("100.00")
    assert token.limit_bonus == Decimal("50.00")


async def test_generate_rejects_empty_tokens(session):
    with pytest.raises(ValidationError):
        await TokenService(session).generate("0")
    with pytest.raises(ValidationError):
        await TokenService(session).generate("10", days_valid=0)


async def test_redeem_grants_credit_and_limit(session, make_account):
    acc = await make_account(balance="-40")
    svc = TokenService(session)
    token = await svc.generate("100", limit_bonus="50")

    result = await svc.redeem(f"  {token.code.lower()} ", acc.id)

    assert result.credit_granted == Decimal("100.00")
    assert result.limit_granted == Decimal("50.00")
    assert result.balance_after == Decimal("60.00")
    assert result.credit_limit == Decimal("50.00")
    used = await TokenRepo(session).get_by_code(token.code)
    assert used.used_by_account_id == acc.id


async def test_token_is_single_use(session, make_account):
    acc = await make_account()
    other = await make_account(line_user_id="U0002")
    svc = TokenService(session)
    code = (await svc.generate("25")).code

    await svc.redeem(code, acc.id)
    with pytest.raises(TokenNotFound):
        await svc.redeem(code, acc.id)
    with pytest.raises(TokenNotFound):
        await svc.redeem(code, other.id)

    assert (await AccountRepo(session).get(other.id)).balance == Decimal("0.00")


async def test_unknown_and_blank_tokens(session, make_account):
    acc = await make_account()
    with pytest.raises(TokenNotFound):
        await TokenService(session).redeem("DEADBEEF", acc.id)
    with pytest.raises(TokenNotFound):
        await TokenService(session).redeem("   ", acc.id)


async def test_expired_token(session, make_account):
    acc = await make_account()
    await TokenRepo(session).create(
        code="OLD00001",
        credit_amount=Decimal("10"),
        limit_bonus=Decimal("0"),
        expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
    )
    await session.commit()

    with pytest.raises(TokenExpired):
        await TokenService(session).redeem("OLD00001", acc.id)
    assert (await AccountRepo(session).get(acc.id)).balance == Decimal("0.00")


async def test_concurrent_redeem_only_one_wins(session_maker, make_account):
    accounts = [await make_account(line_user_id=f"U{i:04d}") for i in range(4)]
    async with session_maker() as s:
        token = await TokenService(s).generate("75")

    async def redeem(account_id):
        async with session_maker() as s:
            try:
                return await TokenService(s).redeem(token.code, account_id)
            except TokenNotFound:
                return None

    results = await asyncio.gather(*[redeem(a.id) for a in accounts])
    assert len([r for r in results if r is not None]) == 1

    async with session_maker() as s:
        balances = [(await AccountRepo(s).get(a.id)).balance for a in accounts]
    assert sorted(balances) == [Decimal("0.00")] * 3 + [Decimal("75.00")]
