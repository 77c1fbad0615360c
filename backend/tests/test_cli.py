from decimal import Decimal

from creditshop.cli import build_parser, run
from creditshop.core.security import verify_password
from creditshop.repos.account_repo import AccountRepo
from creditshop.repos.admin_repo import AdminRepo
from creditshop.repos.token_repo import TokenRepo


def args(*argv):
    return build_parser().parse_args(list(argv))


async def test_create_admin(session_maker, capsys):
    code = await run(args("create-admin", "--email", "Boss@Example.com", "--password", "long-password"), session_maker)

    assert code == 0
    assert "Created admin" in capsys.readouterr().out
    async with session_maker() as s:
        admin = await AdminRepo(s).get_by_email("boss@example.com")
    assert verify_password("long-password", admin.password_hash)

    code = await run(args("create-admin", "--email", "boss@example.com", "--password", "long-password"), session_maker)
    assert code == 1
    assert "already exists" in capsys.readouterr().err


async def test_create_admin_rejects_short_password(session_maker, capsys):
    assert await run(args("create-admin", "--email", "a@example.com", "--password", "short"), session_maker) == 1
    assert "at least 8" in capsys.readouterr().err


async def test_reset_admin_password_bumps_session(session_maker, admin_headers):
    assert await run(args("reset-admin-password", "--email", "ops@example.com", "--password", "another-pass"), session_maker) == 0
    async with session_maker() as s:
        admin = await AdminRepo(s).get_by_email("ops@example.com")
    assert admin.session_version == 2
    assert verify_password("another-pass", admin.password_hash)

    assert await run(args("reset-admin-password", "--email", "ghost@example.com", "--password", "another-pass"), session_maker) == 1


async def test_generate_token_prints_code(session_maker, capsys):
    assert await run(args("generate-token", "--credit", "100", "--limit-bonus", "20", "--days", "3"), session_maker) == 0

    code = capsys.readouterr().out.strip()
    async with session_maker() as s:
        token = await TokenRepo(s).get_by_code(code)
    assert token.credit_amount == Decimal("100.00")
    assert token.limit_bonus == Decimal("20.00")


async def test_generate_token_validation_error(session_maker, capsys):
    assert await run(args("generate-token", "--credit", "0"), session_maker) == 1
    assert capsys.readouterr().err.startswith("error: ")

    assert await run(args("generate-token", "--credit", "abc"), session_maker) == 1


async def test_list_users_and_set_line_admin(session_maker, make_account, capsys):
    acc = await make_account(display_name="Somchai", balance="-20", credit_limit="50")

    assert await run(args("list-users"), session_maker) == 0
    out = capsys.readouterr().out
    assert "Somchai" in out
    assert "balance=-฿20.00" in out

    assert await run(args("set-line-admin", str(acc.id)), session_maker) == 0
    async with session_maker() as s:
        assert (await AccountRepo(s).get(acc.id)).is_admin is True

    assert await run(args("set-line-admin", str(acc.id), "--revoke"), session_maker) == 0
    async with session_maker() as s:
        assert (await AccountRepo(s).get(acc.id)).is_admin is False

    assert await run(args("set-line-admin", "9999"), session_maker) == 1
