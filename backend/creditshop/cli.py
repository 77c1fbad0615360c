"""Operator commands: `creditshop-admin <command> ...`."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import sys

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from creditshop.core.db import AsyncSessionMaker, engine
from creditshop.core.errors import CreditShopError
from creditshop.core.logs import configure_logging
from creditshop.core.money import format_currency
from creditshop.core.security import hash_password
from creditshop.repos.account_repo import AccountRepo
from creditshop.repos.admin_repo import AdminRepo
from creditshop.services.tokens import TokenService


def _password(args) -> str:
    if args.password:
        return args.password
    pw = getpass.getpass("Password: ")
    if pw != getpass.getpass("Repeat password: "):
        raise CreditShopError("Passwords do not match")
    return pw


async def create_admin(session: AsyncSession, args) -> int:
    repo = AdminRepo(session)
    if await repo.get_by_email(args.email):
        print(f"Admin {args.email} already exists", file=sys.stderr)
        return 1
    pw = _password(args)
    if len(pw) < 8:
        print("Password must be at least 8 characters", file=sys.stderr)
        return 1
    admin = await repo.create(email=args.email, password_hash=hash_password(pw), name=args.name or "")
    await session.commit()
    print(f"Created admin #{admin.id} {admin.email}")
    return 0


async def reset_admin_password(session: AsyncSession, args) -> int:
    repo = AdminRepo(session)
    admin = await repo.get_by_email(args.email)
    if admin is None:
        print(f"Admin {args.email} not found", file=sys.stderr)
        return 1
    pw = _password(args)
    if len(pw) < 8:
        print("Password must be at least 8 characters", file=sys.stderr)
        return 1
    await repo.set_password(admin, hash_password(pw))
    await session.commit()
    print(f"Password reset for {admin.email}; existing sessions are signed out")
    return 0


async def generate_token(session: AsyncSession, args) -> int:
    token = await TokenService(session).generate(args.credit, limit_bonus=args.limit_bonus, days_valid=args.days)
    print(token.code)
    print(
        f"credit {format_currency(token.credit_amount)}, limit bonus {format_currency(token.limit_bonus)}, "
        f"expires {token.expires_at:%Y-%m-%d %H:%M} UTC",
        file=sys.stderr,
    )
    return 0


async def list_users(session: AsyncSession, args) -> int:
    users = await AccountRepo(session).list(limit=args.limit, q=args.q)
    for u in users:
        flag = " [admin]" if u.is_admin else ""
        print(
            f"{u.id}\t{u.line_user_id}\t{u.display_name}\t"
            f"balance={format_currency(u.balance)}\tlimit={format_currency(u.credit_limit)}{flag}"
        )
    return 0


async def set_line_admin(session: AsyncSession, args) -> int:
    repo = AccountRepo(session)
    account = await repo.get(args.user_id)
    if account is None:
        print(f"User {args.user_id} not found", file=sys.stderr)
        return 1
    await repo.set_line_admin(account.id, not args.revoke)
    await session.commit()
    print(f"User {account.id} ({account.display_name}) LINE admin: {'no' if args.revoke else 'yes'}")
    return 0


COMMANDS = {
    "create-admin": create_admin,
    "reset-admin-password": reset_admin_password,
    "generate-token": generate_token,
    "list-users": list_users,
    "set-line-admin": set_line_admin,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="creditshop-admin")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create-admin", help="create a dashboard admin")
    p.add_argument("--email", required=True)
    p.add_argument("--name", default="")
    p.add_argument("--password", help="prompted for when omitted")

    p = sub.add_parser("reset-admin-password", help="set a new dashboard password")
    p.add_argument("--email", required=True)
    p.add_argument("--password", help="prompted for when omitted")

    p = sub.add_parser("generate-token", help="issue a credit token for /load")
    p.add_argument("--credit", required=True, help="credit amount, e.g. 100")
    p.add_argument("--limit-bonus", default="0", help="credit limit increase")
    p.add_argument("--days", type=int, default=30, help="days until the token expires")

    p = sub.add_parser("list-users", help="list LINE users")
    p.add_argument("--limit", type=int, default=100)
    p.add_argument("--q", default=None, help="filter by name or LINE id")

    p = sub.add_parser("set-line-admin", help="grant or revoke chat admin rights")
    p.add_argument("user_id", type=int)
    p.add_argument("--revoke", action="store_true")
    return parser


async def run(args, sessionmaker: async_sessionmaker[AsyncSession]) -> int:
    async with sessionmaker() as session:
        try:
            return await COMMANDS[args.command](session, args)
        except CreditShopError as e:
            print(f"error: {e}", file=sys.stderr)
            return 1


def main(argv: list[str] | None = None) -> int:
    configure_logging("WARNING")
    args = build_parser().parse_args(argv)

    async def _main() -> int:
        try:
            return await run(args, AsyncSessionMaker)
        finally:
            await engine.dispose()

    return asyncio.run(_main())


if __name__ == "__main__":
    sys.exit(main())
