import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./creditshop-unused.db")
os.environ.setdefault("BACKGROUND_WORKER_ENABLED", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from creditshop.api.deps import get_db
from creditshop.bot.router import BotContext, CommandRouter
from creditshop.core.errors import VerificationFailed
from creditshop.core.security import create_access_token, hash_password
from creditshop.line.client import as_messages
from creditshop.main import app
from creditshop.models.base import Base
from creditshop.repos.account_repo import AccountRepo
from creditshop.repos.admin_repo import AdminRepo
from creditshop.repos.product_repo import ProductRepo
from creditshop.services.blob_store import BlobStore
from creditshop.services.conversation_state import ConversationState
from creditshop.services.credit import CreditService
from creditshop.services.stock import StockService


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLine:
    def __init__(self):
        self.replies: list[tuple[str, list[dict]]] = []
        self.pushes: list[tuple[str, list[dict]]] = []
        self.profiles: dict[str, str] = {}
        self.content: bytes = b"\xff\xd8fake-jpeg"

    async def reply(self, reply_token, messages):
        self.replies.append((reply_token, as_messages(messages)))

    async def push(self, to, messages):
        self.pushes.append((to, as_messages(messages)))

    async def get_profile(self, user_id):
        return {"userId": user_id, "displayName": self.profiles.get(user_id, f"user-{user_id[-4:]}")}

    async def get_content(self, message_id):
        return self.content

    async def show_loading(self, chat_id, seconds=20):
        return None

    async def aclose(self):
        return None


class FakeVerifier:
    def __init__(self):
        self.verdict = None
        self.error: Exception | None = None
        self.calls = 0

    async def verify_image(self, image, filename="slip.jpg"):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.verdict

    async def verify_qr(self, qr_payload):
        return await self.verify_image(b"")

    def fail(self, message="Slip verification timed out"):
        self.error = VerificationFailed(message)


class MemoryBlobStore(BlobStore):
    def __init__(self):
        self.objects: dict[str, bytes] = {}

    async def upload(self, data, key, content_type="image/jpeg"):
        self.objects[key] = data
        return f"https://blobs.test/{key}"


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "creditshop.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", connect_args={"timeout": 30})
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker

    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as s:
        yield s


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def line():
    return FakeLine()


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def bot(session_maker, line, verifier, blob_store, clock):
    state = ConversationState(approval_ttl_min=5, target_ttl_min=60, clock=clock)
    return CommandRouter(
        BotContext(sessionmaker=session_maker, line=line, verifier=verifier, blob_store=blob_store, state=state)
    )


@pytest_asyncio.fixture
async def client(session_maker, bot):
    async def override_get_db():
        async with session_maker() as s:
            yield s

    app.dependency_overrides[get_db] = override_get_db
    app.state.bot = bot
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.pop(get_db, None)
    app.state.bot = None


@pytest_asyncio.fixture
async def admin_headers(session_maker):
    async with session_maker() as s:
        admin = await AdminRepo(s).create(email="ops@example.com", password_hash=hash_password("s3cret-pass"), name="Ops")
        await s.commit()
    return {"Authorization": f"Bearer {create_access_token(admin.id, session_version=admin.session_version)}"}


@pytest.fixture
def make_account(session_maker):
    async def _make(line_user_id="U0001", display_name="Somchai", balance="0", credit_limit="0", is_admin=False):
        async with session_maker() as s:
            repo = AccountRepo(s)
            acc = await CreditService(s).get_or_create(line_user_id, display_name)
            if Decimal(balance):
                await repo.add_to_balance(acc.id, Decimal(balance), enforce_floor=False)
            if Decimal(credit_limit):
                await repo.set_credit_limit(acc.id, Decimal(credit_limit))
            if is_admin:
                await repo.set_line_admin(acc.id, True)
            await s.commit()
            return await repo.get(acc.id)

    return _make


@pytest.fixture
def make_product(session_maker):
    async def _make(name="Netflix 7 days", price="30", code="nf7", units=1, template="user: {user}\npass: {pass}", **fields):
        async with session_maker() as s:
            repo = ProductRepo(s)
            product = await repo.create(name=name, price=Decimal(price), message_template=template, **fields)
            if code:
                await repo.add_short_code(product.id, code)
            if units:
                records = [{"user": f"acc{i}@mail.test", "pass": f"pw{i}"} for i in range(units)]
                await StockService(s).bulk_load(product.id, records, duplicate_factor=1)
            await s.commit()
            return await repo.get(product.id)

    return _make
