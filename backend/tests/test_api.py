from decimal import Decimal

from sqlalchemy.exc import OperationalError

from creditshop.repos.account_repo import AccountRepo
from creditshop.repos.admin_repo import AdminRepo
from creditshop.repos.audit_repo import AuditRepo
from creditshop.services.purchase import PurchaseService
from creditshop.services.slips import SlipService


async def test_health(client):
    r = await client.get("/api/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


async def test_login_and_me(client, admin_headers):
    r = await client.post("/api/auth/login", json={"email": "ops@example.com", "password": "s3cret-pass"})
    assert r.status_code == 200
    token = r.json()["access_token"]

    r = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json()["email"] == "ops@example.com"


async def test_login_rejects_bad_password(client, admin_headers):
    r = await client.post("/api/auth/login", json={"email": "ops@example.com", "password": "nope"})
    assert r.status_code == 401
    assert r.json() == {"error": "Invalid credentials"}


async def test_endpoints_need_a_token(client):
    r = await client.get("/api/products")
    assert r.status_code == 401
    assert r.json() == {"error": "Not authenticated"}

    r = await client.get("/api/products", headers={"Authorization": "Bearer garbage"})
    assert r.json() == {"error": "Invalid token"}


async def test_password_reset_signs_out_old_tokens(client, admin_headers, session_maker):
    async with session_maker() as s:
        repo = AdminRepo(s)
        admin = await repo.get_by_email("ops@example.com")
        await repo.set_password(admin, "new-hash")
        await s.commit()

    r = await client.get("/api/auth/me", headers=admin_headers)
    assert r.status_code == 401
    assert r.json() == {"error": "Session expired"}


async def test_product_crud(client, admin_headers):
    r = await client.post(
        "/api/products",
        json={"name": "Netflix 7 days", "price": "30", "category": "Streaming", "message_template": "u: {user}"},
        headers=admin_headers,
    )
    assert r.status_code == 201
    product = r.json()
    assert Decimal(str(product["price"])) == Decimal("30")
    assert product["stock"] == 0
    assert product["short_codes"] == []
    pid = product["id"]

    r = await client.post(f"/api/products/{pid}/short-codes", json={"code": "NF7"}, headers=admin_headers)
    assert r.status_code == 201
    assert r.json()["code"] == "nf7"
    code_id = r.json()["id"]

    r = await client.post(f"/api/products/{pid}/short-codes", json={"code": "nf7"}, headers=admin_headers)
    assert r.status_code == 409
    assert r.json() == {"error": "Short code already in use"}

    r = await client.put(f"/api/products/{pid}", json={"price": "35.50", "category": None}, headers=admin_headers)
    assert r.status_code == 200
    assert Decimal(str(r.json()["price"])) == Decimal("35.50")
    assert r.json()["category"] is None
    assert [c["code"] for c in r.json()["short_codes"]] == ["nf7"]

    r = await client.get("/api/products", headers=admin_headers)
    assert [p["id"] for p in r.json()] == [pid]

    r = await client.delete(f"/api/products/{pid}/short-codes/{code_id}", headers=admin_headers)
    assert r.json() == {"ok": True}
    r = await client.delete(f"/api/products/{pid}/short-codes/{code_id}", headers=admin_headers)
    assert r.status_code == 404

    r = await client.delete(f"/api/products/{pid}", headers=admin_headers)
    assert r.json() == {"ok": True}
    r = await client.put(f"/api/products/{pid}", json={"name": "x"}, headers=admin_headers)
    assert r.status_code == 404
    assert r.json() == {"error": f"Product {pid} not found"}


async def test_validation_errors_use_error_shape(client, admin_headers):
    r = await client.post("/api/products", json={"name": "", "price": "-1"}, headers=admin_headers)
    assert r.status_code == 400
    assert set(r.json()) == {"error"}

    r = await client.post("/api/products/1/short-codes", json={"code": "has space"}, headers=admin_headers)
    assert r.status_code == 400


async def test_stock_items_lifecycle(client, admin_headers, make_product, make_account, session_maker):
    product = await make_product(units=0, retail_multiplier=2)

    r = await client.post(
        f"/api/products/{product.id}/stock-items",
        json={"items": [{"user": "a@mail.test", "pass": "pw"}]},
        headers=admin_headers,
    )
    assert r.status_code == 201
    units = r.json()
    assert len(units) == 2
    assert units[0]["payload"] == {"user": "a@mail.test", "pass": "pw"}
    assert units[0]["status"] == "available"

    r = await client.put(
        f"/api/stock-items/{units[0]['id']}",
        json={"payload": {"user": "b@mail.test", "pass": "pw2"}},
        headers=admin_headers,
    )
    assert r.json()["payload"]["user"] == "b@mail.test"

    acc = await make_account(balance="100")
    async with session_maker() as s:
        outcome = await PurchaseService(s).buy(acc.id, "nf7")

    r = await client.delete(f"/api/stock-items/{outcome.stock_item_id}", headers=admin_headers)
    assert r.status_code == 409

    r = await client.get(f"/api/products/{product.id}/stock-items?status=available", headers=admin_headers)
    [left] = r.json()
    r = await client.delete(f"/api/stock-items/{left['id']}", headers=admin_headers)
    assert r.json() == {"ok": True}

    r = await client.get(f"/api/products/{product.id}/stock-items", headers=admin_headers)
    assert [u["status"] for u in r.json()] == ["sold"]

    r = await client.delete("/api/stock-items/9999", headers=admin_headers)
    assert r.status_code == 404


async def test_pending_slip_approve_and_reject(client, admin_headers, make_account, session_maker):
    acc = await make_account()
    async with session_maker() as s:
        first = await SlipService(s).request_review(acc.id, reason="manual")
        second = await SlipService(s).request_review(acc.id, reason="manual")

    r = await client.get("/api/slips/pending", headers=admin_headers)
    assert {s["id"] for s in r.json()} == {first.slip_id, second.slip_id}

    r = await client.post(f"/api/slips/{first.slip_id}/approve", json={"amount": "120"}, headers=admin_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "approved"
    assert Decimal(str(body["balance_after"])) == Decimal("120")

    r = await client.post(f"/api/slips/{first.slip_id}/approve", json={"amount": "120"}, headers=admin_headers)
    assert r.status_code == 409
    assert r.json() == {"error": "Slip already processed"}

    r = await client.post(f"/api/slips/{second.slip_id}/approve", headers=admin_headers)
    assert r.status_code == 400

    r = await client.post(f"/api/slips/{second.slip_id}/reject", json={"reason": "ยอดไม่ตรง"}, headers=admin_headers)
    assert r.json()["status"] == "rejected"

    r = await client.get("/api/slips/pending", headers=admin_headers)
    assert r.json() == []

    r = await client.post("/api/slips/9999/reject", headers=admin_headers)
    assert r.status_code == 404


async def test_slip_approval_survives_a_failed_audit_write(client, admin_headers, make_account, session_maker, monkeypatch, caplog):
    acc = await make_account()
    async with session_maker() as s:
        pending = await SlipService(s).request_review(acc.id, reason="manual")

    async def audit_down(self, *args, **kwargs):
        raise OperationalError("INSERT INTO audit_logs", {}, Exception("disk I/O error"))

    monkeypatch.setattr(AuditRepo, "log", audit_down)

    r = await client.post(f"/api/slips/{pending.slip_id}/approve", json={"amount": "80"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["status"] == "approved"
    async with session_maker() as s:
        assert (await AccountRepo(s).get(acc.id)).balance == Decimal("80.00")
    assert any("audit row not written" in rec.getMessage() for rec in caplog.records)


async def test_users_credit_limit_and_ledger(client, admin_headers, make_account):
    acc = await make_account(display_name="Somchai")

    r = await client.get("/api/users?q=Som", headers=admin_headers)
    assert [u["id"] for u in r.json()] == [acc.id]

    r = await client.patch(f"/api/users/{acc.id}/credit-limit", json={"credit_limit": "300"}, headers=admin_headers)
    assert r.status_code == 200
    assert Decimal(str(r.json()["credit_limit"])) == Decimal("300")

    r = await client.get(f"/api/users/{acc.id}/ledger", headers=admin_headers)
    [entry] = r.json()
    assert entry["type"] == "adjustment"
    assert entry["meta"] == {"credit_limit_before": "0.00", "credit_limit_after": "300.00"}

    r = await client.patch("/api/users/9999/credit-limit", json={"credit_limit": "1"}, headers=admin_headers)
    assert r.status_code == 404
    r = await client.get("/api/users/9999/ledger", headers=admin_headers)
    assert r.status_code == 404


async def test_transactions_and_topups(client, admin_headers, make_account, make_product, session_maker):
    acc = await make_account(balance="0", credit_limit="100")
    await make_product(units=1)
    async with session_maker() as s:
        await PurchaseService(s).buy(acc.id, "nf7")
        pending = await SlipService(s).request_review(acc.id, reason="manual")
        await SlipService(s, credit_mode=True).approve(pending.slip_id, amount="50")

    r = await client.get("/api/transactions", headers=admin_headers)
    assert [t["type"] for t in r.json()] == ["topup", "purchase"]

    r = await client.get("/api/transactions?type=purchase", headers=admin_headers)
    [purchase] = r.json()
    assert Decimal(str(purchase["amount"])) == Decimal("-30")

    r = await client.get(f"/api/transactions?user_id={acc.id}&type=topup", headers=admin_headers)
    assert len(r.json()) == 1

    r = await client.get("/api/topups", headers=admin_headers)
    assert len(r.json()) == 1

    r = await client.get("/api/transactions?type=bogus", headers=admin_headers)
    assert r.status_code == 400
    assert r.json() == {"error": "Unknown transaction type: bogus"}


async def test_admin_accounts(client, admin_headers):
    r = await client.post(
        "/api/admins",
        json={"email": "second@example.com", "password": "longenough", "name": "Second"},
        headers=admin_headers,
    )
    assert r.status_code == 201

    r = await client.post(
        "/api/admins",
        json={"email": "second@example.com", "password": "longenough"},
        headers=admin_headers,
    )
    assert r.status_code == 400
    assert r.json() == {"error": "Email already registered"}

    r = await client.get("/api/admins", headers=admin_headers)
    assert {a["email"] for a in r.json()} == {"ops@example.com", "second@example.com"}
