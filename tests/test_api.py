from decimal import Decimal

import pytest

from models import AuditLog, Transaction, User
from wallet.feed import user_topic


class TestAuth:
    def test_register_grants_bonus_and_starts_session(self, client, db):
        response = client.post("/api/register", json={"phone": "3101234567", "password": "secret123"})

        assert response.status_code == 201
        body = response.get_json()["user"]
        assert body["balance"] == 5000.0
        assert body["version"] == 1
        entries = Transaction.query.filter_by(user_id=body["id"]).all()
        assert [(t.type, t.description) for t in entries] == [("credit", "Welcome bonus")]
        assert client.get("/api/session").get_json()["authenticated"] is True

    def test_referral_code_is_case_insensitive(self, client, make_user):
        referrer = make_user()
        response = client.post("/api/register", json={
            "phone": "3101234567", "password": "secret123", "referralCode": referrer.referral_code.lower(),
        })
        assert response.status_code == 201
        assert response.get_json()["user"]["referredBy"] == referrer.id

    def test_duplicate_phone(self, client, make_user):
        user = make_user()
        response = client.post("/api/register", json={"phone": user.phone, "password": "secret123"})
        assert response.status_code == 409

    @pytest.mark.parametrize("payload", [
        {"phone": "123", "password": "secret123"},
        {"phone": "3101234567", "password": "123"},
        {"phone": "3101234567", "password": "secret123", "referralCode": "NOPE99"},
    ])
    def test_register_validation(self, client, db, payload):
        assert client.post("/api/register", json=payload).status_code == 400
        assert User.query.count() == 0

    def test_wrong_password(self, client, make_user):
        user = make_user()
        response = client.post("/api/login", json={"phone": user.phone, "password": "wrong-pass"})
        assert response.status_code == 401

    def test_logout_ends_session(self, client, make_user, login):
        login(make_user())
        assert client.get("/api/me").status_code == 200
        client.post("/api/logout")
        assert client.get("/api/me").status_code == 401


class TestUserApi:
    def test_me_requires_login(self, client, db):
        assert client.get("/api/me").get_json() == {"error": "Authentication required"}

    def test_purchase_flow(self, client, make_user, make_product, login):
        user = make_user(balance=30000)
        product = make_product(price=25000)
        login(user)

        response = client.post(f"/api/products/{product.id}/purchase", json={"quantity": 1})

        assert response.status_code == 201
        assert user.balance == Decimal("5000.00")
        owned = client.get("/api/my-products").get_json()["products"]
        assert [p["name"] for p in owned] == ["Plan Oro"]

    def test_purchase_without_funds(self, client, make_user, make_product, login):
        login(make_user(balance=100))
        response = client.post(f"/api/products/{make_product().id}/purchase", json={"quantity": 1})
        assert response.status_code == 400
        assert response.get_json()["error"] == "Insufficient balance for this purchase."

    def test_recharge_submission(self, client, make_user, login):
        login(make_user())
        staged = client.post("/api/recharge", json={"amount": 20000}).get_json()

        response = client.post(f"/api/recharge/{staged['id']}/confirm", json={"reference": "NEQ-12345"})

        assert response.status_code == 201
        requests = client.get("/api/recharge-requests").get_json()["requests"]
        assert [r["status"] for r in requests] == ["pending"]

    def test_site_info_is_public(self, client, db):
        assert client.get("/api/site-info").status_code == 200


class TestAdminApi:
    def test_plain_user_is_forbidden(self, client, make_user, login):
        login(make_user())
        assert client.get("/admin/api/stats").status_code == 403

    def test_admin_cannot_manage_users(self, client, make_user, login):
        login(make_user(role="admin"))
        assert client.get("/admin/api/stats").status_code == 200
        assert client.get("/admin/api/users").status_code == 403

    def test_admin_approves_recharge(self, client, make_user, login):
        user = make_user()
        login(user)
        staged = client.post("/api/recharge", json={"amount": 20000}).get_json()
        submitted = client.post(f"/api/recharge/{staged['id']}/confirm",
                                json={"reference": "NEQ-12345"}).get_json()["request"]
        request_id = submitted["id"]
        assert submitted["reference"] == "NEQ-12345"

        login(make_user(role="admin"))
        response = client.post(f"/admin/api/recharge-requests/{request_id}/approve")

        assert response.status_code == 200
        assert user.balance == Decimal("20000.00")
        assert client.post(f"/admin/api/recharge-requests/{request_id}/approve").status_code == 409

    def test_balance_adjustment_checks_version(self, client, make_user, login):
        user = make_user(balance=1000)
        login(make_user(role="superadmin"))
        url = f"/admin/api/users/{user.id}/balance"

        ok = client.post(url, json={"action": "add", "amount": 500, "description": "Bonus", "expectedVersion": 1})
        stale = client.post(url, json={"action": "add", "amount": 500, "description": "Bonus", "expectedVersion": 1})

        assert ok.status_code == 200
        assert stale.status_code == 409
        assert user.balance == Decimal("1500.00")
        assert AuditLog.query.filter_by(target_user_id=user.id).count() == 1

    def test_product_and_settings_management(self, client, make_user, login):
        login(make_user(role="superadmin"))
        created = client.post("/admin/api/products", json={
            "name": "Plan Diamante", "price": 50000, "dailyYield": 3, "purchaseLimit": 2, "durationDays": 60,
        })
        saved = client.put("/admin/api/settings/withdrawals", json={"minWithdrawal": 15000})

        assert created.status_code == 201
        assert [p["name"] for p in client.get("/api/products").get_json()["products"]] == ["Plan Diamante"]
        assert saved.get_json()["settings"]["minWithdrawal"] == 15000

    def test_delete_user_detaches_ledger(self, client, make_user, login):
        admin = make_user(role="superadmin")
        user = make_user(balance=0)
        login(admin)
        client.post(f"/admin/api/users/{user.id}/balance",
                    json={"action": "add", "amount": 100, "description": "Test", "expectedVersion": 1})
        user_id = user.id

        assert client.delete(f"/admin/api/users/{user_id}").status_code == 200

        assert db_user(user_id) is None
        assert [t.user_id for t in Transaction.query.all()] == [None]

    def test_superadmin_cannot_be_deleted(self, client, make_user, login):
        target = make_user(role="superadmin")
        login(make_user(role="superadmin"))
        assert client.delete(f"/admin/api/users/{target.id}").status_code == 403


def db_user(user_id):
    from extensions import db
    db.session.expire_all()
    return db.session.get(User, user_id)


def test_stream_sends_events(app, client, make_user, login):
    user = make_user()
    login(user)

    response = client.get("/api/stream")
    chunks = iter(response.response)
    assert next(chunks) == b": connected\n\n"

    app.extensions["change_feed"].publish(user_topic(user.id), "user.updated", {"balance": 10.0})
    chunk = next(chunks)
    while chunk.startswith(b": keepalive"):
        chunk = next(chunks)

    assert chunk.startswith(b"event: user.updated\n")
    assert b'"balance": 10.0' in chunk
    response.close()
