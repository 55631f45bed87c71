from datetime import timedelta

import pytest

from heptabet_platform.util.time import parse_iso, utcnow

from conftest import ADMIN_EMAIL, load_account, register


@pytest.fixture
def admin(client):
    body = register(client, ADMIN_EMAIL, name="Admin")
    return client, {"X-CSRF-Token": body["csrfToken"]}, body["account"]


@pytest.fixture
def member(new_client):
    c = new_client()
    body = register(c, "alice@x.io", name="Alice")
    return c, {"X-CSRF-Token": body["csrfToken"]}, body["account"]


def test_plans_catalogue(client):
    plans = client.get("/plans").json()
    assert [p["id"] for p in plans] == ["basic", "standard", "premium"]
    assert [p["tier"] for p in plans] == ["Basic", "Standard", "Premium"]


def test_transaction_approval_upgrades_tier(cfg, admin, member):
    a, ah, _ = admin
    m, mh, _ = member

    res = m.post("/transactions", json={"planId": "standard", "method": "Bank Transfer"}, headers=mh)
    assert res.status_code == 200, res.text
    tx = res.json()
    assert tx["status"] == "Pending"
    assert tx["amount"] == "₦5,000/mo"

    assert [t["id"] for t in m.get("/transactions").json()] == [tx["id"]]

    before = utcnow()
    res = a.put(f"/transactions/{tx['id']}", json={"status": "Approved"}, headers=ah)
    assert res.status_code == 200, res.text
    assert res.json()["status"] == "Approved"

    acc = m.get("/auth/me").json()["account"]
    assert acc["subscription"] == "Standard"
    expiry = parse_iso(acc["subscriptionExpiryDate"])
    days = int(cfg.SUBSCRIPTION_PERIOD_DAYS)
    assert before + timedelta(days=days) - timedelta(seconds=5) <= expiry <= utcnow() + timedelta(days=days)

    again = a.put(f"/transactions/{tx['id']}", json={"status": "Rejected"}, headers=ah)
    assert again.status_code == 409
    assert again.json()["detail"] == "already_decided"


def test_rejection_leaves_tier_unchanged(cfg, admin, member):
    a, ah, _ = admin
    m, mh, _ = member
    tx = m.post("/transactions", json={"planId": "premium", "method": "USDT"}, headers=mh).json()

    res = a.put(f"/transactions/{tx['id']}", json={"status": "Rejected"}, headers=ah)
    assert res.status_code == 200
    assert load_account(cfg, "alice@x.io")["subscription"] == "Free"


def test_transaction_validation_and_visibility(admin, member, new_client):
    a, ah, _ = admin
    m, mh, _ = member

    bad = m.post("/transactions", json={"planId": "gold", "method": "USDT"}, headers=mh)
    assert bad.status_code == 400
    assert bad.json()["detail"] == "invalid_plan"

    bad = m.post("/transactions", json={"planId": "basic", "method": "Cash"}, headers=mh)
    assert bad.json()["detail"] == "invalid_method"

    assert m.post("/transactions", json={"planId": "basic", "method": "USDT"}, headers=mh).status_code == 200

    other = new_client()
    oh = {"X-CSRF-Token": register(other, "bob@x.io", name="Bob")["csrfToken"]}
    other.post("/transactions", json={"planId": "premium", "method": "USDT"}, headers=oh)

    assert len(a.get("/transactions").json()) == 2
    mine = other.get("/transactions").json()
    assert len(mine) == 1 and mine[0]["userEmail"] == "bob@x.io"

    # Only admins decide.
    res = m.put(f"/transactions/{mine[0]['id']}", json={"status": "Approved"}, headers=mh)
    assert res.status_code == 403

    assert a.put("/transactions/9999", json={"status": "Approved"}, headers=ah).status_code == 404
    bad = a.put(f"/transactions/{mine[0]['id']}", json={"status": "Pending"}, headers=ah)
    assert bad.json()["detail"] == "invalid_status"


def test_users_admin(admin, member):
    a, ah, admin_acc = admin
    m, _, member_acc = member

    assert m.get("/users").status_code == 403
    users = a.get("/users").json()
    assert {u["email"] for u in users} == {ADMIN_EMAIL, "alice@x.io"}
    assert all("password_hash" not in u for u in users)

    res = a.put(
        f"/users/{member_acc['id']}/subscription",
        json={"subscription": "Premium", "subscriptionExpiryDate": "2099-01-01T00:00:00Z"},
        headers=ah,
    )
    assert res.status_code == 200, res.text
    assert res.json()["subscription"] == "Premium"
    assert m.get("/auth/me").json()["account"]["subscription"] == "Premium"

    res = a.put(
        f"/users/{member_acc['id']}/subscription",
        json={"subscription": "Free", "subscriptionExpiryDate": "2099-01-01T00:00:00Z"},
        headers=ah,
    )
    assert res.json()["subscriptionExpiryDate"] is None

    bad = a.put(f"/users/{member_acc['id']}/subscription", json={"subscription": "Gold"}, headers=ah)
    assert bad.status_code == 400

    assert a.delete(f"/users/{admin_acc['id']}", headers=ah).json()["detail"] == "cannot_delete_self"
    assert a.delete(f"/users/{member_acc['id']}", headers=ah).status_code == 200
    assert m.get("/auth/me").status_code == 401
    assert a.delete(f"/users/{member_acc['id']}", headers=ah).status_code == 404


def test_admin_grants_already_lapsed_tier(admin, member):
    a, ah, _ = admin
    m, _, member_acc = member

    pred = {
        "league": "Serie A",
        "homeTeam": "Roma",
        "awayTeam": "Lazio",
        "date": "2026-10-21",
        "tip": "Draw",
        "minTier": "Standard",
    }
    pid = a.post("/predictions", json=pred, headers=ah).json()["id"]
    assert m.get(f"/predictions/{pid}").json()["locked"] is True

    yesterday = (utcnow() - timedelta(days=1)).isoformat()
    res = a.put(
        f"/users/{member_acc['id']}/subscription",
        json={"subscription": "Standard", "subscriptionExpiryDate": yesterday},
        headers=ah,
    )
    assert res.status_code == 200

    assert m.get("/auth/me").json()["account"]["subscription"] == "Free"
    assert m.get(f"/predictions/{pid}").json()["locked"] is True
