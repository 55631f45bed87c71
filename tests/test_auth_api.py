from datetime import timedelta

import jwt
import pytest

from heptabet_platform.auth import crud
from heptabet_platform.auth.crud import delete_account
from heptabet_platform.auth.security import create_access_token
from heptabet_platform.db import connect
from heptabet_platform.util.time import to_iso, utcnow

from conftest import ADMIN_EMAIL, PASSWORD, load_account, login, register, set_tier


def test_register_returns_account_and_csrf_and_sets_cookie(client):
    res = client.post(
        "/auth/register",
        json={"name": "Alice", "email": "alice@x.io", "password": PASSWORD, "phoneNumber": "+2348000000000"},
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["csrfToken"]
    acc = body["account"]
    assert acc["email"] == "alice@x.io"
    assert acc["phoneNumber"] == "+2348000000000"
    assert acc["subscription"] == "Free"
    assert acc["role"] == "user"
    assert acc["isAdmin"] is False
    for secret in ("password_hash", "passwordHash", "csrf_secret", "reset_code"):
        assert secret not in acc

    set_cookie = res.headers["set-cookie"].lower()
    assert set_cookie.startswith("token=")
    assert "httponly" in set_cookie
    assert "samesite=strict" in set_cookie
    assert "max-age=604800" in set_cookie
    assert "; secure" not in set_cookie

    me = client.get("/auth/me")
    assert me.status_code == 200, me.text
    assert me.json()["account"]["email"] == "alice@x.io"


def test_register_normalizes_email_and_rejects_duplicates(client):
    register(client, "Alice@X.io ")
    res = client.post("/auth/register", json={"name": "A2", "email": "alice@x.io", "password": PASSWORD})
    assert res.status_code == 400
    assert res.json() == {"detail": "account_exists"}


def test_duplicate_that_slips_past_the_lookup_is_still_account_exists(cfg, client, monkeypatch):
    register(client, "alice@x.io")
    # Same state a concurrent registration leaves behind: lookup says free, insert collides.
    monkeypatch.setattr(crud, "_email_taken", lambda conn, email: False)

    with connect(cfg.DB_DSN) as conn:
        with pytest.raises(ValueError, match="email_exists"):
            crud.create_account(conn, name="A2", email="alice@x.io", password=PASSWORD)

    res = client.post("/auth/register", json={"name": "A2", "email": "alice@x.io", "password": PASSWORD})
    assert res.status_code == 400
    assert res.json() == {"detail": "account_exists"}
    assert load_account(cfg, "alice@x.io")["name"] == "Alice"


def test_register_validation(client):
    res = client.post("/auth/register", json={"name": "A", "email": "not-an-email", "password": PASSWORD})
    assert res.status_code == 400
    assert res.json()["detail"] == "invalid_email"

    res = client.post("/auth/register", json={"name": "A", "email": "a@x.io", "password": "short"})
    assert res.status_code == 400
    assert res.json()["detail"] == "password_too_short"

    res = client.post("/auth/register", json={"name": "  ", "email": "a@x.io", "password": PASSWORD})
    assert res.status_code == 400
    assert res.json()["detail"] == "name_blank"


def test_admin_email_bootstraps_admin_role(client):
    body = register(client, ADMIN_EMAIL.upper(), name="Admin")
    assert body["account"]["role"] == "admin"
    assert body["account"]["isAdmin"] is True


def test_invalid_credentials_identical_for_unknown_email_and_wrong_password(client, new_client):
    register(client, "alice@x.io")

    other = new_client()
    wrong_pw = other.post("/auth/login", json={"email": "alice@x.io", "password": "nope-nope-nope"})
    unknown = other.post("/auth/login", json={"email": "ghost@x.io", "password": "nope-nope-nope"})

    assert wrong_pw.status_code == unknown.status_code == 401
    assert wrong_pw.json() == unknown.json() == {"detail": "invalid_credentials"}
    assert "set-cookie" not in wrong_pw.headers


def test_login_then_logout(client, new_client):
    register(client, "alice@x.io")

    c2 = new_client()
    body = login(c2, "alice@x.io")
    assert body["account"]["email"] == "alice@x.io"
    assert body["account"]["lastLoginAt"]
    assert c2.get("/auth/me").status_code == 200

    out = c2.post("/auth/logout")
    assert out.status_code == 200
    assert c2.get("/auth/me").status_code == 401


def test_logout_without_session_is_ok(client):
    assert client.post("/auth/logout").status_code == 200


def test_me_requires_session(client):
    res = client.get("/auth/me")
    assert res.status_code == 401
    assert res.json()["detail"] == "missing_token"


def test_bearer_header_is_accepted_as_fallback(client, new_client):
    register(client, "alice@x.io")
    token = client.cookies.get("token")
    assert token

    c2 = new_client()
    res = c2.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 200
    assert res.json()["account"]["email"] == "alice@x.io"


def test_cookie_wins_over_bearer(client):
    register(client, "alice@x.io")
    res = client.get("/auth/me", headers={"Authorization": "Bearer garbage"})
    assert res.status_code == 200


def test_expired_and_tampered_tokens_are_rejected(cfg, client, new_client):
    body = register(client, "alice@x.io")

    issued = utcnow() - timedelta(hours=2)
    expired = jwt.encode(
        {
            "sub": str(body["account"]["id"]),
            "role": "user",
            "iat": int(issued.timestamp()),
            "exp": int((issued + timedelta(hours=1)).timestamp()),
        },
        cfg.AUTH_JWT_SECRET,
        algorithm="HS256",
    )
    c2 = new_client()
    res = c2.get("/auth/me", headers={"Authorization": f"Bearer {expired}"})
    assert res.status_code == 401
    assert res.json()["detail"] == "token_expired"

    forged = create_access_token(
        secret="some-other-secret-0123456789abcdef0123456789",
        account_id=int(body["account"]["id"]),
        role="admin",
        expires_minutes=60,
    )
    res = c2.get("/auth/me", headers={"Authorization": f"Bearer {forged}"})
    assert res.status_code == 401
    assert res.json()["detail"] == "token_invalid"


def test_token_for_deleted_account_is_unauthenticated(cfg, client):
    body = register(client, "alice@x.io")
    with connect(cfg.DB_DSN) as conn:
        delete_account(conn, int(body["account"]["id"]))
    res = client.get("/auth/me")
    assert res.status_code == 401
    assert res.json()["detail"] == "account_not_found"


def test_login_downgrades_lapsed_subscription(cfg, client, new_client):
    register(client, "alice@x.io")
    set_tier(cfg, "alice@x.io", "Premium", to_iso(utcnow() - timedelta(days=1)))

    body = login(new_client(), "alice@x.io")
    assert body["account"]["subscription"] == "Free"
    assert load_account(cfg, "alice@x.io")["subscription"] == "Free"


def test_me_returns_active_paid_tier(cfg, client):
    register(client, "alice@x.io")
    expiry = to_iso(utcnow() + timedelta(days=5))
    set_tier(cfg, "alice@x.io", "Standard", expiry)

    acc = client.get("/auth/me").json()["account"]
    assert acc["subscription"] == "Standard"
    assert acc["subscriptionExpiryDate"] == expiry


def test_scenario_register_login_view(client, new_client):
    # Alice registers, logs in from another browser and browses as a Free member.
    register(client, "alice@x.io")
    c2 = new_client()
    body = login(c2, "alice@x.io")
    assert body["account"]["subscription"] == "Free"
    assert c2.get("/predictions").status_code == 200
