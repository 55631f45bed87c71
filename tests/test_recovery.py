import threading
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from heptabet_platform.api.server import create_app
from heptabet_platform.auth import recovery
from heptabet_platform.auth.errors import InvalidOrExpiredCode, TooManyRequests, ValidationFailed
from heptabet_platform.util.time import utcnow

from conftest import PASSWORD, FailingMailer, RecordingMailer, load_account, login, register


NEW_PASSWORD = "brand-new-pass"


def test_unknown_email_gets_generic_message_and_no_mail(client, mailer):
    res = client.post("/auth/forgot-password", json={"email": "ghost@x.io"})
    assert res.status_code == 200
    assert res.json() == {"message": recovery.GENERIC_RESET_MESSAGE}
    assert mailer.sent == []


def test_known_email_gets_same_message_and_a_code(client, mailer):
    register(client, "alice@x.io")
    res = client.post("/auth/forgot-password", json={"email": "alice@x.io"})
    assert res.status_code == 200
    assert res.json() == {"message": recovery.GENERIC_RESET_MESSAGE}

    assert len(mailer.sent) == 1
    assert mailer.sent[0]["to"] == "alice@x.io"
    code = mailer.last_code()
    assert len(code) == 6 and code.isdigit()


def test_reset_password_flow_and_single_use(client, new_client, mailer):
    register(client, "alice@x.io")
    client.post("/auth/forgot-password", json={"email": "alice@x.io"})
    code = mailer.last_code()

    res = client.post(
        "/auth/reset-password", json={"email": "alice@x.io", "otp": code, "newPassword": NEW_PASSWORD}
    )
    assert res.status_code == 200, res.text

    c2 = new_client()
    assert c2.post("/auth/login", json={"email": "alice@x.io", "password": PASSWORD}).status_code == 401
    login(c2, "alice@x.io", NEW_PASSWORD)

    again = client.post(
        "/auth/reset-password", json={"email": "alice@x.io", "otp": code, "newPassword": "another-pass-1"}
    )
    assert again.status_code == 400
    assert again.json() == {"detail": "invalid_or_expired_code"}


def test_wrong_code_and_unknown_email_look_the_same(client, mailer):
    register(client, "alice@x.io")
    client.post("/auth/forgot-password", json={"email": "alice@x.io"})
    code = mailer.last_code()
    wrong = "000000" if code != "000000" else "111111"

    a = client.post("/auth/reset-password", json={"email": "alice@x.io", "otp": wrong, "newPassword": NEW_PASSWORD})
    b = client.post("/auth/reset-password", json={"email": "ghost@x.io", "otp": code, "newPassword": NEW_PASSWORD})
    assert a.status_code == b.status_code == 400
    assert a.json() == b.json() == {"detail": "invalid_or_expired_code"}


def test_repeat_request_within_cooldown_is_throttled(client, mailer):
    register(client, "alice@x.io")
    assert client.post("/auth/forgot-password", json={"email": "alice@x.io"}).status_code == 200

    res = client.post("/auth/forgot-password", json={"email": "alice@x.io"})
    assert res.status_code == 429
    assert res.json() == {"detail": "too_many_requests"}
    assert 1 <= int(res.headers["retry-after"]) <= 60
    assert len(mailer.sent) == 1


def test_cooldown_elapses_and_new_code_replaces_old(cfg, client, mailer, monkeypatch):
    register(client, "alice@x.io")
    codes = iter(["111111", "222222"])
    monkeypatch.setattr(recovery, "new_reset_code", lambda: next(codes))
    t0 = utcnow()

    recovery.request_reset(cfg, mailer, email="alice@x.io", now=t0)
    first = mailer.last_code()
    assert first == "111111"

    with pytest.raises(TooManyRequests) as exc:
        recovery.request_reset(cfg, mailer, email="alice@x.io", now=t0 + timedelta(seconds=30))
    assert exc.value.headers == {"Retry-After": "30"}

    recovery.request_reset(cfg, mailer, email="alice@x.io", now=t0 + timedelta(seconds=61))
    second = mailer.last_code()
    assert second == "222222"
    assert len(mailer.sent) == 2

    later = t0 + timedelta(seconds=90)
    with pytest.raises(InvalidOrExpiredCode):
        recovery.redeem_reset(cfg, email="alice@x.io", code=first, new_password=NEW_PASSWORD, now=later)
    recovery.redeem_reset(cfg, email="alice@x.io", code=second, new_password=NEW_PASSWORD, now=later)


def test_expired_code_is_rejected(cfg, client, mailer):
    register(client, "alice@x.io")
    t0 = utcnow()
    recovery.request_reset(cfg, mailer, email="alice@x.io", now=t0)
    code = mailer.last_code()

    too_late = t0 + timedelta(minutes=cfg.RESET_CODE_TTL_MINUTES, seconds=1)
    with pytest.raises(InvalidOrExpiredCode):
        recovery.redeem_reset(cfg, email="alice@x.io", code=code, new_password=NEW_PASSWORD, now=too_late)


def test_short_new_password_fails_before_code_is_checked(cfg, client, mailer):
    register(client, "alice@x.io")
    client.post("/auth/forgot-password", json={"email": "alice@x.io"})
    code = mailer.last_code()

    res = client.post("/auth/reset-password", json={"email": "alice@x.io", "otp": code, "newPassword": "short"})
    assert res.status_code == 400
    assert res.json()["detail"] == "password_too_short"

    # The code was not consumed.
    recovery.redeem_reset(cfg, email="alice@x.io", code=code, new_password=NEW_PASSWORD)
    with pytest.raises(ValidationFailed):
        recovery.redeem_reset(cfg, email="alice@x.io", code=code, new_password="")


def test_code_is_withdrawn_after_too_many_wrong_guesses(cfg, client, mailer):
    register(client, "alice@x.io")
    client.post("/auth/forgot-password", json={"email": "alice@x.io"})
    code = mailer.last_code()
    wrong = "000000" if code != "000000" else "111111"

    for _ in range(cfg.RESET_CODE_MAX_ATTEMPTS):
        with pytest.raises(InvalidOrExpiredCode):
            recovery.redeem_reset(cfg, email="alice@x.io", code=wrong, new_password=NEW_PASSWORD)

    with pytest.raises(InvalidOrExpiredCode):
        recovery.redeem_reset(cfg, email="alice@x.io", code=code, new_password=NEW_PASSWORD)

    account = load_account(cfg, "alice@x.io")
    assert account["reset_code"] is None
    # Still throttled: withdrawing the code does not reset the cooldown.
    assert account["reset_code_requested_at"] is not None


def _hold_after_lookup(monkeypatch, parties):
    """Make every redeem_reset caller wait for the others after reading the account."""
    barrier = threading.Barrier(parties, timeout=10)
    real_lookup = recovery.get_account_by_email

    def lookup(conn, email):
        account = real_lookup(conn, email)
        barrier.wait()
        return account

    monkeypatch.setattr(recovery, "get_account_by_email", lookup)


def _redeem_in_threads(cfg, calls):
    results = [None] * len(calls)

    def run(i, code, password):
        try:
            recovery.redeem_reset(cfg, email="alice@x.io", code=code, new_password=password)
            results[i] = "ok"
        except InvalidOrExpiredCode:
            results[i] = "rejected"
        except Exception as e:
            results[i] = repr(e)

    threads = [threading.Thread(target=run, args=(i, code, pw)) for i, (code, pw) in enumerate(calls)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return results


def test_concurrent_redemptions_of_one_code_succeed_once(cfg, client, new_client, mailer, monkeypatch):
    register(client, "alice@x.io")
    client.post("/auth/forgot-password", json={"email": "alice@x.io"})
    code = mailer.last_code()

    _hold_after_lookup(monkeypatch, 2)
    results = _redeem_in_threads(cfg, [(code, "first-new-pass"), (code, "second-new-pass")])

    assert sorted(results) == ["ok", "rejected"]
    assert load_account(cfg, "alice@x.io")["reset_code"] is None

    winner = "first-new-pass" if results[0] == "ok" else "second-new-pass"
    loser = "second-new-pass" if results[0] == "ok" else "first-new-pass"
    c2 = new_client()
    assert c2.post("/auth/login", json={"email": "alice@x.io", "password": loser}).status_code == 401
    login(c2, "alice@x.io", winner)


def test_parallel_wrong_guesses_all_count_toward_the_limit(cfg, client, mailer, monkeypatch):
    register(client, "alice@x.io")
    client.post("/auth/forgot-password", json={"email": "alice@x.io"})
    code = mailer.last_code()
    wrong = "000000" if code != "000000" else "111111"

    guesses = cfg.RESET_CODE_MAX_ATTEMPTS
    _hold_after_lookup(monkeypatch, guesses)
    results = _redeem_in_threads(cfg, [(wrong, NEW_PASSWORD)] * guesses)
    assert results == ["rejected"] * guesses

    monkeypatch.undo()
    assert load_account(cfg, "alice@x.io")["reset_code"] is None
    with pytest.raises(InvalidOrExpiredCode):
        recovery.redeem_reset(cfg, email="alice@x.io", code=code, new_password=NEW_PASSWORD)


def test_mail_failure_is_reported_and_retry_is_allowed(cfg, client):
    register(client, "alice@x.io")

    failing = FailingMailer()
    with TestClient(create_app(cfg, mailer=failing)) as broken:
        res = broken.post("/auth/forgot-password", json={"email": "alice@x.io"})
    assert res.status_code == 500
    assert res.json() == {"detail": "email_delivery_failed"}
    assert failing.calls == 1
    assert load_account(cfg, "alice@x.io")["reset_code"] is None

    working = RecordingMailer()
    with TestClient(create_app(cfg, mailer=working)) as healthy:
        res = healthy.post("/auth/forgot-password", json={"email": "alice@x.io"})
    assert res.status_code == 200
    assert len(working.sent) == 1


def test_reset_codes_never_appear_in_account_payloads(client):
    register(client, "alice@x.io")
    client.post("/auth/forgot-password", json={"email": "alice@x.io"})
    acc = client.get("/auth/me").json()["account"]
    assert not any("reset" in k.lower() for k in acc)
