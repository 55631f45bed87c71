import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from heptabet_platform.api.server import create_app
from heptabet_platform.auth.crud import get_account_by_email, update_subscription
from heptabet_platform.config import Config
from heptabet_platform.db import connect, init_db
from heptabet_platform.notify.mailer import MailError


ADMIN_EMAIL = "admin@heptabet.com"
PASSWORD = "password123"


class RecordingMailer:
    """Keeps every message in memory instead of sending it."""

    def __init__(self) -> None:
        self.sent: List[Dict[str, str]] = []

    def send(self, *, to: str, subject: str, text: str) -> None:
        self.sent.append({"to": to, "subject": subject, "text": text})

    def last_code(self, to: Optional[str] = None) -> str:
        msgs = [m for m in self.sent if to is None or m["to"] == to]
        assert msgs, "no mail sent"
        m = re.search(r"\b(\d{6})\b", msgs[-1]["text"])
        assert m, msgs[-1]["text"]
        return m.group(1)


class FailingMailer:
    def __init__(self) -> None:
        self.calls = 0

    def send(self, *, to: str, subject: str, text: str) -> None:
        self.calls += 1
        raise MailError("relay unavailable")


@pytest.fixture
def cfg(tmp_path: Path) -> Config:
    c = Config(
        DB_DSN=str(tmp_path / "heptabet_test.sqlite"),
        APP_ENV="development",
        AUTH_JWT_SECRET="test-secret-0123456789abcdef0123456789abcdef",
        AUTH_COOKIE_SECURE=False,
        ADMIN_EMAIL=ADMIN_EMAIL,
        MAIL_BACKEND="console",
        GEMINI_API_KEY=None,
        CORS_ALLOW_ORIGINS="",
    )
    init_db(c.DB_DSN)
    return c


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def app(cfg: Config, mailer: RecordingMailer):
    return create_app(cfg, mailer=mailer)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def new_client(app):
    """Factory for extra clients (separate cookie jars) against the same app."""

    def _make() -> TestClient:
        return TestClient(app)

    return _make


def register(client: TestClient, email: str, *, name: str = "Alice", password: str = PASSWORD) -> Dict[str, Any]:
    res = client.post("/auth/register", json={"name": name, "email": email, "password": password})
    assert res.status_code == 200, res.text
    return res.json()


def login(client: TestClient, email: str, password: str = PASSWORD) -> Dict[str, Any]:
    res = client.post("/auth/login", json={"email": email, "password": password})
    assert res.status_code == 200, res.text
    return res.json()


def set_tier(cfg: Config, email: str, tier: str, expiry: Optional[str] = None) -> None:
    with connect(cfg.DB_DSN) as conn:
        account = get_account_by_email(conn, email)
        assert account is not None
        update_subscription(conn, account_id=int(account["account_id"]), subscription=tier, subscription_expiry=expiry)


def load_account(cfg: Config, email: str) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        account = get_account_by_email(conn, email)
    assert account is not None
    return account
