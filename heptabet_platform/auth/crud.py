from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from heptabet_platform.access.tiers import Tier, parse_tier
from heptabet_platform.db import is_unique_violation
from heptabet_platform.util.time import parse_iso, to_iso, utcnow_iso

from .security import hash_password


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Never leave the database through the API.
_PRIVATE_FIELDS = (
    "password_hash",
    "csrf_secret",
    "reset_code",
    "reset_code_expiry",
    "reset_code_requested_at",
    "reset_code_attempts",
)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(normalize_email(email)))


def public_account(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    """Wire shape of an account (camelCase, secrets stripped)."""
    d = dict(row)
    for k in _PRIVATE_FIELDS:
        d.pop(k, None)
    return {
        "id": d.get("account_id"),
        "name": d.get("name"),
        "email": d.get("email"),
        "phoneNumber": d.get("phone_number"),
        "role": d.get("role"),
        "isAdmin": d.get("role") == "admin",
        "subscription": d.get("subscription"),
        "subscriptionExpiryDate": d.get("subscription_expiry"),
        "joinDate": d.get("created_at"),
        "lastLoginAt": d.get("last_login_at"),
    }


def _as_dict(row: Any) -> Optional[Dict[str, Any]]:
    return None if row is None else dict(row)


def get_account_by_email(conn: Any, email: str) -> Optional[Dict[str, Any]]:
    e = normalize_email(email)
    if not e:
        return None
    return _as_dict(conn.execute("SELECT * FROM accounts WHERE email=?", (e,)).fetchone())


def get_account_by_id(conn: Any, account_id: int) -> Optional[Dict[str, Any]]:
    return _as_dict(
        conn.execute("SELECT * FROM accounts WHERE account_id=?", (int(account_id),)).fetchone()
    )


def _email_taken(conn: Any, email: str) -> bool:
    return conn.execute("SELECT 1 FROM accounts WHERE email=?", (email,)).fetchone() is not None


def list_accounts(conn: Any) -> List[Dict[str, Any]]:
    rows = conn.execute("SELECT * FROM accounts ORDER BY created_at DESC, account_id DESC").fetchall()
    return [dict(r) for r in rows]


def create_account(
    conn: Any,
    *,
    name: str,
    email: str,
    password: str,
    phone_number: str | None = None,
    role: str = "user",
) -> Dict[str, Any]:
    """Insert a new Free-tier account and return the full row.

    Raises ValueError with a code on bad input ("email_exists", "invalid_email", ...).
    """
    e = normalize_email(email)
    n = (name or "").strip()
    if not e:
        raise ValueError("email_blank")
    if not is_valid_email(e):
        raise ValueError("invalid_email")
    if not n:
        raise ValueError("name_blank")
    if role not in ("admin", "user"):
        raise ValueError("invalid_role")

    if _email_taken(conn, e):
        raise ValueError("email_exists")

    now = utcnow_iso()
    try:
        conn.execute(
            """
            INSERT INTO accounts (email, name, phone_number, password_hash, role, subscription, created_at, updated_at)
            VALUES (?,?,?,?,?,?,?,?)
            """,
            (e, n, (phone_number or "").strip() or None, hash_password(password), role, Tier.FREE.value, now, now),
        )
    except Exception as exc:
        # A concurrent registration won the race between the check and the insert.
        if is_unique_violation(exc):
            raise ValueError("email_exists") from exc
        raise
    row = get_account_by_email(conn, e)
    assert row is not None
    return row


def touch_last_login(conn: Any, account_id: int) -> str:
    now = utcnow_iso()
    conn.execute(
        "UPDATE accounts SET last_login_at=?, updated_at=? WHERE account_id=?",
        (now, now, int(account_id)),
    )
    return now


def consume_reset_code(conn: Any, *, account_id: int, code: str, password: str, now_iso: str) -> bool:
    """Swap in a new password hash if `code` is still the live code. Single statement.

    Returns False when the code was already used, replaced, withdrawn or expired,
    including by a concurrent request that got there first.
    """
    cur = conn.execute(
        """
        UPDATE accounts
        SET password_hash=?, reset_code=NULL, reset_code_expiry=NULL,
            reset_code_requested_at=NULL, reset_code_attempts=0, updated_at=?
        WHERE account_id=? AND reset_code=? AND reset_code_expiry>=?
        """,
        (hash_password(password), now_iso, int(account_id), str(code), now_iso),
    )
    return cur.rowcount > 0


def record_reset_miss(conn: Any, *, account_id: int, code: str) -> Optional[int]:
    """Count one wrong guess against the live code and return the new total.

    The increment happens in SQL so parallel guesses cannot overwrite each
    other's count. None if `code` is no longer the account's code.
    """
    cur = conn.execute(
        """
        UPDATE accounts
        SET reset_code_attempts = reset_code_attempts + 1
        WHERE account_id=? AND reset_code=?
        """,
        (int(account_id), str(code)),
    )
    if cur.rowcount == 0:
        return None
    row = conn.execute("SELECT reset_code_attempts FROM accounts WHERE account_id=?", (int(account_id),)).fetchone()
    return None if row is None else int(row["reset_code_attempts"])


def withdraw_reset_code(conn: Any, *, account_id: int, code: str, now_iso: str) -> bool:
    # requested_at stays so the cooldown still applies to the next request.
    cur = conn.execute(
        """
        UPDATE accounts
        SET reset_code=NULL, reset_code_expiry=NULL, reset_code_attempts=0, updated_at=?
        WHERE account_id=? AND reset_code=?
        """,
        (now_iso, int(account_id), str(code)),
    )
    return cur.rowcount > 0


def update_subscription(
    conn: Any,
    *,
    account_id: int,
    subscription: str,
    subscription_expiry: str | None,
) -> Dict[str, Any]:
    """Set tier + expiry. A Free tier never carries an expiry."""
    tier = parse_tier(subscription)
    if tier is None:
        raise ValueError("invalid_tier")
    expiry = None
    if tier is not Tier.FREE and subscription_expiry:
        parsed = parse_iso(subscription_expiry)
        if parsed is None:
            raise ValueError("invalid_expiry")
        expiry = to_iso(parsed)
    cur = conn.execute(
        "UPDATE accounts SET subscription=?, subscription_expiry=?, updated_at=? WHERE account_id=?",
        (tier.value, expiry, utcnow_iso(), int(account_id)),
    )
    if cur.rowcount == 0:
        raise ValueError("account_not_found")
    row = get_account_by_id(conn, account_id)
    assert row is not None
    return row


def delete_account(conn: Any, account_id: int) -> bool:
    cur = conn.execute("DELETE FROM accounts WHERE account_id=?", (int(account_id),))
    return cur.rowcount > 0
