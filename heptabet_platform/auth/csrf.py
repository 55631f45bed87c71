"""Per-account anti-forgery secret.

The secret lives on the account row and is handed to the client in the body of
auth responses (never in a cookie). The client echoes it back in the
X-CSRF-Token header on every unsafe request.

Rotation happens on login and registration. Two requests racing right after a
login can see different secrets; the one returned by the most recent auth
response is authoritative.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from heptabet_platform.util.time import utcnow_iso

from .crud import get_account_by_id
from .errors import InvalidCsrfToken, MissingCsrfToken, Unauthenticated
from .security import constant_time_equals, new_csrf_secret


UNSAFE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

# These precede possession of a token.
EXEMPT_PATHS = frozenset(
    {
        "/auth/register",
        "/auth/login",
        "/auth/logout",
        "/auth/forgot-password",
        "/auth/reset-password",
    }
)


def _debug(msg: str) -> None:
    print(f"[csrf] {msg}")


def requires_csrf(method: str, path: str) -> bool:
    if (method or "").upper() not in UNSAFE_METHODS:
        return False
    return (path or "").rstrip("/") not in EXEMPT_PATHS


def rotate_csrf_secret(conn: Any, account_id: int) -> str:
    secret = new_csrf_secret()
    conn.execute(
        "UPDATE accounts SET csrf_secret=?, updated_at=? WHERE account_id=?",
        (secret, utcnow_iso(), int(account_id)),
    )
    return secret


def current_csrf_secret(conn: Any, account: Dict[str, Any]) -> str:
    """Return the stored secret, minting one only if the account has none yet."""
    secret = account.get("csrf_secret")
    if secret:
        return str(secret)
    return rotate_csrf_secret(conn, int(account["account_id"]))


def validate_csrf(conn: Any, *, account_id: Optional[int], presented: Optional[str]) -> Dict[str, Any]:
    """Check the presented header token against the account's stored secret.

    Order matters: no session -> 401, no header -> 403 missing, mismatch -> 403 invalid.
    Returns the freshly loaded account row.
    """
    if account_id is None:
        raise Unauthenticated()

    token = (presented or "").strip()
    if not token:
        _debug(f"missing token account_id={account_id}")
        raise MissingCsrfToken()

    account = get_account_by_id(conn, int(account_id))
    if account is None:
        raise Unauthenticated("account_not_found")

    if not constant_time_equals(token, account.get("csrf_secret")):
        _debug(f"token mismatch account_id={account_id}")
        raise InvalidCsrfToken()

    return account
