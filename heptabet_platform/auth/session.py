"""Session issuance: register, login, logout and token resolution.

A session is a signed JWT carrying {sub: account_id, role}. It is only ever held
client-side in an httpOnly cookie. Resolving it is purely cryptographic and
never reads the database, so a resolved identity is not proof that the account
still exists or still has that role; callers that care re-fetch the account.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import jwt
from fastapi import Response

from heptabet_platform.access.tiers import enforce_expiry
from heptabet_platform.config import Config

from .crud import create_account, get_account_by_email, normalize_email, touch_last_login
from .csrf import rotate_csrf_secret
from .errors import DuplicateAccount, InvalidCredentials, Unauthenticated, ValidationFailed
from .security import burn_password_check, create_access_token, decode_access_token, verify_password


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


@dataclass(frozen=True)
class SessionIdentity:
    account_id: int
    role: str


@dataclass(frozen=True)
class AuthResult:
    account: Dict[str, Any]
    csrf_token: str
    session_token: str


def mint_session_token(cfg: Config, account: Dict[str, Any]) -> str:
    return create_access_token(
        secret=cfg.AUTH_JWT_SECRET,
        account_id=int(account["account_id"]),
        role=str(account["role"]),
        expires_minutes=int(cfg.AUTH_TOKEN_EXPIRE_MINUTES),
    )


def resolve_session(token: Optional[str], cfg: Config) -> SessionIdentity:
    if not token:
        raise Unauthenticated("missing_token")

    try:
        payload = decode_access_token(token=token, secret=cfg.AUTH_JWT_SECRET)
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("token_expired")
    except jwt.InvalidTokenError:
        raise Unauthenticated("token_invalid")
    except ValueError:
        raise Unauthenticated("token_invalid")

    try:
        account_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise Unauthenticated("token_sub_not_int")

    role = str(payload.get("role") or "user")
    return SessionIdentity(account_id=account_id, role=role)


def register(
    conn: Any,
    cfg: Config,
    *,
    name: str,
    email: str,
    password: str,
    phone_number: str | None = None,
) -> AuthResult:
    """Create a Free account and open a session for it.

    The one bootstrap rule: the configured ADMIN_EMAIL registers as role=admin.
    """
    if len(password or "") < int(cfg.PASSWORD_MIN_LENGTH):
        raise ValidationFailed("password_too_short")

    e = normalize_email(email)
    role = "admin" if cfg.ADMIN_EMAIL and e == cfg.ADMIN_EMAIL else "user"

    try:
        account = create_account(
            conn,
            name=name,
            email=e,
            password=password,
            phone_number=phone_number,
            role=role,
        )
    except ValueError as exc:
        if str(exc) == "email_exists":
            raise DuplicateAccount()
        raise ValidationFailed(str(exc))

    if role == "admin":
        _debug(f"bootstrap admin registered account_id={account['account_id']}")

    csrf = rotate_csrf_secret(conn, int(account["account_id"]))
    account["csrf_secret"] = csrf
    return AuthResult(account=account, csrf_token=csrf, session_token=mint_session_token(cfg, account))


def login(
    conn: Any,
    cfg: Config,
    *,
    email: str,
    password: str,
    now: Optional[datetime] = None,
) -> AuthResult:
    account = get_account_by_email(conn, email)
    if account is None:
        burn_password_check(password)
        _debug("login failed (unknown email)")
        raise InvalidCredentials()
    if not verify_password(password, str(account["password_hash"])):
        _debug(f"login failed account_id={account['account_id']}")
        raise InvalidCredentials()

    account = enforce_expiry(conn, account, now=now)
    account = dict(account)
    account["last_login_at"] = touch_last_login(conn, int(account["account_id"]))

    csrf = rotate_csrf_secret(conn, int(account["account_id"]))
    account["csrf_secret"] = csrf
    return AuthResult(account=account, csrf_token=csrf, session_token=mint_session_token(cfg, account))


def _cookie_secure(cfg: Config) -> bool:
    return bool(getattr(cfg, "AUTH_COOKIE_SECURE", True))


def set_session_cookie(response: Response, *, token: str, cfg: Config) -> None:
    """httpOnly + SameSite=Strict session cookie; Secure outside local development."""
    response.set_cookie(
        key=cfg.AUTH_COOKIE_NAME,
        value=str(token),
        httponly=True,
        samesite="strict",
        secure=_cookie_secure(cfg),
        max_age=int(cfg.AUTH_TOKEN_EXPIRE_MINUTES) * 60,
        path=cfg.AUTH_COOKIE_PATH,
        domain=cfg.AUTH_COOKIE_DOMAIN,
    )


def clear_session_cookie(response: Response, cfg: Config) -> None:
    response.delete_cookie(
        key=cfg.AUTH_COOKIE_NAME,
        path=cfg.AUTH_COOKIE_PATH,
        domain=cfg.AUTH_COOKIE_DOMAIN,
        secure=_cookie_secure(cfg),
        httponly=True,
        samesite="strict",
    )
