from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from heptabet_platform.access.tiers import enforce_expiry, is_admin
from heptabet_platform.config import Config
from heptabet_platform.db import connect

from .crud import get_account_by_id
from .csrf import requires_csrf, validate_csrf
from .errors import AdminOnly, Unauthenticated
from .session import SessionIdentity, resolve_session


_bearer = HTTPBearer(auto_error=False)


def get_cfg(request: Request) -> Config:
    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        raise HTTPException(status_code=500, detail="server_config_missing")
    return cfg


def get_mailer(request: Request) -> Any:
    mailer = getattr(request.app.state, "mailer", None)
    if mailer is None:
        raise HTTPException(status_code=500, detail="mailer_missing")
    return mailer


def _extract_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
    cfg: Config,
) -> Optional[str]:
    """Cookie first; `Authorization: Bearer` only as a compatibility fallback."""
    token = request.cookies.get(cfg.AUTH_COOKIE_NAME)
    if token:
        return token
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return None


def get_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    cfg: Config = Depends(get_cfg),
) -> SessionIdentity:
    """Cryptographic identity only; does not touch the database."""
    return resolve_session(_extract_token(request, credentials, cfg), cfg)


def get_optional_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    cfg: Config = Depends(get_cfg),
) -> Optional[SessionIdentity]:
    """Like get_session, but a missing/expired/invalid token means anonymous."""
    token = _extract_token(request, credentials, cfg)
    if not token:
        return None
    try:
        return resolve_session(token, cfg)
    except Unauthenticated:
        return None


def get_current_account(
    identity: SessionIdentity = Depends(get_session),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    """Authenticate and load the current account (expiry enforced)."""
    with connect(cfg.DB_DSN) as conn:
        row = get_account_by_id(conn, identity.account_id)
        if row is None:
            raise Unauthenticated("account_not_found")
        return enforce_expiry(conn, row)


def get_optional_account(
    identity: Optional[SessionIdentity] = Depends(get_optional_session),
    cfg: Config = Depends(get_cfg),
) -> Optional[Dict[str, Any]]:
    if identity is None:
        return None
    with connect(cfg.DB_DSN) as conn:
        row = get_account_by_id(conn, identity.account_id)
        if row is None:
            return None
        return enforce_expiry(conn, row)


def _check_csrf(request: Request, credentials: Optional[HTTPAuthorizationCredentials], cfg: Config) -> Dict[str, Any]:
    identity = resolve_session(_extract_token(request, credentials, cfg), cfg)

    with connect(cfg.DB_DSN) as conn:
        account = validate_csrf(
            conn,
            account_id=identity.account_id,
            presented=request.headers.get(cfg.CSRF_HEADER_NAME),
        )
        return enforce_expiry(conn, account)


def csrf_guard(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    cfg: Config = Depends(get_cfg),
) -> None:
    """App-wide dependency: every unsafe method outside the auth bootstrap paths needs the token.

    Routes get this whether or not they declare require_csrf themselves.
    """
    if not requires_csrf(request.method, request.url.path):
        return
    request.state.csrf_account = _check_csrf(request, credentials, cfg)


def require_csrf(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    """Guard for state-changing requests: session, then X-CSRF-Token against the stored secret.

    Returns the freshly loaded account (expiry enforced). Reuses the result of
    csrf_guard when it already ran for this request.
    """
    account = getattr(request.state, "csrf_account", None)
    if account is not None:
        return account
    return _check_csrf(request, credentials, cfg)


def require_admin(account: Dict[str, Any] = Depends(get_current_account)) -> Dict[str, Any]:
    if not is_admin(account):
        raise AdminOnly()
    return account


def require_admin_mutation(account: Dict[str, Any] = Depends(require_csrf)) -> Dict[str, Any]:
    if not is_admin(account):
        raise AdminOnly()
    return account
