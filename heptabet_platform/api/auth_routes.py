"""FastAPI routes for session auth and password recovery.

Prefix: /auth

None of these endpoints require X-CSRF-Token: they either precede possession of
a token (register, login, recovery) or only clear state (logout).
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, ConfigDict, Field

from heptabet_platform.auth import get_current_account
from heptabet_platform.auth import recovery, session
from heptabet_platform.auth.crud import public_account
from heptabet_platform.auth.csrf import current_csrf_secret
from heptabet_platform.auth.deps import get_cfg, get_mailer
from heptabet_platform.config import Config
from heptabet_platform.db import connect


router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    email: str
    password: str
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")


class LoginRequest(BaseModel):
    email: str
    password: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    otp: str
    new_password: str = Field(alias="newPassword")


def _auth_response(response: Response, result: session.AuthResult, cfg: Config) -> Dict[str, Any]:
    session.set_session_cookie(response, token=result.session_token, cfg=cfg)
    return {"account": public_account(result.account), "csrfToken": result.csrf_token}


@router.post("/register")
def auth_register(payload: RegisterRequest, response: Response, cfg: Config = Depends(get_cfg)) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        result = session.register(
            conn,
            cfg,
            name=payload.name,
            email=payload.email,
            password=payload.password,
            phone_number=payload.phone_number,
        )
    # Cookie only after the account row is committed.
    return _auth_response(response, result, cfg)


@router.post("/login")
def auth_login(payload: LoginRequest, response: Response, cfg: Config = Depends(get_cfg)) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        result = session.login(conn, cfg, email=payload.email, password=payload.password)
    return _auth_response(response, result, cfg)


@router.post("/logout")
def auth_logout(response: Response, cfg: Config = Depends(get_cfg)) -> Dict[str, Any]:
    """Clear the session cookie. Stateless tokens are not revoked server-side."""
    session.clear_session_cookie(response, cfg)
    return {"ok": True}


@router.get("/me")
def auth_me(
    account: Dict[str, Any] = Depends(get_current_account),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        csrf = current_csrf_secret(conn, account)
    return {"account": public_account(account), "csrfToken": csrf}


@router.post("/forgot-password")
def auth_forgot_password(
    payload: ForgotPasswordRequest,
    cfg: Config = Depends(get_cfg),
    mailer: Any = Depends(get_mailer),
) -> Dict[str, Any]:
    message = recovery.request_reset(cfg, mailer, email=payload.email)
    return {"message": message}


@router.post("/reset-password")
def auth_reset_password(payload: ResetPasswordRequest, cfg: Config = Depends(get_cfg)) -> Dict[str, Any]:
    recovery.redeem_reset(cfg, email=payload.email, code=payload.otp, new_password=payload.new_password)
    return {"message": "Password has been reset. You can now log in."}
