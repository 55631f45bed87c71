"""Password recovery with one-time numeric codes.

One outstanding code per account, stored on the account row together with its
expiry, the time it was requested and a count of wrong guesses. A new request
overwrites the previous code (last write wins under concurrency, which is fine:
only the latest code should work).
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from heptabet_platform.config import Config
from heptabet_platform.db import connect
from heptabet_platform.notify.mailer import MailError
from heptabet_platform.util.time import parse_iso, to_iso, utcnow

from .crud import consume_reset_code, get_account_by_email, record_reset_miss, withdraw_reset_code
from .errors import EmailDeliveryFailed, InvalidOrExpiredCode, TooManyRequests, ValidationFailed
from .security import constant_time_equals, new_reset_code


GENERIC_RESET_MESSAGE = "If an account exists for that email, a reset code has been sent."


def _debug(msg: str) -> None:
    print(f"[recovery] {msg}")


def _last_requested_at(account: Dict[str, Any], cfg: Config) -> Optional[datetime]:
    ts = parse_iso(account.get("reset_code_requested_at"))
    if ts is not None:
        return ts
    # Rows written before reset_code_requested_at existed only have the expiry.
    expiry = parse_iso(account.get("reset_code_expiry"))
    if expiry is not None:
        return expiry - timedelta(minutes=int(cfg.RESET_CODE_TTL_MINUTES))
    return None


def _check_cooldown(account: Dict[str, Any], cfg: Config, now: datetime) -> None:
    last = _last_requested_at(account, cfg)
    if last is None:
        return
    cooldown = int(cfg.RESET_REQUEST_COOLDOWN_SECONDS)
    elapsed = (now - last).total_seconds()
    if elapsed < cooldown:
        raise TooManyRequests(retry_after_seconds=math.ceil(cooldown - max(0.0, elapsed)))


def request_reset(cfg: Config, mailer: Any, *, email: str, now: Optional[datetime] = None) -> str:
    """Issue and email a reset code. Returns the generic message shown to the caller.

    Unknown emails get the same message and no code. If the email cannot be
    delivered the code is withdrawn (so the cooldown does not block a retry)
    and EmailDeliveryFailed is raised.
    """
    now = now or utcnow()

    with connect(cfg.DB_DSN) as conn:
        account = get_account_by_email(conn, email)
        if account is None:
            _debug("reset requested for unknown email")
            return GENERIC_RESET_MESSAGE

        _check_cooldown(account, cfg, now)

        code = new_reset_code()
        expiry = now + timedelta(minutes=int(cfg.RESET_CODE_TTL_MINUTES))
        conn.execute(
            """
            UPDATE accounts
            SET reset_code=?, reset_code_expiry=?, reset_code_requested_at=?, reset_code_attempts=0, updated_at=?
            WHERE account_id=?
            """,
            (code, to_iso(expiry), to_iso(now), to_iso(now), int(account["account_id"])),
        )

    # Sent after commit so the row lock is not held across the mail call.
    try:
        mailer.send(
            to=str(account["email"]),
            subject="Your Heptabet password reset code",
            text=(
                f"Hello {account.get('name') or ''},\n\n"
                f"Your password reset code is {code}. It expires in {int(cfg.RESET_CODE_TTL_MINUTES)} minutes.\n\n"
                "If you did not request a password reset you can ignore this email."
            ),
        )
    except MailError as e:
        # Only withdraw our own code; a concurrent newer request keeps its code.
        with connect(cfg.DB_DSN) as conn:
            conn.execute(
                """
                UPDATE accounts
                SET reset_code=NULL, reset_code_expiry=NULL, reset_code_requested_at=NULL,
                    reset_code_attempts=0, updated_at=?
                WHERE account_id=? AND reset_code=?
                """,
                (to_iso(now), int(account["account_id"]), code),
            )
        _debug(f"reset email failed account_id={account['account_id']}: {e.message}")
        raise EmailDeliveryFailed()

    _debug(f"reset code issued account_id={account['account_id']}")
    return GENERIC_RESET_MESSAGE


def redeem_reset(
    cfg: Config,
    *,
    email: str,
    code: str,
    new_password: str,
    now: Optional[datetime] = None,
) -> None:
    """Set a new password if `code` is the account's live code. Single use.

    Wrong code, expired code, no code and unknown email all raise InvalidOrExpiredCode.
    After RESET_CODE_MAX_ATTEMPTS wrong guesses the code is withdrawn.
    """
    if len(new_password or "") < int(cfg.PASSWORD_MIN_LENGTH):
        raise ValidationFailed("password_too_short")

    now = now or utcnow()
    presented = (code or "").strip()
    accepted = False

    with connect(cfg.DB_DSN) as conn:
        account = get_account_by_email(conn, email)
        if account is None:
            raise InvalidOrExpiredCode()

        account_id = int(account["account_id"])
        stored = account.get("reset_code")
        expiry = parse_iso(account.get("reset_code_expiry"))
        if not stored or expiry is None or expiry < now:
            raise InvalidOrExpiredCode()

        if constant_time_equals(presented, str(stored)):
            # The read above may be stale; only the guarded update decides.
            accepted = consume_reset_code(
                conn, account_id=account_id, code=str(stored), password=new_password, now_iso=to_iso(now)
            )
        else:
            attempts = record_reset_miss(conn, account_id=account_id, code=str(stored))
            if attempts is not None and attempts >= int(cfg.RESET_CODE_MAX_ATTEMPTS):
                if withdraw_reset_code(conn, account_id=account_id, code=str(stored), now_iso=to_iso(now)):
                    _debug(f"reset code withdrawn after {attempts} attempts account_id={account_id}")

    if not accepted:
        raise InvalidOrExpiredCode()
    _debug(f"password reset account_id={account['account_id']}")
