"""Account administration, manual payments and the plan catalogue."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from heptabet_platform.access.tiers import PLANS, is_admin
from heptabet_platform.auth import get_current_account, require_admin, require_admin_mutation, require_csrf
from heptabet_platform.auth.crud import delete_account, list_accounts, public_account, update_subscription
from heptabet_platform.auth.deps import get_cfg
from heptabet_platform.auth.errors import NotFound, ValidationFailed
from heptabet_platform.config import Config
from heptabet_platform.content import transactions
from heptabet_platform.db import connect


def _debug(msg: str) -> None:
    print(f"[admin] {msg}")


router = APIRouter(tags=["admin"])


@router.get("/plans")
def list_plans() -> List[Dict[str, Any]]:
    return PLANS


# -----------------------------
# Users (admin)
# -----------------------------


class SubscriptionUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subscription: str
    subscription_expiry_date: Optional[str] = Field(default=None, alias="subscriptionExpiryDate")


@router.get("/users")
def list_users(
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_cfg),
) -> List[Dict[str, Any]]:
    with connect(cfg.DB_DSN) as conn:
        rows = list_accounts(conn)
    return [public_account(r) for r in rows]


@router.put("/users/{account_id}/subscription")
def set_user_subscription(
    account_id: int,
    payload: SubscriptionUpdate,
    admin: Dict[str, Any] = Depends(require_admin_mutation),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            row = update_subscription(
                conn,
                account_id=account_id,
                subscription=payload.subscription,
                subscription_expiry=payload.subscription_expiry_date,
            )
        except ValueError as e:
            if str(e) == "account_not_found":
                raise NotFound("account_not_found")
            raise ValidationFailed(str(e))
    _debug(
        f"subscription set account_id={account_id} tier={row['subscription']} "
        f"expiry={row.get('subscription_expiry')} by admin_id={admin['account_id']}"
    )
    return public_account(row)


@router.delete("/users/{account_id}")
def remove_user(
    account_id: int,
    admin: Dict[str, Any] = Depends(require_admin_mutation),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    if int(account_id) == int(admin["account_id"]):
        raise HTTPException(status_code=400, detail="cannot_delete_self")
    with connect(cfg.DB_DSN) as conn:
        if not delete_account(conn, account_id):
            raise NotFound("account_not_found")
    _debug(f"account deleted account_id={account_id} by admin_id={admin['account_id']}")
    return {"ok": True}


# -----------------------------
# Transactions
# -----------------------------


class TransactionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan_id: str = Field(alias="planId")
    method: str
    amount: Optional[str] = None
    receipt_url: Optional[str] = Field(default=None, alias="receiptUrl")


class TransactionDecision(BaseModel):
    status: str  # Approved|Rejected


@router.post("/transactions")
def submit_transaction(
    payload: TransactionCreate,
    account: Dict[str, Any] = Depends(require_csrf),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            tx = transactions.create_transaction(
                conn,
                account_id=int(account["account_id"]),
                plan_id=payload.plan_id,
                method=payload.method,
                amount=payload.amount,
                receipt_url=payload.receipt_url,
            )
        except ValueError as e:
            raise ValidationFailed(str(e))
    return transactions.public_transaction(tx)


@router.get("/transactions")
def list_transactions(
    account: Dict[str, Any] = Depends(get_current_account),
    cfg: Config = Depends(get_cfg),
) -> List[Dict[str, Any]]:
    with connect(cfg.DB_DSN) as conn:
        if is_admin(account):
            rows = transactions.list_transactions(conn)
        else:
            rows = transactions.list_transactions(conn, account_id=int(account["account_id"]))
    return [transactions.public_transaction(r) for r in rows]


@router.put("/transactions/{transaction_id}")
def decide_transaction(
    transaction_id: int,
    payload: TransactionDecision,
    _admin: Dict[str, Any] = Depends(require_admin_mutation),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            tx = transactions.decide_transaction(
                conn,
                transaction_id,
                status=payload.status,
                period_days=int(cfg.SUBSCRIPTION_PERIOD_DAYS),
            )
        except ValueError as e:
            code = str(e)
            if code == "transaction_not_found":
                raise NotFound(code)
            if code == "already_decided":
                raise HTTPException(status_code=409, detail=code)
            raise ValidationFailed(code)
    return transactions.public_transaction(tx)
