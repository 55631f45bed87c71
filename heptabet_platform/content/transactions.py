"""Manual payments (bank transfer / USDT).

A user submits a payment claim for a plan; an admin approves or rejects it.
Approval grants the plan's tier for SUBSCRIPTION_PERIOD_DAYS from the moment of
approval. A transaction is decided at most once.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from heptabet_platform.access.tiers import PLANS, plan_tier
from heptabet_platform.auth.crud import update_subscription
from heptabet_platform.util.time import to_iso, utcnow, utcnow_iso


METHODS = ("Bank Transfer", "USDT")
STATUSES = ("Pending", "Approved", "Rejected")


def _debug(msg: str) -> None:
    print(f"[transactions] {msg}")


def public_transaction(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    return {
        "id": d.get("transaction_id"),
        "userId": d.get("account_id"),
        "userEmail": d.get("email"),
        "planId": d.get("plan_id"),
        "amount": d.get("amount"),
        "method": d.get("method"),
        "status": d.get("status"),
        "receiptUrl": d.get("receipt_url"),
        "date": d.get("created_at"),
        "decidedAt": d.get("decided_at"),
    }


def _plan_price(plan_id: str) -> Optional[str]:
    for p in PLANS:
        if p["id"] == plan_id:
            return str(p["price"])
    return None


def get_transaction(conn: Any, transaction_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        """
        SELECT t.*, a.email AS email
        FROM transactions t
        LEFT JOIN accounts a ON a.account_id = t.account_id
        WHERE t.transaction_id=?
        """,
        (int(transaction_id),),
    ).fetchone()
    return None if row is None else dict(row)


def list_transactions(conn: Any, *, account_id: Optional[int] = None) -> List[Dict[str, Any]]:
    """All transactions (account_id=None) or one account's, newest first."""
    sql = """
        SELECT t.*, a.email AS email
        FROM transactions t
        LEFT JOIN accounts a ON a.account_id = t.account_id
    """
    params: tuple = ()
    if account_id is not None:
        sql += " WHERE t.account_id=?"
        params = (int(account_id),)
    sql += " ORDER BY t.created_at DESC, t.transaction_id DESC"
    return [dict(r) for r in conn.execute(sql, params).fetchall()]


def create_transaction(
    conn: Any,
    *,
    account_id: int,
    plan_id: str,
    method: str,
    amount: Optional[str] = None,
    receipt_url: Optional[str] = None,
) -> Dict[str, Any]:
    pid = (plan_id or "").strip().lower()
    if plan_tier(pid) is None or _plan_price(pid) is None:
        raise ValueError("invalid_plan")
    if method not in METHODS:
        raise ValueError("invalid_method")

    row = conn.execute(
        """
        INSERT INTO transactions (account_id, plan_id, amount, method, status, receipt_url, created_at)
        VALUES (?, ?, ?, ?, 'Pending', ?, ?)
        RETURNING transaction_id
        """,
        (int(account_id), pid, (amount or "").strip() or _plan_price(pid), method, receipt_url, utcnow_iso()),
    ).fetchall()[0]
    tx = get_transaction(conn, int(row["transaction_id"]))
    assert tx is not None
    _debug(f"submitted transaction_id={tx['transaction_id']} account_id={account_id} plan={pid}")
    return tx


def decide_transaction(
    conn: Any,
    transaction_id: int,
    *,
    status: str,
    period_days: int,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Approve or reject a Pending transaction.

    Raises ValueError: "invalid_status", "transaction_not_found", "already_decided".
    """
    if status not in ("Approved", "Rejected"):
        raise ValueError("invalid_status")
    tx = get_transaction(conn, transaction_id)
    if tx is None:
        raise ValueError("transaction_not_found")
    if tx["status"] != "Pending":
        raise ValueError("already_decided")

    now = now or utcnow()
    # Guarded on status so two concurrent decisions cannot both apply.
    cur = conn.execute(
        "UPDATE transactions SET status=?, decided_at=? WHERE transaction_id=? AND status='Pending'",
        (status, to_iso(now), int(transaction_id)),
    )
    if cur.rowcount == 0:
        raise ValueError("already_decided")

    if status == "Approved":
        tier = plan_tier(str(tx["plan_id"]))
        if tier is None:
            raise ValueError("invalid_plan")
        expiry = now + timedelta(days=int(period_days))
        update_subscription(
            conn,
            account_id=int(tx["account_id"]),
            subscription=tier.value,
            subscription_expiry=to_iso(expiry),
        )
        _debug(f"approved transaction_id={transaction_id} tier={tier.value} until={to_iso(expiry)}")
    else:
        _debug(f"rejected transaction_id={transaction_id}")

    out = get_transaction(conn, transaction_id)
    assert out is not None
    return out
