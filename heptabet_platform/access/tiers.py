"""Subscription tiers and per-item content authorization.

Tier weights form a strict total order: Free=0 < Basic=1 < Standard=2 < Premium=3.

Expiry is enforced lazily: a lapsed paid account is downgraded to Free the next
time it is read through `enforce_expiry` (login, /auth/me, content listings).
There is no background sweep, so storage can stay stale for accounts nobody
touches. Access decisions also treat a lapsed expiry as Free in memory, so a
stale row never grants anything.

Everything here fails closed: an unknown tier string grants nothing.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from heptabet_platform.util.time import parse_iso, to_iso, utcnow


def _debug(msg: str) -> None:
    print(f"[tiers] {msg}")


class Tier(str, Enum):
    FREE = "Free"
    BASIC = "Basic"
    STANDARD = "Standard"
    PREMIUM = "Premium"

    @property
    def weight(self) -> int:
        return _WEIGHTS[self]


_WEIGHTS: Dict[Tier, int] = {
    Tier.FREE: 0,
    Tier.BASIC: 1,
    Tier.STANDARD: 2,
    Tier.PREMIUM: 3,
}

LOCKED_PLACEHOLDER = "Upgrade required to view"


PLANS: List[Dict[str, Any]] = [
    {
        "id": "basic",
        "name": "Basic",
        "price": "₦2,500/mo",
        "tier": Tier.BASIC.value,
        "features": ["Daily Free Tips", "Access to Basic Tier Predictions", "Basic Match Stats", "Email Support"],
        "recommended": False,
    },
    {
        "id": "standard",
        "name": "Standard",
        "price": "₦5,000/mo",
        "tier": Tier.STANDARD.value,
        "features": [
            "Everything in Basic",
            "Access to Standard & Basic Predictions",
            "Daily VIP Tips (3+)",
            "Confidence level indicators",
        ],
        "recommended": True,
    },
    {
        "id": "premium",
        "name": "Premium",
        "price": "₦10,000/mo",
        "tier": Tier.PREMIUM.value,
        "features": ["Everything in Standard", "Access to ALL Predictions", "AI-Powered Analysis"],
        "recommended": False,
    },
]


def parse_tier(value: Any) -> Optional[Tier]:
    """Map a stored/submitted tier string to a Tier (case-insensitive). None if unknown."""
    if isinstance(value, Tier):
        return value
    s = str(value or "").strip().lower()
    for t in Tier:
        if t.value.lower() == s:
            return t
    return None


def tier_weight(value: Any) -> Optional[int]:
    t = parse_tier(value)
    return None if t is None else t.weight


def plan_tier(plan_id: str) -> Optional[Tier]:
    """Tier unlocked by a plan id ("basic"|"standard"|"premium"), also accepting the tier name."""
    key = (plan_id or "").strip().lower()
    for p in PLANS:
        if p["id"] == key:
            return parse_tier(p["tier"])
    t = parse_tier(key)
    if t is None or t is Tier.FREE:
        return None
    return t


def is_admin(account: Optional[Dict[str, Any]]) -> bool:
    return bool(account) and account.get("role") == "admin"


def expiry_lapsed(account: Dict[str, Any], *, now: Optional[datetime] = None) -> bool:
    """True when a paid tier's expiry is in the past.

    A paid tier with no expiry never lapses. An unparseable expiry counts as lapsed.
    """
    tier = parse_tier(account.get("subscription"))
    if tier is Tier.FREE:
        return False
    raw = account.get("subscription_expiry")
    if not raw:
        return False
    expiry = parse_iso(raw)
    if expiry is None:
        return True
    return expiry < (now or utcnow())


def effective_tier(account: Optional[Dict[str, Any]], *, now: Optional[datetime] = None) -> Optional[Tier]:
    """Tier used for access decisions. Anonymous -> Free, lapsed -> Free, unknown -> None."""
    if not account:
        return Tier.FREE
    tier = parse_tier(account.get("subscription"))
    if tier is None:
        return None
    if tier is not Tier.FREE and expiry_lapsed(account, now=now):
        return Tier.FREE
    return tier


def enforce_expiry(conn: Any, account: Dict[str, Any], *, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Downgrade a lapsed paid account to Free, in storage and in the returned copy.

    The expiry timestamp is kept for audit. Unknown tier values are also reset to
    Free here (fail closed).
    """
    tier = parse_tier(account.get("subscription"))
    if tier is Tier.FREE:
        return account
    if tier is not None and not expiry_lapsed(account, now=now):
        return account

    ts = to_iso(now or utcnow())
    conn.execute(
        "UPDATE accounts SET subscription=?, updated_at=? WHERE account_id=?",
        (Tier.FREE.value, ts, int(account["account_id"])),
    )
    _debug(
        f"downgraded account_id={account['account_id']} from={account.get('subscription')!r} "
        f"expiry={account.get('subscription_expiry')}"
    )
    out = dict(account)
    out["subscription"] = Tier.FREE.value
    out["updated_at"] = ts
    return out


def can_view(
    account: Optional[Dict[str, Any]],
    *,
    min_tier: Any,
    settled: bool = False,
    now: Optional[datetime] = None,
) -> bool:
    """Whether `account` (None = anonymous) may see an item's gated field.

    Evaluated per item: admin, OR item is Free, OR the item is settled, OR the
    viewer's effective tier weight >= the item's weight.
    """
    if is_admin(account):
        return True
    required = parse_tier(min_tier)
    if required is None:
        return False
    if required is Tier.FREE:
        return True
    if settled:
        return True
    viewer = effective_tier(account, now=now)
    if viewer is None:
        return False
    return viewer.weight >= required.weight


def mask(
    item: Dict[str, Any],
    has_access: bool,
    *,
    field: str,
    also_hide: tuple[str, ...] = (),
) -> Dict[str, Any]:
    """Return a copy of a public item with its gated field replaced when access is denied.

    Only `field` (and `also_hide`) change; everything else stays visible.
    """
    out = dict(item)
    out["locked"] = not has_access
    if has_access:
        return out
    out[field] = LOCKED_PLACEHOLDER
    for name in also_hide:
        if name in out:
            out[name] = None
    return out
