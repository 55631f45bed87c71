"""Create an account directly in the DB (operator-side).

Usage:
  python scripts/create_user.py --name Alice --email alice@example.com --password '...'
  python scripts/create_user.py --name Ops --email ops@example.com --password '...' --role admin \
      --subscription Premium --days 365

This is the only way besides ADMIN_EMAIL registration to obtain role=admin.
"""

import argparse
import sys
from datetime import timedelta
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from heptabet_platform.access.tiers import Tier
from heptabet_platform.auth.crud import create_account, public_account, update_subscription
from heptabet_platform.config import load_config
from heptabet_platform.db import connect, init_db
from heptabet_platform.util.time import to_iso, utcnow


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--name", required=True)
    ap.add_argument("--email", required=True)
    ap.add_argument("--password", required=True)
    ap.add_argument("--phone", default=None)
    ap.add_argument("--role", choices=["user", "admin"], default="user")
    ap.add_argument("--subscription", choices=[t.value for t in Tier], default=Tier.FREE.value)
    ap.add_argument("--days", type=int, default=None, help="paid tier length; omit for no expiry")
    args = ap.parse_args()

    cfg = load_config()
    if len(args.password) < int(cfg.PASSWORD_MIN_LENGTH):
        ap.error(f"password must be at least {cfg.PASSWORD_MIN_LENGTH} characters")

    init_db(cfg.DB_DSN)

    with connect(cfg.DB_DSN) as conn:
        try:
            row = create_account(
                conn,
                name=args.name,
                email=args.email,
                password=args.password,
                phone_number=args.phone,
                role=args.role,
            )
        except ValueError as e:
            ap.error(str(e))
        if args.subscription != Tier.FREE.value:
            expiry = to_iso(utcnow() + timedelta(days=args.days)) if args.days else None
            row = update_subscription(
                conn,
                account_id=int(row["account_id"]),
                subscription=args.subscription,
                subscription_expiry=expiry,
            )

    print("Created account:")
    print(public_account(row))


if __name__ == "__main__":
    main()
