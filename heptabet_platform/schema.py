"""Database schema for the Heptabet platform.

SQLite is the default store; Postgres is supported via psycopg2.

We intentionally keep timestamps as ISO-8601 TEXT (UTC, with 'Z') for portability and to
avoid timezone surprises across engines. ISO strings sort lexicographically in time order.

NOTE: The Postgres schema is generated from the SQLite schema with a small set of
transformations (types + autoincrement).
"""

from __future__ import annotations

import re


SCHEMA_SQLITE = r"""
PRAGMA foreign_keys = ON;

-- Accounts / Auth
-- Sessions are stateless JWTs. Only password hashes and the per-account
-- CSRF secret are stored here.
CREATE TABLE IF NOT EXISTS accounts (
    account_id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    phone_number TEXT,
    password_hash TEXT NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('admin','user')),
    subscription TEXT NOT NULL DEFAULT 'Free',
    subscription_expiry TEXT,
    csrf_secret TEXT,

    -- Password recovery (single outstanding code per account)
    reset_code TEXT,
    reset_code_expiry TEXT,
    reset_code_requested_at TEXT,
    reset_code_attempts INTEGER NOT NULL DEFAULT 0,

    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    last_login_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_accounts_role ON accounts (role);
CREATE INDEX IF NOT EXISTS idx_accounts_subscription ON accounts (subscription, subscription_expiry);

CREATE TABLE IF NOT EXISTS predictions (
    prediction_id INTEGER PRIMARY KEY AUTOINCREMENT,
    league TEXT NOT NULL,
    home_team TEXT NOT NULL,
    away_team TEXT NOT NULL,
    match_date TEXT NOT NULL,
    match_time TEXT,
    tip TEXT NOT NULL,
    odds REAL,
    confidence INTEGER,
    min_tier TEXT NOT NULL DEFAULT 'Free',
    status TEXT NOT NULL DEFAULT 'Scheduled',
    result TEXT NOT NULL DEFAULT 'Pending',
    tipster_id TEXT,
    analysis TEXT,
    score TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_predictions_date ON predictions (match_date, match_time);

CREATE TABLE IF NOT EXISTS blog_posts (
    post_id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    excerpt TEXT,
    content TEXT NOT NULL,
    author TEXT,
    post_date TEXT NOT NULL,
    image_url TEXT,
    tier TEXT NOT NULL DEFAULT 'Free',
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_blog_posts_date ON blog_posts (post_date);

-- Manual payments (bank transfer / USDT) awaiting admin approval
CREATE TABLE IF NOT EXISTS transactions (
    transaction_id INTEGER PRIMARY KEY AUTOINCREMENT,
    account_id INTEGER NOT NULL,
    plan_id TEXT NOT NULL,
    amount TEXT,
    method TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'Pending' CHECK (status IN ('Pending','Approved','Rejected')),
    receipt_url TEXT,
    created_at TEXT NOT NULL,
    decided_at TEXT,
    FOREIGN KEY (account_id) REFERENCES accounts(account_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_transactions_account ON transactions (account_id, created_at);
CREATE INDEX IF NOT EXISTS idx_transactions_status ON transactions (status, created_at);
"""


def _sqlite_to_postgres(ddl: str) -> str:
    # Remove SQLite pragmas
    lines: list[str] = []
    for line in ddl.splitlines():
        if line.strip().upper().startswith("PRAGMA "):
            continue
        lines.append(line)
    out = "\n".join(lines)

    # Types
    out = re.sub(r"\bREAL\b", "DOUBLE PRECISION", out)

    # AUTOINCREMENT primary keys
    out = re.sub(
        r"INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT",
        "BIGSERIAL PRIMARY KEY",
        out,
        flags=re.IGNORECASE,
    )
    out = re.sub(r"\bAUTOINCREMENT\b", "", out, flags=re.IGNORECASE)

    return out


SCHEMA_POSTGRES = _sqlite_to_postgres(SCHEMA_SQLITE)


def get_schema_sql(dialect: str) -> str:
    d = (dialect or "").lower()
    if d.startswith("post"):
        return SCHEMA_POSTGRES
    return SCHEMA_SQLITE
