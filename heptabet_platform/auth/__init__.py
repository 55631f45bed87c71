"""Authentication / authorization helpers.

- Accounts table (email/password hash + role + subscription tier)
- JWT sessions, read from an httpOnly `token` cookie first and from
  `Authorization: Bearer <token>` only as a fallback for scripts / API clients
- A per-account CSRF secret, returned in auth response bodies and required
  in `X-CSRF-Token` on every state-changing request outside /auth

Session resolution never reads the database. Dependencies that need the
current role or tier re-fetch the account row.
"""

from .deps import (
    csrf_guard,
    get_current_account,
    get_optional_account,
    require_admin,
    require_admin_mutation,
    require_csrf,
)

__all__ = [
    "csrf_guard",
    "get_current_account",
    "get_optional_account",
    "require_admin",
    "require_admin_mutation",
    "require_csrf",
]
