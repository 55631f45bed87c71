"""Error taxonomy shared by the auth core and the content routes.

Each error carries the HTTP status and a stable snake_case `detail` code.
The API layer renders them as ``{"detail": <code>}``.
"""

from __future__ import annotations

from typing import Dict, Optional


class PlatformError(Exception):
    status_code: int = 400
    detail: str = "bad_request"

    def __init__(self, detail: Optional[str] = None):
        if detail:
            self.detail = detail
        super().__init__(self.detail)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None


class ValidationFailed(PlatformError):
    status_code = 400
    detail = "validation_failed"


class NotFound(PlatformError):
    status_code = 404
    detail = "not_found"


class InvalidCredentials(PlatformError):
    """Same error for unknown email and wrong password."""

    status_code = 401
    detail = "invalid_credentials"

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"WWW-Authenticate": "Bearer"}


class Unauthenticated(PlatformError):
    status_code = 401
    detail = "not_authenticated"

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"WWW-Authenticate": "Bearer"}


class DuplicateAccount(PlatformError):
    status_code = 400
    detail = "account_exists"


class MissingCsrfToken(PlatformError):
    status_code = 403
    detail = "missing_csrf_token"


class InvalidCsrfToken(PlatformError):
    status_code = 403
    detail = "invalid_csrf_token"


class AdminOnly(PlatformError):
    status_code = 403
    detail = "admin_required"


class TierRequired(PlatformError):
    status_code = 403
    detail = "premium_required"


class TooManyRequests(PlatformError):
    status_code = 429
    detail = "too_many_requests"

    def __init__(self, retry_after_seconds: int = 60):
        super().__init__()
        self.retry_after_seconds = max(1, int(retry_after_seconds))

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"Retry-After": str(self.retry_after_seconds)}


class InvalidOrExpiredCode(PlatformError):
    """Wrong code, expired code and no code at all are indistinguishable."""

    status_code = 400
    detail = "invalid_or_expired_code"


class EmailDeliveryFailed(PlatformError):
    """Transient: the caller may retry the recovery request."""

    status_code = 500
    detail = "email_delivery_failed"
