import os
from dataclasses import dataclass
from typing import Optional

# Optional: load a local .env file if present.
try:
    from dotenv import load_dotenv

    load_dotenv()
except Exception:
    # If python-dotenv isn't installed or .env isn't present, that's fine.
    pass


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    """Parse a boolean environment variable.

    Returns:
      - True/False if the env var is set to a recognizable value
      - default if unset or unrecognized

    Accepted truthy: 1, true, yes, y, on
    Accepted falsy:  0, false, no, n, off
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


_APP_ENV = (os.environ.get("APP_ENV") or "production").strip().lower()


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    IMPORTANT: Provide secrets via environment variables or a .env file.
    Do not hardcode secrets in source code.
    """

    # -----------------
    # Core
    # -----------------
    # Preferred: set HEPTABET_DATABASE_URL (or DATABASE_URL) to use Postgres.
    # Fallback: HEPTABET_DB_PATH for SQLite.
    DB_DSN: str = (
        os.environ.get("HEPTABET_DATABASE_URL")
        or os.environ.get("DATABASE_URL")
        or os.environ.get("HEPTABET_DB_PATH", "./heptabet.sqlite")
    )

    # development | production. Only "development" relaxes the Secure cookie flag.
    APP_ENV: str = _APP_ENV

    # -----------------
    # Auth (JWT session cookie)
    # -----------------
    # NOTE: In dev, this defaults to a fixed string so you can get started.
    # In production, you MUST set AUTH_JWT_SECRET to a strong random value.
    AUTH_JWT_SECRET: str = os.environ.get("AUTH_JWT_SECRET", "dev_change_me")
    AUTH_TOKEN_EXPIRE_MINUTES: int = int(os.environ.get("AUTH_TOKEN_EXPIRE_MINUTES", "10080"))  # 7 days

    AUTH_COOKIE_NAME: str = os.environ.get("AUTH_COOKIE_NAME", "token")
    AUTH_COOKIE_DOMAIN: str | None = (os.environ.get("AUTH_COOKIE_DOMAIN") or "").strip() or None
    AUTH_COOKIE_PATH: str = os.environ.get("AUTH_COOKIE_PATH", "/")

    # If AUTH_COOKIE_SECURE is unset, cookies are Secure everywhere except APP_ENV=development.
    AUTH_COOKIE_SECURE: bool = (
        _env_bool("AUTH_COOKIE_SECURE", None)
        if _env_bool("AUTH_COOKIE_SECURE", None) is not None
        else _APP_ENV != "development"
    )

    CSRF_HEADER_NAME: str = os.environ.get("CSRF_HEADER_NAME", "X-CSRF-Token")

    # Registering with this address yields role=admin. Nothing else grants admin over HTTP.
    ADMIN_EMAIL: str = (os.environ.get("ADMIN_EMAIL") or "admin@heptabet.com").strip().lower()

    PASSWORD_MIN_LENGTH: int = int(os.environ.get("PASSWORD_MIN_LENGTH", "8"))

    # -----------------
    # Password recovery
    # -----------------
    RESET_CODE_TTL_MINUTES: int = int(os.environ.get("RESET_CODE_TTL_MINUTES", "15"))
    RESET_REQUEST_COOLDOWN_SECONDS: int = int(os.environ.get("RESET_REQUEST_COOLDOWN_SECONDS", "60"))
    RESET_CODE_MAX_ATTEMPTS: int = int(os.environ.get("RESET_CODE_MAX_ATTEMPTS", "5"))

    # -----------------
    # Mail
    # -----------------
    # console: print messages (local dev). http: POST to a transactional mail API.
    MAIL_BACKEND: str = (os.environ.get("MAIL_BACKEND") or "console").strip().lower()
    MAIL_API_URL: str | None = os.environ.get("MAIL_API_URL")
    MAIL_API_KEY: str | None = os.environ.get("MAIL_API_KEY")
    MAIL_FROM: str = os.environ.get("MAIL_FROM", "Heptabet <no-reply@heptabet.com>")
    MAIL_TIMEOUT_SECONDS: float = float(os.environ.get("MAIL_TIMEOUT_SECONDS", "5"))

    # -----------------
    # Gemini (AI analysis proxy)
    # -----------------
    GEMINI_API_KEY: str | None = os.environ.get("GEMINI_API_KEY")
    GEMINI_MODEL: str = os.environ.get("GEMINI_MODEL", "gemini-2.0-flash")
    GEMINI_BASE_URL: str = os.environ.get(
        "GEMINI_BASE_URL",
        "https://generativelanguage.googleapis.com/v1beta",
    )
    AI_TIMEOUT_SECONDS: int = int(os.environ.get("AI_TIMEOUT_SECONDS", "30"))

    # -----------------
    # Billing (manual payments)
    # -----------------
    # Approving a payment grants the plan's tier for this many days.
    SUBSCRIPTION_PERIOD_DAYS: int = int(os.environ.get("SUBSCRIPTION_PERIOD_DAYS", "30"))

    # -----------------
    # CORS (development)
    # -----------------
    # Credentialed CORS: the SPA on :5173 calls the API on :8000 with cookies.
    CORS_ALLOW_ORIGINS: str = os.environ.get(
        "CORS_ALLOW_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000",
    )


def load_config() -> Config:
    return Config()
