from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from heptabet_platform import __version__
from heptabet_platform.auth import csrf_guard
from heptabet_platform.auth.errors import PlatformError
from heptabet_platform.config import Config, load_config
from heptabet_platform.db import init_db
from heptabet_platform.notify.mailer import build_mailer
from heptabet_platform.util.time import utcnow_iso

from .admin_routes import router as admin_router
from .auth_routes import router as auth_router
from .content_routes import router as content_router


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


def create_app(cfg: Optional[Config] = None, mailer: Any = None) -> FastAPI:
    """Build the API app. Tests pass their own Config and a recording mailer."""
    cfg = cfg or load_config()

    # csrf_guard applies to every route, including ones registered later.
    app = FastAPI(title="Heptabet Tips Platform", version=__version__, dependencies=[Depends(csrf_guard)])
    # Make config + mailer available to route dependencies.
    app.state.cfg = cfg
    app.state.mailer = mailer or build_mailer(cfg)

    # CORS is mainly needed for local development (Vite on :5173 -> API on :8000).
    # Credentialed, so origins must be explicit.
    _cors_origins = [o.strip() for o in (cfg.CORS_ALLOW_ORIGINS or "").split(",") if o.strip()]
    if _cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=_cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(PlatformError)
    async def _platform_error(request: Request, exc: PlatformError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        # Store failures and bugs: log server-side, never echo details.
        _debug(f"unhandled error on {request.method} {request.url.path}: {exc.__class__.__name__}: {exc}")
        return JSONResponse(status_code=500, content={"detail": "internal_error"})

    @app.on_event("startup")
    def _on_startup() -> None:
        # Ensure schema exists.
        init_db(cfg.DB_DSN)
        _debug(f"started env={cfg.APP_ENV} secure_cookies={cfg.AUTH_COOKIE_SECURE}")

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok", "timestamp": utcnow_iso()}

    app.include_router(auth_router)
    app.include_router(content_router)
    app.include_router(admin_router)
    return app


app = create_app()
