from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.core.config import get_settings
from app.core.errors import register_exception_handlers
from app.core.limiter import limiter
from app.core.middleware import (
    CORS_ALLOW_HEADERS,
    PreflightMiddleware,
    RequestIdMiddleware,
    SecurityHeadersMiddleware,
)
from app.db.session import dispose_engine
from app.figma.router import router as figma_router
from app.prototypes.router import router as prototypes_router


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    await dispose_engine()


def create_app() -> FastAPI:
    settings = get_settings()

    _app = FastAPI(
        title="Prototype Hub API",
        description="Upload, inspect and deploy front-end prototypes",
        version="0.1.0",
        lifespan=lifespan,
    )

    # ---------------------------------------------------------------------------
    # Rate limiter state: SlowAPI reads limiter from app.state
    # ---------------------------------------------------------------------------
    _app.state.limiter = limiter
    _app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    register_exception_handlers(_app)

    # ---------------------------------------------------------------------------
    # Middleware (registered innermost → outermost)
    # ---------------------------------------------------------------------------

    _app.add_middleware(RequestIdMiddleware)
    _app.add_middleware(SecurityHeadersMiddleware)
    _app.add_middleware(SlowAPIMiddleware)
    _app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=CORS_ALLOW_HEADERS,
    )
    # Outermost, so every OPTIONS request is answered before anything else.
    _app.add_middleware(PreflightMiddleware)

    # ---------------------------------------------------------------------------
    # Sentry, initialised here so it captures startup errors too
    # ---------------------------------------------------------------------------
    from app.core.sentry import init_sentry

    init_sentry(
        dsn=settings.sentry_dsn,
        environment="development" if settings.debug else "production",
    )

    # ---------------------------------------------------------------------------
    # Logging: configure structlog before any routers log anything
    # ---------------------------------------------------------------------------
    from app.core.logging import configure_structlog

    configure_structlog(debug=settings.debug)

    # ---------------------------------------------------------------------------
    # Routes
    # ---------------------------------------------------------------------------

    @_app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    _app.include_router(prototypes_router)
    _app.include_router(figma_router)

    return _app


app = create_app()
