"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from depositflow.config import get_settings
from depositflow.deposits.errors import DepositError, DepositIntegrityError
from depositflow.ledger.database import close_db, init_db
from depositflow.notifications.dispatcher import close_dispatcher
from depositflow.utils.locks import LockTimeoutError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    await init_db()
    yield
    # Shutdown
    await close_dispatcher()
    await close_db()


async def deposit_error_handler(request: Request, exc: DepositError) -> JSONResponse:
    """Map engine errors to responses.

    Validation errors carry their structured detail back to the caller.
    Integrity errors are logged with full context and answered opaquely.
    """
    if isinstance(exc, DepositIntegrityError):
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code}: {exc}")
    return JSONResponse(status_code=exc.http_status, content={"detail": exc.to_detail()})


async def lock_timeout_handler(request: Request, exc: LockTimeoutError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=409,
        content={"detail": {"error": "busy", "message": "The deposit is being processed, retry shortly"}},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Depositflow API",
        description="Crypto deposit intake and confirmation reconciliation",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(DepositError, deposit_error_handler)
    app.add_exception_handler(LockTimeoutError, lock_timeout_handler)

    # Register routes
    from depositflow.api.routers import admin, webhook
    from depositflow.api.routes import deposits, health

    app.include_router(health.router, tags=["Health"])
    app.include_router(deposits.router, prefix="/api/v1", tags=["Deposits"])
    app.include_router(webhook.router)
    app.include_router(admin.router)

    return app


# Default app instance
app = create_app()
