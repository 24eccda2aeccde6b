"""
Storefront Orders API - Main Application Entry Point.

Creates orders from confirmed payments and lets the store owner manage them.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront.core.concurrency import KeyedLock
from storefront.core.config import settings
from storefront.core.database import close_db, init_db, is_db_available
from storefront.core.logging import configure_logging, get_logger
from storefront.middleware import (
    ErrorHandlerMiddleware,
    RequestIdMiddleware,
    register_exception_handlers,
)
from storefront.routers import (
    admin_router,
    health_router,
    orders_router,
    payments_router,
)
from storefront.services.storage import InMemoryStorage

# Configure logging before anything else
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info(
        "Starting application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Falls back to app.state.memory_storage when this fails
    await init_db()
    logger.info(
        "Storage tier selected",
        storage="database" if is_db_available() else "memory",
    )

    if settings.sentry_dsn:
        import sentry_sdk

        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.environment,
            traces_sample_rate=0.1,
        )
        logger.info("Sentry initialized")

    yield

    logger.info("Shutting down application")
    await close_db()


def create_app() -> FastAPI:
    """
    Application factory function.
    Creates and configures the FastAPI application.
    """
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Order creation after confirmed payments, and owner order management",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # Shared per process: counter and transaction locks, and the fallback tier
    app.state.counter_locks = KeyedLock()
    app.state.transaction_locks = KeyedLock()
    app.state.memory_storage = InMemoryStorage(app.state.counter_locks)

    # Add middleware (order matters - last added = outermost)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            "Idempotency-Key",
            "X-Request-ID",
            "X-User-ID",
            "X-Webhook-Signature",
        ],
    )

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(payments_router, prefix="/api")
    app.include_router(orders_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")

    logger.info(
        "Application created",
        routes=len(app.routes),
        cors_origins=len(settings.allowed_origins),
    )

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "storefront.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
