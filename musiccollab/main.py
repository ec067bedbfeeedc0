import logging
import time
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from sqlalchemy import text

from musiccollab.config import settings
from musiccollab.api.v1.router import api_router
from musiccollab.db.session import init_db, close_db, async_session_maker
from musiccollab.db.redis import init_redis, close_redis, get_redis
from musiccollab.core.errors import register_exception_handlers
from musiccollab.core.logging import configure_logging
from musiccollab.core.middleware import (
    SecurityHeadersMiddleware,
    RequestLoggingMiddleware,
    RequestSizeLimitMiddleware,
)
import musiccollab.models  # Register models for create_all


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    configure_logging()
    await init_db()
    await init_redis()
    logger.info("%s started in %s mode", settings.APP_NAME, settings.ENVIRONMENT)

    yield

    await close_db()
    await close_redis()
    logger.info("%s shutting down", settings.APP_NAME)


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description="Swipe-based matching for musicians looking for bandmates and collaborators",
        version="1.0.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    # CORS middleware - Restricted to allowed origins only
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Requested-With", "Accept", "Origin"],
        expose_headers=["X-Request-ID"],
        max_age=600,  # Cache preflight requests for 10 minutes
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware)

    register_exception_handlers(app)

    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @app.get("/")
    async def root():
        """Basic health check endpoint."""
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "environment": settings.ENVIRONMENT,
        }

    @app.get("/health")
    async def health_check():
        """
        Detailed health check that actually verifies connectivity.
        Returns status of all critical services.
        """
        health_status = {
            "status": "healthy",
            "services": {
                "database": {"status": "unknown", "latency_ms": None},
                "redis": {"status": "unknown", "latency_ms": None},
            },
        }

        # Probe failures are reported in the payload, not raised
        try:
            start = time.time()
            async with async_session_maker() as session:
                await session.execute(text("SELECT 1"))
            health_status["services"]["database"] = {
                "status": "healthy",
                "latency_ms": round((time.time() - start) * 1000, 2),
            }
        except Exception as e:
            logger.warning("Database health check failed: %s", e)
            health_status["services"]["database"] = {
                "status": "unhealthy",
                "error": str(e)[:100],
            }
            health_status["status"] = "degraded"

        try:
            start = time.time()
            get_redis().ping()
            health_status["services"]["redis"] = {
                "status": "healthy",
                "latency_ms": round((time.time() - start) * 1000, 2),
            }
        except Exception as e:
            logger.warning("Redis health check failed: %s", e)
            health_status["services"]["redis"] = {
                "status": "unhealthy",
                "error": str(e)[:100],
            }
            health_status["status"] = "degraded"

        return health_status

    return app


app = create_app()
