"""
FastAPI Main Application
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from sqlalchemy import text

from oauth_broker.api import api_router
from oauth_broker.common.exceptions import register_exception_handlers
from oauth_broker.common.logging import LoggingMiddleware, setup_logging
from oauth_broker.core.database import close_db, engine
from oauth_broker.core.oauth.config import get_oauth_config
from oauth_broker.core.redis import RedisClient
from oauth_broker.core.settings import settings

setup_logging()


async def _check_db_connection():
    """Quick database connectivity check on startup."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("select 1"))
        logger.info("   Database connection check: OK")
    except Exception as e:
        logger.error(f"   Database connection check failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application Lifecycle"""
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"   Environment: {settings.environment}")

    if settings.environment == "production" and "localhost" in settings.public_base_url:
        logger.warning(
            "WARNING: running in 'production' with a localhost PUBLIC_BASE_URL; "
            "provider callback URLs will not be reachable."
        )

    if settings.redis_url:
        await RedisClient.init()
    else:
        logger.info("   Redis not configured (pending OAuth flows kept in process)")

    await _check_db_connection()

    enabled = get_oauth_config().enabled_provider_names()
    logger.info(f"   OAuth providers enabled: {', '.join(enabled) or 'none'}")

    yield

    await RedisClient.close()
    await close_db()
    logger.info("Application shutdown")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
- **FastAPI** - Web Framework
- **SQLAlchemy 2.0** - ORM (Async)
- **OAuth 2.0 + PKCE** - Google, Facebook, LinkedIn, Microsoft
    """,
    docs_url="/docs" if settings.debug or settings.environment == "development" else None,
    redoc_url="/redoc" if settings.debug or settings.environment == "development" else None,
    lifespan=lifespan,
)

register_exception_handlers(app)

app.add_middleware(LoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")


@app.get("/", tags=["Root"])
async def root():
    """Root path, health check"""
    return {
        "status": "ok",
        "redis": RedisClient.is_available(),
        "docs": "/docs",
    }
