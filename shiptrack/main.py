"""
Shiptrack service
Shipment tracking GraphQL API with structured logging and health probes
"""

import os
import subprocess
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from .api.graphql import graphql_app
from .core import RequestLoggingMiddleware, ServiceHealth, get_logger, setup_logging
from .core_settings import get_settings
from .infrastructure.db import get_database
from .infrastructure.token_store import get_token_store

settings = get_settings()
SERVICE_DESCRIPTION = "Shipment tracking GraphQL API"
PROJECT_ROOT = os.path.join(os.path.dirname(__file__), "..")

setup_logging(
    service_name=settings.SERVICE_NAME,
    level=settings.LOG_LEVEL,
    environment=settings.ENVIRONMENT,
    version=settings.SERVICE_VERSION,
)

logger = get_logger(__name__)


def run_migrations() -> None:
    logger.info("Running database migrations")
    result = subprocess.run(
        ["alembic", "upgrade", "head"],
        cwd=PROJECT_ROOT,
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        logger.warning(f"Migration output: {result.stderr}")
    else:
        logger.info("Database migrations completed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    logger.info(f"Starting {settings.SERVICE_NAME} version {settings.SERVICE_VERSION}")
    database = get_database()

    if settings.RUN_MIGRATIONS:
        run_migrations()
    try:
        await database.create_tables()
    except Exception as e:
        logger.error(f"Failed to initialize database models: {e}")
        raise

    token_store = get_token_store()
    logger.info(f"Token revocation backend: {token_store.backend}")
    logger.info(f"{settings.SERVICE_NAME} started successfully")

    yield

    logger.info(f"Shutting down {settings.SERVICE_NAME}")
    await database.close()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        return response


app = FastAPI(
    title=settings.SERVICE_NAME,
    description=SERVICE_DESCRIPTION,
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url=None,
    openapi_url="/api/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

health_service = ServiceHealth(
    settings.SERVICE_NAME, settings.SERVICE_VERSION, get_database(), redis_url=settings.REDIS_URL,
)
app.include_router(health_service.create_health_router())
app.include_router(graphql_app, prefix="/graphql", include_in_schema=False)


@app.get("/", include_in_schema=False)
async def root():
    """Friendly landing endpoint (no auth)."""
    return {
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "status": "running",
        "graphql": "/graphql",
        "health": "/health",
    }


@app.get("/info")
async def info():
    """Service information endpoint"""
    return {
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "description": SERVICE_DESCRIPTION,
        "environment": settings.ENVIRONMENT,
    }


def run() -> None:
    uvicorn.run(
        "shiptrack.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_config=None,
    )


if __name__ == "__main__":
    run()
