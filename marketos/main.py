"""
FastAPI Production Application

Main entry point for the MarketOS Analytics API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
import structlog

from marketos.config import get_settings
from marketos.config.logging import configure_logging
from marketos.database import Database, Store
from marketos.exceptions import (
    AdapterFetchError,
    MarketOSError,
    MissingIntegrationError,
    SyncError,
    UnsupportedMarketplaceError,
)
from marketos.serving.api.middleware import RequestLoggingMiddleware
from marketos.serving.api.routes import (
    alerts_router,
    analytics_router,
    health_router,
    integrations_router,
    sync_router,
)
from marketos.serving.cache import close_redis, init_redis

settings = get_settings()
logger = structlog.get_logger(__name__)

ERROR_STATUS = {
    MissingIntegrationError: 404,
    UnsupportedMarketplaceError: 422,
    SyncError: 502,
    AdapterFetchError: 502,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()
    logger.info("Starting MarketOS Analytics API", environment=settings.app_env)

    database = Database()
    try:
        await database.connect(create_schema=settings.is_development)
        app.state.database = database
        app.state.store = Store(database)
        logger.info("Database initialized")
    except Exception as e:
        logger.warning("Database init failed", error=str(e))

    try:
        await init_redis()
        logger.info("Redis initialized")
    except Exception as e:
        logger.warning("Redis init failed, analytics responses will not be cached", error=str(e))

    yield

    logger.info("Shutting down...")
    await database.dispose()
    await close_redis()


app = FastAPI(
    title="MarketOS Analytics API",
    description="Multi-marketplace seller analytics: sync, P&L, inventory, ads, SEO and alerts",
    version=settings.version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(MarketOSError)
async def marketos_error_handler(request: Request, exc: MarketOSError) -> JSONResponse:
    status_code = next(
        (code for error_cls, code in ERROR_STATUS.items() if isinstance(exc, error_cls)),
        500,
    )
    log = logger.warning if status_code < 500 else logger.error
    log("Request failed", path=request.url.path, status_code=status_code, error=str(exc))
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# API routes
app.include_router(health_router, prefix="/api/v1", tags=["Health"])
app.include_router(analytics_router, prefix="/api/v1", tags=["Analytics"])
app.include_router(sync_router, prefix="/api/v1", tags=["Sync"])
app.include_router(alerts_router, prefix="/api/v1", tags=["Alerts"])
app.include_router(integrations_router, prefix="/api/v1", tags=["Integrations"])

if settings.monitoring.enable_metrics:
    app.mount("/metrics", make_asgi_app())


@app.get("/api/v1/info")
async def api_info():
    """API information endpoint."""
    return {
        "name": "MarketOS Analytics API",
        "version": settings.version,
        "environment": settings.app_env,
        "documentation": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
