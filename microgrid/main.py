from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
import uvicorn
import logging
from contextlib import asynccontextmanager
from typing import Optional

from microgrid.core.config import Settings, settings
from microgrid.core.redis_client import close_redis, init_redis, redis_health
from microgrid.api.v1.api import api_router
from microgrid.core.logging import setup_logging
from microgrid.services.market_service import build_market_service
from microgrid.services.snapshot_store import build_snapshot_store

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    config: Settings = app.state.settings

    # Startup
    logger.info(f"Starting up {config.APP_NAME}...")
    redis_client = None
    if getattr(app.state, "market_service", None) is None:
        if config.SNAPSHOT_BACKEND.lower() == "redis":
            redis_client = await init_redis(config)
        store = build_snapshot_store(config, redis_client)
        app.state.market_service = build_market_service(config, store)
    app.state.redis = redis_client
    logger.info(
        f"{config.APP_NAME} startup complete "
        f"(snapshot backend: {config.SNAPSHOT_BACKEND}, simulation: {config.SIMULATION_ENABLED})"
    )

    yield

    # Shutdown
    logger.info(f"Shutting down {config.APP_NAME}...")
    await close_redis(redis_client)


def create_app(config: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application"""
    config = config or settings

    app = FastAPI(
        title=config.APP_NAME,
        description="Community energy trading and live microgrid telemetry simulation",
        version=config.VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.settings = config
    app.state.redis = None

    # Add middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_HOSTS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=config.ALLOWED_HOSTS
    )

    # Include API routes
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/api/health")
    async def health_check(request: Request):
        """Main health check endpoint"""
        return {
            "status": "healthy",
            "service": "microgrid-trading-service",
            "version": config.VERSION,
            "snapshot_backend": config.SNAPSHOT_BACKEND,
            "simulation_enabled": config.SIMULATION_ENABLED,
            "redis": await redis_health(request.app.state.redis),
        }

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": config.APP_NAME,
            "description": "Community energy trading and live microgrid telemetry simulation",
            "version": config.VERSION,
            "docs": "/docs",
            "modules": ["microgrid", "trading", "communities"]
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "microgrid.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
