"""
FastAPI application factory and configuration.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from memo_relay.core.config import get_settings
from memo_relay.core.database import get_session_factory, init_db
from memo_relay.core.logging import setup_logging, get_logger
from memo_relay.api import webhook, pull, ack, health, metrics
from memo_relay.api.metrics import MetricsMiddleware, set_startup_time
from memo_relay.store.kv import KVStore


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger = get_logger(__name__)
    logger.info("Starting relay...")
    
    init_db()
    
    # Expired keys are already invisible; this only reclaims space
    db = get_session_factory()()
    try:
        KVStore(db).purge_expired()
    finally:
        db.close()
    
    set_startup_time()
    
    yield
    
    logger.info("Shutting down relay...")


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP errors; a wrong method on a known path is reported as an unknown route."""
    if exc.status_code == 405:
        return JSONResponse(status_code=404, content={"detail": "Not Found"})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed query or body parameters are a 400, not FastAPI's default 422."""
    get_logger(__name__).warning(
        "Malformed request",
        extra={"extra_data": {"path": request.url.path, "errors": exc.errors()}}
    )
    return JSONResponse(status_code=400, content={"detail": "malformed request"})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    
    setup_logging()
    logger = get_logger(__name__)
    
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Store-and-forward relay: webhook ingestion with a pull/ack queue on a key-value store",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    
    # The consumer is a desktop note app calling from its own origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type"],
    )
    app.add_middleware(MetricsMiddleware)
    
    app.include_router(webhook.router)
    app.include_router(pull.router)
    app.include_router(ack.router)
    app.include_router(health.router)
    app.include_router(metrics.router)
    
    logger.info(
        "Application created",
        extra={
            "extra_data": {
                "app_name": settings.app_name,
                "version": settings.app_version,
                "debug": settings.debug,
            }
        }
    )
    
    return app


# Create the application instance
app = create_app()
