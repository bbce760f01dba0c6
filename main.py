"""
Medical Inventory Standardizer — Main Application

FastAPI application entry point.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import structlog
from datetime import datetime

from config import settings, check_connection
from exceptions import AppError
from services.catalog_service import get_catalog_service
from services.session_cache_service import open_session_count

# Configure structured logging
logging.basicConfig(format="%(message)s", level=settings.log_level.upper())

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer() if settings.is_production
            else structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup: Pick the catalog store and seed it if empty
    Shutdown: Nothing to release
    """
    # Startup
    logger.info(
        "application_starting",
        environment=settings.environment,
        debug=settings.debug
    )

    catalog_service = get_catalog_service()
    status = catalog_service.status()
    if status.persistent:
        logger.info("catalog_store_ready", mode=status.mode, can_write=status.can_write)
    else:
        logger.warning(
            "catalog_store_not_persistent",
            mode=status.mode,
            missing=settings.missing_store_settings
        )

    if settings.seed_on_startup:
        try:
            catalog_service.seed()
        except AppError as e:
            logger.error("catalog_seed_failed", error=e.message)

    yield

    # Shutdown
    logger.info("application_shutting_down")


# Create FastAPI app
app = FastAPI(
    title="Medical Inventory Standardizer",
    description="Standardize medical equipment inventories against a nomenclature catalog",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ===================
# ROUTES
# ===================

@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        Basic health status, database state and which catalog store is in use
    """
    db_status = check_connection()
    store = get_catalog_service().store

    return {
        "status": "healthy" if db_status["status"] == "healthy" else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.environment,
        "database": db_status,
        "catalog_store": {
            "mode": store.mode,
            "persistent": store.persistent
        },
        "review_sessions": open_session_count()
    }


@app.get("/")
async def root():
    """
    Root endpoint.

    Returns:
        API information and available endpoints
    """
    return {
        "name": "Medical Inventory Standardizer API",
        "version": "0.1.0",
        "docs": "/docs" if settings.debug else "Disabled in production",
        "health": "/health",
        "catalog_store": get_catalog_service().store.mode,
        "endpoints": {
            "import": "/api/import",
            "review": "/api/review",
            "catalog": "/api/catalog"
        }
    }


# ===================
# ERROR HANDLERS
# ===================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Errors raised outside a route body (dependencies) use the same format."""
    logger.warning(
        "request_rejected",
        path=request.url.path,
        method=request.method,
        code=exc.code
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler.

    Catches unhandled exceptions and returns standard error format.
    """
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": str(exc) if settings.debug else None,
                "timestamp": datetime.utcnow().isoformat()
            }
        }
    )


# ===================
# INCLUDE ROUTERS
# ===================
from routes.imports import router as imports_router
from routes.review import router as review_router
from routes.catalog import router as catalog_router

app.include_router(imports_router, prefix="/api/import", tags=["Import"])
app.include_router(review_router, prefix="/api/review", tags=["Review"])
app.include_router(catalog_router, prefix="/api/catalog", tags=["Catalog"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
