"""
FastAPI main application module for the Estate Kit backend
"""

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
import asyncio
import time
import logging

from estate_kit.core.config import settings
from estate_kit.core.exceptions import (
    AuthenticationError,
    DependencyTimeoutError,
    EncryptionError,
    EstateKitError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from estate_kit.core.metrics import PrometheusMetrics
from estate_kit.api.api_v1.api import api_router
from estate_kit.api.deps import get_metrics, get_session_manager, get_session_store
from estate_kit.tasks.maintenance_tasks import sweep_sessions_periodically

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Estate Kit API",
    description="Account, delegate access and audit backend for Estate Kit",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response

# Include API routes
app.include_router(api_router, prefix="/api/v1")

# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring"""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": "1.0.0"
    }

@app.get("/metrics")
async def metrics(sink: PrometheusMetrics = Depends(get_metrics)):
    """Prometheus scrape endpoint"""
    body, content_type = sink.render()
    return Response(content=body, media_type=content_type)

# Domain error handlers
ERROR_STATUS = {
    AuthenticationError: 401,
    PermissionDeniedError: 403,
    NotFoundError: 404,
    ValidationError: 422,
    DependencyTimeoutError: 504,
}

@app.exception_handler(EstateKitError)
async def domain_exception_handler(request: Request, exc: EstateKitError):
    if isinstance(exc, EncryptionError):
        logger.error(f"Encryption failure on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "internal_error", "message": "An unexpected error occurred"}
        )

    status_code = next(
        (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
        400,
    )
    if status_code >= 500:
        logger.error(f"{exc.error_code} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.error_code, "message": exc.message}
    )

# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred"
        }
    )

# Startup event
@app.on_event("startup")
async def startup_event():
    """Initialize application on startup"""
    from estate_kit.core.database import create_tables
    from estate_kit.core.database_utils import check_database_connection

    logger.info("Starting Estate Kit API...")

    if not check_database_connection():
        logger.error("Failed to connect to database")
        raise RuntimeError("Database connection failed")

    # Note: In production, use Alembic migrations instead
    if settings.ENVIRONMENT == "development":
        create_tables()
        logger.info("Database tables created/verified successfully")

    # Memory-backed sessions live only in this process, so they are swept here
    if settings.SESSION_BACKEND == "memory":
        app.state.session_sweeper = asyncio.create_task(sweep_sessions_periodically(
            lambda: app.dependency_overrides.get(get_session_manager, get_session_manager)(),
            settings.SESSION_CLEANUP_INTERVAL_SECONDS,
        ))

    logger.info("Application startup complete")

# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on application shutdown"""
    logger.info("Shutting down Estate Kit API...")
    sweeper = getattr(app.state, "session_sweeper", None)
    if sweeper is not None:
        sweeper.cancel()
    await get_session_store().close()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "estate_kit.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info"
    )
