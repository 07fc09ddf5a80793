"""
AuditPulse - FastAPI Application Entry Point

This is the main entry point for the FastAPI application.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import init_db, close_db
from app.routers import audit_engine
from app.utils.error_handling import setup_exception_handlers

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Environment: {settings.app_env}")

    # Initialize database (dev only - use migrations in production)
    if settings.is_development:
        await init_db()
        logger.info("Database tables initialized")

    if not settings.audit_ai_api_key:
        logger.warning("AUDIT_AI_API_KEY is not set; full audits will fail until it is configured")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Statutory audit engine: GST, TDS, income-tax and IFC checks with AI risk intelligence",
    version="0.1.0",
    docs_url="/api/docs" if settings.is_development else None,
    redoc_url="/api/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ===========================================
# GLOBAL ERROR HANDLERS
# ===========================================

setup_exception_handlers(app)


# ===========================================
# ROOT ENDPOINTS
# ===========================================

@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": settings.app_name,
        "status": "running",
        "environment": settings.app_env,
        "api_docs": "/api/docs" if settings.is_development else "disabled",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/api/v1")
async def api_root():
    """API v1 root endpoint."""
    return {
        "message": f"Welcome to {settings.app_name} API v1",
        "endpoints": {
            "audit_engine": "/api/v1/audit-engine",
            "runs": "/api/v1/audit-engine/runs",
        },
    }


# ===========================================
# API ROUTERS
# ===========================================

app.include_router(audit_engine.router, prefix=f"/api/{settings.api_version}")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=5120,
        reload=settings.is_development,
    )
