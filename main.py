"""
NotaryPro Certify - FastAPI Application Entry Point

This is the main entry point for the FastAPI application.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.database import init_db, close_db, async_session_factory, engine
from app.utils.error_handling import (
    setup_exception_handlers,
    ErrorTrackingMiddleware,
)

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def seed_reference_data():
    """
    Seed the document catalog, demo users and demo terminal.
    Development only; production data is loaded by operations.
    """
    from app.services.seed_service import SeedService

    async with async_session_factory() as session:
        try:
            await SeedService(session).seed_all()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.warning(f"Could not seed reference data: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Environment: {settings.app_env}")
    logger.info(f"Signature backend: {settings.signer_backend}")

    # Initialize database (dev only)
    if settings.is_development:
        await init_db()
        logger.info("Database tables initialized")

        if settings.seed_document_types:
            await seed_reference_data()

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Notarial document certification: POS capture, simple and advanced electronic signatures, public validation",
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

app.add_middleware(ErrorTrackingMiddleware)

# ===========================================
# GLOBAL ERROR HANDLERS
# ===========================================

setup_exception_handlers(app)


# ===========================================
# API ROUTES
# ===========================================

@app.get("/api")
async def api_info():
    """API information endpoint."""
    return {
        "name": settings.app_name,
        "version": "0.1.0",
        "status": "running",
        "environment": settings.app_env,
        "api_docs": "/api/docs" if settings.is_development else "disabled",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        database = "connected"
    except SQLAlchemyError as e:
        logger.error(f"Health check database query failed: {e}")
        database = "unavailable"

    return {
        "status": "healthy" if database == "connected" else "degraded",
        "database": database,
    }


# ===========================================
# INCLUDE ROUTERS
# ===========================================

from app.routers import documents, validation, etoken

# Document lifecycle (POS + certifier)
app.include_router(documents.router, prefix="/api", tags=["Documents"])

# Public validation (QR)
app.include_router(validation.router, prefix="/api", tags=["Validation"])

# Signature token
app.include_router(etoken.router, prefix="/api", tags=["eToken"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=5000,
        reload=settings.is_development,
    )
