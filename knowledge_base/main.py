"""
FastAPI Application Entry Point

This module initializes the FastAPI application with:
- CORS configuration
- Route registration
- Health check endpoints

Run with:
    uvicorn knowledge_base.main:app --reload
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from knowledge_base.core.config import settings
from knowledge_base.db.database import check_db_connection, engine
from knowledge_base.db.redis import (
    check_redis_connection,
    get_redis_pool,
    close_redis_pool,
    close_arq_pool,
)
from knowledge_base.db.vector_store import get_vector_store
from knowledge_base.api.v1.router import api_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# ============================================================
# Application Lifespan Events
# ============================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.

    Startup:
    - Check database connection
    - Initialize Redis connection pool

    Shutdown:
    - Close Redis connections and the database engine
    """
    # ========== STARTUP ==========
    logger.info(f"Starting {settings.PROJECT_NAME}...")
    logger.info(f"Debug mode: {settings.DEBUG}")
    logger.info(f"Vector indexes: {', '.join(settings.vector_indexes.names)}")

    if await check_db_connection():
        logger.info("Database connection established successfully")
    else:
        logger.warning("Database connection check failed")

    # App works without Redis; processing then runs in-process
    get_redis_pool()
    if await check_redis_connection():
        logger.info("Redis connection established successfully")
    else:
        logger.warning("Redis not reachable - documents will be processed in-process")

    yield  # Application runs here

    # ========== SHUTDOWN ==========
    logger.info(f"Shutting down {settings.PROJECT_NAME}...")

    await close_redis_pool()
    await close_arq_pool()
    await engine.dispose()

    logger.info("Shutdown complete")


# ============================================================
# Create FastAPI Application
# ============================================================
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="""
    Document Knowledge Base API

    Features:
    - Document upload with content deduplication
    - Background text extraction and chunking
    - Replicated vector indexes
    - Similarity search
    """,
    version="1.0.0",
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# ----------------------------------------------------
# Middleware Configuration
# ----------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.DEBUG else settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


# ----------------------------------------------------
# Health Check Endpoints
# ----------------------------------------------------
@app.get("/", tags=["Health"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.PROJECT_NAME,
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs" if settings.DEBUG else "disabled"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint for monitoring.

    Checks:
    - Database connectivity
    - Redis connectivity
    - Every vector index
    """
    try:
        db_healthy = await check_db_connection()
        redis_healthy = await check_redis_connection()
        indexes = await asyncio.to_thread(get_vector_store().health)

        status = "healthy"
        if not db_healthy or not all(indexes.values()):
            status = "degraded"

        return {
            "status": status,
            "database": "connected" if db_healthy else "disconnected",
            # Redis is optional: uploads fall back to in-process processing
            "redis": "connected" if redis_healthy else "disconnected",
            "vector_indexes": {
                name: "connected" if ok else "disconnected"
                for name, ok in indexes.items()
            },
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "error": str(e)
            }
        )

# ============================================================
# Include API Router
# ============================================================
app.include_router(
    api_router,
    prefix=settings.API_V1_PREFIX
)


# ----------------------------------------------------
# Exception Handlers
# ----------------------------------------------------
@app.exception_handler(500)
async def internal_error_handler(request, exc):
    """Handle 500 errors."""
    logger.error(f"Internal server error: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )
