# app/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
from app.core.config import settings
from app.database.connection import database
from app.api.v1.api import api_router
from app.models.schemas import CachedResultSet
from app.services.database_service import BusinessStore
from app.services.search_service import BusinessSearchService, set_search_service
from app.utils.cache import create_cache
from app.utils.logging import setup_logging

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Initialize all services
    logger.info("Starting up application...")

    try:
        # Initialize database connection
        await database.connect()
        logger.info("Database connected successfully")

        cache = create_cache(loader=CachedResultSet.model_validate)
        set_search_service(BusinessSearchService(BusinessStore(database.pool), cache))
        logger.info("BusinessSearchService initialized")
        logger.info("Application startup complete")

    except Exception as e:
        logger.error(f"Failed to start application: {str(e)}")
        raise

    yield

    # Shutdown: Clean up resources
    logger.info("Shutting down application...")
    if hasattr(cache, "close"):
        await cache.close()
    await database.disconnect()
    logger.info("Application shutdown complete")

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Business search, geo-filtering and ranking for the LocalHub directory",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(api_router, prefix=settings.API_V1_STR)

@app.get("/", include_in_schema=False)
async def root():
    return {
        "message": "LocalHub Search API",
        "version": "1.0.0",
        "docs": "/docs",
        "services": {
            "search": "Available",
            "cache": settings.SEARCH_CACHE_BACKEND
        }
    }
