from fastapi import APIRouter
from app.core.config import settings
from app.database.connection import database
from app.models.schemas import HealthResponse
from app.services.search_service import get_search_service
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Database reachability plus which search cache backend is wired in"""
    try:
        cache_backend = get_search_service().cache.backend
        search_status = "available"
    except RuntimeError:
        cache_backend = "unavailable"
        search_status = "unavailable"

    try:
        connected = await database.ping()
    except Exception as e:
        logger.warning(f"Health check failed: {e}")
        connected = False

    return HealthResponse(
        status="healthy" if connected and search_status == "available" else "unhealthy",
        database="connected" if connected else "disconnected",
        services={
            "search": search_status if connected else "unavailable",
            "cache": cache_backend
        }
    )

@router.get("/version", tags=["Health"])
async def version():
    """Get API version information"""
    return {
        "name": settings.PROJECT_NAME,
        "version": "1.0.0",
        "description": "Business search and geo-filtering for the LocalHub directory"
    }
