from fastapi import APIRouter
from app.api.v1.endpoints import (
    health,
    search,
)

api_router = APIRouter()

api_router.include_router(health.router, tags=["Health"])
api_router.include_router(search.router, prefix="/search", tags=["Business Search"])
