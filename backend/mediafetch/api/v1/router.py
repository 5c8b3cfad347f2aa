"""API v1 router aggregation."""
from fastapi import APIRouter

from mediafetch.api.v1.endpoints import fetch

# Create v1 router
api_router = APIRouter()

# Include endpoint routers
api_router.include_router(fetch.router, tags=["fetch"])
