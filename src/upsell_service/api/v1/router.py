"""API v1 router that aggregates all endpoint routers."""

from fastapi import APIRouter

from upsell_service.api.v1 import automation, health

api_router = APIRouter()

# Include all routers
api_router.include_router(
    health.router,
    tags=["Health"],
)

api_router.include_router(
    automation.router,
    prefix="/automation",
    tags=["Automation"],
)
