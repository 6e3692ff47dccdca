"""API v1 router configuration."""

from fastapi import APIRouter

from app.api.v1.endpoints import audit, evaluations, health

api_router = APIRouter()

# Include endpoint routers
api_router.include_router(
    health.router,
    tags=["health"],
)

api_router.include_router(
    evaluations.router,
    prefix="/evaluations",
    tags=["evaluations"],
)

api_router.include_router(
    audit.router,
    prefix="/audit",
    tags=["audit"],
)
