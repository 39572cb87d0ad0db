"""API v1 router that aggregates all endpoint routers."""

from fastapi import APIRouter

from restock_service.api.v1 import (
    demand,
    health,
    plan,
    recovery,
    settings,
    webhooks,
    widget,
)

api_router = APIRouter()

# Include all routers
api_router.include_router(
    health.router,
    tags=["Health"],
)

api_router.include_router(
    widget.router,
    tags=["Widget"],
)

api_router.include_router(
    demand.router,
    prefix="/demand",
    tags=["Demand"],
)

api_router.include_router(
    plan.router,
    prefix="/plan",
    tags=["Plan"],
)

api_router.include_router(
    settings.router,
    prefix="/settings",
    tags=["Settings"],
)

api_router.include_router(
    recovery.router,
    tags=["Recovery"],
)

api_router.include_router(
    webhooks.router,
    prefix="/webhooks",
    tags=["Webhooks"],
)
