"""Plan and usage endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from restock_service.api.deps import get_current_shop, get_plan_service
from restock_service.infrastructure.database.models import PlanTier, Shop
from restock_service.services.plan import PlanService

router = APIRouter()


class PlanUsageResponse(BaseModel):
    tier: PlanTier
    monthly_notify_limit: int
    notifications_used_this_month: int
    remaining: int
    usage_reset_at: datetime | None
    can_auto_notify: bool


class TierUpdateRequest(BaseModel):
    tier: PlanTier


async def _usage_response(service: PlanService, shop_id: str) -> PlanUsageResponse:
    usage = await service.get_usage(shop_id)
    return PlanUsageResponse(
        tier=usage.tier,
        monthly_notify_limit=usage.monthly_notify_limit,
        notifications_used_this_month=usage.notifications_used_this_month,
        remaining=usage.remaining,
        usage_reset_at=usage.usage_reset_at,
        can_auto_notify=usage.tier == PlanTier.PRO,
    )


@router.get("/usage", response_model=PlanUsageResponse)
async def get_usage(
    shop: Shop = Depends(get_current_shop),
    service: PlanService = Depends(get_plan_service),
) -> PlanUsageResponse:
    """Current tier and this month's notification usage."""
    return await _usage_response(service, shop.id)


@router.put("/tier", response_model=PlanUsageResponse)
async def update_tier(
    body: TierUpdateRequest,
    shop: Shop = Depends(get_current_shop),
    service: PlanService = Depends(get_plan_service),
) -> PlanUsageResponse:
    """Switch between FREE and PRO. Billing is handled elsewhere."""
    await service.update_tier(shop.id, body.tier)
    return await _usage_response(service, shop.id)
