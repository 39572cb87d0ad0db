"""Recovery link resolution and order attribution."""

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from restock_service.api.deps import get_current_shop, get_recovery_service
from restock_service.infrastructure.database.models import Shop
from restock_service.services.recovery import RecoveryService

router = APIRouter()


class RecoveryLinkResponse(BaseModel):
    demand_request_id: str
    expires_at: datetime


class AttributionRequest(BaseModel):
    """An order to record, with the recovery token it was matched to, if any."""

    order_id: str = Field(..., min_length=1)
    revenue: Decimal = Field(..., ge=0)
    token: str | None = None
    ordered_at: datetime | None = None


class AttributionResponse(BaseModel):
    id: str
    order_id: str
    recovery_link_id: str | None
    revenue: Decimal
    attributed: bool


@router.get("/recover/{token}", response_model=RecoveryLinkResponse)
async def resolve_link(
    token: str,
    service: RecoveryService = Depends(get_recovery_service),
) -> RecoveryLinkResponse:
    """Look up an active link. 404 if unknown, 410 once expired."""
    link = await service.resolve(token)
    return RecoveryLinkResponse(demand_request_id=link.demand_request_id, expires_at=link.expires_at)


@router.post("/attributions", response_model=AttributionResponse)
async def attribute_order(
    body: AttributionRequest,
    shop: Shop = Depends(get_current_shop),
    service: RecoveryService = Depends(get_recovery_service),
) -> AttributionResponse:
    """Record an order's revenue. Repeating an order id returns the first record."""
    attribution = await service.attribute_order(
        shop.id,
        body.order_id,
        body.revenue,
        token=body.token,
        ordered_at=body.ordered_at,
    )
    return AttributionResponse(
        id=attribution.id,
        order_id=attribution.order_id,
        recovery_link_id=attribution.recovery_link_id,
        revenue=attribution.revenue,
        attributed=attribution.recovery_link_id is not None,
    )
