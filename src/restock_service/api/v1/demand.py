"""Merchant wait-list endpoints."""

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from restock_service.api.deps import get_current_shop, get_demand_service
from restock_service.infrastructure.database.models import Shop
from restock_service.services.demand import DemandService

router = APIRouter()


class WaitlistItemResponse(BaseModel):
    id: str
    channel: str
    status: str
    contact_masked: str
    requested_at: datetime
    recovered_revenue: Decimal | None


class WaitlistSummary(BaseModel):
    total_waiting: int
    total_notified: int
    total_recovered_revenue: Decimal


class ProductSummary(BaseModel):
    id: str
    title: str
    image: str | None


class ProductWaitlistResponse(BaseModel):
    """Product-level rollup of variant-level demand."""

    product: ProductSummary
    waitlist: list[WaitlistItemResponse]
    summary: WaitlistSummary


class NotifyResponse(BaseModel):
    success: bool
    recovery_link_id: str
    message: str


@router.get("/product/{product_id}", response_model=ProductWaitlistResponse)
async def get_product_waitlist(
    product_id: str,
    shop: Shop = Depends(get_current_shop),
    service: DemandService = Depends(get_demand_service),
) -> ProductWaitlistResponse:
    """Everyone waiting on any variant of the product, newest first."""
    waitlist = await service.get_product_waitlist(shop.id, product_id)
    return ProductWaitlistResponse(
        product=ProductSummary(id=waitlist.product_id, title=waitlist.title, image=waitlist.image_url),
        waitlist=[
            WaitlistItemResponse(
                id=item.id,
                channel=item.channel.value,
                status=item.status.value,
                contact_masked=item.contact_masked,
                requested_at=item.requested_at,
                recovered_revenue=item.recovered_revenue,
            )
            for item in waitlist.waitlist
        ],
        summary=WaitlistSummary(
            total_waiting=waitlist.total_waiting,
            total_notified=waitlist.total_notified,
            total_recovered_revenue=waitlist.total_recovered_revenue,
        ),
    )


@router.post("/{demand_request_id}/notify", response_model=NotifyResponse)
async def notify_customer(
    demand_request_id: str,
    shop: Shop = Depends(get_current_shop),
    service: DemandService = Depends(get_demand_service),
) -> NotifyResponse:
    """
    Manually notify one waiting customer.

    Fails with 400 if the customer was already notified or converted, 403 when
    the monthly limit is reached and 502 when delivery fails.
    """
    await service.ensure_owned(shop.id, demand_request_id)
    result = await service.notify(demand_request_id)
    return NotifyResponse(
        success=result.success,
        recovery_link_id=result.recovery_link_id,
        message=result.message,
    )
