"""Storefront widget endpoints: stock/demand data and subscribe."""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from restock_service.api.deps import get_demand_service
from restock_service.api.security import verify_widget_signature
from restock_service.config import get_settings
from restock_service.services.demand import DemandService
from restock_service.services.shops import normalize_shop_domain

router = APIRouter()


# =============================================================================
# Models
# =============================================================================


class WidgetConfig(BaseModel):
    auto_notify_on_restock: bool


class WidgetDataResponse(BaseModel):
    """Data the storefront widget renders for a variant."""

    variant_id: str
    stock_remaining: int
    demand_count: int
    restock_expected: str | None = None
    widget_config: WidgetConfig


class SubscribeRequest(BaseModel):
    """Customer asking to be told when a variant is back."""

    shop: str = Field(..., min_length=1, description="Shop domain")
    variant_id: str = Field(..., min_length=1, description="Shopify or internal variant id")
    contact: str = Field(..., min_length=1, description="Email address or phone number")
    channel: str = Field(..., min_length=1, description="email, whatsapp, sms or phone")
    hmac: str | None = Field(None, description="Widget signature")


class SubscribeResponse(BaseModel):
    success: bool
    created: bool
    message: str
    demand_request_id: str


# =============================================================================
# Endpoints
# =============================================================================


def _check_signature(params: dict[str, str], signature: str | None) -> None:
    secret = get_settings().shopify_api_secret
    if secret and not verify_widget_signature(secret, params, signature):
        raise HTTPException(status_code=401, detail="Invalid signature")


@router.get("/widget-data", response_model=WidgetDataResponse)
async def get_widget_data(
    shop: str = Query(..., min_length=1),
    variant_id: str = Query(..., min_length=1),
    hmac: str | None = Query(None),
    service: DemandService = Depends(get_demand_service),
) -> WidgetDataResponse:
    """Stock remaining and wait-list size for a variant."""
    shop = normalize_shop_domain(shop)
    _check_signature({"shop": shop, "variant_id": variant_id}, hmac)

    data = await service.get_widget_data(shop, variant_id)
    return WidgetDataResponse(**data)


@router.post("/restock/subscribe", response_model=SubscribeResponse)
async def subscribe(
    body: SubscribeRequest,
    service: DemandService = Depends(get_demand_service),
) -> SubscribeResponse:
    """
    Add a customer to a variant's wait-list.

    Subscribing twice with the same contact returns the existing entry with
    ``created=false``.
    """
    shop = normalize_shop_domain(body.shop)
    _check_signature(
        {
            "shop": shop,
            "variant_id": body.variant_id,
            "contact": body.contact,
            "channel": body.channel,
        },
        body.hmac,
    )

    result = await service.create_request(shop, body.variant_id, body.contact, body.channel)
    return SubscribeResponse(
        success=True,
        created=result.created,
        message=result.message,
        demand_request_id=result.demand_request.id,
    )
