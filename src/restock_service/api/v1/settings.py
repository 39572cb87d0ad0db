"""Shop settings endpoints."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from restock_service.api.deps import get_current_shop, get_shop_settings_service
from restock_service.infrastructure.database.models import Shop
from restock_service.services.shop_settings import ShopSettingsService

router = APIRouter()


class ShopSettingsResponse(BaseModel):
    auto_notify_on_restock: bool


class ShopSettingsUpdate(BaseModel):
    auto_notify_on_restock: bool | None = None


@router.get("", response_model=ShopSettingsResponse)
async def get_settings(
    shop: Shop = Depends(get_current_shop),
    service: ShopSettingsService = Depends(get_shop_settings_service),
) -> ShopSettingsResponse:
    settings = await service.get_settings(shop.id)
    return ShopSettingsResponse(auto_notify_on_restock=settings.auto_notify_on_restock)


@router.put("", response_model=ShopSettingsResponse)
async def update_settings(
    body: ShopSettingsUpdate,
    shop: Shop = Depends(get_current_shop),
    service: ShopSettingsService = Depends(get_shop_settings_service),
) -> ShopSettingsResponse:
    """Auto-notify only takes effect on the PRO plan."""
    settings = await service.update_settings(shop.id, auto_notify_on_restock=body.auto_notify_on_restock)
    return ShopSettingsResponse(auto_notify_on_restock=settings.auto_notify_on_restock)
