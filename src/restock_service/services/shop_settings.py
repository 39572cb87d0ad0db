"""Merchant settings per shop."""

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from restock_service.infrastructure.database.models import ShopSettings

logger = structlog.get_logger()


class ShopSettingsService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(self, shop_id: str) -> ShopSettings | None:
        result = await self.session.execute(
            select(ShopSettings).where(ShopSettings.shop_id == shop_id)
        )
        return result.scalar_one_or_none()

    async def auto_notify_enabled(self, shop_id: str) -> bool:
        """Missing settings mean auto-notify is off."""
        settings = await self.find(shop_id)
        return bool(settings and settings.auto_notify_on_restock)

    async def get_settings(self, shop_id: str) -> ShopSettings:
        """Settings for the shop, created with defaults on first access."""
        settings = await self.find(shop_id)
        if settings is not None:
            return settings

        settings = ShopSettings(shop_id=shop_id, auto_notify_on_restock=False)
        self.session.add(settings)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            settings = await self.find(shop_id)
            if settings is None:
                raise
        return settings

    async def update_settings(self, shop_id: str, auto_notify_on_restock: bool | None = None) -> ShopSettings:
        settings = await self.get_settings(shop_id)
        if auto_notify_on_restock is not None:
            settings.auto_notify_on_restock = auto_notify_on_restock
        await self.session.commit()
        logger.info(
            "Shop settings updated",
            shop_id=shop_id,
            auto_notify_on_restock=settings.auto_notify_on_restock,
        )
        return settings
