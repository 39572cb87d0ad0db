"""
Inventory webhook handling.

Turns an inventory update into notifications for everyone waiting on the
variant. Webhooks arrive at least once, so the 0 -> positive transition is
detected with a conditional UPDATE: when the same event is delivered twice
only one delivery finds the variant still at zero and drives the fan-out.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from restock_service.config import Settings, get_settings
from restock_service.errors import AlreadyNotified
from restock_service.infrastructure.database.models import (
    DemandRequest,
    DemandStatus,
    Variant,
)
from restock_service.infrastructure.redis import CacheService, widget_cache_key
from restock_service.services.demand import DemandService
from restock_service.services.notifications import NotificationDispatcher
from restock_service.services.plan import PlanService
from restock_service.services.shop_settings import ShopSettingsService
from restock_service.services.shops import ShopService
from shared.constants import TOPIC_APP_UNINSTALLED, TOPIC_INVENTORY_UPDATE

logger = structlog.get_logger()


@dataclass
class RestockOutcome:
    """What one inventory event did."""

    restocked: bool = False
    attempted: int = 0
    notified: int = 0
    already_notified: int = 0
    failed: int = 0


class RestockEventHandler:
    """Handles shop webhooks: inventory changes and app uninstalls."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: NotificationDispatcher,
        settings: Settings | None = None,
        cache: CacheService | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.settings = settings or get_settings()
        self.cache = cache or CacheService(None)
        self.sleep = sleep

    async def handle_webhook(self, topic: str, shop_domain: str, payload: dict[str, Any]) -> RestockOutcome | None:
        """Route a webhook by topic. Never raises."""
        log = logger.bind(topic=topic, shop_domain=shop_domain)
        log.info("Webhook received")
        try:
            if topic == TOPIC_INVENTORY_UPDATE:
                return await self.handle_inventory_update(shop_domain, payload)
            if topic == TOPIC_APP_UNINSTALLED:
                await self.handle_app_uninstalled(shop_domain)
                return None
            log.debug("Ignoring webhook topic")
        except Exception as e:
            log.error("Webhook handling failed", error=str(e), exc_info=True)
        return None

    async def handle_app_uninstalled(self, shop_domain: str) -> bool:
        """Deactivate the shop; plans, settings, catalog and demand are kept."""
        async with self.session_factory() as session:
            return await ShopService(session).mark_uninstalled(shop_domain)

    async def handle_inventory_update(self, shop_domain: str, payload: dict[str, Any]) -> RestockOutcome:
        """
        Apply an inventory level and notify waiting customers on a restock.

        Args:
            shop_domain: Shop the webhook came from
            payload: ``{"inventory_item_id": ..., "available": ...}``; the
                inventory item id is the variant's Shopify id

        Returns:
            RestockOutcome; ``restocked`` is True only for the delivery that
            moved the variant off zero
        """
        outcome = RestockOutcome()
        inventory_item_id = payload.get("inventory_item_id")
        available = int(payload.get("available") or 0)
        log = logger.bind(shop_domain=shop_domain, inventory_item_id=inventory_item_id, available=available)

        async with self.session_factory() as session:
            shops = ShopService(session)
            shop = await shops.get_by_domain(shop_domain)
            if shop is None:
                log.debug("Inventory update for unknown or inactive shop")
                return outcome

            variant = await shops.find_variant(shop.id, str(inventory_item_id))
            if variant is None:
                log.debug("Inventory update for unknown variant", shop_id=shop.id)
                return outcome
            log = log.bind(shop_id=shop.id, variant_id=variant.id)

            plans = PlanService(
                session,
                free_limit=self.settings.free_monthly_notify_limit,
                pro_limit=self.settings.pro_monthly_notify_limit,
            )
            if not await plans.can_auto_notify(shop.id):
                log.info("Auto-notify requires PRO plan, updating inventory only")
                await self._set_inventory(session, variant.id, available)
                return outcome

            if not await ShopSettingsService(session).auto_notify_enabled(shop.id):
                log.debug("Auto-notify disabled in shop settings, updating inventory only")
                await self._set_inventory(session, variant.id, available)
                return outcome

            if variant.inventory_quantity != 0 or available <= 0:
                await self._set_inventory(session, variant.id, available)
                return outcome

            if not await self._restock_from_zero(session, variant.id, available):
                log.debug("Restock already handled by a concurrent event")
                return outcome
            outcome.restocked = True

            result = await session.execute(
                select(DemandRequest.id)
                .where(
                    DemandRequest.variant_id == variant.id,
                    DemandRequest.status == DemandStatus.PENDING,
                )
                .order_by(DemandRequest.created_at)
            )
            request_ids = list(result.scalars().all())

        log.info("Variant restocked", pending_requests=len(request_ids))
        await self._notify_in_batches(request_ids, outcome, log)
        log.info(
            "Restock fan-out complete",
            attempted=outcome.attempted,
            notified=outcome.notified,
            already_notified=outcome.already_notified,
            failed=outcome.failed,
        )
        return outcome

    async def _notify_in_batches(self, request_ids: list[str], outcome: RestockOutcome, log) -> None:
        batch_size = max(self.settings.restock_batch_size, 1)
        for start in range(0, len(request_ids), batch_size):
            batch = request_ids[start:start + batch_size]
            results = await asyncio.gather(
                *(self._notify_one(request_id) for request_id in batch),
                return_exceptions=True,
            )
            for request_id, result in zip(batch, results):
                outcome.attempted += 1
                if isinstance(result, AlreadyNotified):
                    outcome.already_notified += 1
                    log.debug("Request already notified", demand_request_id=request_id)
                elif isinstance(result, BaseException):
                    outcome.failed += 1
                    log.error("Auto-notify failed", demand_request_id=request_id, error=str(result))
                else:
                    outcome.notified += 1

            if start + batch_size < len(request_ids):
                await self.sleep(self.settings.restock_batch_delay_ms / 1000)

    async def _notify_one(self, demand_request_id: str) -> None:
        async with self.session_factory() as session:
            service = DemandService(session, self.dispatcher, settings=self.settings, cache=self.cache)
            await service.notify(demand_request_id)

    async def _set_inventory(self, session: AsyncSession, variant_id: str, available: int) -> None:
        await session.execute(
            update(Variant)
            .where(Variant.id == variant_id)
            .values(inventory_quantity=available)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        await self.cache.delete(widget_cache_key(variant_id))

    async def _restock_from_zero(self, session: AsyncSession, variant_id: str, available: int) -> bool:
        result = await session.execute(
            update(Variant)
            .where(Variant.id == variant_id, Variant.inventory_quantity == 0)
            .values(inventory_quantity=available)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        await self.cache.delete(widget_cache_key(variant_id))
        return result.rowcount == 1
