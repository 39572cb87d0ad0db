"""Restock webhook and notification tasks.

Each task runs the async services inside its own ``asyncio.run`` loop with a
fresh engine and Redis client, disposed before the task returns.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, AsyncGenerator

import redis.asyncio as aioredis
import structlog
from celery import shared_task

from restock_service.config import get_settings
from restock_service.errors import BusinessError, DeliveryError
from restock_service.infrastructure.database.connection import (
    get_async_engine,
    get_async_session_factory,
)
from restock_service.infrastructure.redis import CacheService
from restock_service.services.delivery import build_providers
from restock_service.services.demand import DemandService
from restock_service.services.notifications import NotificationDispatcher
from restock_service.services.restock import RestockEventHandler, RestockOutcome
from shared.constants import TOPIC_INVENTORY_UPDATE

logger = structlog.get_logger()


@asynccontextmanager
async def _restock_handler() -> AsyncGenerator[RestockEventHandler, None]:
    settings = get_settings()
    engine = get_async_engine()
    redis_client = aioredis.from_url(settings.redis_url, socket_connect_timeout=2, socket_timeout=2)
    try:
        yield RestockEventHandler(
            get_async_session_factory(engine),
            NotificationDispatcher(build_providers(settings)),
            settings=settings,
            cache=CacheService(redis_client),
        )
    finally:
        await redis_client.aclose()
        await engine.dispose()


async def _handle_inventory_update(shop_domain: str, payload: dict[str, Any]) -> dict:
    async with _restock_handler() as handler:
        outcome = await handler.handle_webhook(TOPIC_INVENTORY_UPDATE, shop_domain, payload)
    # None means the handler logged and absorbed a failure
    return asdict(outcome or RestockOutcome())


async def _handle_app_uninstalled(shop_domain: str) -> bool:
    async with _restock_handler() as handler:
        return await handler.handle_app_uninstalled(shop_domain)


async def _notify(demand_request_id: str) -> dict:
    async with _restock_handler() as handler:
        async with handler.session_factory() as session:
            service = DemandService(
                session, handler.dispatcher, settings=handler.settings, cache=handler.cache
            )
            result = await service.notify(demand_request_id)
    return asdict(result)


@shared_task(bind=True)
def handle_inventory_update(self, shop_domain: str, payload: dict) -> dict:
    """
    Process an ``inventory_levels/update`` webhook.

    Goes through the handler's webhook boundary, which logs and absorbs
    every failure, so this task is not retried.

    Returns:
        dict: The restock outcome counters
    """
    logger.info("Processing inventory update", shop_domain=shop_domain, task_id=self.request.id)
    return asyncio.run(_handle_inventory_update(shop_domain, payload))


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def notify_demand_request(self, demand_request_id: str) -> dict:
    """
    Notify one waiting customer.

    Retried only when delivery fails; business outcomes such as an exhausted
    quota or an already-notified request are final.
    """
    try:
        return asyncio.run(_notify(demand_request_id))
    except DeliveryError as exc:
        logger.warning(
            "Delivery failed, retrying",
            demand_request_id=demand_request_id,
            attempt=self.request.retries + 1,
            error=str(exc),
        )
        raise self.retry(exc=exc)
    except BusinessError as e:
        logger.info(
            "Notification not sent",
            demand_request_id=demand_request_id,
            reason=type(e).__name__,
            detail=e.message,
        )
        return {"success": False, "error": type(e).__name__, "message": e.message}


@shared_task
def handle_app_uninstalled(shop_domain: str) -> dict:
    """Mark the shop inactive; no data is deleted."""
    deactivated = asyncio.run(_handle_app_uninstalled(shop_domain))
    return {"shop_domain": shop_domain, "deactivated": deactivated}
