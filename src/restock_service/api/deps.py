"""FastAPI dependencies shared by the v1 routers."""

from functools import lru_cache

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from restock_service.config import get_settings
from restock_service.errors import NotFound
from restock_service.infrastructure.database.connection import get_session, get_session_factory
from restock_service.infrastructure.database.models import Shop
from restock_service.infrastructure.redis import CacheService, get_redis_client
from restock_service.services.delivery import build_providers
from restock_service.services.demand import DemandService
from restock_service.services.notifications import NotificationDispatcher
from restock_service.services.plan import PlanService
from restock_service.services.recovery import RecoveryService
from restock_service.services.restock import RestockEventHandler
from restock_service.services.shop_settings import ShopSettingsService
from restock_service.services.shops import ShopService


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(build_providers(get_settings()))


async def get_cache() -> CacheService:
    return CacheService(await get_redis_client())


async def get_current_shop(
    x_shop_domain: str = Header(..., alias="X-Shop-Domain"),
    session: AsyncSession = Depends(get_session),
) -> Shop:
    """Installed shop named by the ``X-Shop-Domain`` header."""
    shop = await ShopService(session).get_by_domain(x_shop_domain)
    if shop is None:
        raise NotFound(f"Shop not found: {x_shop_domain}")
    return shop


def get_demand_service(
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    cache: CacheService = Depends(get_cache),
) -> DemandService:
    return DemandService(session, dispatcher, settings=get_settings(), cache=cache)


def get_plan_service(session: AsyncSession = Depends(get_session)) -> PlanService:
    settings = get_settings()
    return PlanService(
        session,
        free_limit=settings.free_monthly_notify_limit,
        pro_limit=settings.pro_monthly_notify_limit,
    )


def get_recovery_service(session: AsyncSession = Depends(get_session)) -> RecoveryService:
    settings = get_settings()
    return RecoveryService(
        session,
        frontend_url=settings.frontend_url,
        ttl_days=settings.recovery_link_ttl_days,
    )


def get_shop_settings_service(session: AsyncSession = Depends(get_session)) -> ShopSettingsService:
    return ShopSettingsService(session)


def get_restock_handler(
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    cache: CacheService = Depends(get_cache),
) -> RestockEventHandler:
    return RestockEventHandler(
        get_session_factory(), dispatcher, settings=get_settings(), cache=cache
    )
