"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator, Callable, Generator
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from restock_service.api.deps import get_cache, get_dispatcher, get_restock_handler
from restock_service.config import Settings, get_settings
from restock_service.infrastructure.database.connection import (
    get_async_engine,
    get_async_session_factory,
    get_db_session,
    get_session,
)
from restock_service.infrastructure.redis import CacheService
from restock_service.main import app
from restock_service.infrastructure.database.models import (
    Base,
    DemandChannel,
    DemandRequest,
    DemandStatus,
    PlanTier,
    Product,
    Shop,
    ShopPlan,
    ShopSettings,
    Variant,
)
from restock_service.services.delivery import MockDeliveryProvider, NotificationChannel
from restock_service.services.notifications import NotificationDispatcher
from restock_service.services.restock import RestockEventHandler
from shared.clock import start_of_month, utcnow

SHOP_DOMAIN = "acme.myshopify.com"


# =============================================================================
# Settings and database
# =============================================================================


@pytest.fixture(autouse=True)
def test_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Point settings at a per-test SQLite file and keep live delivery off."""
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("DATABASE_URL_OVERRIDE", f"sqlite+aiosqlite:///{tmp_path / 'restock.db'}")
    monkeypatch.setenv("NOTIFICATIONS_ENABLED", "false")
    monkeypatch.setenv("JOBS_ENABLED", "false")
    monkeypatch.setenv("SHOPIFY_API_SECRET", "")
    monkeypatch.setenv("RESTOCK_BATCH_DELAY_MS", "0")
    get_settings.cache_clear()
    get_dispatcher.cache_clear()
    yield
    get_settings.cache_clear()
    get_dispatcher.cache_clear()


@pytest.fixture
def test_settings(test_env: None) -> Settings:
    return get_settings()


@pytest_asyncio.fixture
async def engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    engine = get_async_engine(test_settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return get_async_session_factory(engine)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# =============================================================================
# Delivery fakes
# =============================================================================


@pytest.fixture
def email_provider() -> MockDeliveryProvider:
    return MockDeliveryProvider("test-email")


@pytest.fixture
def sms_provider() -> MockDeliveryProvider:
    return MockDeliveryProvider("test-sms")


@pytest.fixture
def dispatcher(
    email_provider: MockDeliveryProvider, sms_provider: MockDeliveryProvider
) -> NotificationDispatcher:
    return NotificationDispatcher(
        {NotificationChannel.EMAIL: email_provider, NotificationChannel.SMS: sms_provider}
    )


# =============================================================================
# Catalog seeding
# =============================================================================


@dataclass
class Catalog:
    shop: Shop
    product: Product
    variant: Variant
    plan: ShopPlan


@pytest.fixture
def seed_catalog(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Any]:
    """Factory creating a shop with one product, one variant and a plan."""

    async def _seed(
        *,
        domain: str = SHOP_DOMAIN,
        tier: PlanTier = PlanTier.FREE,
        limit: int | None = None,
        used: int = 0,
        usage_reset_at: datetime | None = None,
        auto_notify: bool | None = None,
        inventory: int = 0,
        shopify_variant_id: str = "40001",
        shopify_product_id: str = "70001",
        title: str = "Linen Shirt",
    ) -> Catalog:
        async with session_factory() as session:
            shop = Shop(shopify_domain=domain, access_token="token", is_active=True, installed_at=utcnow())
            session.add(shop)
            await session.flush()

            product = Product(shop_id=shop.id, shopify_product_id=shopify_product_id, title=title)
            session.add(product)
            await session.flush()

            variant = Variant(
                product_id=product.id,
                shopify_variant_id=shopify_variant_id,
                inventory_quantity=inventory,
            )
            plan = ShopPlan(
                shop_id=shop.id,
                tier=tier,
                monthly_notify_limit=limit if limit is not None else (10000 if tier == PlanTier.PRO else 50),
                notifications_used_this_month=used,
                usage_reset_at=usage_reset_at or start_of_month(utcnow()),
            )
            session.add_all([variant, plan])
            if auto_notify is not None:
                session.add(ShopSettings(shop_id=shop.id, auto_notify_on_restock=auto_notify))
            await session.commit()
            return Catalog(shop=shop, product=product, variant=variant, plan=plan)

    return _seed


@pytest.fixture
def add_request(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Any]:
    """Factory inserting a demand request directly."""

    async def _add(
        variant_id: str,
        contact: str,
        channel: DemandChannel = DemandChannel.EMAIL,
        status: DemandStatus = DemandStatus.PENDING,
    ) -> DemandRequest:
        async with session_factory() as session:
            request = DemandRequest(variant_id=variant_id, contact=contact, channel=channel, status=status)
            session.add(request)
            await session.commit()
            return request

    return _add


@pytest.fixture
def fetch(session_factory: async_sessionmaker[AsyncSession]) -> Callable[..., Any]:
    """Fresh read of one row in its own session."""

    async def _fetch(model: type, id_: str) -> Any:
        async with session_factory() as session:
            return await session.get(model, id_)

    return _fetch


# =============================================================================
# API client
# =============================================================================


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    dispatcher: NotificationDispatcher,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app, with the database and delivery swapped for test ones."""

    async def override_session() -> AsyncGenerator[AsyncSession, None]:
        async with get_db_session(session_factory) as session:
            yield session

    cache = CacheService(None)
    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_restock_handler] = lambda: RestockEventHandler(
        session_factory, dispatcher, cache=cache
    )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
