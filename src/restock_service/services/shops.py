"""Shop (tenant) lookup and catalog resolution."""

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from restock_service.infrastructure.database.models import Product, Shop, Variant
from shared.clock import utcnow

logger = structlog.get_logger()

SHOPIFY_DOMAIN_SUFFIX = ".myshopify.com"


def normalize_shop_domain(domain: str) -> str:
    """``https://Acme.myshopify.com/`` and ``acme`` both become ``acme.myshopify.com``."""
    value = (domain or "").strip().lower()
    for prefix in ("https://", "http://"):
        if value.startswith(prefix):
            value = value[len(prefix):]
    value = value.rstrip("/")
    if value and not value.endswith(SHOPIFY_DOMAIN_SUFFIX):
        value += SHOPIFY_DOMAIN_SUFFIX
    return value


class ShopService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_domain(self, shop_domain: str, include_inactive: bool = False) -> Shop | None:
        """Installed shop for ``shop_domain``; uninstalled shops resolve to None."""
        query = select(Shop).where(Shop.shopify_domain == normalize_shop_domain(shop_domain))
        if not include_inactive:
            query = query.where(Shop.is_active.is_(True))
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_by_id(self, shop_id: str) -> Shop | None:
        return await self.session.get(Shop, shop_id)

    async def upsert_shop(self, shop_domain: str, access_token: str = "") -> Shop:
        """Create the shop, or reactivate it after a reinstall."""
        shop = await self.get_by_domain(shop_domain, include_inactive=True)
        if shop is None:
            shop = Shop(
                shopify_domain=normalize_shop_domain(shop_domain),
                access_token=access_token,
                is_active=True,
                installed_at=utcnow(),
            )
            self.session.add(shop)
            logger.info("Shop installed", shop_domain=shop.shopify_domain)
        else:
            if access_token:
                shop.access_token = access_token
            if not shop.is_active:
                shop.is_active = True
                shop.installed_at = utcnow()
                logger.info("Shop reinstalled", shop_id=shop.id)
        await self.session.commit()
        return shop

    async def mark_uninstalled(self, shop_domain: str) -> bool:
        """Deactivate the shop. Its data is kept. Returns False for unknown shops."""
        result = await self.session.execute(
            update(Shop)
            .where(Shop.shopify_domain == normalize_shop_domain(shop_domain))
            .values(is_active=False, updated_at=utcnow())
        )
        await self.session.commit()
        if result.rowcount == 0:
            logger.debug("Uninstall for unknown shop", shop_domain=shop_domain)
            return False
        logger.info("Shop marked inactive", shop_domain=normalize_shop_domain(shop_domain))
        return True

    async def find_variant(self, shop_id: str, variant_ref: str) -> Variant | None:
        """Variant of this shop by Shopify variant id or internal id."""
        result = await self.session.execute(
            select(Variant)
            .join(Product, Product.id == Variant.product_id)
            .where(
                Product.shop_id == shop_id,
                or_(Variant.shopify_variant_id == str(variant_ref), Variant.id == str(variant_ref)),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_product(self, shop_id: str, product_ref: str) -> Product | None:
        result = await self.session.execute(
            select(Product).where(
                Product.shop_id == shop_id,
                or_(Product.shopify_product_id == str(product_ref), Product.id == str(product_ref)),
            )
        )
        return result.scalars().first()
